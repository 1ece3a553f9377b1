from offerflow.core.templating import render_template


def test_render_template_substitutes_known_keys():
    out = render_template(
        "Poste: {{RowData.Poste}} / {{ RowData.Résumé }}",
        {"RowData.Poste": "Éducateur", "RowData.Résumé": "Accompagnement"},
    )
    assert out == "Poste: Éducateur / Accompagnement"


def test_render_template_unknown_keys_become_empty():
    assert render_template("[{{RowData.Missing}}]", {}) == "[]"


def test_render_template_is_single_pass():
    out = render_template("{{RowData.A}}", {"RowData.A": "{{RowData.B}}", "RowData.B": "nope"})
    assert out == "{{RowData.B}}"


def test_render_template_leaves_other_braces_alone():
    assert render_template('{"score": 0} {{RawImport.raw_json}}', {"RawImport.raw_json": "{}"}) == '{"score": 0} {}'
