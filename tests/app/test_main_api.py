import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from offerflow.app.main import app

client = TestClient(app)


class _FakeRuntimeService:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    def health(self):
        return {"ok": True, "source": "runtime_service", "checks": [], "issues": []}

    def init_workbook(self):
        self.calls.append(("init_workbook", {}))
        return {"ok": True, "created": {"Offres": False}, "source": "init_workbook"}

    def ingest(self, **kwargs):
        self.calls.append(("ingest", kwargs))
        return {"ok": True, "counts": {"inserted": 2}, "source": "ingest"}

    def list_jobs(self):
        return {"ok": True, "jobs": [{"job_key": "score", "enabled": True}], "source": "list_jobs"}

    def run_job(self, **kwargs):
        self.calls.append(("run_job", kwargs))
        return {"ok": True, "job_key": kwargs["job_key"], "source": "run_job"}

    def run_all_enabled_jobs(self, **kwargs):
        self.calls.append(("run_all_enabled_jobs", kwargs))
        return {"ok": True, "jobs": [], "source": "run_all_enabled_jobs"}

    def set_secrets(self, **kwargs):
        self.calls.append(("set_secrets", kwargs))
        return {"ok": True, "updated": ["OPENAI_API_KEY"], "source": "set_secrets"}


@pytest.fixture()
def runtime(monkeypatch: pytest.MonkeyPatch) -> _FakeRuntimeService:
    fake = _FakeRuntimeService()
    monkeypatch.setattr("offerflow.app.main.get_runtime_service", lambda: fake)
    return fake


def test_health_endpoint(runtime):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["ok"] is True


def test_init_endpoint(runtime):
    res = client.post("/api/init")
    assert res.status_code == 200
    assert runtime.calls == [("init_workbook", {})]


def test_ingest_endpoint(runtime):
    res = client.post("/api/ingest", json={"days": 7, "keywords": "moniteur"})
    assert res.status_code == 200
    assert res.json()["counts"]["inserted"] == 2
    assert runtime.calls == [("ingest", {"days": 7, "keywords": "moniteur"})]


def test_ingest_endpoint_defaults(runtime):
    res = client.post("/api/ingest", json={})
    assert res.status_code == 200
    assert runtime.calls == [("ingest", {"days": None, "keywords": None})]


def test_ingest_endpoint_rejects_non_positive_days(runtime):
    res = client.post("/api/ingest", json={"days": 0})
    assert res.status_code == 422
    assert runtime.calls == []


def test_jobs_list_endpoint(runtime):
    res = client.get("/api/jobs")
    assert res.status_code == 200
    assert res.json()["jobs"][0]["job_key"] == "score"


def test_jobs_run_single(runtime):
    res = client.post("/api/jobs/run", json={"job_key": " score ", "dry_run": True})
    assert res.status_code == 200
    assert runtime.calls == [("run_job", {"job_key": "score", "dry_run": True})]


def test_jobs_run_blank_key_runs_all_enabled(runtime):
    res = client.post("/api/jobs/run", json={"job_key": "  "})
    assert res.status_code == 200
    assert runtime.calls == [("run_all_enabled_jobs", {"dry_run": None})]


def test_secrets_endpoint(runtime):
    res = client.post("/api/secrets", json={"openai_api_key": "sk-test"})
    assert res.status_code == 200
    assert res.json()["updated"] == ["OPENAI_API_KEY"]
    assert runtime.calls == [
        ("set_secrets", {"client_id": None, "client_secret": None, "openai_api_key": "sk-test"})
    ]
