"""Terminal entrypoint: ingestion, AI jobs, secrets and workbook setup."""

from __future__ import annotations

import argparse
import json
from typing import Any

from offerflow.core.config_loader import get_logging_config
from offerflow.core.ingestion import MENU_WINDOW_DAYS
from offerflow.core.log import setup_logger
from offerflow.runtime.service import get_runtime_service


def _emit(out: dict[str, Any]) -> int:
    if out.get("ok"):
        print(json.dumps(out, ensure_ascii=False, indent=2))
        return 0
    print(f"error: {out.get('error') or 'unknown error'}")
    hint = out.get("hint")
    if hint:
        print(f"hint: {hint}")
    return 1


def _print_jobs(out: dict[str, Any]) -> int:
    if not out.get("ok"):
        return _emit(out)
    jobs = out.get("jobs") or []
    print("Configured AI jobs:")
    if not jobs:
        print("- (none)")
    for job in jobs:
        targets = ", ".join(job.get("target_columns") or []) or "-"
        print(
            f"- {job['job_key']} enabled={job['enabled']} mode={job['output_mode']} "
            f"strategy={job['write_strategy']} targets={targets}"
        )
    return 0


def _cmd_ingest(args: argparse.Namespace) -> int:
    return _emit(get_runtime_service().ingest(days=args.days, keywords=args.keywords))


def _cmd_jobs(args: argparse.Namespace) -> int:
    runtime = get_runtime_service()
    if args.jobs_command == "list":
        return _print_jobs(runtime.list_jobs())
    dry_run = True if args.dry_run else None
    if args.job_key:
        return _emit(runtime.run_job(job_key=args.job_key, dry_run=dry_run))
    return _emit(runtime.run_all_enabled_jobs(dry_run=dry_run))


def _cmd_secrets(args: argparse.Namespace) -> int:
    return _emit(
        get_runtime_service().set_secrets(
            client_id=args.client_id,
            client_secret=args.client_secret,
            openai_api_key=args.openai_api_key,
        )
    )


def _cmd_serve(args: argparse.Namespace) -> int:
    from offerflow.daemon.main import run_daemon

    return run_daemon(with_app=True, host=args.host, port=args.port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="France Travail offers to Google Sheets, with AI enrichment.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the Offres, Exclusions, Import, Jobs and Logs sheets.")
    sub.add_parser("health", help="Check local stores, secrets and Sheets settings.")

    ingest = sub.add_parser("ingest", help="Fetch new offers and append them to the Offres sheet.")
    ingest.add_argument(
        "--days",
        type=int,
        default=None,
        help=f"Publication window in days ({', '.join(str(d) for d in MENU_WINDOW_DAYS)}; 30 maps to 31).",
    )
    ingest.add_argument("--keywords", default=None, help="Override the configured search keywords.")

    jobs = sub.add_parser("jobs", help="List or run AI enrichment jobs.")
    jobs_sub = jobs.add_subparsers(dest="jobs_command", required=True)
    jobs_sub.add_parser("list", help="List jobs from the Jobs sheet.")
    run = jobs_sub.add_parser("run", help="Run one job, or every enabled job when JOB_KEY is omitted.")
    run.add_argument("job_key", nargs="?", default=None, help="Job key (for example: completion).")
    run.add_argument("--dry-run", action="store_true", help="Render prompts and log SKIP rows without calling OpenAI.")

    secrets = sub.add_parser("secrets", help="Manage stored credentials.")
    secrets_sub = secrets.add_subparsers(dest="secrets_command", required=True)
    set_cmd = secrets_sub.add_parser("set", help="Store France Travail and/or OpenAI credentials.")
    set_cmd.add_argument("--client-id", default=None, help="France Travail client id.")
    set_cmd.add_argument("--client-secret", default=None, help="France Travail client secret.")
    set_cmd.add_argument("--openai-api-key", default=None, help="OpenAI API key.")

    serve = sub.add_parser("serve", help="Serve the local control panel.")
    serve.add_argument("--host", default="127.0.0.1", help="Local bind host.")
    serve.add_argument("--port", type=int, default=8000, help="Local bind port.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging_cfg = get_logging_config()
    setup_logger(logging_cfg["level"], logging_cfg["file"])

    if args.command == "init":
        return _emit(get_runtime_service().init_workbook())
    if args.command == "health":
        return _emit(get_runtime_service().health())
    if args.command == "ingest":
        return _cmd_ingest(args)
    if args.command == "jobs":
        return _cmd_jobs(args)
    if args.command == "secrets":
        return _cmd_secrets(args)
    if args.command == "serve":
        return _cmd_serve(args)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
