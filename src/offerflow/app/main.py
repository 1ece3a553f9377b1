"""Local control panel: the spreadsheet menu actions over HTTP."""

from __future__ import annotations

from fastapi import FastAPI
from pydantic import BaseModel, Field

from offerflow.runtime.service import get_runtime_service

app = FastAPI(title="offerflow control panel")


class IngestRequest(BaseModel):
    days: int | None = Field(default=None, ge=1)
    keywords: str | None = None


class RunJobsRequest(BaseModel):
    job_key: str | None = None
    dry_run: bool | None = None


class SecretsRequest(BaseModel):
    client_id: str | None = None
    client_secret: str | None = None
    openai_api_key: str | None = None


@app.get("/health")
def health() -> dict:
    return get_runtime_service().health()


@app.post("/api/init")
def init_workbook() -> dict:
    return get_runtime_service().init_workbook()


@app.post("/api/ingest")
def ingest(req: IngestRequest) -> dict:
    return get_runtime_service().ingest(days=req.days, keywords=req.keywords)


@app.get("/api/jobs")
def list_jobs() -> dict:
    return get_runtime_service().list_jobs()


@app.post("/api/jobs/run")
def run_jobs(req: RunJobsRequest) -> dict:
    runtime = get_runtime_service()
    job_key = (req.job_key or "").strip()
    if job_key:
        return runtime.run_job(job_key=job_key, dry_run=req.dry_run)
    return runtime.run_all_enabled_jobs(dry_run=req.dry_run)


@app.post("/api/secrets")
def set_secrets(req: SecretsRequest) -> dict:
    out = get_runtime_service().set_secrets(
        client_id=req.client_id,
        client_secret=req.client_secret,
        openai_api_key=req.openai_api_key,
    )
    return out
