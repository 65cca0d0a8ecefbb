from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel

from verifyhub.db.store import Store
from verifyhub.deps import get_current_user, get_executor, get_store
from verifyhub.models.user import User
from verifyhub.services import jobs as jobs_service
from verifyhub.worker.executor import JobExecutor

router = APIRouter()


class JobCreate(BaseModel):
    emails: list[str]
    kind: Literal["plain", "bulk"] = "plain"


class FinderRowIn(BaseModel):
    first_name: str
    last_name: str
    domain: str


class BulkJobCreate(BaseModel):
    rows: list[FinderRowIn]


@router.post("")
async def job_create(
    body: JobCreate,
    user: User = Depends(get_current_user),
    store: Store = Depends(get_store),
    executor: JobExecutor = Depends(get_executor),
):
    """Submit emails for verification. Returns immediately with status processing."""
    job = await jobs_service.submit_job(store, executor, user, body.emails, kind=body.kind)
    return job.detail()


@router.post("/bulk")
async def bulk_job_create(
    body: BulkJobCreate,
    user: User = Depends(get_current_user),
    store: Store = Depends(get_store),
    executor: JobExecutor = Depends(get_executor),
):
    """Find emails for (first name, last name, domain) rows by verifying each row's permutations."""
    job = await jobs_service.submit_bulk_job(store, executor, user, [r.model_dump() for r in body.rows])
    return job.summary()


@router.get("")
async def jobs_list(
    user: User = Depends(get_current_user),
    store: Store = Depends(get_store),
    limit: int | None = Query(None, ge=1, le=50),
):
    """Visible jobs, newest first (admins see all)."""
    jobs = jobs_service.list_jobs(store.state, user, limit=limit)
    return {"jobs": [j.summary() for j in jobs]}


@router.get("/{job_id}")
async def job_get(job_id: str, user: User = Depends(get_current_user), store: Store = Depends(get_store)):
    """Poll a job: counters, status, and results so far."""
    return jobs_service.get_job(store.state, user, job_id).detail()


@router.post("/{job_id}/cancel")
async def job_cancel(job_id: str, user: User = Depends(get_current_user), store: Store = Depends(get_store)):
    job = await jobs_service.cancel_job(store, user, job_id)
    return {"success": True, "status": job.status.value}


@router.post("/{job_id}/resume")
async def job_resume(
    job_id: str,
    user: User = Depends(get_current_user),
    store: Store = Depends(get_store),
    executor: JobExecutor = Depends(get_executor),
):
    job = await jobs_service.resume_job(store, executor, user, job_id)
    return {"success": True, "status": job.status.value}


@router.delete("/{job_id}")
async def job_delete(job_id: str, user: User = Depends(get_current_user), store: Store = Depends(get_store)):
    await jobs_service.delete_job(store, user, job_id)
    return {"success": True}


@router.get("/{job_id}/export")
async def job_export(job_id: str, user: User = Depends(get_current_user), store: Store = Depends(get_store)):
    """Download results as CSV."""
    job = jobs_service.get_job(store.state, user, job_id)
    return Response(
        content=jobs_service.export_results_csv(job),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="job_{job.id}_results.csv"'},
    )


@router.get("/{job_id}/rows")
async def job_rows(job_id: str, user: User = Depends(get_current_user), store: Store = Depends(get_store)):
    """Bulk finder rows with each row's found email."""
    return {"rows": jobs_service.job_rows(store.state, user, job_id)}


@router.get("/{job_id}/rows/export")
async def job_rows_export(job_id: str, user: User = Depends(get_current_user), store: Store = Depends(get_store)):
    rows = jobs_service.job_rows(store.state, user, job_id)
    return Response(
        content=jobs_service.export_rows_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="job_{job_id}_found_emails.csv"'},
    )
