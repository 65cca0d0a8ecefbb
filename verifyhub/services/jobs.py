"""Verification jobs: submission, bulk finder rows, visibility, cancel/resume/delete, export."""

import csv
import io
import uuid

from verifyhub.core.config import get_settings
from verifyhub.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from verifyhub.core.logging import get_logger
from verifyhub.db.store import Store, StoreState
from verifyhub.models.job import FinderRow, Job, JobStatus
from verifyhub.models.user import User
from verifyhub.services import finder
from verifyhub.services.quota import check_quota
from verifyhub.worker.executor import JobExecutor

log = get_logger(__name__)

EXPORT_HEADERS = [
    "Email", "Quality", "Result", "Result Code", "Sub Result",
    "Free", "Role", "Did You Mean", "Error", "Checked At",
]
ROW_EXPORT_HEADERS = ["First Name", "Last Name", "Domain", "Found Email", "Status"]


def clean_emails(emails: list[str]) -> list[str]:
    return [e.strip() for e in emails if isinstance(e, str) and e.strip()]


def _new_job_id() -> str:
    return f"j_{uuid.uuid4().hex[:12]}"


def _authorized_job(state: StoreState, user: User, job_id: str) -> Job:
    job = state.get_job(job_id)
    if not job:
        raise NotFoundError("Job reference not found.")
    if not user.is_admin and job.creator_id != user.id:
        raise ForbiddenError("You do not have access to this job.")
    return job


async def submit_job(
    store: Store,
    executor: JobExecutor,
    user: User,
    emails: list[str],
    kind: str = "plain",
    rows: list[FinderRow] | None = None,
) -> Job:
    """
    Quota check, create and persist the job as processing, then start the
    executor. Returns before any batch has run.
    """
    cleaned = clean_emails(emails)
    if not cleaned:
        raise BadRequestError("At least one email address is required")
    async with store.transaction() as state:
        creator = state.get_user(user.id)
        if not creator:
            raise NotFoundError("User not found")
        check_quota(creator, len(cleaned))
        job = Job(
            id=_new_job_id(),
            creator_id=creator.id,
            kind=kind,
            emails=cleaned,
            rows=rows or [],
            total_emails=len(cleaned),
            remaining_count=len(cleaned),
            status=JobStatus.PROCESSING,
        )
        state.jobs.append(job)
    log.info("job_submitted", job_id=job.id, user_id=user.id, emails=len(cleaned), kind=kind)
    executor.start(job.id)
    return job


def list_jobs(state: StoreState, user: User, limit: int | None = None) -> list[Job]:
    """Visible jobs, newest first, capped to the most recent `limit`."""
    limit = limit or get_settings().job_list_limit
    jobs = state.jobs if user.is_admin else [j for j in state.jobs if j.creator_id == user.id]
    return list(reversed(jobs[-limit:]))


def get_job(state: StoreState, user: User, job_id: str) -> Job:
    return _authorized_job(state, user, job_id)


async def cancel_job(store: Store, user: User, job_id: str) -> Job:
    """Request a pause; the executor honours it at the next batch boundary."""
    async with store.transaction() as state:
        job = _authorized_job(state, user, job_id)
        if job.status == JobStatus.PAUSED:
            return job
        if job.is_terminal:
            raise ConflictError(f"Job is already {job.status.value}.")
        job.status = JobStatus.PAUSED
        job.touch()
    log.info("job_cancel_requested", job_id=job_id, user_id=user.id)
    return job


async def resume_job(store: Store, executor: JobExecutor, user: User, job_id: str) -> Job:
    async with store.transaction() as state:
        job = _authorized_job(state, user, job_id)
        if job.status != JobStatus.PAUSED:
            raise ConflictError("Only paused jobs can be resumed.")
        creator = state.get_user(job.creator_id)
        if not creator:
            raise NotFoundError("Job owner no longer exists.")
        check_quota(creator, len(job.emails))
        job.status = JobStatus.PROCESSING
        job.touch()
    log.info("job_resumed", job_id=job_id, user_id=user.id, remaining=len(job.emails))
    # A still-running task picks the status change up at its next boundary.
    executor.start(job.id)
    return job


async def delete_job(store: Store, user: User, job_id: str) -> None:
    async with store.transaction() as state:
        _authorized_job(state, user, job_id)
        state.jobs = [j for j in state.jobs if j.id != job_id]
    log.info("job_deleted", job_id=job_id, user_id=user.id)


def export_results_csv(job: Job) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL)
    writer.writerow(EXPORT_HEADERS)
    for r in job.results:
        writer.writerow([
            r.email,
            r.quality,
            r.result,
            r.result_code,
            r.sub_result,
            str(r.free).lower(),
            str(r.role).lower(),
            r.did_you_mean or "",
            r.error or "",
            r.checked_at.isoformat(),
        ])
    return buf.getvalue()


async def submit_bulk_job(store: Store, executor: JobExecutor, user: User, rows: list[dict]) -> Job:
    """Expand finder rows into their permutations and submit them as one bulk job."""
    finder_rows = finder.build_rows(rows)
    if not finder_rows:
        raise BadRequestError("At least one row with first name, last name and domain is required")
    emails = [email for row in finder_rows for email in row.permutations]
    return await submit_job(store, executor, user, emails, kind="bulk", rows=finder_rows)


def job_rows(state: StoreState, user: User, job_id: str) -> list[dict]:
    job = _authorized_job(state, user, job_id)
    if job.kind != "bulk":
        raise BadRequestError("Only bulk jobs have finder rows.")
    return finder.row_views(job)


def export_rows_csv(rows: list[dict]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL)
    writer.writerow(ROW_EXPORT_HEADERS)
    for row in rows:
        writer.writerow([
            row["first_name"],
            row["last_name"],
            row["domain"],
            row["found_email"] or ("Not Found" if row["status"] == "complete" else ""),
            row["status"],
        ])
    return buf.getvalue()
