"""
Job executor: one asyncio task per job, draining the email queue in batches.

Each iteration pops a batch and picks a credential under the store lock, calls
the verifier outside it, then merges results, meters usage and flushes under
the lock again. Status changes made by other callers (cancel, delete) are only
observed between batches.
"""

import asyncio
from dataclasses import dataclass

from verifyhub.core.config import get_settings
from verifyhub.core.exceptions import NoCredentialAvailableError, UpstreamError, UpstreamTimeoutError
from verifyhub.core.logging import get_logger
from verifyhub.db.store import Store
from verifyhub.models.job import EmailResult, JobStatus
from verifyhub.services.classify import classify_result
from verifyhub.services.credentials import record_usage, select_credential
from verifyhub.services.verifier import VerifiedItem, Verifier

logger = get_logger(__name__)

INTERNAL_FAILURE_MESSAGE = "Internal error while processing the job."


@dataclass
class _Batch:
    emails: list[str]
    key_id: str
    key_secret: str
    creator_id: str


class JobExecutor:
    def __init__(
        self,
        store: Store,
        verifier: Verifier,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        call_timeout: float | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.verifier = verifier
        self.batch_size = batch_size or settings.verify_batch_size
        self.batch_delay = settings.verify_batch_delay_seconds if batch_delay is None else batch_delay
        self.call_timeout = settings.verify_timeout_seconds if call_timeout is None else call_timeout
        self._tasks: dict[str, asyncio.Task] = {}

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def start(self, job_id: str) -> bool:
        """Schedule the job loop. No-op (False) while another task owns the job."""
        if self.is_running(job_id):
            return False
        task = asyncio.create_task(self._run(job_id), name=f"job:{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, jid=job_id: self._forget(jid, t))
        return True

    def _forget(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error("job_task_error", job_id=job_id, reason=str(task.exception())[:500])

    async def wait(self, job_id: str) -> None:
        """Block until the job's task (if any) finishes."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _run(self, job_id: str) -> None:
        log = logger.bind(job_id=job_id)
        log.info("job_started")
        try:
            while True:
                batch = await self._next_batch(job_id, log)
                if batch is None:
                    return
                try:
                    items = await self._verify(batch, log)
                except UpstreamError as e:
                    await self._fail(job_id, e.message, log)
                    return
                if not await self._apply_batch(job_id, batch, items, log):
                    return
                if self.batch_delay > 0:
                    await asyncio.sleep(self.batch_delay)
        except asyncio.CancelledError:
            log.info("job_task_cancelled")
            raise
        except Exception:
            log.exception("job_crashed")
            await self._fail(job_id, INTERNAL_FAILURE_MESSAGE, log)
            raise

    async def _verify(self, batch: _Batch, log) -> list[VerifiedItem]:
        """One upstream call, bounded end to end by call_timeout."""
        try:
            async with asyncio.timeout(self.call_timeout):
                items = await self.verifier.verify(batch.emails, batch.key_secret)
        except TimeoutError as e:
            log.warning("verifier_call_timeout", batch_size=len(batch.emails), timeout=self.call_timeout)
            raise UpstreamTimeoutError() from e
        if len(items) != len(batch.emails):
            raise UpstreamError(f"Upstream returned {len(items)} results for {len(batch.emails)} emails.")
        return items

    async def _next_batch(self, job_id: str, log) -> _Batch | None:
        async with self.store.transaction() as state:
            job = state.get_job(job_id)
            if job is None:
                log.info("job_gone")
                return None
            if job.status == JobStatus.PAUSED:
                log.info("job_paused", processed=job.processed_count, remaining=job.remaining_count)
                return None
            if job.status != JobStatus.PROCESSING:
                return None
            if not job.emails:
                job.status = JobStatus.COMPLETED
                job.touch()
                log.info("job_completed", processed=job.processed_count)
                return None

            emails = job.emails[: self.batch_size]
            del job.emails[: self.batch_size]
            job.touch()

            creator = state.get_user(job.creator_id)
            key = select_credential(state, creator.assigned_api_id if creator else None)
            if key is None:
                job.status = JobStatus.FAILED
                job.error = NoCredentialAvailableError().message
                job.emails = []
                log.warning("job_failed", reason="no_credential", processed=job.processed_count)
                return None
            return _Batch(emails=emails, key_id=key.id, key_secret=key.key, creator_id=job.creator_id)

    async def _apply_batch(self, job_id: str, batch: _Batch, items: list[VerifiedItem], log) -> bool:
        """Merge one verified batch. Returns False when the loop should stop."""
        size = len(batch.emails)
        async with self.store.transaction() as state:
            # Upstream usage was spent whether or not the job still exists.
            key = state.get_api_key(batch.key_id)
            if key is not None:
                record_usage(key, size)
            creator = state.get_user(batch.creator_id)
            if creator is not None:
                creator.used_credits += size

            job = state.get_job(job_id)
            if job is None:
                log.info("job_gone", dropped_results=size)
                return False

            offset = job.processed_count
            results = [
                EmailResult(
                    id=f"{job.id}_{offset}_{idx}",
                    email=item.email,
                    status=classify_result(item.result),
                    quality=item.quality,
                    result=item.result,
                    result_code=item.result_code,
                    sub_result=item.sub_result,
                    free=item.free,
                    role=item.role,
                    did_you_mean=item.did_you_mean,
                    error=item.error,
                )
                for idx, item in enumerate(items)
            ]
            job.results.extend(results)
            job.processed_count += size
            job.remaining_count -= size
            job.valid_count += sum(1 for r in results if r.status == "valid")
            job.invalid_count += sum(1 for r in results if r.status == "invalid")
            job.risky_count += sum(1 for r in results if r.status == "risky")
            job.touch()
            log.info(
                "job_batch_done",
                key_id=batch.key_id,
                batch_size=size,
                processed=job.processed_count,
                remaining=job.remaining_count,
            )

            if job.status == JobStatus.PROCESSING and not job.emails:
                job.status = JobStatus.COMPLETED
                log.info("job_completed", processed=job.processed_count)
                return False
            if job.status == JobStatus.PAUSED:
                log.info("job_paused", processed=job.processed_count, remaining=job.remaining_count)
            return job.status == JobStatus.PROCESSING

    async def _fail(self, job_id: str, message: str, log) -> None:
        async with self.store.transaction() as state:
            job = state.get_job(job_id)
            if job is None or job.is_terminal:
                return
            job.status = JobStatus.FAILED
            job.error = message
            job.emails = []
            job.touch()
        log.warning("job_failed", reason=message)
