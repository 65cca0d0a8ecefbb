"""Job executor: batching, metering, failure handling, cancellation."""

import asyncio

import pytest

from verifyhub.core.exceptions import UpstreamTimeoutError
from verifyhub.models.job import JobStatus
from verifyhub.services import jobs as jobs_service
from verifyhub.worker.executor import JobExecutor

from tests.conftest import FakeVerifier, add_key, add_user, emails

pytestmark = pytest.mark.asyncio


def assert_counters_consistent(job):
    assert job.processed_count + job.remaining_count == job.total_emails
    assert job.valid_count + job.invalid_count + job.risky_count == job.processed_count
    assert len(job.results) == job.processed_count


async def test_thirty_emails_run_as_two_batches(store, executor, verifier):
    key = add_key(store, "k1")
    user = add_user(store, "u1", credit_limit=100)
    addrs = emails(30)
    verifier.results = {addrs[0]: "INVALID", addrs[1]: "UNKNOWN", addrs[26]: "INVALID"}

    job = await jobs_service.submit_job(store, executor, user, addrs)
    assert job.status == JobStatus.PROCESSING
    await executor.wait(job.id)

    job = store.state.get_job(job.id)
    assert [len(batch) for batch, _ in verifier.calls] == [25, 5]
    assert [r.email for r in job.results] == addrs
    assert job.status == JobStatus.COMPLETED
    assert job.processed_count == 30
    assert job.remaining_count == 0
    assert (job.valid_count, job.invalid_count, job.risky_count) == (27, 2, 1)
    assert_counters_consistent(job)
    assert key.used_credits == 30
    assert store.state.get_user("u1").used_credits == 30
    assert job.results[0].id == f"{job.id}_0_0"
    assert job.results[25].id == f"{job.id}_25_0"


async def test_counters_hold_at_every_batch_boundary(store):
    add_key(store, "k1")
    user = add_user(store, "u1")
    seen = []

    def snapshot(batch, api_key):
        for job in store.state.jobs:
            seen.append((job.processed_count, job.remaining_count))
            assert_counters_consistent(job)

    executor = JobExecutor(store, FakeVerifier(on_call=snapshot), batch_size=10, batch_delay=0)
    job = await jobs_service.submit_job(store, executor, user, emails(35))
    await executor.wait(job.id)
    assert seen == [(0, 35), (10, 25), (20, 15), (30, 5)]
    assert_counters_consistent(store.state.get_job(job.id))


async def test_pool_exhausted_before_second_batch(store, executor, verifier):
    key = add_key(store, "k1", total_limit=25)
    user = add_user(store, "u1", credit_limit=100)

    job = await jobs_service.submit_job(store, executor, user, emails(30))
    await executor.wait(job.id)

    job = store.state.get_job(job.id)
    assert len(verifier.calls) == 1
    assert job.status == JobStatus.FAILED
    assert "exhausted" in job.error
    assert len(job.results) == 25
    assert job.processed_count == 25
    assert job.remaining_count == 5
    assert job.emails == []
    assert_counters_consistent(job)
    assert key.status == "exhausted"


async def test_exhausted_key_is_not_reused_by_later_jobs(store, executor, verifier):
    add_key(store, "k1", total_limit=25)
    add_key(store, "k2")
    user = add_user(store, "u1", credit_limit=100)

    first = await jobs_service.submit_job(store, executor, user, emails(25, "a"))
    await executor.wait(first.id)
    second = await jobs_service.submit_job(store, executor, user, emails(10, "b"))
    await executor.wait(second.id)

    assert [key for _, key in verifier.calls] == ["secret-k1", "secret-k2"]
    assert store.state.get_api_key("k1").status == "exhausted"
    assert store.state.get_job(second.id).status == JobStatus.COMPLETED


async def test_no_credential_fails_without_results(store, executor, verifier):
    user = add_user(store, "u1")
    job = await jobs_service.submit_job(store, executor, user, emails(3))
    await executor.wait(job.id)

    job = store.state.get_job(job.id)
    assert verifier.calls == []
    assert job.status == JobStatus.FAILED
    assert job.results == []
    assert job.remaining_count == 3
    assert store.state.get_user("u1").used_credits == 0


async def test_pinned_key_is_used(store, executor, verifier):
    add_key(store, "k1")
    add_key(store, "k2")
    user = add_user(store, "u1", assigned_api_id="k2")
    job = await jobs_service.submit_job(store, executor, user, emails(2))
    await executor.wait(job.id)
    assert verifier.calls[0][1] == "secret-k2"


async def test_upstream_failure_keeps_prior_results(store):
    key = add_key(store, "k1")
    user = add_user(store, "u1")
    verifier = FakeVerifier(fail_on_call=2, error=UpstreamTimeoutError())
    executor = JobExecutor(store, verifier, batch_size=25, batch_delay=0)

    job = await jobs_service.submit_job(store, executor, user, emails(60))
    await executor.wait(job.id)

    job = store.state.get_job(job.id)
    assert job.status == JobStatus.FAILED
    assert job.error == UpstreamTimeoutError().message
    assert job.processed_count == 25
    assert job.remaining_count == 35
    assert_counters_consistent(job)
    # Only the successful batch is metered.
    assert key.used_credits == 25
    assert store.state.get_user("u1").used_credits == 25


async def test_short_upstream_response_fails_job(store):
    add_key(store, "k1")
    user = add_user(store, "u1")

    class ShortVerifier(FakeVerifier):
        async def verify(self, batch, api_key):
            items = await super().verify(batch, api_key)
            return items[:-1]

    executor = JobExecutor(store, ShortVerifier(), batch_size=25, batch_delay=0)
    job = await jobs_service.submit_job(store, executor, user, emails(5))
    await executor.wait(job.id)

    job = store.state.get_job(job.id)
    assert job.status == JobStatus.FAILED
    assert job.results == []
    assert_counters_consistent(job)


async def test_stuck_upstream_call_times_out(store):
    key = add_key(store, "k1")
    user = add_user(store, "u1")
    # Never released: the call hangs until the executor gives up on it.
    verifier = FakeVerifier(hold=True)
    executor = JobExecutor(store, verifier, batch_size=25, batch_delay=0, call_timeout=0.2)

    job = await jobs_service.submit_job(store, executor, user, emails(3))
    await asyncio.wait_for(executor.wait(job.id), timeout=5)

    job = store.state.get_job(job.id)
    assert job.status == JobStatus.FAILED
    assert job.error == UpstreamTimeoutError().message
    assert job.results == []
    assert_counters_consistent(job)
    assert key.used_credits == 0
    assert not executor.is_running(job.id)


async def test_cancel_mid_flight_keeps_in_flight_batch(store):
    add_key(store, "k1")
    user = add_user(store, "u1")
    verifier = FakeVerifier(hold=True)
    executor = JobExecutor(store, verifier, batch_size=25, batch_delay=0)

    job = await jobs_service.submit_job(store, executor, user, emails(60))
    await verifier.in_flight.wait()
    paused = await jobs_service.cancel_job(store, user, job.id)
    assert paused.status == JobStatus.PAUSED
    verifier.release()
    await executor.wait(job.id)

    job = store.state.get_job(job.id)
    assert len(verifier.calls) == 1
    assert job.status == JobStatus.PAUSED
    assert job.processed_count == 25
    assert job.remaining_count == 35
    assert len(job.emails) == 35
    assert_counters_consistent(job)


async def test_resume_continues_paused_job(store):
    add_key(store, "k1")
    user = add_user(store, "u1")
    verifier = FakeVerifier(hold=True)
    executor = JobExecutor(store, verifier, batch_size=25, batch_delay=0)

    job = await jobs_service.submit_job(store, executor, user, emails(30))
    await verifier.in_flight.wait()
    await jobs_service.cancel_job(store, user, job.id)
    verifier.release()
    await executor.wait(job.id)

    await jobs_service.resume_job(store, executor, user, job.id)
    await executor.wait(job.id)

    job = store.state.get_job(job.id)
    assert job.status == JobStatus.COMPLETED
    assert job.processed_count == 30
    assert [r.email for r in job.results] == emails(30)


async def test_delete_mid_flight_still_meters_usage(store):
    key = add_key(store, "k1")
    user = add_user(store, "u1")
    verifier = FakeVerifier(hold=True)
    executor = JobExecutor(store, verifier, batch_size=25, batch_delay=0)

    job = await jobs_service.submit_job(store, executor, user, emails(40))
    await verifier.in_flight.wait()
    await jobs_service.delete_job(store, user, job.id)
    verifier.release()
    await executor.wait(job.id)

    assert store.state.get_job(job.id) is None
    assert len(verifier.calls) == 1
    assert key.used_credits == 25
    assert store.state.get_user("u1").used_credits == 25


async def test_single_owner_per_job(store):
    add_key(store, "k1")
    user = add_user(store, "u1")
    verifier = FakeVerifier(hold=True)
    executor = JobExecutor(store, verifier, batch_size=25, batch_delay=0)

    job = await jobs_service.submit_job(store, executor, user, emails(5))
    assert executor.is_running(job.id)
    assert executor.start(job.id) is False
    verifier.release()
    await executor.wait(job.id)
    assert len(verifier.calls) == 1
    assert not executor.is_running(job.id)
