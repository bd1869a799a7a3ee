"""Tests for job lifecycle driven by DeploymentOrchestrator."""

import asyncio

import pytest

from sendit.adapters import AdapterRegistry
from sendit.config import PollSettings, RetrySettings, Settings
from sendit.errors import AuthError, SendItError, TransientNetworkError, ValidationError
from sendit.models import JobStatus, ProviderState, ProviderStatus, SubmitResult
from sendit.orchestrator import DeploymentOrchestrator, EventTypes

from conftest import FakeClock, FakeSleep, ScriptedAdapter, blocking_sleep, building, make_job


def orchestrator_for(adapter, clock=None, sleep=None, **settings_kwargs):
    clock = clock or FakeClock()
    settings = Settings(**settings_kwargs)
    return DeploymentOrchestrator(
        AdapterRegistry([adapter]),
        settings=settings,
        sleep=sleep or FakeSleep(clock),
        clock=clock,
    )


def statuses(orchestrator, job):
    return [e.data["status"] for e in orchestrator.channel.history(job.id) if e.type == EventTypes.STATUS]


async def wait_for_status(job, status):
    for _ in range(1000):
        if job.status == status:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"job never reached {status.value}, is {job.status.value}")


class TestSubmission:
    """Submission with retry and backoff."""

    @pytest.mark.asyncio
    async def test_happy_path(self):
        adapter = ScriptedAdapter()
        orchestrator = orchestrator_for(adapter)
        job = make_job()

        handle = orchestrator.submit(job)
        await handle.wait()

        assert job.status == JobStatus.SUCCEEDED
        assert job.deployment_id == "dep-1"
        assert job.url == "https://app.example.app"
        assert job.attempts == 1
        assert job.last_error is None
        assert statuses(orchestrator, job) == ["submitting", "polling", "succeeded"]

    @pytest.mark.asyncio
    async def test_transient_failures_back_off_then_succeed(self):
        clock = FakeClock()
        sleep = FakeSleep(clock)
        adapter = ScriptedAdapter(submits=[
            TransientNetworkError("Vercel API error 503", status=503),
            TransientNetworkError("Vercel API error 503", status=503),
            SubmitResult("dep-3"),
        ])
        orchestrator = orchestrator_for(
            adapter, clock=clock, sleep=sleep,
            retry=RetrySettings(max_attempts=3, initial_delay=1.0, multiplier=2.0, max_delay=30.0),
        )
        job = make_job()

        await orchestrator.submit(job).wait()

        assert statuses(orchestrator, job)[:2] == ["submitting", "polling"]
        assert sleep.calls[:2] == [1.0, 2.0]
        assert adapter.submit_calls == 3
        assert job.attempts == 3
        assert job.status == JobStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        adapter = ScriptedAdapter(submits=[TransientNetworkError("connection reset")])
        orchestrator = orchestrator_for(adapter)
        job = make_job()

        await orchestrator.submit(job).wait()

        assert job.status == JobStatus.FAILED
        assert adapter.submit_calls == 3
        assert job.last_error.kind == "transient"
        assert "after 3 attempts" in job.last_error.message
        assert job.url is None

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(self):
        sleep = FakeSleep()
        adapter = ScriptedAdapter(submits=[AuthError("Vercel API error 401: invalid token")])
        orchestrator = orchestrator_for(adapter, sleep=sleep)
        job = make_job()

        await orchestrator.submit(job).wait()

        assert job.status == JobStatus.FAILED
        assert adapter.submit_calls == 1
        assert sleep.calls == []
        assert job.last_error.kind == "auth"
        assert statuses(orchestrator, job) == ["submitting", "failed"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_fails_the_job(self):
        adapter = ScriptedAdapter(submits=[KeyError("id")])
        orchestrator = orchestrator_for(adapter)
        job = make_job()

        await orchestrator.submit(job).wait()

        assert job.status == JobStatus.FAILED
        assert job.last_error.kind == "internal"
        assert "KeyError" in job.last_error.message

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        adapter = ScriptedAdapter()
        orchestrator = orchestrator_for(adapter)
        breaker = orchestrator.breaker("vercel")
        for _ in range(breaker.failure_threshold):
            breaker.record_failure()
        job = make_job()

        await orchestrator.submit(job).wait()

        assert job.status == JobStatus.FAILED
        assert job.last_error.kind == "circuit_open"
        assert adapter.submit_calls == 0

    @pytest.mark.asyncio
    async def test_only_queued_jobs_are_accepted(self):
        orchestrator = orchestrator_for(ScriptedAdapter())
        job = make_job()
        job.status = JobStatus.FAILED
        with pytest.raises(ValidationError):
            orchestrator.submit(job)

    @pytest.mark.asyncio
    async def test_unregistered_platform(self):
        orchestrator = orchestrator_for(ScriptedAdapter())
        with pytest.raises(ValidationError, match="netlify"):
            orchestrator.submit(make_job(platform="netlify"))


class TestPolling:
    """Polling until a terminal provider state or the deadline."""

    @pytest.mark.asyncio
    async def test_poll_delays_follow_backoff(self):
        clock = FakeClock()
        sleep = FakeSleep(clock)
        adapter = ScriptedAdapter(states=[
            building("QUEUED"),
            building(),
            building(),
            ProviderState(ProviderStatus.READY, url="https://done.app", raw_state="READY"),
        ])
        orchestrator = orchestrator_for(adapter, clock=clock, sleep=sleep)
        job = make_job()

        await orchestrator.submit(job).wait()

        assert sleep.calls == [2.0, 3.0, 4.5, 6.75]
        assert job.url == "https://done.app"
        logs = [e.data["message"] for e in orchestrator.channel.history(job.id) if e.type == EventTypes.LOG]
        assert "Provider state: QUEUED" in logs
        assert logs.count("Provider state: BUILDING") == 1

    @pytest.mark.asyncio
    async def test_deadline_times_out(self):
        clock = FakeClock()
        adapter = ScriptedAdapter(states=[building()])
        orchestrator = orchestrator_for(adapter, clock=clock, poll=PollSettings(timeout=300.0))
        job = make_job()

        await orchestrator.submit(job).wait()

        assert job.status == JobStatus.TIMED_OUT
        assert job.last_error.kind == "timeout"
        assert "Vercel dashboard" in job.last_error.message
        assert job.url is None
        assert clock.now == pytest.approx(1300.0)

    @pytest.mark.asyncio
    async def test_provider_error_fails_with_provider_message(self):
        adapter = ScriptedAdapter(states=[
            building(),
            ProviderState(ProviderStatus.ERROR, message="Command \"npm run build\" exited with 1", raw_state="ERROR"),
        ])
        orchestrator = orchestrator_for(adapter)
        job = make_job()

        await orchestrator.submit(job).wait()

        assert job.status == JobStatus.FAILED
        assert job.last_error.kind == "provider"
        assert "npm run build" in job.last_error.message

    @pytest.mark.asyncio
    async def test_provider_cancel_is_a_failure(self):
        adapter = ScriptedAdapter(states=[ProviderState(ProviderStatus.CANCELED, raw_state="CANCELED")])
        orchestrator = orchestrator_for(adapter)
        job = make_job()

        await orchestrator.submit(job).wait()

        assert job.status == JobStatus.FAILED
        assert job.last_error.message

    @pytest.mark.asyncio
    async def test_transient_poll_errors_are_retried(self):
        adapter = ScriptedAdapter(states=[
            TransientNetworkError("timeout"),
            ProviderState(ProviderStatus.READY, raw_state="READY"),
        ])
        orchestrator = orchestrator_for(adapter)
        job = make_job()

        await orchestrator.submit(job).wait()

        assert job.status == JobStatus.SUCCEEDED
        assert job.attempts == 2
        # no URL from the provider: fall back to the submission preview URL
        assert job.url == "https://preview.example.app"

    @pytest.mark.asyncio
    async def test_permanent_poll_error_fails(self):
        adapter = ScriptedAdapter(states=[AuthError("token revoked")])
        orchestrator = orchestrator_for(adapter)
        job = make_job()

        await orchestrator.submit(job).wait()

        assert job.status == JobStatus.FAILED
        assert job.last_error.kind == "auth"

    @pytest.mark.asyncio
    async def test_terminal_state_is_entered_exactly_once(self):
        adapter = ScriptedAdapter(states=[building(), ProviderState(ProviderStatus.READY, raw_state="READY")])
        orchestrator = orchestrator_for(adapter)
        job = make_job()

        await orchestrator.submit(job).wait()
        orchestrator.cancel(job.id)
        await asyncio.sleep(0)

        terminal = [e for e in orchestrator.channel.history(job.id) if e.is_terminal_status]
        assert len(terminal) == 1
        assert job.status == JobStatus.SUCCEEDED


class TestCancellation:
    """Cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        adapter = ScriptedAdapter()
        orchestrator = orchestrator_for(adapter)
        job = make_job()

        handle = orchestrator.submit(job)
        assert orchestrator.cancel(job.id) is True
        await handle.wait()

        assert job.status == JobStatus.CANCELED
        assert adapter.submit_calls == 0
        assert statuses(orchestrator, job) == ["canceled"]

    @pytest.mark.asyncio
    async def test_cancel_while_polling(self):
        adapter = ScriptedAdapter(states=[building()])
        orchestrator = orchestrator_for(adapter, sleep=blocking_sleep)
        job = make_job()

        handle = orchestrator.submit(job)
        await wait_for_status(job, JobStatus.POLLING)
        assert orchestrator.cancel(job.id) is True
        await handle.wait()

        assert job.status == JobStatus.CANCELED
        assert job.last_error.kind == "canceled"
        assert adapter.canceled == ["dep-1"]
        assert adapter.query_calls == 0

    @pytest.mark.asyncio
    async def test_cancel_during_retry_backoff(self):
        adapter = ScriptedAdapter(submits=[TransientNetworkError("503")])
        orchestrator = orchestrator_for(adapter, sleep=blocking_sleep)
        job = make_job()

        handle = orchestrator.submit(job)
        for _ in range(100):
            if adapter.submit_calls:
                break
            await asyncio.sleep(0)
        orchestrator.cancel(job.id)
        await handle.wait()

        assert job.status == JobStatus.CANCELED
        assert adapter.submit_calls == 1

    @pytest.mark.asyncio
    async def test_remote_cancel_failure_is_tolerated(self):
        class NoCancel(ScriptedAdapter):
            async def cancel(self, deployment_id):
                raise SendItError("cannot cancel")

        orchestrator = orchestrator_for(NoCancel(states=[building()]), sleep=blocking_sleep)
        job = make_job()
        handle = orchestrator.submit(job)
        await wait_for_status(job, JobStatus.POLLING)
        orchestrator.cancel(job.id)
        await handle.wait()

        assert job.status == JobStatus.CANCELED

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self):
        orchestrator = orchestrator_for(ScriptedAdapter())
        job = make_job()
        await orchestrator.submit(job).wait()
        updated_at = job.updated_at

        assert orchestrator.cancel(job.id) is False
        assert orchestrator.cancel(job.id) is False
        assert orchestrator.cancel("j-unknown") is False
        assert job.status == JobStatus.SUCCEEDED
        assert job.updated_at == updated_at

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_jobs(self):
        orchestrator = orchestrator_for(ScriptedAdapter(states=[building()]), sleep=blocking_sleep)
        jobs = [make_job(repo=f"acme/app{n}") for n in range(3)]
        for job in jobs:
            orchestrator.submit(job)
        await asyncio.sleep(0)

        await orchestrator.shutdown()

        assert all(job.status == JobStatus.CANCELED for job in jobs)


class TestRetention:
    """Finished jobs are kept only up to the retention cap."""

    @pytest.mark.asyncio
    async def test_only_newest_finished_jobs_are_kept(self):
        orchestrator = orchestrator_for(ScriptedAdapter(), retained_jobs=2)
        jobs = [make_job(repo=f"acme/app{n}") for n in range(4)]
        for job in jobs:
            await orchestrator.submit(job).wait()

        assert [h.id for h in orchestrator.handles()] == [jobs[2].id, jobs[3].id]
        assert orchestrator.get(jobs[0].id) is None
        assert orchestrator.channel.history(jobs[0].id) == []
        assert orchestrator.cancel(jobs[0].id) is False
        assert statuses(orchestrator, jobs[3])[-1] == "succeeded"

    @pytest.mark.asyncio
    async def test_running_jobs_are_never_forgotten(self):
        orchestrator = orchestrator_for(ScriptedAdapter(states=[building()]), sleep=blocking_sleep, retained_jobs=0)
        handle = orchestrator.submit(make_job())
        await asyncio.sleep(0)
        assert orchestrator.get(handle.id) is handle

        orchestrator.cancel(handle.id)
        job = await handle.wait()

        assert job.status == JobStatus.CANCELED
        assert orchestrator.get(handle.id) is None
        assert orchestrator.channel.history(handle.id) == []
