"""
Deployment orchestrator: drives jobs through submission, polling,
retry with backoff and cancellation.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..adapters.base import PlatformAdapter
from ..adapters.registry import AdapterRegistry
from ..config import Settings
from ..errors import CircuitOpenError, SendItError, ValidationError, is_transient
from ..ids import new_job_id
from ..models import (
    DeploymentJob,
    ErrorInfo,
    JobStatus,
    ProviderStatus,
    SubmitResult,
    TERMINAL_STATUSES,
    can_transition,
)
from .backoff import BackoffPolicy, CancelToken, Sleep, sleep_or_cancel
from .breaker import CircuitBreaker
from .events import EventChannel, EventTypes

logger = logging.getLogger(__name__)


@dataclass
class JobHandle:
    """Caller's handle on a submitted job."""
    job: DeploymentJob
    task: "asyncio.Task"
    token: CancelToken

    @property
    def id(self) -> str:
        return self.job.id

    @property
    def status(self) -> JobStatus:
        return self.job.status

    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> None:
        self.token.cancel()

    async def wait(self) -> DeploymentJob:
        """Wait for the job to finish and return it."""
        await asyncio.shield(self.task)
        return self.job


class DeploymentOrchestrator:
    """Owns job lifecycle and is the only writer of DeploymentJob state."""

    def __init__(
        self,
        registry: AdapterRegistry,
        settings: Optional[Settings] = None,
        channel: Optional[EventChannel] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        cancel_remote: bool = True,
    ):
        self.registry = registry
        self.settings = settings or Settings()
        self.channel = channel or EventChannel()
        self.retry_policy = BackoffPolicy.for_retries(self.settings.retry)
        self.poll_policy = BackoffPolicy.for_polling(self.settings.poll)
        self.cancel_remote = cancel_remote
        self._sleep = sleep
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._handles: Dict[str, JobHandle] = {}
        self._finished: "OrderedDict[str, None]" = OrderedDict()

    # ------------------------------------------------------------------ API

    def submit(self, job: DeploymentJob) -> JobHandle:
        """
        Start driving a queued job; must be called from a running event loop.

        Args:
            job: Job in Queued state

        Returns:
            JobHandle

        Raises:
            ValidationError: If the job is not Queued or no adapter exists for its platform
        """
        if job.status != JobStatus.QUEUED:
            raise ValidationError(f"Job {job.id} is {job.status.value}; only queued jobs can be submitted")
        adapter = self.registry.get(job.platform)
        if job.id is None:
            job.id = new_job_id()

        token = CancelToken()
        task = asyncio.ensure_future(self._run(job, adapter, token))
        handle = JobHandle(job=job, task=task, token=token)
        self._handles[job.id] = handle
        logger.info(f"Job {job.id} accepted for {job.platform.value}: {job.repo_url}")
        return handle

    def cancel(self, job_id: str) -> bool:
        """
        Request cancellation; a no-op for unknown or terminal jobs.

        Returns:
            True if a cancellation was requested
        """
        handle = self._handles.get(job_id)
        if handle is None or handle.job.is_terminal:
            return False
        if not handle.token.is_canceled:
            logger.info(f"Cancel requested for job {job_id}")
            handle.token.cancel()
        return True

    def get(self, job_id: str) -> Optional[JobHandle]:
        return self._handles.get(job_id)

    def handles(self) -> List[JobHandle]:
        return list(self._handles.values())

    async def shutdown(self) -> None:
        """Cancel every running job and wait for all of them to settle."""
        for handle in self._handles.values():
            if not handle.job.is_terminal:
                handle.token.cancel()
        tasks = [h.task for h in self._handles.values()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _retire(self, job: DeploymentJob) -> None:
        """Keep the newest finished jobs and forget the rest."""
        if not job.is_terminal:
            return
        self._finished[job.id] = None
        while len(self._finished) > max(0, self.settings.retained_jobs):
            old_id, _ = self._finished.popitem(last=False)
            self._handles.pop(old_id, None)
            self.channel.forget(old_id)
            logger.debug(f"Forgot finished job {old_id}")

    def breaker(self, platform: str) -> CircuitBreaker:
        if platform not in self._breakers:
            self._breakers[platform] = CircuitBreaker(platform, clock=self._clock)
        return self._breakers[platform]

    # ---------------------------------------------------------- transitions

    def _transition(self, job: DeploymentJob, target: JobStatus, message: str) -> None:
        previous = job.status
        if not can_transition(previous, target):
            raise ValueError(f"Invalid transition for job {job.id}: {previous.value} -> {target.value}")
        job.status = target
        job.touch()
        logger.info(f"Job {job.id}: {previous.value} -> {target.value} ({message})")

        data = {
            "status": target.value,
            "previous": previous.value,
            "message": message,
            "terminal": target in TERMINAL_STATUSES,
            "attempts": job.attempts,
        }
        if job.deployment_id:
            data["deployment_id"] = job.deployment_id
        if job.url:
            data["url"] = job.url
        if job.last_error and target in (JobStatus.FAILED, JobStatus.TIMED_OUT, JobStatus.CANCELED):
            data["error"] = job.last_error.to_dict()
        self.channel.emit(job.id, EventTypes.STATUS, data)

    def _log(self, job: DeploymentJob, message: str, **extra) -> None:
        self.channel.emit(job.id, EventTypes.LOG, {"message": message, **extra})

    def _fail(self, job: DeploymentJob, error: ErrorInfo) -> None:
        job.last_error = error
        self._transition(job, JobStatus.FAILED, error.message)

    def _mark_canceled(self, job: DeploymentJob, message: str = "Canceled by user") -> None:
        job.last_error = ErrorInfo(kind="canceled", message=message)
        self._transition(job, JobStatus.CANCELED, message)

    # ------------------------------------------------------------- running

    async def _run(self, job: DeploymentJob, adapter: PlatformAdapter, token: CancelToken) -> None:
        try:
            if token.is_canceled:
                self._mark_canceled(job, "Canceled before submission")
                return
            self._transition(job, JobStatus.SUBMITTING, f"Submitting to {adapter.variant.display_name}")

            result = await self._submit_with_retry(job, adapter, token)
            if result is None:
                return
            job.deployment_id = result.deployment_id
            self._transition(job, JobStatus.POLLING, f"Deployment {result.deployment_id} created")
            if result.url:
                self._log(job, f"Preview URL: {result.url}", url=result.url)

            await self._poll_until_terminal(job, adapter, token, result)
        except asyncio.CancelledError:
            if not job.is_terminal:
                self._mark_canceled(job, "Orchestrator shut down")
            raise
        except Exception as e:
            logger.exception(f"Job {job.id} crashed")
            if not job.is_terminal:
                message = e.message if isinstance(e, SendItError) else f"{type(e).__name__}: {e}"
                self._fail(job, ErrorInfo(kind=getattr(e, "kind", "internal"), message=message or "Unexpected error"))
        finally:
            self._retire(job)

    async def _submit_with_retry(
        self, job: DeploymentJob, adapter: PlatformAdapter, token: CancelToken
    ) -> Optional[SubmitResult]:
        """Returns the submission result, or None once the job reached a terminal state."""
        max_attempts = max(1, self.settings.retry.max_attempts)
        breaker = self.breaker(job.platform.value)

        for attempt in range(max_attempts):
            if token.is_canceled:
                self._mark_canceled(job)
                return None
            try:
                breaker.check()
                job.attempts += 1
                result = await adapter.submit(job)
            except SendItError as e:
                job.last_error = ErrorInfo(kind=e.kind, message=e.message)
                if not is_transient(e):
                    if not isinstance(e, CircuitOpenError):
                        breaker.record_success()
                    logger.error(f"Job {job.id}: submission failed permanently ({e.kind}): {e.message}")
                    self._fail(job, job.last_error)
                    return None

                breaker.record_failure()
                if attempt + 1 >= max_attempts:
                    self._fail(job, ErrorInfo(
                        kind=e.kind,
                        message=f"Submission failed after {max_attempts} attempts: {e.message}",
                    ))
                    return None

                delay = self.retry_policy.delay(attempt)
                logger.warning(
                    f"Job {job.id}: submit attempt {attempt + 1}/{max_attempts} failed ({e.message}); "
                    f"retrying in {delay:.1f}s"
                )
                self._log(job, f"Submission attempt {attempt + 1} failed, retrying in {delay:.1f}s", delay=delay)
                if await sleep_or_cancel(delay, token, self._sleep):
                    self._mark_canceled(job)
                    return None
                continue

            breaker.record_success()
            return result
        return None

    async def _poll_until_terminal(
        self, job: DeploymentJob, adapter: PlatformAdapter, token: CancelToken, submitted: SubmitResult
    ) -> None:
        timeout = self.settings.poll.timeout
        deadline = self._clock() + timeout
        polls = 0
        last_raw = None

        while True:
            remaining = deadline - self._clock()
            delay = max(0.0, min(self.poll_policy.delay(polls), remaining))
            polls += 1
            if await sleep_or_cancel(delay, token, self._sleep):
                self._mark_canceled(job)
                await self._cancel_remote(job, adapter)
                return

            try:
                state = await adapter.query_status(job.deployment_id)
            except SendItError as e:
                if not is_transient(e):
                    self._fail(job, ErrorInfo(kind=e.kind, message=e.message))
                    return
                job.attempts += 1
                job.last_error = ErrorInfo(kind=e.kind, message=e.message)
                logger.warning(f"Job {job.id}: status poll {polls} failed ({e.message}); will retry")
            else:
                if state.raw_state != last_raw:
                    last_raw = state.raw_state
                    self._log(job, f"Provider state: {state.raw_state or state.status.value}",
                              provider_status=state.status.value)

                if state.status == ProviderStatus.READY:
                    job.url = state.url or submitted.url or adapter.variant.dashboard_url
                    job.last_error = None
                    self._transition(job, JobStatus.SUCCEEDED, f"Deployed to {job.url}")
                    return
                if state.status in (ProviderStatus.ERROR, ProviderStatus.CANCELED):
                    message = state.message or f"Deployment {state.status.value} at provider"
                    self._fail(job, ErrorInfo(kind="provider", message=message))
                    return

            if self._clock() >= deadline:
                job.last_error = ErrorInfo(
                    kind="timeout",
                    message=(
                        f"No terminal state after {timeout:.0f}s; the deployment may still finish, "
                        f"check the {adapter.variant.display_name} dashboard"
                    ),
                )
                self._transition(job, JobStatus.TIMED_OUT, job.last_error.message)
                return

    async def _cancel_remote(self, job: DeploymentJob, adapter: PlatformAdapter) -> None:
        if not (self.cancel_remote and job.deployment_id):
            return
        try:
            await adapter.cancel(job.deployment_id)
        except SendItError as e:
            logger.warning(f"Job {job.id}: provider-side cancel failed: {e.message}")
