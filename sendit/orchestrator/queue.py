"""
Deployment queue: admission control in front of the orchestrator.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from ..ids import new_job_id
from ..models import DeploymentJob, JobStatus
from ..platforms import variant_for
from ..repo import parse_repo
from .orchestrator import DeploymentOrchestrator, JobHandle

logger = logging.getLogger(__name__)

LogicalKey = Tuple[str, str, str]


@dataclass
class Admission:
    """Outcome of DeploymentQueue.enqueue()."""
    accepted: bool
    handle: Optional[JobHandle] = None
    reason: Optional[str] = None


def logical_key(job: DeploymentJob) -> LogicalKey:
    """Identity used for at-most-one active deployment: repo, platform, environment."""
    return parse_repo(job.repo_url).key, job.platform.value, job.config.environment


class DeploymentQueue:
    """
    Admits jobs and hands them straight to the orchestrator.

    A job is rejected while another job with the same logical key is still
    running. Admission is synchronous, so two enqueues can never both pass
    the check for the same key.
    """

    def __init__(self, orchestrator: DeploymentOrchestrator, option_defaults: Optional[Mapping[str, str]] = None):
        self.orchestrator = orchestrator
        if option_defaults is None:
            option_defaults = orchestrator.settings.platform_options
        self.option_defaults = dict(option_defaults)
        self._by_key: Dict[LogicalKey, JobHandle] = {}

    def enqueue(self, job: DeploymentJob) -> Admission:
        """
        Admit a job.

        Args:
            job: New job in Queued state

        Returns:
            Admission (accepted with a handle, or rejected with a reason)

        Raises:
            ValidationError: If the repository URL or platform configuration is invalid
        """
        if job.status != JobStatus.QUEUED:
            return Admission(
                accepted=False,
                reason=f"Job {job.id} is {job.status.value}; create a new job to redeploy",
            )

        key = logical_key(job)
        job.config.options = variant_for(job.platform).validate(job.config, self.option_defaults)

        for finished in [k for k, h in self._by_key.items() if h.job.is_terminal]:
            del self._by_key[finished]
        current = self._by_key.get(key)
        if current is not None:
            reason = (
                f"Deployment {current.id} of {key[0]} to {key[1]} ({key[2]}) "
                f"is already {current.status.value}"
            )
            logger.info(f"Rejected job for {key}: {reason}")
            return Admission(accepted=False, reason=reason)

        job.repo_path = job.repo_path or parse_repo(job.repo_url).virtual_path
        if job.id is None:
            job.id = new_job_id()
        handle = self.orchestrator.submit(job)
        self._by_key[key] = handle
        return Admission(accepted=True, handle=handle)

    def list_active(self) -> List[JobHandle]:
        """Handles of jobs that have not reached a terminal state."""
        return [h for h in self._by_key.values() if not h.job.is_terminal]

    def get(self, job_id: str) -> Optional[JobHandle]:
        return self.orchestrator.get(job_id)

    def cancel(self, job_id: str) -> bool:
        return self.orchestrator.cancel(job_id)
