"""
Data models for jobs, configurations and framework analyses.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import ValidationError
from .redact import redact_env

ENV_KEY_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
ENV_KEY_MAX_LENGTH = 255


class Platform(Enum):
    """Hosting platforms a job can target."""
    VERCEL = "vercel"
    NETLIFY = "netlify"
    CLOUDFLARE = "cloudflare"
    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"

    @classmethod
    def parse(cls, value: Union[str, "Platform"]) -> "Platform":
        if isinstance(value, Platform):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValidationError(f"Unsupported platform '{value}'. Must be one of: {choices}")


class JobStatus(Enum):
    """Job lifecycle states."""
    QUEUED = "queued"
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    TIMED_OUT = "timed_out"


TERMINAL_STATUSES = frozenset({
    JobStatus.SUCCEEDED,
    JobStatus.FAILED,
    JobStatus.CANCELED,
    JobStatus.TIMED_OUT,
})

ACTIVE_STATUSES = frozenset({JobStatus.SUBMITTING, JobStatus.POLLING})

ALLOWED_TRANSITIONS: Dict[JobStatus, List[JobStatus]] = {
    JobStatus.QUEUED: [JobStatus.SUBMITTING, JobStatus.CANCELED],
    JobStatus.SUBMITTING: [JobStatus.POLLING, JobStatus.FAILED, JobStatus.CANCELED],
    JobStatus.POLLING: [JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.TIMED_OUT, JobStatus.CANCELED],
    JobStatus.SUCCEEDED: [],
    JobStatus.FAILED: [],
    JobStatus.CANCELED: [],
    JobStatus.TIMED_OUT: [],
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Check if transition from current to target status is valid."""
    return target in ALLOWED_TRANSITIONS.get(current, [])


class ProviderStatus(Enum):
    """Canonical provider-side deployment state."""
    QUEUED = "queued"
    BUILDING = "building"
    READY = "ready"
    ERROR = "error"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (ProviderStatus.READY, ProviderStatus.ERROR, ProviderStatus.CANCELED)


@dataclass
class ProviderState:
    """One observation of a deployment's state at the provider."""
    status: ProviderStatus
    url: Optional[str] = None
    message: Optional[str] = None
    raw_state: Optional[str] = None


@dataclass
class SubmitResult:
    """What a provider returned when a deployment was created."""
    deployment_id: str
    url: Optional[str] = None
    ready_state: Optional[str] = None


@dataclass
class ErrorInfo:
    """Last observed error classification and message."""
    kind: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "message": self.message}


def validate_env_vars(env_vars: Dict[str, str]) -> Dict[str, str]:
    """
    Validate environment variable names.

    Args:
        env_vars: Mapping of name to value

    Returns:
        The same mapping with values coerced to str

    Raises:
        ValidationError: If any name is invalid
    """
    validated = {}
    for key, value in (env_vars or {}).items():
        if not key:
            raise ValidationError("Environment variable key is required")
        if len(key) > ENV_KEY_MAX_LENGTH:
            raise ValidationError(f"Environment variable key must be {ENV_KEY_MAX_LENGTH} characters or less")
        if not ENV_KEY_PATTERN.match(key):
            raise ValidationError(
                f"Invalid environment variable key '{key}': must start with an uppercase letter or "
                "underscore and contain only uppercase letters, numbers, and underscores"
            )
        validated[key] = "" if value is None else str(value)
    return validated


@dataclass
class DeploymentConfig:
    """Caller-supplied deployment configuration."""
    env_vars: Dict[str, str] = field(default_factory=dict)
    project_name: Optional[str] = None
    branch: Optional[str] = None
    framework: Optional[str] = None
    build_command: Optional[str] = None
    start_command: Optional[str] = None
    root_directory: Optional[str] = None
    environment: str = "production"
    # platform-specific options (account ids, resource groups, ...)
    options: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.env_vars = validate_env_vars(self.env_vars)

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        return {
            "env_vars": redact_env(self.env_vars) if redact else dict(self.env_vars),
            "project_name": self.project_name,
            "branch": self.branch,
            "framework": self.framework,
            "build_command": self.build_command,
            "start_command": self.start_command,
            "root_directory": self.root_directory,
            "environment": self.environment,
            "options": dict(self.options),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeploymentJob:
    """The unit of work tracked by the orchestrator."""
    repo_url: str
    platform: Platform
    config: DeploymentConfig = field(default_factory=DeploymentConfig)
    repo_path: Optional[str] = None
    id: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    deployment_id: Optional[str] = None
    url: Optional[str] = None
    last_error: Optional[ErrorInfo] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        self.platform = Platform.parse(self.platform)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "repo_url": self.repo_url,
            "repo_path": self.repo_path,
            "platform": self.platform.value,
            "config": self.config.to_dict(),
            "status": self.status.value,
            "attempts": self.attempts,
            "deployment_id": self.deployment_id,
            "url": self.url,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class FrameworkAnalysis:
    """Framework classification of one repository (also the cache entry)."""
    key: str
    framework: str
    scores: Dict[str, int]
    cached_at: float = field(default_factory=time.time)
    ttl: float = 24 * 60 * 60
    manifest_path: Optional[str] = None

    def is_fresh(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - self.cached_at < self.ttl

    @property
    def best_platform(self) -> str:
        return max(self.scores.items(), key=lambda item: item[1])[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "framework": self.framework,
            "scores": dict(self.scores),
            "manifest_path": self.manifest_path,
        }
