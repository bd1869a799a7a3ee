"""
Runtime configuration read from environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from .errors import ValidationError


@dataclass
class RetrySettings:
    """Backoff schedule for submission retries (seconds)."""
    max_attempts: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0


@dataclass
class PollSettings:
    """Backoff schedule and wall-clock deadline for status polling (seconds)."""
    initial_delay: float = 2.0
    multiplier: float = 1.5
    max_delay: float = 10.0
    timeout: float = 300.0


# Platform-specific options that can be supplied through the environment
OPTION_ENV_VARS = {
    "account_id": "CLOUDFLARE_ACCOUNT_ID",
    "subscription_id": "AZURE_SUBSCRIPTION_ID",
    "resource_group": "AZURE_RESOURCE_GROUP",
    "gcp_project": "GCP_PROJECT_ID",
    "gcp_region": "GCP_REGION",
    "app_id": "AWS_AMPLIFY_APP_ID",
}


@dataclass
class Settings:
    home: Path = Path(".sendit")
    github_api_url: str = "https://api.github.com"
    vercel_api_url: str = "https://api.vercel.com"
    netlify_api_url: str = "https://api.netlify.com"
    cloudflare_api_url: str = "https://api.cloudflare.com/client/v4"
    azure_api_url: str = "https://management.azure.com"
    gcp_cloudbuild_url: str = "https://cloudbuild.googleapis.com"
    gcp_run_url: str = "https://run.googleapis.com"
    aws_region: str = "us-east-1"
    cache_ttl: float = 24 * 60 * 60
    request_timeout: float = 30.0
    retry: RetrySettings = field(default_factory=RetrySettings)
    poll: PollSettings = field(default_factory=PollSettings)
    platform_options: Dict[str, str] = field(default_factory=dict)
    # finished jobs kept in memory for status and event replay
    retained_jobs: int = 100

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Settings with defaults for anything unset

        Raises:
            ValidationError: If a numeric variable does not parse
        """
        env = os.environ if environ is None else environ

        def text(name: str, default: str) -> str:
            return env.get(name) or default

        def number(name: str, default: float) -> float:
            raw = env.get(name)
            if raw is None or raw == "":
                return default
            try:
                return float(raw)
            except ValueError:
                raise ValidationError(f"{name} must be a number, got {raw!r}")

        retry = RetrySettings(
            max_attempts=int(number("SENDIT_RETRY_MAX_ATTEMPTS", 3)),
            initial_delay=number("SENDIT_RETRY_INITIAL_DELAY", 1.0),
            multiplier=number("SENDIT_RETRY_MULTIPLIER", 2.0),
            max_delay=number("SENDIT_RETRY_MAX_DELAY", 30.0),
        )
        poll = PollSettings(
            initial_delay=number("SENDIT_POLL_INITIAL_DELAY", 2.0),
            multiplier=number("SENDIT_POLL_MULTIPLIER", 1.5),
            max_delay=number("SENDIT_POLL_MAX_DELAY", 10.0),
            timeout=number("SENDIT_POLL_TIMEOUT", 300.0),
        )
        options = {key: env[var] for key, var in OPTION_ENV_VARS.items() if env.get(var)}

        return cls(
            home=Path(text("SENDIT_HOME", ".sendit")).resolve(),
            github_api_url=text("SENDIT_GITHUB_API_URL", cls.github_api_url).rstrip("/"),
            vercel_api_url=text("SENDIT_VERCEL_API_URL", cls.vercel_api_url).rstrip("/"),
            netlify_api_url=text("SENDIT_NETLIFY_API_URL", cls.netlify_api_url).rstrip("/"),
            cloudflare_api_url=text("SENDIT_CLOUDFLARE_API_URL", cls.cloudflare_api_url).rstrip("/"),
            azure_api_url=text("SENDIT_AZURE_API_URL", cls.azure_api_url).rstrip("/"),
            gcp_cloudbuild_url=text("SENDIT_GCP_CLOUDBUILD_URL", cls.gcp_cloudbuild_url).rstrip("/"),
            gcp_run_url=text("SENDIT_GCP_RUN_URL", cls.gcp_run_url).rstrip("/"),
            aws_region=text("SENDIT_AWS_REGION", cls.aws_region),
            cache_ttl=number("SENDIT_CACHE_TTL", cls.cache_ttl),
            request_timeout=number("SENDIT_REQUEST_TIMEOUT", cls.request_timeout),
            retry=retry,
            poll=poll,
            platform_options=options,
            retained_jobs=int(number("SENDIT_RETAINED_JOBS", cls.retained_jobs)),
        )
