"""
Per-platform variant descriptors.

Each hosting platform gets one statically defined PlatformVariant carrying
the configuration fields it honours, the options it needs and its own
project-name rule. variant_for() maps a Platform to its descriptor.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Pattern, Tuple

from .errors import ValidationError
from .models import DeploymentConfig, Platform

logger = logging.getLogger(__name__)

COMMON_FIELDS = ("env_vars", "project_name", "branch", "framework", "build_command", "root_directory", "environment")


@dataclass(frozen=True)
class PlatformVariant:
    """Static description of one hosting platform."""
    platform: Platform
    display_name: str
    dashboard_url: str
    name_pattern: Pattern
    name_max_length: int
    supported_fields: Tuple[str, ...] = COMMON_FIELDS
    required_options: Tuple[str, ...] = ()
    optional_options: Tuple[str, ...] = ()
    option_defaults: Dict[str, str] = field(default_factory=dict)

    def validate(self, config: DeploymentConfig, defaults: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """
        Validate a configuration against this platform's rules.

        Args:
            config: Caller-supplied configuration
            defaults: Option values taken from the environment

        Returns:
            Resolved platform options (caller values override defaults)

        Raises:
            ValidationError: On an unsupported field, bad project name or missing option
        """
        for name, value in config.to_dict(redact=False).items():
            if name == "options" or name in self.supported_fields:
                continue
            if value not in (None, "", {}):
                raise ValidationError(f"{self.display_name} does not support '{name}'")

        if config.project_name:
            if len(config.project_name) > self.name_max_length:
                raise ValidationError(
                    f"{self.display_name} project name must be {self.name_max_length} characters or less"
                )
            if not self.name_pattern.match(config.project_name):
                raise ValidationError(
                    f"Invalid {self.display_name} project name '{config.project_name}': "
                    "use lowercase letters, numbers and hyphens"
                )

        known = set(self.required_options) | set(self.optional_options)
        options = dict(self.option_defaults)
        for key, value in (defaults or {}).items():
            if key in known and value:
                options[key] = value
        for key, value in config.options.items():
            if key not in known:
                raise ValidationError(f"Unknown {self.display_name} option '{key}'")
            options[key] = value

        missing = [key for key in self.required_options if not options.get(key)]
        if missing:
            raise ValidationError(f"{self.display_name} requires option(s): {', '.join(missing)}")

        logger.debug(f"Validated {self.platform.value} config with options {sorted(options)}")
        return options


_LOWER_HYPHEN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")
_LOWER_HYPHEN_DOT = re.compile(r"^[a-z0-9]([a-z0-9._-]*[a-z0-9])?$")

VARIANTS: Dict[Platform, PlatformVariant] = {
    Platform.VERCEL: PlatformVariant(
        platform=Platform.VERCEL,
        display_name="Vercel",
        dashboard_url="https://vercel.com/dashboard",
        name_pattern=_LOWER_HYPHEN_DOT,
        name_max_length=100,
        optional_options=("team_id",),
    ),
    Platform.NETLIFY: PlatformVariant(
        platform=Platform.NETLIFY,
        display_name="Netlify",
        dashboard_url="https://app.netlify.com",
        name_pattern=_LOWER_HYPHEN,
        name_max_length=63,
        optional_options=("publish_directory",),
    ),
    Platform.CLOUDFLARE: PlatformVariant(
        platform=Platform.CLOUDFLARE,
        display_name="Cloudflare Pages",
        dashboard_url="https://dash.cloudflare.com",
        name_pattern=_LOWER_HYPHEN,
        name_max_length=58,
        required_options=("account_id",),
        optional_options=("output_directory",),
    ),
    Platform.AWS: PlatformVariant(
        platform=Platform.AWS,
        display_name="AWS Amplify",
        dashboard_url="https://console.aws.amazon.com/amplify/home",
        name_pattern=_LOWER_HYPHEN,
        name_max_length=255,
        required_options=("app_id",),
    ),
    Platform.AZURE: PlatformVariant(
        platform=Platform.AZURE,
        display_name="Azure Static Web Apps",
        dashboard_url="https://portal.azure.com",
        name_pattern=_LOWER_HYPHEN,
        name_max_length=40,
        required_options=("subscription_id", "resource_group"),
        optional_options=("location", "output_location"),
        option_defaults={"location": "westus2"},
    ),
    Platform.GCP: PlatformVariant(
        platform=Platform.GCP,
        display_name="Google Cloud Run",
        dashboard_url="https://console.cloud.google.com/run",
        name_pattern=_LOWER_HYPHEN,
        name_max_length=49,
        supported_fields=COMMON_FIELDS + ("start_command",),
        required_options=("gcp_project",),
        optional_options=("gcp_region",),
        option_defaults={"gcp_region": "us-central1"},
    ),
}


def variant_for(platform) -> PlatformVariant:
    """Look up the descriptor for a platform (enum or name)."""
    return VARIANTS[Platform.parse(platform)]


def list_platforms() -> Dict[str, str]:
    """Platform value to display name, in catalog order."""
    return {p.value: v.display_name for p, v in VARIANTS.items()}
