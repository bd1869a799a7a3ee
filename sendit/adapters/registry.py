"""
Adapter registry mapping each platform to the adapter that deploys to it.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from ..collaborators import TokenStore
from ..config import Settings
from ..errors import ValidationError
from ..models import Platform
from .aws import AmplifyAdapter
from .azure import AzureStaticWebAppsAdapter
from .base import PlatformAdapter
from .cli import VercelCliAdapter
from .cloudflare import CloudflareAdapter
from .gcp import CloudRunAdapter
from .netlify import NetlifyAdapter
from .vercel import VercelAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Platform -> adapter lookup."""

    def __init__(self, adapters: Optional[List[PlatformAdapter]] = None):
        self._adapters: Dict[Platform, PlatformAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: PlatformAdapter, platform: Optional[Platform] = None) -> None:
        """Register an adapter, replacing any previous one for the platform."""
        target = platform or adapter.platform
        self._adapters[target] = adapter
        logger.debug(f"Registered {adapter.__class__.__name__} for {target.value}")

    def get(self, platform) -> PlatformAdapter:
        """
        Resolve the adapter for a platform.

        Raises:
            ValidationError: If no adapter is registered for it
        """
        target = Platform.parse(platform)
        adapter = self._adapters.get(target)
        if adapter is None:
            raise ValidationError(f"No adapter registered for platform '{target.value}'")
        return adapter

    def platforms(self) -> List[str]:
        return [p.value for p in self._adapters]


def build_registry(
    settings: Settings,
    tokens: TokenStore,
    use_cli: bool = False,
    session: Optional[requests.Session] = None,
    amplify_client: Optional[Any] = None,
) -> AdapterRegistry:
    """
    Create the default registry with one adapter per platform.

    Args:
        settings: API base URLs, region and timeout
        tokens: Token store handed to every HTTP adapter
        use_cli: Deploy to Vercel through the vercel CLI instead of the REST API
        session: Shared requests session (one per adapter when omitted)
        amplify_client: Preconfigured boto3 Amplify client

    Returns:
        AdapterRegistry
    """
    timeout = settings.request_timeout
    vercel = VercelAdapter(settings.vercel_api_url, tokens, session=session, timeout=timeout)
    registry = AdapterRegistry([
        vercel,
        NetlifyAdapter(settings.netlify_api_url, tokens, session=session, timeout=timeout),
        CloudflareAdapter(settings.cloudflare_api_url, tokens, session=session, timeout=timeout),
        AmplifyAdapter(region=settings.aws_region, client=amplify_client),
        AzureStaticWebAppsAdapter(settings.azure_api_url, tokens, session=session, timeout=timeout),
        CloudRunAdapter(
            settings.gcp_cloudbuild_url,
            tokens,
            run_url=settings.gcp_run_url,
            session=session,
            timeout=timeout,
        ),
    ])
    if use_cli:
        registry.register(VercelCliAdapter(tokens, vercel))
    return registry
