"""
Platform adapter interface and common helpers.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import requests

from ..collaborators import TokenStore
from ..errors import SendItError, ValidationError, error_from_request_exception, error_from_response
from ..models import DeploymentJob, Platform, ProviderState, ProviderStatus, SubmitResult
from ..platforms import PlatformVariant, variant_for
from ..redact import scrub
from ..repo import RepoRef, parse_repo

logger = logging.getLogger(__name__)


class PlatformAdapter(ABC):
    """Translates a deployment job into one provider's API calls."""

    platform: Platform

    @property
    def name(self) -> str:
        return self.__class__.__name__.replace("Adapter", "").lower()

    @property
    def variant(self) -> PlatformVariant:
        return variant_for(self.platform)

    @abstractmethod
    async def submit(self, job: DeploymentJob) -> SubmitResult:
        """
        Create a deployment for the job.

        Args:
            job: Job whose config and repository are deployed

        Returns:
            SubmitResult carrying the provider deployment id

        Raises:
            SendItError: Classified failure (transient ones are retried by the caller)
        """
        pass

    @abstractmethod
    async def query_status(self, deployment_id: str) -> ProviderState:
        """
        Read the provider's current state of a deployment.

        Args:
            deployment_id: Id returned by submit()

        Returns:
            ProviderState mapped to the canonical ProviderStatus
        """
        pass

    async def cancel(self, deployment_id: str) -> None:
        """Ask the provider to stop a deployment."""
        raise SendItError(f"{self.variant.display_name} does not support canceling deployments")


def map_state(mapping: Mapping[str, ProviderStatus], raw: Optional[str]) -> ProviderStatus:
    """Map a provider state string; unknown states count as still building."""
    if raw is None:
        return ProviderStatus.QUEUED
    status = mapping.get(str(raw).upper())
    if status is None:
        logger.debug(f"Unmapped provider state {raw!r}, treating as building")
        return ProviderStatus.BUILDING
    return status


def repo_of(job: DeploymentJob) -> RepoRef:
    return parse_repo(job.repo_url)


def project_name(job: DeploymentJob, max_length: int = 100) -> str:
    """Configured project name, or one derived from the repository name."""
    if job.config.project_name:
        return job.config.project_name
    slug = re.sub(r"[^a-z0-9-]+", "-", repo_of(job).name.lower()).strip("-")
    return (slug[:max_length].rstrip("-")) or "sendit-app"


def require_option(job: DeploymentJob, key: str) -> str:
    value = job.config.options.get(key)
    if not value:
        raise ValidationError(f"Missing required option '{key}' for {job.platform.value}")
    return value


def split_compound_id(deployment_id: str, parts: int) -> list:
    """Split ids of the form a/b/c composed by adapters that need context to poll."""
    pieces = deployment_id.split("/")
    if len(pieces) != parts or not all(pieces):
        raise ValidationError(f"Malformed deployment id: {deployment_id}")
    return pieces


class HttpAdapter(PlatformAdapter):
    """Adapter base for providers with a bearer-token JSON API."""

    token_service: str = ""
    service_name: str = ""

    def __init__(
        self,
        api_url: str,
        tokens: TokenStore,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.tokens = tokens
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": "sendit",
        }

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        base: Optional[str] = None,
    ) -> Any:
        """
        Perform one API call off the event loop and decode the JSON body.

        Raises:
            SendItError: Mapped from the HTTP status or transport failure
        """
        token = self.tokens.require(self.token_service)
        headers = self._headers(token)
        url = f"{base or self.api_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            response = await asyncio.to_thread(
                self.session.request,
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            error = error_from_request_exception(e, self.service_name)
            error.message = scrub(error.message, [token])
            raise error

        if not response.ok:
            error = error_from_response(response, self.service_name)
            error.message = scrub(error.message, [token])
            raise error
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise SendItError(f"{self.service_name} returned a non-JSON response for {path}")
