"""
GitHub contents/repository client used by the framework analyzer.
"""

import asyncio
import base64
import binascii
import logging
from typing import Any, Dict, Optional

import requests

from ..errors import (
    ManifestParseError,
    NotFound,
    RateLimitExceeded,
    error_from_request_exception,
    error_from_response,
)
from ..repo import RepoRef
from .ratelimit import RateLimiter

logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github.v3+json"


class GitHubClient:
    """Thin async wrapper over the GitHub REST API; every call is rate-limit guarded."""

    def __init__(
        self,
        limiter: RateLimiter,
        api_url: str = "https://api.github.com",
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.limiter = limiter
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": GITHUB_ACCEPT, "User-Agent": "sendit"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    async def _get(self, path: str) -> Dict[str, Any]:
        if not self.limiter.can_call():
            wait = self.limiter.time_until_reset()
            raise RateLimitExceeded(f"GitHub rate limit exceeded, resets in {wait:.0f}s", retry_after=wait)

        url = f"{self.api_url}{path}"
        logger.debug(f"GET {url}")
        try:
            response = await asyncio.to_thread(self.session.get, url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise error_from_request_exception(e, "GitHub")

        self.limiter.record_headers(response.headers)
        if not response.ok:
            raise error_from_response(response, "GitHub")
        try:
            return response.json()
        except ValueError:
            raise ManifestParseError(f"GitHub returned a non-JSON body for {path}")

    async def get_repo(self, ref: RepoRef) -> Dict[str, Any]:
        """Repository metadata; NotFound when the repository does not exist."""
        return await self._get(f"/repos/{ref.owner}/{ref.name}")

    async def get_file(self, ref: RepoRef, path: str) -> str:
        """
        Fetch and decode one file from the default branch.

        Args:
            ref: Repository
            path: File path inside the repository

        Returns:
            Decoded file text

        Raises:
            NotFound: If the path is missing or is not a file
            ManifestParseError: If the content cannot be decoded
        """
        body = await self._get(f"/repos/{ref.owner}/{ref.name}/contents/{path}")
        if not isinstance(body, dict) or body.get("type") != "file":
            raise NotFound(f"{path} is not a file in {ref.slug}")

        content = body.get("content") or ""
        if body.get("encoding") != "base64":
            return content
        try:
            return base64.b64decode(content.replace("\n", "")).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ManifestParseError(f"Could not decode {path} in {ref.slug}: {e}")
