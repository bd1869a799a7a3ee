"""
Interfaces for the token store and analysis history collaborators, plus
the environment-backed and in-memory implementations used by the CLI,
the API and the tests.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .errors import AuthError

logger = logging.getLogger(__name__)

# Variables consulted for each service, first hit wins
TOKEN_ENV_VARS = {
    "github": ("SENDIT_GITHUB_TOKEN", "GITHUB_TOKEN"),
    "vercel": ("SENDIT_VERCEL_TOKEN", "VERCEL_TOKEN"),
    "netlify": ("SENDIT_NETLIFY_TOKEN", "NETLIFY_AUTH_TOKEN"),
    "cloudflare": ("SENDIT_CLOUDFLARE_TOKEN", "CLOUDFLARE_API_TOKEN"),
    "azure": ("SENDIT_AZURE_TOKEN", "AZURE_ACCESS_TOKEN"),
    "gcp": ("SENDIT_GCP_TOKEN", "GCP_ACCESS_TOKEN"),
}


class TokenStore(ABC):
    """Key-value secret store keyed by service name ("github", "vercel", ...)."""

    @abstractmethod
    def get(self, service: str) -> Optional[str]:
        """Return the stored token or None."""
        pass

    @abstractmethod
    def set(self, service: str, token: str) -> None:
        pass

    @abstractmethod
    def oauth(self, service: str) -> str:
        """
        Run an interactive authorization flow for a service.

        Returns:
            The new token

        Raises:
            AuthError: If the flow is unavailable or fails
        """
        pass

    def require(self, service: str) -> str:
        """Return the token for a service, raising AuthError when absent."""
        token = self.get(service)
        if not token:
            names = " or ".join(TOKEN_ENV_VARS.get(service, ()))
            hint = f" (set {names})" if names else ""
            raise AuthError(f"No {service} token configured{hint}")
        return token


class EnvTokenStore(TokenStore):
    """Reads tokens from environment variables; set() only lasts for the process."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ
        self._overrides: Dict[str, str] = {}

    def get(self, service: str) -> Optional[str]:
        if service in self._overrides:
            return self._overrides[service]
        for var in TOKEN_ENV_VARS.get(service, ()):
            value = self._environ.get(var)
            if value:
                return value
        return None

    def set(self, service: str, token: str) -> None:
        self._overrides[service] = token

    def oauth(self, service: str) -> str:
        raise AuthError(f"OAuth is not available for {service} from the command line; set a token instead")


class InMemoryTokenStore(TokenStore):

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self._tokens = dict(tokens or {})

    def get(self, service: str) -> Optional[str]:
        return self._tokens.get(service)

    def set(self, service: str, token: str) -> None:
        self._tokens[service] = token

    def oauth(self, service: str) -> str:
        token = self._tokens.get(service)
        if not token:
            raise AuthError(f"OAuth flow for {service} did not return a token")
        return token


class AnalysisStore(ABC):
    """Persistence for historical framework analyses."""

    @abstractmethod
    def save_analysis(self, record: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def get_analyses(self) -> List[Dict[str, Any]]:
        """All saved records, newest first."""
        pass

    @abstractmethod
    def get_analysis_by_url(self, url: str) -> Optional[Dict[str, Any]]:
        """Most recent record for a repository URL, or None."""
        pass


class InMemoryAnalysisStore(AnalysisStore):
    """Process-local analysis history."""

    def __init__(self):
        self._records: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def save_analysis(self, record: Dict[str, Any]) -> None:
        entry = dict(record)
        entry.setdefault("analyzed_at", datetime.now(timezone.utc).isoformat())
        with self._lock:
            self._records.append(entry)
        logger.debug(f"Saved analysis for {entry.get('repo_url')}")

    def get_analyses(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in reversed(self._records)]

    def get_analysis_by_url(self, url: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for record in reversed(self._records):
                if record.get("repo_url") == url:
                    return dict(record)
        return None
