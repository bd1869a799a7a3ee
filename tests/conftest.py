"""Shared fakes for the sendit test suite."""

import asyncio
import base64
import json
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from sendit.adapters.base import PlatformAdapter
from sendit.config import PollSettings, RetrySettings, Settings
from sendit.models import DeploymentConfig, DeploymentJob, Platform, ProviderState, ProviderStatus, SubmitResult


def make_response(status: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None,
                  text: Optional[str] = None) -> requests.Response:
    """Build a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status
    if text is not None:
        response._content = text.encode("utf-8")
    elif body is not None:
        response._content = json.dumps(body).encode("utf-8")
    else:
        response._content = b""
    response.encoding = "utf-8"
    response.headers = CaseInsensitiveDict(headers or {})
    response.reason = "OK" if status < 400 else "Error"
    response.url = "https://api.test/"
    return response


def file_body(text: str) -> Dict[str, Any]:
    """GitHub contents API payload for a file."""
    return {
        "type": "file",
        "encoding": "base64",
        "content": base64.b64encode(text.encode("utf-8")).decode("ascii"),
    }


def github_session(files: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None,
                   repos: Optional[Dict[str, Dict[str, Any]]] = None) -> MagicMock:
    """
    Mock requests.Session answering GitHub contents and repo lookups.

    Args:
        files: path inside the repository -> file text
        headers: headers attached to every response
        repos: "owner/name" -> repository metadata
    """
    files = files or {}
    repos = repos or {}
    session = MagicMock()
    session.headers = {}

    def get(url, timeout=None):
        for path, text in files.items():
            if url.endswith(f"/contents/{path}"):
                return make_response(200, file_body(text), headers=headers)
        for slug, info in repos.items():
            if url.endswith(f"/repos/{slug}"):
                return make_response(200, info, headers=headers)
        return make_response(404, {"message": "Not Found"}, headers=headers)

    session.get.side_effect = get
    return session


def request_session(*responses: requests.Response) -> MagicMock:
    """Mock session whose request() returns the given responses in order."""
    session = MagicMock()
    session.request.side_effect = list(responses)
    return session


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested delays and moves a FakeClock forward instead of waiting."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)
        await asyncio.sleep(0)


async def blocking_sleep(delay: float) -> None:
    """A sleep that only ends when cancelled."""
    await asyncio.Event().wait()


class ScriptedAdapter(PlatformAdapter):
    """
    Adapter replaying scripted outcomes.

    Each script entry is either a value to return or an exception to raise;
    the last entry repeats forever.
    """

    def __init__(self, submits=None, states=None, platform: Platform = Platform.VERCEL):
        self.platform = platform
        self.submits = list(submits or [SubmitResult("dep-1", url="https://preview.example.app")])
        self.states = list(states or [
            ProviderState(ProviderStatus.READY, url="https://app.example.app", raw_state="READY"),
        ])
        self.submit_calls = 0
        self.query_calls = 0
        self.canceled: List[str] = []

    @staticmethod
    def _next(script):
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def submit(self, job):
        self.submit_calls += 1
        return self._next(self.submits)

    async def query_status(self, deployment_id):
        self.query_calls += 1
        return self._next(self.states)

    async def cancel(self, deployment_id):
        self.canceled.append(deployment_id)


def building(raw: str = "BUILDING") -> ProviderState:
    return ProviderState(ProviderStatus.BUILDING, raw_state=raw)


def make_job(repo: str = "https://github.com/acme/shop", platform: str = "vercel", **config) -> DeploymentJob:
    return DeploymentJob(repo_url=repo, platform=platform, config=DeploymentConfig(**config))


def fast_settings(tmp_path=None, **poll) -> Settings:
    settings = Settings(
        retry=RetrySettings(max_attempts=3, initial_delay=1.0, multiplier=2.0, max_delay=30.0),
        poll=PollSettings(**poll),
    )
    if tmp_path is not None:
        settings.home = tmp_path
    return settings


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)
