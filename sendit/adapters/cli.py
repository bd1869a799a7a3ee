"""
Vercel adapter backed by the `vercel` command line tool.

The CLI prints free-form text, so the deployment is recovered through an
explicit three-step pipeline: URL pattern match on stdout, then an API
lookup, then a placeholder pointing at the dashboard.
"""

import asyncio
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..collaborators import TokenStore
from ..errors import ProviderTerminalError, SendItError, ValidationError
from ..models import DeploymentJob, Platform, ProviderState, ProviderStatus, SubmitResult
from ..redact import scrub
from .base import PlatformAdapter, project_name
from .vercel import VercelAdapter

logger = logging.getLogger(__name__)

URL_PATTERNS = [
    re.compile(r"https://[\w-]+\.vercel\.app"),
    re.compile(r"https://[\w-]+-\w+\.vercel\.app"),
    re.compile(r"https://[\w-]+-[\w-]+\.vercel\.app"),
]

PLACEHOLDER_ID = "cli-deployment"
# deployment known only by the URL the CLI printed
URL_ID_PREFIX = "url:"
DASHBOARD_URL = "https://vercel.com/dashboard"

Runner = Callable[[List[str], Optional[str], Dict[str, str]], Awaitable[Dict[str, Any]]]


async def run_command(cmd: List[str], cwd: Optional[str], env: Dict[str, str]) -> Dict[str, Any]:
    """Run a command and return its exit code and decoded output."""
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )
    except FileNotFoundError as e:
        raise ValidationError(f"Cannot run {cmd[0]}: {e}")
    stdout, stderr = await process.communicate()
    return {
        "returncode": process.returncode,
        "stdout": stdout.decode(errors="replace") if stdout else "",
        "stderr": stderr.decode(errors="replace") if stderr else "",
    }


def extract_url(output: str) -> Optional[str]:
    """Last deployment URL printed by the CLI, trying each pattern in turn."""
    for pattern in URL_PATTERNS:
        matches = pattern.findall(output or "")
        if matches:
            return matches[-1]
    return None


class VercelCliAdapter(PlatformAdapter):
    platform = Platform.VERCEL

    def __init__(self, tokens: TokenStore, api: VercelAdapter, runner: Runner = run_command):
        self.tokens = tokens
        self.api = api
        self.runner = runner

    def command(self, job: DeploymentJob) -> List[str]:
        """CLI invocation; environment values never appear on the command line."""
        base = ["vercel"] if shutil.which("vercel") else ["npx", "--yes", "vercel"]
        args = ["--yes", "--name", project_name(job, self.variant.name_max_length)]
        if job.config.environment == "production":
            args.insert(0, "--prod")
        return base + args

    def _workdir(self, job: DeploymentJob) -> str:
        path = job.repo_path
        if not path or not Path(path).is_dir():
            raise ValidationError("The Vercel CLI needs a local checkout; set repo_path to a directory")
        if job.config.root_directory:
            path = str(Path(path) / job.config.root_directory)
        return path

    async def submit(self, job: DeploymentJob) -> SubmitResult:
        token = self.tokens.require("vercel")
        workdir = self._workdir(job)
        name = project_name(job, self.variant.name_max_length)
        if job.config.env_vars:
            # the remote build reads project env vars; the local build reads the process env
            await self.api.ensure_project(job, name)
            await self.api.set_env(job, name)

        env = dict(os.environ)
        env.update(job.config.env_vars)
        env["VERCEL_TOKEN"] = token
        cmd = self.command(job)

        logger.info(f"Running {cmd[0]} deployment for {job.repo_url}")
        result = await self.runner(cmd, workdir, env)
        secrets = [token] + list(job.config.env_vars.values())
        if result["returncode"] != 0:
            detail = scrub((result.get("stderr") or result.get("stdout") or "").strip()[-500:], secrets)
            raise ProviderTerminalError(f"vercel exited with code {result['returncode']}: {detail}")

        return await self.recover_deployment(result.get("stdout", ""), name)

    async def recover_deployment(self, output: str, project: str) -> SubmitResult:
        """Pattern match, then API lookup, then placeholder."""
        for step in (self._from_output, self._from_api):
            found = await step(output, project)
            if found is not None:
                return found
        logger.warning("Could not determine the Vercel deployment; check the dashboard")
        return SubmitResult(deployment_id=PLACEHOLDER_ID, url=DASHBOARD_URL, ready_state="READY")

    async def _from_output(self, output: str, project: str) -> Optional[SubmitResult]:
        url = extract_url(output)
        if url is None:
            return None
        try:
            return await self.api.find_by_url(url)
        except SendItError as e:
            logger.warning(f"Lookup of {url} failed ({e.message}); reporting the CLI result")
        return SubmitResult(deployment_id=f"{URL_ID_PREFIX}{url}", url=url, ready_state="READY")

    async def _from_api(self, output: str, project: str) -> Optional[SubmitResult]:
        try:
            return await self.api.latest_deployment(project)
        except SendItError as e:
            logger.debug(f"Latest deployment lookup for {project} failed: {e.message}")
            return None

    async def query_status(self, deployment_id: str) -> ProviderState:
        # the CLI exited 0 for both sentinels, so the deployment is live
        if deployment_id == PLACEHOLDER_ID:
            return ProviderState(
                status=ProviderStatus.READY,
                url=DASHBOARD_URL,
                message="Deployment URL unknown; check the Vercel dashboard",
                raw_state="READY",
            )
        if deployment_id.startswith(URL_ID_PREFIX):
            return ProviderState(
                status=ProviderStatus.READY,
                url=deployment_id[len(URL_ID_PREFIX):],
                message="Deployed with the Vercel CLI",
                raw_state="READY",
            )
        return await self.api.query_status(deployment_id)

    async def cancel(self, deployment_id: str) -> None:
        if deployment_id == PLACEHOLDER_ID or deployment_id.startswith(URL_ID_PREFIX):
            raise SendItError("Cannot cancel a deployment without a Vercel deployment id")
        await self.api.cancel(deployment_id)
