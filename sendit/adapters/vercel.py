"""
Vercel REST API adapter.
"""

import logging
from typing import Any, Dict, List, Optional

from ..errors import NotFound
from ..models import DeploymentJob, Platform, ProviderState, ProviderStatus, SubmitResult
from .base import HttpAdapter, map_state, project_name, repo_of

logger = logging.getLogger(__name__)

READY_STATES = {
    "QUEUED": ProviderStatus.QUEUED,
    "INITIALIZING": ProviderStatus.QUEUED,
    "BUILDING": ProviderStatus.BUILDING,
    "READY": ProviderStatus.READY,
    "ERROR": ProviderStatus.ERROR,
    "CANCELED": ProviderStatus.CANCELED,
}

# analyzer framework name -> Vercel framework preset
FRAMEWORK_PRESETS = {
    "next.js": "nextjs",
    "vite": "vite",
    "create-react-app": "create-react-app",
    "vue": "vue",
    "angular": "angular",
    "svelte": "svelte",
    "remix": "remix",
    "astro": "astro",
    "gatsby": "gatsby",
}


def https(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    return url if url.startswith("http") else f"https://{url}"


class VercelAdapter(HttpAdapter):
    platform = Platform.VERCEL
    token_service = "vercel"
    service_name = "Vercel"

    def _params(self, job: Optional[DeploymentJob] = None) -> Optional[Dict[str, str]]:
        team_id = job.config.options.get("team_id") if job else None
        return {"teamId": team_id} if team_id else None

    async def ensure_project(self, job: DeploymentJob, name: str) -> Dict[str, Any]:
        """Return the project, creating it linked to the repository if missing."""
        params = self._params(job)
        try:
            return await self._request("GET", f"/v9/projects/{name}", params=params)
        except NotFound:
            logger.info(f"Creating Vercel project {name}")

        body: Dict[str, Any] = {
            "name": name,
            "gitRepository": {"type": "github", "repo": repo_of(job).slug},
        }
        framework = FRAMEWORK_PRESETS.get(job.config.framework or "", job.config.framework)
        if framework:
            body["framework"] = framework
        if job.config.root_directory:
            body["rootDirectory"] = job.config.root_directory
        return await self._request("POST", "/v9/projects", json=body, params=params)

    @staticmethod
    def _env_entries(env_vars: Dict[str, str]) -> List[Dict[str, Any]]:
        return [
            {"key": key, "value": value, "type": "encrypted", "target": ["production", "preview"]}
            for key, value in env_vars.items()
        ]

    async def set_env(self, job: DeploymentJob, name: str) -> None:
        """Create or overwrite the job's environment variables on the project."""
        params = {**(self._params(job) or {}), "upsert": "true"}
        await self._request(
            "POST", f"/v10/projects/{name}/env", json=self._env_entries(job.config.env_vars), params=params
        )
        logger.info(f"Stored {len(job.config.env_vars)} environment variables on Vercel project {name}")

    def _deployment_body(self, job: DeploymentJob, name: str) -> Dict[str, Any]:
        config = job.config
        settings: Dict[str, Any] = {}
        framework = FRAMEWORK_PRESETS.get(config.framework or "", config.framework)
        if framework:
            settings["framework"] = framework
        if config.build_command:
            settings["buildCommand"] = config.build_command
        if config.root_directory:
            settings["rootDirectory"] = config.root_directory

        body: Dict[str, Any] = {
            "name": name,
            "gitSource": {
                "type": "github",
                "repo": repo_of(job).slug,
                "ref": config.branch or "main",
            },
            "env": self._env_entries(config.env_vars),
            "projectSettings": settings,
        }
        if config.environment == "production":
            body["target"] = "production"
        return body

    async def submit(self, job: DeploymentJob) -> SubmitResult:
        name = project_name(job, self.variant.name_max_length)
        await self.ensure_project(job, name)
        data = await self._request(
            "POST", "/v13/deployments", json=self._deployment_body(job, name), params=self._params(job)
        )
        logger.info(f"Vercel deployment {data.get('id')} created for {name}")
        return SubmitResult(
            deployment_id=data["id"],
            url=https(data.get("url")),
            ready_state=data.get("readyState"),
        )

    def _state(self, data: Dict[str, Any]) -> ProviderState:
        raw = data.get("readyState") or data.get("status")
        aliases = data.get("alias") or []
        return ProviderState(
            status=map_state(READY_STATES, raw),
            url=https(aliases[0] if aliases else data.get("url")),
            message=data.get("errorMessage"),
            raw_state=raw,
        )

    async def query_status(self, deployment_id: str) -> ProviderState:
        data = await self._request("GET", f"/v13/deployments/{deployment_id}")
        return self._state(data)

    async def cancel(self, deployment_id: str) -> None:
        await self._request("PATCH", f"/v12/deployments/{deployment_id}/cancel")
        logger.info(f"Canceled Vercel deployment {deployment_id}")

    async def find_by_url(self, url: str) -> SubmitResult:
        """Look up a deployment by its URL (host part)."""
        host = url.split("://", 1)[-1].rstrip("/")
        data = await self._request("GET", f"/v13/deployments/{host}")
        return SubmitResult(deployment_id=data["id"], url=https(data.get("url")) or https(host),
                            ready_state=data.get("readyState"))

    async def latest_deployment(self, project: str) -> Optional[SubmitResult]:
        """Most recent deployment of a project, or None when it has none."""
        data = await self._request("GET", "/v6/deployments", params={"projectId": project, "limit": 1})
        deployments = data.get("deployments") or []
        if not deployments:
            return None
        latest = deployments[0]
        return SubmitResult(
            deployment_id=latest.get("uid") or latest.get("id"),
            url=https(latest.get("url")),
            ready_state=latest.get("readyState") or latest.get("state"),
        )
