"""
Netlify REST API adapter.
"""

import logging
from typing import Any, Dict

from ..errors import NotFound
from ..models import DeploymentJob, Platform, ProviderState, ProviderStatus, SubmitResult
from .base import HttpAdapter, map_state, project_name, repo_of

logger = logging.getLogger(__name__)

DEPLOY_STATES = {
    "NEW": ProviderStatus.QUEUED,
    "PENDING_REVIEW": ProviderStatus.QUEUED,
    "ENQUEUED": ProviderStatus.QUEUED,
    "PREPARING": ProviderStatus.BUILDING,
    "PREPARED": ProviderStatus.BUILDING,
    "BUILDING": ProviderStatus.BUILDING,
    "UPLOADING": ProviderStatus.BUILDING,
    "UPLOADED": ProviderStatus.BUILDING,
    "PROCESSING": ProviderStatus.BUILDING,
    "PROCESSED": ProviderStatus.BUILDING,
    "READY": ProviderStatus.READY,
    "ERROR": ProviderStatus.ERROR,
    "REJECTED": ProviderStatus.ERROR,
    "CANCELED": ProviderStatus.CANCELED,
    "CANCELLED": ProviderStatus.CANCELED,
}


class NetlifyAdapter(HttpAdapter):
    platform = Platform.NETLIFY
    token_service = "netlify"
    service_name = "Netlify"

    def _build_settings(self, job: DeploymentJob) -> Dict[str, Any]:
        config = job.config
        return {
            "cmd": config.build_command or "npm run build",
            "dir": config.options.get("publish_directory") or config.root_directory or "dist",
            "env": dict(config.env_vars),
        }

    async def ensure_site(self, job: DeploymentJob, name: str) -> Dict[str, Any]:
        """Return the site for a name, creating it linked to the repository if missing."""
        settings = self._build_settings(job)
        try:
            site = await self._request("GET", f"/api/v1/sites/{name}.netlify.app")
        except NotFound:
            ref = repo_of(job)
            logger.info(f"Creating Netlify site {name}")
            return await self._request("POST", "/api/v1/sites", json={
                "name": name,
                "repo": {
                    "provider": "github",
                    "repo": ref.slug,
                    "owner": ref.owner,
                    "branch": job.config.branch or "main",
                },
                "build_settings": settings,
            })
        return await self._request("PATCH", f"/api/v1/sites/{site['id']}", json={"build_settings": settings})

    async def submit(self, job: DeploymentJob) -> SubmitResult:
        name = project_name(job, self.variant.name_max_length)
        site = await self.ensure_site(job, name)
        build = await self._request("POST", f"/api/v1/sites/{site['id']}/builds")
        deploy_id = build.get("deploy_id") or build.get("id")
        logger.info(f"Netlify build started for {name}: deploy {deploy_id}")
        return SubmitResult(deployment_id=deploy_id, url=site.get("ssl_url") or site.get("url"))

    async def query_status(self, deployment_id: str) -> ProviderState:
        data = await self._request("GET", f"/api/v1/deploys/{deployment_id}")
        raw = data.get("state")
        return ProviderState(
            status=map_state(DEPLOY_STATES, raw),
            url=data.get("ssl_url") or data.get("deploy_ssl_url") or data.get("url"),
            message=data.get("error_message"),
            raw_state=raw,
        )

    async def cancel(self, deployment_id: str) -> None:
        await self._request("POST", f"/api/v1/deploys/{deployment_id}/cancel")
        logger.info(f"Canceled Netlify deploy {deployment_id}")
