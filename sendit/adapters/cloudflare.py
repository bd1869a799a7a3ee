"""
Cloudflare Pages adapter.

Deployment ids are composed as account/project/deployment since the
status endpoint is scoped by account and project.
"""

import logging
from typing import Any, Dict

from ..errors import NotFound
from ..models import DeploymentJob, Platform, ProviderState, ProviderStatus, SubmitResult
from .base import HttpAdapter, project_name, repo_of, require_option, split_compound_id

logger = logging.getLogger(__name__)

STAGE_STATES = {
    "SUCCESS": ProviderStatus.READY,
    "FAILURE": ProviderStatus.ERROR,
    "CANCELED": ProviderStatus.CANCELED,
    "ACTIVE": ProviderStatus.BUILDING,
    "IDLE": ProviderStatus.QUEUED,
}


def _result(body: Dict[str, Any]) -> Dict[str, Any]:
    return body.get("result") or {}


class CloudflareAdapter(HttpAdapter):
    platform = Platform.CLOUDFLARE
    token_service = "cloudflare"
    service_name = "Cloudflare"

    def _project_body(self, job: DeploymentJob, name: str) -> Dict[str, Any]:
        config = job.config
        ref = repo_of(job)
        branch = config.branch or "main"
        env = {key: {"type": "secret_text", "value": value} for key, value in config.env_vars.items()}
        return {
            "name": name,
            "production_branch": branch,
            "source": {
                "type": "github",
                "config": {
                    "owner": ref.owner,
                    "repo_name": ref.name,
                    "production_branch": branch,
                    "deployments_enabled": True,
                },
            },
            "build_config": {
                "build_command": config.build_command or "npm run build",
                "destination_dir": config.options.get("output_directory") or "dist",
                "root_dir": config.root_directory or "",
            },
            "deployment_configs": {
                "production": {"env_vars": env},
                "preview": {"env_vars": env},
            },
        }

    async def ensure_project(self, job: DeploymentJob, account: str, name: str) -> Dict[str, Any]:
        base = f"/accounts/{account}/pages/projects"
        try:
            return _result(await self._request("GET", f"{base}/{name}"))
        except NotFound:
            logger.info(f"Creating Cloudflare Pages project {name}")
        return _result(await self._request("POST", base, json=self._project_body(job, name)))

    async def submit(self, job: DeploymentJob) -> SubmitResult:
        account = require_option(job, "account_id")
        name = project_name(job, self.variant.name_max_length)
        await self.ensure_project(job, account, name)
        data = _result(await self._request(
            "POST",
            f"/accounts/{account}/pages/projects/{name}/deployments",
            json={"branch": job.config.branch or "main"},
        ))
        logger.info(f"Cloudflare Pages deployment {data.get('id')} created for {name}")
        return SubmitResult(deployment_id=f"{account}/{name}/{data['id']}", url=data.get("url"))

    async def query_status(self, deployment_id: str) -> ProviderState:
        account, name, dep_id = split_compound_id(deployment_id, 3)
        data = _result(await self._request("GET", f"/accounts/{account}/pages/projects/{name}/deployments/{dep_id}"))
        stage = data.get("latest_stage") or {}
        stage_name = stage.get("name") or ""
        raw = (stage.get("status") or "").upper()

        if raw == "SUCCESS" and stage_name != "deploy":
            # an earlier stage finished; the deployment is still in progress
            status = ProviderStatus.BUILDING
        else:
            status = STAGE_STATES.get(raw, ProviderStatus.BUILDING)

        message = None
        if status in (ProviderStatus.ERROR, ProviderStatus.CANCELED):
            message = f"Stage '{stage_name}' {raw.lower()}"
        return ProviderState(status=status, url=data.get("url"), message=message, raw_state=f"{stage_name}:{raw}")

    async def cancel(self, deployment_id: str) -> None:
        account, name, dep_id = split_compound_id(deployment_id, 3)
        await self._request("POST", f"/accounts/{account}/pages/projects/{name}/deployments/{dep_id}/cancel")
        logger.info(f"Canceled Cloudflare Pages deployment {dep_id}")
