"""
Azure Static Web Apps adapter (ARM REST API).

Deployment ids are composed as subscription/resource_group/site.
"""

import logging
from typing import Any, Dict

from ..models import DeploymentJob, Platform, ProviderState, ProviderStatus, SubmitResult
from .base import HttpAdapter, map_state, project_name, repo_of, require_option, split_compound_id

logger = logging.getLogger(__name__)

API_VERSION = "2022-03-01"

PROVISIONING_STATES = {
    "ACCEPTED": ProviderStatus.QUEUED,
    "CREATING": ProviderStatus.BUILDING,
    "UPDATING": ProviderStatus.BUILDING,
    "INPROGRESS": ProviderStatus.BUILDING,
    "SUCCEEDED": ProviderStatus.READY,
    "FAILED": ProviderStatus.ERROR,
    "CANCELED": ProviderStatus.CANCELED,
}


class AzureStaticWebAppsAdapter(HttpAdapter):
    platform = Platform.AZURE
    token_service = "azure"
    service_name = "Azure"

    def _site_path(self, subscription: str, group: str, name: str) -> str:
        return (
            f"/subscriptions/{subscription}/resourceGroups/{group}"
            f"/providers/Microsoft.Web/staticSites/{name}"
        )

    def _site_body(self, job: DeploymentJob) -> Dict[str, Any]:
        config = job.config
        properties: Dict[str, Any] = {
            "repositoryUrl": repo_of(job).url,
            "branch": config.branch or "main",
            "buildProperties": {
                "appLocation": config.root_directory or "/",
                "outputLocation": config.options.get("output_location") or "dist",
                "appBuildCommand": config.build_command or "npm run build",
            },
        }
        github_token = self.tokens.get("github")
        if github_token:
            properties["repositoryToken"] = github_token
        return {
            "location": config.options.get("location") or "westus2",
            "sku": {"name": "Free", "tier": "Free"},
            "properties": properties,
        }

    async def submit(self, job: DeploymentJob) -> SubmitResult:
        subscription = require_option(job, "subscription_id")
        group = require_option(job, "resource_group")
        name = project_name(job, self.variant.name_max_length)
        path = self._site_path(subscription, group, name)
        params = {"api-version": API_VERSION}

        site = await self._request("PUT", path, json=self._site_body(job), params=params)
        if job.config.env_vars:
            await self._request(
                "PUT", f"{path}/config/appsettings", json={"properties": dict(job.config.env_vars)}, params=params
            )
        logger.info(f"Azure Static Web App {name} submitted in {group}")
        state = site.get("properties", {}).get("provisioningState")
        return SubmitResult(deployment_id=f"{subscription}/{group}/{name}", ready_state=state)

    async def query_status(self, deployment_id: str) -> ProviderState:
        subscription, group, name = split_compound_id(deployment_id, 3)
        data = await self._request(
            "GET", self._site_path(subscription, group, name), params={"api-version": API_VERSION}
        )
        properties = data.get("properties", {})
        raw = properties.get("provisioningState")
        status = map_state(PROVISIONING_STATES, raw)
        hostname = properties.get("defaultHostname")
        message = None
        if status in (ProviderStatus.ERROR, ProviderStatus.CANCELED):
            message = f"Static Web App {name} provisioning {str(raw).lower()}"
        return ProviderState(
            status=status,
            url=f"https://{hostname}" if hostname else None,
            message=message,
            raw_state=raw,
        )
