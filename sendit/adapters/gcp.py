"""
Google Cloud adapter: Cloud Build builds the container and deploys it to Cloud Run.

Deployment ids are composed as project/region/service/build_id.
"""

import logging
import shlex
from typing import Any, Dict, List, Optional

import requests

from ..collaborators import TokenStore
from ..models import DeploymentJob, Platform, ProviderState, ProviderStatus, SubmitResult
from .base import HttpAdapter, map_state, project_name, repo_of, require_option, split_compound_id

logger = logging.getLogger(__name__)

BUILD_STATES = {
    "STATUS_UNKNOWN": ProviderStatus.QUEUED,
    "PENDING": ProviderStatus.QUEUED,
    "QUEUED": ProviderStatus.QUEUED,
    "WORKING": ProviderStatus.BUILDING,
    "SUCCESS": ProviderStatus.READY,
    "FAILURE": ProviderStatus.ERROR,
    "INTERNAL_ERROR": ProviderStatus.ERROR,
    "TIMEOUT": ProviderStatus.ERROR,
    "EXPIRED": ProviderStatus.ERROR,
    "CANCELLED": ProviderStatus.CANCELED,
}


def env_flag(env: Dict[str, str]) -> Optional[str]:
    """--set-env-vars value using a custom delimiter so values may contain commas."""
    if not env:
        return None
    return "^##^" + "##".join(f"{key}={value}" for key, value in env.items())


class CloudRunAdapter(HttpAdapter):
    platform = Platform.GCP
    token_service = "gcp"
    service_name = "Google Cloud"

    def __init__(
        self,
        api_url: str,
        tokens: TokenStore,
        run_url: str = "https://run.googleapis.com",
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        super().__init__(api_url, tokens, session=session, timeout=timeout)
        self.run_url = run_url.rstrip("/")

    def _build_body(self, job: DeploymentJob, project: str, region: str, service: str) -> Dict[str, Any]:
        config = job.config
        image = f"gcr.io/{project}/{service}"
        deploy_args: List[str] = [
            "run", "deploy", service,
            "--image", image,
            "--region", region,
            "--platform", "managed",
            "--allow-unauthenticated",
        ]
        env = env_flag(config.env_vars)
        if env:
            deploy_args += ["--set-env-vars", env]
        if config.start_command:
            command, *args = shlex.split(config.start_command)
            deploy_args += ["--command", command]
            if args:
                deploy_args += ["--args", ",".join(args)]

        build_dir = config.root_directory or "."
        return {
            "source": {
                "gitSource": {
                    "url": f"{repo_of(job).url}.git",
                    "revision": config.branch or "main",
                    "dir": build_dir,
                },
            },
            "steps": [
                {"name": "gcr.io/cloud-builders/docker", "args": ["build", "-t", image, "."]},
                {"name": "gcr.io/cloud-builders/docker", "args": ["push", image]},
                {"name": "gcr.io/google.com/cloudsdktool/cloud-sdk", "entrypoint": "gcloud", "args": deploy_args},
            ],
            "images": [image],
        }

    async def submit(self, job: DeploymentJob) -> SubmitResult:
        project = require_option(job, "gcp_project")
        region = job.config.options.get("gcp_region") or "us-central1"
        service = project_name(job, self.variant.name_max_length)

        operation = await self._request(
            "POST", f"/v1/projects/{project}/builds", json=self._build_body(job, project, region, service)
        )
        build = operation.get("metadata", {}).get("build", {})
        build_id = build.get("id")
        logger.info(f"Cloud Build {build_id} started for service {service}")
        return SubmitResult(
            deployment_id=f"{project}/{region}/{service}/{build_id}",
            ready_state=build.get("status"),
        )

    async def service_url(self, project: str, region: str, service: str) -> Optional[str]:
        data = await self._request(
            "GET", f"/v2/projects/{project}/locations/{region}/services/{service}", base=self.run_url
        )
        return data.get("uri")

    async def query_status(self, deployment_id: str) -> ProviderState:
        project, region, service, build_id = split_compound_id(deployment_id, 4)
        data = await self._request("GET", f"/v1/projects/{project}/builds/{build_id}")
        raw = data.get("status")
        status = map_state(BUILD_STATES, raw)

        url = None
        message = None
        if status == ProviderStatus.READY:
            url = await self.service_url(project, region, service)
        elif status in (ProviderStatus.ERROR, ProviderStatus.CANCELED):
            message = data.get("statusDetail") or f"Cloud Build {build_id} {str(raw).lower()}"
        return ProviderState(status=status, url=url, message=message, raw_state=raw)

    async def cancel(self, deployment_id: str) -> None:
        project, _, _, build_id = split_compound_id(deployment_id, 4)
        await self._request("POST", f"/v1/projects/{project}/builds/{build_id}:cancel")
        logger.info(f"Canceled Cloud Build {build_id}")
