"""
AWS Amplify adapter (boto3).

Deployment ids are composed as app_id/branch/job_id.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import NotFound, error_from_boto
from ..models import DeploymentJob, Platform, ProviderState, ProviderStatus, SubmitResult
from .base import PlatformAdapter, map_state, require_option, split_compound_id

logger = logging.getLogger(__name__)

JOB_STATES = {
    "CREATED": ProviderStatus.QUEUED,
    "PENDING": ProviderStatus.QUEUED,
    "PROVISIONING": ProviderStatus.QUEUED,
    "RUNNING": ProviderStatus.BUILDING,
    "CANCELLING": ProviderStatus.BUILDING,
    "SUCCEED": ProviderStatus.READY,
    "FAILED": ProviderStatus.ERROR,
    "CANCELLED": ProviderStatus.CANCELED,
}


class AmplifyAdapter(PlatformAdapter):
    platform = Platform.AWS

    def __init__(self, region: str = "us-east-1", client: Optional[Any] = None):
        self.region = region
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("amplify", region_name=self.region)
        return self._client

    async def _call(self, operation: Callable[..., Dict[str, Any]], **kwargs) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(operation, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise error_from_boto(e, "Amplify")

    async def ensure_branch(self, app_id: str, branch: str, env: Dict[str, str]) -> None:
        """Create the branch if needed and push environment variables onto it."""
        try:
            await self._call(self.client.get_branch, appId=app_id, branchName=branch)
        except NotFound:
            logger.info(f"Creating Amplify branch {branch} on app {app_id}")
            await self._call(
                self.client.create_branch,
                appId=app_id,
                branchName=branch,
                stage="PRODUCTION",
                environmentVariables=env,
            )
            return
        if env:
            await self._call(self.client.update_branch, appId=app_id, branchName=branch, environmentVariables=env)

    async def submit(self, job: DeploymentJob) -> SubmitResult:
        app_id = require_option(job, "app_id")
        branch = job.config.branch or "main"
        await self.ensure_branch(app_id, branch, dict(job.config.env_vars))
        data = await self._call(self.client.start_job, appId=app_id, branchName=branch, jobType="RELEASE")
        job_id = data["jobSummary"]["jobId"]
        logger.info(f"Amplify job {job_id} started for {app_id}/{branch}")
        return SubmitResult(deployment_id=f"{app_id}/{branch}/{job_id}", ready_state=data["jobSummary"].get("status"))

    async def query_status(self, deployment_id: str) -> ProviderState:
        app_id, branch, job_id = split_compound_id(deployment_id, 3)
        data = await self._call(self.client.get_job, appId=app_id, branchName=branch, jobId=job_id)
        summary = data.get("job", {}).get("summary", {})
        raw = summary.get("status")
        status = map_state(JOB_STATES, raw)

        url = None
        message = None
        if status == ProviderStatus.READY:
            app = await self._call(self.client.get_app, appId=app_id)
            domain = app.get("app", {}).get("defaultDomain")
            if domain:
                url = f"https://{branch}.{domain}"
        elif status in (ProviderStatus.ERROR, ProviderStatus.CANCELED):
            message = f"Amplify job {job_id} {str(raw).lower()}"
        return ProviderState(status=status, url=url, message=message, raw_state=raw)

    async def cancel(self, deployment_id: str) -> None:
        app_id, branch, job_id = split_compound_id(deployment_id, 3)
        await self._call(self.client.stop_job, appId=app_id, branchName=branch, jobId=job_id)
        logger.info(f"Stopped Amplify job {job_id}")
