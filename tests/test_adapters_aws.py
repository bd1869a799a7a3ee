from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from sendit.adapters import AmplifyAdapter
from sendit.errors import TransientNetworkError, ValidationError
from sendit.models import ProviderStatus

from conftest import make_job


def client_error(code, operation="GetBranch", status=400):
    return ClientError(
        {"Error": {"Code": code, "Message": f"{code} raised"}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


def amplify_job(**config):
    config.setdefault("options", {"app_id": "d1abc"})
    return make_job(platform="aws", **config)


class TestAmplifyAdapter:
    """AWS Amplify adapter over a mocked boto3 client."""

    @pytest.mark.asyncio
    async def test_submit_creates_branch_and_starts_release(self):
        client = MagicMock()
        client.get_branch.side_effect = client_error("NotFoundException", status=404)
        client.start_job.return_value = {"jobSummary": {"jobId": "7", "status": "PENDING"}}
        adapter = AmplifyAdapter(client=client)

        result = await adapter.submit(amplify_job(branch="release", env_vars={"API_URL": "x"}))

        assert result.deployment_id == "d1abc/release/7"
        assert result.ready_state == "PENDING"
        client.create_branch.assert_called_once_with(
            appId="d1abc", branchName="release", stage="PRODUCTION", environmentVariables={"API_URL": "x"},
        )
        client.start_job.assert_called_once_with(appId="d1abc", branchName="release", jobType="RELEASE")

    @pytest.mark.asyncio
    async def test_existing_branch_gets_env_update(self):
        client = MagicMock()
        client.get_branch.return_value = {"branch": {"branchName": "main"}}
        client.start_job.return_value = {"jobSummary": {"jobId": "8"}}
        adapter = AmplifyAdapter(client=client)

        await adapter.submit(amplify_job(env_vars={"API_URL": "x"}))

        client.create_branch.assert_not_called()
        client.update_branch.assert_called_once_with(
            appId="d1abc", branchName="main", environmentVariables={"API_URL": "x"},
        )

    @pytest.mark.asyncio
    async def test_throttling_is_transient(self):
        client = MagicMock()
        client.get_branch.return_value = {}
        client.start_job.side_effect = client_error("LimitExceededException", "StartJob", 429)

        with pytest.raises(TransientNetworkError):
            await AmplifyAdapter(client=client).submit(amplify_job())

    @pytest.mark.asyncio
    async def test_submit_requires_app_id(self):
        with pytest.raises(ValidationError, match="app_id"):
            await AmplifyAdapter(client=MagicMock()).submit(make_job(platform="aws"))

    @pytest.mark.asyncio
    async def test_succeeded_job_reports_branch_url(self):
        client = MagicMock()
        client.get_job.return_value = {"job": {"summary": {"jobId": "7", "status": "SUCCEED"}}}
        client.get_app.return_value = {"app": {"defaultDomain": "d1abc.amplifyapp.com"}}

        state = await AmplifyAdapter(client=client).query_status("d1abc/main/7")

        assert state.status == ProviderStatus.READY
        assert state.url == "https://main.d1abc.amplifyapp.com"
        client.get_job.assert_called_once_with(appId="d1abc", branchName="main", jobId="7")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw, expected", [
        ("PENDING", ProviderStatus.QUEUED),
        ("RUNNING", ProviderStatus.BUILDING),
        ("FAILED", ProviderStatus.ERROR),
        ("CANCELLED", ProviderStatus.CANCELED),
    ])
    async def test_job_states(self, raw, expected):
        client = MagicMock()
        client.get_job.return_value = {"job": {"summary": {"status": raw}}}
        state = await AmplifyAdapter(client=client).query_status("d1abc/main/7")
        assert state.status == expected
        client.get_app.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_stops_job(self):
        client = MagicMock()
        await AmplifyAdapter(client=client).cancel("d1abc/main/7")
        client.stop_job.assert_called_once_with(appId="d1abc", branchName="main", jobId="7")
