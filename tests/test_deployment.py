from __future__ import annotations

import json

import pytest

from sitebox.config import HostingSettings
from sitebox.errors import (
    ConfigError,
    DeploymentBuildError,
    DeploymentRejectedError,
    HostingApiError,
    NoFilesToPublishError,
    NotInitializedError,
)
from sitebox.providers.hosting.vercel import VercelProvider
from sitebox.providers.sandbox.e2b import E2BProvider
from sitebox.providers.sandbox.local import LocalProvider
from sitebox.services.deployment import DeploymentPipeline, random_project_name
from tests.fakes import FakeVercel, fixed_name, no_sleep


def make_pipeline(vercel: FakeVercel, settings: HostingSettings) -> DeploymentPipeline:
    hosting = VercelProvider(settings, client=vercel.client())
    return DeploymentPipeline(hosting, settings, sleep=no_sleep, name_factory=fixed_name("sitebox-project-abc123"))


async def seeded(provider) -> None:
    await provider.create()
    await provider.write_file("package.json", '{"name": "site"}')
    await provider.write_file("src/App.jsx", "export default function App() {}")
    await provider.write_file("node_modules/react/index.js", "module.exports = {}")


@pytest.mark.anyio
async def test_publish_end_to_end(local_provider, vercel):
    await seeded(local_provider)

    result = await local_provider.publish()

    assert result.url == "https://sitebox-project-abc123.vercel.app"
    assert "dpl_1" in result.inspect_url
    assert result.inspect_url == "https://vercel.com/dashboard/deployments/dpl_1"
    submission = vercel.submissions[0]
    assert submission["name"] == "sitebox-project-abc123"
    assert submission["target"] == "production"
    assert submission["projectSettings"] == {
        "framework": "vite",
        "buildCommand": "npm run build",
        "outputDirectory": "dist",
    }
    assert submission["files"] == [
        {"file": "package.json", "data": '{"name": "site"}'},
        {"file": "src/App.jsx", "data": "export default function App() {}"},
    ]
    assert vercel.requests[0].headers["authorization"] == "Bearer test-token"


@pytest.mark.anyio
async def test_project_name_is_reused(local_provider, vercel):
    await seeded(local_provider)

    first = await local_provider.publish()
    second = await local_provider.publish()

    assert first.project_name == second.project_name
    assert local_provider.sandbox_info.deployed_project_name == "sitebox-project-abc123"
    assert [s["name"] for s in vercel.submissions] == ["sitebox-project-abc123"] * 2
    assert second.deployment_id == "dpl_2"


@pytest.mark.anyio
async def test_random_names_are_generated_once_per_sandbox(sandbox_settings, hosting_settings, vercel):
    hosting = VercelProvider(hosting_settings, client=vercel.client())
    provider = LocalProvider(sandbox_settings, DeploymentPipeline(hosting, hosting_settings, sleep=no_sleep), sleep=no_sleep)
    await seeded(provider)

    first = await provider.publish()
    second = await provider.publish()

    assert first.project_name.startswith("sitebox-project-")
    assert second.project_name == first.project_name


def test_random_project_name_format():
    name = random_project_name("sitebox-project")

    assert name.startswith("sitebox-project-")
    assert len(name.rsplit("-", 1)[-1]) == 8


@pytest.mark.anyio
async def test_publish_without_files_makes_no_network_call(local_provider, vercel):
    await local_provider.create()

    with pytest.raises(NoFilesToPublishError, match="No files found to deploy"):
        await local_provider.publish()
    assert vercel.requests == []


@pytest.mark.anyio
async def test_pipeline_rejects_uninitialised_provider(local_provider, pipeline, vercel):
    with pytest.raises(NotInitializedError):
        await pipeline.publish(local_provider)
    assert vercel.requests == []


@pytest.mark.anyio
async def test_build_error_is_fatal(sandbox_settings, hosting_settings):
    vercel = FakeVercel(states=["BUILDING", "ERROR"], error_message="Command npm run build exited with 1")
    provider = LocalProvider(sandbox_settings, make_pipeline(vercel, hosting_settings), sleep=no_sleep)
    await seeded(provider)

    with pytest.raises(DeploymentBuildError, match="exited with 1") as excinfo:
        await provider.publish()

    assert excinfo.value.deployment_id == "dpl_1"
    assert vercel.status_calls == 2
    assert vercel.probe_calls == 0


@pytest.mark.anyio
async def test_rejected_submission(sandbox_settings, hosting_settings):
    vercel = FakeVercel(reject=(403, "Not authorized"))
    provider = LocalProvider(sandbox_settings, make_pipeline(vercel, hosting_settings), sleep=no_sleep)
    await seeded(provider)

    with pytest.raises(DeploymentRejectedError, match="Not authorized"):
        await provider.publish()
    assert vercel.status_calls == 0


@pytest.mark.anyio
async def test_missing_token_is_a_config_error(sandbox_settings):
    vercel = FakeVercel()
    provider = LocalProvider(sandbox_settings, make_pipeline(vercel, HostingSettings()), sleep=no_sleep)
    await seeded(provider)

    with pytest.raises(ConfigError, match="VERCEL_TOKEN"):
        await provider.publish()
    assert vercel.requests == []


@pytest.mark.anyio
async def test_exhausted_polls_are_not_fatal(sandbox_settings):
    settings = HostingSettings(
        token="test-token",
        status_attempts=3,
        status_interval_s=0,
        propagation_attempts=4,
        propagation_interval_s=0,
    )
    vercel = FakeVercel(states=["BUILDING"], reachable_after=100)
    provider = LocalProvider(sandbox_settings, make_pipeline(vercel, settings), sleep=no_sleep)
    await seeded(provider)

    result = await provider.publish()

    assert result.url == "https://sitebox-project-abc123.vercel.app"
    assert vercel.status_calls == 3
    assert vercel.probe_calls == 4


@pytest.mark.anyio
async def test_waits_for_propagation(sandbox_settings, hosting_settings):
    vercel = FakeVercel(states=["QUEUED", "BUILDING", "READY"], reachable_after=2)
    provider = LocalProvider(sandbox_settings, make_pipeline(vercel, hosting_settings), sleep=no_sleep)
    await seeded(provider)

    await provider.publish()

    assert vercel.status_calls == 3
    assert vercel.probe_calls == 3


@pytest.mark.anyio
async def test_team_id_is_sent_and_used_for_inspect_url(sandbox_settings):
    settings = HostingSettings(token="test-token", team_id="team_42", status_interval_s=0, propagation_interval_s=0)
    vercel = FakeVercel()
    provider = LocalProvider(sandbox_settings, make_pipeline(vercel, settings), sleep=no_sleep)
    await seeded(provider)

    result = await provider.publish()

    assert result.inspect_url == "https://vercel.com/team_42/deployments/dpl_1"
    api_requests = [r for r in vercel.requests if r.method != "HEAD"]
    assert all(r.url.params["teamId"] == "team_42" for r in api_requests)


@pytest.mark.anyio
async def test_unreadable_files_are_skipped(fake_e2b, pipeline, vercel):
    provider = E2BProvider(sleep=no_sleep, pipeline=pipeline)
    await seeded(provider)
    await provider.write_file(".env.local", "SECRET=1")
    fake_e2b.live["sbx-1"].files.unreadable.add("/home/user/app/.env.local")

    await provider.publish()

    files = [item["file"] for item in vercel.submissions[0]["files"]]
    assert files == ["package.json", "src/App.jsx"]


@pytest.mark.anyio
async def test_submitted_payload_is_json(local_provider, vercel):
    await seeded(local_provider)

    await local_provider.publish()

    post = vercel.requests[0]
    assert post.method == "POST"
    assert json.loads(post.content)["files"]


class RejectingHosting:
    name = "Static Host"

    async def create_deployment(self, name, files, project_settings, target="production"):
        raise HostingApiError(400, "quota reached")


@pytest.mark.anyio
async def test_error_messages_name_the_hosting_platform(local_provider, hosting_settings):
    await seeded(local_provider)
    pipeline = DeploymentPipeline(RejectingHosting(), hosting_settings, sleep=no_sleep)

    with pytest.raises(DeploymentRejectedError) as excinfo:
        await pipeline.publish(local_provider)

    assert str(excinfo.value) == "Static Host deployment failed: quota reached"
