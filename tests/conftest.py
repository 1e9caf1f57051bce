from __future__ import annotations

import pytest

from sitebox.config import HostingSettings, SandboxSettings
from sitebox.providers.hosting.vercel import VercelProvider
from sitebox.providers.sandbox import e2b as e2b_module
from sitebox.providers.sandbox.local import LocalProvider
from sitebox.services.deployment import DeploymentPipeline
from tests.fakes import FakeSandbox, FakeVercel, fixed_name, no_sleep


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def clear_hosting_env(monkeypatch):
    monkeypatch.delenv("VERCEL_TOKEN", raising=False)
    monkeypatch.delenv("VERCEL_TEAM_ID", raising=False)


@pytest.fixture
def sandbox_settings(tmp_path):
    return SandboxSettings(
        local_base_dir=str(tmp_path / "sandboxes"),
        startup_timeout_s=1.0,
        startup_poll_interval_s=0.25,
        command_timeout_s=30,
        auto_restart_dev_server=False,
    )


@pytest.fixture
def hosting_settings():
    return HostingSettings(token="test-token", status_interval_s=0, propagation_interval_s=0)


@pytest.fixture
def vercel():
    return FakeVercel()


@pytest.fixture
def pipeline(vercel, hosting_settings):
    hosting = VercelProvider(hosting_settings, client=vercel.client())
    return DeploymentPipeline(hosting, hosting_settings, sleep=no_sleep, name_factory=fixed_name("sitebox-project-abc123"))


@pytest.fixture
def local_provider(sandbox_settings, pipeline):
    return LocalProvider(sandbox_settings, pipeline, sleep=no_sleep)


@pytest.fixture
def fake_e2b(monkeypatch):
    FakeSandbox.reset()
    monkeypatch.setattr(e2b_module, "AsyncSandbox", FakeSandbox)
    yield FakeSandbox
    FakeSandbox.reset()
