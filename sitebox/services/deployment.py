"""Publish a sandbox's project files to a static hosting platform.

The pipeline reads every project file out of the sandbox, submits a single
production deployment, waits for the remote build, then waits for the public
URL to answer. A failed build is fatal; a slow build or slow propagation is
not, the caller just gets a URL that may 404 for a short while.
"""

from __future__ import annotations

import asyncio
from typing import Callable
from uuid import uuid4

import httpx
import structlog

from sitebox.config import HostingSettings
from sitebox.errors import (
    DeploymentBuildError,
    DeploymentRejectedError,
    HostingApiError,
    NoFilesToPublishError,
    NotInitializedError,
)
from sitebox.models.deployment import DeploymentFile, DeploymentState, PublishResult
from sitebox.providers.hosting.base import HostingProvider
from sitebox.providers.sandbox.base import SandboxProvider
from sitebox.providers.sandbox.readiness import ReadinessPoller, Sleep

logger = structlog.get_logger(__name__)


def random_project_name(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:8]}"


class DeploymentPipeline:
    def __init__(
        self,
        hosting: HostingProvider,
        settings: HostingSettings | None = None,
        sleep: Sleep = asyncio.sleep,
        name_factory: Callable[[str], str] = random_project_name,
    ) -> None:
        self._hosting = hosting
        self._settings = settings or HostingSettings()
        self._name_factory = name_factory
        self._build_poller = ReadinessPoller(
            self._settings.status_attempts, self._settings.status_interval_s, sleep
        )
        self._propagation_poller = ReadinessPoller(
            self._settings.propagation_attempts, self._settings.propagation_interval_s, sleep
        )

    async def publish(self, provider: SandboxProvider) -> PublishResult:
        info = provider.sandbox_info
        if info is None:
            raise NotInitializedError()

        files = await self.collect_files(provider)
        if not files:
            raise NoFilesToPublishError()

        project_name = info.deployed_project_name
        if not project_name:
            project_name = self._name_factory(self._settings.project_prefix)
            info.deployed_project_name = project_name
        log = logger.bind(sandbox_id=info.sandbox_id, project=project_name)

        try:
            deployment_id = await self._hosting.create_deployment(
                project_name,
                files,
                self._settings.project_settings(),
                target="production",
            )
        except HostingApiError as exc:
            log.error("deployment_rejected", status=exc.status_code, error=exc.message)
            raise DeploymentRejectedError(f"{self._hosting.name} deployment failed: {exc.message}") from exc
        except httpx.HTTPError as exc:
            log.error("deployment_submit_failed", error=str(exc))
            raise DeploymentRejectedError(f"{self._hosting.name} deployment failed: {exc}") from exc
        log = log.bind(deployment_id=deployment_id)
        log.info("deployment_submitted", files=len(files))

        if await self.wait_for_build(deployment_id):
            log.info("deployment_ready")
        else:
            log.warning("deployment_status_unresolved", attempts=self._build_poller.attempts)

        url = self._hosting.public_url(project_name)
        if await self._propagation_poller.until(lambda: self._hosting.probe(url)):
            log.info("deployment_reachable", url=url)
        else:
            log.warning("deployment_not_yet_reachable", url=url)

        return PublishResult(
            url=url,
            inspect_url=self._hosting.inspect_url(deployment_id),
            deployment_id=deployment_id,
            project_name=project_name,
        )

    async def collect_files(self, provider: SandboxProvider) -> list[DeploymentFile]:
        collected: list[DeploymentFile] = []
        for path in await provider.list_files():
            try:
                content = await provider.read_file(path)
            except Exception as exc:
                logger.warning("deployment_file_skipped", path=path, error=str(exc))
                continue
            collected.append(DeploymentFile(file=path, data=content))
        return collected

    async def wait_for_build(self, deployment_id: str) -> bool:
        """Poll build status; True once READY, False if attempts run out."""

        async def check() -> bool:
            try:
                status = await self._hosting.get_deployment(deployment_id)
            except (HostingApiError, httpx.HTTPError) as exc:
                logger.debug("deployment_status_unavailable", deployment_id=deployment_id, error=str(exc))
                return False
            if status.state == DeploymentState.ERROR:
                raise DeploymentBuildError(
                    f"{self._hosting.name} deployment status reported an error: "
                    f"{status.error_message or 'Unknown error'}",
                    deployment_id=deployment_id,
                )
            return status.state == DeploymentState.READY

        return await self._build_poller.until(check)
