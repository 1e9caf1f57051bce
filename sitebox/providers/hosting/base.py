"""Hosting provider interface."""

from __future__ import annotations

from typing import Protocol, Sequence

from sitebox.models.deployment import DeploymentFile, DeploymentStatus


class HostingProvider(Protocol):
    name: str

    async def create_deployment(
        self,
        name: str,
        files: Sequence[DeploymentFile],
        project_settings: dict[str, str],
        target: str = "production",
    ) -> str:
        ...

    async def get_deployment(self, deployment_id: str) -> DeploymentStatus:
        ...

    def public_url(self, project_name: str) -> str:
        ...

    def inspect_url(self, deployment_id: str) -> str:
        ...

    async def probe(self, url: str) -> bool:
        ...
