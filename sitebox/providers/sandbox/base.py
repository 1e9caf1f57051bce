"""Sandbox provider interface."""

from __future__ import annotations

from typing import Protocol, Sequence

from sitebox.models.deployment import PublishResult
from sitebox.models.sandbox import CommandResult, SandboxInfo


class SandboxProvider(Protocol):
    @property
    def sandbox_info(self) -> SandboxInfo | None:
        ...

    @property
    def tracked_files(self) -> list[str]:
        ...

    async def create(self) -> SandboxInfo:
        ...

    async def reconnect(self, sandbox_id: str) -> bool:
        ...

    async def run_command(self, command: str) -> CommandResult:
        ...

    async def write_file(self, path: str, content: str) -> None:
        ...

    async def read_file(self, path: str) -> str:
        ...

    async def list_files(self, directory: str | None = None) -> list[str]:
        ...

    async def install_packages(self, packages: Sequence[str]) -> CommandResult:
        ...

    async def setup_project(self) -> None:
        ...

    async def restart_dev_server(self) -> None:
        ...

    async def wait_for_server(self, port: int, timeout_s: float | None = None) -> None:
        ...

    async def get_download_url(self, path: str) -> str:
        ...

    async def publish(self) -> PublishResult:
        ...

    async def terminate(self) -> None:
        ...

    def is_alive(self) -> bool:
        ...
