"""Provider behaviour shared by every sandbox backend.

Backends subclass :class:`ProjectSandbox` and supply handle creation,
connection, teardown and host resolution. Command execution, file I/O,
project scaffolding, the dev-server lifecycle and publishing are implemented
once here on top of :class:`CommandChannel` and :class:`FileChannel`.
"""

from __future__ import annotations

import asyncio
from abc import abstractmethod
from datetime import datetime, timezone
import posixpath
import shlex
from typing import TYPE_CHECKING, Any, Sequence

import structlog

from sitebox.config import SandboxSettings
from sitebox.errors import ConfigError, NotInitializedError, StartupTimeoutError, UnsupportedOperationError
from sitebox.models.deployment import PublishResult
from sitebox.models.sandbox import CommandResult, SandboxInfo
from sitebox.providers.sandbox.base import SandboxProvider
from sitebox.providers.sandbox.channels import CommandChannel, FileChannel
from sitebox.providers.sandbox.readiness import ReadinessPoller, Sleep
from sitebox.providers.sandbox.scaffold import PACKAGE_JSON, skeleton_files

if TYPE_CHECKING:
    from sitebox.services.deployment import DeploymentPipeline

logger = structlog.get_logger(__name__)


class ProjectSandbox(SandboxProvider):
    provider_name = "sandbox"

    def __init__(
        self,
        settings: SandboxSettings | None = None,
        pipeline: "DeploymentPipeline | None" = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings or SandboxSettings()
        self._pipeline = pipeline
        self._sleep = sleep
        self._handle: Any | None = None
        self._info: SandboxInfo | None = None
        self._commands: CommandChannel | None = None
        self._files: FileChannel | None = None
        self._tracked: set[str] = set()

    @abstractmethod
    async def _create_handle(self) -> Any:
        """Request a new remote sandbox; raise ProvisionError when refused."""

    @abstractmethod
    async def _connect_handle(self, sandbox_id: str) -> Any | None:
        """Attach to a running sandbox, or return None when it cannot be used."""

    @abstractmethod
    async def _kill_handle(self, handle: Any) -> None:
        ...

    @abstractmethod
    def _handle_id(self, handle: Any) -> str:
        ...

    @abstractmethod
    def _public_url(self, handle: Any) -> str:
        ...

    @abstractmethod
    async def _port_open(self, port: int) -> bool:
        ...

    async def _extend_timeout(self, handle: Any) -> None:
        return None

    async def _download_url(self, handle: Any, path: str) -> str:
        raise UnsupportedOperationError(
            f"Download URL generation is not supported by the {self.provider_name} backend"
        )

    async def _stop_dev_server(self) -> None:
        commands, _ = self._require()
        await commands.run(f"pkill -f {shlex.quote(self._settings.dev_process_pattern)}")
        await self._sleep(1.0)

    @property
    def sandbox_info(self) -> SandboxInfo | None:
        return self._info

    @property
    def sandbox_id(self) -> str | None:
        return self._info.sandbox_id if self._info else None

    @property
    def tracked_files(self) -> list[str]:
        return sorted(self._tracked)

    async def create(self) -> SandboxInfo:
        if self._handle is not None:
            previous = self._info.sandbox_id if self._info else None
            try:
                await self._kill_handle(self._handle)
            except Exception as exc:
                logger.warning("previous_sandbox_kill_failed", sandbox_id=previous, error=str(exc))
            self._reset()
        self._tracked.clear()

        handle = await self._create_handle()
        try:
            info = await self._attach(handle, approximate=False)
        except Exception:
            self._reset()
            await self._discard(handle)
            raise
        logger.info("sandbox_created", sandbox_id=info.sandbox_id, url=info.url, provider=self.provider_name)
        return info

    async def reconnect(self, sandbox_id: str) -> bool:
        handle = await self._connect_handle(sandbox_id)
        if handle is None:
            logger.info("sandbox_reconnect_failed", sandbox_id=sandbox_id, provider=self.provider_name)
            return False
        self._tracked.clear()
        try:
            await self._attach(handle, approximate=True)
        except Exception as exc:
            # Leave the remote sandbox running.
            self._reset()
            logger.warning("sandbox_attach_failed", sandbox_id=sandbox_id, error=str(exc))
            return False
        logger.info("sandbox_reconnected", sandbox_id=sandbox_id, provider=self.provider_name)
        return True

    async def run_command(self, command: str) -> CommandResult:
        commands, _ = self._require()
        logger.debug("run_command", sandbox_id=self.sandbox_id, command=command)
        return await commands.run(command)

    async def write_file(self, path: str, content: str) -> None:
        _, files = self._require()
        if not isinstance(content, str):
            raise TypeError(f"File content must be text, got {type(content).__name__}")
        target = await files.write(path, content)
        self._tracked.add(self._project_relative(target))

    async def read_file(self, path: str) -> str:
        _, files = self._require()
        return await files.read(path)

    async def list_files(self, directory: str | None = None) -> list[str]:
        _, files = self._require()
        return await files.list(directory)

    async def install_packages(self, packages: Sequence[str]) -> CommandResult:
        self._require()
        if not packages:
            raise ValueError("At least one package name is required")
        parts = [self._settings.install_command]
        if self._settings.legacy_peer_deps:
            parts.append("--legacy-peer-deps")
        parts.extend(shlex.quote(name) for name in packages)
        result = await self.run_command(" ".join(parts))
        if not result.success:
            logger.warning(
                "package_install_failed",
                sandbox_id=self.sandbox_id,
                packages=list(packages),
                exit_code=result.exit_code,
            )
            return result

        if self._settings.auto_restart_dev_server:
            try:
                await self.restart_dev_server()
            except Exception as exc:
                logger.warning("dev_server_restart_failed", sandbox_id=self.sandbox_id, error=str(exc))
        return result

    async def setup_project(self) -> None:
        commands, files = self._require()
        if await files.exists(PACKAGE_JSON):
            logger.info("project_exists", sandbox_id=self.sandbox_id)
        else:
            for path, content in skeleton_files(self._settings.dev_port).items():
                await self.write_file(path, content)
            logger.info("project_scaffolded", sandbox_id=self.sandbox_id, root=files.root)

        install = await commands.run(self._settings.install_command)
        if not install.success:
            logger.warning("dependency_install_failed", sandbox_id=self.sandbox_id, stderr=install.stderr[-2000:])

        await self._stop_dev_server()
        await self._start_dev_server()
        await self.wait_for_server(self._settings.dev_port)

    async def restart_dev_server(self) -> None:
        self._require()
        await self._stop_dev_server()
        await self._start_dev_server()
        await self.wait_for_server(self._settings.dev_port)

    async def wait_for_server(self, port: int, timeout_s: float | None = None) -> None:
        self._require()
        timeout = self._settings.startup_timeout_s if timeout_s is None else timeout_s
        poller = ReadinessPoller.for_timeout(timeout, self._settings.startup_poll_interval_s, self._sleep)
        if not await poller.wait_for_port(port, self._port_open):
            raise StartupTimeoutError(port, timeout)

    async def get_download_url(self, path: str) -> str:
        _, files = self._require()
        return await self._download_url(self._handle, files.resolve(path))

    async def publish(self) -> PublishResult:
        self._require()
        if self._pipeline is None:
            raise ConfigError("No deployment pipeline configured for this provider")
        return await self._pipeline.publish(self)

    async def terminate(self) -> None:
        handle = self._handle
        sandbox_id = self.sandbox_id
        if handle is not None:
            try:
                await self._kill_handle(handle)
                logger.info("sandbox_terminated", sandbox_id=sandbox_id)
            except Exception as exc:
                logger.warning("sandbox_terminate_failed", sandbox_id=sandbox_id, error=str(exc))
        self._reset()

    def is_alive(self) -> bool:
        return self._handle is not None

    async def _start_dev_server(self) -> None:
        commands, _ = self._require()
        await commands.spawn(self._settings.dev_command, envs={"FORCE_COLOR": "0"})
        logger.info("dev_server_started", sandbox_id=self.sandbox_id, command=self._settings.dev_command)

    async def _attach(self, handle: Any, approximate: bool) -> SandboxInfo:
        info = SandboxInfo(
            sandbox_id=self._handle_id(handle),
            url=self._public_url(handle),
            provider=self.provider_name,
            created_at=datetime.now(timezone.utc),
            created_at_approximate=approximate,
        )
        root = self._settings.project_root
        self._handle = handle
        self._info = info
        self._commands = CommandChannel(handle, root, self._settings.command_timeout_s)
        self._files = FileChannel(handle, root)
        try:
            await self._extend_timeout(handle)
        except Exception as exc:
            logger.warning("sandbox_timeout_extend_failed", sandbox_id=self._info.sandbox_id, error=str(exc))
        return self._info

    async def _discard(self, handle: Any) -> None:
        try:
            await self._kill_handle(handle)
        except Exception as exc:
            logger.warning("sandbox_discard_failed", provider=self.provider_name, error=str(exc))

    def _require(self) -> tuple[CommandChannel, FileChannel]:
        if self._handle is None or self._commands is None or self._files is None:
            raise NotInitializedError()
        return self._commands, self._files

    def _project_relative(self, target: str) -> str:
        root = self._files.root if self._files else self._settings.project_root
        if target == root or target.startswith(root.rstrip("/") + "/"):
            return posixpath.relpath(target, root)
        return target

    def _reset(self) -> None:
        self._handle = None
        self._info = None
        self._commands = None
        self._files = None
        self._tracked.clear()
