"""Local sandbox provider implementation.

Each sandbox is a directory on the host. In-sandbox absolute paths are mapped
below that directory, so ``/home/user/app/index.html`` lives at
``<base_dir>/<sandbox_id>/home/user/app/index.html``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import os
from pathlib import Path
import shutil
import tempfile
from typing import Any
from uuid import uuid4

import structlog

from sitebox.config import SandboxSettings
from sitebox.errors import ProvisionError
from sitebox.models.sandbox import CommandResult, FileEntry
from sitebox.providers.sandbox.project import ProjectSandbox
from sitebox.providers.sandbox.readiness import Sleep

logger = structlog.get_logger(__name__)

DEFAULT_BASE_DIR = Path(tempfile.gettempdir()) / "sitebox-local"


@dataclass(frozen=True)
class _SandboxRecord:
    sandbox_id: str
    root: Path

    def resolve(self, path: str) -> Path:
        root = self.root.resolve()
        resolved = (root / path.lstrip("/")).resolve()
        if root != resolved and root not in resolved.parents:
            raise ValueError(f"Path escapes sandbox: {path}")
        return resolved


class LocalCommands:
    def __init__(self, record: _SandboxRecord) -> None:
        self._record = record
        self.processes: list[asyncio.subprocess.Process] = []

    async def run(
        self,
        command: str,
        cwd: str | None = None,
        envs: dict[str, str] | None = None,
        timeout: float | None = None,
        background: bool = False,
    ) -> Any:
        workdir = self._record.resolve(cwd) if cwd else self._record.root
        workdir.mkdir(parents=True, exist_ok=True)
        if background:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=workdir,
                env=_merge_env(envs),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            self.processes.append(process)
            return process

        process = await asyncio.create_subprocess_shell(
            command,
            cwd=workdir,
            env=_merge_env(envs),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise
        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else -1,
        )

    async def stop_all(self) -> None:
        processes, self.processes = self.processes, []
        for process in processes:
            if process.returncode is not None:
                continue
            try:
                process.terminate()
            except ProcessLookupError:
                continue
            try:
                await asyncio.wait_for(process.wait(), 5)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()


class LocalFiles:
    def __init__(self, record: _SandboxRecord) -> None:
        self._record = record

    async def write(self, path: str, data: str | bytes) -> None:
        target = self._record.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = data.encode("utf-8") if isinstance(data, str) else data
        with target.open("wb") as handle:
            handle.write(payload)

    async def read(self, path: str) -> str:
        target = self._record.resolve(path)
        if target.is_dir():
            raise IsADirectoryError(path)
        return target.read_bytes().decode("utf-8")

    async def exists(self, path: str) -> bool:
        return self._record.resolve(path).exists()

    async def make_dir(self, path: str) -> bool:
        target = self._record.resolve(path)
        if target.is_dir():
            return False
        target.mkdir(parents=True, exist_ok=True)
        return True

    async def list(self, path: str) -> list[FileEntry]:
        target = self._record.resolve(path)
        entries: list[FileEntry] = []
        for entry in target.iterdir():
            stat_info = entry.stat()
            entries.append(
                FileEntry(
                    name=entry.name,
                    is_dir=entry.is_dir(),
                    size=stat_info.st_size,
                    mod_time=stat_info.st_mtime,
                )
            )
        return entries


@dataclass
class LocalHandle:
    record: _SandboxRecord
    commands: LocalCommands = field(init=False)
    files: LocalFiles = field(init=False)

    def __post_init__(self) -> None:
        self.commands = LocalCommands(self.record)
        self.files = LocalFiles(self.record)

    @property
    def sandbox_id(self) -> str:
        return self.record.sandbox_id


class LocalProvider(ProjectSandbox):
    provider_name = "local"

    def __init__(
        self,
        settings: SandboxSettings | None = None,
        pipeline: Any = None,
        sleep: Sleep = asyncio.sleep,
        base_dir: str | Path | None = None,
    ) -> None:
        super().__init__(settings, pipeline, sleep)
        configured = base_dir or self._settings.local_base_dir
        self._base_dir = Path(configured) if configured else DEFAULT_BASE_DIR

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    async def _create_handle(self) -> LocalHandle:
        sandbox_id = f"local-{uuid4().hex[:8]}"
        root = self._base_dir / sandbox_id
        try:
            root.mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            raise ProvisionError(f"Could not create local sandbox at {root}: {exc}") from exc
        return LocalHandle(_SandboxRecord(sandbox_id=sandbox_id, root=root))

    async def _connect_handle(self, sandbox_id: str) -> LocalHandle | None:
        if not sandbox_id or "/" in sandbox_id or sandbox_id in (".", ".."):
            return None
        root = self._base_dir / sandbox_id
        if not root.is_dir():
            return None
        return LocalHandle(_SandboxRecord(sandbox_id=sandbox_id, root=root))

    async def _kill_handle(self, handle: LocalHandle) -> None:
        await handle.commands.stop_all()
        shutil.rmtree(handle.record.root, ignore_errors=True)

    def _handle_id(self, handle: LocalHandle) -> str:
        return handle.sandbox_id

    def _public_url(self, handle: LocalHandle) -> str:
        return f"http://localhost:{self._settings.dev_port}"

    async def _port_open(self, port: int) -> bool:
        try:
            _, writer = await asyncio.open_connection("127.0.0.1", port)
        except OSError:
            return False
        writer.close()
        await writer.wait_closed()
        return True

    async def _stop_dev_server(self) -> None:
        self._require()
        await self._handle.commands.stop_all()


def _merge_env(env: dict[str, str] | None) -> dict[str, str]:
    merged = os.environ.copy()
    if env:
        merged.update(env)
    return merged
