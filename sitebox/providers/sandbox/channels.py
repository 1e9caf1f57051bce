"""Command and file channels over a sandbox handle.

A handle is any object exposing the e2b ``AsyncSandbox`` surface used here:
``commands.run(...)`` and ``files.{read,write,make_dir,exists,list}``. The e2b
backend passes the real sandbox; the local backend passes a host-directory
equivalent.
"""

from __future__ import annotations

import posixpath
import time
from typing import Any

from e2b import CommandExitException, FileType, NotFoundException
import structlog

from sitebox.errors import SandboxFileNotFoundError
from sitebox.models.sandbox import CommandResult, FileEntry

logger = structlog.get_logger(__name__)

# Exit code reported when the command never produced one (transport or backend fault).
EXEC_FAULT_EXIT_CODE = -1

IGNORED_DIRS = frozenset({"node_modules", ".git", ".next", "dist", "build"})


class CommandChannel:
    def __init__(self, handle: Any, root: str, timeout_s: float = 600) -> None:
        self._handle = handle
        self._root = root
        self._timeout_s = timeout_s

    async def run(
        self,
        command: str,
        cwd: str | None = None,
        timeout_s: float | None = None,
    ) -> CommandResult:
        start = time.monotonic()
        try:
            result = await self._handle.commands.run(
                command,
                cwd=cwd or self._root,
                timeout=timeout_s or self._timeout_s,
            )
        except CommandExitException as exc:
            return self._result(exc.stdout, exc.stderr, exc.exit_code, start)
        except Exception as exc:
            logger.warning("command_fault", command=command, error=str(exc))
            return self._result("", str(exc), EXEC_FAULT_EXIT_CODE, start)
        return self._result(result.stdout, result.stderr, result.exit_code, start)

    async def spawn(
        self,
        command: str,
        cwd: str | None = None,
        envs: dict[str, str] | None = None,
    ) -> Any:
        """Start a long-running process without waiting for it to exit."""
        return await self._handle.commands.run(
            command,
            cwd=cwd or self._root,
            envs=envs,
            background=True,
        )

    @staticmethod
    def _result(stdout: str | None, stderr: str | None, exit_code: int | None, start: float) -> CommandResult:
        return CommandResult(
            stdout=stdout or "",
            stderr=stderr or "",
            exit_code=EXEC_FAULT_EXIT_CODE if exit_code is None else exit_code,
            duration_ms=int((time.monotonic() - start) * 1000),
        )


class FileChannel:
    def __init__(self, handle: Any, root: str, ignored: frozenset[str] = IGNORED_DIRS) -> None:
        self._handle = handle
        self._root = posixpath.normpath(root)
        self._ignored = ignored

    @property
    def root(self) -> str:
        return self._root

    def resolve(self, path: str) -> str:
        if path.startswith("/"):
            return posixpath.normpath(path)
        return posixpath.normpath(posixpath.join(self._root, path))

    async def write(self, path: str, content: str) -> str:
        target = self.resolve(path)
        parent = posixpath.dirname(target)
        if parent and parent != "/":
            await self._handle.files.make_dir(parent)
        await self._handle.files.write(target, content)
        return target

    async def read(self, path: str) -> str:
        target = self.resolve(path)
        try:
            return await self._handle.files.read(target)
        except (NotFoundException, FileNotFoundError) as exc:
            raise SandboxFileNotFoundError(target) from exc

    async def exists(self, path: str) -> bool:
        return await self._handle.files.exists(self.resolve(path))

    async def list(self, directory: str | None = None) -> list[str]:
        """Return files below ``directory`` relative to it, skipping ignored dirs."""
        base = self.resolve(directory) if directory else self._root
        found: list[str] = []
        pending = [base]
        while pending:
            current = pending.pop()
            try:
                entries = await self._handle.files.list(current)
            except (NotFoundException, FileNotFoundError):
                continue
            for entry in entries:
                full = posixpath.join(current, entry.name)
                if _is_dir(entry):
                    if entry.name not in self._ignored:
                        pending.append(full)
                else:
                    found.append(posixpath.relpath(full, base))
        return sorted(found)


def _is_dir(entry: Any) -> bool:
    if isinstance(entry, FileEntry):
        return entry.is_dir
    return entry.type == FileType.DIR
