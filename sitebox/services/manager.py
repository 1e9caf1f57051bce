"""Registry of live sandbox providers keyed by sandbox id."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import time
from typing import Callable, Iterator

import structlog

from sitebox.errors import UnsupportedOperationError
from sitebox.providers.sandbox.base import SandboxProvider

logger = structlog.get_logger(__name__)

DEFAULT_MAX_AGE_MS = 3_600_000


@dataclass
class RegistryEntry:
    sandbox_id: str
    provider: SandboxProvider
    created_at: float
    last_accessed: float


class SandboxManager:
    """
    Maps session sandbox ids to provider instances.

    Construct one per process and call :meth:`terminate_all` at shutdown.
    No registry read and write of the same key is separated by an ``await``,
    so the methods are safe to call from concurrent tasks on one event loop.
    """

    def __init__(
        self,
        provider_factory: Callable[[], SandboxProvider],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._provider_factory = provider_factory
        self._clock = clock
        self._sandboxes: dict[str, RegistryEntry] = {}
        self._active_sandbox_id: str | None = None

    def __len__(self) -> int:
        return len(self._sandboxes)

    def __contains__(self, sandbox_id: object) -> bool:
        return sandbox_id in self._sandboxes

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sandboxes))

    @property
    def active_sandbox_id(self) -> str | None:
        return self._active_sandbox_id

    def sandbox_ids(self) -> list[str]:
        return list(self._sandboxes)

    def entry(self, sandbox_id: str) -> RegistryEntry | None:
        return self._sandboxes.get(sandbox_id)

    async def get_or_create_provider(self, sandbox_id: str) -> SandboxProvider | None:
        existing = self._sandboxes.get(sandbox_id)
        if existing is not None:
            existing.last_accessed = self._clock()
            return existing.provider

        provider = self._provider_factory()
        reconnect = getattr(provider, "reconnect", None)
        if reconnect is None:
            logger.info("reconnect_unsupported", sandbox_id=sandbox_id)
            return None
        try:
            reconnected = await reconnect(sandbox_id)
        except UnsupportedOperationError:
            logger.info("reconnect_unsupported", sandbox_id=sandbox_id)
            return None
        except Exception as exc:
            logger.error("reconnect_error", sandbox_id=sandbox_id, error=str(exc))
            raise
        if not reconnected:
            return None

        # Another task may have registered the id while we were reconnecting.
        # Both handles point at the same remote sandbox, so drop ours without killing it.
        current = self._sandboxes.get(sandbox_id)
        if current is not None:
            current.last_accessed = self._clock()
            return current.provider

        self._register(sandbox_id, provider)
        logger.info("sandbox_reconnected", sandbox_id=sandbox_id)
        return provider

    def register_sandbox(self, sandbox_id: str, provider: SandboxProvider) -> None:
        self._register(sandbox_id, provider)
        logger.info("sandbox_registered", sandbox_id=sandbox_id)

    def get_active_provider(self) -> SandboxProvider | None:
        if self._active_sandbox_id is None:
            return None
        entry = self._sandboxes.get(self._active_sandbox_id)
        if entry is None:
            return None
        entry.last_accessed = self._clock()
        return entry.provider

    def get_provider(self, sandbox_id: str) -> SandboxProvider | None:
        entry = self._sandboxes.get(sandbox_id)
        if entry is None:
            return None
        entry.last_accessed = self._clock()
        return entry.provider

    def set_active_sandbox(self, sandbox_id: str) -> bool:
        if sandbox_id not in self._sandboxes:
            return False
        self._active_sandbox_id = sandbox_id
        return True

    async def terminate_sandbox(self, sandbox_id: str) -> None:
        entry = self._sandboxes.pop(sandbox_id, None)
        if self._active_sandbox_id == sandbox_id:
            self._active_sandbox_id = None
        if entry is None:
            return
        await _terminate_quietly(sandbox_id, entry.provider)

    async def terminate_all(self) -> None:
        entries = list(self._sandboxes.values())
        self._sandboxes.clear()
        self._active_sandbox_id = None
        await asyncio.gather(
            *(_terminate_quietly(entry.sandbox_id, entry.provider) for entry in entries)
        )
        if entries:
            logger.info("sandboxes_terminated", count=len(entries))

    async def cleanup(self, max_age_ms: int = DEFAULT_MAX_AGE_MS) -> list[str]:
        """Terminate every sandbox idle for longer than ``max_age_ms``."""
        now = self._clock()
        expired = [
            sandbox_id
            for sandbox_id, entry in self._sandboxes.items()
            if (now - entry.last_accessed) * 1000 > max_age_ms
        ]
        for sandbox_id in expired:
            await self.terminate_sandbox(sandbox_id)
        if expired:
            logger.info("idle_sandboxes_evicted", sandbox_ids=expired)
        return expired

    def _register(self, sandbox_id: str, provider: SandboxProvider) -> None:
        now = self._clock()
        self._sandboxes[sandbox_id] = RegistryEntry(
            sandbox_id=sandbox_id,
            provider=provider,
            created_at=now,
            last_accessed=now,
        )
        self._active_sandbox_id = sandbox_id


async def _terminate_quietly(sandbox_id: str, provider: SandboxProvider) -> None:
    try:
        await provider.terminate()
    except Exception as exc:
        logger.error("sandbox_terminate_error", sandbox_id=sandbox_id, error=str(exc))
