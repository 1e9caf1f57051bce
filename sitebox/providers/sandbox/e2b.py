"""E2B sandbox provider."""

from __future__ import annotations

from typing import Any

from e2b import AsyncSandbox, AuthenticationException, NotFoundException
import structlog

from sitebox.errors import ProvisionError, UnsupportedOperationError
from sitebox.providers.sandbox.project import ProjectSandbox

logger = structlog.get_logger(__name__)


class E2BProvider(ProjectSandbox):
    provider_name = "e2b"

    async def _create_handle(self) -> AsyncSandbox:
        kwargs: dict[str, Any] = {"timeout": self._settings.timeout_s}
        if self._settings.api_key:
            kwargs["api_key"] = self._settings.api_key
        if self._settings.template:
            kwargs["template"] = self._settings.template
        try:
            return await AsyncSandbox.create(**kwargs)
        except Exception as exc:
            logger.error("sandbox_create_failed", error=str(exc))
            raise ProvisionError(f"E2B sandbox creation failed: {exc}") from exc

    async def _connect_handle(self, sandbox_id: str) -> AsyncSandbox | None:
        kwargs: dict[str, Any] = {}
        if self._settings.api_key:
            kwargs["api_key"] = self._settings.api_key
        try:
            return await AsyncSandbox.connect(sandbox_id, **kwargs)
        except AuthenticationException:
            raise
        except NotFoundException:
            logger.info("sandbox_not_found", sandbox_id=sandbox_id)
            return None
        except Exception as exc:
            # Unreachable is not proof of absence, but the id is unusable either way.
            logger.warning("sandbox_connect_failed", sandbox_id=sandbox_id, error=str(exc))
            return None

    async def _kill_handle(self, handle: AsyncSandbox) -> None:
        await handle.kill()

    def _handle_id(self, handle: AsyncSandbox) -> str:
        return handle.sandbox_id

    def _public_url(self, handle: AsyncSandbox) -> str:
        return f"https://{handle.get_host(self._settings.dev_port)}"

    async def _extend_timeout(self, handle: AsyncSandbox) -> None:
        set_timeout = getattr(handle, "set_timeout", None)
        if set_timeout is not None:
            await set_timeout(self._settings.timeout_s)

    async def _port_open(self, port: int) -> bool:
        commands, _ = self._require()
        result = await commands.run(
            f"timeout 1 bash -c '</dev/tcp/127.0.0.1/{port}'",
            timeout_s=5,
        )
        return result.success

    async def _download_url(self, handle: AsyncSandbox, path: str) -> str:
        download_url = getattr(handle, "download_url", None)
        if download_url is None:
            raise UnsupportedOperationError("Download URL generation not supported by this sandbox version")
        return download_url(path)
