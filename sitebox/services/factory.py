"""Build sandbox providers for the configured backend."""

from __future__ import annotations

import asyncio
from typing import Callable

from sitebox.config import Settings
from sitebox.errors import ConfigError
from sitebox.providers.sandbox.e2b import E2BProvider
from sitebox.providers.sandbox.local import LocalProvider
from sitebox.providers.sandbox.project import ProjectSandbox
from sitebox.providers.sandbox.readiness import Sleep
from sitebox.services.deployment import DeploymentPipeline

BACKENDS: dict[str, type[ProjectSandbox]] = {
    "e2b": E2BProvider,
    "local": LocalProvider,
}


def provider_factory(
    settings: Settings,
    pipeline: DeploymentPipeline,
    sleep: Sleep = asyncio.sleep,
) -> Callable[[], ProjectSandbox]:
    """Return a zero-argument callable producing fresh providers.

    All providers built by one factory share ``pipeline``; its hosting client
    belongs to the caller.
    """
    backend = BACKENDS.get(settings.backend)
    if backend is None:
        raise ConfigError(
            f"Unknown sandbox backend {settings.backend!r} (expected one of: {', '.join(sorted(BACKENDS))})"
        )

    def create() -> ProjectSandbox:
        return backend(settings.sandbox, pipeline, sleep)

    return create
