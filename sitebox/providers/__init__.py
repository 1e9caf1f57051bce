"""Provider package for sandbox and hosting integrations."""

from sitebox.providers.hosting import HostingProvider, VercelProvider
from sitebox.providers.sandbox import E2BProvider, LocalProvider, SandboxProvider

__all__ = [
    "E2BProvider",
    "HostingProvider",
    "LocalProvider",
    "SandboxProvider",
    "VercelProvider",
]
