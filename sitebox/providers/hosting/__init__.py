"""Static hosting provider implementations and interfaces."""

from sitebox.providers.hosting.base import HostingProvider
from sitebox.providers.hosting.vercel import VercelProvider

__all__ = ["HostingProvider", "VercelProvider"]
