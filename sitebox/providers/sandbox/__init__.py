"""Sandbox provider implementations and interfaces."""

from sitebox.providers.sandbox.base import SandboxProvider
from sitebox.providers.sandbox.channels import CommandChannel, FileChannel
from sitebox.providers.sandbox.e2b import E2BProvider
from sitebox.providers.sandbox.local import LocalProvider
from sitebox.providers.sandbox.project import ProjectSandbox
from sitebox.providers.sandbox.readiness import ReadinessPoller

__all__ = [
    "CommandChannel",
    "E2BProvider",
    "FileChannel",
    "LocalProvider",
    "ProjectSandbox",
    "ReadinessPoller",
    "SandboxProvider",
]
