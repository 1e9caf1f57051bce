"""Sandbox registry and deployment services."""

from sitebox.services.deployment import DeploymentPipeline
from sitebox.services.manager import RegistryEntry, SandboxManager

__all__ = ["DeploymentPipeline", "RegistryEntry", "SandboxManager"]
