"""Shared data models for the sitebox application."""

from sitebox.models.deployment import (
    DeploymentFile,
    DeploymentState,
    DeploymentStatus,
    PublishResult,
)
from sitebox.models.sandbox import CommandResult, FileEntry, SandboxInfo

__all__ = [
    "CommandResult",
    "DeploymentFile",
    "DeploymentState",
    "DeploymentStatus",
    "FileEntry",
    "PublishResult",
    "SandboxInfo",
]
