"""Data models for sandbox interactions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass
class SandboxInfo:
    sandbox_id: str
    url: str
    provider: str
    created_at: datetime
    deployed_project_name: Optional[str] = None
    # Reconnected sandboxes cannot recover their original creation time.
    created_at_approximate: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "sandboxId": self.sandbox_id,
            "url": self.url,
            "provider": self.provider,
            "createdAt": self.created_at.isoformat(),
            "createdAtApproximate": self.created_at_approximate,
            "deployedProjectName": self.deployed_project_name,
        }


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class FileEntry:
    name: str
    is_dir: bool
    size: int
    mod_time: Optional[float]
