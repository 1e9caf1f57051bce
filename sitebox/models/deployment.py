"""Data models for hosting deployments."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DeploymentState(str, Enum):
    QUEUED = "QUEUED"
    INITIALIZING = "INITIALIZING"
    BUILDING = "BUILDING"
    READY = "READY"
    ERROR = "ERROR"
    CANCELED = "CANCELED"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DeploymentState":
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.INITIALIZING


@dataclass(frozen=True)
class DeploymentFile:
    file: str
    data: str

    def to_payload(self) -> dict[str, str]:
        return {"file": self.file, "data": self.data}


@dataclass(frozen=True)
class DeploymentStatus:
    deployment_id: str
    state: DeploymentState
    error_message: Optional[str] = None


@dataclass(frozen=True)
class PublishResult:
    url: str
    inspect_url: str
    deployment_id: str
    project_name: str
