"""Exception types raised by sitebox providers and services."""

from __future__ import annotations


class SiteboxError(Exception):
    pass


class ConfigError(SiteboxError):
    pass


class NotInitializedError(SiteboxError):
    def __init__(self, message: str = "No active sandbox") -> None:
        super().__init__(message)


class ProvisionError(SiteboxError):
    pass


class SandboxFileNotFoundError(SiteboxError, FileNotFoundError):
    def __init__(self, path: str) -> None:
        super().__init__(f"File not found in sandbox: {path}")
        self.path = path


class StartupTimeoutError(SiteboxError):
    def __init__(self, port: int, timeout_s: float) -> None:
        super().__init__(f"Timeout waiting for server on port {port} after {timeout_s:g}s")
        self.port = port
        self.timeout_s = timeout_s


class UnsupportedOperationError(SiteboxError):
    pass


class NoFilesToPublishError(SiteboxError):
    def __init__(self, message: str = "No files found to deploy") -> None:
        super().__init__(message)


class HostingApiError(SiteboxError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Hosting API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class DeploymentRejectedError(SiteboxError):
    pass


class DeploymentBuildError(SiteboxError):
    def __init__(self, message: str, deployment_id: str | None = None) -> None:
        super().__init__(message)
        self.deployment_id = deployment_id
