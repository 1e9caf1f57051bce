"""Vercel hosting provider backed by the Vercel REST API."""

from __future__ import annotations

import os
from typing import Any, Sequence

import httpx
import structlog

from sitebox.config import HostingSettings
from sitebox.errors import ConfigError, HostingApiError
from sitebox.models.deployment import DeploymentFile, DeploymentState, DeploymentStatus
from sitebox.providers.hosting.base import HostingProvider

logger = structlog.get_logger(__name__)


class VercelProvider(HostingProvider):
    name = "Vercel"

    def __init__(
        self,
        settings: HostingSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or HostingSettings()
        self._token = self._settings.token or os.getenv("VERCEL_TOKEN")
        self._team_id = self._settings.team_id or os.getenv("VERCEL_TEAM_ID")
        self._base_url = self._settings.api_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=self._settings.request_timeout_s)

    @property
    def team_id(self) -> str | None:
        return self._team_id

    def _ensure_token(self) -> str:
        if not self._token:
            raise ConfigError("Vercel token is required (set VERCEL_TOKEN).")
        return self._token

    def _params(self) -> dict[str, str]:
        return {"teamId": self._team_id} if self._team_id else {}

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        token = self._ensure_token()
        response = await self._client.request(
            method,
            f"{self._base_url}{path}",
            params=self._params(),
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.is_error:
            raise HostingApiError(response.status_code, _error_message(response))
        return response.json() if response.content else None

    async def create_deployment(
        self,
        name: str,
        files: Sequence[DeploymentFile],
        project_settings: dict[str, str],
        target: str = "production",
    ) -> str:
        payload = {
            "name": name,
            "files": [item.to_payload() for item in files],
            "projectSettings": project_settings,
            "target": target,
        }
        response = await self._request("POST", "/v13/deployments", payload)
        if not isinstance(response, dict) or "id" not in response:
            raise HostingApiError(502, "Unexpected response from Vercel API.")
        return response["id"]

    async def get_deployment(self, deployment_id: str) -> DeploymentStatus:
        response = await self._request("GET", f"/v13/deployments/{deployment_id}")
        if not isinstance(response, dict):
            raise HostingApiError(502, "Unexpected response from Vercel API.")
        error = response.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else str(error)
        return DeploymentStatus(
            deployment_id=deployment_id,
            state=DeploymentState.parse(response.get("readyState")),
            error_message=message or response.get("errorMessage"),
        )

    def public_url(self, project_name: str) -> str:
        return f"https://{project_name}.{self._settings.platform_domain}"

    def inspect_url(self, deployment_id: str) -> str:
        return f"https://vercel.com/{self._team_id or 'dashboard'}/deployments/{deployment_id}"

    async def probe(self, url: str) -> bool:
        try:
            response = await self._client.head(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            logger.debug("probe_failed", url=url, error=str(exc))
            return False
        return response.status_code == 200

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.reason_phrase
