"""HTTP routes for project archives, publishing and sandbox status."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from sitebox.config import Settings, load_settings
from sitebox.logging import setup_logging
from sitebox.providers.hosting.vercel import VercelProvider
from sitebox.providers.sandbox.base import SandboxProvider
from sitebox.services.deployment import DeploymentPipeline
from sitebox.services.factory import provider_factory
from sitebox.services.manager import SandboxManager

logger = structlog.get_logger(__name__)

ARCHIVE_PATH = "/tmp/project.zip"
ARCHIVE_COMMAND = (
    f"zip -r {ARCHIVE_PATH} . "
    '-x "node_modules/*" ".git/*" ".next/*" "dist/*" "build/*" "*.log"'
)
MISSING_ID = "No sandbox ID provided"
NOT_FOUND = "Sandbox not found or could not be reconnected"


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


async def _sandbox_id_from_body(request: Request) -> str | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    sandbox_id = body.get("sandboxId")
    return sandbox_id if isinstance(sandbox_id, str) and sandbox_id else None


def create_app(
    manager: SandboxManager | None = None,
    settings: Settings | None = None,
    hosting: VercelProvider | None = None,
) -> FastAPI:
    """Build the app. ``hosting`` is closed on shutdown along with every sandbox in ``manager``."""
    settings = settings or load_settings()
    if manager is None:
        setup_logging(settings.log_level, settings.log_json)
        hosting = hosting or VercelProvider(settings.hosting)
        pipeline = DeploymentPipeline(hosting, settings.hosting)
        manager = SandboxManager(provider_factory(settings, pipeline))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("sitebox_starting", backend=settings.backend)
        yield
        logger.info("sitebox_stopping", sandboxes=len(manager))
        await manager.terminate_all()
        if hosting is not None:
            await hosting.aclose()

    app = FastAPI(title="sitebox", lifespan=lifespan)
    app.state.manager = manager
    app.state.hosting = hosting

    async def locate(sandbox_id: str) -> SandboxProvider | None:
        return await manager.get_or_create_provider(sandbox_id)

    @app.get("/health")
    async def health_check() -> dict:
        return {"status": "ok", "sandboxes": len(manager)}

    @app.post("/create-zip")
    async def create_zip(request: Request) -> Any:
        sandbox_id = await _sandbox_id_from_body(request)
        if not sandbox_id:
            return _failure(400, MISSING_ID)
        try:
            provider = await locate(sandbox_id)
            if provider is None:
                return _failure(404, NOT_FOUND)

            result = await provider.run_command(ARCHIVE_COMMAND)
            if not result.success:
                raise RuntimeError(f"Failed to create zip: {result.stderr or 'Unknown error'}")
            size = await provider.run_command(f"stat -c %s {ARCHIVE_PATH}")
            logger.info("archive_created", sandbox_id=sandbox_id, size=size.stdout.strip())

            download_url = await provider.get_download_url(ARCHIVE_PATH)
        except Exception as exc:
            logger.error("create_zip_failed", sandbox_id=sandbox_id, error=str(exc))
            return _failure(500, str(exc))
        return {
            "success": True,
            "dataUrl": download_url,
            "fileName": "project.zip",
            "message": "Zip file created successfully",
        }

    @app.post("/deploy-vercel")
    async def deploy_vercel(request: Request) -> Any:
        sandbox_id = await _sandbox_id_from_body(request)
        if not sandbox_id:
            return _failure(400, MISSING_ID)
        try:
            provider = await locate(sandbox_id)
            if provider is None:
                return _failure(404, NOT_FOUND)
            logger.info("publish_requested", sandbox_id=sandbox_id)
            result = await provider.publish()
        except Exception as exc:
            logger.error("deploy_failed", sandbox_id=sandbox_id, error=str(exc))
            return _failure(500, str(exc))
        return {
            "success": True,
            "url": result.url,
            "inspectUrl": result.inspect_url,
            "message": "Project published successfully",
        }

    @app.get("/sandbox-status")
    async def sandbox_status(sandboxId: str | None = None) -> Any:
        if not sandboxId:
            return _failure(400, MISSING_ID)
        try:
            provider = await locate(sandboxId)
            if provider is None:
                return _failure(404, NOT_FOUND)
            info = provider.sandbox_info
            healthy = provider.is_alive() and info is not None
            sandbox_data = None
            if info is not None:
                sandbox_data = {
                    **info.to_dict(),
                    "filesTracked": provider.tracked_files,
                    "lastHealthCheck": datetime.now(timezone.utc).isoformat(),
                }
        except Exception as exc:
            logger.error("sandbox_status_failed", sandbox_id=sandboxId, error=str(exc))
            return _failure(500, str(exc))
        return {
            "success": True,
            "active": True,
            "healthy": healthy,
            "sandboxData": sandbox_data,
            "message": "Sandbox is active and healthy" if healthy else "Sandbox exists but is not responding",
        }

    return app


app = create_app()
