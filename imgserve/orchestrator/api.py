"""FastAPI applications for the image server."""

import asyncio
import logging
from typing import Dict, Any, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from ..config.server_config import ServerConfig
from ..storage.asset_lookup import AssetNotFound, AssetUnreadable, InvalidAssetPath
from ..storage.cache_store import SweepReport
from ..utils.format_utils import format_bytes
from .health_checks import get_health_status
from .prometheus_metrics import metrics_collector, metrics_router
from .resize_service import InvalidDimensions, ResizeService

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


class SweepResponse(BaseModel):
    """Result of a sweep or clear."""
    status: str
    days: Optional[int]
    deleted_count: int
    bytes_freed: int
    bytes_freed_human: str
    failed_count: int
    cache_dir_exists: bool

    @classmethod
    def from_report(cls, report: SweepReport) -> 'SweepResponse':
        return cls(
            status="success" if report.failed_count == 0 else "partial",
            days=report.days,
            deleted_count=report.deleted_count,
            bytes_freed=report.bytes_freed,
            bytes_freed_human=format_bytes(report.bytes_freed),
            failed_count=report.failed_count,
            cache_dir_exists=report.cache_dir_exists,
        )


def format_error(message: str, error_type: str = "server_error") -> Dict[str, Any]:
    """
    Format an error body.

    Args:
        message: Error message
        error_type: invalid_request_error, not_found_error or server_error

    Returns:
        Error object
    """
    return {
        "error": {
            "message": message,
            "type": error_type
        }
    }


def _install_error_handler(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc: HTTPException):
        """Render HTTPException with the common error body."""
        error_type = "server_error"
        if exc.status_code == 400:
            error_type = "invalid_request_error"
        elif exc.status_code == 404:
            error_type = "not_found_error"

        return JSONResponse(
            status_code=exc.status_code,
            content=format_error(str(exc.detail), error_type)
        )


def create_app(config: ServerConfig, service: ResizeService) -> FastAPI:
    """
    Create the public image application.

    Args:
        config: Server configuration
        service: ResizeService instance

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="Image Server",
        description="On-demand image resizing with content-addressed disk caching",
        version=VERSION
    )
    _install_error_handler(app)

    @app.get("/health")
    async def health_check():
        """Basic health check."""
        return {"status": "healthy", "version": VERSION}

    @app.get("/images/{path:path}")
    async def serve_image(
        path: str,
        w: Optional[str] = Query(None, description="Target width in px"),
        h: Optional[str] = Query(None, description="Target height in px"),
        fit: Optional[str] = Query("contain", description="contain, cover or fill"),
    ):
        """
        Serve a stored image, resized when w and/or h are given.

        Transforms are CPU-bound and run in a worker thread.
        """
        try:
            result = await asyncio.to_thread(service.handle, path, w, h, fit)
        except (InvalidDimensions, InvalidAssetPath) as e:
            metrics_collector.record_error(400)
            raise HTTPException(status_code=400, detail=str(e))
        except AssetNotFound as e:
            metrics_collector.record_error(404)
            raise HTTPException(status_code=404, detail=str(e))
        except AssetUnreadable as e:
            logger.error(f"Unreadable asset: {e}")
            metrics_collector.record_error(500)
            raise HTTPException(status_code=500, detail=str(e))

        return Response(
            content=result.body,
            media_type=result.media_type,
            headers=result.headers
        )

    return app


def create_admin_app(config: ServerConfig, service: ResizeService) -> FastAPI:
    """
    Create admin API application.

    Args:
        config: Server configuration
        service: ResizeService instance

    Returns:
        FastAPI application for admin endpoints
    """
    app = FastAPI(
        title="Image Server - Admin API",
        description="Cache maintenance and monitoring",
        version=VERSION
    )
    _install_error_handler(app)
    app.include_router(metrics_router)

    @app.get("/admin/health")
    async def admin_health():
        """Component health: storage, cache directory, disk."""
        health = get_health_status(config.storage_dir, config.cache_dir)
        return {
            "status": "healthy" if health["healthy"] else "degraded",
            "components": health["components"],
            "version": VERSION
        }

    @app.get("/admin/status")
    async def admin_status():
        """Server configuration and cache usage."""
        stats = await asyncio.to_thread(service.stats)
        return {
            "status": "running",
            "version": VERSION,
            "ports": {
                "main": config.main_port,
                "admin": config.admin_port
            },
            "cache": {
                **stats,
                "total_human": format_bytes(stats["disk"]["total_bytes"])
            },
            "config": config.to_dict()
        }

    @app.post("/admin/cache/sweep", response_model=SweepResponse)
    async def admin_sweep(
        days: Optional[int] = Query(None, ge=0, description="Retention window in days")
    ):
        """Delete cached renditions older than the retention window."""
        report = await asyncio.to_thread(service.sweep, days)
        return SweepResponse.from_report(report)

    @app.post("/admin/cache/clear", response_model=SweepResponse)
    async def admin_clear():
        """Delete every cached rendition."""
        report = await asyncio.to_thread(service.clear)
        return SweepResponse.from_report(report)

    return app
