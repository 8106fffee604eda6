"""Health check endpoints."""
from __future__ import annotations

import logging
import os
import platform
import time
from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from .config import Settings
from .protocols import UserStore

logger = logging.getLogger("taskmanager.health")

API_VERSION = "1.0.0"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_health_router(store: UserStore, settings: Settings) -> APIRouter:
    started = time.monotonic()
    router = APIRouter(prefix="/api/health", tags=["health"])

    def _uptime() -> float:
        return round(time.monotonic() - started, 3)

    def _check_store() -> Dict[str, object]:
        try:
            report = dict(store.ping())
        except Exception as exc:
            logger.warning("Store health check failed: %s", exc)
            return {"status": "disconnected", "error": str(exc)}
        return report

    @router.get("")
    async def health() -> Dict[str, object]:
        return {
            "success": True,
            "message": "API is healthy",
            "timestamp": _timestamp(),
            "uptime": _uptime(),
            "environment": settings.environment,
            "version": API_VERSION,
        }

    @router.get("/db")
    def database_health() -> JSONResponse:
        report = _check_store()
        healthy = report.get("status") == "connected"
        payload = {
            "success": healthy,
            "message": "Database health check completed" if healthy else "Database health check failed",
            "timestamp": _timestamp(),
            "database": report,
        }
        code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(status_code=code, content=payload)

    @router.get("/full")
    def full_health() -> JSONResponse:
        report = _check_store()
        services = {
            "api": "healthy",
            "database": "healthy" if report.get("status") == "connected" else "unhealthy",
            "authentication": "healthy",
        }
        all_healthy = all(value == "healthy" for value in services.values())
        payload = {
            "success": all_healthy,
            "message": "Full health check completed",
            "timestamp": _timestamp(),
            "uptime": _uptime(),
            "environment": settings.environment,
            "version": API_VERSION,
            "system": {
                "platform": platform.system().lower(),
                "pythonVersion": platform.python_version(),
                "pid": os.getpid(),
            },
            "database": report,
            "services": services,
        }
        code = status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(status_code=code, content=payload)

    return router


__all__ = ["API_VERSION", "create_health_router"]
