"""
Health check endpoints
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from src.services.shared_services import Services, get_services

router = APIRouter()
logger = structlog.get_logger()


@router.get("")
async def health_check(services: Services = Depends(get_services)) -> JSONResponse:
    """
    Health check endpoint for monitoring
    """
    try:
        health_data = {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "version": "1.0.0",
            "service": "octobot-github-bridge",
            "port": services.settings.PORT,
            "debug": services.settings.DEBUG,
            "event_router": services.event_router.get_event_stats(),
            "cached_listings": len(services.cache),
        }

        return JSONResponse(content=health_data, status_code=200)

    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return JSONResponse(
            content={
                "status": "unhealthy",
                "timestamp": datetime.utcnow().isoformat(),
                "error": str(e),
            },
            status_code=503,
        )


@router.get("/ready")
async def readiness_check(services: Services = Depends(get_services)) -> JSONResponse:
    """
    Readiness check endpoint for deployment
    """
    try:
        settings = services.settings
        checks = {
            "github_token": bool(settings.GITHUB_TOKEN),
            "webhook_secret": bool(settings.GITHUB_WEBHOOK_SECRET),
            "discord_token": bool(settings.DISCORD_TOKEN),
            "database": await services.database.check_health(),
        }

        all_ready = all(checks.values())

        return JSONResponse(
            content={
                "ready": all_ready,
                "checks": checks,
                "timestamp": datetime.utcnow().isoformat(),
            },
            status_code=200 if all_ready else 503,
        )

    except Exception as e:
        logger.error("Readiness check failed", error=str(e))
        return JSONResponse(
            content={
                "ready": False,
                "error": str(e),
                "timestamp": datetime.utcnow().isoformat(),
            },
            status_code=503,
        )
