"""
Repository sync and webhook watch endpoints
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from src.models.responses import WatchRequest
from src.services.errors import ServiceError
from src.services.shared_services import Services, get_services
from .errors import error_response, unexpected_error_response

router = APIRouter()
logger = structlog.get_logger()


@router.post("/sync")
async def sync_repositories(services: Services = Depends(get_services)) -> JSONResponse:
    """
    Mirror every repository of the configured owner
    """
    try:
        result = await services.sync_engine.sync_repositories()
        return JSONResponse(content={"success": True, "data": result.model_dump()})

    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error("Failed to sync repositories", error=str(e))
        return unexpected_error_response("Failed to sync repositories")


# Registered before the catch-all delete so "<name>/watch" is not taken as a name
@router.post("/{name:path}/watch")
async def watch_repository(
    name: str,
    request: Optional[WatchRequest] = Body(default=None),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """
    Create or update the GitHub webhook for a repository
    """
    repo_full_name = services.settings.full_repo_name(name)
    channel_id = request.channel_id if request else None
    try:
        result = await services.reconciler.ensure(repo_full_name, channel_id=channel_id)
        return JSONResponse(content={"success": True, "data": result.model_dump()})

    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error("Failed to watch repository", repository=repo_full_name, error=str(e))
        return unexpected_error_response(f"Failed to configure webhook for '{repo_full_name}'")


@router.delete("/{name:path}/watch")
async def unwatch_repository(name: str, services: Services = Depends(get_services)) -> JSONResponse:
    """
    Remove the GitHub webhook of a repository
    """
    repo_full_name = services.settings.full_repo_name(name)
    try:
        result = await services.reconciler.remove(repo_full_name)
        return JSONResponse(content={"success": True, "data": result.model_dump()})

    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error("Failed to unwatch repository", repository=repo_full_name, error=str(e))
        return unexpected_error_response(f"Failed to remove webhook for '{repo_full_name}'")


@router.get("/{name:path}/webhook")
async def check_webhook(name: str, services: Services = Depends(get_services)) -> JSONResponse:
    """
    Report the webhook state of a repository
    """
    repo_full_name = services.settings.full_repo_name(name)
    try:
        status = await services.reconciler.check(repo_full_name)
        return JSONResponse(content={"success": True, "data": status.model_dump()})

    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error("Failed to check webhook", repository=repo_full_name, error=str(e))
        return unexpected_error_response(f"Failed to check webhook for '{repo_full_name}'")


@router.delete("/{name:path}")
async def delete_repository(name: str, services: Services = Depends(get_services)) -> JSONResponse:
    """
    Delete a repository on GitHub together with its local record and issues
    """
    repo_full_name = services.settings.full_repo_name(name)
    try:
        deleted = await services.sync_engine.delete_repository(repo_full_name)
        return JSONResponse(content={
            "success": True,
            "data": {"repository": repo_full_name, "local_record_deleted": deleted},
        })

    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error("Failed to delete repository", repository=repo_full_name, error=str(e))
        return unexpected_error_response(f"Failed to delete repository '{repo_full_name}'")
