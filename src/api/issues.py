"""
Issue listing, sync and lookup endpoints
"""

from datetime import datetime
from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from src.models.responses import CreateIssueRequest, IssueQuery
from src.services.errors import ServiceError
from src.services.shared_services import Services, get_services
from .errors import error_response, unexpected_error_response

router = APIRouter()
logger = structlog.get_logger()


@router.get("")
async def list_issues(
    state: Literal["open", "closed", "all"] = Query("open", description="Issue state filter"),
    repo: Optional[str] = Query(None, description="Repository name; all stored repositories when omitted"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(10, ge=1, le=100, description="Issues per page"),
    sort: Literal["created", "updated", "comments", "number"] = Query("updated"),
    direction: Literal["asc", "desc"] = Query("desc"),
    labels: Optional[str] = Query(None, description="Comma separated label names; any of them matches"),
    since: Optional[datetime] = Query(None, description="Only issues updated at or after this time"),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """
    List issues one page at a time
    """
    query = IssueQuery(
        state=state, repo=repo, page=page, per_page=per_page, sort=sort, direction=direction,
        labels=labels, since=since,
    )
    repo_full_name = services.settings.full_repo_name(repo) if repo else None
    try:
        result = await services.issues.get_issues(query, repo_full_name)
        return JSONResponse(content={"success": True, **result.model_dump(mode="json")})

    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error("Failed to list issues", repository=repo_full_name, error=str(e))
        return unexpected_error_response("Failed to fetch issues")


@router.post("/sync")
async def sync_issues(services: Services = Depends(get_services)) -> JSONResponse:
    """
    Mirror open and closed issues of every stored repository
    """
    try:
        result = await services.sync_engine.sync_issues()
        return JSONResponse(content={"success": True, "data": result.model_dump()})

    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error("Failed to sync issues", error=str(e))
        return unexpected_error_response("Failed to sync issues")


@router.get("/{number}")
async def get_issue(
    number: int,
    repo: str = Query(..., min_length=1, description="Repository the issue belongs to"),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """
    Get one issue, fetching it from GitHub when it is not stored yet
    """
    repo_full_name = services.settings.full_repo_name(repo)
    try:
        issue = await services.sync_engine.get_issue(repo_full_name, number)
        return JSONResponse(content={"success": True, "data": issue.model_dump(mode="json")})

    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error("Failed to get issue", repository=repo_full_name, number=number, error=str(e))
        return unexpected_error_response(f"Failed to fetch issue #{number}")


@router.post("")
async def create_issue(
    request: CreateIssueRequest,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """
    Create an issue on GitHub
    """
    repo_full_name = services.settings.full_repo_name(request.repo)
    try:
        issue = await services.issues.create_issue(
            repo_full_name, request.title, request.body, request.labels
        )
        return JSONResponse(
            content={"success": True, "data": issue.model_dump(mode="json")},
            status_code=201,
        )

    except ServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error("Failed to create issue", repository=repo_full_name, error=str(e))
        return unexpected_error_response(f"Failed to create issue in '{repo_full_name}'")
