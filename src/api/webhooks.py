"""
GitHub webhook endpoints
"""

import uuid
from datetime import datetime
from typing import Dict, Any

import structlog
from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse

from src.services.errors import ErrorCategory
from src.services.event_router import WebhookDelivery
from src.services.shared_services import Services, get_services
from src.utils.webhook_validator import requires_signature, verify_delivery
from .errors import failure

router = APIRouter()
logger = structlog.get_logger()


@router.post("/github")
async def github_webhook(
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """
    Receive a GitHub delivery: verify, persist, then dispatch
    """
    event_type = request.headers.get("X-GitHub-Event")
    delivery_id = request.headers.get("X-GitHub-Delivery")
    signature = request.headers.get("X-Hub-Signature-256")

    if not event_type:
        return failure("Missing X-GitHub-Event header", ErrorCategory.VALIDATION_ERROR)

    # Signature is checked against the raw bytes before anything parses them
    body = await request.body()
    if requires_signature(event_type) and not signature:
        logger.warning("Rejected unsigned delivery", event_type=event_type, delivery_id=delivery_id)
        return failure("Missing webhook signature", ErrorCategory.UNAUTHENTICATED)
    if not verify_delivery(event_type, body, signature, services.settings.GITHUB_WEBHOOK_SECRET):
        logger.warning("Rejected delivery with invalid signature", event_type=event_type, delivery_id=delivery_id)
        return failure("Invalid webhook signature", ErrorCategory.UNAUTHENTICATED)

    try:
        payload = await request.json()
    except ValueError as e:
        logger.error("Failed to parse webhook payload", error=str(e))
        return failure("Invalid JSON payload", ErrorCategory.VALIDATION_ERROR)

    if not isinstance(payload, dict):
        return failure("Webhook payload must be a JSON object", ErrorCategory.VALIDATION_ERROR)

    if event_type == "ping":
        logger.info("Received ping", hook_id=payload.get("hook_id"), zen=payload.get("zen"))
        return JSONResponse(content={"success": True, "status": "pong", "hook_id": payload.get("hook_id")})

    logger.info(
        "Received GitHub webhook",
        event_type=event_type,
        delivery_id=delivery_id,
        action=payload.get("action"),
        repository=(payload.get("repository") or {}).get("full_name"),
    )

    delivery = WebhookDelivery(event_type=event_type, payload=payload, delivery_id=delivery_id)
    delivery.mark_verified()
    return await _route(services, delivery)


@router.post("/github/test")
async def test_webhook(services: Services = Depends(get_services)) -> JSONResponse:
    """Route a canned push event through the router (debug only)"""
    if not services.settings.DEBUG:
        return failure("Not found", ErrorCategory.NOT_FOUND)

    delivery = WebhookDelivery(
        event_type="push",
        payload=_sample_push_payload(services.settings.full_repo_name("test-repo")),
        delivery_id=f"test-{uuid.uuid4()}",
    )
    delivery.mark_verified()
    return await _route(services, delivery)


async def _route(services: Services, delivery: WebhookDelivery) -> JSONResponse:
    event_router = services.event_router
    try:
        await event_router.cleanup_event_cache()
        await event_router.route_event(delivery)
    except Exception as e:
        # Unfinished deliveries are not remembered, so a GitHub redelivery is routed again
        logger.error(
            "Webhook processing failed",
            event_type=delivery.event_type,
            delivery_id=delivery.delivery_id,
            error=str(e),
        )
        return failure("Internal processing error", ErrorCategory.UNKNOWN)

    logger.info(
        "Webhook event processed",
        event_type=delivery.event_type,
        delivery_id=delivery.delivery_id,
        status=delivery.state.value,
    )
    return JSONResponse(content={"success": True, **delivery.to_dict()})


def _sample_push_payload(repo_full_name: str) -> Dict[str, Any]:
    owner, _, name = repo_full_name.partition("/")
    return {
        "ref": "refs/heads/main",
        "compare": f"https://github.com/{repo_full_name}/compare/abc1234...def5678",
        "commits": [
            {
                "id": "def5678901234567890",
                "message": "Test commit from webhook test endpoint",
                "timestamp": datetime.utcnow().isoformat(),
            }
        ],
        "pusher": {"name": owner},
        "repository": {
            "name": name,
            "full_name": repo_full_name,
            "html_url": f"https://github.com/{repo_full_name}",
        },
        "sender": {"login": owner},
    }
