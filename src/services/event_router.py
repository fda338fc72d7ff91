"""
GitHub event routing: audit persistence and fan-out to notification renderers
"""

import time
import structlog
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from src.models.github import (
    CreateEvent,
    DeleteEvent,
    IssuesEvent,
    PullRequestEvent,
    PushEvent,
    RawWebhookEvent,
    ReleaseEvent,
    WebhookEventBase,
    parse_event,
)
from src.models.notifications import Notification
from . import notification_composer
from .database_service import DatabaseService
from .notification_service import NotificationSink

logger = structlog.get_logger()


class EventState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    PERSISTED = "persisted"
    DISPATCHED = "dispatched"
    IGNORED = "ignored"
    DISPATCH_FAILED = "dispatch_failed"


_TRANSITIONS = {
    EventState.RECEIVED: {EventState.VERIFIED},
    # A duplicate delivery is dropped before it is persisted a second time
    EventState.VERIFIED: {EventState.PERSISTED, EventState.IGNORED},
    EventState.PERSISTED: {EventState.DISPATCHED, EventState.IGNORED, EventState.DISPATCH_FAILED},
}


class InvalidEventTransition(ValueError):
    pass


@dataclass
class WebhookDelivery:
    """One inbound delivery moving through the routing states"""

    event_type: str
    payload: Dict[str, Any]
    delivery_id: Optional[str] = None
    state: EventState = EventState.RECEIVED
    reason: Optional[str] = None
    processor: Optional[str] = None

    @property
    def repository_full_name(self) -> Optional[str]:
        repository = self.payload.get("repository") or {}
        return repository.get("full_name") if isinstance(repository, dict) else None

    @property
    def action(self) -> Optional[str]:
        return self.payload.get("action")

    def transition_to(self, state: EventState, reason: Optional[str] = None) -> None:
        if state not in _TRANSITIONS.get(self.state, set()):
            raise InvalidEventTransition(f"Cannot move delivery from {self.state.value} to {state.value}")
        self.state = state
        if reason:
            self.reason = reason

    def mark_verified(self) -> None:
        self.transition_to(EventState.VERIFIED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.state.value,
            "event_type": self.event_type,
            "delivery_id": self.delivery_id,
            "reason": self.reason,
            "processor": self.processor,
        }


class EventProcessor(ABC):
    """Abstract base class for event processors"""

    def __init__(self, notification_sink: NotificationSink):
        self.notification_sink = notification_sink

    @abstractmethod
    async def can_handle(self, event_type: str, event: WebhookEventBase) -> bool:
        """Check if this processor can handle the event"""
        pass

    def render(self, event: WebhookEventBase) -> Notification:
        """Build the notification for the event"""
        return notification_composer.render(event.kind, event)

    async def process(self, event: WebhookEventBase, channel_id: str) -> Notification:
        """Render the event and hand it to the notification sink"""
        notification = self.render(event)
        await self.notification_sink.send_notification(channel_id, notification)
        return notification


class PushEventProcessor(EventProcessor):
    """Processes push events"""

    async def can_handle(self, event_type: str, event: WebhookEventBase) -> bool:
        return isinstance(event, PushEvent)


class PullRequestEventProcessor(EventProcessor):
    """Processes pull request events"""

    async def can_handle(self, event_type: str, event: WebhookEventBase) -> bool:
        return isinstance(event, PullRequestEvent)


class IssueEventProcessor(EventProcessor):
    """Processes issue events"""

    async def can_handle(self, event_type: str, event: WebhookEventBase) -> bool:
        return isinstance(event, IssuesEvent)


class ReleaseEventProcessor(EventProcessor):
    """Processes release events"""

    async def can_handle(self, event_type: str, event: WebhookEventBase) -> bool:
        return isinstance(event, ReleaseEvent)


class BranchEventProcessor(EventProcessor):
    """Processes create/delete events for branches; tags are ignored"""

    async def can_handle(self, event_type: str, event: WebhookEventBase) -> bool:
        return isinstance(event, (CreateEvent, DeleteEvent)) and event.ref_type == "branch"


class EventRouter:
    """Routes verified GitHub deliveries to notification processors"""

    def __init__(self, database: DatabaseService, notification_sink: NotificationSink,
                 default_channel_id: Optional[str] = None, dedup_window_seconds: float = 300,
                 clock: Callable[[], float] = time.monotonic):
        self.database = database
        self.notification_sink = notification_sink
        self.default_channel_id = default_channel_id

        # Initialize processors
        self.processors: List[EventProcessor] = [
            PushEventProcessor(notification_sink),
            PullRequestEventProcessor(notification_sink),
            IssueEventProcessor(notification_sink),
            ReleaseEventProcessor(notification_sink),
            BranchEventProcessor(notification_sink),
        ]

        # GitHub redelivers on timeouts; remember recent delivery ids
        self.event_cache: Dict[str, float] = {}
        self.dedup_window_seconds = dedup_window_seconds
        self._clock = clock

    async def route_event(self, delivery: WebhookDelivery) -> WebhookDelivery:
        """Persist a verified delivery and dispatch it to the matching processor"""
        if delivery.state != EventState.VERIFIED:
            raise InvalidEventTransition("Only verified deliveries can be routed")

        if self._is_duplicate_event(delivery.delivery_id):
            logger.info("Duplicate delivery detected, skipping", delivery_id=delivery.delivery_id)
            delivery.transition_to(EventState.IGNORED, "duplicate delivery")
            return delivery

        # Audit trail first, whether or not anything renders the event
        await self.database.record_webhook_event(RawWebhookEvent(
            event_type=delivery.event_type,
            repository_full_name=delivery.repository_full_name,
            delivery_id=delivery.delivery_id,
            payload=delivery.payload,
        ))
        delivery.transition_to(EventState.PERSISTED)

        event = parse_event(delivery.event_type, delivery.payload)

        # Find appropriate processor
        for processor in self.processors:
            if await processor.can_handle(delivery.event_type, event):
                delivery.processor = processor.__class__.__name__
                channel_id = await self._resolve_channel(delivery.repository_full_name)
                try:
                    await processor.process(event, channel_id)
                except Exception as e:
                    logger.error(
                        "Event processing failed",
                        event_type=delivery.event_type,
                        processor=delivery.processor,
                        delivery_id=delivery.delivery_id,
                        error=str(e)
                    )
                    return self._complete(delivery, EventState.DISPATCH_FAILED, str(e))

                logger.info(
                    "Event processed",
                    event_type=delivery.event_type,
                    action=delivery.action,
                    repository=delivery.repository_full_name,
                    processor=delivery.processor,
                )
                return self._complete(delivery, EventState.DISPATCHED)

        # No processor found
        logger.info("No processor for event", event_type=delivery.event_type, action=delivery.action)
        return self._complete(delivery, EventState.IGNORED, f"No processor for event type: {delivery.event_type}")

    def _complete(self, delivery: WebhookDelivery, state: EventState,
                  reason: Optional[str] = None) -> WebhookDelivery:
        """Move to a terminal state; only finished deliveries count as duplicates later"""
        delivery.transition_to(state, reason)
        if delivery.delivery_id:
            self.event_cache[delivery.delivery_id] = self._clock()
        return delivery

    async def _resolve_channel(self, repo_full_name: Optional[str]) -> Optional[str]:
        """Use the channel bound when the repository was watched, else the default"""
        if repo_full_name:
            try:
                repository = await self.database.get_repository_by_name(repo_full_name)
            except Exception as e:
                logger.warning("Channel lookup failed, using default", repository=repo_full_name, error=str(e))
                repository = None
            if repository and repository.webhook_settings and repository.webhook_settings.channel_id:
                return repository.webhook_settings.channel_id
        return self.default_channel_id

    def _is_duplicate_event(self, delivery_id: Optional[str]) -> bool:
        """Check if the delivery was recently processed"""
        if not delivery_id or delivery_id not in self.event_cache:
            return False
        return self._clock() - self.event_cache[delivery_id] < self.dedup_window_seconds

    async def cleanup_event_cache(self) -> None:
        """Clean up old entries from event cache"""
        cutoff = self._clock() - self.dedup_window_seconds
        expired_keys = [
            key for key, timestamp in self.event_cache.items()
            if timestamp < cutoff
        ]

        for key in expired_keys:
            del self.event_cache[key]

        if expired_keys:
            logger.debug("Cleaned up event cache", expired_count=len(expired_keys))

    def get_event_stats(self) -> Dict[str, Any]:
        """Get event processing statistics"""
        return {
            "cache_size": len(self.event_cache),
            "processors_count": len(self.processors),
            "dedup_window_seconds": self.dedup_window_seconds,
        }
