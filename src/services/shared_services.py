"""
Service container built once at startup and shared through app.state
"""

from dataclasses import dataclass

import structlog
from fastapi import Request

from config.settings import Settings
from .database_service import DatabaseService
from .event_router import EventRouter
from .github_client import GitHubClient
from .issue_service import IssueService
from .notification_service import DiscordNotificationService
from .query_cache import QueryCache
from .sync_engine import SyncEngine
from .webhook_reconciler import WebhookReconciler

logger = structlog.get_logger()


@dataclass
class Services:
    """Every long-lived collaborator, wired explicitly"""

    settings: Settings
    database: DatabaseService
    github_client: GitHubClient
    notifications: DiscordNotificationService
    cache: QueryCache
    event_router: EventRouter
    reconciler: WebhookReconciler
    sync_engine: SyncEngine
    issues: IssueService

    async def start(self) -> None:
        await self.database.initialize()
        logger.info("Services started", webhook_url=self.settings.webhook_url)

    async def close(self) -> None:
        await self.github_client.close()
        await self.notifications.close()
        await self.database.close()
        logger.info("Services stopped")


def build_services(settings: Settings) -> Services:
    """Wire the service graph from settings"""
    database = DatabaseService(settings.DATABASE_URL)
    github_client = GitHubClient(
        token=settings.GITHUB_TOKEN,
        owner=settings.GITHUB_OWNER,
        api_url=settings.GITHUB_API_URL,
    )
    notifications = DiscordNotificationService(settings.DISCORD_TOKEN, settings.DISCORD_API_URL)
    cache = QueryCache(ttl_seconds=settings.ISSUE_CACHE_TTL_SECONDS)
    default_channel_id = settings.DISCORD_CHANNEL_ID or None

    sync_engine = SyncEngine(github_client, database, cache, batch_size=settings.SYNC_BATCH_SIZE)

    return Services(
        settings=settings,
        database=database,
        github_client=github_client,
        notifications=notifications,
        cache=cache,
        event_router=EventRouter(
            database,
            notifications,
            default_channel_id=default_channel_id,
            dedup_window_seconds=settings.DELIVERY_DEDUP_WINDOW_SECONDS,
        ),
        reconciler=WebhookReconciler(
            github_client,
            database,
            webhook_url=settings.webhook_url,
            webhook_secret=settings.GITHUB_WEBHOOK_SECRET,
            events=settings.webhook_events,
            default_channel_id=default_channel_id,
        ),
        sync_engine=sync_engine,
        issues=IssueService(github_client, database, cache, sync_engine),
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the container of the running app"""
    return request.app.state.services
