"""
Tests for the Discord notification sink
"""

import json

import httpx
import pytest

from src.models.notifications import Notification, NotificationAuthor
from src.services.notification_service import DiscordNotificationService, NotificationDeliveryError

API = "https://discord.com/api/v10"


@pytest.fixture
def notification():
    return Notification(
        title="Issue opened: Crash",
        description="Steps to reproduce",
        color=0x3498DB,
        author=NotificationAuthor(name="octocat"),
        url="https://github.com/acme/widgets/issues/1",
        footer="GitHub issues - opened",
    )


class TestDiscordNotificationService:
    """Test cases for embed delivery"""

    @pytest.mark.asyncio
    async def test_posts_single_embed(self, notification):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "1"})

        service = DiscordNotificationService("bot-token", API, transport=httpx.MockTransport(handler))
        await service.send_notification("123", notification)
        await service.close()

        request = seen[0]
        assert request.url.path == "/api/v10/channels/123/messages"
        assert request.headers["Authorization"] == "Bot bot-token"
        embeds = json.loads(request.content)["embeds"]
        assert len(embeds) == 1
        assert embeds[0]["title"] == "Issue opened: Crash"
        assert embeds[0]["url"] == "https://github.com/acme/widgets/issues/1"

    @pytest.mark.asyncio
    async def test_unreachable_channel_fails_loudly(self, notification):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Unknown Channel"})

        service = DiscordNotificationService("bot-token", API, transport=httpx.MockTransport(handler))

        with pytest.raises(NotificationDeliveryError) as exc_info:
            await service.send_notification("999", notification)
        await service.close()

        assert exc_info.value.status_code == 404
        assert exc_info.value.channel_id == "999"

    @pytest.mark.asyncio
    async def test_missing_channel(self, notification):
        service = DiscordNotificationService("bot-token", API, transport=httpx.MockTransport(
            lambda request: httpx.Response(200)
        ))

        with pytest.raises(NotificationDeliveryError, match="No notification channel"):
            await service.send_notification(None, notification)
        await service.close()

    @pytest.mark.asyncio
    async def test_transport_error(self, notification):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        service = DiscordNotificationService("bot-token", API, transport=httpx.MockTransport(handler))

        with pytest.raises(NotificationDeliveryError, match="Request failed"):
            await service.send_notification("123", notification)
        await service.close()
