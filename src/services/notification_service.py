"""
Discord notification sink
"""

from typing import Optional, Protocol

import httpx
import structlog

from src.models.notifications import Notification

logger = structlog.get_logger()


class NotificationDeliveryError(Exception):
    """Raised when a notification could not be delivered"""
    def __init__(self, message: str, channel_id: Optional[str] = None, status_code: int = None):
        self.message = message
        self.channel_id = channel_id
        self.status_code = status_code
        super().__init__(message)


class NotificationSink(Protocol):
    async def send_notification(self, channel_id: str, notification: Notification) -> None:
        ...


class DiscordNotificationService:
    """Posts notifications as embeds to a Discord channel"""

    def __init__(self, token: str, api_url: str = "https://discord.com/api/v10",
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bot {token}",
                "User-Agent": "OctoBot-GitHub-Bridge/1.0",
            },
            timeout=httpx.Timeout(15.0),
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def send_notification(self, channel_id: str, notification: Notification) -> None:
        """Send one embed; raises NotificationDeliveryError if the channel is unreachable"""
        if not channel_id:
            raise NotificationDeliveryError("No notification channel configured")
        if not self.token:
            raise NotificationDeliveryError("Discord token is not configured", channel_id=channel_id)

        url = f"{self.api_url}/channels/{channel_id}/messages"
        try:
            response = await self.client.post(url, json={"embeds": [notification.to_embed()]})
        except httpx.RequestError as e:
            logger.error("Discord request failed", channel_id=channel_id, error=str(e))
            raise NotificationDeliveryError(f"Request failed: {str(e)}", channel_id=channel_id)

        if response.status_code >= 400:
            logger.error(
                "Discord rejected notification",
                channel_id=channel_id,
                status_code=response.status_code,
            )
            raise NotificationDeliveryError(
                f"Discord API error: {response.status_code}",
                channel_id=channel_id,
                status_code=response.status_code,
            )

        logger.info("Notification sent", channel_id=channel_id, title=notification.title)
