"""
Chat notification models
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class NotificationColors:
    """Embed color codes"""

    SUCCESS = 0x00FF00
    ERROR = 0xFF0000
    WARNING = 0xFFA500
    INFO = 0x0099FF
    DEFAULT = 0x7289DA
    BRANCH = 0xFFFF00
    PR_OPEN = 0x2ECC71
    PR_MERGED = 0x9B59B6
    PR_CLOSED = 0xE67E22
    ISSUE_OPEN = 0x3498DB
    ISSUE_CLOSED = 0xE74C3C


class NotificationField(BaseModel):
    name: str
    value: str
    inline: bool = False


class NotificationAuthor(BaseModel):
    name: str
    icon_url: Optional[str] = None


class Notification(BaseModel):
    """Render-only notification, never persisted"""

    title: str
    description: str
    color: int = NotificationColors.DEFAULT
    fields: List[NotificationField] = []
    author: NotificationAuthor
    url: Optional[str] = None
    footer: str = ""
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def to_embed(self) -> Dict[str, Any]:
        """Discord embed representation"""
        embed: Dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "color": self.color,
            "fields": [field.model_dump() for field in self.fields],
            "author": self.author.model_dump(exclude_none=True),
            "footer": {"text": self.footer},
            "timestamp": self.timestamp.isoformat(),
        }
        if self.url:
            embed["url"] = self.url
        return embed
