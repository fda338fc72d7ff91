"""
Data models and schemas for the application
"""

from .github import Issue, Repository, RawWebhookEvent, WebhookSettings, parse_event
from .notifications import Notification, NotificationColors
from .responses import (
    CreateIssueRequest,
    IssueQuery,
    IssuePage,
    SyncResult,
    ReconcileResult,
    WatchRequest,
    WebhookStatus,
)

__all__ = [
    "Issue",
    "Repository",
    "RawWebhookEvent",
    "WebhookSettings",
    "parse_event",
    "Notification",
    "NotificationColors",
    "IssueQuery",
    "IssuePage",
    "SyncResult",
    "ReconcileResult",
    "WebhookStatus",
    "WatchRequest",
    "CreateIssueRequest",
]
