"""
Request, response and query models for the HTTP API
"""

from datetime import datetime, timezone
from typing import Optional, List, Any, Literal
from pydantic import BaseModel, Field, field_validator


class SyncResult(BaseModel):
    """Outcome of a sync pass; synced < total signals partial success"""

    total: int = 0
    synced: int = 0
    repositories: Optional[int] = None
    failed_repositories: List[str] = []


class IssueQuery(BaseModel):
    """Validated issue listing parameters"""

    state: Literal["open", "closed", "all"] = "open"
    repo: Optional[str] = None
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=10, ge=1, le=100)
    sort: Literal["created", "updated", "comments", "number"] = "updated"
    direction: Literal["asc", "desc"] = "desc"
    labels: List[str] = []
    since: Optional[datetime] = None

    @field_validator("labels", mode="before")
    @classmethod
    def split_labels(cls, value: Any) -> Any:
        """Accept "bug,ui" as well as a list"""
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [name.strip() for item in value for name in str(item).split(",") if name.strip()]

    @field_validator("since")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Pagination(BaseModel):
    page: int
    per_page: int
    total_pages: int
    has_more: bool


class IssuePage(BaseModel):
    """One page sliced from a full issue listing"""

    data: List[Any]
    total: int
    pagination: Pagination
    failed_repositories: List[str] = []


class WebhookStatus(BaseModel):
    """Current hook state of a repository"""

    exists: bool
    active: Optional[bool] = None
    hook_id: Optional[int] = None
    channel_id: Optional[str] = None
    in_sync: Optional[bool] = None


class ReconcileResult(BaseModel):
    """Outcome of a hook reconciliation"""

    repository: str
    action: Literal["created", "updated", "unchanged", "deleted", "absent"]
    hook_id: Optional[int] = None
    local_state_saved: bool = True


class WatchRequest(BaseModel):
    """Optional destination binding for a watched repository"""

    channel_id: Optional[str] = None


class CreateIssueRequest(BaseModel):
    repo: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=256)
    body: str = ""
    labels: List[str] = []
