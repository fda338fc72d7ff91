"""
GitHub data models: locally mirrored records and typed webhook events
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Literal
from pydantic import BaseModel, ConfigDict, Field


class GitHubUser(BaseModel):
    """GitHub user reference"""

    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    login: str = "unknown"
    avatar_url: Optional[str] = None
    html_url: Optional[str] = None
    type: Optional[str] = None


class Label(BaseModel):
    """Issue label"""

    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    name: str
    color: Optional[str] = None
    description: Optional[str] = None


class Milestone(BaseModel):
    """Issue milestone"""

    model_config = ConfigDict(extra="ignore")

    id: int
    number: int
    title: str
    description: Optional[str] = None
    state: Optional[str] = None
    due_on: Optional[datetime] = None


class WebhookSettings(BaseModel):
    """Desired hook configuration bound to a watched repository"""

    events: List[str] = []
    channel_id: Optional[str] = None


class Repository(BaseModel):
    """Local mirror of a GitHub repository"""

    github_id: int
    name: str
    full_name: str
    description: str = ""
    url: Optional[str] = None
    is_private: bool = False
    language: Optional[str] = None
    stars: int = 0
    forks: int = 0
    default_branch: str = "main"
    topics: List[str] = []
    owner: GitHubUser
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Local-only fields, never provided by GitHub
    webhook_active: bool = False
    webhook_settings: Optional[WebhookSettings] = None

    @classmethod
    def from_github(cls, data: Dict[str, Any]) -> "Repository":
        """Map a GitHub repository payload onto the local schema"""
        return cls(
            github_id=data["id"],
            name=data["name"],
            full_name=data["full_name"],
            description=data.get("description") or "",
            url=data.get("html_url"),
            is_private=bool(data.get("private", False)),
            language=data.get("language"),
            stars=data.get("stargazers_count") or 0,
            forks=data.get("forks_count") or 0,
            default_branch=data.get("default_branch") or "main",
            topics=data.get("topics") or [],
            owner=GitHubUser(**(data.get("owner") or {})),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class IssueRepositoryRef(BaseModel):
    """Repository reference embedded in an issue"""

    id: Optional[int] = None
    name: str
    full_name: str
    private: bool = False


class Issue(BaseModel):
    """Local mirror of a GitHub issue"""

    github_id: int
    number: int
    title: str
    body: str = ""
    state: Literal["open", "closed"] = "open"
    labels: List[Label] = []
    user: GitHubUser
    assignee: Optional[GitHubUser] = None
    repository: IssueRepositoryRef
    comments: int = 0
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None
    locked: bool = False
    milestone: Optional[Milestone] = None
    url: Optional[str] = None
    html_url: Optional[str] = None

    @staticmethod
    def is_pull_request(data: Dict[str, Any]) -> bool:
        """The issues listing also returns pull requests, marked by this key"""
        return "pull_request" in data

    @classmethod
    def from_github(cls, data: Dict[str, Any], repo_full_name: str,
                    repo_id: Optional[int] = None, private: bool = False) -> "Issue":
        """Map a GitHub issue payload onto the local schema"""
        return cls(
            github_id=data["id"],
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            state=data.get("state", "open"),
            labels=[Label(**label) for label in data.get("labels") or [] if isinstance(label, dict)],
            user=GitHubUser(**(data.get("user") or {})),
            assignee=GitHubUser(**data["assignee"]) if data.get("assignee") else None,
            repository=IssueRepositoryRef(
                id=repo_id,
                name=repo_full_name.split("/")[-1],
                full_name=repo_full_name,
                private=private,
            ),
            comments=data.get("comments") or 0,
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            closed_at=data.get("closed_at"),
            locked=bool(data.get("locked", False)),
            milestone=Milestone(**data["milestone"]) if data.get("milestone") else None,
            url=data.get("url"),
            html_url=data.get("html_url"),
        )


class RawWebhookEvent(BaseModel):
    """Append-only audit record of a received delivery"""

    event_type: str
    repository_full_name: Optional[str] = None
    delivery_id: Optional[str] = None
    payload: Dict[str, Any]
    received_at: datetime = Field(default_factory=datetime.utcnow)


# Typed webhook event variants

class EventRepository(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    name: str = "unknown"
    full_name: str = "unknown/unknown"
    html_url: Optional[str] = None


class WebhookEventBase(BaseModel):
    """Fields shared by every GitHub delivery"""

    model_config = ConfigDict(extra="allow")

    action: Optional[str] = None
    repository: EventRepository = Field(default_factory=EventRepository)
    sender: GitHubUser = Field(default_factory=GitHubUser)


class PushCommit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    message: str = ""
    url: Optional[str] = None


class PushPusher(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = "unknown"
    email: Optional[str] = None


class PushEvent(WebhookEventBase):
    kind: Literal["push"] = "push"
    ref: str = ""
    compare: Optional[str] = None
    commits: List[PushCommit] = []
    pusher: PushPusher = Field(default_factory=PushPusher)


class BranchRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ref: str = "unknown"


class PullRequestData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: Optional[int] = None
    title: str = ""
    body: Optional[str] = None
    state: str = "open"
    merged: bool = False
    html_url: Optional[str] = None
    user: GitHubUser = Field(default_factory=GitHubUser)
    head: BranchRef = Field(default_factory=BranchRef)
    base: BranchRef = Field(default_factory=BranchRef)
    additions: int = 0
    deletions: int = 0


class PullRequestEvent(WebhookEventBase):
    kind: Literal["pull_request"] = "pull_request"
    pull_request: PullRequestData = Field(default_factory=PullRequestData)


class IssueData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: Optional[int] = None
    title: str = ""
    body: Optional[str] = None
    state: str = "open"
    html_url: Optional[str] = None
    user: GitHubUser = Field(default_factory=GitHubUser)
    labels: List[Label] = []
    assignee: Optional[GitHubUser] = None


class IssuesEvent(WebhookEventBase):
    kind: Literal["issues"] = "issues"
    issue: IssueData = Field(default_factory=IssueData)


class ReleaseData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tag_name: str = "unknown"
    name: Optional[str] = None
    body: Optional[str] = None
    html_url: Optional[str] = None
    prerelease: bool = False
    published_at: Optional[datetime] = None
    author: GitHubUser = Field(default_factory=GitHubUser)


class ReleaseEvent(WebhookEventBase):
    kind: Literal["release"] = "release"
    release: ReleaseData = Field(default_factory=ReleaseData)


class CreateEvent(WebhookEventBase):
    kind: Literal["create"] = "create"
    ref: str = ""
    ref_type: str = ""


class DeleteEvent(WebhookEventBase):
    kind: Literal["delete"] = "delete"
    ref: str = ""
    ref_type: str = ""


# Subscribed on the hook but not rendered
RESERVED_EVENT_TYPES = frozenset({
    "workflow_run",
    "workflow_job",
    "check_run",
    "deployment",
    "deployment_status",
    "status",
})


class ReservedEvent(WebhookEventBase):
    kind: Literal["reserved"] = "reserved"
    event_type: str = ""


class UnhandledEvent(WebhookEventBase):
    kind: Literal["unhandled"] = "unhandled"
    event_type: str = ""


_EVENT_TYPES = {
    "push": PushEvent,
    "pull_request": PullRequestEvent,
    "issues": IssuesEvent,
    "release": ReleaseEvent,
    "create": CreateEvent,
    "delete": DeleteEvent,
}

RECOGNIZED_EVENT_TYPES = frozenset(_EVENT_TYPES) | RESERVED_EVENT_TYPES


def parse_event(event_type: str, payload: Dict[str, Any]) -> WebhookEventBase:
    """Build the typed variant for an event; unknown types become UnhandledEvent"""
    # null means "absent" for every optional section GitHub sends
    payload = {
        k: v for k, v in (payload or {}).items()
        if v is not None and k not in ("kind", "event_type")
    }
    event_class = _EVENT_TYPES.get(event_type)
    if event_class is not None:
        return event_class.model_validate(payload)
    if event_type in RESERVED_EVENT_TYPES:
        return ReservedEvent.model_validate({**payload, "event_type": event_type})
    return UnhandledEvent.model_validate({**payload, "event_type": event_type})
