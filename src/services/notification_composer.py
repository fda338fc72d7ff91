"""
Turns typed GitHub webhook events into chat notifications
"""

from typing import Any, Callable, Dict, List, Optional

from src.models.github import (
    CreateEvent,
    DeleteEvent,
    IssuesEvent,
    PullRequestEvent,
    PushEvent,
    ReleaseEvent,
    WebhookEventBase,
    parse_event,
)
from src.models.notifications import (
    Notification,
    NotificationAuthor,
    NotificationColors,
    NotificationField,
)

# Discord embed limits
TITLE_LIMIT = 256
DESCRIPTION_LIMIT = 200
FIELD_NAME_LIMIT = 256
FIELD_VALUE_LIMIT = 1024
MAX_FIELDS = 25
MAX_COMMIT_FIELDS = 10

NO_DESCRIPTION = "No description provided"

# (event type, action) -> color; action None is the fallback for the type
COLOR_TABLE: Dict[tuple, int] = {
    ("push", None): NotificationColors.SUCCESS,
    ("pull_request", "merged"): NotificationColors.PR_MERGED,
    ("pull_request", "opened"): NotificationColors.PR_OPEN,
    ("pull_request", "reopened"): NotificationColors.PR_OPEN,
    ("pull_request", "closed"): NotificationColors.PR_CLOSED,
    ("pull_request", None): NotificationColors.WARNING,
    ("issues", "opened"): NotificationColors.ISSUE_OPEN,
    ("issues", "reopened"): NotificationColors.ISSUE_OPEN,
    ("issues", "closed"): NotificationColors.ISSUE_CLOSED,
    ("issues", None): NotificationColors.INFO,
    ("release", None): NotificationColors.DEFAULT,
    ("create", None): NotificationColors.BRANCH,
    ("delete", None): NotificationColors.ERROR,
}


def color_for(event_type: str, action: Optional[str]) -> int:
    """Deterministic color lookup by (event type, action)"""
    if (event_type, action) in COLOR_TABLE:
        return COLOR_TABLE[(event_type, action)]
    return COLOR_TABLE.get((event_type, None), NotificationColors.DEFAULT)


def truncate(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _field(name: str, value: Any, inline: bool = True) -> NotificationField:
    value = str(value) if value not in (None, "") else "-"
    return NotificationField(
        name=truncate(name, FIELD_NAME_LIMIT),
        value=truncate(value, FIELD_VALUE_LIMIT),
        inline=inline,
    )


def _notification(event_type: str, action: Optional[str], title: str, description: Optional[str],
                  author_name: str, author_icon: Optional[str], url: Optional[str],
                  fields: Optional[List[NotificationField]] = None) -> Notification:
    return Notification(
        title=truncate(title, TITLE_LIMIT),
        description=truncate(description, DESCRIPTION_LIMIT) or NO_DESCRIPTION,
        color=color_for(event_type, action),
        fields=(fields or [])[:MAX_FIELDS],
        author=NotificationAuthor(name=author_name or "unknown", icon_url=author_icon),
        url=url,
        footer=f"GitHub {event_type} - {action or 'event'}",
    )


def _branch_name(ref: str) -> str:
    return ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref


def render_push(event: PushEvent) -> Notification:
    commits = event.commits
    fields = [
        _field(commit.id[:7] or "commit", commit.message.splitlines()[0] if commit.message else "", inline=False)
        for commit in commits[:MAX_COMMIT_FIELDS]
    ]
    if len(commits) > MAX_COMMIT_FIELDS:
        fields.append(_field("...", f"{len(commits) - MAX_COMMIT_FIELDS} more commits", inline=False))

    noun = "commit" if len(commits) == 1 else "commits"
    return _notification(
        "push",
        "pushed",
        f"New Commits to {event.repository.full_name}",
        f"{len(commits)} new {noun} pushed to {_branch_name(event.ref) or 'unknown ref'}",
        event.pusher.name,
        event.sender.avatar_url,
        event.compare,
        fields,
    )


def render_pull_request(event: PullRequestEvent) -> Notification:
    pr = event.pull_request
    is_merged = event.action == "closed" and pr.merged
    action = "merged" if is_merged else event.action
    status = "Merged" if is_merged else pr.state

    return _notification(
        "pull_request",
        action,
        f"Pull Request {'Merged' if is_merged else (event.action or 'updated')}: {pr.title}",
        pr.body,
        pr.user.login,
        pr.user.avatar_url,
        pr.html_url,
        [
            _field("Status", status),
            _field("Branch", f"{pr.head.ref} → {pr.base.ref}"),
            _field("Changes", f"+{pr.additions} -{pr.deletions}"),
        ],
    )


def render_issue(event: IssuesEvent) -> Notification:
    issue = event.issue
    labels = ", ".join(label.name for label in issue.labels) or "No labels"
    assignee = issue.assignee.login if issue.assignee else "Unassigned"

    return _notification(
        "issues",
        event.action,
        f"Issue {event.action or 'updated'}: {issue.title}",
        issue.body,
        issue.user.login,
        issue.user.avatar_url,
        issue.html_url,
        [
            _field("Status", issue.state),
            _field("Labels", labels),
            _field("Assignee", assignee),
        ],
    )


def render_release(event: ReleaseEvent) -> Notification:
    release = event.release
    published = release.published_at.strftime("%Y-%m-%d") if release.published_at else "Unpublished"

    return _notification(
        "release",
        event.action,
        f"New Release: {release.tag_name}",
        release.body,
        release.author.login,
        release.author.avatar_url,
        release.html_url,
        [
            _field("Version", release.tag_name),
            _field("Status", "Pre-release" if release.prerelease else "Stable"),
            _field("Published", published),
        ],
    )


def render_branch_create(event: CreateEvent) -> Notification:
    repo_url = event.repository.html_url
    return _notification(
        "create",
        "branch",
        "New Branch Created",
        f"Branch {event.ref} was created in {event.repository.full_name}",
        event.sender.login,
        event.sender.avatar_url,
        f"{repo_url}/tree/{event.ref}" if repo_url else None,
    )


def render_branch_delete(event: DeleteEvent) -> Notification:
    return _notification(
        "delete",
        "branch",
        "Branch Deleted",
        f"Branch {event.ref} was deleted from {event.repository.full_name}",
        event.sender.login,
        event.sender.avatar_url,
        event.repository.html_url,
    )


def render_generic(event_type: str, event: WebhookEventBase) -> Notification:
    """Fallback used for event types without a dedicated renderer"""
    action = event.action
    return _notification(
        event_type,
        action,
        f"GitHub {event_type} event{f' ({action})' if action else ''} in {event.repository.full_name}",
        None,
        event.sender.login,
        event.sender.avatar_url,
        event.repository.html_url,
    )


RENDERERS: Dict[type, Callable[[Any], Notification]] = {
    PushEvent: render_push,
    PullRequestEvent: render_pull_request,
    IssuesEvent: render_issue,
    ReleaseEvent: render_release,
    CreateEvent: render_branch_create,
    DeleteEvent: render_branch_delete,
}


def render(event_type: str, event: WebhookEventBase) -> Notification:
    """Render an already parsed event"""
    renderer = RENDERERS.get(type(event))
    if renderer is None:
        return render_generic(event_type, event)
    return renderer(event)


def compose(event_type: str, action: Optional[str], payload: Dict[str, Any]) -> Notification:
    """
    Build the notification for a webhook payload.

    Total over every payload shape of the recognized event set: missing
    optional sections (assignee, body, labels, ...) fall back to placeholders.
    """
    data = dict(payload or {})
    if action is not None:
        data["action"] = action
    return render(event_type, parse_event(event_type, data))
