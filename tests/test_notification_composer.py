"""
Tests for notification rendering
"""

import pytest

from src.models.notifications import NotificationColors
from src.services.notification_composer import (
    DESCRIPTION_LIMIT,
    MAX_COMMIT_FIELDS,
    NO_DESCRIPTION,
    TITLE_LIMIT,
    color_for,
    compose,
    truncate,
)


class TestColorTable:
    """Deterministic (event type, action) colors"""

    def test_pull_request_states_are_distinct(self):
        merged = compose("pull_request", "closed", {"pull_request": {"merged": True}})
        opened = compose("pull_request", "opened", {"pull_request": {}})
        closed = compose("pull_request", "closed", {"pull_request": {"merged": False}})

        assert merged.color == NotificationColors.PR_MERGED
        assert opened.color == NotificationColors.PR_OPEN
        assert closed.color == NotificationColors.PR_CLOSED
        assert len({merged.color, opened.color, closed.color}) == 3

    def test_issue_open_and_closed_differ(self):
        opened = compose("issues", "opened", {"issue": {}})
        closed = compose("issues", "closed", {"issue": {}})

        assert opened.color != closed.color

    def test_push_is_success(self):
        assert compose("push", None, {}).color == NotificationColors.SUCCESS

    def test_branch_create_and_delete_differ(self):
        created = compose("create", None, {"ref": "x", "ref_type": "branch"})
        deleted = compose("delete", None, {"ref": "x", "ref_type": "branch"})

        assert created.color != deleted.color

    def test_unknown_action_falls_back_to_type_color(self):
        assert color_for("issues", "labeled") == NotificationColors.INFO
        assert color_for("gollum", None) == NotificationColors.DEFAULT


class TestRenderers:
    """Field composition"""

    def test_pull_request_fields(self):
        notification = compose("pull_request", "opened", {
            "pull_request": {
                "title": "Add widget API",
                "body": "Implements the API",
                "state": "open",
                "head": {"ref": "feature/api"},
                "base": {"ref": "main"},
                "additions": 120,
                "deletions": 7,
                "user": {"login": "octocat", "avatar_url": "https://avatars.example.com/o"},
                "html_url": "https://github.com/acme/widgets/pull/4",
            },
        })

        fields = {field.name: field.value for field in notification.fields}
        assert fields["Status"] == "open"
        assert fields["Branch"] == "feature/api → main"
        assert fields["Changes"] == "+120 -7"
        assert notification.author.name == "octocat"
        assert notification.url == "https://github.com/acme/widgets/pull/4"

    def test_merged_pull_request(self):
        notification = compose("pull_request", "closed", {"pull_request": {"title": "X", "merged": True}})

        assert notification.title == "Pull Request Merged: X"
        assert {f.name: f.value for f in notification.fields}["Status"] == "Merged"

    def test_issue_placeholders(self):
        notification = compose("issues", "opened", {
            "issue": {"title": "Crash", "body": None, "labels": [], "assignee": None},
        })

        fields = {field.name: field.value for field in notification.fields}
        assert fields["Labels"] == "No labels"
        assert fields["Assignee"] == "Unassigned"
        assert notification.description == NO_DESCRIPTION

    def test_issue_labels_joined(self):
        notification = compose("issues", "opened", {
            "issue": {
                "title": "Crash",
                "labels": [{"name": "bug"}, {"name": "p1"}],
                "assignee": {"login": "hubot"},
            },
        })

        fields = {field.name: field.value for field in notification.fields}
        assert fields["Labels"] == "bug, p1"
        assert fields["Assignee"] == "hubot"

    def test_push_commit_fields_capped(self):
        commits = [{"id": f"{i:040d}", "message": f"commit {i}"} for i in range(15)]
        notification = compose("push", None, {"ref": "refs/heads/main", "commits": commits})

        assert len(notification.fields) == MAX_COMMIT_FIELDS + 1
        assert notification.fields[-1].value == "5 more commits"
        assert notification.description == "15 new commits pushed to main"

    def test_release(self):
        notification = compose("release", "published", {
            "release": {"tag_name": "v2.0.0", "prerelease": True, "published_at": "2024-05-01T12:00:00Z"},
        })

        fields = {field.name: field.value for field in notification.fields}
        assert notification.title == "New Release: v2.0.0"
        assert fields["Status"] == "Pre-release"
        assert fields["Published"] == "2024-05-01"

    def test_embed_shape(self):
        embed = compose("issues", "opened", {"issue": {"title": "Crash"}}).to_embed()

        assert embed["title"] == "Issue opened: Crash"
        assert isinstance(embed["color"], int)
        assert "fields" in embed


class TestTruncation:
    """Length limits"""

    def test_long_title_and_body_are_truncated(self):
        notification = compose("issues", "opened", {
            "issue": {"title": "t" * 1000, "body": "b" * 5000},
        })

        assert len(notification.title) <= TITLE_LIMIT
        assert notification.title.endswith("...")
        assert len(notification.description) <= DESCRIPTION_LIMIT

    def test_short_text_untouched(self):
        assert truncate("short", 10) == "short"
        assert truncate(None, 10) == ""


class TestTotality:
    """Every recognized event renders, even from empty payloads"""

    @pytest.mark.parametrize("event_type", [
        "push", "pull_request", "issues", "release", "create", "delete",
        "workflow_run", "deployment_status", "star",
    ])
    @pytest.mark.parametrize("action", [None, "opened", "closed", "created"])
    def test_empty_payload(self, event_type, action):
        notification = compose(event_type, action, {})

        assert notification.title
        assert notification.description
        assert isinstance(notification.color, int)

    def test_null_sections(self):
        notification = compose("pull_request", "opened", {
            "pull_request": None, "repository": None, "sender": None,
        })

        assert notification.title.startswith("Pull Request")
