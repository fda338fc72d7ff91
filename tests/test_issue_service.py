"""
Tests for cached, paginated issue listings
"""

import asyncio
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from src.models.github import Repository
from src.models.responses import IssueQuery
from src.services.errors import NoRepositoriesError, RateLimitedError, RepositoryNotFoundError, ServiceError
from src.services.issue_service import IssueService
from src.services.query_cache import QueryCache, cache_key
from src.services.sync_engine import SyncEngine
from tests.fakes import make_issue_payload, make_repo_payload

TTL = 300


class TestIssueService:
    """Test cases for issue listings"""

    @pytest.fixture
    def cache(self, clock):
        return QueryCache(ttl_seconds=TTL, clock=clock)

    @pytest.fixture
    def service(self, github, database, cache):
        engine = SyncEngine(github, database, cache)
        return IssueService(github, database, cache, engine)

    @pytest_asyncio.fixture
    async def widgets(self, github, database):
        issues = [make_issue_payload(1000 + n, n, "open", day=(n % 28) + 1) for n in range(1, 24)]
        issues.append(make_issue_payload(2000, 50, "closed"))
        issues.append(make_issue_payload(3000, 60, "open", pull_request=True))
        data = github.add_repository(1, "acme/widgets", issues=issues)
        await database.upsert_repository(Repository.from_github(data))

    @pytest.mark.asyncio
    async def test_third_page_of_open_issues(self, service, widgets):
        page = await service.get_issues(
            IssueQuery(state="open", repo="acme/widgets", page=3, per_page=10), "acme/widgets"
        )

        assert len(page.data) == 3
        assert page.total == 23
        assert page.pagination.has_more is False
        assert page.pagination.total_pages == 3

    @pytest.mark.asyncio
    async def test_pages_within_ttl_reuse_one_fetch(self, service, widgets, github, clock):
        for number in (1, 2, 3):
            await service.get_issues(IssueQuery(page=number), "acme/widgets")
            clock.advance(TTL / 4)

        assert len(github.calls_to("list_repository_issues")) == 1

    @pytest.mark.asyncio
    async def test_refetch_after_ttl(self, service, widgets, github, clock):
        await service.get_issues(IssueQuery(), "acme/widgets")

        clock.advance(TTL - 1)
        await service.get_issues(IssueQuery(), "acme/widgets")
        assert len(github.calls_to("list_repository_issues")) == 1

        clock.advance(2)
        await service.get_issues(IssueQuery(), "acme/widgets")
        assert len(github.calls_to("list_repository_issues")) == 2

    @pytest.mark.asyncio
    async def test_all_state_is_its_own_entry(self, service, widgets, github, cache):
        await service.get_issues(IssueQuery(state="open"), "acme/widgets")

        page = await service.get_issues(IssueQuery(state="all", per_page=100), "acme/widgets")

        assert page.total == 24
        assert cache.get(cache_key("acme/widgets", "all")) is not None
        assert cache.get(cache_key("acme/widgets", "open")) is not None

    @pytest.mark.asyncio
    async def test_sorting(self, service, widgets):
        page = await service.get_issues(
            IssueQuery(sort="number", direction="asc", per_page=5), "acme/widgets"
        )

        assert [issue["number"] for issue in page.data] == [1, 2, 3, 4, 5]

        page = await service.get_issues(
            IssueQuery(sort="number", direction="desc", per_page=5), "acme/widgets"
        )

        assert [issue["number"] for issue in page.data] == [23, 22, 21, 20, 19]

    @pytest.mark.asyncio
    async def test_page_beyond_range_is_empty(self, service, widgets):
        page = await service.get_issues(IssueQuery(page=9), "acme/widgets")

        assert page.data == []
        assert page.total == 23

    @pytest.mark.asyncio
    async def test_unknown_repository_asks_for_sync(self, service, github):
        with pytest.raises(RepositoryNotFoundError) as exc_info:
            await service.get_issues(IssueQuery(repo="ghost"), "acme/ghost")

        assert "sync repositories first" in exc_info.value.message
        assert github.calls == []

    @pytest.mark.asyncio
    async def test_all_repositories_requires_sync(self, service):
        with pytest.raises(NoRepositoriesError):
            await service.get_issues(IssueQuery())

    @pytest.mark.asyncio
    async def test_all_repositories_listing(self, service, widgets, github, database):
        data = github.add_repository(2, "acme/gadgets", issues=[make_issue_payload(1001, 1, "open")])
        await database.upsert_repository(Repository.from_github(data))

        page = await service.get_issues(IssueQuery(per_page=100))

        assert page.total == 24
        assert {issue["repository"]["full_name"] for issue in page.data} == {"acme/widgets", "acme/gadgets"}

    @pytest.mark.asyncio
    async def test_failed_fetch_is_not_cached(self, service, widgets, github, cache):
        github.fail("list_repository_issues", "acme/widgets", 429)

        with pytest.raises(RateLimitedError):
            await service.get_issues(IssueQuery(), "acme/widgets")

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_create_issue_mirrors_locally(self, service, widgets, database, cache):
        await service.get_issues(IssueQuery(), "acme/widgets")

        issue = await service.create_issue("acme/widgets", "New bug", "It broke", ["bug"])

        assert issue.number == 61
        assert issue.repository.id == 1
        assert (await database.get_issue("acme/widgets", 61)).title == "New bug"
        assert cache.get(cache_key("acme/widgets", "open")) is None

    @pytest.mark.asyncio
    async def test_create_issue_unknown_repository(self, service):
        with pytest.raises(RepositoryNotFoundError):
            await service.create_issue("acme/ghost", "x")

    @pytest.mark.asyncio
    async def test_all_listing_skips_unreachable_repository(self, service, widgets, database, cache):
        await database.upsert_repository(Repository.from_github(make_repo_payload(9, "acme/gone")))

        page = await service.get_issues(IssueQuery(state="open", per_page=100))

        assert page.total == 23
        assert page.failed_repositories == ["acme/gone"]
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_all_listing_fails_when_every_repository_fails(self, service, widgets, github):
        github.fail("list_repository_issues", None, 500)

        with pytest.raises(ServiceError):
            await service.get_issues(IssueQuery())

    @pytest.mark.asyncio
    async def test_listing_fetched_before_sync_is_not_cached(self, service, widgets, github):
        gate = asyncio.Event()
        list_issues = github.list_repository_issues
        held = []

        async def slow_first_listing(repo_full_name, state="open"):
            result = await list_issues(repo_full_name, state)
            if not held:
                held.append(state)
                await gate.wait()
            return result

        github.list_repository_issues = slow_first_listing
        pending = asyncio.create_task(service.get_issues(IssueQuery(), "acme/widgets"))
        while not held:
            await asyncio.sleep(0)

        github.issues["acme/widgets"].append(make_issue_payload(4000, 70, "open"))
        await service.sync_engine.sync_issues()
        gate.set()

        assert (await pending).total == 23
        assert (await service.get_issues(IssueQuery(), "acme/widgets")).total == 24

    @pytest.mark.asyncio
    async def test_label_filter_matches_any(self, service, widgets, github):
        github.issues["acme/widgets"].extend([
            make_issue_payload(5000, 80, "open", labels=[{"id": 11, "name": "ui", "color": "fff"}]),
            make_issue_payload(5001, 81, "open", labels=[{"id": 12, "name": "docs", "color": "000"}]),
            make_issue_payload(5002, 82, "open", labels=[]),
        ])

        both = await service.get_issues(IssueQuery(labels="ui,docs", per_page=100), "acme/widgets")
        bugs = await service.get_issues(IssueQuery(labels=["bug"], per_page=100), "acme/widgets")

        assert sorted(issue["number"] for issue in both.data) == [80, 81]
        assert bugs.total == 23

    @pytest.mark.asyncio
    async def test_since_filter_on_updated_at(self, service, widgets):
        page = await service.get_issues(
            IssueQuery(since="2024-02-20T00:00:00Z", sort="number", direction="asc"), "acme/widgets"
        )

        assert [issue["number"] for issue in page.data] == [19, 20, 21, 22, 23]

    @pytest.mark.asyncio
    async def test_filters_get_their_own_cache_entries(self, service, widgets, github, cache):
        since = datetime(2024, 2, 20, tzinfo=timezone.utc)

        await service.get_issues(IssueQuery(), "acme/widgets")
        filtered = await service.get_issues(IssueQuery(labels="bug", since=since), "acme/widgets")

        assert filtered.total == 5
        assert len(github.calls_to("list_repository_issues")) == 2
        assert cache.get(cache_key("acme/widgets", "open", ["bug"], since)) is not None
        assert cache.get(cache_key("acme/widgets", "open")).items != cache.get(
            cache_key("acme/widgets", "open", ["bug"], since)
        ).items
