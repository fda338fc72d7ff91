"""
Paginated issue listings backed by the query cache
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from src.models.github import Issue, Repository
from src.models.responses import IssuePage, IssueQuery
from .database_service import DatabaseService
from .errors import NoRepositoriesError, RepositoryNotFoundError, service_error_from
from .github_client import GitHubClient, GitHubAPIError
from .query_cache import QueryCache, cache_key, paginate
from .sync_engine import SyncEngine, batched

logger = structlog.get_logger()

_SORT_KEYS: Dict[str, Callable[[Issue], Any]] = {
    "created": lambda issue: issue.created_at,
    "updated": lambda issue: issue.updated_at,
    "comments": lambda issue: issue.comments,
    "number": lambda issue: issue.number,
}


def sort_issues(issues: List[Issue], sort: str, direction: str) -> List[Issue]:
    """Order a listing; ties fall back to the issue number so pages are stable"""
    primary = _SORT_KEYS[sort]
    return sorted(
        issues,
        key=lambda issue: (primary(issue), issue.repository.full_name, issue.number),
        reverse=direction == "desc",
    )


def filter_issues(issues: Sequence[Issue], labels: Sequence[str] = (),
                  since: Optional[datetime] = None) -> List[Issue]:
    """Keep issues carrying any of the labels and updated at or after since"""
    wanted = set(labels)
    return [
        issue for issue in issues
        if (not wanted or wanted.intersection(label.name for label in issue.labels))
        and (since is None or issue.updated_at >= since)
    ]


class IssueService:
    """Read side of the issue mirror"""

    def __init__(self, github_client: GitHubClient, database: DatabaseService,
                 cache: QueryCache, sync_engine: SyncEngine):
        self.github_client = github_client
        self.database = database
        self.cache = cache
        self.sync_engine = sync_engine

    async def get_issues(self, query: IssueQuery, repo_full_name: Optional[str] = None) -> IssuePage:
        """
        Return one page of issues for a repository or for every stored one.

        The complete listing for (repository, state, labels, since) is
        fetched once and cached; pages are sliced from it until the entry
        expires. A cross-repository listing with failed repositories is
        served with those names in ``failed_repositories`` and is not cached.
        """
        key = cache_key(repo_full_name, query.state, query.labels, query.since)
        entry = self.cache.get(key)
        failed: List[str] = []

        if entry is None:
            logger.info("Issue cache miss", repository=key[0], state=query.state)
            generation = self.cache.generation
            issues, failed = await self._fetch_listing(repo_full_name, query.state)
            issues = filter_issues(issues, query.labels, query.since)
            if failed:
                items: Sequence[Issue] = issues
            else:
                items = self.cache.put(key, issues, generation).items
        else:
            logger.debug("Issue cache hit", repository=key[0], state=query.state)
            items = entry.items

        ordered = sort_issues(list(items), query.sort, query.direction)
        page_items, pagination = paginate(ordered, query.page, query.per_page)

        return IssuePage(
            data=[issue.model_dump(mode="json") for issue in page_items],
            total=len(ordered),
            pagination=pagination,
            failed_repositories=failed,
        )

    async def _fetch_listing(self, repo_full_name: Optional[str], state: str) -> Tuple[List[Issue], List[str]]:
        if repo_full_name:
            repository = await self.database.get_repository_by_name(repo_full_name)
            if repository is None:
                raise RepositoryNotFoundError(
                    f"Repository '{repo_full_name}' not found. "
                    "Please sync repositories first using POST /repositories/sync"
                )
            repositories = [repository]
        else:
            repositories = await self.database.list_repositories()
            if not repositories:
                raise NoRepositoriesError()

        issues: List[Issue] = []
        errors: Dict[str, GitHubAPIError] = {}
        for batch in batched(repositories, self.sync_engine.batch_size):
            results = await asyncio.gather(*(self._fetch_repository(repository, state) for repository in batch))
            for repository, (listing, error) in zip(batch, results):
                if error is not None:
                    errors[repository.full_name] = error
                else:
                    issues.extend(listing)

        if errors and len(errors) == len(repositories):
            error = next(iter(errors.values()))
            raise service_error_from(error, "Failed to fetch issues from GitHub")

        return issues, list(errors)

    async def _fetch_repository(self, repository: Repository,
                                state: str) -> Tuple[List[Issue], Optional[GitHubAPIError]]:
        try:
            return await self.sync_engine.fetch_issues(repository, state), None
        except GitHubAPIError as e:
            logger.error("Failed to fetch issues", repository=repository.full_name, error=str(e))
            return [], e

    async def create_issue(self, repo_full_name: str, title: str, body: str = "",
                           labels: Optional[List[str]] = None) -> Issue:
        """Create an issue on GitHub and mirror it locally"""
        try:
            data = await self.github_client.create_issue(repo_full_name, title, body, labels)
        except GitHubAPIError as e:
            if e.status_code == 404:
                raise RepositoryNotFoundError(f"Repository '{repo_full_name}' not found", cause=e)
            raise service_error_from(e, f"Failed to create issue in '{repo_full_name}'")

        repository = await self.database.get_repository_by_name(repo_full_name)
        issue = Issue.from_github(
            data,
            repo_full_name,
            repo_id=repository.github_id if repository else None,
            private=repository.is_private if repository else False,
        )
        await self.database.upsert_issue(issue)
        self.cache.invalidate_repository(repo_full_name)

        logger.info("Issue created", repository=repo_full_name, number=issue.number)
        return issue
