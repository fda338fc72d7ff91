"""
Synchronization of GitHub repositories and issues into local storage
"""

import asyncio
import structlog
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, TypeVar

from src.models.github import Issue, Repository
from src.models.responses import SyncResult
from .database_service import DatabaseService
from .errors import (
    IssueNotFoundError,
    NoRepositoriesError,
    RepositoryNotFoundError,
    service_error_from,
)
from .github_client import GitHubClient, GitHubAPIError
from .query_cache import QueryCache

logger = structlog.get_logger()

T = TypeVar("T")

ISSUE_STATES = ("open", "closed")


def batched(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive fixed-size slices"""
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass
class RepositoryIssueSync:
    repository: str
    total: int = 0
    synced: int = 0
    error: Optional[str] = None


class SyncEngine:
    """Mirrors GitHub repository and issue state into the local store"""

    def __init__(self, github_client: GitHubClient, database: DatabaseService,
                 cache: QueryCache, batch_size: int = 3):
        self.github_client = github_client
        self.database = database
        self.cache = cache
        self.batch_size = max(1, batch_size)

    async def sync_repositories(self) -> SyncResult:
        """
        Upsert every repository of the configured owner.

        The upsert replaces the whole record, so the local-only webhook
        fields are carried forward from the stored record explicitly.
        """
        logger.info("Starting repository synchronization")

        try:
            remote_repositories = await self.github_client.list_owner_repositories()
        except GitHubAPIError as e:
            logger.error("Failed to fetch repositories", error=str(e), status_code=e.status_code)
            raise service_error_from(e, "Failed to fetch repositories from GitHub")

        synced = 0
        failed: List[str] = []
        for data in remote_repositories:
            full_name = data.get("full_name", "unknown")
            try:
                repository = Repository.from_github(data)
                existing = await self.database.get_repository_by_github_id(repository.github_id)
                if existing:
                    repository.webhook_active = existing.webhook_active
                    repository.webhook_settings = existing.webhook_settings
                await self.database.upsert_repository(repository)
                synced += 1
            except Exception as e:
                logger.error("Repository sync failed", repository=full_name, error=str(e))
                failed.append(full_name)

        logger.info(
            "Repository synchronization completed",
            total=len(remote_repositories),
            synced=synced,
            failed=len(failed),
        )
        return SyncResult(
            total=len(remote_repositories),
            synced=synced,
            repositories=len(remote_repositories),
            failed_repositories=failed,
        )

    async def sync_issues(self) -> SyncResult:
        """Mirror open and closed issues of every stored repository"""
        repositories = await self.database.list_repositories()
        if not repositories:
            logger.warning("No repositories found in database")
            raise NoRepositoriesError()

        logger.info("Starting issue synchronization", repositories=len(repositories))
        self.cache.clear()

        results: List[RepositoryIssueSync] = []
        for batch in batched(repositories, self.batch_size):
            results.extend(await asyncio.gather(
                *(self._sync_repository_issues(repository) for repository in batch)
            ))

        result = SyncResult(
            total=sum(r.total for r in results),
            synced=sum(r.synced for r in results),
            repositories=len(repositories),
            failed_repositories=[r.repository for r in results if r.error],
        )
        logger.info(
            "Issue synchronization completed",
            total=result.total,
            synced=result.synced,
            failed=len(result.failed_repositories),
        )
        return result

    async def _sync_repository_issues(self, repository: Repository) -> RepositoryIssueSync:
        outcome = RepositoryIssueSync(repository=repository.full_name)
        try:
            issues = await self.fetch_issues(repository, "all")
            outcome.total = len(issues)
            outcome.synced = await self.database.bulk_upsert_issues(issues)
        except Exception as e:
            # One repository failing must not abort the batch
            logger.error("Issue sync failed", repository=repository.full_name, error=str(e))
            outcome.error = str(e)
            outcome.synced = 0
        return outcome

    async def fetch_issues(self, repository: Repository, state: str) -> List[Issue]:
        """
        Fetch the issues of one repository for a state filter.

        GitHub's state filter is exclusive, so "all" is two listings merged.
        Pull requests returned by the issues endpoint are dropped.
        """
        states = ISSUE_STATES if state == "all" else (state,)
        issues: Dict[int, Issue] = {}

        for current_state in states:
            for data in await self.github_client.list_repository_issues(repository.full_name, current_state):
                if Issue.is_pull_request(data):
                    continue
                issue = Issue.from_github(
                    data, repository.full_name, repo_id=repository.github_id, private=repository.is_private
                )
                # An issue can change state between the two listings
                known = issues.get(issue.github_id)
                if known is None or issue.updated_at >= known.updated_at:
                    issues[issue.github_id] = issue

        logger.debug("Fetched issues", repository=repository.full_name, state=state, count=len(issues))
        return list(issues.values())

    async def get_issue(self, repo_full_name: str, issue_number: int) -> Issue:
        """Return an issue from local storage, fetching it from GitHub on a miss"""
        issue = await self.database.get_issue(repo_full_name, issue_number)
        if issue:
            return issue

        try:
            remote_repository = await self.github_client.get_repository(repo_full_name)
        except GitHubAPIError as e:
            if e.status_code == 404:
                raise RepositoryNotFoundError(f"Repository '{repo_full_name}' not found", cause=e)
            raise service_error_from(e, f"Failed to fetch repository '{repo_full_name}'")

        try:
            data = await self.github_client.get_issue(repo_full_name, issue_number)
        except GitHubAPIError as e:
            if e.status_code == 404:
                raise IssueNotFoundError(
                    f"Issue #{issue_number} not found in repository '{repo_full_name}'", cause=e
                )
            raise service_error_from(e, f"Failed to fetch issue #{issue_number}")

        if Issue.is_pull_request(data):
            raise IssueNotFoundError(
                f"#{issue_number} in repository '{repo_full_name}' is a pull request, not an issue"
            )

        issue = Issue.from_github(
            data,
            remote_repository.get("full_name", repo_full_name),
            repo_id=remote_repository.get("id"),
            private=bool(remote_repository.get("private", False)),
        )
        await self.database.upsert_issue(issue)
        logger.info("Issue fetched on demand", repository=repo_full_name, number=issue_number)
        return issue

    async def delete_repository(self, repo_full_name: str) -> bool:
        """Delete a repository on GitHub, then drop its local record and issues"""
        try:
            await self.github_client.delete_repository(repo_full_name)
        except GitHubAPIError as e:
            if e.status_code == 404:
                raise RepositoryNotFoundError(f"Repository '{repo_full_name}' not found", cause=e)
            raise service_error_from(e, f"Failed to delete repository '{repo_full_name}'")

        deleted = await self.database.delete_repository(repo_full_name, cascade_issues=True)
        self.cache.invalidate_repository(repo_full_name)
        logger.info("Repository deleted", repository=repo_full_name, local_record=deleted)
        return deleted
