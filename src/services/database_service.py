"""
Database service for the local repository / issue mirror
Handles all document storage for repositories, issues and raw webhook events
"""

import json
from typing import Dict, List, Optional, Any, Tuple
import asyncpg
import structlog
from contextlib import asynccontextmanager

from src.models.github import Issue, Repository, RawWebhookEvent, WebhookSettings
from .errors import ConflictingStateError

logger = structlog.get_logger()


class DatabaseService:
    """Key-addressable document store with upsert / find / bulk-write operations"""

    def __init__(self, connection_string: Optional[str] = None):
        self.connection_string = connection_string
        self.pool: Optional[asyncpg.Pool] = None
        self._memory_storage: Dict[str, Any] = {}
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize database connection and create tables"""
        if self._initialized:
            return

        try:
            # For PostgreSQL
            if self.connection_string and self.connection_string.startswith(("postgres://", "postgresql://")):
                self.pool = await asyncpg.create_pool(
                    self.connection_string,
                    min_size=1,
                    max_size=10,
                    command_timeout=60
                )
                await self._create_postgresql_tables()
            else:
                # For development, use in-memory dict storage
                self._memory_storage = {
                    'repositories': {},
                    'issues': {},
                    'webhook_events': [],
                }

            self._initialized = True
            logger.info("Database service initialized", backend="postgresql" if self.pool else "memory")

        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))
            raise

    async def close(self) -> None:
        """Close database connections"""
        if self.pool:
            await self.pool.close()
        self._initialized = False
        logger.info("Database service closed")

    @asynccontextmanager
    async def get_connection(self):
        """Get database connection from pool"""
        if self.pool:
            async with self.pool.acquire() as connection:
                yield connection
        else:
            # For in-memory development mode
            yield self._memory_storage

    async def _create_postgresql_tables(self) -> None:
        """Create PostgreSQL tables"""
        sql_commands = [
            """
            CREATE TABLE IF NOT EXISTS repositories (
                github_id BIGINT PRIMARY KEY,
                full_name VARCHAR(255) UNIQUE NOT NULL,
                name VARCHAR(255) NOT NULL,
                document JSONB NOT NULL,
                updated_at TIMESTAMP DEFAULT NOW()
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS issues (
                github_id BIGINT NOT NULL,
                repository_full_name VARCHAR(255) NOT NULL,
                number INTEGER NOT NULL,
                state VARCHAR(16) NOT NULL,
                document JSONB NOT NULL,
                updated_at TIMESTAMP,
                PRIMARY KEY (github_id, repository_full_name),
                UNIQUE (repository_full_name, number)
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS webhook_events (
                id BIGSERIAL PRIMARY KEY,
                event_type VARCHAR(100) NOT NULL,
                repository_full_name VARCHAR(255),
                delivery_id VARCHAR(100),
                payload JSONB NOT NULL,
                received_at TIMESTAMP DEFAULT NOW()
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_issues_state ON issues(state)",
            "CREATE INDEX IF NOT EXISTS idx_issues_updated ON issues(updated_at DESC)",
            "CREATE INDEX IF NOT EXISTS idx_webhook_events_repo ON webhook_events(repository_full_name)",
        ]

        async with self.get_connection() as conn:
            for sql in sql_commands:
                await conn.execute(sql)

    # Repository operations

    async def upsert_repository(self, repository: Repository) -> Repository:
        """Full-replace upsert keyed by GitHub id"""
        document = repository.model_dump(mode="json")

        if self.pool:
            try:
                async with self.get_connection() as conn:
                    await conn.execute(
                        """
                        INSERT INTO repositories (github_id, full_name, name, document, updated_at)
                        VALUES ($1, $2, $3, $4, NOW())
                        ON CONFLICT (github_id) DO UPDATE
                        SET full_name = EXCLUDED.full_name,
                            name = EXCLUDED.name,
                            document = EXCLUDED.document,
                            updated_at = NOW()
                        """,
                        repository.github_id, repository.full_name, repository.name,
                        json.dumps(document)
                    )
            except asyncpg.UniqueViolationError as e:
                raise ConflictingStateError(
                    f"Repository '{repository.full_name}' already stored under another id", cause=e
                )
        else:
            repositories = self._memory_storage['repositories']
            for github_id, stored in repositories.items():
                if stored['full_name'] == repository.full_name and github_id != repository.github_id:
                    raise ConflictingStateError(
                        f"Repository '{repository.full_name}' already stored under another id"
                    )
            repositories[repository.github_id] = document

        logger.debug("Repository upserted", github_id=repository.github_id, full_name=repository.full_name)
        return repository

    async def get_repository_by_github_id(self, github_id: int) -> Optional[Repository]:
        """Get repository by GitHub id"""
        if self.pool:
            async with self.get_connection() as conn:
                row = await conn.fetchrow(
                    "SELECT document FROM repositories WHERE github_id = $1", github_id
                )
                if row:
                    return Repository(**json.loads(row['document']))
        else:
            repo_data = self._memory_storage['repositories'].get(github_id)
            if repo_data:
                return Repository(**repo_data)
        return None

    async def get_repository_by_name(self, full_name: str) -> Optional[Repository]:
        """Get repository by owner/name"""
        if self.pool:
            async with self.get_connection() as conn:
                row = await conn.fetchrow(
                    "SELECT document FROM repositories WHERE full_name = $1", full_name
                )
                if row:
                    return Repository(**json.loads(row['document']))
        else:
            for repo_data in self._memory_storage['repositories'].values():
                if repo_data['full_name'] == full_name:
                    return Repository(**repo_data)
        return None

    async def list_repositories(self) -> List[Repository]:
        """List stored repositories, most recently updated first"""
        if self.pool:
            async with self.get_connection() as conn:
                rows = await conn.fetch(
                    "SELECT document FROM repositories ORDER BY updated_at DESC"
                )
                return [Repository(**json.loads(row['document'])) for row in rows]

        return [Repository(**data) for data in self._memory_storage['repositories'].values()]

    async def update_repository_webhook(self, full_name: str, active: bool,
                                        webhook_settings: Optional[WebhookSettings]) -> bool:
        """Flip the local webhook flag and destination binding"""
        repository = await self.get_repository_by_name(full_name)
        if not repository:
            return False

        repository.webhook_active = active
        repository.webhook_settings = webhook_settings
        await self.upsert_repository(repository)

        logger.info("Repository webhook state updated", full_name=full_name, active=active)
        return True

    async def delete_repository(self, full_name: str, cascade_issues: bool = True) -> bool:
        """Delete a repository record, optionally with its issues"""
        if self.pool:
            async with self.get_connection() as conn:
                async with conn.transaction():
                    result = await conn.execute(
                        "DELETE FROM repositories WHERE full_name = $1", full_name
                    )
                    if cascade_issues:
                        await conn.execute(
                            "DELETE FROM issues WHERE repository_full_name = $1", full_name
                        )
            deleted = result.split()[-1] != "0"
        else:
            repositories = self._memory_storage['repositories']
            matches = [gid for gid, data in repositories.items() if data['full_name'] == full_name]
            for github_id in matches:
                del repositories[github_id]
            if cascade_issues:
                issues = self._memory_storage['issues']
                for key in [key for key in issues if key[1] == full_name]:
                    del issues[key]
            deleted = bool(matches)

        logger.info("Repository deleted", full_name=full_name, cascade_issues=cascade_issues, deleted=deleted)
        return deleted

    # Issue operations

    @staticmethod
    def _issue_key(issue: Issue) -> Tuple[int, str]:
        return issue.github_id, issue.repository.full_name

    def _check_issue_number_conflict(self, issue: Issue) -> None:
        for key, stored in self._memory_storage['issues'].items():
            if (key[1] == issue.repository.full_name and stored['number'] == issue.number
                    and key != self._issue_key(issue)):
                raise ConflictingStateError(
                    f"Issue #{issue.number} of {issue.repository.full_name} already stored under another id"
                )

    async def bulk_upsert_issues(self, issues: List[Issue]) -> int:
        """Upsert issues keyed by (GitHub id, repository full name)"""
        if not issues:
            return 0

        if self.pool:
            records = [
                (
                    issue.github_id, issue.repository.full_name, issue.number, issue.state,
                    json.dumps(issue.model_dump(mode="json")), issue.updated_at.replace(tzinfo=None)
                )
                for issue in issues
            ]
            try:
                async with self.get_connection() as conn:
                    async with conn.transaction():
                        await conn.executemany(
                            """
                            INSERT INTO issues (github_id, repository_full_name, number, state, document, updated_at)
                            VALUES ($1, $2, $3, $4, $5, $6)
                            ON CONFLICT (github_id, repository_full_name) DO UPDATE
                            SET number = EXCLUDED.number,
                                state = EXCLUDED.state,
                                document = EXCLUDED.document,
                                updated_at = EXCLUDED.updated_at
                            """,
                            records
                        )
            except asyncpg.UniqueViolationError as e:
                raise ConflictingStateError("Duplicate issue detected", cause=e)
        else:
            for issue in issues:
                self._check_issue_number_conflict(issue)
                self._memory_storage['issues'][self._issue_key(issue)] = issue.model_dump(mode="json")

        logger.debug("Issues upserted", count=len(issues))
        return len(issues)

    async def upsert_issue(self, issue: Issue) -> Issue:
        """Upsert a single issue"""
        await self.bulk_upsert_issues([issue])
        return issue

    async def get_issue(self, repo_full_name: str, number: int) -> Optional[Issue]:
        """Get issue by repository and number"""
        if self.pool:
            async with self.get_connection() as conn:
                row = await conn.fetchrow(
                    "SELECT document FROM issues WHERE repository_full_name = $1 AND number = $2",
                    repo_full_name, number
                )
                if row:
                    return Issue(**json.loads(row['document']))
        else:
            for key, issue_data in self._memory_storage['issues'].items():
                if key[1] == repo_full_name and issue_data['number'] == number:
                    return Issue(**issue_data)
        return None

    async def count_issues(self, repo_full_name: Optional[str] = None) -> int:
        """Count stored issues, optionally for one repository"""
        if self.pool:
            async with self.get_connection() as conn:
                if repo_full_name:
                    return await conn.fetchval(
                        "SELECT COUNT(*) FROM issues WHERE repository_full_name = $1", repo_full_name
                    )
                return await conn.fetchval("SELECT COUNT(*) FROM issues")

        return sum(
            1 for key in self._memory_storage['issues']
            if repo_full_name is None or key[1] == repo_full_name
        )

    # Webhook event audit trail

    async def record_webhook_event(self, event: RawWebhookEvent) -> None:
        """Append a raw delivery to the audit trail"""
        if self.pool:
            async with self.get_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO webhook_events (event_type, repository_full_name, delivery_id, payload, received_at)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    event.event_type, event.repository_full_name, event.delivery_id,
                    json.dumps(event.payload), event.received_at
                )
        else:
            self._memory_storage['webhook_events'].append(event.model_dump())

    async def count_webhook_events(self, repo_full_name: Optional[str] = None) -> int:
        """Count recorded deliveries"""
        if self.pool:
            async with self.get_connection() as conn:
                if repo_full_name:
                    return await conn.fetchval(
                        "SELECT COUNT(*) FROM webhook_events WHERE repository_full_name = $1",
                        repo_full_name
                    )
                return await conn.fetchval("SELECT COUNT(*) FROM webhook_events")

        return sum(
            1 for event in self._memory_storage['webhook_events']
            if repo_full_name is None or event['repository_full_name'] == repo_full_name
        )

    async def check_health(self) -> bool:
        """Check storage connectivity"""
        if not self._initialized:
            return False
        if self.pool:
            try:
                async with self.get_connection() as conn:
                    await conn.fetchval("SELECT 1")
            except (asyncpg.PostgresError, OSError) as e:
                logger.error("Database health check failed", error=str(e))
                return False
        return True
