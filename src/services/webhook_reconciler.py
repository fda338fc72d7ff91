"""
Idempotent reconciliation of GitHub webhooks against the desired configuration
"""

from typing import Any, Dict, List, Optional

import structlog

from src.models.github import Repository, WebhookSettings
from src.models.responses import ReconcileResult, WebhookStatus
from .database_service import DatabaseService
from .errors import webhook_error_from
from .github_client import GitHubClient, GitHubAPIError

logger = structlog.get_logger()

CONTENT_TYPE = "json"


class WebhookReconciler:
    """
    Keeps exactly one hook per repository pointed at this service.

    A hook is "ours" when its target URL equals the configured callback URL;
    every other hook on the repository is left untouched.
    """

    def __init__(self, github_client: GitHubClient, database: DatabaseService,
                 webhook_url: str, webhook_secret: str, events: List[str],
                 default_channel_id: Optional[str] = None):
        self.github_client = github_client
        self.database = database
        self.webhook_url = webhook_url
        self.webhook_secret = webhook_secret
        self.events = list(events)
        self.default_channel_id = default_channel_id

    def _hook_config(self) -> Dict[str, Any]:
        return {
            "url": self.webhook_url,
            "content_type": CONTENT_TYPE,
            "secret": self.webhook_secret,
            "insecure_ssl": "0",
        }

    def _matches_desired(self, hook: Dict[str, Any]) -> bool:
        """Compare content type, active flag and event set"""
        config = hook.get("config") or {}
        return (
            config.get("content_type") == CONTENT_TYPE
            and hook.get("active") is True
            and set(hook.get("events") or []) == set(self.events)
        )

    async def _get_remote_repository(self, repo_full_name: str) -> Dict[str, Any]:
        try:
            return await self.github_client.get_repository(repo_full_name)
        except GitHubAPIError as e:
            raise webhook_error_from(e, repo_full_name)

    async def _find_hook(self, repo_full_name: str) -> Optional[Dict[str, Any]]:
        try:
            hooks = await self.github_client.list_hooks(repo_full_name)
        except GitHubAPIError as e:
            raise webhook_error_from(e, repo_full_name)

        for hook in hooks:
            if (hook.get("config") or {}).get("url") == self.webhook_url:
                return hook
        return None

    async def ensure(self, repo_full_name: str, channel_id: Optional[str] = None) -> ReconcileResult:
        """Create or update our hook so it matches the desired configuration"""
        logger.info("Reconciling webhook", repository=repo_full_name)

        # Step 1: the repository must exist remotely
        remote_repository = await self._get_remote_repository(repo_full_name)

        # Step 2: look for our hook among the existing ones
        existing = await self._find_hook(repo_full_name)

        try:
            if existing and self._matches_desired(existing):
                action = "unchanged"
                hook_id = existing["id"]
                logger.info("Webhook already configured", repository=repo_full_name, hook_id=hook_id)
            elif existing:
                # Update in place so there is never a window without an active hook
                await self.github_client.update_hook(
                    repo_full_name, existing["id"], self._hook_config(), self.events, active=True
                )
                action = "updated"
                hook_id = existing["id"]
                logger.info("Webhook updated", repository=repo_full_name, hook_id=hook_id)
            else:
                created = await self.github_client.create_hook(
                    repo_full_name, self._hook_config(), self.events, active=True
                )
                action = "created"
                hook_id = created.get("id")
                logger.info("Webhook created", repository=repo_full_name, hook_id=hook_id)
        except GitHubAPIError as e:
            raise webhook_error_from(e, repo_full_name)

        local_state_saved = await self._save_watch_state(remote_repository, channel_id)

        return ReconcileResult(
            repository=repo_full_name,
            action=action,
            hook_id=hook_id,
            local_state_saved=local_state_saved,
        )

    async def remove(self, repo_full_name: str) -> ReconcileResult:
        """Delete our hook; an already missing hook counts as success"""
        logger.info("Removing webhook", repository=repo_full_name)

        existing = await self._find_hook(repo_full_name)
        if existing is None:
            action = "absent"
            hook_id = None
            logger.info("No webhook found to remove", repository=repo_full_name)
        else:
            hook_id = existing["id"]
            try:
                await self.github_client.delete_hook(repo_full_name, hook_id)
                action = "deleted"
            except GitHubAPIError as e:
                # Deleted concurrently by someone else
                if e.status_code != 404:
                    raise webhook_error_from(e, repo_full_name)
                action = "absent"
            logger.info("Webhook removed", repository=repo_full_name, hook_id=hook_id, action=action)

        local_state_saved = await self._clear_watch_state(repo_full_name)
        return ReconcileResult(
            repository=repo_full_name,
            action=action,
            hook_id=hook_id,
            local_state_saved=local_state_saved,
        )

    async def check(self, repo_full_name: str) -> WebhookStatus:
        """Report whether our hook exists and matches the desired configuration"""
        await self._get_remote_repository(repo_full_name)
        hook = await self._find_hook(repo_full_name)
        if hook is None:
            return WebhookStatus(exists=False)

        repository = await self.database.get_repository_by_name(repo_full_name)
        channel_id = None
        if repository and repository.webhook_settings:
            channel_id = repository.webhook_settings.channel_id

        return WebhookStatus(
            exists=True,
            active=bool(hook.get("active")),
            hook_id=hook.get("id"),
            channel_id=channel_id,
            in_sync=self._matches_desired(hook),
        )

    # The remote write and this local write are not transactional. A failure
    # here leaves the hook configured remotely while the local record is stale
    # until the next reconciliation; it is reported, not hidden.
    async def _save_watch_state(self, remote_repository: Dict[str, Any], channel_id: Optional[str]) -> bool:
        """Mark the repository watched; without a new channel the stored binding is kept"""
        full_name = remote_repository.get("full_name", "")
        try:
            repository = await self.database.get_repository_by_github_id(remote_repository["id"])
            if repository is None:
                repository = Repository.from_github(remote_repository)
            elif channel_id is None and repository.webhook_settings:
                channel_id = repository.webhook_settings.channel_id
            repository.webhook_active = True
            repository.webhook_settings = WebhookSettings(
                events=self.events, channel_id=channel_id or self.default_channel_id
            )
            await self.database.upsert_repository(repository)
            return True
        except Exception as e:
            logger.error(
                "Webhook configured remotely but local state was not saved",
                repository=full_name,
                error=str(e),
            )
            return False

    async def _clear_watch_state(self, repo_full_name: str) -> bool:
        try:
            await self.database.update_repository_webhook(repo_full_name, active=False, webhook_settings=None)
            return True
        except Exception as e:
            logger.error(
                "Webhook removed remotely but local state was not saved",
                repository=repo_full_name,
                error=str(e),
            )
            return False
