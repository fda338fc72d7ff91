"""
GitHub REST API client used for repository, issue and webhook operations
"""

import asyncio
import httpx
import structlog
from typing import List, Dict, Any, Optional
from datetime import datetime

logger = structlog.get_logger()


class GitHubAPIError(Exception):
    """Custom exception for GitHub API errors"""
    def __init__(self, message: str, status_code: int = None, response_data: dict = None,
                 rate_limit_remaining: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data
        self.rate_limit_remaining = rate_limit_remaining
        super().__init__(message)


class GitHubClient:
    """GitHub API client scoped to one owner account"""

    def __init__(self, token: str, owner: str, api_url: str = "https://api.github.com",
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        if not token:
            raise ValueError("GitHub token is required")

        self.token = token
        self.owner = owner
        self.api_url = api_url.rstrip("/")
        self.headers = {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "OctoBot-GitHub-Bridge/1.0"
        }
        self.client = httpx.AsyncClient(
            headers=self.headers,
            timeout=httpx.Timeout(30.0),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            transport=transport,
        )
        self.rate_limit_remaining = 5000
        self.rate_limit_reset = datetime.now()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send an authenticated request and raise GitHubAPIError on failure"""

        # Check rate limit
        if self.rate_limit_remaining <= 10 and datetime.now() < self.rate_limit_reset:
            wait_time = (self.rate_limit_reset - datetime.now()).total_seconds()
            logger.warning("Rate limit approaching, waiting", wait_time=wait_time)
            await asyncio.sleep(wait_time)

        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            logger.error("GitHub API request failed", error=str(e), url=url)
            raise GitHubAPIError(f"Request failed: {str(e)}")

        # Update rate limit info
        self.rate_limit_remaining = int(response.headers.get("X-RateLimit-Remaining", 5000))
        reset_timestamp = int(response.headers.get("X-RateLimit-Reset", 0))
        if reset_timestamp:
            self.rate_limit_reset = datetime.fromtimestamp(reset_timestamp)

        if response.status_code >= 400:
            error_data = {}
            try:
                error_data = response.json()
            except ValueError:
                pass

            raise GitHubAPIError(
                f"GitHub API error: {response.status_code}",
                status_code=response.status_code,
                response_data=error_data,
                rate_limit_remaining=self.rate_limit_remaining,
            )

        return response

    async def _make_request(self, method: str, path: str, **kwargs) -> Any:
        """Make an authenticated request to GitHub API with error handling"""
        response = await self._send(method, f"{self.api_url}{path}", **kwargs)
        return response.json() if response.content else {}

    async def _paginate(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Follow Link rel="next" headers until the listing is exhausted"""
        params = {"per_page": 100, **(params or {})}
        url = f"{self.api_url}{path}"
        items: List[Dict[str, Any]] = []

        while url:
            response = await self._send("GET", url, params=params)
            page = response.json() if response.content else []
            if not page:
                break
            items.extend(page)

            next_link = response.links.get("next")
            url = next_link["url"] if next_link else None
            # The next link already carries the query string
            params = None

        return items

    # Repository Operations
    async def get_repository(self, repo_full_name: str) -> Dict[str, Any]:
        """Get repository information"""
        return await self._make_request("GET", f"/repos/{repo_full_name}")

    async def list_owner_repositories(self) -> List[Dict[str, Any]]:
        """List every repository owned by the configured account"""
        repositories = await self._paginate(
            f"/users/{self.owner}/repos",
            {"type": "owner", "sort": "updated", "direction": "desc"},
        )
        logger.info("Retrieved repositories", owner=self.owner, count=len(repositories))
        return repositories

    async def delete_repository(self, repo_full_name: str) -> None:
        """Delete a repository on GitHub"""
        await self._make_request("DELETE", f"/repos/{repo_full_name}")

    # Issue Operations
    async def list_repository_issues(self, repo_full_name: str, state: str = "open") -> List[Dict[str, Any]]:
        """List issues (and pull requests) of a repository for a single state"""
        return await self._paginate(
            f"/repos/{repo_full_name}/issues",
            {"state": state, "sort": "updated", "direction": "desc"},
        )

    async def get_issue(self, repo_full_name: str, issue_number: int) -> Dict[str, Any]:
        """Get a specific issue"""
        return await self._make_request("GET", f"/repos/{repo_full_name}/issues/{issue_number}")

    async def create_issue(self, repo_full_name: str, title: str, body: str = "",
                           labels: Optional[List[str]] = None) -> Dict[str, Any]:
        """Create an issue"""
        data: Dict[str, Any] = {"title": title, "body": body}
        if labels:
            data["labels"] = labels
        return await self._make_request("POST", f"/repos/{repo_full_name}/issues", json=data)

    # Webhook Operations
    async def list_hooks(self, repo_full_name: str) -> List[Dict[str, Any]]:
        """List webhooks registered on a repository"""
        return await self._paginate(f"/repos/{repo_full_name}/hooks")

    async def create_hook(self, repo_full_name: str, config: Dict[str, Any],
                          events: List[str], active: bool = True) -> Dict[str, Any]:
        """Register a new webhook"""
        data = {"name": "web", "config": config, "events": events, "active": active}
        return await self._make_request("POST", f"/repos/{repo_full_name}/hooks", json=data)

    async def update_hook(self, repo_full_name: str, hook_id: int, config: Dict[str, Any],
                          events: List[str], active: bool = True) -> Dict[str, Any]:
        """Update an existing webhook in place"""
        data = {"config": config, "events": events, "active": active}
        return await self._make_request("PATCH", f"/repos/{repo_full_name}/hooks/{hook_id}", json=data)

    async def delete_hook(self, repo_full_name: str, hook_id: int) -> None:
        """Delete a webhook"""
        await self._make_request("DELETE", f"/repos/{repo_full_name}/hooks/{hook_id}")
