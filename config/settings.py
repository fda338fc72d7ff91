"""
Application settings and configuration
"""

from typing import List, Optional
from urllib.parse import urljoin

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Server Configuration
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=4000, description="Server port")
    DEBUG: bool = Field(default=False, description="Debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # GitHub Configuration
    GITHUB_WEBHOOK_SECRET: str = Field(..., description="GitHub webhook secret")
    GITHUB_TOKEN: str = Field(..., description="GitHub personal access token")
    GITHUB_OWNER: str = Field(..., description="Account whose repositories are mirrored")
    GITHUB_API_URL: str = Field(
        default="https://api.github.com", description="GitHub API URL"
    )

    # Webhook callback
    API_URL: str = Field(..., description="Public base URL of this service")
    WEBHOOK_PATH: str = Field(
        default="/webhooks/github", description="Path GitHub delivers events to"
    )
    WEBHOOK_INCLUDE_CI_EVENTS: bool = Field(
        default=True, description="Subscribe hooks to workflow/deployment events"
    )

    # Discord Configuration
    DISCORD_TOKEN: str = Field(default="", description="Discord bot token")
    DISCORD_CHANNEL_ID: str = Field(
        default="", description="Default channel for notifications"
    )
    DISCORD_API_URL: str = Field(
        default="https://discord.com/api/v10", description="Discord API URL"
    )

    # Storage
    DATABASE_URL: Optional[str] = Field(
        default=None, description="PostgreSQL URL; in-memory storage when unset"
    )

    # Sync and cache
    SYNC_BATCH_SIZE: int = Field(default=3, ge=1, description="Repositories synced concurrently")
    ISSUE_CACHE_TTL_SECONDS: int = Field(
        default=300, ge=1, description="Lifetime of cached issue listings"
    )
    DELIVERY_DEDUP_WINDOW_SECONDS: int = Field(
        default=300, ge=0, description="Window in which repeated deliveries are ignored"
    )

    @field_validator("GITHUB_WEBHOOK_SECRET")
    @classmethod
    def webhook_secret_not_blank(cls, value: str) -> str:
        # Events cannot be authenticated without it
        if not value or not value.strip():
            raise ValueError("GITHUB_WEBHOOK_SECRET must be configured")
        return value

    @property
    def webhook_url(self) -> str:
        """Callback URL registered on every watched repository"""
        return urljoin(self.API_URL, self.WEBHOOK_PATH)

    @property
    def webhook_events(self) -> List[str]:
        """Canonical event set a hook is reconciled towards"""
        events = ["push", "pull_request", "issues", "release", "create", "delete"]
        if self.WEBHOOK_INCLUDE_CI_EVENTS:
            events += [
                "workflow_run",
                "workflow_job",
                "check_run",
                "deployment",
                "deployment_status",
                "status",
            ]
        return events

    def full_repo_name(self, name: str) -> str:
        """Qualify a bare repository name with the configured owner"""
        name = name.strip().strip("/")
        if "/" in name:
            return name
        return f"{self.GITHUB_OWNER}/{name}"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Global settings instance
settings = Settings()
