"""
Shared fixtures
"""

import os

os.environ.setdefault("GITHUB_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("GITHUB_TOKEN", "test_token")
os.environ.setdefault("GITHUB_OWNER", "acme")
os.environ.setdefault("API_URL", "https://bot.example.com")
os.environ.setdefault("DISCORD_TOKEN", "discord-test-token")
os.environ.setdefault("DISCORD_CHANNEL_ID", "default-channel")

import pytest
import pytest_asyncio

from src.services.database_service import DatabaseService
from tests.fakes import FakeClock, FakeGitHubClient, RecordingSink


@pytest.fixture
def github():
    return FakeGitHubClient()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def database():
    """In-memory database service"""
    db = DatabaseService()
    await db.initialize()
    yield db
    await db.close()
