import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Set up environment variables before importing the package
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ["PASSWORD_HASH_TIME_COST"] = "1"
os.environ["PASSWORD_HASH_MEMORY_COST"] = "1024"
os.environ["PASSWORD_HASH_PARALLELISM"] = "1"
os.environ["LOG_JSON"] = "false"

from trailauth.auth.service import AuthService
from trailauth.core.config import Settings
from trailauth.core.database import Database
from trailauth.models import PasswordResetRequest, RefreshSession

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"


class FakeClock:
    """Controllable time source shared by every component under test."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingChannel:
    """Notification channel that keeps every code it was asked to deliver."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def send_reset_code(self, destination: str, code: str) -> None:
        if self.fail:
            raise ConnectionError("smtp unreachable")
        self.sent.append((destination, code))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'trailauth_test.db'}",
        "jwt_secret_key": TEST_SECRET,
        "log_json": False,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest_asyncio.fixture
async def service(settings, database, channel, clock):
    return AuthService.create(settings, database, notifier=channel, clock=clock)


async def count_usable_sessions(database, identity_id, now) -> int:
    """Sessions that are neither revoked nor expired at `now`."""
    async with database.session() as session:
        result = await session.execute(
            select(func.count(RefreshSession.id)).where(
                RefreshSession.identity_id == identity_id,
                RefreshSession.revoked_at.is_(None),
                RefreshSession.expires_at > now,
            )
        )
        return int(result.scalar_one())


async def pending_reset_request(database, identity_id):
    """The single unconsumed reset request of an identity, if any."""
    async with database.session() as session:
        result = await session.execute(
            select(PasswordResetRequest).where(
                PasswordResetRequest.identity_id == identity_id,
                PasswordResetRequest.consumed.is_(False),
            )
        )
        return result.scalar_one_or_none()
