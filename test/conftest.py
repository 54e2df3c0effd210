"""
Shared fixtures: file-backed SQLite database, directory rows, signing helper.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.models import CallRecord
from callkeeper.calls.repository import CallRecordRepository
from callkeeper.directory.models import Group, Member
from callkeeper.notifications.sink import LoggingNotificationSink
from callkeeper.shared.database import DatabaseManager
from callkeeper.telephony.config import ProviderType, TelephonyConfig
from callkeeper.telephony.signature import build_signature_header

WEBHOOK_SECRET = "whsec_test_secret"


@pytest_asyncio.fixture
async def db_manager(tmp_path: Path) -> AsyncGenerator[DatabaseManager, None]:
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'callkeeper.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def session(db_manager: DatabaseManager) -> AsyncGenerator[AsyncSession, None]:
    async with db_manager.session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def group(session: AsyncSession) -> Group:
    g = Group(name="Test Household", notification_chat_id="-1001234567890")
    session.add(g)
    await session.commit()
    return g


@pytest_asyncio.fixture
async def unlinked_group(session: AsyncSession) -> Group:
    g = Group(name="No Chat Yet", notification_chat_id=None)
    session.add(g)
    await session.commit()
    return g


@pytest_asyncio.fixture
async def member(session: AsyncSession, group: Group) -> Member:
    m = Member(group_id=group.id, name="Alex", phone_number="+14155550100")
    session.add(m)
    await session.commit()
    return m


@pytest.fixture
def telephony_config() -> TelephonyConfig:
    return TelephonyConfig(
        _env_file=None,
        provider_type=ProviderType.MOCK,
        api_key="xi-test-key",
        phone_number_id="phnum_test",
        agent_general="agent_general_test",
        webhook_secret=WEBHOOK_SECRET,
    )


def sign(body: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    return build_signature_header(secret, body, timestamp)


def hours_ago(hours: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=hours)


async def create_initiated(
    session: AsyncSession,
    group: Group,
    conversation_id: str,
    *,
    requested_by=None,
    started_at: datetime | None = None,
    to_name: str | None = "Luigi's Trattoria",
) -> CallRecord:
    """Persist a call that the provider has already accepted."""
    repo = CallRecordRepository(session)
    record = await repo.create(
        group_id=group.id,
        to_number="+14155551234",
        instructions="Book a table for two at 7pm on Friday.",
        to_name=to_name,
        requested_by=requested_by,
    )
    await repo.set_initiated(record.id, conversation_id, call_sid="CA123", now=started_at)
    await session.commit()
    return record


class RecordingSink(LoggingNotificationSink):
    """Logging sink that also keeps every delivered message."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, destination: str, text: str) -> None:
        await super().send(destination, text)
        self.sent.append((destination, text))
