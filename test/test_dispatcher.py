"""Tests for the notification dispatcher."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.models import CallOutcome, CallState
from callkeeper.calls.outcomes import TerminalUpdate
from callkeeper.calls.repository import CallRecordRepository
from callkeeper.directory.models import Group, Member
from callkeeper.notifications.dispatcher import NotificationDispatcher
from callkeeper.shared.database import DatabaseManager
from callkeeper.shared.exceptions import NotificationDeliveryError

from conftest import RecordingSink, create_initiated

DONE = TerminalUpdate(
    state=CallState.DONE,
    outcome=CallOutcome.SUCCESS,
    summary="Table for two at 7pm confirmed.",
    duration_seconds=75,
)


async def _finish(session: AsyncSession, conversation_id: str) -> None:
    await CallRecordRepository(session).set_terminal(conversation_id, DONE)
    await session.commit()


@pytest.mark.asyncio
async def test_sends_and_marks_notified(
    db_manager: DatabaseManager, session: AsyncSession, group: Group, member: Member
) -> None:
    record = await create_initiated(session, group, "conv_n1", requested_by=member.id)
    await _finish(session, "conv_n1")
    sink = RecordingSink()

    sent = await NotificationDispatcher(db_manager.session_factory, sink).run_once()

    assert sent == 1
    assert len(sink.sent) == 1
    destination, text = sink.sent[0]
    assert destination == group.notification_chat_id
    assert "Call Complete: Luigi's Trattoria" in text
    assert "Requested by Alex" in text
    assert "1m 15s" in text

    stored = await CallRecordRepository(session).get_by_id(record.id)
    assert stored.notified_at is not None


@pytest.mark.asyncio
async def test_in_flight_calls_not_notified(
    db_manager: DatabaseManager, session: AsyncSession, group: Group
) -> None:
    await create_initiated(session, group, "conv_running")
    sink = RecordingSink()

    assert await NotificationDispatcher(db_manager.session_factory, sink).run_once() == 0
    assert sink.sent == []


@pytest.mark.asyncio
async def test_delivery_failure_then_success(
    db_manager: DatabaseManager, session: AsyncSession, group: Group
) -> None:
    record = await create_initiated(session, group, "conv_retry")
    await _finish(session, "conv_retry")

    sink = AsyncMock()
    sink.send.side_effect = [NotificationDeliveryError("chat unavailable", "-100"), None]
    dispatcher = NotificationDispatcher(db_manager.session_factory, sink)
    repo = CallRecordRepository(session)

    assert await dispatcher.run_once() == 0
    stored = await repo.get_by_id(record.id)
    assert stored.notified_at is None

    assert await dispatcher.run_once() == 1
    stored = await repo.get_by_id(record.id)
    assert stored.notified_at is not None

    # Already notified: nothing left to send.
    assert await dispatcher.run_once() == 0
    assert sink.send.await_count == 2


@pytest.mark.asyncio
async def test_missing_destination_leaves_call_unnotified(
    db_manager: DatabaseManager, session: AsyncSession, unlinked_group: Group
) -> None:
    record = await create_initiated(session, unlinked_group, "conv_nochat")
    await _finish(session, "conv_nochat")
    sink = RecordingSink()

    assert await NotificationDispatcher(db_manager.session_factory, sink).run_once() == 0
    assert sink.sent == []
    stored = await CallRecordRepository(session).get_by_id(record.id)
    assert stored.notified_at is None


@pytest.mark.asyncio
async def test_one_failure_does_not_block_others(
    db_manager: DatabaseManager, session: AsyncSession, group: Group
) -> None:
    await create_initiated(session, group, "conv_first")
    await create_initiated(session, group, "conv_second")
    await _finish(session, "conv_first")
    await _finish(session, "conv_second")

    sink = AsyncMock()
    sink.send.side_effect = [RuntimeError("socket closed"), None]

    assert await NotificationDispatcher(db_manager.session_factory, sink).run_once() == 1
    assert sink.send.await_count == 2


@pytest.mark.asyncio
async def test_undeliverable_backlog_does_not_block_later_calls(
    db_manager: DatabaseManager, session: AsyncSession, group: Group, unlinked_group: Group
) -> None:
    for i in range(3):
        await create_initiated(session, unlinked_group, f"conv_orphan_{i}")
        await _finish(session, f"conv_orphan_{i}")
    deliverable = await create_initiated(session, group, "conv_linked")
    await _finish(session, "conv_linked")
    sink = RecordingSink()

    sent = await NotificationDispatcher(db_manager.session_factory, sink, batch_size=3).run_once()

    assert sent == 1
    assert [destination for destination, _ in sink.sent] == [group.notification_chat_id]
    stored = await CallRecordRepository(session).get_by_id(deliverable.id)
    assert stored.notified_at is not None
