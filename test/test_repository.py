"""Tests for CallRecordRepository state-guarded writes."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.models import CallOutcome, CallState
from callkeeper.calls.outcomes import TerminalUpdate
from callkeeper.calls.repository import CallRecordRepository
from callkeeper.directory.models import Group
from callkeeper.shared.exceptions import InvalidStateTransitionError

from conftest import create_initiated, hours_ago


def _done(summary: str = "Table booked.", outcome: CallOutcome = CallOutcome.SUCCESS) -> TerminalUpdate:
    return TerminalUpdate(
        state=CallState.DONE,
        outcome=outcome,
        transcript=[{"role": "agent", "message": "Hi", "time_in_call_secs": 0.0}],
        summary=summary,
        duration_seconds=42,
        termination_reason="client ended call",
    )


@pytest.mark.asyncio
async def test_create_starts_pending(session: AsyncSession, group: Group) -> None:
    repo = CallRecordRepository(session)
    record = await repo.create(
        group_id=group.id,
        to_number="+14155551234",
        instructions="Confirm the appointment for Monday.",
    )
    await session.commit()

    stored = await repo.get_by_id(record.id)
    assert stored is not None
    assert stored.state == CallState.PENDING
    assert stored.conversation_id is None
    assert stored.started_at is None
    assert stored.outcome is None


@pytest.mark.asyncio
async def test_set_initiated_attaches_conversation_once(session: AsyncSession, group: Group) -> None:
    record = await create_initiated(session, group, "conv_once")
    call_id = record.id
    repo = CallRecordRepository(session)

    stored = await repo.get_by_id(call_id)
    assert stored.state == CallState.INITIATED
    assert stored.conversation_id == "conv_once"
    assert stored.call_sid == "CA123"
    assert stored.started_at is not None

    with pytest.raises(InvalidStateTransitionError):
        await repo.set_initiated(call_id, "conv_other")
    await session.rollback()

    stored = await repo.get_by_id(call_id)
    assert stored.conversation_id == "conv_once"


@pytest.mark.asyncio
async def test_set_failed_before_start(session: AsyncSession, group: Group) -> None:
    repo = CallRecordRepository(session)
    record = await repo.create(
        group_id=group.id,
        to_number="+14155551234",
        instructions="Ask about opening hours.",
    )
    await repo.set_failed_before_start(record.id, "Provider API error (422)")
    await session.commit()

    stored = await repo.get_by_id(record.id)
    assert stored.state == CallState.FAILED
    assert stored.outcome == CallOutcome.FAILURE
    assert stored.error_reason == "Provider API error (422)"
    assert stored.completed_at is not None
    assert stored.conversation_id is None

    with pytest.raises(InvalidStateTransitionError):
        await repo.set_failed_before_start(record.id, "again")


@pytest.mark.asyncio
async def test_set_terminal_writes_all_fields(session: AsyncSession, group: Group) -> None:
    await create_initiated(session, group, "conv_done")
    repo = CallRecordRepository(session)

    stored = await repo.set_terminal("conv_done", _done())
    await session.commit()

    assert stored is not None
    assert stored.state == CallState.DONE
    assert stored.outcome == CallOutcome.SUCCESS
    assert stored.summary == "Table booked."
    assert stored.duration_seconds == 42
    assert stored.transcript == [{"role": "agent", "message": "Hi", "time_in_call_secs": 0.0}]
    assert stored.completed_at is not None


@pytest.mark.asyncio
async def test_set_terminal_is_idempotent(session: AsyncSession, group: Group) -> None:
    await create_initiated(session, group, "conv_replay")
    repo = CallRecordRepository(session)

    first_at = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    first = await repo.set_terminal("conv_replay", _done(), now=first_at)
    await session.commit()
    snapshot = {
        "state": first.state,
        "outcome": first.outcome,
        "summary": first.summary,
        "transcript": first.transcript,
        "completed_at": first.completed_at,
    }

    second = await repo.set_terminal("conv_replay", _done(), now=first_at + timedelta(minutes=5))
    await session.commit()

    assert {
        "state": second.state,
        "outcome": second.outcome,
        "summary": second.summary,
        "transcript": second.transcript,
        "completed_at": second.completed_at,
    } == snapshot


@pytest.mark.asyncio
async def test_set_terminal_last_write_wins_until_notified(session: AsyncSession, group: Group) -> None:
    record = await create_initiated(session, group, "conv_lww")
    repo = CallRecordRepository(session)

    await repo.set_terminal("conv_lww", _done(summary="first"))
    await session.commit()
    updated = await repo.set_terminal("conv_lww", _done(summary="second", outcome=CallOutcome.VOICEMAIL))
    await session.commit()
    assert updated.summary == "second"
    assert updated.outcome == CallOutcome.VOICEMAIL

    assert await repo.mark_notified(record.id) is True
    await session.commit()

    frozen = await repo.set_terminal("conv_lww", _done(summary="third"))
    await session.commit()
    assert frozen.summary == "second"


@pytest.mark.asyncio
async def test_set_terminal_unknown_conversation(session: AsyncSession, group: Group) -> None:
    repo = CallRecordRepository(session)
    assert await repo.set_terminal("conv_missing", _done()) is None


@pytest.mark.asyncio
async def test_mark_notified_requires_terminal_and_is_once(session: AsyncSession, group: Group) -> None:
    record = await create_initiated(session, group, "conv_notify")
    repo = CallRecordRepository(session)

    # Not terminal yet.
    assert await repo.mark_notified(record.id) is False

    await repo.set_terminal("conv_notify", _done())
    await session.commit()

    assert await repo.mark_notified(record.id) is True
    await session.commit()
    assert await repo.mark_notified(record.id) is False

    stored = await repo.get_by_id(record.id)
    assert stored.notified_at is not None
    assert stored.completed_at is not None


@pytest.mark.asyncio
async def test_list_unnotified_terminal_orders_by_completion(session: AsyncSession, group: Group) -> None:
    await create_initiated(session, group, "conv_a")
    await create_initiated(session, group, "conv_b")
    await create_initiated(session, group, "conv_c")
    repo = CallRecordRepository(session)

    base = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    await repo.set_terminal("conv_b", _done(), now=base)
    await repo.set_terminal("conv_a", _done(), now=base + timedelta(minutes=1))
    await session.commit()

    pending = await repo.list_unnotified_terminal()
    assert [r.conversation_id for r in pending] == ["conv_b", "conv_a"]

    await repo.mark_notified(pending[0].id)
    await session.commit()

    pending = await repo.list_unnotified_terminal()
    assert [r.conversation_id for r in pending] == ["conv_a"]


@pytest.mark.asyncio
async def test_list_stale_filters_by_age_and_state(session: AsyncSession, group: Group) -> None:
    await create_initiated(session, group, "conv_old", started_at=hours_ago(2))
    await create_initiated(session, group, "conv_new", started_at=hours_ago(0.1))
    await create_initiated(session, group, "conv_old_done", started_at=hours_ago(3))
    repo = CallRecordRepository(session)
    await repo.set_terminal("conv_old_done", _done())
    await session.commit()

    stale = await repo.list_stale(max_age_minutes=30)
    assert [r.conversation_id for r in stale] == ["conv_old"]
