"""
Repository for call record database operations.

Every write is a single-row UPDATE keyed by ``id`` or ``conversation_id``
and guarded by the state it expects, so concurrent writers never need a
lock: a guard that no longer matches simply updates zero rows.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, Sequence
from uuid import UUID

from sqlalchemy import ColumnElement, and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.models import (
    IN_FLIGHT_STATES,
    TERMINAL_STATES,
    AgentType,
    CallOutcome,
    CallPurpose,
    CallRecord,
    CallState,
)
from callkeeper.calls.outcomes import TerminalUpdate
from callkeeper.shared.exceptions import InvalidStateTransitionError
from callkeeper.shared.logging import get_logger

logger = get_logger(__name__)


PageCursor = tuple[datetime, UUID]
"""Position of the last row of a page: its sort timestamp and ID."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _after(column: Any, cursor: PageCursor) -> ColumnElement[bool]:
    at, last_id = cursor
    return or_(column > at, and_(column == at, CallRecord.id > last_id))


class CallRecordRepositoryProtocol(Protocol):
    """Protocol for call record persistence."""

    async def create(
        self,
        *,
        group_id: UUID,
        to_number: str,
        instructions: str,
        agent_type: AgentType = AgentType.GENERAL,
        call_purpose: CallPurpose = CallPurpose.OTHER,
        to_name: str | None = None,
        requested_by: UUID | None = None,
        dynamic_variables: dict[str, Any] | None = None,
    ) -> CallRecord: ...

    async def set_initiated(
        self,
        call_id: UUID,
        conversation_id: str,
        call_sid: str | None = None,
        now: datetime | None = None,
    ) -> None: ...

    async def set_failed_before_start(
        self,
        call_id: UUID,
        reason: str,
        now: datetime | None = None,
    ) -> None: ...

    async def get_by_conversation_id(self, conversation_id: str) -> CallRecord | None: ...

    async def set_terminal(
        self,
        conversation_id: str,
        terminal: TerminalUpdate,
        now: datetime | None = None,
    ) -> CallRecord | None: ...

    async def list_unnotified_terminal(
        self,
        limit: int = 100,
        after: PageCursor | None = None,
    ) -> Sequence[CallRecord]: ...

    async def mark_notified(self, call_id: UUID, now: datetime | None = None) -> bool: ...

    async def list_stale(
        self,
        states: Iterable[CallState] = IN_FLIGHT_STATES,
        max_age_minutes: int = 30,
        now: datetime | None = None,
        limit: int = 100,
        after: PageCursor | None = None,
    ) -> Sequence[CallRecord]: ...


class CallRecordRepository:
    """Repository for call record database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def create(
        self,
        *,
        group_id: UUID,
        to_number: str,
        instructions: str,
        agent_type: AgentType = AgentType.GENERAL,
        call_purpose: CallPurpose = CallPurpose.OTHER,
        to_name: str | None = None,
        requested_by: UUID | None = None,
        dynamic_variables: dict[str, Any] | None = None,
    ) -> CallRecord:
        """Create a new ``pending`` call record.

        Returns:
            Created CallRecord instance.
        """
        record = CallRecord(
            group_id=group_id,
            requested_by=requested_by,
            agent_type=agent_type,
            call_purpose=call_purpose,
            to_number=to_number,
            to_name=to_name,
            instructions=instructions,
            dynamic_variables=dynamic_variables,
            state=CallState.PENDING,
            created_at=_utcnow(),
        )
        self._session.add(record)
        await self._session.flush()
        await self._session.refresh(record)
        return record

    async def get_by_id(self, call_id: UUID) -> CallRecord | None:
        """Get call record by local ID."""
        stmt = (
            select(CallRecord)
            .where(CallRecord.id == call_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_conversation_id(self, conversation_id: str) -> CallRecord | None:
        """Get call record by provider conversation ID."""
        stmt = (
            select(CallRecord)
            .where(CallRecord.conversation_id == conversation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_initiated(
        self,
        call_id: UUID,
        conversation_id: str,
        call_sid: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Record provider acceptance: ``pending`` -> ``initiated``.

        The conversation ID can only be attached to a pending record that
        has none yet.

        Raises:
            InvalidStateTransitionError: If the record is not pending.
        """
        stmt = (
            update(CallRecord)
            .where(
                CallRecord.id == call_id,
                CallRecord.state == CallState.PENDING,
                CallRecord.conversation_id.is_(None),
            )
            .values(
                conversation_id=conversation_id,
                call_sid=call_sid,
                state=CallState.INITIATED,
                started_at=now or _utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise InvalidStateTransitionError(call_id, "set_initiated")

    async def set_failed_before_start(
        self,
        call_id: UUID,
        reason: str,
        now: datetime | None = None,
    ) -> None:
        """Record a placement rejection: ``pending`` -> ``failed``.

        Raises:
            InvalidStateTransitionError: If the record is not pending.
        """
        stmt = (
            update(CallRecord)
            .where(
                CallRecord.id == call_id,
                CallRecord.state == CallState.PENDING,
            )
            .values(
                state=CallState.FAILED,
                outcome=CallOutcome.FAILURE,
                error_reason=reason,
                completed_at=now or _utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise InvalidStateTransitionError(call_id, "set_failed_before_start")

    async def set_terminal(
        self,
        conversation_id: str,
        terminal: TerminalUpdate,
        now: datetime | None = None,
    ) -> CallRecord | None:
        """Overwrite the terminal fields of a call.

        Every terminal field is written from ``terminal`` (never merged), and
        ``completed_at`` keeps its first value, so applying the same update
        twice stores the same row. Once the call has been notified the row
        is frozen and the write is skipped.

        Returns:
            The stored record, or None if the conversation is unknown.
        """
        stmt = (
            update(CallRecord)
            .where(
                CallRecord.conversation_id == conversation_id,
                CallRecord.state != CallState.PENDING,
                CallRecord.notified_at.is_(None),
            )
            .values(
                **terminal.as_values(),
                completed_at=func.coalesce(CallRecord.completed_at, now or _utcnow()),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            logger.info(
                "Terminal write skipped",
                extra={"conversation_id": conversation_id, "state": terminal.state.value},
            )
        return await self.get_by_conversation_id(conversation_id)

    async def list_unnotified_terminal(
        self,
        limit: int = 100,
        after: PageCursor | None = None,
    ) -> Sequence[CallRecord]:
        """Get finished calls whose summary has not been delivered yet.

        Ordered by ``(completed_at, id)``; pass the cursor of the last row
        of a page as ``after`` to fetch the next one.
        """
        stmt = (
            select(CallRecord)
            .where(
                CallRecord.notified_at.is_(None),
                CallRecord.state.in_(list(TERMINAL_STATES)),
                CallRecord.completed_at.is_not(None),
            )
            .order_by(CallRecord.completed_at.asc(), CallRecord.id.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        if after is not None:
            stmt = stmt.where(_after(CallRecord.completed_at, after))
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def mark_notified(self, call_id: UUID, now: datetime | None = None) -> bool:
        """Stamp ``notified_at`` once, only on a completed call.

        Returns:
            True if this call stamped the record, False if it was already
            notified or is not terminal.
        """
        stmt = (
            update(CallRecord)
            .where(
                CallRecord.id == call_id,
                CallRecord.notified_at.is_(None),
                CallRecord.state.in_(list(TERMINAL_STATES)),
                CallRecord.completed_at.is_not(None),
            )
            .values(notified_at=now or _utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def list_stale(
        self,
        states: Iterable[CallState] = IN_FLIGHT_STATES,
        max_age_minutes: int = 30,
        now: datetime | None = None,
        limit: int = 100,
        after: PageCursor | None = None,
    ) -> Sequence[CallRecord]:
        """Get calls stuck in ``states`` since before the age cutoff.

        Ordered by ``(started_at, id)`` and paged with ``after`` like
        ``list_unnotified_terminal``.
        """
        cutoff = (now or _utcnow()) - timedelta(minutes=max_age_minutes)
        stmt = (
            select(CallRecord)
            .where(
                CallRecord.state.in_(list(states)),
                CallRecord.started_at.is_not(None),
                CallRecord.started_at < cutoff,
            )
            .order_by(CallRecord.started_at.asc(), CallRecord.id.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        if after is not None:
            stmt = stmt.where(_after(CallRecord.started_at, after))
        result = await self._session.execute(stmt)
        return result.scalars().all()
