"""
Notification dispatcher.

Delivery is at-least-once: ``notified_at`` is stamped only after the sink
confirms, so a crash between send and commit means one duplicate message,
never a lost one.
"""

from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.models import CallRecord
from callkeeper.calls.repository import CallRecordRepository, PageCursor
from callkeeper.directory.repository import DirectoryRepository
from callkeeper.notifications.formatter import render_call_summary
from callkeeper.notifications.sink import NotificationSink
from callkeeper.shared.exceptions import NotificationDeliveryError
from callkeeper.shared.logging import get_logger

logger = get_logger(__name__)


class NotificationDispatcher:
    """Sends summaries for finished, not yet notified calls."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        sink: NotificationSink,
        batch_size: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self._sink = sink
        self._batch_size = batch_size

    async def run_once(self) -> int:
        """Run a single dispatch pass over the whole unnotified backlog.

        Rows are read ``batch_size`` at a time, so calls that cannot be
        delivered yet never hide the ones behind them.

        Returns:
            Number of notifications delivered and recorded.
        """
        sent = 0
        cursor: PageCursor | None = None
        async with self._session_factory() as session:
            calls = CallRecordRepository(session)
            directory = DirectoryRepository(session)

            while True:
                page = await calls.list_unnotified_terminal(limit=self._batch_size, after=cursor)
                if not page:
                    break
                # Captured up front: a rollback later in the pass expires loaded rows.
                cursor = (page[-1].completed_at, page[-1].id)
                work = await self._render(directory, page)
                sent += await self._deliver(session, calls, work)
                if len(page) < self._batch_size:
                    break
        return sent

    async def _render(
        self,
        directory: DirectoryRepository,
        page: Sequence[CallRecord],
    ) -> list[tuple[UUID, str, str]]:
        work = []
        for record in page:
            destination = await directory.get_notification_destination(record.group_id)
            if destination is None:
                logger.debug(
                    "No notification destination; leaving call unnotified",
                    extra={"call_id": str(record.id), "group_id": str(record.group_id)},
                )
                continue
            requester_name = None
            if record.requested_by is not None:
                member = await directory.get_member(record.requested_by)
                requester_name = member.name if member else None
            work.append((record.id, destination, render_call_summary(record, requester_name)))
        return work

    async def _deliver(
        self,
        session: AsyncSession,
        calls: CallRecordRepository,
        work: list[tuple[UUID, str, str]],
    ) -> int:
        sent = 0
        for call_id, destination, text in work:
            try:
                await self._sink.send(destination, text)
            except NotificationDeliveryError as e:
                logger.warning(
                    "Notification delivery failed; will retry next cycle",
                    extra={"call_id": str(call_id), "error": e.message},
                )
                continue
            except Exception:
                logger.exception(
                    "Unexpected error delivering notification",
                    extra={"call_id": str(call_id)},
                )
                continue

            try:
                marked = await calls.mark_notified(call_id)
                await session.commit()
            except Exception:
                await session.rollback()
                logger.exception("Failed to record notification", extra={"call_id": str(call_id)})
                continue

            if marked:
                sent += 1
                logger.info("Notification sent", extra={"call_id": str(call_id)})
        return sent
