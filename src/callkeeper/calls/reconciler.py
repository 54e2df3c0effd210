"""
Reconciliation poller for calls whose completion webhook never arrived.

Each stale call is looked up at the provider; finished ones get the same
terminal write the webhook would have produced. Elapsed time alone never
fails a call.
"""

from dataclasses import dataclass
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.outcomes import terminal_update_from_details
from callkeeper.calls.repository import CallRecordRepository, PageCursor
from callkeeper.shared.logging import get_logger
from callkeeper.telephony.interface import ProviderError, VoiceCallProvider

logger = get_logger(__name__)


@dataclass
class ReconcilerConfig:
    """Configuration for the reconciliation poller."""

    stale_minutes: int = 30
    batch_size: int = 100


class ReconciliationPoller:
    """Pulls final status for stale in-flight calls."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        provider: VoiceCallProvider,
        config: ReconcilerConfig | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._provider = provider
        self._config = config or ReconcilerConfig()

    async def run_once(self) -> int:
        """Run a single reconciliation pass over every stale call.

        Rows are read ``batch_size`` at a time, so calls the provider keeps
        failing to resolve never hide newer stalled ones.

        Returns:
            Number of calls moved to a terminal state.
        """
        resolved = 0
        cursor: PageCursor | None = None
        async with self._session_factory() as session:
            repo = CallRecordRepository(session)
            while True:
                stale = await repo.list_stale(
                    max_age_minutes=self._config.stale_minutes,
                    limit=self._config.batch_size,
                    after=cursor,
                )
                if not stale:
                    break

                logger.info("Reconciling stale calls", extra={"count": len(stale)})

                # Rollback expires loaded rows; keep plain identifiers.
                cursor = (stale[-1].started_at, stale[-1].id)
                targets = [(str(record.id), record.conversation_id) for record in stale]
                for call_id, conversation_id in targets:
                    if await self._reconcile(session, repo, call_id, conversation_id):
                        resolved += 1

                if len(stale) < self._config.batch_size:
                    break
        return resolved

    async def _reconcile(
        self,
        session: AsyncSession,
        repo: CallRecordRepository,
        call_id: str,
        conversation_id: str | None,
    ) -> bool:
        if not conversation_id:
            logger.warning("Stale call has no conversation id", extra={"call_id": call_id})
            return False

        try:
            details = await self._provider.get_call_status(conversation_id)
        except ProviderError as e:
            logger.warning(
                "Status lookup failed; will retry next cycle",
                extra={"call_id": call_id, "conversation_id": conversation_id, "error": str(e)},
            )
            return False
        except Exception:
            logger.exception(
                "Unexpected error during status lookup",
                extra={"call_id": call_id, "conversation_id": conversation_id},
            )
            return False

        if not details.status.is_terminal:
            logger.debug(
                "Call still in flight",
                extra={"call_id": call_id, "status": details.status.value},
            )
            return False

        try:
            await repo.set_terminal(conversation_id, terminal_update_from_details(details))
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception(
                "Failed to store reconciled status",
                extra={"call_id": call_id, "conversation_id": conversation_id},
            )
            return False

        logger.info(
            "Stale call reconciled",
            extra={
                "call_id": call_id,
                "conversation_id": conversation_id,
                "status": details.status.value,
            },
        )
        return True
