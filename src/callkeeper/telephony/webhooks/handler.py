"""
Webhook event handler for provider call events.

Completion and initiation-failure events end in the same terminal write the
reconciliation poller uses, so replays and push/pull races converge.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.outcomes import (
    TerminalUpdate,
    terminal_update_from_details,
    terminal_update_from_initiation_failure,
)
from callkeeper.calls.repository import CallRecordRepository
from callkeeper.shared.logging import get_logger
from callkeeper.telephony.events import (
    ConversationDetails,
    InitiationFailure,
    WebhookEvent,
    WebhookEventType,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    """What the handler did with an event."""

    matched: bool
    ignored: bool = False
    conversation_id: str | None = None


class WebhookHandler:
    """Handler for processing provider webhook events.

    Payload errors surface as pydantic ``ValidationError`` so the router can
    answer 400; everything else propagates.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize webhook handler.

        Args:
            session: Async database session.
        """
        self._session = session
        self._repo = CallRecordRepository(session)

    async def handle_event(self, event: WebhookEvent) -> WebhookResult:
        """Handle a verified webhook event.

        Args:
            event: Parsed webhook envelope.

        Returns:
            WebhookResult describing whether a call record was updated.
        """
        match event.event_type:
            case WebhookEventType.CALL_COMPLETED:
                details = ConversationDetails.model_validate(event.data)
                terminal = terminal_update_from_details(details)
                return await self._apply(details.conversation_id, terminal, event.type)
            case WebhookEventType.CALL_INITIATION_FAILED:
                failure = InitiationFailure.model_validate(event.data)
                terminal = terminal_update_from_initiation_failure(failure)
                return await self._apply(failure.conversation_id, terminal, event.type)
            case _:
                logger.info("Ignoring webhook event type", extra={"event_type": event.type})
                return WebhookResult(matched=False, ignored=True)

    async def _apply(
        self,
        conversation_id: str,
        terminal: TerminalUpdate,
        event_type: str,
    ) -> WebhookResult:
        record = await self._repo.get_by_conversation_id(conversation_id)
        if record is None:
            logger.warning(
                "Webhook for unknown conversation",
                extra={"conversation_id": conversation_id, "event_type": event_type},
            )
            return WebhookResult(matched=False, conversation_id=conversation_id)

        logger.info(
            "Processing webhook event",
            extra={
                "call_id": str(record.id),
                "conversation_id": conversation_id,
                "event_type": event_type,
                "state": terminal.state.value,
                "outcome": terminal.outcome.value if terminal.outcome else None,
            },
        )
        await self._repo.set_terminal(conversation_id, terminal)
        await self._session.commit()
        return WebhookResult(matched=True, conversation_id=conversation_id)
