from __future__ import annotations

import itertools
from typing import Any

from callkeeper.shared.logging import get_logger
from callkeeper.telephony.events import ConversationDetails, ConversationStatus
from callkeeper.telephony.interface import (
    PlaceCallRequest,
    PlaceCallResult,
    StatusLookupError,
    VoiceCallProvider,
)

logger = get_logger(__name__)


class MockVoiceCallProvider(VoiceCallProvider):
    """In-memory provider for local development and manual testing.

    Never dials anything. Calls stay ``initiated`` until ``finish`` records
    a final conversation for them.
    """

    def __init__(self, prefix: str = "mock-conv") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._conversations: dict[str, ConversationDetails] = {}
        self.placed: list[PlaceCallRequest] = []

    async def place_call(self, request: PlaceCallRequest) -> PlaceCallResult:
        conversation_id = f"{self._prefix}-{next(self._counter)}"
        self.placed.append(request)
        self._conversations[conversation_id] = ConversationDetails(
            conversation_id=conversation_id,
            status=ConversationStatus.INITIATED,
        )
        logger.info("Mock call placed", extra={"conversation_id": conversation_id})
        return PlaceCallResult(
            success=True,
            conversation_id=conversation_id,
            message="mock call placed",
            raw_response={"mock": True, "to": request.to_number},
        )

    def finish(self, conversation_id: str, **fields: Any) -> ConversationDetails:
        """Record the final state the status API will report."""
        details = ConversationDetails.model_validate(
            {"conversation_id": conversation_id, "status": "done", **fields}
        )
        self._conversations[conversation_id] = details
        return details

    async def get_call_status(self, conversation_id: str) -> ConversationDetails:
        details = self._conversations.get(conversation_id)
        if details is None:
            raise StatusLookupError(f"Unknown conversation: {conversation_id}", error_code="404")
        return details
