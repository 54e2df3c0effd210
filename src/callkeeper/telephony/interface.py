"""
Voice provider interface definition.

- place_call starts an outbound conversation
- get_call_status fetches a conversation's current state
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from callkeeper.calls.models import AgentType
from callkeeper.telephony.events import ConversationDetails


@dataclass(frozen=True)
class PlaceCallRequest:
    """Request to place an outbound call."""

    to_number: str
    agent_type: AgentType = AgentType.GENERAL
    dynamic_variables: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None


@dataclass(frozen=True)
class PlaceCallResult:
    """Envelope returned by the provider's placement API."""

    success: bool
    conversation_id: str | None
    call_sid: str | None = None
    message: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.success and bool(self.conversation_id)


class ProviderError(Exception):
    """Base exception for voice provider errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.provider_response = provider_response or {}


class CallPlacementError(ProviderError):
    """Error while placing a call."""


class StatusLookupError(ProviderError):
    """Error while fetching a conversation's status."""


class VoiceCallProvider(ABC):
    """Abstract interface for conversational voice providers."""

    @abstractmethod
    async def place_call(self, request: PlaceCallRequest) -> PlaceCallResult:
        """Place an outbound call."""
        ...

    @abstractmethod
    async def get_call_status(self, conversation_id: str) -> ConversationDetails:
        """Fetch the current state of a conversation."""
        ...

    async def close(self) -> None:
        """Release provider resources."""
        return None
