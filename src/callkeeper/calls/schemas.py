"""
Pydantic schemas for the calls API.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from callkeeper.calls.models import AgentType, CallOutcome, CallPurpose, CallState


class CallCreateRequest(BaseModel):
    """Request to place an outbound call.

    Number format and instruction length are checked by the initiator so that
    they answer 400 like every other domain validation error.
    """

    group_id: UUID
    requested_by: UUID | None = None
    to_number: str = Field(..., description="Recipient number in E.164 format")
    to_name: str | None = Field(None, max_length=255)
    instructions: str = Field(..., description="What the agent should accomplish (10-2000 chars)")
    agent_type: AgentType = AgentType.GENERAL
    call_purpose: CallPurpose = CallPurpose.OTHER
    dynamic_variables: dict[str, Any] | None = None


class TranscriptEntrySchema(BaseModel):
    role: str
    message: str | None = None
    time_in_call_secs: float | None = None


class CallResponse(BaseModel):
    """Schema for call record response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    group_id: UUID
    requested_by: UUID | None
    conversation_id: str | None
    call_sid: str | None
    agent_type: AgentType
    call_purpose: CallPurpose
    to_number: str
    to_name: str | None
    instructions: str
    state: CallState
    outcome: CallOutcome | None
    transcript: list[TranscriptEntrySchema] | None
    summary: str | None
    duration_seconds: int | None
    termination_reason: str | None
    error_code: str | None
    error_reason: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    notified_at: datetime | None
