"""
SQLAlchemy models for voice call records.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from callkeeper.shared.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class CallState(str, Enum):
    """Lifecycle state of a call record."""

    PENDING = "pending"
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: frozenset[CallState] = frozenset({CallState.DONE, CallState.FAILED})
IN_FLIGHT_STATES: frozenset[CallState] = frozenset(
    {CallState.INITIATED, CallState.IN_PROGRESS, CallState.PROCESSING}
)


class CallOutcome(str, Enum):
    """Closed outcome vocabulary for finished calls."""

    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"
    VOICEMAIL = "voicemail"
    NO_ANSWER = "no_answer"


class AgentType(str, Enum):
    """Voice agent profile used for the call."""

    RESTAURANT = "restaurant"
    MEDICAL = "medical"
    GENERAL = "general"


class CallPurpose(str, Enum):
    """Why the call is being placed."""

    RESERVATION = "reservation"
    CONFIRMATION = "confirmation"
    INQUIRY = "inquiry"
    APPOINTMENT = "appointment"
    OTHER = "other"


class CallRecord(Base):
    """One row per outbound call attempt."""

    __tablename__ = "voice_calls"
    __table_args__ = (
        Index("ix_voice_calls_notification", "notified_at", "state", "completed_at"),
        Index("ix_voice_calls_stale", "state", "started_at"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Ownership
    group_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requested_by: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("members.id"),
        nullable=True,
    )

    # Provider identifiers
    conversation_id: Mapped[str | None] = mapped_column(
        String(100),
        unique=True,
        nullable=True,
        index=True,
    )
    call_sid: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    # Call parameters (immutable after creation)
    agent_type: Mapped[AgentType] = mapped_column(
        SQLEnum(AgentType, name="voice_agent_type", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=AgentType.GENERAL,
    )
    call_purpose: Mapped[CallPurpose] = mapped_column(
        SQLEnum(CallPurpose, name="call_purpose", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=CallPurpose.OTHER,
    )
    to_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    to_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    instructions: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    dynamic_variables: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
    )

    state: Mapped[CallState] = mapped_column(
        SQLEnum(CallState, name="call_state", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=CallState.PENDING,
    )

    # Terminal metadata
    outcome: Mapped[CallOutcome | None] = mapped_column(
        SQLEnum(CallOutcome, name="call_outcome", native_enum=False, values_callable=_enum_values),
        nullable=True,
    )
    transcript: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType,
        nullable=True,
    )
    summary: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    duration_seconds: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    termination_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    error_code: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )
    error_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Lifecycle timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    notified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<CallRecord(id={self.id}, conversation_id={self.conversation_id}, "
            f"state={self.state})>"
        )
