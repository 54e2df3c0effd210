"""
Provider payload models for conversation status and webhook events.

The same ``ConversationDetails`` shape is returned by the provider's
status API and carried in the ``call_completed`` webhook, so the push
and pull paths parse it identically.
"""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class ConversationStatus(str, Enum):
    """Conversation status as reported by the provider."""

    INITIATED = "initiated"
    IN_PROGRESS = "in-progress"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ConversationStatus.DONE, ConversationStatus.FAILED)


class AnalysisVerdict(str, Enum):
    """Provider's own success heuristic."""

    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"


class WebhookEventType(str, Enum):
    """Webhook event types handled by the receiver."""

    CALL_COMPLETED = "call_completed"
    CALL_INITIATION_FAILED = "call_initiation_failed"


# Provider-native names for the same events.
WEBHOOK_TYPE_ALIASES: dict[str, WebhookEventType] = {
    "call_completed": WebhookEventType.CALL_COMPLETED,
    "post_call_transcription": WebhookEventType.CALL_COMPLETED,
    "call_initiation_failed": WebhookEventType.CALL_INITIATION_FAILED,
    "call_initiation_failure": WebhookEventType.CALL_INITIATION_FAILED,
}


class TranscriptEntry(BaseModel):
    """One turn of the call transcript."""

    model_config = ConfigDict(extra="ignore")

    role: str
    message: str | None = None
    time_in_call_secs: float | None = None


class CallError(BaseModel):
    """Provider error block."""

    model_config = ConfigDict(extra="ignore")

    code: str | None = None
    reason: str | None = None

    @field_validator("code", mode="before")
    @classmethod
    def _stringify_code(cls, v: Any) -> Any:
        return str(v) if v is not None else None


class ConversationMetadata(BaseModel):
    """Call metadata block (duration, termination, error)."""

    model_config = ConfigDict(extra="ignore")

    call_duration_secs: int | None = Field(
        default=None,
        validation_alias=AliasChoices("call_duration_secs", "duration", "duration_seconds"),
    )
    termination_reason: str | None = None
    error: CallError | None = None
    call_sid: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_call_sid(cls, value: Any) -> Any:
        if isinstance(value, dict) and "call_sid" not in value:
            phone_call = value.get("phone_call")
            if isinstance(phone_call, dict) and phone_call.get("call_sid"):
                value = {**value, "call_sid": phone_call["call_sid"]}
        return value


class ConversationAnalysis(BaseModel):
    """Post-call analysis block."""

    model_config = ConfigDict(extra="ignore")

    outcome: AnalysisVerdict | None = Field(
        default=None,
        validation_alias=AliasChoices("outcome", "call_successful"),
    )
    summary: str | None = Field(
        default=None,
        validation_alias=AliasChoices("summary", "transcript_summary"),
    )

    @field_validator("outcome", mode="before")
    @classmethod
    def _unknown_verdict_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            return v if v in {m.value for m in AnalysisVerdict} else None
        return v


class ConversationDetails(BaseModel):
    """Conversation state reported by the provider (webhook or status API)."""

    model_config = ConfigDict(extra="ignore")

    conversation_id: str = Field(min_length=1)
    status: ConversationStatus = ConversationStatus.DONE
    transcript: list[TranscriptEntry] = Field(default_factory=list)
    metadata: ConversationMetadata = Field(default_factory=ConversationMetadata)
    analysis: ConversationAnalysis | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower().replace("_", "-")
        return v

    @field_validator("transcript", mode="before")
    @classmethod
    def _null_transcript(cls, v: Any) -> Any:
        return [] if v is None else v

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_metadata(cls, value: Any) -> Any:
        """Accept duration/termination/error at the top level."""
        if not isinstance(value, dict) or "metadata" in value:
            return value
        keys = ("call_duration_secs", "duration", "duration_seconds", "termination_reason", "error")
        lifted = {k: value[k] for k in keys if k in value}
        if not lifted:
            return value
        return {**value, "metadata": lifted}


class InitiationFailure(BaseModel):
    """Payload of an asynchronous call initiation failure."""

    model_config = ConfigDict(extra="ignore")

    conversation_id: str = Field(min_length=1)
    failure_reason: str | None = Field(
        default=None,
        validation_alias=AliasChoices("failure_reason", "reason"),
    )


class WebhookEvent(BaseModel):
    """Envelope of an inbound provider webhook."""

    model_config = ConfigDict(extra="ignore")

    type: str
    event_timestamp: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_body(cls, value: Any) -> Any:
        """Accept bodies that carry the event fields next to ``type``."""
        if isinstance(value, dict) and "data" not in value:
            data = {k: v for k, v in value.items() if k not in ("type", "event_timestamp")}
            return {
                "type": value.get("type"),
                "event_timestamp": value.get("event_timestamp"),
                "data": data,
            }
        return value

    @property
    def event_type(self) -> WebhookEventType | None:
        return WEBHOOK_TYPE_ALIASES.get(self.type)
