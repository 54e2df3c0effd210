"""
Call initiator: the only place call records are created.

A record is persisted as ``pending`` before the provider is contacted, so a
placement that crashes half way still leaves a trace.
"""

import re
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.models import AgentType, CallPurpose, CallState
from callkeeper.calls.repository import CallRecordRepository
from callkeeper.directory.repository import DirectoryProtocol, DirectoryRepository
from callkeeper.shared.exceptions import ValidationError
from callkeeper.shared.logging import get_logger
from callkeeper.telephony.interface import (
    PlaceCallRequest,
    PlaceCallResult,
    ProviderError,
    VoiceCallProvider,
)

logger = get_logger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
MIN_INSTRUCTIONS_LENGTH = 10
MAX_INSTRUCTIONS_LENGTH = 2000


@dataclass(frozen=True)
class CallInitiationResult:
    """Outcome of a placement attempt."""

    call_id: UUID
    success: bool
    state: CallState
    conversation_id: str | None = None
    error: str | None = None


def validate_call_input(to_number: str, instructions: str) -> None:
    """Check caller input before anything is persisted.

    Raises:
        ValidationError: If the number is not E.164 or the instructions
            length is out of range.
    """
    if not E164_PATTERN.match(to_number or ""):
        raise ValidationError(
            f"Invalid phone number '{to_number}': expected E.164 format like +14155551234"
        )
    length = len((instructions or "").strip())
    if length < MIN_INSTRUCTIONS_LENGTH:
        raise ValidationError(
            f"Instructions must be at least {MIN_INSTRUCTIONS_LENGTH} characters"
        )
    if length > MAX_INSTRUCTIONS_LENGTH:
        raise ValidationError(
            f"Instructions must be at most {MAX_INSTRUCTIONS_LENGTH} characters"
        )


class CallInitiator:
    """Creates call records and asks the provider to place them."""

    def __init__(
        self,
        session: AsyncSession,
        provider: VoiceCallProvider,
        directory: DirectoryProtocol | None = None,
    ) -> None:
        self._session = session
        self._provider = provider
        self._directory = directory or DirectoryRepository(session)
        self._repo = CallRecordRepository(session)

    async def initiate(
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
    ) -> CallInitiationResult:
        """Validate, persist and place an outbound call.

        Placement failures are recorded on the call record and reported in the
        result; they are never retried here.

        Raises:
            ValidationError: On invalid input. No record is created.
        """
        to_number = (to_number or "").strip()
        validate_call_input(to_number, instructions)
        instructions = instructions.strip()

        record = await self._repo.create(
            group_id=group_id,
            to_number=to_number,
            instructions=instructions,
            agent_type=agent_type,
            call_purpose=call_purpose,
            to_name=to_name,
            requested_by=requested_by,
            dynamic_variables=dynamic_variables,
        )
        await self._session.commit()

        logger.info(
            "Call record created",
            extra={
                "call_id": str(record.id),
                "group_id": str(group_id),
                "agent_type": agent_type.value,
                "call_purpose": call_purpose.value,
            },
        )

        variables = await self._build_dynamic_variables(
            instructions=instructions,
            agent_type=agent_type,
            call_purpose=call_purpose,
            to_name=to_name,
            requested_by=requested_by,
            extra=dynamic_variables,
        )
        request = PlaceCallRequest(
            to_number=to_number,
            agent_type=agent_type,
            dynamic_variables=variables,
            user_id=str(requested_by) if requested_by else None,
        )

        try:
            placed = await self._provider.place_call(request)
        except ProviderError as e:
            return await self._record_failure(record.id, str(e), error_code=e.error_code)
        except Exception as e:
            logger.exception("Unexpected error placing call", extra={"call_id": str(record.id)})
            return await self._record_failure(record.id, f"Unexpected error: {e!s}")

        if not placed.accepted:
            return await self._record_failure(record.id, _rejection_reason(placed))

        await self._repo.set_initiated(record.id, placed.conversation_id, call_sid=placed.call_sid)
        await self._session.commit()

        logger.info(
            "Call initiated",
            extra={
                "call_id": str(record.id),
                "conversation_id": placed.conversation_id,
                "call_sid": placed.call_sid,
            },
        )
        return CallInitiationResult(
            call_id=record.id,
            success=True,
            state=CallState.INITIATED,
            conversation_id=placed.conversation_id,
        )

    async def _build_dynamic_variables(
        self,
        *,
        instructions: str,
        agent_type: AgentType,
        call_purpose: CallPurpose,
        to_name: str | None,
        requested_by: UUID | None,
        extra: dict[str, Any] | None,
    ) -> dict[str, Any]:
        requester = None
        if requested_by is not None:
            requester = await self._directory.get_member(requested_by)

        variables: dict[str, Any] = {
            "user_name": requester.name if requester else "the user",
            "call_instructions": instructions,
            "recipient_name": to_name or "",
            "agent_type": agent_type.value,
            "call_purpose": call_purpose.value,
        }
        if requester is not None and requester.phone_number:
            variables["callback_number"] = requester.phone_number
        # Caller-supplied variables never override the built-in ones.
        for key, value in (extra or {}).items():
            variables.setdefault(key, value)
        return variables

    async def _record_failure(
        self,
        call_id: UUID,
        reason: str,
        error_code: str | None = None,
    ) -> CallInitiationResult:
        logger.error(
            "Call placement failed",
            extra={"call_id": str(call_id), "reason": reason, "error_code": error_code},
        )
        await self._repo.set_failed_before_start(call_id, reason)
        await self._session.commit()
        return CallInitiationResult(
            call_id=call_id,
            success=False,
            state=CallState.FAILED,
            error=reason,
        )


def _rejection_reason(placed: PlaceCallResult) -> str:
    if placed.message:
        return placed.message
    if not placed.conversation_id:
        return "Provider did not return a conversation id"
    return "Provider rejected the call"
