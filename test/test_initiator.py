"""Tests for CallInitiator."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.initiator import CallInitiator, validate_call_input
from callkeeper.calls.models import AgentType, CallOutcome, CallPurpose, CallRecord, CallState
from callkeeper.calls.repository import CallRecordRepository
from callkeeper.directory.models import Group, Member
from callkeeper.shared.exceptions import ValidationError
from callkeeper.telephony.adapters.mock import MockVoiceCallProvider
from callkeeper.telephony.interface import CallPlacementError, PlaceCallResult, VoiceCallProvider

INSTRUCTIONS = "Reserve a table for four at 8pm on Saturday."


async def _count_records(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(CallRecord))
    return result.scalar_one()


def _provider_returning(result: PlaceCallResult | Exception) -> AsyncMock:
    provider = AsyncMock(spec=VoiceCallProvider)
    if isinstance(result, Exception):
        provider.place_call.side_effect = result
    else:
        provider.place_call.return_value = result
    return provider


class TestValidateCallInput:
    @pytest.mark.parametrize("number", ["+14155551234", "+442071838750", "+12"])
    def test_accepts_e164(self, number: str) -> None:
        validate_call_input(number, INSTRUCTIONS)

    @pytest.mark.parametrize(
        "number",
        ["4155551234", "+04155551234", "+1 415 555 1234", "+1234567890123456", "", "+"],
    )
    def test_rejects_non_e164(self, number: str) -> None:
        with pytest.raises(ValidationError):
            validate_call_input(number, INSTRUCTIONS)

    def test_instruction_bounds(self) -> None:
        validate_call_input("+14155551234", "x" * 10)
        validate_call_input("+14155551234", "x" * 2000)
        with pytest.raises(ValidationError):
            validate_call_input("+14155551234", "too short")
        with pytest.raises(ValidationError):
            validate_call_input("+14155551234", "x" * 2001)


@pytest.mark.asyncio
async def test_invalid_input_creates_no_record(session: AsyncSession, group: Group) -> None:
    provider = _provider_returning(PlaceCallResult(success=True, conversation_id="conv_x"))
    initiator = CallInitiator(session=session, provider=provider)

    with pytest.raises(ValidationError):
        await initiator.initiate(group_id=group.id, to_number="555-1234", instructions=INSTRUCTIONS)

    assert await _count_records(session) == 0
    provider.place_call.assert_not_awaited()


@pytest.mark.asyncio
async def test_successful_placement(session: AsyncSession, group: Group, member: Member) -> None:
    provider = MockVoiceCallProvider()
    initiator = CallInitiator(session=session, provider=provider)

    result = await initiator.initiate(
        group_id=group.id,
        to_number="+14155551234",
        instructions=INSTRUCTIONS,
        agent_type=AgentType.RESTAURANT,
        call_purpose=CallPurpose.RESERVATION,
        to_name="Luigi's",
        requested_by=member.id,
        dynamic_variables={"party_size": 4, "user_name": "ignored"},
    )

    assert result.success is True
    assert result.state == CallState.INITIATED
    assert result.conversation_id == "mock-conv-1"

    stored = await CallRecordRepository(session).get_by_id(result.call_id)
    assert stored.state == CallState.INITIATED
    assert stored.conversation_id == "mock-conv-1"
    assert stored.started_at is not None
    assert stored.requested_by == member.id

    request = provider.placed[0]
    assert request.to_number == "+14155551234"
    assert request.agent_type == AgentType.RESTAURANT
    assert request.user_id == str(member.id)
    assert request.dynamic_variables == {
        "user_name": "Alex",
        "call_instructions": INSTRUCTIONS,
        "recipient_name": "Luigi's",
        "agent_type": "restaurant",
        "call_purpose": "reservation",
        "callback_number": "+14155550100",
        "party_size": 4,
    }


@pytest.mark.asyncio
async def test_placement_error_marks_failed(session: AsyncSession, group: Group) -> None:
    provider = _provider_returning(
        CallPlacementError("Provider API error (401)", error_code="401")
    )
    initiator = CallInitiator(session=session, provider=provider)

    result = await initiator.initiate(group_id=group.id, to_number="+14155551234", instructions=INSTRUCTIONS)

    assert result.success is False
    assert result.state == CallState.FAILED
    assert "401" in (result.error or "")

    stored = await CallRecordRepository(session).get_by_id(result.call_id)
    assert stored.state == CallState.FAILED
    assert stored.outcome == CallOutcome.FAILURE
    assert stored.conversation_id is None
    assert stored.completed_at is not None
    provider.place_call.assert_awaited_once()


@pytest.mark.asyncio
async def test_unsuccessful_envelope_marks_failed(session: AsyncSession, group: Group) -> None:
    provider = _provider_returning(
        PlaceCallResult(success=False, conversation_id=None, message="Phone number not verified")
    )
    initiator = CallInitiator(session=session, provider=provider)

    result = await initiator.initiate(group_id=group.id, to_number="+14155551234", instructions=INSTRUCTIONS)

    assert result.success is False
    stored = await CallRecordRepository(session).get_by_id(result.call_id)
    assert stored.state == CallState.FAILED
    assert stored.error_reason == "Phone number not verified"


@pytest.mark.asyncio
async def test_unexpected_error_marks_failed(session: AsyncSession, group: Group) -> None:
    provider = _provider_returning(RuntimeError("boom"))
    initiator = CallInitiator(session=session, provider=provider)

    result = await initiator.initiate(group_id=group.id, to_number="+14155551234", instructions=INSTRUCTIONS)

    assert result.success is False
    stored = await CallRecordRepository(session).get_by_id(result.call_id)
    assert stored.state == CallState.FAILED
    assert "boom" in stored.error_reason


@pytest.mark.asyncio
async def test_defaults_without_requester(session: AsyncSession, group: Group) -> None:
    provider = MockVoiceCallProvider()
    initiator = CallInitiator(session=session, provider=provider)

    await initiator.initiate(group_id=group.id, to_number="+14155551234", instructions=INSTRUCTIONS)

    variables = provider.placed[0].dynamic_variables
    assert variables["user_name"] == "the user"
    assert variables["agent_type"] == "general"
    assert "callback_number" not in variables
    assert provider.placed[0].user_id is None
