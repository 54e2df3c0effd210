"""
Calls API router.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.calls.initiator import CallInitiator
from callkeeper.calls.repository import CallRecordRepository
from callkeeper.calls.schemas import CallCreateRequest, CallResponse
from callkeeper.shared.database import get_db_session
from callkeeper.shared.exceptions import CallNotFoundError
from callkeeper.shared.logging import get_logger
from callkeeper.telephony.factory import get_voice_provider
from callkeeper.telephony.interface import VoiceCallProvider

logger = get_logger(__name__)

router = APIRouter(prefix="/calls", tags=["calls"])


def get_provider() -> VoiceCallProvider:
    return get_voice_provider()


def get_call_initiator(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    provider: Annotated[VoiceCallProvider, Depends(get_provider)],
) -> CallInitiator:
    """Dependency for call initiator."""
    return CallInitiator(session=session, provider=provider)


def get_call_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> CallRecordRepository:
    return CallRecordRepository(session)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=CallResponse,
    responses={
        400: {"description": "Invalid phone number or instructions"},
        502: {"model": CallResponse, "description": "Provider rejected the call"},
    },
)
async def create_call(
    payload: CallCreateRequest,
    initiator: Annotated[CallInitiator, Depends(get_call_initiator)],
    repo: Annotated[CallRecordRepository, Depends(get_call_repository)],
) -> CallResponse | JSONResponse:
    """Place an outbound call.

    The record is returned in both cases; a provider rejection answers 502
    with the record already marked ``failed``.
    """
    result = await initiator.initiate(
        group_id=payload.group_id,
        to_number=payload.to_number,
        instructions=payload.instructions,
        agent_type=payload.agent_type,
        call_purpose=payload.call_purpose,
        to_name=payload.to_name,
        requested_by=payload.requested_by,
        dynamic_variables=payload.dynamic_variables,
    )

    record = await repo.get_by_id(result.call_id)
    if record is None:
        raise CallNotFoundError(result.call_id)
    body = CallResponse.model_validate(record)

    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=body.model_dump(mode="json"),
        )
    return body


@router.get("/{call_id}", response_model=CallResponse)
async def get_call(
    call_id: UUID,
    repo: Annotated[CallRecordRepository, Depends(get_call_repository)],
) -> CallResponse:
    record = await repo.get_by_id(call_id)
    if record is None:
        raise CallNotFoundError(call_id)
    return CallResponse.model_validate(record)
