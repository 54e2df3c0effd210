"""
FastAPI router for provider webhook endpoints.

Signature is checked against the raw bytes before the body is parsed.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from callkeeper.shared.database import get_db_session
from callkeeper.shared.logging import get_logger
from callkeeper.telephony.config import TelephonyConfig
from callkeeper.telephony.events import WebhookEvent
from callkeeper.telephony.factory import get_telephony_config
from callkeeper.telephony.signature import (
    PROVIDER_SIGNATURE_HEADER,
    SIGNATURE_HEADER,
    verify_signature,
)
from callkeeper.telephony.webhooks.handler import WebhookHandler

logger = get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])


def get_webhook_config() -> TelephonyConfig:
    return get_telephony_config()


def get_webhook_handler(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> WebhookHandler:
    return WebhookHandler(session=session)


@router.post("/calls", status_code=status.HTTP_200_OK)
async def receive_call_webhook(
    request: Request,
    config: Annotated[TelephonyConfig, Depends(get_webhook_config)],
    handler: Annotated[WebhookHandler, Depends(get_webhook_handler)],
) -> dict[str, Any]:
    raw_body = await request.body()
    header = request.headers.get(SIGNATURE_HEADER) or request.headers.get(PROVIDER_SIGNATURE_HEADER)

    if not verify_signature(
        raw_body,
        header,
        config.webhook_secret,
        tolerance_seconds=config.signature_tolerance_seconds,
    ):
        logger.warning(
            "Rejected webhook with invalid signature",
            extra={
                "client": request.client.host if request.client else None,
                "body_bytes": len(raw_body),
            },
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        event = WebhookEvent.model_validate_json(raw_body)
        result = await handler.handle_event(event)
    except PydanticValidationError as e:
        logger.warning("Malformed webhook payload", extra={"errors": e.error_count()})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed payload") from e
    except Exception as e:
        logger.exception("Webhook processing failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from e

    return {"received": True, "matched": result.matched, "ignored": result.ignored}
