"""
ElevenLabs Conversational AI provider adapter (outbound calls over Twilio).
"""

import time
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from callkeeper.shared.logging import get_logger
from callkeeper.telephony.config import (
    ProviderConfigurationError,
    TelephonyConfig,
    get_telephony_config,
)
from callkeeper.telephony.events import ConversationDetails
from callkeeper.telephony.interface import (
    CallPlacementError,
    PlaceCallRequest,
    PlaceCallResult,
    StatusLookupError,
    VoiceCallProvider,
)

logger = get_logger(__name__)

OUTBOUND_CALL_PATH = "/v1/convai/twilio/outbound-call"
CONVERSATION_PATH = "/v1/convai/conversations/{conversation_id}"


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"text": response.text[:500]}
    return body if isinstance(body, dict) else {"body": body}


class ElevenLabsAdapter(VoiceCallProvider):
    """ElevenLabs provider adapter.

    Uses an httpx AsyncClient; every request carries the configured timeout,
    so a hung provider only blocks the caller awaiting it.
    """

    def __init__(
        self,
        config: TelephonyConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_telephony_config()
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self._config.api_base_url,
                timeout=httpx.Timeout(self._config.request_timeout_seconds),
            )
        return self._http_client

    def _headers(self) -> dict[str, str]:
        return {"xi-api-key": self._config.api_key, "Content-Type": "application/json"}

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def place_call(self, request: PlaceCallRequest) -> PlaceCallResult:
        """Place an outbound call.

        Raises:
            CallPlacementError: On configuration, transport or HTTP errors.
        """
        try:
            agent_id = self._config.get_agent_id(request.agent_type)
        except ProviderConfigurationError as e:
            raise CallPlacementError(str(e), error_code="CONFIGURATION") from e
        if not self._config.phone_number_id:
            raise CallPlacementError(
                "ELEVENLABS_PHONE_NUMBER_ID is required for voice calls",
                error_code="CONFIGURATION",
            )

        client_data: dict[str, Any] = {
            "dynamic_variables": {
                k: v for k, v in request.dynamic_variables.items() if v is not None
            },
        }
        if request.user_id:
            client_data["user_id"] = request.user_id

        payload = {
            "agent_id": agent_id,
            "agent_phone_number_id": self._config.phone_number_id,
            "to_number": request.to_number,
            "conversation_initiation_client_data": client_data,
        }

        logger.info(
            "Placing outbound call",
            extra={"to": request.to_number, "agent_type": request.agent_type.value},
        )

        started = time.monotonic()
        try:
            response = await self._get_client().post(
                OUTBOUND_CALL_PATH,
                json=payload,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.exception("HTTP error during call placement", extra={"to": request.to_number})
            raise CallPlacementError(f"HTTP error: {e!s}", error_code="HTTP_ERROR") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        if response.status_code >= 400:
            error_data = _error_body(response)
            logger.error(
                "Call placement rejected",
                extra={"status_code": response.status_code, "error": error_data, "elapsed_ms": elapsed_ms},
            )
            raise CallPlacementError(
                f"Provider API error ({response.status_code})",
                error_code=str(response.status_code),
                provider_response=error_data,
            )

        data = _error_body(response)
        logger.info(
            "Call placement response",
            extra={
                "status_code": response.status_code,
                "conversation_id": data.get("conversation_id"),
                "elapsed_ms": elapsed_ms,
            },
        )
        return PlaceCallResult(
            success=bool(data.get("success")),
            conversation_id=data.get("conversation_id") or None,
            call_sid=data.get("callSid") or data.get("call_sid") or None,
            message=str(data.get("message") or ""),
            raw_response=data,
        )

    async def get_call_status(self, conversation_id: str) -> ConversationDetails:
        """Fetch conversation details.

        Raises:
            StatusLookupError: On transport, HTTP or payload errors.
        """
        path = CONVERSATION_PATH.format(conversation_id=conversation_id)
        try:
            response = await self._get_client().get(path, headers=self._headers())
        except httpx.HTTPError as e:
            raise StatusLookupError(f"HTTP error: {e!s}", error_code="HTTP_ERROR") from e

        if response.status_code >= 400:
            raise StatusLookupError(
                f"Provider API error ({response.status_code})",
                error_code=str(response.status_code),
                provider_response=_error_body(response),
            )

        try:
            return ConversationDetails.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise StatusLookupError(
                f"Malformed conversation payload: {e!s}",
                error_code="BAD_PAYLOAD",
            ) from e
