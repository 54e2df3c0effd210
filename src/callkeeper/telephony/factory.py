"""
Voice provider factory.

Single source of truth for configuration:
- use TelephonyConfig (Pydantic Settings) which loads from OS env + .env
- never read raw os.getenv("ELEVENLABS_*") here
"""

from __future__ import annotations

from functools import lru_cache

from callkeeper.shared.logging import get_logger
from callkeeper.telephony.adapters.elevenlabs import ElevenLabsAdapter
from callkeeper.telephony.adapters.mock import MockVoiceCallProvider
from callkeeper.telephony.config import ProviderType, TelephonyConfig
from callkeeper.telephony.config import get_telephony_config as _get_settings_telephony_config
from callkeeper.telephony.interface import VoiceCallProvider

logger = get_logger(__name__)


def _mask(s: str, keep: int = 6) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"{s[:keep]}***"


@lru_cache(maxsize=1)
def get_telephony_config() -> TelephonyConfig:
    """Return cached TelephonyConfig loaded from OS env + .env."""
    return _get_settings_telephony_config()


@lru_cache(maxsize=1)
def get_voice_provider() -> VoiceCallProvider:
    """Create and cache the voice provider using TelephonyConfig."""
    cfg = get_telephony_config()

    logger.info(
        "Voice provider config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "api_key": _mask(cfg.api_key),
            "api_base_url": cfg.api_base_url,
            "phone_number_id": cfg.phone_number_id,
            "webhook_secret_set": bool(cfg.webhook_secret),
        },
    )

    if cfg.provider_type == ProviderType.ELEVENLABS:
        return ElevenLabsAdapter(cfg)

    if cfg.provider_type == ProviderType.MOCK:
        return MockVoiceCallProvider()

    raise ValueError(f"Unsupported voice provider_type: {cfg.provider_type}")
