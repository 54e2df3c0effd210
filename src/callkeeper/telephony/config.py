"""
Voice provider configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from callkeeper.calls.models import AgentType


class ProviderType(str, Enum):
    """Supported voice provider types."""

    ELEVENLABS = "elevenlabs"
    MOCK = "mock"


class ProviderConfigurationError(Exception):
    """Required provider configuration is missing."""


class TelephonyConfig(BaseSettings):
    """Voice provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="ELEVENLABS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection
    provider_type: ProviderType = Field(default=ProviderType.ELEVENLABS)

    # Provider credentials
    api_key: str = Field(default="")
    api_base_url: str = Field(default="https://api.elevenlabs.io")
    phone_number_id: str = Field(default="")

    # Agent per voice profile; general is the fallback, agent_id the legacy single agent.
    agent_general: str = Field(default="")
    agent_restaurant: str = Field(default="")
    agent_medical: str = Field(default="")
    agent_id: str = Field(default="")

    # Inbound webhook authentication
    webhook_secret: str = Field(default="")
    signature_tolerance_seconds: int = Field(default=30 * 60, ge=1, le=24 * 3600)

    request_timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    def get_agent_id(self, agent_type: AgentType) -> str:
        """Resolve the provider agent for a voice profile.

        Raises:
            ProviderConfigurationError: If no agent is configured at all.
        """
        specific = {
            AgentType.RESTAURANT: self.agent_restaurant,
            AgentType.MEDICAL: self.agent_medical,
            AgentType.GENERAL: self.agent_general,
        }.get(agent_type, "")
        if specific:
            return specific
        if self.agent_general:
            return self.agent_general
        if self.agent_id:
            return self.agent_id
        raise ProviderConfigurationError(
            "No voice agent configured. Set ELEVENLABS_AGENT_GENERAL or ELEVENLABS_AGENT_ID."
        )


def get_telephony_config() -> TelephonyConfig:
    return TelephonyConfig()
