"""
Centralized configuration for Ofie Assistant.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Bot identity (attributed as author of every assistant message)
    bot_user_id: str = Field(default="ofie-assistant")
    bot_name: str = Field(default="Ofie Assistant")
    bot_email: str = Field(default="bot@ofie.com")

    # Provider credentials (absence means the provider is skipped)
    anthropic_api_key: Optional[str] = Field(default=None)
    openai_api_key: Optional[str] = Field(default=None)
    google_api_key: Optional[str] = Field(default=None)

    # Provider models
    anthropic_model: str = Field(default="claude-3-5-sonnet-20241022")
    openai_model: str = Field(default="gpt-4-turbo-preview")
    google_model: str = Field(default="gemini-pro")

    # Generation
    use_llm: bool = Field(default=True)
    llm_temperature: float = Field(default=0.7)
    max_response_tokens: int = Field(default=500)
    max_prompt_tokens: int = Field(default=3000)
    provider_timeout_seconds: float = Field(default=10.0)
    token_estimator: str = Field(default="openai")  # openai | heuristic

    # Context / cache / validation
    max_history_turns: int = Field(default=10)
    response_cache_ttl_seconds: int = Field(default=3600)
    response_min_length: int = Field(default=10)
    response_max_length: int = Field(default=2000)

    # Handoff policy (hand-tuned)
    handoff_low_confidence_threshold: float = Field(default=0.5)
    handoff_low_confidence_min_count: int = Field(default=2)
    handoff_low_confidence_lookback: int = Field(default=3)
    handoff_repetition_threshold: float = Field(default=0.5)
    handoff_repetition_window_minutes: int = Field(default=30)
    handoff_repetition_min_messages: int = Field(default=4)
    handoff_recent_window_minutes: int = Field(default=10)
    handoff_sentiment_lookback: int = Field(default=20)
    handoff_weight_low_confidence: float = Field(default=0.4)
    handoff_weight_negative_sentiment: float = Field(default=0.3)
    handoff_weight_repetitive: float = Field(default=0.2)
    handoff_weight_complex: float = Field(default=0.5)

    # Follow-ups
    followup_confidence_threshold: float = Field(default=0.7)
    followup_search_delay_hours: int = Field(default=24)
    followup_application_delay_hours: int = Field(default=72)
    followup_maintenance_delay_hours: int = Field(default=24)
    followup_handoff_delay_minutes: int = Field(default=30)

    # Pacing / workers
    typing_delay_cap_seconds: float = Field(default=3.0)
    worker_concurrency: int = Field(default=2)

    # Database
    database_url: Optional[str] = Field(default=None)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_title: str = Field(default="Ofie Assistant API")
    api_version: str = Field(default="1.0.0")
    cors_origins: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def configured_providers(self) -> List[str]:
        """Providers with a credential present, in fallback order."""
        keys = [
            ("anthropic", self.anthropic_api_key),
            ("openai", self.openai_api_key),
            ("google", self.google_api_key),
        ]
        return [name for name, key in keys if key]


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
