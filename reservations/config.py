"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

from reservations.errors import ConfigurationError

log = logging.getLogger("reservations.config")


class Settings(BaseSettings):
    # LLM
    llm_provider: str = "openai"  # "openai", "claude" or "ollama"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"
    ollama_model: str = "qwen2.5:7b"
    ollama_url: str = "http://localhost:11434"
    nlu_timeout_seconds: float = 12.0

    # Twilio
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""

    # Google Calendar
    google_service_account_json: str = ""
    google_calendar_id: str = "primary"
    calendar_timezone: str = "Europe/Rome"
    booking_timeout_seconds: float = 10.0

    # Restaurant snapshot
    restaurant_name: str = "Ristorante Da Giulia"
    assistant_name: str = "Giulia"
    restaurant_email: str = ""
    owner_phone_number: str = ""
    default_language: str = "it"
    large_group_threshold: int = 10
    event_threshold: int = 45
    seating_minutes: int = 120
    bookings_per_slot: int = 8

    # Time-of-day defaults used when the caller names no explicit time
    lunch_time: str = "13:00:00"
    evening_time: str = "20:00:00"
    late_time: str = "22:00:00"
    bare_hour_is_evening: bool = True

    # Sessions
    session_ttl_seconds: int = 1800

    # Admin auth
    admin_api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"sk-...", "sk-ant-...", "AC...", "path/to/service-account.json"}

        # LLM key, required for hosted providers
        self.require_llm_credentials()

        if self.llm_provider not in {"openai", "claude", "ollama"}:
            raise ConfigurationError(
                f"LLM_PROVIDER={self.llm_provider!r} is not one of openai, claude, ollama."
            )

        if self.large_group_threshold >= self.event_threshold:
            warnings.append(
                "LARGE_GROUP_THRESHOLD >= EVENT_THRESHOLD — the large-group tier can never apply."
            )

        if not self.admin_api_key:
            if self.debug:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are locked in production. "
                    "Set ADMIN_API_KEY in .env to enable admin access."
                )

        if not self.restaurant_email:
            warnings.append(
                "RESTAURANT_EMAIL not set — private-event callers cannot be given an address."
            )

        if self.twilio_account_sid in _placeholders:
            warnings.append("TWILIO_ACCOUNT_SID is a placeholder — owner SMS won't be sent.")

        if not self.google_service_account_json or self.google_service_account_json in _placeholders:
            warnings.append(
                "GOOGLE_SERVICE_ACCOUNT_JSON not set — bookings are kept in memory only."
            )

        return warnings

    def require_llm_credentials(self) -> None:
        """Raise ConfigurationError when the configured LLM has no credential."""
        _placeholders = {"sk-...", "sk-ant-..."}
        if self.llm_provider == "openai":
            if not self.openai_api_key or self.openai_api_key in _placeholders:
                raise ConfigurationError(
                    "OPENAI_API_KEY is missing or still a placeholder. "
                    "Set it in .env to use OpenAI."
                )
        elif self.llm_provider == "claude":
            if not self.anthropic_api_key or self.anthropic_api_key in _placeholders:
                raise ConfigurationError(
                    "ANTHROPIC_API_KEY is missing or still a placeholder. "
                    "Set it in .env to use Claude."
                )


settings = Settings()

# Runtime-mutable settings (admin API can change these)
runtime_settings = {
    # Unqualified small hours ("at 8") mean the evening during a booking call
    "bare_hour_is_evening": settings.bare_hour_is_evening,
    "lunch_time": settings.lunch_time,
    "evening_time": settings.evening_time,
    "late_time": settings.late_time,
}
