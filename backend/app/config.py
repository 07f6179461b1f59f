"""Application configuration."""
from collections import Counter
from functools import lru_cache
import math

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Phaseline"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Database
    database_url: str = "sqlite:///./phaseline.db"

    # Auth
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Alerting
    alert_scheduler_enabled: bool = True
    alert_mode: str = "phases"  # phases, legacy
    phase_entry_window_seconds: float = 120.0
    pre_entry_lead_seconds: float = 60.0
    alert_poll_interval_seconds: float = 10.0
    due_soon_hours: int = 24

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, value: str) -> str:
        """Fail closed if SECRET_KEY is weak or placeholder quality."""
        if not value:
            raise ValueError("SECRET_KEY must be set.")

        if len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered:
            raise ValueError("SECRET_KEY must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError("SECRET_KEY entropy is too low; use a cryptographically random value.")

        return value

    @field_validator("alert_mode")
    @classmethod
    def validate_alert_mode(cls, value: str) -> str:
        if value not in ("phases", "legacy"):
            raise ValueError("ALERT_MODE must be 'phases' or 'legacy'.")
        return value

    @field_validator("alert_poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, value: float, info) -> float:
        """Polling must be at most half the entry window or a boundary can be missed."""
        window = info.data.get("phase_entry_window_seconds", 120.0)
        if value <= 0:
            raise ValueError("ALERT_POLL_INTERVAL_SECONDS must be positive.")
        if value > window / 2:
            raise ValueError("ALERT_POLL_INTERVAL_SECONDS must be at most half of PHASE_ENTRY_WINDOW_SECONDS.")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
