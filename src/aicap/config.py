"""Application configuration via environment variables with Pydantic validation.

All configuration is loaded from environment variables (with .env file support).
The app fails loudly at startup if required values are missing or invalid.
"""

import logging

from cryptography.fernet import Fernet
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from aicap.keys.hashing import MAX_ROUNDS, MIN_ROUNDS


class Settings(BaseSettings):
    """AICAP application settings. All values sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./aicap.db"
    db_pool_timeout: int = 5
    db_connect_timeout: int = 5

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # Service-to-service key used by the dashboard backend (required)
    aicap_service_api_key: str

    # Fernet key for stored webhook secrets (required)
    webhook_secret_encryption_key: str

    # API key hashing (bcrypt work factor)
    key_hash_rounds: int = 12
    verify_concurrency: int = 4
    verify_scan_warn_threshold: int = 2000

    # Outbound webhook dispatch
    dns_timeout_seconds: float = 3.0
    webhook_timeout_seconds: float = 5.0
    webhook_pin_resolved_ip: bool = True

    # CORS
    cors_allowed_origins: str = "http://localhost:3000"

    # Request limits
    max_request_body_bytes: int = 1_048_576

    # Rate limiting (per remote address)
    rate_limit_enabled: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("database_url")
    @classmethod
    def database_url_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("DATABASE_URL must not be empty")
        return v

    @field_validator("aicap_service_api_key")
    @classmethod
    def service_key_strength(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("AICAP_SERVICE_API_KEY must not be empty")
        if len(v.strip()) < 32:
            raise ValueError("AICAP_SERVICE_API_KEY must be at least 32 characters")
        return v

    @field_validator("webhook_secret_encryption_key")
    @classmethod
    def encryption_key_valid(cls, v: str) -> str:
        try:
            Fernet(v.encode())
        except (ValueError, TypeError) as exc:
            raise ValueError(
                "WEBHOOK_SECRET_ENCRYPTION_KEY must be a url-safe base64 32-byte Fernet key"
            ) from exc
        return v

    @field_validator("key_hash_rounds")
    @classmethod
    def rounds_in_range(cls, v: int) -> int:
        if not MIN_ROUNDS <= v <= MAX_ROUNDS:
            raise ValueError(f"KEY_HASH_ROUNDS must be between {MIN_ROUNDS} and {MAX_ROUNDS}")
        return v

    @field_validator("verify_concurrency")
    @classmethod
    def concurrency_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("VERIFY_CONCURRENCY must be at least 1")
        return v

    @field_validator("dns_timeout_seconds", "webhook_timeout_seconds")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be greater than zero")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        Rejects wildcard '*' when allow_credentials=True (browser security).
        """
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]
        validated: list[str] = []
        for origin in origins:
            if origin == "*":
                logging.getLogger(__name__).warning(
                    "CORS origin '*' is not allowed with allow_credentials=True, skipping"
                )
                continue
            validated.append(origin)
        return validated


def get_settings() -> Settings:
    """Create and return a validated Settings instance.

    Raises ValidationError with clear messages if required env vars are missing.
    """
    return Settings()  # type: ignore[call-arg]
