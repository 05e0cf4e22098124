"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. The .env file is gitignored; .env.example is the template.

Pydantic Settings resolves each value in this order:
  1. Environment variables (highest priority)
  2. .env file values
  3. Defaults defined here (lowest priority)

Usage:
    from cardapi.config import settings
    print(settings.JWT_ISSUER)

The signing key is read here but never used directly by the token code:
TokenCodec receives it explicitly when the dependency layer builds it.
"""

from decimal import Decimal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Card API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: HMAC key used to sign access tokens (32+ characters)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Card API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # SQLite for MVP; swap to a PostgreSQL connection string for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/cards.db"

    # --- Access tokens ---
    # REQUIRED: No default, forces the operator to set a real secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "cardapi"
    JWT_AUDIENCE: str = "cardapi-clients"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    # --- Refresh secrets ---
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    # Upper bound on waiting for another refresh of the same user to finish
    REFRESH_LOCK_TIMEOUT_SECONDS: float = 5.0

    # --- Transactions ---
    # Placeholder approval ceiling until a real authorization engine exists
    APPROVAL_CEILING: Decimal = Decimal("2000000")
    DEFAULT_CURRENCY: str = "COP"

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:5173"]

    @field_validator("SECRET_KEY")
    @classmethod
    def secret_key_must_be_long(cls, value: str) -> str:
        # HS256 keys shorter than the digest size weaken the signature
        if len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters")
        return value


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
