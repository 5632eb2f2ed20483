"""Application settings loaded from environment for the tokenward backend.

This module defines the :class:`Settings` model (based on Pydantic's
``BaseSettings``) and instantiates ``settings`` which is imported across
the application to access configuration values.

Notable fields include the database connection URL and the JWT
configuration for access and refresh tokens. Settings are read once at
startup and are immutable afterwards.
"""

from datetime import timedelta
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BACKEND_DIR / ".env"


class Settings(BaseSettings):
    """Environment-backed application settings.

    Attributes:
        DATABASE_URL_ASYNC: Async database URL for SQLAlchemy.
        DB_ECHO: Echo SQL statements to the log.
        DB_TIMEOUT_SECONDS: Upper bound for a single store call.

        SECRET_KEY: JWT signing secret for access tokens.
        REFRESH_SECRET_KEY: JWT signing secret for refresh tokens. Falls back
            to ``SECRET_KEY`` when unset.
        ALGORITHM: JWT signing algorithm.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        REFRESH_TOKEN_EXPIRE_DAYS: Refresh token lifetime in days.
        TOKEN_ISSUER: ``iss`` claim written into and required from tokens.
        TOKEN_CLEANUP_INTERVAL_MINUTES: Period of the expired token sweep,
            0 disables the background sweep.
        CORS_ORIGINS: Origins allowed by the CORS middleware.
    """

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    DATABASE_URL_ASYNC: str
    DB_ECHO: bool = False
    DB_TIMEOUT_SECONDS: float = 5.0

    SECRET_KEY: str
    REFRESH_SECRET_KEY: str | None = None
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    TOKEN_ISSUER: str = "blog-api"

    TOKEN_CLEANUP_INTERVAL_MINUTES: int = 60

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    @property
    def refresh_secret(self) -> str:
        return self.REFRESH_SECRET_KEY or self.SECRET_KEY

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.REFRESH_TOKEN_EXPIRE_DAYS)


settings = Settings()
