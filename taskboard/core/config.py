"""
Application configuration management using Pydantic Settings.
All settings can be overridden via environment variables.

The settings object is immutable and built once per process; components
receive it (or the values they need) explicitly instead of importing it.
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # Application
    PROJECT_NAME: str = "Taskboard"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ASSERTION_EXPIRE_MINUTES: int = 60 * 24

    @field_validator("SECRET_KEY", mode="after")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Refuse to start with a blank signing secret."""
        if not v.strip():
            raise ValueError("SECRET_KEY must not be empty")
        return v

    # Database
    DATABASE_URL: str | None = None  # e.g. sqlite:///./data/taskboard.db
    POSTGRES_SERVER: str | None = None
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str | None = None
    POSTGRES_PASSWORD: str | None = None
    POSTGRES_DB: str | None = None
    STORE_TIMEOUT_SECONDS: float = 5.0

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Get database URI - supports both SQLite and PostgreSQL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.POSTGRES_SERVER and self.POSTGRES_USER and self.POSTGRES_PASSWORD and self.POSTGRES_DB:
            return (
                f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return "sqlite:///./data/taskboard.db"

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.SQLALCHEMY_DATABASE_URI.startswith("sqlite")

    # Sessions
    SESSION_BACKEND: Literal["memory", "redis"] = "memory"
    SESSION_COOKIE_NAME: str = "taskboard_session"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 24
    SESSION_COOKIE_SECURE: bool = False

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        """Construct Redis URL."""
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # Registration
    ALLOW_ROLE_SELECTION: bool = False

    # First superuser (created on startup)
    DISABLE_BOOTSTRAP_USERS: bool = False
    FIRST_SUPERUSER_EMAIL: str = "admin@example.com"
    FIRST_SUPERUSER_PASSWORD: str = "changethis"  # Max 72 bytes
    FIRST_SUPERUSER_NAME: str = "Admin"

    @field_validator("FIRST_SUPERUSER_PASSWORD", mode="after")
    @classmethod
    def validate_password_length(cls, v: str) -> str:
        """Validate password length (max 72 bytes)."""
        if v and len(v.encode("utf-8")) > 72:
            raise ValueError(
                f"FIRST_SUPERUSER_PASSWORD is too long ({len(v.encode('utf-8'))} bytes). "
                "The maximum is 72 bytes. Please use a shorter password."
            )
        return v


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once."""
    return Settings()  # type: ignore[call-arg]
