"""Application configuration management."""
from __future__ import annotations

import logging
import os
import secrets
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Union
from urllib.parse import quote_plus

from sqlalchemy.engine import make_url

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from dotenv import load_dotenv

from invoicelocks.core.exceptions import ConfigurationError

BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"

load_dotenv(ENV_FILE)

logger = logging.getLogger(__name__)


def _generate_jwt_secret() -> str:
    """Return a random JWT signing secret."""

    return secrets.token_urlsafe(64)


def _normalise_directory(path_str: str, *, default: Path, description: str) -> str:
    """Return a writable directory path, falling back when necessary."""

    candidate = Path(path_str).expanduser()
    if not candidate.is_absolute():
        candidate = (BASE_DIR / candidate).resolve()

    try:
        candidate.mkdir(parents=True, exist_ok=True)
    except (PermissionError, OSError) as exc:
        fallback = default.resolve()
        fallback.mkdir(parents=True, exist_ok=True)
        logger.warning(
            "Unable to create %s at %s (%s); using fallback %s",
            description,
            candidate,
            exc,
            fallback,
        )
        candidate = fallback

    return str(candidate)


class Settings(BaseModel):
    """Runtime configuration values for the InvoiceLocks service."""

    app_env: str = Field("development", validation_alias="APP_ENV")
    debug: bool = Field(False, validation_alias="DEBUG")
    server_host: str = Field("0.0.0.0", validation_alias="APP_HOST")
    server_port: int = Field(8000, validation_alias="APP_PORT", gt=0, le=65535)

    database_url: str | None = Field(None, validation_alias="DATABASE_URL")
    postgres_db: str = Field("invoices", validation_alias="POSTGRES_DB")
    postgres_user: str = Field("invoiceadmin", validation_alias="POSTGRES_USER")
    postgres_password: str = Field("please-change-me", validation_alias="POSTGRES_PASSWORD")
    postgres_host: str = Field("localhost", validation_alias="POSTGRES_HOST")
    postgres_port: int = Field(5432, validation_alias="POSTGRES_PORT")

    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:8000",
            "http://127.0.0.1:8000",
            "http://localhost:3000",
        ],
        validation_alias="CORS_ORIGINS",
    )

    jwt_secret: str = Field(default_factory=_generate_jwt_secret, validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field("HS256", validation_alias="JWT_ALGORITHM")
    jwt_expiry_minutes: int = Field(60, validation_alias="JWT_EXPIRY_MINUTES", gt=0)

    lock_timeout_minutes: float = Field(5.0, validation_alias="LOCK_TIMEOUT_MINUTES", gt=0)
    lock_sweep_interval_seconds: float = Field(
        60.0,
        validation_alias="LOCK_SWEEP_INTERVAL_SECONDS",
        gt=0,
    )
    lock_store_backend: Literal["database", "memory"] = Field(
        "database", validation_alias="LOCK_STORE_BACKEND"
    )
    lock_wait_warning_seconds: float = Field(2.0, validation_alias="LOCK_WAIT_WARNING_SECONDS", ge=0)

    log_dir: str = Field(str(BASE_DIR / "data" / "logs"), validation_alias="LOGS_DIR")
    log_max_bytes: int = Field(10 * 1024 * 1024, validation_alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(5, validation_alias="LOG_BACKUP_COUNT")

    db_migration_max_retries: int = Field(
        5,
        validation_alias="DB_MIGRATION_MAX_RETRIES",
        ge=1,
    )
    db_migration_retry_delay_seconds: float = Field(
        2.0,
        validation_alias="DB_MIGRATION_RETRY_DELAY_SECONDS",
        ge=0.0,
    )

    class Config:
        populate_by_name = True

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: Union[str, list[str], None]) -> list[str]:
        if isinstance(value, str):
            parts = [origin.strip() for origin in value.split(",")]
            return [origin for origin in parts if origin]
        if value is None:
            return []
        return list(value)

    @field_validator("lock_store_backend", mode="before")
    @classmethod
    def normalise_lock_store_backend(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, value: str) -> str:
        """Ensure the JWT signing secret is sufficiently strong."""

        if value in {"change-me", "changeme", "secret"}:
            raise ValueError(
                "JWT_SECRET must be changed from the default. "
                "Generate a new key with: openssl rand -base64 32"
            )
        if len(value) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters long")
        return value

    @model_validator(mode="after")
    def normalise_storage_directories(self) -> "Settings":
        """Ensure the log directory is writable within the container."""

        self.log_dir = _normalise_directory(
            self.log_dir,
            default=BASE_DIR / "data" / "logs",
            description="log directory",
        )
        return self

    @model_validator(mode="after")
    def ensure_database_url(self) -> "Settings":
        """Construct a PostgreSQL URL when one is not explicitly provided."""

        if self.database_url:
            try:
                make_url(self.database_url)
            except Exception as exc:
                raise ValueError(f"DATABASE_URL is invalid: {exc}") from exc
            return self

        if not self.postgres_password:
            raise ValueError(
                "DATABASE_URL must be provided or POSTGRES_PASSWORD must be set to build one"
            )

        user = quote_plus(self.postgres_user)
        password = quote_plus(self.postgres_password)
        db_name = quote_plus(self.postgres_db)
        self.database_url = (
            f"postgresql+psycopg2://{user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{db_name}"
        )
        return self

    @property
    def lock_timeout(self) -> timedelta:
        return timedelta(minutes=self.lock_timeout_minutes)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    overrides: dict[str, Any] = {}
    env_mappings = {
        name: os.getenv(field.validation_alias)
        for name, field in Settings.model_fields.items()
        if isinstance(field.validation_alias, str)
    }
    overrides.update({k: v for k, v in env_mappings.items() if v})
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


settings = get_settings()
