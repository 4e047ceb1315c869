from datetime import timedelta

import pytest
from pydantic import ValidationError

from invoicelocks.core.config import Settings, get_settings
from invoicelocks.core.exceptions import ConfigurationError


def test_lock_defaults() -> None:
    config = Settings(jwt_secret="x" * 40, database_url="sqlite://")

    assert config.lock_timeout == timedelta(minutes=5)
    assert config.lock_sweep_interval_seconds == 60
    assert config.lock_store_backend == "database"


def test_lock_settings_are_overridable() -> None:
    config = Settings(
        jwt_secret="x" * 40,
        database_url="sqlite://",
        lock_timeout_minutes="0.5",
        lock_sweep_interval_seconds="15",
        lock_store_backend=" Memory ",
    )

    assert config.lock_timeout == timedelta(seconds=30)
    assert config.lock_sweep_interval_seconds == 15
    assert config.lock_store_backend == "memory"


@pytest.mark.parametrize(
    "overrides",
    [
        {"lock_timeout_minutes": 0},
        {"lock_sweep_interval_seconds": -1},
        {"lock_store_backend": "redis"},
        {"jwt_secret": "secret"},
        {"database_url": "not a url"},
    ],
)
def test_invalid_settings_are_rejected(overrides) -> None:
    values = {"jwt_secret": "x" * 40, "database_url": "sqlite://", **overrides}
    with pytest.raises(ValidationError):
        Settings(**values)


def test_database_url_built_from_postgres_parts() -> None:
    config = Settings(jwt_secret="x" * 40, postgres_password="p@ss", postgres_host="db")

    assert config.database_url == "postgresql+psycopg2://invoiceadmin:p%40ss@db:5432/invoices"


def test_invalid_environment_raises_configuration_error(monkeypatch) -> None:
    monkeypatch.setenv("LOCK_STORE_BACKEND", "redis")
    get_settings.cache_clear()
    try:
        with pytest.raises(ConfigurationError):
            get_settings()
    finally:
        get_settings.cache_clear()


def test_every_declared_key_is_read_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("DB_MIGRATION_MAX_RETRIES", "9")
    monkeypatch.setenv("DB_MIGRATION_RETRY_DELAY_SECONDS", "0.5")
    monkeypatch.setenv("LOG_MAX_BYTES", "1234")
    monkeypatch.setenv("LOG_BACKUP_COUNT", "2")
    monkeypatch.setenv("LOCK_WAIT_WARNING_SECONDS", "7")
    monkeypatch.setenv("JWT_EXPIRY_MINUTES", "15")
    monkeypatch.setenv("APP_PORT", "8080")
    get_settings.cache_clear()
    try:
        config = get_settings()
    finally:
        get_settings.cache_clear()

    assert config.db_migration_max_retries == 9
    assert config.db_migration_retry_delay_seconds == 0.5
    assert config.log_max_bytes == 1234
    assert config.log_backup_count == 2
    assert config.lock_wait_warning_seconds == 7
    assert config.jwt_expiry_minutes == 15
    assert config.server_port == 8080


def test_database_url_parts_are_read_from_environment(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("POSTGRES_DB", "ledger")
    monkeypatch.setenv("POSTGRES_USER", "billing")
    monkeypatch.setenv("POSTGRES_PASSWORD", "pw")
    monkeypatch.setenv("POSTGRES_HOST", "db")
    monkeypatch.setenv("POSTGRES_PORT", "6543")
    get_settings.cache_clear()
    try:
        config = get_settings()
    finally:
        get_settings.cache_clear()

    assert config.database_url == "postgresql+psycopg2://billing:pw@db:6543/ledger"


def test_run_serves_application_with_configured_address(monkeypatch) -> None:
    import uvicorn

    from invoicelocks import main

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    main.run()

    assert calls == [
        (
            "invoicelocks.main:app",
            {
                "host": main.settings.server_host,
                "port": main.settings.server_port,
                "log_level": "debug" if main.settings.debug else "info",
            },
        )
    ]
