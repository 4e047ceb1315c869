"""Database connection and session management utilities."""
from __future__ import annotations

import logging
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import Pool

from invoicelocks.core.config import settings

logger = logging.getLogger(__name__)

POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600
POOL_PRE_PING = True
SQLITE_BUSY_TIMEOUT = 30


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine tuned for the given backend."""

    is_sqlite = database_url.startswith("sqlite")

    if is_sqlite:
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
            echo=echo,
            future=True,
        )
    else:
        engine = create_engine(
            database_url,
            pool_pre_ping=POOL_PRE_PING,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=echo,
            future=True,
            connect_args={
                "connect_timeout": 10,
                "options": "-c statement_timeout=30000",
            },
        )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, connection_record):  # pragma: no cover - instrumentation
        logger.debug("Database connection established")

    if not is_sqlite:

        @event.listens_for(engine, "checkout")
        def _on_checkout(dbapi_conn, connection_record, connection_proxy):  # pragma: no cover - instrumentation
            pool: Pool = connection_proxy._pool
            checked_out = pool.checkedout()
            total = POOL_SIZE + MAX_OVERFLOW
            if checked_out >= total - 2:
                logger.warning(
                    "Database connection pool nearly exhausted",
                    extra={"checked_out": checked_out, "max": total},
                )

    return engine


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
        future=True,
        expire_on_commit=False,
    )


def check_database_health() -> tuple[bool, str]:
    try:
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")
    except Exception as exc:  # pragma: no cover - instrumentation
        return False, f"Database unreachable: {exc}"
    return True, "Database reachable"


def _log_rollback(exc: Exception) -> None:
    logger.error("Database transaction rolled back", extra={"error": str(exc)})


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    except Exception as exc:
        db.rollback()
        _log_rollback(exc)
        raise
    finally:
        try:
            if db.in_transaction():
                db.rollback()
        except Exception:
            logger.debug("Rollback on session close failed", exc_info=True)
        finally:
            db.close()


engine = build_engine(settings.database_url, echo=settings.debug)
SessionLocal = build_session_factory(engine)
