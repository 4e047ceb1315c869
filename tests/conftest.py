import os
import sys
import tempfile
import threading
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="invoicelocks_test_"))

os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DATA_DIR / 'app.sqlite'}")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-please-change-1234567890")
os.environ.setdefault("LOGS_DIR", str(_TEST_DATA_DIR / "logs"))
os.environ.setdefault("LOCK_TIMEOUT_MINUTES", "5")

from invoicelocks.core.database import build_engine, build_session_factory
from invoicelocks.db.base import Base
from invoicelocks.services.lock_coordinator import LockCoordinator
from invoicelocks.services.lock_store import DatabaseLockStore, MemoryLockStore

LOCK_TIMEOUT = timedelta(minutes=5)
START = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Manually advanced clock shared by coordinators under test."""

    def __init__(self, start: datetime = START) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, delta: timedelta) -> datetime:
        with self._lock:
            self._now += delta
            return self._now


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def session_factory(tmp_path) -> Generator[sessionmaker[Session], None, None]:
    """File-backed SQLite database shared by every thread in a test."""

    engine = build_engine(f"sqlite:///{tmp_path / 'locks.sqlite'}")
    Base.metadata.create_all(engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture(params=["database", "memory"])
def store(request, session_factory):
    if request.param == "memory":
        return MemoryLockStore()
    return DatabaseLockStore(session_factory)


@pytest.fixture()
def coordinator(store, clock) -> LockCoordinator:
    return LockCoordinator(store, timeout=LOCK_TIMEOUT, clock=clock)


@pytest.fixture()
def anyio_backend():
    """Restrict AnyIO-based tests to asyncio only."""

    return "asyncio"
