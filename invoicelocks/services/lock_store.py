"""Lock store backends with per-key atomic conditional writes.

Every primitive below is indivisible for its key: the condition and the
write happen in one SQL statement (database backend) or under the key's
mutex (memory backend). The coordinator composes them without ever holding
state between calls.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol, TypeVar

from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from invoicelocks.core.exceptions import LockStoreUnavailableError
from invoicelocks.models import InvoiceLock
from invoicelocks.utils import KeyedMutex

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LockState:
    """Snapshot of a stored edit lock."""

    resource_id: int
    owner_id: int
    owner_name: str
    acquired_at: datetime
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def held_by(self, owner_id: int) -> bool:
        return self.owner_id == owner_id


class LockStore(Protocol):
    """Keyed lock storage offering per-key atomic conditional operations."""

    def get(self, resource_id: int) -> Optional[LockState]:
        """Return the stored row, expired or not."""

    def refresh(self, lock: LockState, now: datetime) -> bool:
        """Overwrite the row only if ``lock.owner_id`` holds it unexpired."""

    def replace_expired(self, lock: LockState, now: datetime) -> bool:
        """Overwrite the row only if it exists and has expired."""

    def insert_if_absent(self, lock: LockState) -> bool:
        """Create the row only if no row exists for the key."""

    def delete_releasable(self, resource_id: int, owner_id: int, now: datetime) -> bool:
        """Delete the row if ``owner_id`` holds it or it has expired."""

    def delete_if_expired(self, resource_id: int, now: datetime) -> bool:
        """Delete the row only while it is still expired."""

    def delete_all_expired(self, now: datetime) -> int:
        """Delete every expired row and return how many went."""


class DatabaseLockStore:
    """Lock store backed by the ``invoice_lock`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._table = InvoiceLock.__table__

    def get(self, resource_id: int) -> Optional[LockState]:
        def _run(db: Session) -> Optional[LockState]:
            row = db.execute(
                select(self._table).where(self._table.c.invoice_id == resource_id)
            ).first()
            return self._to_state(row) if row is not None else None

        return self._run(_run, operation="get", resource_id=resource_id)

    def refresh(self, lock: LockState, now: datetime) -> bool:
        c = self._table.c
        stmt = (
            update(self._table)
            .where(
                c.invoice_id == lock.resource_id,
                c.locked_by_user_id == lock.owner_id,
                c.lock_expires_at > now,
            )
            .values(**self._values(lock))
        )
        return self._rowcount(stmt, operation="refresh", resource_id=lock.resource_id) == 1

    def replace_expired(self, lock: LockState, now: datetime) -> bool:
        c = self._table.c
        stmt = (
            update(self._table)
            .where(c.invoice_id == lock.resource_id, c.lock_expires_at <= now)
            .values(**self._values(lock))
        )
        return self._rowcount(stmt, operation="replace_expired", resource_id=lock.resource_id) == 1

    def insert_if_absent(self, lock: LockState) -> bool:
        values = {"invoice_id": lock.resource_id, **self._values(lock)}

        def _run(db: Session) -> bool:
            dialect_name = db.get_bind().dialect.name
            if dialect_name == "postgresql":
                stmt = postgresql_insert(self._table).values(**values).on_conflict_do_nothing(
                    index_elements=[self._table.c.invoice_id]
                )
            elif dialect_name == "sqlite":
                stmt = sqlite_insert(self._table).values(**values).on_conflict_do_nothing(
                    index_elements=[self._table.c.invoice_id]
                )
            else:
                try:
                    with db.begin_nested():
                        db.execute(insert(self._table).values(**values))
                except IntegrityError:
                    return False
                return True
            return db.execute(stmt).rowcount == 1

        return self._run(_run, operation="insert_if_absent", resource_id=lock.resource_id)

    def delete_releasable(self, resource_id: int, owner_id: int, now: datetime) -> bool:
        c = self._table.c
        stmt = delete(self._table).where(
            c.invoice_id == resource_id,
            or_(c.locked_by_user_id == owner_id, c.lock_expires_at <= now),
        )
        return self._rowcount(stmt, operation="delete_releasable", resource_id=resource_id) == 1

    def delete_if_expired(self, resource_id: int, now: datetime) -> bool:
        c = self._table.c
        stmt = delete(self._table).where(c.invoice_id == resource_id, c.lock_expires_at <= now)
        return self._rowcount(stmt, operation="delete_if_expired", resource_id=resource_id) == 1

    def delete_all_expired(self, now: datetime) -> int:
        stmt = delete(self._table).where(self._table.c.lock_expires_at <= now)
        return self._rowcount(stmt, operation="delete_all_expired")

    def _rowcount(self, stmt: Any, **context: Any) -> int:
        return self._run(lambda db: db.execute(stmt).rowcount, **context)

    def _run(self, work: Callable[[Session], T], *, operation: str, resource_id: Optional[int] = None) -> T:
        """Run ``work`` in its own committed transaction."""

        try:
            with self._session_factory.begin() as db:
                return work(db)
        except SQLAlchemyError as exc:
            logger.error(
                "Lock store operation failed",
                extra={"operation": operation, "invoice_id": resource_id, "error": str(exc)},
            )
            raise LockStoreUnavailableError(f"Lock store unavailable during {operation}") from exc

    @staticmethod
    def _values(lock: LockState) -> dict[str, Any]:
        return {
            "locked_by_user_id": lock.owner_id,
            "locked_by_user_name": lock.owner_name,
            "lock_acquired_at": lock.acquired_at,
            "lock_expires_at": lock.expires_at,
        }

    @staticmethod
    def _to_state(row: Row) -> LockState:
        return LockState(
            resource_id=row.invoice_id,
            owner_id=row.locked_by_user_id,
            owner_name=row.locked_by_user_name,
            acquired_at=row.lock_acquired_at,
            expires_at=row.lock_expires_at,
        )


class MemoryLockStore:
    """Process-local lock store serialised per key.

    Only suitable when a single process owns all lock traffic.
    """

    def __init__(self) -> None:
        self._rows: Dict[int, LockState] = {}
        self._rows_guard = threading.Lock()
        self.mutex: KeyedMutex[int] = KeyedMutex("memory_lock_store")

    def _read(self, resource_id: int) -> Optional[LockState]:
        with self._rows_guard:
            return self._rows.get(resource_id)

    def _write(self, lock: LockState) -> None:
        with self._rows_guard:
            self._rows[lock.resource_id] = lock

    def _drop(self, resource_id: int) -> None:
        with self._rows_guard:
            self._rows.pop(resource_id, None)

    def get(self, resource_id: int) -> Optional[LockState]:
        return self._read(resource_id)

    def refresh(self, lock: LockState, now: datetime) -> bool:
        with self.mutex.hold(lock.resource_id):
            current = self._read(lock.resource_id)
            if current is None or not current.held_by(lock.owner_id) or current.is_expired(now):
                return False
            self._write(lock)
            return True

    def replace_expired(self, lock: LockState, now: datetime) -> bool:
        with self.mutex.hold(lock.resource_id):
            current = self._read(lock.resource_id)
            if current is None or not current.is_expired(now):
                return False
            self._write(lock)
            return True

    def insert_if_absent(self, lock: LockState) -> bool:
        with self.mutex.hold(lock.resource_id):
            if self._read(lock.resource_id) is not None:
                return False
            self._write(lock)
            return True

    def delete_releasable(self, resource_id: int, owner_id: int, now: datetime) -> bool:
        with self.mutex.hold(resource_id):
            current = self._read(resource_id)
            if current is None:
                return False
            if not current.held_by(owner_id) and not current.is_expired(now):
                return False
            self._drop(resource_id)
            return True

    def delete_if_expired(self, resource_id: int, now: datetime) -> bool:
        with self.mutex.hold(resource_id):
            current = self._read(resource_id)
            if current is None or not current.is_expired(now):
                return False
            self._drop(resource_id)
            return True

    def delete_all_expired(self, now: datetime) -> int:
        with self._rows_guard:
            candidates = [key for key, lock in self._rows.items() if lock.is_expired(now)]
        return sum(1 for key in candidates if self.delete_if_expired(key, now))

    def __len__(self) -> int:
        with self._rows_guard:
            return len(self._rows)


__all__ = ["LockState", "LockStore", "DatabaseLockStore", "MemoryLockStore"]
