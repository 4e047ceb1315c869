"""Edit-lock coordinator: grant, extend, release, inspect and expire locks."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from invoicelocks.core.exceptions import LockContentionError
from invoicelocks.services.lock_store import LockState, LockStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

MAX_ACQUIRE_ATTEMPTS = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AcquireOutcome(str, enum.Enum):
    """Tag of an acquire result."""

    GRANTED = "granted"
    EXTENDED = "extended"
    DENIED = "denied"


@dataclass(frozen=True)
class AcquireResult:
    """Outcome of an acquire attempt.

    ``lock`` is the requester's lock when granted or extended, and the
    current holder's untouched lock when denied.
    """

    outcome: AcquireOutcome
    lock: LockState

    @property
    def granted(self) -> bool:
        return self.outcome is not AcquireOutcome.DENIED


class LockCoordinator:
    """Time-bounded exclusive edit locks keyed by resource id.

    Locks are never awaited: a lock held by someone else is reported as
    :attr:`AcquireOutcome.DENIED` and callers retry when they choose to.
    Expired rows are treated as absent everywhere, so correctness does not
    depend on :meth:`sweep_expired` ever running.
    """

    def __init__(self, store: LockStore, *, timeout: timedelta, clock: Clock = utcnow) -> None:
        if timeout <= timedelta(0):
            raise ValueError("Lock timeout must be positive")
        self._store = store
        self._timeout = timeout
        self._clock = clock

    @property
    def store(self) -> LockStore:
        return self._store

    @property
    def timeout(self) -> timedelta:
        return self._timeout

    def now(self) -> datetime:
        return self._clock()

    def acquire(self, resource_id: int, owner_id: int, owner_name: str) -> AcquireResult:
        """Grant, extend or deny the lock on ``resource_id`` for ``owner_id``."""

        for attempt in range(1, MAX_ACQUIRE_ATTEMPTS + 1):
            now = self._clock()
            candidate = LockState(
                resource_id=resource_id,
                owner_id=owner_id,
                owner_name=owner_name,
                acquired_at=now,
                expires_at=now + self._timeout,
            )

            if self._store.refresh(candidate, now):
                logger.info(
                    "Extended lock",
                    extra={"invoice_id": resource_id, "user_id": owner_id, "expires_at": candidate.expires_at},
                )
                return AcquireResult(AcquireOutcome.EXTENDED, candidate)

            if self._store.replace_expired(candidate, now) or self._store.insert_if_absent(candidate):
                logger.info(
                    "Acquired lock",
                    extra={"invoice_id": resource_id, "user_id": owner_id, "expires_at": candidate.expires_at},
                )
                return AcquireResult(AcquireOutcome.GRANTED, candidate)

            current = self._store.get(resource_id)
            if current is not None and not current.is_expired(now) and not current.held_by(owner_id):
                logger.warning(
                    "Lock held by another user",
                    extra={
                        "invoice_id": resource_id,
                        "user_id": owner_id,
                        "locked_by_user_id": current.owner_id,
                        "expires_at": current.expires_at,
                    },
                )
                return AcquireResult(AcquireOutcome.DENIED, current)

            logger.debug(
                "Lock changed during acquire, retrying",
                extra={"invoice_id": resource_id, "user_id": owner_id, "attempt": attempt},
            )

        raise LockContentionError(
            f"Could not settle lock on {resource_id} after {MAX_ACQUIRE_ATTEMPTS} attempts"
        )

    def release(self, resource_id: int, owner_id: int) -> bool:
        """Remove the lock if ``owner_id`` holds it or it has already expired."""

        released = self._store.delete_releasable(resource_id, owner_id, self._clock())
        if released:
            logger.info("Released lock", extra={"invoice_id": resource_id, "user_id": owner_id})
        else:
            logger.warning(
                "No releasable lock found",
                extra={"invoice_id": resource_id, "user_id": owner_id},
            )
        return released

    def inspect(self, resource_id: int) -> Optional[LockState]:
        """Return the active lock, deleting it instead if it has expired."""

        now = self._clock()
        current = self._store.get(resource_id)
        if current is None or current.is_active(now):
            return current

        if self._store.delete_if_expired(resource_id, now):
            logger.info("Removed expired lock", extra={"invoice_id": resource_id})
            return None

        # Re-acquired between the read and the delete.
        current = self._store.get(resource_id)
        if current is not None and current.is_active(now):
            return current
        return None

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every expired lock and return the number removed."""

        if now is None:
            now = self._clock()
        removed = self._store.delete_all_expired(now)
        if removed:
            logger.info("Cleaned up expired locks", extra={"count": removed})
        return removed


__all__ = ["AcquireOutcome", "AcquireResult", "LockCoordinator", "LockState", "utcnow"]
