"""Shared lock coordinator instance for service coordination."""
from __future__ import annotations

import logging

from invoicelocks.core.config import Settings, settings
from invoicelocks.core.database import SessionLocal
from invoicelocks.services.lock_coordinator import LockCoordinator
from invoicelocks.services.lock_store import DatabaseLockStore, LockStore, MemoryLockStore
from invoicelocks.utils import KeyedMutex

logger = logging.getLogger(__name__)


def build_lock_store(config: Settings) -> LockStore:
    if config.lock_store_backend == "memory":
        logger.warning("Using process-local lock store; locks are not shared across workers")
        return MemoryLockStore()
    return DatabaseLockStore(SessionLocal)


lock_coordinator = LockCoordinator(build_lock_store(settings), timeout=settings.lock_timeout)


def lock_mutexes() -> list[KeyedMutex]:
    """Return the in-process mutexes backing the lock store, if any."""

    store = lock_coordinator.store
    if isinstance(store, MemoryLockStore):
        return [store.mutex]
    return []


def get_lock_coordinator() -> LockCoordinator:
    """FastAPI dependency returning the shared coordinator."""

    return lock_coordinator


__all__ = ["lock_coordinator", "get_lock_coordinator", "build_lock_store", "lock_mutexes"]
