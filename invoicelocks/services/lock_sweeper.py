"""Background sweeper that purges expired edit locks."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import Depends

from invoicelocks.core.config import settings
from invoicelocks.services.lock_coordinator import LockCoordinator
from invoicelocks.services.locks import get_lock_coordinator, lock_coordinator

logger = logging.getLogger(__name__)


class LockSweeper:
    """Periodically remove expired locks from the lock store."""

    def __init__(self, coordinator: LockCoordinator, *, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("Sweep interval must be positive")
        self.coordinator = coordinator
        self.interval_seconds = interval_seconds

        self.runs = 0
        self.failures = 0
        self.locks_removed = 0
        self.last_run_at: Optional[datetime] = None
        self.last_removed: Optional[int] = None

        self._sweep_task: Optional[asyncio.Task[None]] = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> None:
        """Start the background sweep loop."""

        if self._is_running:
            logger.debug("Lock sweeper already running")
            return
        self._is_running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info("Lock sweeper started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        """Stop the background sweep loop."""

        self._is_running = False
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        logger.info("Lock sweeper stopped")

    async def sweep_once(self) -> int:
        """Run a single sweep and return the number of locks removed."""

        now = self.coordinator.now()
        self.runs += 1
        self.last_run_at = now
        try:
            removed = await asyncio.to_thread(self.coordinator.sweep_expired, now)
        except Exception:
            self.failures += 1
            raise
        self.last_removed = removed
        self.locks_removed += removed
        logger.debug("Lock sweep completed", extra={"removed": removed})
        return removed

    async def _sweep_loop(self) -> None:
        while self._is_running:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error during lock sweep")
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._is_running,
            "interval_seconds": self.interval_seconds,
            "runs": self.runs,
            "failures": self.failures,
            "locks_removed": self.locks_removed,
            "last_run_at": self.last_run_at,
            "last_removed": self.last_removed,
        }


lock_sweeper = LockSweeper(lock_coordinator, interval_seconds=settings.lock_sweep_interval_seconds)

_override_sweeper: Optional[LockSweeper] = None


def get_lock_sweeper(coordinator: LockCoordinator = Depends(get_lock_coordinator)) -> LockSweeper:
    """FastAPI dependency returning the sweeper bound to the request's coordinator."""

    global _override_sweeper

    if coordinator is lock_sweeper.coordinator:
        return lock_sweeper
    if _override_sweeper is None or _override_sweeper.coordinator is not coordinator:
        _override_sweeper = LockSweeper(
            coordinator, interval_seconds=settings.lock_sweep_interval_seconds
        )
    return _override_sweeper
