import asyncio
from datetime import timedelta

import pytest

from invoicelocks.core.exceptions import LockStoreUnavailableError
from invoicelocks.services.lock_sweeper import LockSweeper


class FlakyCoordinator:
    """Coordinator stand-in whose first sweeps fail."""

    def __init__(self, clock, failures: int) -> None:
        self._clock = clock
        self.failures_left = failures
        self.calls = 0

    def now(self):
        return self._clock()

    def sweep_expired(self, now=None) -> int:
        self.calls += 1
        if self.failures_left:
            self.failures_left -= 1
            raise LockStoreUnavailableError("store down")
        return 1


@pytest.mark.anyio("asyncio")
async def test_sweep_once_removes_expired_locks(coordinator, clock) -> None:
    coordinator.acquire(1, 1, "alice")
    coordinator.acquire(2, 2, "bob")
    clock.advance(coordinator.timeout)
    coordinator.acquire(3, 3, "carol")

    sweeper = LockSweeper(coordinator, interval_seconds=60)
    assert await sweeper.sweep_once() == 2
    assert await sweeper.sweep_once() == 0

    stats = sweeper.get_stats()
    assert stats["runs"] == 2
    assert stats["locks_removed"] == 2
    assert stats["last_removed"] == 0
    assert stats["last_run_at"] == clock()
    assert coordinator.inspect(3) is not None


@pytest.mark.anyio("asyncio")
async def test_sweeper_keeps_running_after_failed_ticks(clock) -> None:
    flaky = FlakyCoordinator(clock, failures=2)
    sweeper = LockSweeper(flaky, interval_seconds=0.01)

    await sweeper.start()
    try:
        for _ in range(200):
            if sweeper.locks_removed >= 2:
                break
            await asyncio.sleep(0.01)
    finally:
        await sweeper.stop()

    stats = sweeper.get_stats()
    assert flaky.calls >= 4
    assert stats["failures"] == 2
    assert stats["locks_removed"] >= 2
    assert not sweeper.is_running


@pytest.mark.anyio("asyncio")
async def test_start_is_idempotent_and_first_tick_is_immediate(coordinator, clock) -> None:
    coordinator.acquire(1, 1, "alice")
    clock.advance(coordinator.timeout + timedelta(seconds=1))
    sweeper = LockSweeper(coordinator, interval_seconds=3600)

    await sweeper.start()
    await sweeper.start()
    try:
        for _ in range(200):
            if sweeper.last_removed is not None:
                break
            await asyncio.sleep(0.01)
    finally:
        await sweeper.stop()

    assert sweeper.runs == 1
    assert sweeper.locks_removed == 1


@pytest.mark.anyio("asyncio")
async def test_sweep_once_propagates_store_failures(clock) -> None:
    sweeper = LockSweeper(FlakyCoordinator(clock, failures=1), interval_seconds=60)

    with pytest.raises(LockStoreUnavailableError):
        await sweeper.sweep_once()
    assert sweeper.get_stats()["failures"] == 1


def test_interval_must_be_positive(coordinator) -> None:
    with pytest.raises(ValueError):
        LockSweeper(coordinator, interval_seconds=0)
