import concurrent.futures
import threading
from collections import Counter

from sqlalchemy import func, select

from invoicelocks.models import InvoiceLock
from invoicelocks.services.lock_coordinator import AcquireOutcome
from invoicelocks.services.lock_store import DatabaseLockStore

CONTENDERS = 50


def _storm(coordinator, resource_id: int, owners: list[int]):
    barrier = threading.Barrier(len(owners))

    def worker(owner_id: int):
        barrier.wait()
        return coordinator.acquire(resource_id, owner_id, f"user-{owner_id}")

    with concurrent.futures.ThreadPoolExecutor(max_workers=len(owners)) as executor:
        futures = [executor.submit(worker, owner_id) for owner_id in owners]
        return [future.result() for future in futures]


def test_concurrent_acquires_grant_exactly_one_owner(coordinator) -> None:
    results = _storm(coordinator, 42, list(range(1, CONTENDERS + 1)))

    outcomes = Counter(result.outcome for result in results)
    assert outcomes[AcquireOutcome.GRANTED] == 1
    assert outcomes[AcquireOutcome.DENIED] == CONTENDERS - 1

    winner = next(result.lock for result in results if result.granted)
    for result in results:
        if not result.granted:
            assert result.lock.owner_id == winner.owner_id
            assert result.lock.expires_at == winner.expires_at

    assert coordinator.inspect(42) == winner


def test_concurrent_acquires_leave_single_row(store, coordinator, session_factory) -> None:
    _storm(coordinator, 42, list(range(1, CONTENDERS + 1)))

    if isinstance(store, DatabaseLockStore):
        with session_factory() as session:
            rows = session.scalar(
                select(func.count()).select_from(InvoiceLock).where(InvoiceLock.invoice_id == 42)
            )
        assert rows == 1
    else:
        assert len(store) == 1


def test_takeover_race_after_expiry_has_single_winner(coordinator, clock) -> None:
    coordinator.acquire(42, 999, "previous")
    clock.advance(coordinator.timeout)

    results = _storm(coordinator, 42, list(range(1, CONTENDERS + 1)))

    granted = [result for result in results if result.granted]
    assert len(granted) == 1
    assert granted[0].outcome is AcquireOutcome.GRANTED
    assert all(result.lock.owner_id == granted[0].lock.owner_id for result in results)


def test_unrelated_resources_are_independent(coordinator) -> None:
    def worker(resource_id: int):
        return coordinator.acquire(resource_id, resource_id, f"user-{resource_id}")

    with concurrent.futures.ThreadPoolExecutor(max_workers=10) as executor:
        results = list(executor.map(worker, range(1, 21)))

    assert all(result.outcome is AcquireOutcome.GRANTED for result in results)
    assert coordinator.sweep_expired() == 0
