"""Per-key mutual exclusion with wait instrumentation."""
from __future__ import annotations

import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Deque, Dict, Generic, Hashable, Iterator, List, TypeVar

K = TypeVar("K", bound=Hashable)


@dataclass
class KeyedMutexSnapshot:
    """Contention metrics captured for a keyed mutex."""

    name: str
    active_keys: int
    current_waiters: int
    max_wait_seconds: float


class _Slot:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class KeyedMutex(Generic[K]):
    """One :class:`threading.Lock` per key, created on demand.

    Slots are reference counted and dropped once no thread holds or waits on
    them, so the table only grows with concurrently contended keys.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._guard = threading.Lock()
        self._slots: Dict[K, _Slot] = {}
        self._wait_times: Deque[float] = deque(maxlen=100)
        self._max_wait = 0.0
        self._waiting = 0

    @property
    def name(self) -> str:
        return self._name

    @contextmanager
    def hold(self, key: K) -> Iterator[None]:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            slot.refs += 1
            self._waiting += 1

        start = time.monotonic()
        slot.lock.acquire()
        waited = time.monotonic() - start
        with self._guard:
            self._waiting -= 1
            self._wait_times.append(waited)
            if waited > self._max_wait:
                self._max_wait = waited
        try:
            yield
        finally:
            slot.lock.release()
            with self._guard:
                slot.refs -= 1
                if slot.refs == 0:
                    self._slots.pop(key, None)

    def snapshot(self) -> KeyedMutexSnapshot:
        with self._guard:
            return KeyedMutexSnapshot(
                name=self._name,
                active_keys=len(self._slots),
                current_waiters=self._waiting,
                max_wait_seconds=self._max_wait,
            )


def collect_mutex_warnings(mutexes: List[KeyedMutex], *, wait_threshold: float) -> List[str]:
    """Return warning messages for mutexes breaching the wait threshold."""

    warnings: List[str] = []
    for mutex in mutexes:
        snapshot = mutex.snapshot()
        if snapshot.max_wait_seconds > wait_threshold:
            warnings.append(
                f"{snapshot.name} wait exceeded {wait_threshold:.2f}s (max {snapshot.max_wait_seconds:.2f}s)"
            )
    return warnings


__all__ = ["KeyedMutex", "KeyedMutexSnapshot", "collect_mutex_warnings"]
