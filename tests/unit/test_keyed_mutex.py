import threading
import time

from invoicelocks.utils import KeyedMutex, collect_mutex_warnings


def test_same_key_is_serialised() -> None:
    mutex: KeyedMutex[int] = KeyedMutex("test_mutex")
    inside = 0
    peak = 0
    guard = threading.Lock()

    def worker() -> None:
        nonlocal inside, peak
        with mutex.hold(1):
            with guard:
                inside += 1
                peak = max(peak, inside)
            time.sleep(0.005)
            with guard:
                inside -= 1

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert peak == 1
    assert mutex.snapshot().active_keys == 0


def test_different_keys_do_not_block_each_other() -> None:
    mutex: KeyedMutex[int] = KeyedMutex("test_mutex")
    entered = threading.Event()

    def other_key() -> None:
        with mutex.hold(2):
            entered.set()

    with mutex.hold(1):
        thread = threading.Thread(target=other_key)
        thread.start()
        assert entered.wait(timeout=1.0)
        thread.join()


def test_contention_reports_warning() -> None:
    mutex: KeyedMutex[int] = KeyedMutex("contended_mutex")
    holding = threading.Event()

    def holder() -> None:
        with mutex.hold(1):
            holding.set()
            time.sleep(0.05)

    thread = threading.Thread(target=holder)
    thread.start()
    holding.wait()
    with mutex.hold(1):
        pass
    thread.join()

    warnings = collect_mutex_warnings([mutex], wait_threshold=0.01)
    assert any("contended_mutex" in warning for warning in warnings)
    assert collect_mutex_warnings([mutex], wait_threshold=5) == []
