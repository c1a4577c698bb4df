import itertools
import random
import threading
import time

import pytest

from mcp_shell.pipeline.ratelimit import SlidingWindowRateLimiter


def test_ceiling_two_admits_twice_then_rejects() -> None:
    limiter = SlidingWindowRateLimiter(2)

    outcomes = [limiter.check_and_record("client", now=t) for t in (0.0, 0.1, 0.2)]

    assert outcomes == [True, True, False]


def test_rejection_does_not_record() -> None:
    limiter = SlidingWindowRateLimiter(1)

    assert limiter.check_and_record("client", now=0.0)
    assert not limiter.check_and_record("client", now=1.0)
    assert not limiter.check_and_record("client", now=2.0)

    assert limiter.window_size("client", now=2.0) == 1


def test_zero_ceiling_rejects_everything() -> None:
    limiter = SlidingWindowRateLimiter(0)

    assert not limiter.check_and_record("client", now=0.0)
    assert limiter.window_size("client", now=0.0) == 0


def test_entries_older_than_window_are_pruned() -> None:
    limiter = SlidingWindowRateLimiter(2)
    assert limiter.check_and_record("client", now=0.0)
    assert limiter.check_and_record("client", now=1.0)
    assert not limiter.check_and_record("client", now=30.0)

    # The admission at t=0 sits exactly on the window edge and drops out.
    assert limiter.check_and_record("client", now=60.0)
    assert not limiter.check_and_record("client", now=60.5)
    assert limiter.window_size("client", now=60.5) == 2


def test_clients_are_independent() -> None:
    limiter = SlidingWindowRateLimiter(1)

    assert limiter.check_and_record("alice", now=0.0)
    assert limiter.check_and_record("bob", now=0.0)
    assert not limiter.check_and_record("alice", now=0.5)


def test_configure_and_reset() -> None:
    limiter = SlidingWindowRateLimiter(1)
    assert limiter.check_and_record("client", now=0.0)
    assert not limiter.check_and_record("client", now=0.1)

    limiter.configure(3)
    assert limiter.requests_per_minute == 3
    assert limiter.check_and_record("client", now=0.2)

    limiter.reset("client")
    assert limiter.window_size("client", now=0.3) == 0

    with pytest.raises(ValueError):
        limiter.configure(-1)


@pytest.mark.parametrize("ceiling", [1, 3, 10])
def test_simultaneous_checks_admit_exactly_the_ceiling(ceiling: int) -> None:
    limiter = SlidingWindowRateLimiter(ceiling)
    workers = 16
    barrier = threading.Barrier(workers)
    admitted: list[bool] = []
    admitted_lock = threading.Lock()

    def _worker() -> None:
        barrier.wait()
        for _ in range(5):
            outcome = limiter.check_and_record("shared", now=5.0)
            with admitted_lock:
                admitted.append(outcome)

    threads = [threading.Thread(target=_worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(admitted) == ceiling


@pytest.mark.parametrize("seed", range(6))
def test_concurrent_admissions_never_exceed_ceiling_in_any_window(seed: int) -> None:
    rng = random.Random(seed)
    ceiling = rng.randint(1, 8)
    step = rng.choice([0.5, 3.0, 7.5])
    ticks = itertools.count()
    clock_lock = threading.Lock()
    local = threading.local()

    def _clock() -> float:
        with clock_lock:
            value = next(ticks) * step
        local.last = value
        time.sleep(0)
        return value

    limiter = SlidingWindowRateLimiter(ceiling, clock=_clock)
    admitted: list[float] = []
    admitted_lock = threading.Lock()
    barrier = threading.Barrier(8)

    def _worker() -> None:
        barrier.wait()
        for _ in range(40):
            if limiter.check_and_record("client"):
                with admitted_lock:
                    admitted.append(local.last)

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert admitted
    admitted.sort()
    for stamp in admitted:
        in_window = [other for other in admitted if stamp - 60.0 < other <= stamp]
        assert len(in_window) <= ceiling


def test_expired_client_windows_are_dropped() -> None:
    limiter = SlidingWindowRateLimiter(5)
    for index in range(10_000):
        assert limiter.check_and_record(f"client-{index}", now=0.0)
    assert limiter.tracked_clients == 10_000

    assert limiter.check_and_record("client-0", now=1000.0)

    assert limiter.tracked_clients == 1
    assert limiter.window_size("client-0", now=1000.0) == 1
    assert limiter.window_size("client-1", now=1000.0) == 0


def test_sweep_keeps_windows_with_live_admissions() -> None:
    limiter = SlidingWindowRateLimiter(1)
    assert limiter.check_and_record("idle", now=0.0)
    assert limiter.check_and_record("active", now=50.0)

    assert limiter.check_and_record("other", now=70.0)

    assert limiter.tracked_clients == 2
    assert not limiter.check_and_record("active", now=71.0)
    assert limiter.check_and_record("idle", now=71.0)
