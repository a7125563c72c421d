"""Tests for the sliding-window rate limiter."""
import threading
import time

import pytest

from sptf.errors import CanceledError
from sptf.utils.cancellation import CancellationToken
from sptf.utils.rate_limiter import RateLimiter


def test_invalid_arguments():
    with pytest.raises(ValueError):
        RateLimiter(capacity=0)
    with pytest.raises(ValueError):
        RateLimiter(period=0)


def test_grants_up_to_capacity_without_waiting():
    limiter = RateLimiter(capacity=3, period=10.0)
    start = time.monotonic()
    for _ in range(3):
        limiter.acquire()
    assert time.monotonic() - start < 0.5


def test_window_never_exceeds_capacity_under_load():
    capacity, period = 2, 0.2
    limiter = RateLimiter(capacity=capacity, period=period)
    grants = []
    lock = threading.Lock()

    def worker():
        for _ in range(3):
            limiter.acquire()
            with lock:
                grants.append(time.monotonic())

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert len(grants) == 12
    grants.sort()
    # any capacity+1 consecutive grants span at least one period
    for i in range(len(grants) - capacity):
        assert grants[i + capacity] - grants[i] >= period - 0.01


def test_fake_clock_expiry():
    now = [100.0]
    limiter = RateLimiter(capacity=1, period=1.0, clock=lambda: now[0])
    limiter.acquire()
    cancel = CancellationToken()
    done = threading.Event()

    def second():
        limiter.acquire(cancel)
        done.set()

    t = threading.Thread(target=second)
    t.start()
    assert not done.wait(0.2)
    now[0] += 1.0
    assert done.wait(2.0)
    t.join()


def test_cancel_while_waiting_releases_queue_position():
    limiter = RateLimiter(capacity=1, period=60.0)
    limiter.acquire()
    cancel = CancellationToken()
    errors = []

    def waiter():
        try:
            limiter.acquire(cancel)
        except CanceledError as e:
            errors.append(e)

    t = threading.Thread(target=waiter)
    t.start()
    deadline = time.monotonic() + 2
    while limiter.waiting == 0 and time.monotonic() < deadline:
        time.sleep(0.01)
    assert limiter.waiting == 1
    cancel.cancel()
    t.join(timeout=2)
    assert len(errors) == 1
    assert limiter.waiting == 0


def test_already_cancelled_token_raises_immediately():
    limiter = RateLimiter(capacity=5)
    cancel = CancellationToken()
    cancel.cancel()
    with pytest.raises(CanceledError):
        limiter.acquire(cancel)
    # no permit consumed: five more fit in the window
    for _ in range(5):
        limiter.acquire()


def test_waiters_served_in_arrival_order():
    limiter = RateLimiter(capacity=1, period=0.1)
    limiter.acquire()
    order = []
    threads = []
    for i in range(3):
        t = threading.Thread(target=lambda i=i: (limiter.acquire(), order.append(i)))
        t.start()
        threads.append(t)
        # let each thread enqueue before starting the next
        deadline = time.monotonic() + 2
        while limiter.waiting < i + 1 and time.monotonic() < deadline:
            time.sleep(0.005)
    for t in threads:
        t.join(timeout=5)
    assert order == [0, 1, 2]
