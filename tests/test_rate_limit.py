import threading

from app.config import StoreConfig
from app.state.rate_limit import RateLimiter
from app.state.store import StateStore


def test_first_admitted_second_rejected_third_after_window(store, clock):
    limiter = RateLimiter(store)
    assert limiter.check_and_consume("a") is True
    clock.advance(1)
    assert limiter.check_and_consume("a") is False
    clock.advance(5)
    assert limiter.check_and_consume("a") is True


def test_rejection_does_not_mutate_window(store, clock):
    limiter = RateLimiter(store)
    limiter.check_and_consume("a")
    before = store.rate_windows.read("a", lambda w: (w.count, w.last_command_at))
    clock.advance(2)
    limiter.check_and_consume("a")
    after = store.rate_windows.read("a", lambda w: (w.count, w.last_command_at))
    assert before == after


def test_window_is_measured_from_last_command(store, clock):
    limiter = RateLimiter(store)
    limiter.check_and_consume("a")
    clock.advance(5)
    # exactly at the boundary the window is still open
    assert limiter.check_and_consume("a") is False
    clock.advance(0.001)
    assert limiter.check_and_consume("a") is True


def test_senders_are_independent(store):
    limiter = RateLimiter(store)
    assert limiter.admit("a")
    assert limiter.admit("b")
    assert not limiter.admit("a")


def test_higher_cap_admits_up_to_cap(clock):
    store = StateStore(StoreConfig(rate_cap=3), clock=clock)
    limiter = RateLimiter(store)
    results = [limiter.check_and_consume("a") for _ in range(5)]
    assert results == [True, True, True, False, False]


def test_mark_completed_slides_window(store, clock):
    limiter = RateLimiter(store)
    limiter.admit("a")
    clock.advance(4)
    limiter.mark_completed("a")
    clock.advance(4)
    assert limiter.admit("a") is False
    clock.advance(2)
    assert limiter.admit("a") is True


def test_mark_completed_without_window_is_noop(store):
    RateLimiter(store).mark_completed("nobody")
    assert store.stats()["rate_limits"] == 0


def test_concurrent_events_admit_only_once(store):
    limiter = RateLimiter(store)
    barrier = threading.Barrier(16)
    admitted = []

    def attempt():
        barrier.wait()
        admitted.append(limiter.check_and_consume("a"))

    threads = [threading.Thread(target=attempt) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert admitted.count(True) == 1
