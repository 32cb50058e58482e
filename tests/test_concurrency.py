"""
test_concurrency.py — Tests for the adaptive concurrency controller

Covers: 429 back-off, streak-based growth and shrink, bounds, retry policy
for transient vs permanent errors, sliced fan-out and should_stop.

Sleeps are injected as a recorder so nothing waits on the wall clock.

Called by: pytest
Depends on: stocksync/services/concurrency.py, stocksync/connectors/base.py
"""

import asyncio

import pytest

from stocksync.connectors.base import RateLimitedError, StorefrontError, TransientError
from stocksync.services.concurrency import AdaptiveConcurrencyController, ConcurrencyLimits


def _run(coro):
    """Run an async coroutine synchronously in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class _Sleeps:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def _controller(**limits):
    sleeps = _Sleeps()
    return AdaptiveConcurrencyController(ConcurrencyLimits(**limits), sleep=sleeps), sleeps


# ── Window tuning ────────────────────────────────────────────────────


def test_starts_at_initial_values():
    ctl, _ = _controller()
    assert ctl.window == 30
    assert ctl.delay == pytest.approx(0.02)


def test_sustained_rate_limit_shrinks_window_and_grows_delay():
    ctl, _ = _controller()
    ctl.on_rate_limited()
    ctl.on_rate_limited()
    assert ctl.window == 28
    assert ctl.delay == pytest.approx(0.02 * 1.5 * 1.5)
    assert ctl.rate_limited == 2


def test_two_clean_slices_grow_window():
    ctl, _ = _controller(initial_delay=0.5)
    ctl.record_slice(10, 0)
    assert ctl.window == 30
    ctl.record_slice(10, 0)
    assert ctl.window == 32
    assert ctl.delay == pytest.approx(0.45)


def test_streak_resets_after_adjustment():
    ctl, _ = _controller()
    for _ in range(3):
        ctl.record_slice(10, 0)
    assert ctl.window == 32
    ctl.record_slice(10, 0)
    assert ctl.window == 34


def test_two_bad_slices_shrink_window():
    ctl, _ = _controller()
    ctl.record_slice(10, 5)
    ctl.record_slice(10, 5)
    assert ctl.window == 28
    assert ctl.delay == pytest.approx(0.024)


def test_moderate_error_rate_changes_nothing():
    ctl, _ = _controller()
    ctl.record_slice(10, 2)
    ctl.record_slice(10, 3)
    assert ctl.window == 30
    assert ctl.delay == pytest.approx(0.02)


def test_window_and_delay_stay_in_bounds():
    ctl, _ = _controller(initial_window=6, min_window=5, max_delay=0.05)
    for _ in range(10):
        ctl.on_rate_limited()
    assert ctl.window == 5
    assert ctl.delay == pytest.approx(0.05)

    ctl, _ = _controller(initial_window=49, max_window=50)
    for _ in range(6):
        ctl.record_slice(5, 0)
    assert ctl.window == 50
    assert ctl.delay == pytest.approx(0.02)


# ── Retry policy ─────────────────────────────────────────────────────


def test_call_retries_transient_errors():
    ctl, sleeps = _controller(max_retries=3)
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientError("502")
        return "ok"

    assert _run(ctl.call(flaky)) == "ok"
    assert len(attempts) == 3
    assert ctl.retries == 2
    assert sleeps.calls == [pytest.approx(0.02), pytest.approx(0.04)]


def test_call_gives_up_after_max_retries():
    ctl, _ = _controller(max_retries=2)
    attempts = []

    async def down():
        attempts.append(1)
        raise TransientError("timeout")

    with pytest.raises(TransientError):
        _run(ctl.call(down))
    assert len(attempts) == 3


def test_call_does_not_retry_permanent_errors():
    ctl, sleeps = _controller()
    attempts = []

    async def bad_request():
        attempts.append(1)
        raise StorefrontError("400", status_code=400)

    with pytest.raises(StorefrontError):
        _run(ctl.call(bad_request))
    assert len(attempts) == 1
    assert sleeps.calls == []


def test_rate_limit_during_call_adjusts_and_honours_retry_after():
    ctl, sleeps = _controller(max_retries=3)
    attempts = []

    async def limited():
        attempts.append(1)
        if len(attempts) < 3:
            raise RateLimitedError("429", retry_after=2)
        return 42

    assert _run(ctl.call(limited)) == 42
    assert ctl.window == 28
    assert ctl.delay > 0.02
    assert all(s >= 2 for s in sleeps.calls)


# ── Sliced fan-out ───────────────────────────────────────────────────


def test_run_returns_outcome_per_item_in_order():
    ctl, sleeps = _controller(initial_window=2, min_window=1)

    async def double(x):
        if x == 3:
            raise ValueError("three")
        return x * 2

    outcomes = _run(ctl.run([1, 2, 3, 4, 5], double))
    assert [o.item for o in outcomes] == [1, 2, 3, 4, 5]
    assert [o.value for o in outcomes if o.ok] == [2, 4, 8, 10]
    assert isinstance(outcomes[2].error, ValueError)
    # 3 slices -> 2 inter-slice sleeps
    assert len(sleeps.calls) == 2


def test_run_stops_between_slices():
    ctl, _ = _controller(initial_window=2, min_window=1)
    seen = []

    async def work(x):
        seen.append(x)
        return x

    outcomes = _run(ctl.run(range(10), work, should_stop=lambda: len(seen) >= 4))
    assert len(outcomes) == 4
    assert seen == [0, 1, 2, 3]


def test_run_accepts_async_should_stop():
    ctl, _ = _controller(initial_window=5)

    async def stop():
        return True

    async def work(x):
        return x

    assert _run(ctl.run([1, 2, 3], work, should_stop=stop)) == []


def test_run_feeds_failures_into_window_tuning():
    ctl, _ = _controller(initial_window=10, min_window=2)

    async def always_fail(x):
        raise StorefrontError("nope")

    outcomes = _run(ctl.run(range(20), always_fail))
    assert len(outcomes) == 20
    assert not any(o.ok for o in outcomes)
    assert ctl.window == 8
