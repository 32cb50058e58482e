"""
concurrency.py — Adaptive Concurrency Controller

Single gate for outbound ERP/storefront traffic. Work is processed in slices
of `window` items that run concurrently (asyncio.gather); between slices the
controller tunes the window and the inter-slice delay from what it saw.

Business Rules:
- Rate limit (429): window -1, delay x1.5, immediately, per occurrence
- Clean slice (zero failures): success streak; at 2 in a row window +2, delay x0.9
- Bad slice (failures > error-rate threshold): error streak; at 2 in a row
  window -2, delay x1.2
- Streaks reset after each adjustment; a slice with a few failures changes nothing
- Window and delay always stay inside the configured bounds
- Transient errors retry up to max_retries with delay x (attempt + 1);
  permanent errors surface on the first attempt
- should_stop() is polled before every slice; remaining items are dropped

Called by: connectors (call), stock_updater, product_detection, erp warehouse lookups (run)
Depends on: connectors/base.py (error classes), config (limits)
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from ..connectors.base import RateLimitedError, TransientError

log = logging.getLogger("stocksync.concurrency")

_RETRYABLE = (TransientError, httpx.TimeoutException, httpx.TransportError)


@dataclass
class ConcurrencyLimits:
    initial_window: int = 30
    min_window: int = 5
    max_window: int = 50
    initial_delay: float = 0.02
    min_delay: float = 0.02
    max_delay: float = 1.0
    max_retries: int = 3
    error_rate_threshold: float = 0.3
    streak: int = 2

    @classmethod
    def from_settings(cls, s) -> "ConcurrencyLimits":
        return cls(
            initial_window=s.concurrency_initial_window,
            min_window=s.concurrency_min_window,
            max_window=s.concurrency_max_window,
            initial_delay=s.concurrency_initial_delay_ms / 1000,
            min_delay=s.concurrency_min_delay_ms / 1000,
            max_delay=s.concurrency_max_delay_ms / 1000,
            max_retries=s.concurrency_max_retries,
            error_rate_threshold=s.concurrency_error_rate_threshold,
        )


@dataclass
class CallOutcome:
    item: Any
    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AdaptiveConcurrencyController:
    def __init__(self, limits: ConcurrencyLimits | None = None, sleep=asyncio.sleep):
        self.limits = limits or ConcurrencyLimits()
        self.window = self._clamp_window(self.limits.initial_window)
        self.delay = self._clamp_delay(self.limits.initial_delay)
        self._sleep = sleep
        self._success_streak = 0
        self._error_streak = 0
        self.rate_limited = 0
        self.retries = 0

    @classmethod
    def from_settings(cls, s, sleep=asyncio.sleep) -> "AdaptiveConcurrencyController":
        return cls(ConcurrencyLimits.from_settings(s), sleep=sleep)

    def _clamp_window(self, value: int) -> int:
        return max(self.limits.min_window, min(self.limits.max_window, value))

    def _clamp_delay(self, value: float) -> float:
        return max(self.limits.min_delay, min(self.limits.max_delay, value))

    def snapshot(self) -> dict:
        return {
            "window": self.window,
            "delay_ms": round(self.delay * 1000),
            "rate_limited": self.rate_limited,
            "retries": self.retries,
        }

    # ── Single call with retry ───────────────────────────────────────

    def on_rate_limited(self) -> None:
        self.rate_limited += 1
        self.window = self._clamp_window(self.window - 1)
        self.delay = self._clamp_delay(self.delay * 1.5)

    async def call(self, fn: Callable[..., Awaitable], *args, **kwargs):
        """Await fn(*args), retrying transient failures. Re-raises the last error."""
        attempt = 0
        while True:
            try:
                return await fn(*args, **kwargs)
            except RateLimitedError as e:
                self.on_rate_limited()
                error, floor = e, e.retry_after or 0
            except _RETRYABLE as e:
                error, floor = e, 0

            if attempt >= self.limits.max_retries:
                raise error
            wait = max(self.delay * (attempt + 1), floor)
            attempt += 1
            self.retries += 1
            log.warning(f"Transient error, retry {attempt}/{self.limits.max_retries} in {wait:.2f}s: {error}")
            await self._sleep(wait)

    # ── Sliced fan-out ───────────────────────────────────────────────

    async def _guard(self, fn, item) -> CallOutcome:
        try:
            return CallOutcome(item, value=await fn(item))
        except Exception as e:
            return CallOutcome(item, error=e)

    def record_slice(self, size: int, failures: int) -> None:
        if size <= 0:
            return
        if failures == 0:
            self._success_streak += 1
            self._error_streak = 0
            if self._success_streak >= self.limits.streak:
                self.window = self._clamp_window(self.window + 2)
                self.delay = self._clamp_delay(self.delay * 0.9)
                self._success_streak = 0
        elif failures > size * self.limits.error_rate_threshold:
            self._error_streak += 1
            self._success_streak = 0
            if self._error_streak >= self.limits.streak:
                self.window = self._clamp_window(self.window - 2)
                self.delay = self._clamp_delay(self.delay * 1.2)
                self._error_streak = 0

    async def run(self, items, fn: Callable[[Any], Awaitable], should_stop=None) -> list[CallOutcome]:
        """Run fn over items slice by slice. One CallOutcome per processed item, in order."""
        items = list(items)
        outcomes: list[CallOutcome] = []
        i = 0
        while i < len(items):
            if should_stop is not None:
                stop = should_stop()
                if inspect.isawaitable(stop):
                    stop = await stop
                if stop:
                    log.info(f"Stop requested, dropping {len(items) - i} remaining items")
                    break
            batch = items[i:i + self.window]
            i += len(batch)
            results = await asyncio.gather(*(self._guard(fn, item) for item in batch))
            outcomes.extend(results)
            self.record_slice(len(batch), sum(1 for r in results if not r.ok))
            if i < len(items):
                await self._sleep(self.delay)
        return outcomes
