"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: each bucket is updated under its own lock, so callers for
  different keys never wait on each other.
- Windows reset hard once they have fully elapsed. Up to ``2 * limit``
  requests can get through across a boundary; this is an accepted
  approximation of a sliding window.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from throttle.adapters.rate_limit.base import (
    AbstractBucketStore,
    AbstractRateLimiter,
    Bucket,
    BucketSnapshot,
    Decision,
)
from throttle.adapters.rate_limit.store import InMemoryBucketStore

# Bounds the retries after losing a race with capacity eviction. Two hot keys
# sharing a tiny store can otherwise evict each other's fresh bucket forever.
_MAX_ACQUIRE_ATTEMPTS = 3


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.monotonic() * 1000.0


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    Unlike a limiter bound to a single policy, limit and window are passed on
    every call, so one instance can serve many routes with different budgets.
    Keys should be namespaced by the caller when budgets differ.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        store: AbstractBucketStore | None = None,
        clock: Callable[[], float] = monotonic_ms,
        idle_windows: int = 2,
        sweep_interval_ms: int = 60_000,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            store: Bucket storage; defaults to an unbounded in-memory store.
            clock: Time source returning milliseconds from a monotonic origin.
            idle_windows: Buckets whose window started more than this many
                windows ago are removed by ``sweep``.
            sweep_interval_ms: Minimum clock time between opportunistic sweeps
                run from ``check_and_consume``; 0 disables them.

        Raises:
            ValueError: If idle_windows or sweep_interval_ms are invalid.
        """
        if idle_windows < 1:
            raise ValueError("idle_windows must be >= 1")
        if sweep_interval_ms < 0:
            raise ValueError("sweep_interval_ms must be >= 0")

        self._store = store if store is not None else InMemoryBucketStore()
        self._clock = clock
        self._idle_windows = idle_windows
        self._sweep_interval_ms = sweep_interval_ms
        self._sweep_lock = threading.Lock()
        self._last_sweep_ms: float | None = None

    @property
    def store(self) -> AbstractBucketStore:
        return self._store

    def check_and_consume(self, key: str, limit: int, window_ms: int) -> Decision:
        """Check the current window for ``key`` and consume one unit if allowed.

        Args:
            key: Unique identifier for rate limiting (e.g., "ip:1.2.3.4").
            limit: Maximum admissions per window.
            window_ms: Window duration in milliseconds.

        Returns:
            Decision with the allowance and retry metadata.

        Raises:
            ValueError: If key is empty or limit/window_ms are not positive integers.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if not _is_positive_int(limit):
            raise ValueError("limit must be an integer >= 1")
        if not _is_positive_int(window_ms):
            raise ValueError("window_ms must be an integer >= 1")

        now = self._clock()
        self._maybe_sweep(now)

        for _ in range(_MAX_ACQUIRE_ATTEMPTS - 1):
            bucket = self._store.acquire(key, now_ms=now, window_ms=window_ms)
            with bucket.lock:
                if not bucket.evicted:
                    return self._decide_locked(bucket, now=now, limit=limit, window_ms=window_ms)
            # Lost a race with eviction; the key gets a fresh bucket.

        # Last attempt: even an evicted bucket decides this call, its state is
        # the newest known for the key.
        bucket = self._store.acquire(key, now_ms=now, window_ms=window_ms)
        with bucket.lock:
            return self._decide_locked(bucket, now=now, limit=limit, window_ms=window_ms)

    def peek(self, key: str) -> BucketSnapshot | None:
        bucket = self._store.get(key)
        if bucket is None:
            return None
        with bucket.lock:
            if bucket.evicted:
                return None
            return bucket.snapshot()

    def sweep(self) -> int:
        now = self._clock()
        with self._sweep_lock:
            self._last_sweep_ms = now
        return self._store.sweep(now_ms=now, idle_windows=self._idle_windows)

    def stats(self) -> dict[str, int | None]:
        data = self._store.stats()
        data["idle_windows"] = self._idle_windows
        data["sweep_interval_ms"] = self._sweep_interval_ms
        return data

    def _decide_locked(
        self, bucket: Bucket, *, now: float, limit: int, window_ms: int
    ) -> Decision:
        # Another caller may have started the window after our clock read.
        elapsed = max(0.0, now - bucket.window_start_ms)
        if elapsed > window_ms:
            bucket.count = 0
            bucket.window_start_ms = now
            elapsed = 0.0
        bucket.window_ms = window_ms

        reset_after_ms = max(0, int(math.ceil(window_ms - elapsed)))

        if bucket.count >= limit:
            # At exactly one window elapsed the reset is still pending, so the
            # advisory wait never drops to zero.
            retry_after_ms = min(window_ms, max(1, reset_after_ms))
            return Decision(
                allowed=False,
                retry_after_ms=retry_after_ms,
                limit=limit,
                remaining=0,
                reset_after_ms=reset_after_ms,
            )

        bucket.count += 1
        return Decision(
            allowed=True,
            retry_after_ms=None,
            limit=limit,
            remaining=max(0, limit - bucket.count),
            reset_after_ms=reset_after_ms,
        )

    def _maybe_sweep(self, now: float) -> None:
        if self._sweep_interval_ms == 0:
            return

        with self._sweep_lock:
            if self._last_sweep_ms is None:
                self._last_sweep_ms = now
                return
            if now - self._last_sweep_ms < self._sweep_interval_ms:
                return
            self._last_sweep_ms = now

        self._store.sweep(now_ms=now, idle_windows=self._idle_windows)
