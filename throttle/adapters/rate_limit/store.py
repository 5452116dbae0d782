"""In-memory bucket store with LRU capacity bound and idle sweep.

Two levels of locking:
- ``_lock`` guards the key to bucket map and is held only for lookup,
  insertion and eviction.
- each ``Bucket.lock`` guards that bucket's counter; it is owned by the limiter.

Eviction only removes buckets whose lock can be taken without blocking, so a
bucket in the middle of a check-and-consume is never pulled out from under its
caller.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict

from throttle.adapters.rate_limit.base import AbstractBucketStore, Bucket

logger = logging.getLogger(__name__)


class InMemoryBucketStore(AbstractBucketStore):
    """Thread-safe, in-memory bucket map.

    Attributes:
        max_entries: Maximum number of buckets kept (None for unlimited). When
            exceeded, the least recently used idle bucket is dropped and its
            budget state is forgotten.
    """

    def __init__(self, max_entries: int | None = None) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1 or None")

        self._max_entries = max_entries
        self._buckets: OrderedDict[str, Bucket] = OrderedDict()
        self._lock = threading.Lock()
        self._created = 0
        self._evictions = 0
        self._sweeps = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryBucketStore(max_entries={self._max_entries}, "
            f"size={len(self._buckets)}, evictions={self._evictions})"
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def acquire(self, key: str, *, now_ms: float, window_ms: int) -> Bucket:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is not None:
                self._buckets.move_to_end(key)  # mark as recently used
                return bucket

            bucket = Bucket(key=key, count=0, window_start_ms=now_ms, window_ms=window_ms)
            self._buckets[key] = bucket
            self._created += 1
            self._evict_if_over_capacity_locked(keep=key)
            return bucket

    def get(self, key: str) -> Bucket | None:
        with self._lock:
            return self._buckets.get(key)

    def sweep(self, *, now_ms: float, idle_windows: int) -> int:
        if idle_windows < 1:
            raise ValueError("idle_windows must be >= 1")

        with self._lock:
            self._sweeps += 1
            stale = [
                bucket
                for bucket in self._buckets.values()
                if self._is_idle(bucket, now_ms=now_ms, idle_windows=idle_windows)
            ]
            removed = 0
            for bucket in stale:
                if not bucket.lock.acquire(blocking=False):
                    continue
                try:
                    # Re-check now that the counter cannot move.
                    if self._is_idle(bucket, now_ms=now_ms, idle_windows=idle_windows):
                        self._evict_locked(bucket)
                        removed += 1
                finally:
                    bucket.lock.release()

            remaining = len(self._buckets)

        if removed:
            logger.debug(
                "bucket_store.swept",
                extra={
                    "evicted": removed,
                    "size": remaining,
                    "idle_windows": idle_windows,
                },
            )
        return removed

    def stats(self) -> dict[str, int | None]:
        with self._lock:
            return {
                "max_entries": self._max_entries,
                "entries": len(self._buckets),
                "created": self._created,
                "evictions": self._evictions,
                "sweeps": self._sweeps,
            }

    def clear(self) -> None:
        """Drop every bucket and reset counters."""

        with self._lock:
            for bucket in self._buckets.values():
                bucket.evicted = True
            self._buckets.clear()
            self._created = 0
            self._evictions = 0
            self._sweeps = 0

    @staticmethod
    def _is_idle(bucket: Bucket, *, now_ms: float, idle_windows: int) -> bool:
        return now_ms - bucket.window_start_ms > idle_windows * bucket.window_ms

    def _evict_locked(self, bucket: Bucket) -> None:
        bucket.evicted = True
        self._buckets.pop(bucket.key, None)
        self._evictions += 1

    def _evict_if_over_capacity_locked(self, *, keep: str) -> None:
        if self._max_entries is None:
            return

        overflow = len(self._buckets) - self._max_entries
        if overflow <= 0:
            return

        # Oldest first; buckets busy in another thread are skipped, so the map
        # may briefly sit above capacity until the next insertion.
        for key in list(self._buckets.keys()):
            if overflow <= 0:
                break
            if key == keep:
                continue
            bucket = self._buckets[key]
            if not bucket.lock.acquire(blocking=False):
                continue
            try:
                self._evict_locked(bucket)
                overflow -= 1
            finally:
                bucket.lock.release()

            logger.debug(
                "bucket_store.evicted",
                extra={
                    "reason": "capacity",
                    "size": len(self._buckets),
                    "max_entries": self._max_entries,
                },
            )
