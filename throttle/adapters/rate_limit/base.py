"""Rate limiter interfaces.

The HTTP layer should depend on these abstractions (not the concrete
implementations) so the bucket storage can be swapped or bounded differently
without touching callers.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Decision:
    """Result of a check-and-consume operation.

    Attributes:
        allowed: Whether the request may proceed.
        retry_after_ms: Advisory wait in milliseconds; only set when denied.
            Treat it as a lower bound since windows reset on a hard boundary.
        limit: Max admissions per window that was applied.
        remaining: Admissions left in the current window (0 when denied).
        reset_after_ms: Milliseconds until the current window ends.
    """

    allowed: bool
    retry_after_ms: int | None = None
    limit: int = 0
    remaining: int = 0
    reset_after_ms: int = 0


@dataclass(frozen=True)
class BucketSnapshot:
    """Immutable view of a bucket, safe to hand out of the store."""

    key: str
    count: int
    window_start_ms: float
    window_ms: int


@dataclass
class Bucket:
    """Per-key counter and window start.

    Mutated only while ``lock`` is held. ``evicted`` is flipped by the store
    when the bucket leaves the map; a caller holding a stale reference must
    look the key up again.
    """

    key: str
    count: int
    window_start_ms: float
    window_ms: int
    evicted: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def snapshot(self) -> BucketSnapshot:
        return BucketSnapshot(
            key=self.key,
            count=self.count,
            window_start_ms=self.window_start_ms,
            window_ms=self.window_ms,
        )


class AbstractBucketStore(ABC):
    """Owner of the key to bucket mapping."""

    @abstractmethod
    def acquire(self, key: str, *, now_ms: float, window_ms: int) -> Bucket:
        """Return the bucket for ``key``, creating it when absent.

        Args:
            key: Limiter key.
            now_ms: Current clock reading, used as the window start of a new bucket.
            window_ms: Window duration to record on a new bucket.

        Returns:
            The live bucket. The caller must take ``bucket.lock`` before reading
            or mutating it and re-check ``bucket.evicted`` once locked.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, key: str) -> Bucket | None:
        """Return the bucket for ``key`` without inserting one."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, *, now_ms: float, idle_windows: int) -> int:
        """Remove buckets idle for more than ``idle_windows`` windows.

        Returns:
            Number of buckets removed.
        """
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, int | None]:
        """Return lightweight store metrics without exposing keys."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check_and_consume(self, key: str, limit: int, window_ms: int) -> Decision:
        """Decide whether a request for ``key`` may proceed and consume budget.

        Args:
            key: Non-empty identifier (e.g., client IP, user id, route name).
            limit: Maximum admissions per window, must be >= 1.
            window_ms: Window duration in milliseconds, must be >= 1.

        Returns:
            Decision describing whether it was allowed.

        Raises:
            ValueError: If key, limit or window_ms are invalid.
        """
        raise NotImplementedError

    @abstractmethod
    def peek(self, key: str) -> BucketSnapshot | None:
        """Return the current state for ``key`` without consuming budget."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self) -> int:
        """Evict idle buckets and return how many were removed."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, int | None]:
        """Return limiter/store metrics."""
        raise NotImplementedError
