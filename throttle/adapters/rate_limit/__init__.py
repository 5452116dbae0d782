"""Rate limiting adapters.

This package holds the framework-free limiter core: the decision types, the
bucket store abstraction and the in-memory fixed-window limiter. The HTTP layer
depends on the abstractions here and never on a concrete store.
"""

from throttle.adapters.rate_limit.base import (
    AbstractBucketStore,
    AbstractRateLimiter,
    BucketSnapshot,
    Decision,
)
from throttle.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from throttle.adapters.rate_limit.store import InMemoryBucketStore

__all__ = [
    "AbstractBucketStore",
    "AbstractRateLimiter",
    "BucketSnapshot",
    "Decision",
    "InMemoryBucketStore",
    "InMemoryFixedWindowRateLimiter",
]
