"""Rate limiting dependency for FastAPI routes.

This module wires the limiter adapter into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Injected state: the limiter lives on ``app.state`` (built by the app
  factory), not in a module global.
- Per-route budgets: ``rate_limit(policy)`` builds a dependency for a named
  policy; ``enforce_rate_limit`` applies the default policy from settings.

Key derivation:
- If an upstream authentication layer stored a caller identity on
  ``request.state.client_identity``, the key is ``<policy>:client:<id>``.
- Otherwise fall back to the client address: ``<policy>:ip:<host>``.
- Request headers are never trusted as identity; a client could mint a fresh
  bucket per request.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass

from fastapi import Request, Response

from throttle.adapters.rate_limit.base import AbstractRateLimiter, Decision
from throttle.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from throttle.adapters.rate_limit.store import InMemoryBucketStore
from throttle.core.config import AppSettings, settings
from throttle.core.errors import RateLimitExceededAppError
from throttle.core.logging import hash_key

logger = logging.getLogger(__name__)

_lazy_limiter_lock = threading.Lock()

# Keys consumed through the decision API live under this prefix so API callers
# can never touch the budgets of guarded routes.
DECISION_API_NAMESPACE = "api"


@dataclass(frozen=True)
class RateLimitPolicy:
    """A named budget: ``limit`` requests per ``window_ms`` per client."""

    name: str
    limit: int
    window_ms: int

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("policy name must be a non-empty string")
        if self.name == DECISION_API_NAMESPACE:
            raise ValueError(f"policy name '{DECISION_API_NAMESPACE}' is reserved")
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1:
            raise ValueError("limit must be an integer >= 1")
        if isinstance(self.window_ms, bool) or not isinstance(self.window_ms, int) or self.window_ms < 1:
            raise ValueError("window_ms must be an integer >= 1")


def default_policy(app_settings: AppSettings | None = None) -> RateLimitPolicy:
    """Build the default policy from settings."""

    cfg = app_settings or settings.app
    return RateLimitPolicy(
        name="default",
        limit=cfg.rate_limit_requests,
        window_ms=cfg.rate_limit_window_ms,
    )


def build_rate_limiter(app_settings: AppSettings | None = None) -> AbstractRateLimiter:
    """Construct the limiter and its bucket store from settings.

    Args:
        app_settings: Optional app settings; defaults to global settings.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    cfg = app_settings or settings.app
    store = InMemoryBucketStore(max_entries=cfg.rate_limit_max_buckets)
    return InMemoryFixedWindowRateLimiter(
        store=store,
        idle_windows=cfg.rate_limit_idle_windows,
        sweep_interval_ms=cfg.rate_limit_sweep_interval_ms,
    )


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the limiter attached to the running app.

    Apps not built by ``create_app`` get one lazily on first use.
    """

    state = request.app.state
    limiter = getattr(state, "rate_limiter", None)
    if limiter is not None:
        return limiter

    with _lazy_limiter_lock:
        limiter = getattr(state, "rate_limiter", None)
        if limiter is None:
            limiter = build_rate_limiter()
            state.rate_limiter = limiter
    return limiter


def build_rate_limit_key(request: Request, policy: RateLimitPolicy) -> str:
    """Build the namespaced limiter key for the current request.

    Args:
        request: FastAPI request.
        policy: Policy the key is scoped to.

    Returns:
        str: Limiter key.
    """

    client_identity = getattr(request.state, "client_identity", None)
    if client_identity:
        return f"{policy.name}:client:{client_identity}"

    client_host = request.client.host if request.client else "unknown"
    return f"{policy.name}:ip:{client_host}"


def retry_after_seconds(retry_after_ms: int | None) -> int:
    """Convert an advisory wait to whole seconds for the Retry-After header.

    Rounded up so clients never retry before the window ends.
    """

    if not retry_after_ms:
        return 0
    return max(1, math.ceil(retry_after_ms / 1000))


def rate_limit_headers(decision: Decision) -> dict[str, str]:
    """X-RateLimit-* headers describing the current window."""

    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(math.ceil(decision.reset_after_ms / 1000)),
    }


def rate_limit(policy: RateLimitPolicy | None = None):
    """Create a FastAPI dependency enforcing ``policy``.

    Args:
        policy: Budget to enforce; the settings-driven default when omitted.

    Returns:
        An async dependency that consumes one unit per request and raises
        RateLimitExceededAppError (HTTP 429) once the budget is exhausted.

    Usage:
        otp_policy = RateLimitPolicy(name="otp", limit=3, window_ms=60_000)

        @router.post("/otp/send", dependencies=[Depends(rate_limit(otp_policy))])
        async def send_otp(): ...
    """

    async def dependency(request: Request, response: Response) -> None:
        if not settings.app.rate_limit_enabled:
            return

        active = policy or default_policy()
        limiter = get_rate_limiter(request)
        key = build_rate_limit_key(request, active)
        key_type = "client" if ":client:" in key else "ip"

        decision = limiter.check_and_consume(key, active.limit, active.window_ms)
        include_headers = settings.app.rate_limit_include_headers

        if decision.allowed:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "policy": active.name,
                    "key_type": key_type,
                    "key_hash": hash_key(key),
                    "limit": decision.limit,
                    "remaining": decision.remaining,
                    "window_ms": active.window_ms,
                },
            )
            if include_headers:
                response.headers.update(rate_limit_headers(decision))
            return

        retry_after_ms = decision.retry_after_ms or 0
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "policy": active.name,
                "key_type": key_type,
                "key_hash": hash_key(key),
                "limit": decision.limit,
                "window_ms": active.window_ms,
                "retry_after_ms": retry_after_ms,
            },
        )

        headers = {"Retry-After": str(retry_after_seconds(retry_after_ms))}
        if include_headers:
            headers.update(rate_limit_headers(decision))

        raise RateLimitExceededAppError(
            code="rate_limit_exceeded",
            message="Rate limit exceeded. Try again later.",
            details={
                "policy": active.name,
                "limit": decision.limit,
                "retry_after_ms": retry_after_ms,
            },
            headers=headers,
        )

    return dependency


enforce_rate_limit = rate_limit()
