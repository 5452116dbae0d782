from fastapi import APIRouter, Depends

from throttle.adapters.rate_limit.base import AbstractRateLimiter
from throttle.core.errors import NotFoundAppError, ValidationAppError
from throttle.core.logging import hash_key
from throttle.core.rate_limit import DECISION_API_NAMESPACE, enforce_rate_limit, get_rate_limiter
from throttle.schemas.limits import (
    BucketSnapshotResponse,
    CheckRequest,
    DecisionResponse,
    StoreStatsResponse,
    SweepResponse,
)

router = APIRouter(
    prefix="/limits",
    tags=["Limits"],
    dependencies=[Depends(enforce_rate_limit)],
)


def _namespaced(key: str) -> str:
    return f"{DECISION_API_NAMESPACE}:{key}"


@router.post("/check", response_model=DecisionResponse)
def check_limit(
    body: CheckRequest,
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> DecisionResponse:
    """Check and consume one unit of budget for an arbitrary key.

    Lets other services share this process' limiter. Keys are confined to
    their own namespace, so they never collide with guarded-route budgets.
    A denied decision is still a 200 response; translating it into a 429 is
    the caller's job.

    Raises:
        ValidationAppError: 400 if the limiter rejects the arguments.
    """
    try:
        decision = limiter.check_and_consume(_namespaced(body.key), body.limit, body.window_ms)
    except ValueError as exc:
        raise ValidationAppError(code="invalid_limit_request", message=str(exc))

    return DecisionResponse(
        allowed=decision.allowed,
        retry_after_ms=decision.retry_after_ms,
        limit=decision.limit,
        remaining=decision.remaining,
        reset_after_ms=decision.reset_after_ms,
    )


@router.get("/buckets/{key:path}", response_model=BucketSnapshotResponse)
def get_bucket(
    key: str,
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> BucketSnapshotResponse:
    """Return the current state of a decision-API bucket without consuming budget.

    Raises:
        NotFoundAppError: 404 if the key has never been seen or was evicted.
    """
    snapshot = limiter.peek(_namespaced(key))
    if snapshot is None:
        raise NotFoundAppError(
            code="bucket_not_found",
            message="No rate limit state for this key",
            details={"key_hash": hash_key(key)},
        )

    return BucketSnapshotResponse(
        key=key,
        count=snapshot.count,
        window_start_ms=snapshot.window_start_ms,
        window_ms=snapshot.window_ms,
    )


@router.get("/stats", response_model=StoreStatsResponse)
def get_stats(
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> StoreStatsResponse:
    return StoreStatsResponse(**limiter.stats())


@router.post("/sweep", response_model=SweepResponse)
def sweep_buckets(
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> SweepResponse:
    """Evict idle buckets now instead of waiting for the next opportunistic sweep."""
    return SweepResponse(evicted=limiter.sweep())
