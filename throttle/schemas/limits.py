"""Pydantic schemas for the limiter decision API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CheckRequest(BaseModel):
    """Input for a single check-and-consume call."""

    key: str = Field(
        ...,
        min_length=1,
        description="Opaque limiter key, namespaced by the caller (e.g. 'otp:phone:+9199...').",
    )
    limit: int = Field(
        ..., gt=0, description="Maximum admissions per window."
    )
    window_ms: int = Field(
        ..., gt=0, description="Window duration in milliseconds."
    )


class DecisionResponse(BaseModel):
    """Outcome of a check-and-consume call."""

    allowed: bool = Field(..., description="Whether the request may proceed.")
    retry_after_ms: int | None = Field(
        default=None,
        description=(
            "Advisory wait before retrying, only present when denied. "
            "A lower bound: windows reset on a hard boundary."
        ),
    )
    limit: int = Field(..., description="Limit applied to this call.")
    remaining: int = Field(..., description="Admissions left in the current window.")
    reset_after_ms: int = Field(..., description="Milliseconds until the current window ends.")


class BucketSnapshotResponse(BaseModel):
    """Current state of one bucket, read without consuming budget."""

    key: str
    count: int = Field(..., description="Admissions counted in the current window.")
    window_start_ms: float = Field(
        ..., description="Window start on the limiter's monotonic clock (ms)."
    )
    window_ms: int = Field(..., description="Window duration last used with this key.")


class StoreStatsResponse(BaseModel):
    """Bucket store metrics. Never includes keys."""

    entries: int
    max_entries: int | None = None
    created: int = 0
    evictions: int = 0
    sweeps: int = 0
    idle_windows: int | None = None
    sweep_interval_ms: int | None = None


class SweepResponse(BaseModel):
    evicted: int = Field(..., description="Number of idle buckets removed.")
