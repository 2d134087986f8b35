"""Shared enums for the scaleurl gateway.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = [
    "HealthStatus",
    "CacheStatus",
    "RateLimitDecision",
    "RedirectOutcome",
    "VisitOutcome",
    "TimeRange",
    "KeyValueBackendKind",
    "QueueBackendKind",
]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class CacheStatus(StrEnum):
    """Outcome of a fast-path cache operation."""

    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"


class RateLimitDecision(StrEnum):
    """Rate limiter verdict; UNAVAILABLE means the backend could not be asked."""

    ALLOWED = "allowed"
    REJECTED = "rejected"
    UNAVAILABLE = "unavailable"


class RedirectOutcome(StrEnum):
    """Redirect result labels for metrics and logging."""

    HIT = "hit"
    MISS = "miss"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"


class VisitOutcome(StrEnum):
    """What the accounting consumer did with one dequeued event."""

    APPLIED = "applied"
    STALE = "stale"
    INVALID = "invalid"
    FAILED = "failed"


class TimeRange(StrEnum):
    """Creation-time windows accepted by the top-N ranking."""

    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


class KeyValueBackendKind(StrEnum):
    REDIS = "redis"
    MEMORY = "memory"


class QueueBackendKind(StrEnum):
    REDIS = "redis"
    KAFKA = "kafka"
