"""Shared enums for the shortlink service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "LookupMiss", "WriteStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Operation outcomes used as metric labels."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    EXHAUSTED = "exhausted"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ERROR = "error"


class LookupMiss(StrEnum):
    """Why a short code did not resolve."""

    MISSING = "missing"
    EXPIRED = "expired"


class WriteStatus(StrEnum):
    """Result of a best-effort write such as a click event insert."""

    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
