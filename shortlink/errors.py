"""Error kinds raised by the link service and its repositories.

Error Taxonomy
==============
::
    LinkServiceError
    ├─ ValidationError        malformed input, never retried
    ├─ ConflictError          custom short code already taken
    ├─ ExhaustedError         no free generated code within the attempt bound
    ├─ NotFoundError          absent, expired or already deleted
    ├─ PermissionDeniedError  acting identity does not own the link
    └─ StorageError           infrastructure failure
       └─ StorageTimeoutError repository call exceeded its timeout (retryable)

    UniqueConstraintViolation  repository-level signal, consumed by the service

Key Behaviours
===============
- Expired and missing links raise the same NotFoundError message; ``reason``
  tells them apart for logs and metrics only.
- The HTTP layer maps each kind to a status code in ``shortlink.main``.
"""

from shortlink.enums import LookupMiss

__all__ = [
    "LinkServiceError",
    "ValidationError",
    "ConflictError",
    "ExhaustedError",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
    "StorageTimeoutError",
    "UniqueConstraintViolation",
]


class LinkServiceError(Exception):
    """Base class for every error the link service surfaces."""

    retryable: bool = False


class ValidationError(LinkServiceError):
    def __init__(self, fields: dict[str, str]) -> None:
        assert fields, "ValidationError requires at least one field"
        self.fields = dict(fields)
        summary = "; ".join(f"{name}: {message}" for name, message in self.fields.items())
        super().__init__(f"Invalid input ({summary})")


class ConflictError(LinkServiceError):
    def __init__(self, short_code: str) -> None:
        self.short_code = short_code
        super().__init__(f"Short code '{short_code}' already exists")


class ExhaustedError(LinkServiceError):
    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Failed to generate a unique short code after {attempts} attempts")


class NotFoundError(LinkServiceError):
    def __init__(self, short_code: str, reason: LookupMiss = LookupMiss.MISSING) -> None:
        self.short_code = short_code
        self.reason = reason
        super().__init__(f"URL '{short_code}' not found")


class PermissionDeniedError(LinkServiceError):
    def __init__(self, short_code: str) -> None:
        self.short_code = short_code
        super().__init__(f"You don't have permission to modify '{short_code}'")


class StorageError(LinkServiceError):
    """Generic persistence failure; propagated without retry."""


class StorageTimeoutError(StorageError):
    retryable = True


class UniqueConstraintViolation(Exception):
    """Raised by a repository when an insert hits the short_code unique index."""

    def __init__(self, short_code: str) -> None:
        self.short_code = short_code
        super().__init__(f"short_code '{short_code}' violates unique constraint")
