"""Input checks for link creation and edits.

Each ``check_*`` function returns an error message, or ``None`` when the value
is acceptable, so callers can report every bad field at once.
"""

import datetime
import re
from urllib.parse import urlsplit

import validators

__all__ = [
    "MAX_URL_LENGTH",
    "MAX_SHORT_CODE_LENGTH",
    "MIN_CUSTOM_CODE_LENGTH",
    "MAX_CUSTOM_CODE_LENGTH",
    "MAX_TITLE_LENGTH",
    "MAX_EXPIRES_IN_HOURS",
    "check_url",
    "check_custom_code",
    "is_reserved_code",
    "check_title",
    "normalize_title",
    "as_utc",
]

MAX_URL_LENGTH = 2048
# Width of the urls.short_code column; bounds generated and custom codes alike
MAX_SHORT_CODE_LENGTH = 20
MIN_CUSTOM_CODE_LENGTH = 3
MAX_CUSTOM_CODE_LENGTH = MAX_SHORT_CODE_LENGTH
MAX_TITLE_LENGTH = 255
MAX_EXPIRES_IN_HOURS = 24 * 365

CUSTOM_CODE_PATTERN = re.compile(r"[A-Za-z0-9_-]+")
# Paths served by the API itself
RESERVED_CODES = frozenset({"api", "docs", "health", "metrics", "redoc"})
ALLOWED_SCHEMES = ("http", "https")


def check_url(url: str | None) -> str | None:
    if not url:
        return "URL is required"
    if len(url) > MAX_URL_LENGTH:
        return f"URL must be at most {MAX_URL_LENGTH} characters"
    parts = urlsplit(url)
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return "URL scheme must be http or https"
    if not parts.netloc:
        return "URL must be absolute"
    if not validators.url(url):
        return "Invalid URL format"
    return None


def check_custom_code(code: str) -> str | None:
    if not MIN_CUSTOM_CODE_LENGTH <= len(code) <= MAX_CUSTOM_CODE_LENGTH:
        return f"Custom code must be between {MIN_CUSTOM_CODE_LENGTH} and {MAX_CUSTOM_CODE_LENGTH} characters"
    if not CUSTOM_CODE_PATTERN.fullmatch(code):
        return "Custom code may only contain letters, digits, '-' and '_'"
    if is_reserved_code(code):
        return f"Custom code '{code}' is reserved"
    return None


def is_reserved_code(code: str) -> bool:
    return code.lower() in RESERVED_CODES


def normalize_title(title: str | None) -> str | None:
    if title is None:
        return None
    cleaned = " ".join(title.split())
    return cleaned or None


def check_title(title: str | None) -> str | None:
    if title is not None and len(title) > MAX_TITLE_LENGTH:
        return f"Title must be at most {MAX_TITLE_LENGTH} characters"
    return None


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)
