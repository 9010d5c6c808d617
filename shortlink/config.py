"""Configuration management for the shortlink service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from shortlink.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Override in tests**::
    settings = Settings(SHORT_CODE_LENGTH=2, SHORT_CODE_ALPHABET="ab")

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- Invalid values (e.g. a non-positive code length) raise ValidationError.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shortlink.codegen import DEFAULT_ALPHABET
from shortlink.validation import MAX_SHORT_CODE_LENGTH


class Settings(BaseSettings):
    APP_NAME: str = "shortlink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # SQLite for local development; point at postgresql+asyncpg:// in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./shortlink.db"
    DATABASE_ECHO: bool = False

    # Short code allocation
    SHORT_CODE_LENGTH: int = Field(7, ge=1, le=MAX_SHORT_CODE_LENGTH)
    SHORT_CODE_ALPHABET: str = DEFAULT_ALPHABET
    MAX_CREATE_ATTEMPTS: int = Field(5, ge=1)

    # Upper bound on every repository call
    STORAGE_TIMEOUT_SECONDS: float = Field(5.0, gt=0)

    # Background expiry sweep; 0 disables the task
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = Field(3600, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @field_validator("SHORT_CODE_ALPHABET")
    @classmethod
    def validate_alphabet(cls, v: str) -> str:
        if len(v) < 2:
            raise ValueError("Alphabet must contain at least two characters")
        if len(set(v)) != len(v):
            raise ValueError("Alphabet must not contain duplicate characters")
        return v


@lru_cache()
def get_settings() -> Settings:
    return Settings()
