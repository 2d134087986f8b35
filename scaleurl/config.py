"""Configuration management for the scaleurl gateway.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram: get_settings()
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
**Step 1: Import**::
    from scaleurl.config import get_settings

**Step 2: Get settings**::
    settings = get_settings()
    limit = settings.RATE_LIMIT_MAX_REQUESTS

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- ``KV_BACKEND=memory`` runs cache, rate limiter and queue in-process (local/tests).
- ``CACHE_TTL_SECONDS=0`` keeps cache entries without expiry; destinations never change.
- ``APP_ENV=development`` turns on SQL statement echo for the Code Store engine.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from scaleurl.enums import KeyValueBackendKind, QueueBackendKind


class Settings(BaseSettings):
    APP_NAME: str = "scaleurl"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    # PostgreSQL (Code Store)
    DATABASE_URL: str = "postgresql+asyncpg://scaleurl:scaleurl@db:5432/scaleurl"

    # Shared key/value backend (cache, rate windows, visit queue)
    REDIS_URL: str = "redis://redis:6379/0"
    KV_BACKEND: KeyValueBackendKind = KeyValueBackendKind.REDIS

    # Fast-path cache
    CACHE_KEY_PREFIX: str = "url"
    CACHE_TTL_SECONDS: int = 0

    # Fixed-window rate limiter, per short code
    RATE_LIMIT_KEY_PREFIX: str = "rate"
    RATE_LIMIT_MAX_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Visit event queue
    VISIT_QUEUE_BACKEND: QueueBackendKind = QueueBackendKind.REDIS
    VISIT_QUEUE_KEY: str = "visitQueue"
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_VISIT_TOPIC: str = "visit_events"
    KAFKA_CONSUMER_GROUP: str = "visit_accounting"

    # Visit accounting consumer
    CONSUMER_RETRY_DELAY_SECONDS: float = 1.0
    RUN_CONSUMER_IN_APP: bool = True

    # Creation path
    SHORT_CODE_LENGTH: int = 8
    SHORT_CODE_MAX_ATTEMPTS: int = 5

    # Analytics
    TOP_N_DEFAULT: int = 10
    TOP_N_MAX: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
