"""
Sync pipeline configuration.

All values come from environment variables with production defaults, so the
same code runs under the API process, the scheduled job and the CLI script.

Usage:
    from shopsync.config.sync_settings import get_sync_settings

    settings = get_sync_settings()
    settings.page_size  # 250
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Shopify API version - use stable version
DEFAULT_API_VERSION = "2024-01"
DEFAULT_PAGE_SIZE = 250  # Shopify maximum for both REST and GraphQL
DEFAULT_UPSERT_BATCH_SIZE = 100
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_AFTER_SECONDS = 2.0
DEFAULT_RETRY_BUFFER_SECONDS = 0.5
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_TENANT_STAGGER_SECONDS = 2.0

_TRUTHY = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "Invalid integer in environment, using default",
            extra={"variable": name, "default": default},
        )
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(
            "Invalid number in environment, using default",
            extra={"variable": name, "default": default},
        )
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class SyncSettings:
    """
    Sync pipeline settings.

    Attributes:
        api_version: Shopify Admin API version used in request paths
        page_size: Records requested per page
        upsert_batch_size: Records written per storage batch
        max_retries: Retries per page request on throttling/transient errors
        default_retry_after_seconds: Wait when a 429 carries no Retry-After
        retry_buffer_seconds: Added to every throttling wait
        http_timeout_seconds: Total request timeout
        connect_timeout_seconds: Connection timeout
        rest_customer_details: REST fallback fetches each customer's detail record
        tenant_stagger_seconds: Delay between tenant starts in the scheduled job
    """
    api_version: str = DEFAULT_API_VERSION
    page_size: int = DEFAULT_PAGE_SIZE
    upsert_batch_size: int = DEFAULT_UPSERT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    default_retry_after_seconds: float = DEFAULT_RETRY_AFTER_SECONDS
    retry_buffer_seconds: float = DEFAULT_RETRY_BUFFER_SECONDS
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS
    rest_customer_details: bool = True
    tenant_stagger_seconds: float = DEFAULT_TENANT_STAGGER_SECONDS

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Build settings from environment variables."""
        return cls(
            api_version=os.getenv("SHOPIFY_API_VERSION") or DEFAULT_API_VERSION,
            page_size=_env_int("SHOPIFY_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            upsert_batch_size=_env_int("SYNC_UPSERT_BATCH_SIZE", DEFAULT_UPSERT_BATCH_SIZE),
            max_retries=_env_int("SHOPIFY_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            default_retry_after_seconds=_env_float(
                "SHOPIFY_DEFAULT_RETRY_AFTER_SECONDS", DEFAULT_RETRY_AFTER_SECONDS
            ),
            retry_buffer_seconds=_env_float(
                "SHOPIFY_RETRY_BUFFER_SECONDS", DEFAULT_RETRY_BUFFER_SECONDS
            ),
            http_timeout_seconds=_env_float(
                "SHOPIFY_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS
            ),
            connect_timeout_seconds=_env_float(
                "SHOPIFY_CONNECT_TIMEOUT_SECONDS", DEFAULT_CONNECT_TIMEOUT_SECONDS
            ),
            rest_customer_details=_env_bool("SHOPIFY_REST_CUSTOMER_DETAILS", True),
            tenant_stagger_seconds=_env_float(
                "SYNC_TENANT_STAGGER_SECONDS", DEFAULT_TENANT_STAGGER_SECONDS
            ),
        )


_settings: Optional[SyncSettings] = None


def get_sync_settings() -> SyncSettings:
    """Get the process-wide settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = SyncSettings.from_env()
    return _settings


def reset_sync_settings() -> None:
    """Forget cached settings (tests change the environment between cases)."""
    global _settings
    _settings = None
