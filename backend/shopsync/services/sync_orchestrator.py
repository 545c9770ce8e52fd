"""
Tenant sync orchestration.

One invocation syncs one tenant:

    FETCHING -> UPSERTING_CUSTOMERS -> UPSERTING_PRODUCTS -> UPSERTING_ORDERS -> COMPLETE

with FAILED reachable from every step. Customers, products and orders are
fetched concurrently; each entity type is fetched with the primary data
source and, on any failure, fetched again once with the fallback. Customers
are written before orders so orders can link to them.

Batches committed before a failure are not rolled back.

SECURITY: The tenant's access token is decrypted only to build the data
sources and is never logged.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import httpx
from sqlalchemy.orm import Session

from shopsync.config.sync_settings import SyncSettings, get_sync_settings
from shopsync.ingestion.records import CustomerRecord, OrderRecord, ProductRecord
from shopsync.ingestion.upsert import UpsertEngine, UpsertError
from shopsync.integrations.shopify.graphql_client import ShopifyGraphQLClient
from shopsync.integrations.shopify.rest_client import ShopifyRestClient
from shopsync.integrations.shopify.retry import Sleep
from shopsync.models.tenant import Tenant
from shopsync.platform.secrets import EncryptionError, decrypt_secret
from shopsync.services.sync_errors import (
    FetchFailedError,
    TenantNotFoundError,
    TenantSyncFailedError,
)
from shopsync.services.tenant_lock import tenant_sync_guard

logger = logging.getLogger(__name__)

RESOURCES = ("customers", "products", "orders")


class SyncState(str, Enum):
    """Sync invocation state."""
    PENDING = "pending"
    FETCHING = "fetching"
    UPSERTING_CUSTOMERS = "upserting_customers"
    UPSERTING_PRODUCTS = "upserting_products"
    UPSERTING_ORDERS = "upserting_orders"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class SyncSummary:
    """Result of a completed tenant sync."""
    tenant_id: str
    customers_upserted: int = 0
    products_upserted: int = 0
    orders_upserted: int = 0
    protocols: Dict[str, str] = field(default_factory=dict)
    duration_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "customers_upserted": self.customers_upserted,
            "products_upserted": self.products_upserted,
            "orders_upserted": self.orders_upserted,
            "protocols": dict(self.protocols),
            "duration_seconds": self.duration_seconds,
        }


class StoreDataSource(Protocol):
    """Anything that can fetch a store's customers, orders and products."""

    protocol: str

    async def fetch_customers(self) -> List[CustomerRecord]:
        ...

    async def fetch_orders(self) -> List[OrderRecord]:
        ...

    async def fetch_products(self) -> List[ProductRecord]:
        ...


@dataclass
class DataSources:
    """Primary data source plus an optional fallback."""
    primary: StoreDataSource
    fallback: Optional[StoreDataSource] = None

    async def close(self) -> None:
        for source in (self.primary, self.fallback):
            close = getattr(source, "close", None)
            if close is not None:
                await close()


SourceFactory = Callable[[str, str], DataSources]


def build_data_sources(
    shop_domain: str,
    access_token: str,
    settings: Optional[SyncSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Sleep = asyncio.sleep,
) -> DataSources:
    """
    Select the data sources for a store: GraphQL first, REST as fallback.

    Args:
        shop_domain: Store domain
        access_token: Decrypted access token
        settings: Sync settings (defaults to environment settings)
        transport: Optional httpx transport shared by both clients
        sleep: Sleep function used by retries and REST detail batching
    """
    settings = settings or get_sync_settings()
    return DataSources(
        primary=ShopifyGraphQLClient(
            shop_domain, access_token, settings=settings, transport=transport, sleep=sleep
        ),
        fallback=ShopifyRestClient(
            shop_domain, access_token, settings=settings, transport=transport, sleep=sleep
        ),
    )


async def _fetch_from(source: StoreDataSource, resource: str) -> List[Any]:
    return await getattr(source, f"fetch_{resource}")()


class SyncOrchestrator:
    """
    Runs one tenant sync.

    Usage:
        orchestrator = SyncOrchestrator(db_session, tenant_id)
        summary = await orchestrator.sync_tenant()
    """

    def __init__(
        self,
        db_session: Session,
        tenant_id: str,
        source_factory: Optional[SourceFactory] = None,
        settings: Optional[SyncSettings] = None,
    ):
        """
        Args:
            db_session: Database session
            tenant_id: Tenant to sync
            source_factory: Builds DataSources from (shop_domain, access_token);
                defaults to build_data_sources
            settings: Sync settings (defaults to environment settings)

        Raises:
            ValueError: If tenant_id is empty or None
        """
        if not tenant_id:
            raise ValueError("tenant_id is required")

        self.db = db_session
        self.tenant_id = tenant_id
        self.settings = settings or get_sync_settings()
        self._source_factory = source_factory or partial(
            build_data_sources, settings=self.settings
        )
        self.state = SyncState.PENDING
        self.failed_state: Optional[SyncState] = None

    def _transition(self, state: SyncState) -> None:
        logger.debug(
            "Sync state transition",
            extra={"tenant_id": self.tenant_id, "from": self.state.value, "to": state.value},
        )
        self.state = state

    def _mark_failed(self, error: BaseException) -> None:
        self.failed_state = self.state
        self.state = SyncState.FAILED
        logger.error(
            "Tenant sync failed",
            extra={
                "tenant_id": self.tenant_id,
                "failed_state": self.failed_state.value,
                "error_type": type(error).__name__,
                "error": str(error)[:500],
            },
        )

    def _load_tenant(self) -> Tenant:
        tenant = self.db.get(Tenant, self.tenant_id)
        if tenant is None:
            raise TenantNotFoundError("Tenant not found", tenant_id=self.tenant_id)
        if not tenant.is_active:
            raise TenantNotFoundError(
                f"Tenant is not active (status: {tenant.status.value})",
                tenant_id=self.tenant_id,
            )
        if not tenant.has_credentials:
            raise TenantNotFoundError(
                "Tenant has no stored access token", tenant_id=self.tenant_id
            )
        return tenant

    async def sync_tenant(self) -> SyncSummary:
        """
        Fetch and store all customers, products and orders for the tenant.

        Raises:
            TenantNotFoundError: Tenant missing, inactive or without credentials
            SyncAlreadyRunningError: The tenant is already syncing
            FetchFailedError: Both protocols failed for an entity type
            TenantSyncFailedError: Any other step failed
        """
        tenant = self._load_tenant()

        async with tenant_sync_guard(self.db, self.tenant_id):
            started = time.monotonic()
            self._transition(SyncState.FETCHING)
            logger.info(
                "Tenant sync started",
                extra={"tenant_id": self.tenant_id, "shop_domain": tenant.shop_domain},
            )

            try:
                access_token = decrypt_secret(tenant.access_token_encrypted)
            except EncryptionError as e:
                self._mark_failed(e)
                raise TenantSyncFailedError(
                    "Could not decrypt tenant access token",
                    tenant_id=self.tenant_id,
                    state=self.failed_state.value,
                    cause=e,
                ) from e

            sources = self._source_factory(tenant.shop_domain, access_token)
            try:
                summary = await self._run(sources)
            finally:
                await sources.close()

            summary.duration_seconds = round(time.monotonic() - started, 3)
            logger.info("Tenant sync complete", extra=summary.to_dict())
            return summary

    async def _run(self, sources: DataSources) -> SyncSummary:
        summary = SyncSummary(tenant_id=self.tenant_id)

        fetched = await asyncio.gather(
            *(self._fetch(sources, resource) for resource in RESOURCES),
            return_exceptions=True,
        )
        records: Dict[str, List[Any]] = {}
        for resource, result in zip(RESOURCES, fetched):
            if isinstance(result, BaseException):
                self._mark_failed(result)
                raise result
            records[resource], summary.protocols[resource] = result

        engine = UpsertEngine(
            self.db, self.tenant_id, batch_size=self.settings.upsert_batch_size
        )
        steps = (
            (SyncState.UPSERTING_CUSTOMERS, "customers", engine.upsert_customers),
            (SyncState.UPSERTING_PRODUCTS, "products", engine.upsert_products),
            (SyncState.UPSERTING_ORDERS, "orders", engine.upsert_orders),
        )
        for state, resource, upsert in steps:
            self._transition(state)
            try:
                count = upsert(records[resource])
            except (UpsertError, ValueError) as e:
                self._mark_failed(e)
                raise TenantSyncFailedError(
                    f"Failed to store {resource}: {e}",
                    tenant_id=self.tenant_id,
                    state=self.failed_state.value,
                    cause=e,
                ) from e
            setattr(summary, f"{resource}_upserted", count)

        self._transition(SyncState.COMPLETE)
        return summary

    async def _fetch(self, sources: DataSources, resource: str) -> Tuple[List[Any], str]:
        """
        Fetch one entity type, falling back once if the primary source fails.

        Returns:
            (records, protocol used)

        Raises:
            FetchFailedError: Naming every protocol tried and its error
        """
        primary = sources.primary
        try:
            return await _fetch_from(primary, resource), primary.protocol
        except Exception as primary_error:
            attempts = [(primary.protocol, primary_error)]
            fallback = sources.fallback
            if fallback is None:
                raise FetchFailedError(resource, attempts, tenant_id=self.tenant_id) from primary_error

            logger.warning(
                "Primary fetch failed, using fallback",
                extra={
                    "tenant_id": self.tenant_id,
                    "resource": resource,
                    "primary": primary.protocol,
                    "fallback": fallback.protocol,
                    "error_type": type(primary_error).__name__,
                },
            )

        try:
            return await _fetch_from(fallback, resource), fallback.protocol
        except Exception as fallback_error:
            attempts.append((fallback.protocol, fallback_error))
            raise FetchFailedError(resource, attempts, tenant_id=self.tenant_id) from fallback_error


async def sync_tenant(
    db_session: Session,
    tenant_id: str,
    source_factory: Optional[SourceFactory] = None,
    settings: Optional[SyncSettings] = None,
) -> SyncSummary:
    """
    Sync one tenant. Entry point for the API route, the scheduled job and
    the CLI script.
    """
    orchestrator = SyncOrchestrator(
        db_session, tenant_id, source_factory=source_factory, settings=settings
    )
    return await orchestrator.sync_tenant()
