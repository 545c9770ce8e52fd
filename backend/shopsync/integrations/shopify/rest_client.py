"""
Shopify REST Admin API client (fallback protocol).

One path per resource (`customers.json`, `orders.json`, `products.json`),
paginated through the Link header. Orders are requested with `status=any`
so closed and cancelled orders are included. Line items are taken from the
order payload; when a payload carries none, stored line items are left as is.

The customers list endpoint can omit address details, so each customer's
detail record is fetched in small concurrent batches when enabled.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from shopsync.config.sync_settings import SyncSettings, get_sync_settings
from shopsync.ingestion.normalizer import (
    normalize_customer,
    normalize_order,
    normalize_product,
)
from shopsync.ingestion.records import CustomerRecord, OrderRecord, ProductRecord
from shopsync.integrations.shopify.exceptions import (
    ShopifyAPIError,
    ShopifyAuthenticationError,
    ShopifyError,
    ShopifyPermissionError,
)
from shopsync.integrations.shopify.http import ShopifyHttpClient
from shopsync.integrations.shopify.pagination import Page, fetch_all_pages, parse_next_link
from shopsync.integrations.shopify.retry import (
    Sleep,
    call_with_retry,
    retry_policy_from_settings,
)

logger = logging.getLogger(__name__)

CUSTOMER_DETAIL_BATCH_SIZE = 5
CUSTOMER_DETAIL_PAUSE_SECONDS = 1.0


class ShopifyRestClient:
    """
    Store data source over the REST Admin API.

    Usage:
        async with ShopifyRestClient(shop_domain, access_token) as client:
            orders = await client.fetch_orders()
    """

    protocol = "rest"

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        settings: Optional[SyncSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings or get_sync_settings()
        self._http = ShopifyHttpClient(
            shop_domain,
            access_token,
            api_version=self.settings.api_version,
            timeout=self.settings.http_timeout_seconds,
            connect_timeout=self.settings.connect_timeout_seconds,
            transport=transport,
        )
        self.shop_domain = self._http.shop_domain
        self._policy = retry_policy_from_settings(self.settings)
        self._sleep = sleep

    async def close(self) -> None:
        await self._http.close()

    async def __aenter__(self) -> "ShopifyRestClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @staticmethod
    def _items(response: httpx.Response, resource: str, key: str) -> Any:
        try:
            body = response.json()
        except ValueError:
            raise ShopifyAPIError(
                "Invalid JSON in REST response",
                status_code=response.status_code,
                resource=resource,
            )
        if not isinstance(body, dict):
            raise ShopifyAPIError("Unexpected REST response shape", resource=resource)
        return body.get(key)

    async def _fetch_collection(
        self,
        resource: str,
        extra_params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every page of `/{resource}.json`."""
        first_url = self._http.url_for(f"{resource}.json")
        first_params: Dict[str, Any] = {"limit": self.settings.page_size}
        if extra_params:
            first_params.update(extra_params)

        async def fetch_page(next_url: Optional[str]) -> Page:
            # Continuation links already carry page_info and limit; Shopify
            # rejects other filters alongside page_info.
            if next_url:
                response = await self._http.request("GET", next_url, resource=resource)
            else:
                response = await self._http.request(
                    "GET", first_url, resource=resource, params=first_params
                )
            items = self._items(response, resource, resource)
            if not isinstance(items, list):
                raise ShopifyAPIError(
                    f"REST response missing '{resource}' list", resource=resource
                )
            return Page(
                items=[item for item in items if isinstance(item, dict)],
                next_token=parse_next_link(response.headers.get("Link")),
            )

        items = await fetch_all_pages(
            fetch_page, resource=resource, policy=self._policy, sleep=self._sleep
        )
        logger.info(
            "Fetched records via REST",
            extra={"shop_domain": self.shop_domain, "resource": resource, "count": len(items)},
        )
        return items

    async def _customer_detail(self, customer: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge a customer's detail record over its list entry.

        Credential errors propagate; other failures keep the list entry.
        """
        customer_id = customer.get("id")
        if customer_id is None:
            return customer

        url = self._http.url_for(f"customers/{customer_id}.json")

        async def request():
            return await self._http.request("GET", url, resource="customers")

        try:
            response = await call_with_retry(
                request, policy=self._policy, sleep=self._sleep, resource="customers"
            )
            detail = self._items(response, "customers", "customer")
        except (ShopifyAuthenticationError, ShopifyPermissionError):
            raise
        except ShopifyError as e:
            logger.warning(
                "Customer detail fetch failed, using list data",
                extra={
                    "shop_domain": self.shop_domain,
                    "customer_id": customer_id,
                    "error_type": type(e).__name__,
                },
            )
            return customer

        if not isinstance(detail, dict):
            return customer
        return {**customer, **detail}

    async def _enrich_customers(self, customers: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        enriched: List[Dict[str, Any]] = []
        for start in range(0, len(customers), CUSTOMER_DETAIL_BATCH_SIZE):
            if start:
                await self._sleep(CUSTOMER_DETAIL_PAUSE_SECONDS)
            batch = customers[start:start + CUSTOMER_DETAIL_BATCH_SIZE]
            enriched.extend(
                await asyncio.gather(*(self._customer_detail(c) for c in batch))
            )
        return enriched

    async def fetch_customers(self) -> List[CustomerRecord]:
        raw = await self._fetch_collection("customers")
        if self.settings.rest_customer_details and raw:
            raw = await self._enrich_customers(raw)
        return [normalize_customer(item) for item in raw]

    async def fetch_orders(self) -> List[OrderRecord]:
        raw = await self._fetch_collection("orders", {"status": "any"})
        return [normalize_order(item) for item in raw]

    async def fetch_products(self) -> List[ProductRecord]:
        raw = await self._fetch_collection("products")
        return [normalize_product(item) for item in raw]
