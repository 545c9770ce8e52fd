"""
Shopify GraphQL Admin API client (primary protocol).

Fetches customers, orders and products with cursor pagination. Orders come
back with their first page of line items nested; the few orders with more
line items are completed with per-order follow-up queries.

GraphQL reports throttling and permission problems in the response body with
HTTP 200; those are mapped to the same typed errors the REST client raises.
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
    ShopifyPermissionError,
    ShopifyRateLimitError,
)
from shopsync.integrations.shopify.http import REQUIRED_SCOPES, ShopifyHttpClient
from shopsync.integrations.shopify.pagination import Page, fetch_all_pages
from shopsync.integrations.shopify.retry import Sleep, retry_policy_from_settings
from shopsync.platform.secrets import redact_secrets

logger = logging.getLogger(__name__)


CUSTOMERS_QUERY = """
query Customers($first: Int!, $after: String) {
  customers(first: $first, after: $after) {
    edges {
      node {
        id
        email
        firstName
        lastName
        displayName
        amountSpent {
          amount
        }
        defaultAddress {
          firstName
          lastName
          name
        }
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

# Shopify rejects any single query whose requested cost exceeds 1,000 points.
# A nested connection costs roughly parent page size x child page size, so
# orders use a smaller page than flat collections.
ORDERS_PAGE_SIZE = 25
LINE_ITEMS_PAGE_SIZE = 30

LINE_ITEM_FIELDS = """
            node {
              id
              title
              quantity
              originalUnitPriceSet {
                shopMoney {
                  amount
                }
              }
            }
"""

ORDERS_QUERY = """
query Orders($first: Int!, $after: String, $lineItemsFirst: Int!) {
  orders(first: $first, after: $after) {
    edges {
      node {
        id
        name
        createdAt
        totalPriceSet {
          shopMoney {
            amount
          }
        }
        customer {
          id
        }
        lineItems(first: $lineItemsFirst) {
          edges {%s          }
          pageInfo {
            hasNextPage
            endCursor
          }
        }
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
""" % LINE_ITEM_FIELDS

ORDER_LINE_ITEMS_QUERY = """
query OrderLineItems($id: ID!, $first: Int!, $after: String) {
  order(id: $id) {
    lineItems(first: $first, after: $after) {
      edges {%s      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
""" % LINE_ITEM_FIELDS

PRODUCTS_QUERY = """
query Products($first: Int!, $after: String) {
  products(first: $first, after: $after) {
    edges {
      node {
        id
        title
        vendor
        productType
        variants(first: 1) {
          edges {
            node {
              price
            }
          }
        }
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""


def _throttle_wait(body: Dict[str, Any]) -> Optional[float]:
    """
    Seconds until enough query cost is restored, from extensions.cost.

    None when the response carries no usable throttle status.
    """
    cost = (body.get("extensions") or {}).get("cost") or {}
    status = cost.get("throttleStatus") or {}
    try:
        requested = float(cost["requestedQueryCost"])
        available = float(status["currentlyAvailable"])
        restore_rate = float(status["restoreRate"])
    except (KeyError, TypeError, ValueError):
        return None
    if restore_rate <= 0:
        return None
    return max(requested - available, 0.0) / restore_rate


class ShopifyGraphQLClient:
    """
    Store data source over the GraphQL Admin API.

    Usage:
        async with ShopifyGraphQLClient(shop_domain, access_token) as client:
            customers = await client.fetch_customers()
    """

    protocol = "graphql"

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
        self.graphql_url = self._http.url_for("graphql.json")
        self._policy = retry_policy_from_settings(self.settings)
        self._sleep = sleep

    async def close(self) -> None:
        await self._http.close()

    async def __aenter__(self) -> "ShopifyGraphQLClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        resource: str = "graphql",
    ) -> Dict[str, Any]:
        """
        Execute a GraphQL query and return its `data` object.

        Raises:
            ShopifyRateLimitError: Query was throttled
            ShopifyPermissionError: Access scope missing for the resource
            ShopifyAPIError: Any other GraphQL error or a malformed response
        """
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        response = await self._http.request(
            "POST", self.graphql_url, resource=resource, json=payload
        )
        try:
            body = response.json()
        except ValueError:
            raise ShopifyAPIError(
                "Invalid JSON in GraphQL response",
                status_code=response.status_code,
                resource=resource,
            )

        errors = body.get("errors")
        if errors:
            self._raise_for_errors(errors, body, resource)

        data = body.get("data")
        if not isinstance(data, dict):
            raise ShopifyAPIError(
                "GraphQL response has no data", resource=resource, response=body
            )
        return data

    def _raise_for_errors(self, errors: Any, body: Dict[str, Any], resource: str) -> None:
        if not isinstance(errors, list):
            errors = [{"message": str(errors)}]
        codes = {
            ((e.get("extensions") or {}).get("code") if isinstance(e, dict) else None)
            for e in errors
        }

        if "THROTTLED" in codes:
            retry_after = _throttle_wait(body)
            logger.warning(
                "Shopify GraphQL query throttled",
                extra={
                    "shop_domain": self.shop_domain,
                    "resource": resource,
                    "retry_after": retry_after,
                },
            )
            raise ShopifyRateLimitError(retry_after=retry_after, resource=resource)

        if "ACCESS_DENIED" in codes:
            required_scope = REQUIRED_SCOPES.get(resource)
            logger.error(
                "Shopify GraphQL access denied",
                extra={
                    "shop_domain": self.shop_domain,
                    "resource": resource,
                    "required_scope": required_scope,
                },
            )
            raise ShopifyPermissionError(required_scope=required_scope, resource=resource)

        logger.error(
            "GraphQL errors",
            extra={
                "shop_domain": self.shop_domain,
                "resource": resource,
                "errors": str(redact_secrets(errors))[:500],
            },
        )
        raise ShopifyAPIError(
            f"GraphQL errors: {errors}", resource=resource, response=body
        )

    @staticmethod
    def _connection_page(connection: Any, resource: str) -> Page:
        """Page of nodes from a GraphQL connection object."""
        if not isinstance(connection, dict):
            raise ShopifyAPIError(
                f"GraphQL response missing '{resource}' connection",
                resource=resource,
            )
        nodes = [
            edge["node"]
            for edge in connection.get("edges") or []
            if isinstance(edge, dict) and isinstance(edge.get("node"), dict)
        ]
        page_info = connection.get("pageInfo") or {}
        next_cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
        return Page(items=nodes, next_token=next_cursor)

    async def _fetch_connection(
        self,
        resource: str,
        query: str,
        page_size: Optional[int] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every node of a top-level connection (customers, orders, products)."""
        first = page_size or self.settings.page_size

        async def fetch_page(cursor: Optional[str]) -> Page:
            data = await self.execute(
                query,
                {**(variables or {}), "first": first, "after": cursor},
                resource=resource,
            )
            return self._connection_page(data.get(resource), resource)

        items = await fetch_all_pages(
            fetch_page, resource=resource, policy=self._policy, sleep=self._sleep
        )
        logger.info(
            "Fetched records via GraphQL",
            extra={"shop_domain": self.shop_domain, "resource": resource, "count": len(items)},
        )
        return items

    async def _remaining_line_items(
        self,
        order_id: str,
        after: str,
    ) -> Optional[List[Dict[str, Any]]]:
        """
        Fetch an order's line items past the first nested page.

        Returns:
            The remaining line item nodes, None if the order is gone
        """
        missing = False

        async def fetch_page(cursor: Optional[str]) -> Page:
            nonlocal missing
            data = await self.execute(
                ORDER_LINE_ITEMS_QUERY,
                {"id": order_id, "first": LINE_ITEMS_PAGE_SIZE, "after": cursor or after},
                resource="orders",
            )
            order = data.get("order")
            if order is None:
                missing = True
                return Page()
            return self._connection_page(order.get("lineItems"), "orders")

        nodes = await fetch_all_pages(
            fetch_page, resource="orders", policy=self._policy, sleep=self._sleep
        )
        return None if missing else nodes

    async def _complete_line_items(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Append line items beyond the first nested page to an order node."""
        line_items = order.get("lineItems")
        if not isinstance(line_items, dict):
            return order
        page_info = line_items.get("pageInfo") or {}
        if not (page_info.get("hasNextPage") and page_info.get("endCursor")):
            return order

        remaining = await self._remaining_line_items(order.get("id"), page_info["endCursor"])
        if remaining is None:
            # Partial line items would delete the stored ones; leave them as is
            logger.warning(
                "Order disappeared while fetching line items",
                extra={"shop_domain": self.shop_domain, "order_id": order.get("id")},
            )
            return {k: v for k, v in order.items() if k != "lineItems"}

        edges = list(line_items.get("edges") or [])
        edges.extend({"node": node} for node in remaining)
        return {**order, "lineItems": {"edges": edges}}

    async def fetch_customers(self) -> List[CustomerRecord]:
        raw = await self._fetch_connection("customers", CUSTOMERS_QUERY)
        return [normalize_customer(item) for item in raw]

    async def fetch_orders(self) -> List[OrderRecord]:
        """
        Fetch orders with their line items.

        Each order page carries the first LINE_ITEMS_PAGE_SIZE line items of
        every order; orders with more are completed with follow-up queries.
        """
        raw = await self._fetch_connection(
            "orders",
            ORDERS_QUERY,
            page_size=min(self.settings.page_size, ORDERS_PAGE_SIZE),
            variables={"lineItemsFirst": LINE_ITEMS_PAGE_SIZE},
        )
        orders = []
        for item in raw:
            orders.append(normalize_order(await self._complete_line_items(item)))
        return orders

    async def fetch_products(self) -> List[ProductRecord]:
        raw = await self._fetch_connection("products", PRODUCTS_QUERY)
        return [normalize_product(item) for item in raw]
