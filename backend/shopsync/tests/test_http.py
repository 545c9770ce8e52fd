"""
Tests for the shared Shopify HTTP transport.
"""

import httpx
import pytest

from shopsync.integrations.shopify.exceptions import (
    ShopifyAPIError,
    ShopifyAuthenticationError,
    ShopifyConnectionError,
    ShopifyPermissionError,
    ShopifyRateLimitError,
)
from shopsync.integrations.shopify.http import (
    ShopifyHttpClient,
    normalize_shop_domain,
    parse_retry_after,
)
from shopsync.tests.conftest import TEST_ACCESS_TOKEN, TEST_SHOP_DOMAIN


def _client(handler) -> ShopifyHttpClient:
    return ShopifyHttpClient(
        TEST_SHOP_DOMAIN, TEST_ACCESS_TOKEN, transport=httpx.MockTransport(handler)
    )


class TestHelpers:

    @pytest.mark.parametrize("raw", [
        "test-store.myshopify.com",
        "https://test-store.myshopify.com/",
        "  http://test-store.myshopify.com ",
        "test-store",
    ])
    def test_normalize_shop_domain(self, raw):
        assert normalize_shop_domain(raw) == "test-store.myshopify.com"

    def test_parse_retry_after(self):
        assert parse_retry_after("4") == 4.0
        assert parse_retry_after("1.5") == 1.5
        assert parse_retry_after(None) is None
        assert parse_retry_after("soon") is None
        assert parse_retry_after("-3") is None


class TestStatusMapping:

    @pytest.mark.asyncio
    async def test_access_token_header_sent(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        async with _client(handler) as client:
            response = await client.request("GET", client.url_for("shop.json"), resource="shop")

        assert response.json() == {"ok": True}
        assert seen[0].headers["X-Shopify-Access-Token"] == TEST_ACCESS_TOKEN
        assert str(seen[0].url).startswith(
            f"https://{TEST_SHOP_DOMAIN}/admin/api/2024-01/"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,error_type", [
        (401, ShopifyAuthenticationError),
        (403, ShopifyPermissionError),
        (429, ShopifyRateLimitError),
        (500, ShopifyAPIError),
        (404, ShopifyAPIError),
    ])
    async def test_error_status_mapped(self, status_code, error_type):
        async with _client(lambda request: httpx.Response(status_code, json={"errors": "x"})) as client:
            with pytest.raises(error_type) as exc_info:
                await client.request("GET", client.url_for("orders.json"), resource="orders")

        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "3.0"}, json={})

        async with _client(handler) as client:
            with pytest.raises(ShopifyRateLimitError) as exc_info:
                await client.request("GET", client.url_for("orders.json"), resource="orders")

        assert exc_info.value.retry_after == 3.0

    @pytest.mark.asyncio
    async def test_network_failure_becomes_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(ShopifyConnectionError):
                await client.request("GET", client.url_for("orders.json"), resource="orders")
