"""
Tests for the REST Admin API client (fallback protocol).
"""

from decimal import Decimal
from unittest.mock import call

import httpx
import pytest

from shopsync.config.sync_settings import SyncSettings
from shopsync.integrations.shopify.exceptions import (
    ShopifyAuthenticationError,
    ShopifyPermissionError,
)
from shopsync.integrations.shopify.rest_client import ShopifyRestClient


def make_client(mock_shopify, settings, sleep):
    return ShopifyRestClient(
        mock_shopify.shop,
        mock_shopify.access_token,
        settings=settings,
        transport=mock_shopify.get_mock_transport(),
        sleep=sleep,
    )


@pytest.fixture
def client(mock_shopify, sync_settings, fake_sleep):
    return make_client(mock_shopify, sync_settings, fake_sleep)


class TestRestPagination:

    @pytest.mark.asyncio
    async def test_530_customers_in_three_requests(self, client, mock_shopify):
        mock_shopify.rest_data["customers"] = [{"id": i} for i in range(530)]

        customers = await client.fetch_customers()

        assert len(customers) == 530
        requests = mock_shopify.requests_for("rest", "customers")
        assert len(requests) == 3
        assert requests[0].url.params["limit"] == "250"
        assert requests[1].url.params["page_info"] == "250"

    @pytest.mark.asyncio
    async def test_orders_request_all_statuses(self, client, mock_shopify):
        await client.fetch_orders()

        request = mock_shopify.requests_for("rest", "orders")[0]
        assert request.url.params["status"] == "any"
        assert request.url.path == "/admin/api/2024-01/orders.json"

    @pytest.mark.asyncio
    async def test_orders_with_embedded_line_items(self, client, mock_shopify):
        mock_shopify.rest_data["orders"] = [
            {
                "id": 100,
                "order_number": 1001,
                "total_price": "50.00",
                "customer": {"id": 1},
                "line_items": [{"id": 1, "title": "Mug", "quantity": 1, "price": "50.00"}],
            },
            {"id": 101, "total_price": "5.00"},
        ]

        orders = await client.fetch_orders()

        assert orders[0].customer_external_id == "1"
        assert orders[0].total_price == Decimal("50.00")
        assert len(orders[0].line_items) == 1
        assert orders[1].line_items is None

    @pytest.mark.asyncio
    async def test_products(self, client, mock_shopify):
        mock_shopify.rest_data["products"] = [
            {"id": 10, "title": "Mug", "product_type": "Kitchen", "variants": [{"price": "8.00"}]},
        ]

        products = await client.fetch_products()

        assert products[0].price == Decimal("8.00")
        assert client.protocol == "rest"


class TestCustomerDetails:

    @pytest.fixture
    def detail_settings(self):
        return SyncSettings(rest_customer_details=True)

    @pytest.mark.asyncio
    async def test_detail_records_fill_missing_names(self, mock_shopify, detail_settings, fake_sleep):
        client = make_client(mock_shopify, detail_settings, fake_sleep)
        mock_shopify.rest_data["customers"] = [{"id": 1, "email": "a@example.com"}]
        mock_shopify.customer_details["1"] = {
            "id": 1,
            "email": "a@example.com",
            "default_address": {"first_name": "Ann", "last_name": "Lee"},
        }

        customers = await client.fetch_customers()

        assert (customers[0].first_name, customers[0].last_name) == ("Ann", "Lee")

    @pytest.mark.asyncio
    async def test_details_fetched_in_batches_of_five(self, mock_shopify, detail_settings, fake_sleep):
        client = make_client(mock_shopify, detail_settings, fake_sleep)
        mock_shopify.rest_data["customers"] = [{"id": i} for i in range(12)]

        customers = await client.fetch_customers()

        assert len(customers) == 12
        assert len(mock_shopify.requests_for("rest", "customer_detail")) == 12
        # Pause between batches 1-2 and 2-3
        assert fake_sleep.await_args_list == [call(1.0), call(1.0)]

    @pytest.mark.asyncio
    async def test_detail_failure_keeps_list_data(self, mock_shopify, detail_settings, fake_sleep):
        client = make_client(mock_shopify, detail_settings, fake_sleep)
        mock_shopify.rest_data["customers"] = [{"id": 1, "first_name": "Ann"}]
        mock_shopify.fail("rest", "customer_detail", status_code=404)

        customers = await client.fetch_customers()

        assert customers[0].first_name == "Ann"

    @pytest.mark.asyncio
    async def test_detail_auth_failure_propagates(self, mock_shopify, detail_settings, fake_sleep):
        client = make_client(mock_shopify, detail_settings, fake_sleep)
        mock_shopify.rest_data["customers"] = [{"id": 1}]
        mock_shopify.fail("rest", "customer_detail", status_code=401)

        with pytest.raises(ShopifyAuthenticationError):
            await client.fetch_customers()

    @pytest.mark.asyncio
    async def test_details_disabled(self, client, mock_shopify):
        mock_shopify.rest_data["customers"] = [{"id": 1}]

        await client.fetch_customers()

        assert mock_shopify.requests_for("rest", "customer_detail") == []


class TestRestErrors:

    @pytest.mark.asyncio
    async def test_forbidden_names_scope(self, client, mock_shopify, fake_sleep):
        mock_shopify.fail("rest", "products", status_code=403)

        with pytest.raises(ShopifyPermissionError) as exc_info:
            await client.fetch_products()

        assert exc_info.value.required_scope == "read_products"
        assert exc_info.value.resource == "products"
        fake_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limit_retry_after_header(self, client, mock_shopify, fake_sleep):
        mock_shopify.queue_response(httpx.Response(429, headers={"Retry-After": "3"}))
        mock_shopify.rest_data["orders"] = [{"id": 1}]

        orders = await client.fetch_orders()

        assert len(orders) == 1
        fake_sleep.assert_awaited_once_with(3.5)
