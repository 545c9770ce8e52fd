"""
Tests for the pagination fetcher.
"""

import pytest
from unittest.mock import AsyncMock

from shopsync.integrations.shopify.exceptions import (
    ShopifyAuthenticationError,
    ShopifyRateLimitError,
)
from shopsync.integrations.shopify.pagination import (
    Page,
    fetch_all_pages,
    parse_next_link,
)


def paged_source(total: int, page_size: int):
    """Page fetcher over `total` items using offsets as continuation tokens."""
    items = [{"id": i} for i in range(total)]

    async def fetch_page(token):
        offset = int(token or 0)
        chunk = items[offset:offset + page_size]
        has_more = offset + page_size < total
        return Page(items=chunk, next_token=str(offset + page_size) if has_more else None)

    return AsyncMock(side_effect=fetch_page)


class TestFetchAllPages:

    @pytest.mark.asyncio
    async def test_530_items_in_three_requests(self, fake_sleep):
        fetch_page = paged_source(530, 250)

        items = await fetch_all_pages(fetch_page, resource="customers", sleep=fake_sleep)

        assert len(items) == 530
        assert fetch_page.await_count == 3
        assert [c.args[0] for c in fetch_page.await_args_list] == [None, "250", "500"]

    @pytest.mark.asyncio
    async def test_empty_first_page_is_valid(self, fake_sleep):
        fetch_page = paged_source(0, 250)

        items = await fetch_all_pages(fetch_page, resource="products", sleep=fake_sleep)

        assert items == []
        assert fetch_page.await_count == 1

    @pytest.mark.asyncio
    async def test_no_cap_on_page_count(self, fake_sleep):
        fetch_page = paged_source(120, 1)

        items = await fetch_all_pages(fetch_page, resource="orders", sleep=fake_sleep)

        assert len(items) == 120
        assert fetch_page.await_count == 120

    @pytest.mark.asyncio
    async def test_failure_is_tagged_with_resource(self, fake_sleep):
        fetch_page = AsyncMock(side_effect=ShopifyAuthenticationError())

        with pytest.raises(ShopifyAuthenticationError) as exc_info:
            await fetch_all_pages(fetch_page, resource="orders", sleep=fake_sleep)

        assert exc_info.value.resource == "orders"

    @pytest.mark.asyncio
    async def test_existing_resource_tag_kept(self, fake_sleep):
        fetch_page = AsyncMock(side_effect=ShopifyAuthenticationError(resource="customers"))

        with pytest.raises(ShopifyAuthenticationError) as exc_info:
            await fetch_all_pages(fetch_page, resource="orders", sleep=fake_sleep)

        assert exc_info.value.resource == "customers"

    @pytest.mark.asyncio
    async def test_throttled_page_is_retried_in_place(self, fake_sleep):
        fetch_page = AsyncMock(side_effect=[
            Page(items=[{"id": 1}], next_token="a"),
            ShopifyRateLimitError(retry_after=1.0),
            Page(items=[{"id": 2}], next_token=None),
        ])

        items = await fetch_all_pages(fetch_page, resource="customers", sleep=fake_sleep)

        assert items == [{"id": 1}, {"id": 2}]
        assert fetch_page.await_args_list[1].args == ("a",)
        assert fetch_page.await_args_list[2].args == ("a",)
        fake_sleep.assert_awaited_once_with(1.5)


class TestParseNextLink:

    def test_next_only(self):
        header = '<https://s.myshopify.com/admin/api/2024-01/orders.json?page_info=abc&limit=250>; rel="next"'
        assert parse_next_link(header) == (
            "https://s.myshopify.com/admin/api/2024-01/orders.json?page_info=abc&limit=250"
        )

    def test_previous_and_next(self):
        header = (
            '<https://s.myshopify.com/a.json?page_info=prev>; rel="previous", '
            '<https://s.myshopify.com/a.json?page_info=next>; rel="next"'
        )
        assert parse_next_link(header) == "https://s.myshopify.com/a.json?page_info=next"

    def test_previous_only(self):
        assert parse_next_link('<https://s.myshopify.com/a.json?page_info=p>; rel="previous"') is None

    def test_missing_header(self):
        assert parse_next_link(None) is None
        assert parse_next_link("") is None
