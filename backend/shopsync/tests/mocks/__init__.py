"""Mock external services for tests."""

from shopsync.tests.mocks.fake_source import FakeSource
from shopsync.tests.mocks.mock_shopify import MockShopifyServer

__all__ = ["FakeSource", "MockShopifyServer"]
