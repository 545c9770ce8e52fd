"""
Shopify Admin API clients.

ShopifyGraphQLClient is the primary data source; ShopifyRestClient is the
fallback. Both return canonical records.
"""

from shopsync.integrations.shopify.exceptions import (
    ShopifyError,
    ShopifyAuthenticationError,
    ShopifyPermissionError,
    ShopifyRateLimitError,
    ShopifyConnectionError,
    ShopifyAPIError,
)
from shopsync.integrations.shopify.graphql_client import ShopifyGraphQLClient
from shopsync.integrations.shopify.rest_client import ShopifyRestClient

__all__ = [
    "ShopifyError",
    "ShopifyAuthenticationError",
    "ShopifyPermissionError",
    "ShopifyRateLimitError",
    "ShopifyConnectionError",
    "ShopifyAPIError",
    "ShopifyGraphQLClient",
    "ShopifyRestClient",
]
