"""
Authenticated HTTP transport for the Shopify Admin API.

Shared by the GraphQL and REST clients. Maps HTTP failures to the typed
exception hierarchy; retrying is left to the retry wrapper.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from shopsync.config.sync_settings import (
    DEFAULT_API_VERSION,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
)
from shopsync.integrations.shopify.exceptions import (
    ShopifyAPIError,
    ShopifyAuthenticationError,
    ShopifyConnectionError,
    ShopifyPermissionError,
    ShopifyRateLimitError,
)
from shopsync.platform.secrets import redact_secrets

logger = logging.getLogger(__name__)

# Access scope each synced resource needs
REQUIRED_SCOPES = {
    "customers": "read_customers",
    "orders": "read_orders",
    "products": "read_products",
}


def normalize_shop_domain(shop_domain: str) -> str:
    """
    'https://mystore.myshopify.com/' -> 'mystore.myshopify.com'
    'mystore' -> 'mystore.myshopify.com'
    """
    domain = shop_domain.strip().replace("https://", "").replace("http://", "").rstrip("/")
    if "." not in domain:
        domain = f"{domain}.myshopify.com"
    return domain


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header in seconds. Invalid values give None."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class ShopifyHttpClient:
    """
    Async HTTP client bound to one store and access token.

    SECURITY: The access token is sent only as the X-Shopify-Access-Token
    header and is never logged.
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            shop_domain: Shopify store domain (e.g., 'mystore.myshopify.com')
            access_token: Decrypted Admin API access token
            api_version: Admin API version
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not shop_domain:
            raise ValueError("shop_domain is required")
        if not access_token:
            raise ValueError("access_token is required")

        self.shop_domain = normalize_shop_domain(shop_domain)
        self.api_version = api_version
        self.base_url = f"https://{self.shop_domain}/admin/api/{self.api_version}"

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "X-Shopify-Access-Token": access_token,
            },
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "ShopifyHttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def url_for(self, path: str) -> str:
        """Absolute URL for an API path ('customers.json', 'graphql.json')."""
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        url: str,
        resource: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Send one request and raise a typed error for any failure.

        Args:
            method: HTTP method
            url: Absolute URL (REST continuation links are already absolute)
            resource: Resource being fetched, attached to errors
            params: Query parameters
            json: JSON body

        Raises:
            ShopifyError subclass on failure
        """
        try:
            response = await self._client.request(method, url, params=params, json=json)
        except httpx.TimeoutException as e:
            logger.error(
                "Shopify API timeout",
                extra={"shop_domain": self.shop_domain, "resource": resource, "error": str(e)},
            )
            raise ShopifyConnectionError(f"Request timeout: {e}", resource=resource)
        except httpx.RequestError as e:
            logger.error(
                "Shopify API connection error",
                extra={"shop_domain": self.shop_domain, "resource": resource, "error": str(e)},
            )
            raise ShopifyConnectionError(f"Connection error: {e}", resource=resource)

        self._raise_for_status(response, resource)
        return response

    def _raise_for_status(self, response: httpx.Response, resource: str) -> None:
        status_code = response.status_code

        if status_code == 401:
            logger.error(
                "Shopify API authentication failed",
                extra={"shop_domain": self.shop_domain, "resource": resource},
            )
            raise ShopifyAuthenticationError(resource=resource)

        if status_code == 403:
            required_scope = REQUIRED_SCOPES.get(resource)
            logger.error(
                "Shopify API permission denied",
                extra={
                    "shop_domain": self.shop_domain,
                    "resource": resource,
                    "required_scope": required_scope,
                },
            )
            raise ShopifyPermissionError(required_scope=required_scope, resource=resource)

        if status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(
                "Shopify API rate limited",
                extra={
                    "shop_domain": self.shop_domain,
                    "resource": resource,
                    "retry_after": retry_after,
                },
            )
            raise ShopifyRateLimitError(retry_after=retry_after, resource=resource)

        if status_code >= 400:
            error_body: Dict[str, Any] = {}
            try:
                error_body = response.json()
            except ValueError:
                pass

            logger.error(
                "Shopify API error",
                extra={
                    "shop_domain": self.shop_domain,
                    "resource": resource,
                    "status_code": status_code,
                    "response": str(redact_secrets(error_body))[:500],
                },
            )
            raise ShopifyAPIError(
                f"Shopify API error: {status_code}",
                status_code=status_code,
                resource=resource,
                response=error_body if isinstance(error_body, dict) else {"body": error_body},
            )
