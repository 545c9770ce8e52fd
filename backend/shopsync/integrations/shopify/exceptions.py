"""
Shopify Admin API exceptions.

Each error carries the resource that was being fetched so failures can be
reported per entity type.
"""

from typing import Optional, Dict, Any


class ShopifyError(Exception):
    """Base exception for Shopify Admin API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        resource: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource = resource
        self.response = response or {}

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"status_code={self.status_code}, resource={self.resource!r})"
        )


class ShopifyAuthenticationError(ShopifyError):
    """Access token is invalid or expired (401). Never retried."""

    def __init__(
        self,
        message: str = "Authentication failed - access token may be invalid or expired",
        **kwargs,
    ):
        kwargs.setdefault("status_code", 401)
        super().__init__(message, **kwargs)


class ShopifyPermissionError(ShopifyError):
    """Access token lacks a required scope (403). Never retried."""

    def __init__(
        self,
        message: Optional[str] = None,
        required_scope: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 403)
        if message is None:
            message = "Permission denied - access token is missing a required scope"
            if required_scope:
                message = f"{message} ({required_scope})"
        super().__init__(message, **kwargs)
        self.required_scope = required_scope


class ShopifyRateLimitError(ShopifyError):
    """Request was throttled (429 or GraphQL THROTTLED)."""

    def __init__(
        self,
        message: str = "Rate limited - please retry after a delay",
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ShopifyConnectionError(ShopifyError):
    """Network failure or timeout talking to the store."""

    def __init__(
        self,
        message: str = "Connection error - unable to reach Shopify",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class ShopifyAPIError(ShopifyError):
    """Any other API failure: unexpected status codes, GraphQL errors, bad payloads."""

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and 500 <= self.status_code < 600
