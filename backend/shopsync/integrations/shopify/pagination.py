"""
Pagination fetcher.

Walks a paginated collection by following continuation tokens until the
source stops returning one. The number of pages is never capped; an empty
first page is a valid result.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shopsync.integrations.shopify.exceptions import ShopifyError
from shopsync.integrations.shopify.retry import RetryPolicy, Sleep, call_with_retry

logger = logging.getLogger(__name__)

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="?next"?')


@dataclass
class Page:
    """One page of raw items plus the token for the next page (None when done)."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_token: Optional[str] = None


PageFetcher = Callable[[Optional[str]], Awaitable[Page]]


def parse_next_link(link_header: Optional[str]) -> Optional[str]:
    """
    Extract the rel="next" URL from a REST Link header.

    Format: <https://...>; rel="previous", <https://...>; rel="next"
    """
    if not link_header:
        return None
    for part in link_header.split(","):
        match = _NEXT_LINK_RE.search(part)
        if match:
            return match.group(1)
    return None


async def fetch_all_pages(
    fetch_page: PageFetcher,
    resource: str,
    policy: RetryPolicy = RetryPolicy(),
    sleep: Sleep = asyncio.sleep,
) -> List[Dict[str, Any]]:
    """
    Fetch every page of a collection.

    Each page request goes through the retry wrapper. A failure that survives
    the wrapper aborts the whole walk.

    Args:
        fetch_page: Coroutine taking the continuation token (None for the first page)
        resource: Resource name used to tag errors and logs
        policy: Retry policy for each page request
        sleep: Sleep function used between retries

    Raises:
        ShopifyError: Tagged with `resource`
    """
    items: List[Dict[str, Any]] = []
    token: Optional[str] = None
    pages = 0

    while True:
        try:
            page = await call_with_retry(
                partial(fetch_page, token),
                policy=policy,
                sleep=sleep,
                resource=resource,
            )
        except ShopifyError as e:
            if e.resource is None:
                e.resource = resource
            logger.error(
                "Pagination aborted",
                extra={
                    "resource": resource,
                    "pages_fetched": pages,
                    "records_fetched": len(items),
                    "error_type": type(e).__name__,
                },
            )
            raise

        pages += 1
        items.extend(page.items)

        if not page.next_token:
            break
        token = page.next_token

    logger.debug(
        "Pagination complete",
        extra={"resource": resource, "pages_fetched": pages, "records_fetched": len(items)},
    )
    return items
