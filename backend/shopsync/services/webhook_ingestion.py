"""
Single-record ingestion for store webhooks.

Webhook payloads are the REST resource shape. Signature verification happens
before this service is called. Each event goes through the same normalizer
and upsert engine as a full sync, as a batch of one.

Topics are routed by prefix:
- customers/*  -> customer upsert
- products/*   -> product upsert
- orders/*     -> order upsert (line items replaced)

Deletion topics and unknown topics are acknowledged and ignored.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from shopsync.ingestion.normalizer import (
    normalize_customer,
    normalize_order,
    normalize_product,
)
from shopsync.ingestion.upsert import UpsertEngine
from shopsync.integrations.shopify.http import normalize_shop_domain
from shopsync.models.tenant import Tenant

logger = logging.getLogger(__name__)

# topic prefix -> (normalizer, UpsertEngine method name)
TOPIC_ROUTES: Dict[str, Tuple[Callable[[Any], Any], str]] = {
    "customers": (normalize_customer, "upsert_customers"),
    "products": (normalize_product, "upsert_products"),
    "orders": (normalize_order, "upsert_orders"),
}

IGNORED_ACTIONS = {"delete"}


@dataclass
class WebhookIngestionResult:
    """Outcome of one webhook event."""
    topic: str
    entity: Optional[str]
    processed: int = 0
    ignored: bool = False
    reason: Optional[str] = None


def find_tenant_by_shop_domain(db_session: Session, shop_domain: str) -> Optional[Tenant]:
    """
    Look up the tenant for a webhook's X-Shopify-Shop-Domain header.

    Entry point for the HMAC-verifying webhook route, which lives outside
    this service and calls this before ingest_webhook_event.
    """
    if not shop_domain:
        return None
    return db_session.execute(
        select(Tenant).where(Tenant.shop_domain == normalize_shop_domain(shop_domain))
    ).scalar_one_or_none()


def ingest_webhook_event(
    db_session: Session,
    tenant_id: str,
    topic: str,
    payload: Dict[str, Any],
) -> WebhookIngestionResult:
    """
    Upsert the record carried by a verified webhook.

    Args:
        db_session: Database session
        tenant_id: Tenant that owns the shop which sent the webhook
        topic: Webhook topic, e.g. 'orders/updated'
        payload: Webhook JSON body

    Raises:
        UpsertError: If the record could not be stored
    """
    entity, _, action = (topic or "").partition("/")
    route = TOPIC_ROUTES.get(entity)

    if route is None:
        logger.info(
            "Ignoring webhook with unhandled topic",
            extra={"tenant_id": tenant_id, "topic": topic},
        )
        return WebhookIngestionResult(
            topic=topic, entity=None, ignored=True, reason="unhandled_topic"
        )

    if action in IGNORED_ACTIONS:
        logger.info(
            "Ignoring deletion webhook",
            extra={"tenant_id": tenant_id, "topic": topic},
        )
        return WebhookIngestionResult(
            topic=topic, entity=entity, ignored=True, reason="deletion_not_synced"
        )

    normalize, method = route
    record = normalize(payload)
    if record.diagnostics:
        logger.debug(
            "Webhook record normalized with fallbacks",
            extra={"tenant_id": tenant_id, "topic": topic, "diagnostics": list(record.diagnostics)},
        )

    engine = UpsertEngine(db_session, tenant_id, batch_size=1)
    processed = getattr(engine, method)([record])

    if not processed:
        return WebhookIngestionResult(
            topic=topic, entity=entity, ignored=True, reason="missing_external_id"
        )

    logger.info(
        "Webhook record ingested",
        extra={"tenant_id": tenant_id, "topic": topic, "external_id": record.external_id},
    )
    return WebhookIngestionResult(topic=topic, entity=entity, processed=processed)
