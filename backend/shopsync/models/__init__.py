"""
Database models for tenants and synced store data.

Synced entities inherit TenantScopedMixin and are unique on
(tenant_id, external_id).
"""

from shopsync.models.base import TimestampMixin, TenantScopedMixin
from shopsync.models.tenant import Tenant, TenantStatus
from shopsync.models.customer import Customer
from shopsync.models.product import Product
from shopsync.models.order import Order, OrderLineItem

__all__ = [
    "TimestampMixin",
    "TenantScopedMixin",
    "Tenant",
    "TenantStatus",
    "Customer",
    "Product",
    "Order",
    "OrderLineItem",
]
