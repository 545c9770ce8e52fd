"""
Customer model synced from the store.

Natural key: (tenant_id, external_id). The sync pipeline upserts on this
compound identity; the surrogate id is only used for internal references
(orders.customer_id).
"""

from sqlalchemy import Column, String, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship

from shopsync.db_base import Base
from shopsync.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class Customer(Base, TimestampMixin, TenantScopedMixin):
    """Store customer, scoped to a tenant."""

    __tablename__ = "customers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_customers_tenant_external_id"),
    )

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )

    external_id = Column(
        String(64),
        nullable=False,
        comment="Customer id assigned by Shopify"
    )

    email = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)

    total_spent = Column(
        Numeric(12, 2),
        nullable=False,
        default=0,
        comment="Lifetime spend reported by the store"
    )

    orders = relationship("Order", back_populates="customer", passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Customer(tenant_id={self.tenant_id}, external_id={self.external_id})>"
