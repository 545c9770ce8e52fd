"""
Order and OrderLineItem models synced from the store.

Orders are keyed on (tenant_id, external_id) and optionally reference a
Customer of the same tenant. A missing reference means a guest checkout or a
customer the store did not return; it is never an error.

Line items have no incremental merge: every sync of an order deletes its
line items and inserts the current set.
"""

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from shopsync.db_base import Base
from shopsync.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class Order(Base, TimestampMixin, TenantScopedMixin):
    """Store order, scoped to a tenant."""

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_orders_tenant_external_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    external_id = Column(String(64), nullable=False, comment="Order id assigned by Shopify")

    customer_id = Column(
        String(36),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Internal customer key; NULL for guest orders"
    )

    order_number = Column(String(64), nullable=True)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)
    order_date = Column(DateTime(timezone=True), nullable=True, index=True)

    customer = relationship("Customer", back_populates="orders")
    line_items = relationship(
        "OrderLineItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Order(tenant_id={self.tenant_id}, external_id={self.external_id})>"


class OrderLineItem(Base, TimestampMixin, TenantScopedMixin):
    """Line item belonging to exactly one order."""

    __tablename__ = "order_line_items"

    __table_args__ = (
        UniqueConstraint("order_id", "external_id", name="uq_order_line_items_order_external_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)

    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id = Column(String(64), nullable=False, comment="Line item id assigned by Shopify")

    title = Column(String(512), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(12, 2), nullable=False, default=0)

    order = relationship("Order", back_populates="line_items")

    def __repr__(self) -> str:
        return f"<OrderLineItem(order_id={self.order_id}, external_id={self.external_id})>"
