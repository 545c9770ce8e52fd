"""
Product model synced from the store.
"""

from sqlalchemy import Column, String, Numeric, UniqueConstraint

from shopsync.db_base import Base
from shopsync.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class Product(Base, TimestampMixin, TenantScopedMixin):
    """Store product, scoped to a tenant. Price is the first variant's price."""

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_products_tenant_external_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    external_id = Column(String(64), nullable=False, comment="Product id assigned by Shopify")

    title = Column(String(512), nullable=True)
    vendor = Column(String(255), nullable=True)
    product_type = Column(String(255), nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Product(tenant_id={self.tenant_id}, external_id={self.external_id})>"
