"""
Tenant model.

A Tenant is one connected Shopify store and the isolation boundary for all
synced data. Tenants are created by the install/onboarding flow; the sync
pipeline only reads them.

SECURITY: the store access token is stored encrypted and decrypted only
right before outbound API calls.
"""

import enum
import uuid

from sqlalchemy import Column, String, Text, Enum

from shopsync.db_base import Base
from shopsync.models.base import TimestampMixin


class TenantStatus(str, enum.Enum):
    """Tenant lifecycle status."""
    ACTIVE = "active"
    SUSPENDED = "suspended"      # Temporarily disabled (e.g., billing issue)
    UNINSTALLED = "uninstalled"  # App removed from the store


class Tenant(Base, TimestampMixin):
    """Connected store. Tenant.id is the tenant_id used by every synced row."""

    __tablename__ = "tenants"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Primary key - this IS the tenant_id used across all models"
    )

    name = Column(
        String(255),
        nullable=False,
        comment="Display name of the tenant (store name)"
    )

    shop_domain = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Shopify store domain (mystore.myshopify.com)"
    )

    access_token_encrypted = Column(
        Text,
        nullable=True,
        comment="Encrypted Shopify Admin API access token"
    )

    scopes = Column(
        Text,
        nullable=True,
        comment="Comma-separated OAuth scopes granted at install"
    )

    status = Column(
        Enum(TenantStatus, name="tenant_status", create_constraint=True),
        nullable=False,
        default=TenantStatus.ACTIVE,
        index=True,
        comment="Tenant lifecycle status"
    )

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_token_encrypted)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, shop_domain={self.shop_domain}, status={self.status})>"
