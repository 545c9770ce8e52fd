"""
Root test configuration and fixtures.

Every test gets a fresh in-memory SQLite database with all tables created.
"""

import os
from typing import Generator
from unittest.mock import AsyncMock

import pytest

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-for-shopsync")

from shopsync.config.sync_settings import SyncSettings, reset_sync_settings
from shopsync.db_base import Base
from shopsync import models  # noqa: F401 - register tables
from shopsync.models.tenant import Tenant, TenantStatus
from shopsync.platform.secrets import encrypt_secret
from shopsync.tests.mocks.mock_shopify import MockShopifyServer

TEST_SHOP_DOMAIN = "test-store.myshopify.com"
TEST_ACCESS_TOKEN = "shpat_test_access_token"


@pytest.fixture(scope="function")
def db_engine():
    """In-memory SQLite engine shared across threads (TestClient runs in one)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def _reset_settings():
    reset_sync_settings()
    yield
    reset_sync_settings()


@pytest.fixture
def sync_settings() -> SyncSettings:
    """Production defaults without REST detail fetches or tenant stagger."""
    return SyncSettings(rest_customer_details=False, tenant_stagger_seconds=0)


@pytest.fixture
def fake_sleep() -> AsyncMock:
    """Injected sleep; records requested delays without waiting."""
    return AsyncMock()


@pytest.fixture
def make_tenant(db_session):
    """
    Factory fixture that stores a tenant and returns it.

    Usage:
        tenant = make_tenant(shop_domain="other.myshopify.com")
    """
    counter = {"n": 0}

    def _make(
        tenant_id: str = None,
        shop_domain: str = None,
        access_token: str = TEST_ACCESS_TOKEN,
        status: TenantStatus = TenantStatus.ACTIVE,
    ) -> Tenant:
        counter["n"] += 1
        n = counter["n"]
        tenant = Tenant(
            id=tenant_id or f"tenant-{n}",
            name=f"Test Store {n}",
            shop_domain=shop_domain or (TEST_SHOP_DOMAIN if n == 1 else f"store-{n}.myshopify.com"),
            access_token_encrypted=encrypt_secret(access_token) if access_token else None,
            status=status,
        )
        db_session.add(tenant)
        db_session.commit()
        return tenant

    return _make


@pytest.fixture
def tenant(make_tenant) -> Tenant:
    return make_tenant(tenant_id="tenant-t")


@pytest.fixture
def mock_shopify() -> MockShopifyServer:
    return MockShopifyServer(shop=TEST_SHOP_DOMAIN, access_token=TEST_ACCESS_TOKEN)
