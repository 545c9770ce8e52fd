"""
Per-tenant sync exclusion.

Two overlapping syncs of the same tenant would race on line-item delete and
re-insert, so only one may run at a time:

- in-process: a registry of tenants currently syncing
- across processes (PostgreSQL only): a session-level advisory lock held on
  a dedicated connection for the duration of the sync

Both are non-blocking. A second sync is rejected, not queued.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Set

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

from shopsync.services.sync_errors import SyncAlreadyRunningError

logger = logging.getLogger(__name__)

LOCK_NAMESPACE = "shopsync:tenant-sync"

_running: Set[str] = set()


def is_sync_running(tenant_id: str) -> bool:
    """Whether this process is currently syncing the tenant."""
    return tenant_id in _running


def _acquire_advisory_lock(engine: Engine, tenant_id: str) -> Optional[Connection]:
    """
    Try to take the PostgreSQL advisory lock for a tenant.

    Returns:
        The connection holding the lock, None when the dialect has no
        advisory locks

    Raises:
        SyncAlreadyRunningError: Another process holds the lock
    """
    if engine.dialect.name != "postgresql":
        return None

    key = f"{LOCK_NAMESPACE}:{tenant_id}"
    connection = engine.connect()
    try:
        acquired = connection.execute(
            text("SELECT pg_try_advisory_lock(hashtext(:key))"), {"key": key}
        ).scalar()
        connection.commit()
    except Exception:
        connection.close()
        raise

    if not acquired:
        connection.close()
        raise SyncAlreadyRunningError(
            "A sync for this tenant is already running in another worker",
            tenant_id=tenant_id,
        )
    return connection


def _release_advisory_lock(connection: Connection, tenant_id: str) -> None:
    key = f"{LOCK_NAMESPACE}:{tenant_id}"
    try:
        connection.execute(text("SELECT pg_advisory_unlock(hashtext(:key))"), {"key": key})
        connection.commit()
    finally:
        connection.close()


@asynccontextmanager
async def tenant_sync_guard(db_session: Session, tenant_id: str) -> AsyncIterator[None]:
    """
    Hold the tenant's sync exclusion for the body of the block.

    Raises:
        SyncAlreadyRunningError: The tenant is already syncing
    """
    if tenant_id in _running:
        logger.warning("Sync already running for tenant", extra={"tenant_id": tenant_id})
        raise SyncAlreadyRunningError(
            "A sync for this tenant is already running", tenant_id=tenant_id
        )

    _running.add(tenant_id)
    lock_connection = None
    try:
        lock_connection = _acquire_advisory_lock(db_session.get_bind().engine, tenant_id)
        yield
    finally:
        if lock_connection is not None:
            _release_advisory_lock(lock_connection, tenant_id)
        _running.discard(tenant_id)
