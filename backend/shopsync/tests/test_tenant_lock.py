"""
Tests for per-tenant sync exclusion.
"""

from unittest.mock import MagicMock

import pytest

from shopsync.services.sync_errors import SyncAlreadyRunningError
from shopsync.services.tenant_lock import (
    _acquire_advisory_lock,
    is_sync_running,
    tenant_sync_guard,
)


class TestTenantSyncGuard:

    @pytest.mark.asyncio
    async def test_guard_marks_tenant_running(self, db_session):
        async with tenant_sync_guard(db_session, "tenant-x"):
            assert is_sync_running("tenant-x")
        assert not is_sync_running("tenant-x")

    @pytest.mark.asyncio
    async def test_nested_guard_same_tenant_rejected(self, db_session):
        async with tenant_sync_guard(db_session, "tenant-x"):
            with pytest.raises(SyncAlreadyRunningError):
                async with tenant_sync_guard(db_session, "tenant-x"):
                    pass

    @pytest.mark.asyncio
    async def test_different_tenants_do_not_block(self, db_session):
        async with tenant_sync_guard(db_session, "tenant-x"):
            async with tenant_sync_guard(db_session, "tenant-y"):
                assert is_sync_running("tenant-x")
                assert is_sync_running("tenant-y")

    @pytest.mark.asyncio
    async def test_released_on_error(self, db_session):
        with pytest.raises(RuntimeError):
            async with tenant_sync_guard(db_session, "tenant-x"):
                raise RuntimeError("boom")
        assert not is_sync_running("tenant-x")


class TestAdvisoryLock:

    def test_skipped_for_sqlite(self, db_engine):
        assert _acquire_advisory_lock(db_engine, "tenant-x") is None

    def test_postgres_lock_taken_on_dedicated_connection(self):
        engine = MagicMock()
        engine.dialect.name = "postgresql"
        connection = engine.connect.return_value
        connection.execute.return_value.scalar.return_value = True

        assert _acquire_advisory_lock(engine, "tenant-x") is connection
        sql = str(connection.execute.call_args.args[0])
        assert "pg_try_advisory_lock" in sql
        connection.close.assert_not_called()

    def test_postgres_lock_held_elsewhere(self):
        engine = MagicMock()
        engine.dialect.name = "postgresql"
        connection = engine.connect.return_value
        connection.execute.return_value.scalar.return_value = False

        with pytest.raises(SyncAlreadyRunningError):
            _acquire_advisory_lock(engine, "tenant-x")
        connection.close.assert_called_once()
