"""
Scheduled multi-tenant sync job.

Syncs every active tenant with stored credentials, one at a time, waiting
between tenant starts so the store platform's global rate limit is not
exhausted. A failing tenant is reported and the job moves on.

Usage:
    python -m shopsync.jobs.scheduled_sync

Deployed as a cron job.
"""

import asyncio
import logging
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from shopsync.config.sync_settings import SyncSettings, get_sync_settings
from shopsync.database.session import session_scope
from shopsync.integrations.shopify.retry import Sleep
from shopsync.models.tenant import Tenant, TenantStatus
from shopsync.services.sync_orchestrator import SourceFactory, SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class TenantSyncReport:
    """Outcome of one tenant's sync within a job run."""
    tenant_id: str
    success: bool
    summary: Optional[Dict[str, Any]] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class SyncJobReport:
    """Outcome of a whole job run."""
    results: List[TenantSyncReport] = field(default_factory=list)
    duration_seconds: Optional[float] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenants": len(self.results),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "duration_seconds": self.duration_seconds,
        }


def get_syncable_tenant_ids(db_session: Session) -> List[str]:
    """Active tenants that have an access token, oldest first."""
    rows = db_session.execute(
        select(Tenant.id)
        .where(
            Tenant.status == TenantStatus.ACTIVE,
            Tenant.access_token_encrypted.isnot(None),
        )
        .order_by(Tenant.created_at, Tenant.id)
    )
    return [tenant_id for (tenant_id,) in rows]


async def sync_all_tenants(
    db_session: Session,
    tenant_ids: Optional[List[str]] = None,
    source_factory: Optional[SourceFactory] = None,
    settings: Optional[SyncSettings] = None,
    sleep: Sleep = asyncio.sleep,
) -> SyncJobReport:
    """
    Sync tenants sequentially with a stagger delay between starts.

    Args:
        db_session: Database session
        tenant_ids: Tenants to sync (defaults to every syncable tenant)
        source_factory: Passed to each SyncOrchestrator
        settings: Sync settings (defaults to environment settings)
        sleep: Sleep function used for the stagger delay

    Returns:
        Per-tenant results; failures are recorded, never raised
    """
    settings = settings or get_sync_settings()
    if tenant_ids is None:
        tenant_ids = get_syncable_tenant_ids(db_session)

    report = SyncJobReport()
    started = time.monotonic()
    logger.info("Scheduled sync started", extra={"tenants": len(tenant_ids)})

    for index, tenant_id in enumerate(tenant_ids):
        if index and settings.tenant_stagger_seconds > 0:
            await sleep(settings.tenant_stagger_seconds)

        orchestrator = SyncOrchestrator(
            db_session, tenant_id, source_factory=source_factory, settings=settings
        )
        try:
            summary = await orchestrator.sync_tenant()
        except Exception as e:
            # Leave the session usable for the next tenant
            db_session.rollback()
            logger.error(
                "Tenant sync failed in scheduled job",
                extra={
                    "tenant_id": tenant_id,
                    "error_type": type(e).__name__,
                    "error": str(e)[:500],
                },
            )
            report.results.append(TenantSyncReport(
                tenant_id=tenant_id,
                success=False,
                error_type=type(e).__name__,
                error_message=str(e),
            ))
            continue

        report.results.append(TenantSyncReport(
            tenant_id=tenant_id, success=True, summary=summary.to_dict()
        ))

    report.duration_seconds = round(time.monotonic() - started, 3)
    logger.info("Scheduled sync finished", extra=report.to_dict())
    return report


async def run_scheduled_sync() -> SyncJobReport:
    with session_scope() as session:
        return await sync_all_tenants(session)


def main():
    """Entry point for running the scheduled sync from the command line."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        report = asyncio.run(run_scheduled_sync())
    except Exception as e:
        logger.error("Scheduled sync crashed", extra={"error": str(e)})
        sys.exit(1)

    print(f"Scheduled sync completed: {report.to_dict()}")
    sys.exit(1 if report.failed else 0)


if __name__ == "__main__":
    main()
