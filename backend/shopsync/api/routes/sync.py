"""
Sync API routes.

A full sync of a large store can run for minutes; callers must set request
timeouts accordingly.
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from shopsync.database.session import get_db_session
from shopsync.services.sync_errors import (
    FetchFailedError,
    SyncAlreadyRunningError,
    SyncError,
    TenantNotFoundError,
)
from shopsync.services.sync_orchestrator import SourceFactory, sync_tenant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenants", tags=["sync"])


class SyncSummaryResponse(BaseModel):
    """Counts of records written by a completed sync."""
    tenant_id: str
    customers_upserted: int
    products_upserted: int
    orders_upserted: int
    protocols: Dict[str, str]
    duration_seconds: Optional[float]


def get_source_factory() -> Optional[SourceFactory]:
    """Data source factory for syncs; None selects the default clients."""
    return None


@router.post(
    "/{tenant_id}/sync",
    response_model=SyncSummaryResponse,
    status_code=status.HTTP_200_OK,
)
async def trigger_tenant_sync(
    tenant_id: str,
    db: Session = Depends(get_db_session),
    source_factory: Optional[SourceFactory] = Depends(get_source_factory),
):
    """
    Run a full sync for a tenant and return the summary.

    Status codes:
        404: tenant not found, inactive or without credentials
        409: a sync for the tenant is already running
        502: the store could not be reached with either protocol
        500: storing the fetched data failed
    """
    logger.info("Sync trigger requested", extra={"tenant_id": tenant_id})

    try:
        summary = await sync_tenant(db, tenant_id, source_factory=source_factory)
    except TenantNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except SyncAlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except FetchFailedError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    except SyncError as e:
        logger.error(
            "Sync trigger failed",
            extra={"tenant_id": tenant_id, "error": str(e)},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message,
        )

    return SyncSummaryResponse(**summary.to_dict())
