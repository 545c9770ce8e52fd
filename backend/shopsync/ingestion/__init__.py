"""
Record normalization and idempotent storage for synced store data.
"""

from shopsync.ingestion.records import (
    CustomerRecord,
    ProductRecord,
    OrderRecord,
    LineItemRecord,
)
from shopsync.ingestion.upsert import UpsertEngine, UpsertError

__all__ = [
    "CustomerRecord",
    "ProductRecord",
    "OrderRecord",
    "LineItemRecord",
    "UpsertEngine",
    "UpsertError",
]
