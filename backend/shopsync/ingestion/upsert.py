"""
Upsert engine for synced store data.

Writes canonical records into tenant-scoped tables keyed on
(tenant_id, external_id). Each batch is one upsert primitive:

1. select the internal keys already stored for the batch's external ids
2. bulk insert the new rows
3. bulk update the existing rows by primary key

so round trips grow with the number of batches, not records. Each batch
commits on its own; a failure rolls back only the current batch.

Orders additionally:
- resolve all referenced customer external ids in one lookup before writing
  (unknown customers become guest orders with a NULL reference)
- replace line items of exactly the written orders (delete, then insert)
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Type, TypeVar

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopsync.config.sync_settings import DEFAULT_UPSERT_BATCH_SIZE
from shopsync.ingestion.records import CustomerRecord, OrderRecord, ProductRecord
from shopsync.models.base import generate_uuid
from shopsync.models.customer import Customer
from shopsync.models.order import Order, OrderLineItem
from shopsync.models.product import Product

logger = logging.getLogger(__name__)

# Keeps IN (...) lists under common driver parameter limits
LOOKUP_CHUNK_SIZE = 1000

R = TypeVar("R")


class UpsertError(Exception):
    """Storage failure while writing a batch. Earlier batches stay committed."""

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        batch_index: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.batch_index = batch_index


def _chunks(items: Sequence[R], size: int) -> Iterable[Sequence[R]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _customer_values(record: CustomerRecord) -> Dict[str, Any]:
    return {
        "email": record.email,
        "first_name": record.first_name,
        "last_name": record.last_name,
        "total_spent": record.total_spent,
    }


def _product_values(record: ProductRecord) -> Dict[str, Any]:
    return {
        "title": record.title,
        "vendor": record.vendor,
        "product_type": record.product_type,
        "price": record.price,
    }


class UpsertEngine:
    """
    Idempotent writer for one tenant.

    Re-running identical input produces no new rows and leaves every scalar
    field equal to the most recent write.

    Usage:
        engine = UpsertEngine(db_session, tenant_id)
        engine.upsert_customers(customers)
        engine.upsert_orders(orders)
    """

    def __init__(
        self,
        db_session: Session,
        tenant_id: str,
        batch_size: int = DEFAULT_UPSERT_BATCH_SIZE,
    ):
        if not tenant_id:
            raise ValueError("tenant_id is required")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.db = db_session
        self.tenant_id = tenant_id
        self.batch_size = batch_size

    def _valid_records(self, records: Sequence[R], entity: str) -> List[R]:
        """Drop records without an external id; they cannot be keyed."""
        valid = [r for r in records if getattr(r, "external_id", None)]
        skipped = len(records) - len(valid)
        if skipped:
            logger.warning(
                "Skipping records without external id",
                extra={"tenant_id": self.tenant_id, "entity": entity, "skipped": skipped},
            )
        return valid

    @staticmethod
    def _dedupe(batch: Sequence[R]) -> List[R]:
        """Last occurrence of an external id within a batch wins."""
        by_key: Dict[str, R] = {}
        for record in batch:
            by_key[record.external_id] = record
        return list(by_key.values())

    def _existing_ids(self, model: Type, external_ids: Sequence[str]) -> Dict[str, str]:
        """Map external_id -> internal id for rows of this tenant."""
        existing: Dict[str, str] = {}
        for chunk in _chunks(list(external_ids), LOOKUP_CHUNK_SIZE):
            rows = self.db.execute(
                select(model.external_id, model.id).where(
                    model.tenant_id == self.tenant_id,
                    model.external_id.in_(chunk),
                )
            )
            existing.update({external_id: row_id for external_id, row_id in rows})
        return existing

    def _upsert_batch(
        self,
        model: Type,
        batch: Sequence[R],
        values_for,
    ) -> Dict[str, str]:
        """
        Insert new rows and update existing ones for one batch (no commit).

        Returns:
            external_id -> internal id for every record in the batch
        """
        existing = self._existing_ids(model, [r.external_id for r in batch])

        new_rows: List[Dict[str, Any]] = []
        updated_rows: List[Dict[str, Any]] = []
        ids: Dict[str, str] = {}

        for record in batch:
            values = values_for(record)
            row_id = existing.get(record.external_id)
            if row_id is None:
                row_id = generate_uuid()
                new_rows.append({
                    "id": row_id,
                    "tenant_id": self.tenant_id,
                    "external_id": record.external_id,
                    **values,
                })
            else:
                updated_rows.append({"id": row_id, **values})
            ids[record.external_id] = row_id

        if new_rows:
            self.db.execute(insert(model), new_rows)
        if updated_rows:
            self.db.execute(update(model), updated_rows)

        return ids

    def _run_batches(self, model: Type, records: Sequence[R], entity: str, write_batch) -> int:
        valid = self._valid_records(records, entity)

        for batch_index, batch in enumerate(_chunks(valid, self.batch_size)):
            batch = self._dedupe(batch)
            try:
                write_batch(batch)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    "Upsert batch failed",
                    extra={
                        "tenant_id": self.tenant_id,
                        "entity": entity,
                        "batch_index": batch_index,
                        "batch_size": len(batch),
                        "error": str(e)[:500],
                    },
                )
                raise UpsertError(
                    f"Failed to upsert {entity} batch {batch_index}: {e}",
                    entity=entity,
                    batch_index=batch_index,
                ) from e

            logger.debug(
                "Upsert batch committed",
                extra={
                    "tenant_id": self.tenant_id,
                    "entity": entity,
                    "batch_index": batch_index,
                    "batch_size": len(batch),
                },
            )

        logger.info(
            "Upsert complete",
            extra={"tenant_id": self.tenant_id, "entity": entity, "count": len(valid)},
        )
        return len(valid)

    def upsert_customers(self, records: Sequence[CustomerRecord]) -> int:
        """Upsert customers. Returns the number of records processed."""
        return self._run_batches(
            Customer,
            records,
            "customers",
            lambda batch: self._upsert_batch(Customer, batch, _customer_values),
        )

    def upsert_products(self, records: Sequence[ProductRecord]) -> int:
        """Upsert products. Returns the number of records processed."""
        return self._run_batches(
            Product,
            records,
            "products",
            lambda batch: self._upsert_batch(Product, batch, _product_values),
        )

    def upsert_orders(self, records: Sequence[OrderRecord]) -> int:
        """
        Upsert orders, link them to customers and replace their line items.

        Customer references are resolved with one lookup over every order
        before any batch is written. References to customers this tenant does
        not have are stored as NULL.

        Returns:
            Number of records processed
        """
        valid = self._valid_records(records, "orders")
        try:
            customer_ids = self._resolve_customer_ids(
                {r.customer_external_id for r in valid if r.customer_external_id}
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpsertError(f"Failed to resolve order customers: {e}", entity="orders") from e

        unresolved = sum(
            1 for r in valid
            if r.customer_external_id and r.customer_external_id not in customer_ids
        )
        if unresolved:
            logger.info(
                "Orders reference unknown customers, storing as guest orders",
                extra={"tenant_id": self.tenant_id, "unresolved": unresolved},
            )

        def values_for(record: OrderRecord) -> Dict[str, Any]:
            return {
                "customer_id": customer_ids.get(record.customer_external_id),
                "order_number": record.order_number,
                "total_price": record.total_price,
                "order_date": record.order_date,
            }

        def write_batch(batch: Sequence[OrderRecord]) -> None:
            order_ids = self._upsert_batch(Order, batch, values_for)
            self._replace_line_items(batch, order_ids)

        # Already filtered; _run_batches re-checks and reports the same count.
        return self._run_batches(Order, valid, "orders", write_batch)

    def _resolve_customer_ids(self, external_ids: Set[str]) -> Dict[str, str]:
        """Map customer external ids to internal keys for this tenant."""
        if not external_ids:
            return {}
        return self._existing_ids(Customer, sorted(external_ids))

    def _replace_line_items(
        self,
        batch: Sequence[OrderRecord],
        order_ids: Dict[str, str],
    ) -> None:
        """
        Delete and re-insert line items for the batch's orders.

        Orders whose source payload carried no line items at all are left
        untouched; an explicit empty list clears them.
        """
        replaced: List[Tuple[str, OrderRecord]] = [
            (order_ids[r.external_id], r) for r in batch if r.line_items is not None
        ]
        if not replaced:
            return

        self.db.execute(
            delete(OrderLineItem)
            .where(OrderLineItem.order_id.in_([order_id for order_id, _ in replaced]))
            .execution_options(synchronize_session=False)
        )

        rows: List[Dict[str, Any]] = []
        for order_id, record in replaced:
            seen: Set[str] = set()
            for item in record.line_items:
                if item.external_id in seen:
                    continue
                seen.add(item.external_id)
                rows.append({
                    "id": generate_uuid(),
                    "tenant_id": self.tenant_id,
                    "order_id": order_id,
                    "external_id": item.external_id,
                    "title": item.title,
                    "quantity": item.quantity,
                    "price": item.price,
                })
        if rows:
            self.db.execute(insert(OrderLineItem), rows)
