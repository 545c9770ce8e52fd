"""
Canonical records produced by the normalizer.

These are independent of the protocol (GraphQL or REST) that fetched the
data. `diagnostics` holds tags describing fallbacks the normalizer applied,
e.g. "first_name:default_address" or "total_price:unparseable".
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple


@dataclass
class CustomerRecord:
    external_id: Optional[str]
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    total_spent: Decimal = Decimal("0")
    diagnostics: Tuple[str, ...] = ()


@dataclass
class ProductRecord:
    external_id: Optional[str]
    title: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    price: Decimal = Decimal("0")
    diagnostics: Tuple[str, ...] = ()


@dataclass
class LineItemRecord:
    external_id: str
    title: Optional[str] = None
    quantity: int = 0
    price: Decimal = Decimal("0")


@dataclass
class OrderRecord:
    """
    Canonical order.

    line_items is None when the source did not provide line items at all;
    existing stored line items are then left untouched. An empty list means
    the order has no line items and any stored ones are removed.
    """
    external_id: Optional[str]
    customer_external_id: Optional[str] = None
    order_number: Optional[str] = None
    total_price: Decimal = Decimal("0")
    order_date: Optional[datetime] = None
    line_items: Optional[List[LineItemRecord]] = None
    diagnostics: Tuple[str, ...] = field(default_factory=tuple)
