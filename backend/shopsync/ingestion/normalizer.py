"""
Record normalizer.

Maps raw Shopify records into canonical records. Both REST (snake_case) and
GraphQL (camelCase, nested connections, money objects, GIDs) shapes are
accepted.

All functions are pure: they never raise on missing or malformed optional
structure and never log. Fallbacks taken are reported as diagnostic tags on
the returned record.

Name derivation precedence, per field, first match wins:
1. explicit top-level first/last name fields
2. the default address sub-object, then the addresses list's default entry
3. a combined display name: one token -> first name only; several tokens ->
   first name = all but the last token, last name = last token
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from shopsync.ingestion.records import (
    CustomerRecord,
    LineItemRecord,
    OrderRecord,
    ProductRecord,
)

GID_PREFIX = "gid://shopify/"

ZERO = Decimal("0")


def strip_gid(value: Any) -> Optional[str]:
    """
    Return the numeric tail of a Shopify GID, or the value as a string.

    'gid://shopify/Customer/123' -> '123'; 123 -> '123'; None -> None
    """
    if value is None or value == "":
        return None
    text = str(value)
    if text.startswith(GID_PREFIX):
        return text.rsplit("/", 1)[-1] or None
    return text


def parse_amount(value: Any) -> Tuple[Decimal, bool]:
    """
    Parse a money/number value.

    Accepts numbers, numeric strings and GraphQL money objects
    ({"amount": "1.00"} or {"shopMoney": {"amount": "1.00"}}).

    Returns:
        (amount, ok) where ok is False when the value was missing or
        unparseable and 0 was substituted.
    """
    if isinstance(value, dict):
        if "shopMoney" in value:
            value = (value.get("shopMoney") or {}).get("amount")
        else:
            value = value.get("amount")
    if value is None or value == "" or isinstance(value, bool):
        return ZERO, False
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO, False
    if not amount.is_finite():
        return ZERO, False
    return amount, True


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; invalid or missing values give None."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _first_present(source: Dict[str, Any], *keys: str) -> Optional[Any]:
    for key in keys:
        value = source.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _address_candidates(raw: Dict[str, Any]) -> List[Tuple[str, Dict[str, Any]]]:
    """
    Address sub-objects to take missing fields from, in precedence order:
    the default address object, then the addresses list's default entry
    (or its first entry when none is marked default).
    """
    candidates: List[Tuple[str, Dict[str, Any]]] = []
    address = _as_dict(raw.get("default_address")) or _as_dict(raw.get("defaultAddress"))
    if address:
        candidates.append(("default_address", address))
    addresses = raw.get("addresses")
    if isinstance(addresses, list):
        entries = [a for a in addresses if isinstance(a, dict)]
        default = next((a for a in entries if a.get("default") is True), None)
        if default is None and entries:
            default = entries[0]
        if default:
            candidates.append(("addresses", default))
    return candidates


def _default_address(raw: Dict[str, Any]) -> Dict[str, Any]:
    candidates = _address_candidates(raw)
    return candidates[0][1] if candidates else {}


def _from_addresses(
    raw: Dict[str, Any],
    *keys: str,
) -> Tuple[Optional[Any], Optional[str]]:
    """First address value for keys, with the source it came from."""
    for source, address in _address_candidates(raw):
        value = _first_present(address, *keys)
        if value is not None:
            return value, source
    return None, None


def split_display_name(display_name: Any) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a combined display name.

    'Cher' -> ('Cher', None); 'John Q Public' -> ('John Q', 'Public')
    """
    if not isinstance(display_name, str):
        return None, None
    parts = display_name.split()
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], None
    return " ".join(parts[:-1]), parts[-1]


def derive_name_parts(raw: Any) -> Tuple[Optional[str], Optional[str], Tuple[str, ...]]:
    """
    Derive (first_name, last_name, diagnostics) from a raw customer record.
    """
    if not isinstance(raw, dict):
        return None, None, ("name:missing",)

    diagnostics: List[str] = []
    first_name = _first_present(raw, "first_name", "firstName")
    last_name = _first_present(raw, "last_name", "lastName")

    if first_name is None:
        first_name, source = _from_addresses(raw, "first_name", "firstName")
        if source:
            diagnostics.append(f"first_name:{source}")
    if last_name is None:
        last_name, source = _from_addresses(raw, "last_name", "lastName")
        if source:
            diagnostics.append(f"last_name:{source}")

    if first_name is None or last_name is None:
        display_name = _first_present(raw, "display_name", "displayName", "name")
        if display_name is None:
            display_name = _first_present(_default_address(raw), "name")
        split_first, split_last = split_display_name(display_name)
        if first_name is None and split_first is not None:
            first_name = split_first
            diagnostics.append("first_name:display_name")
        if last_name is None and split_last is not None:
            last_name = split_last
            diagnostics.append("last_name:display_name")

    return first_name, last_name, tuple(diagnostics)


def normalize_customer(raw: Any) -> CustomerRecord:
    """Normalize a REST or GraphQL customer."""
    if not isinstance(raw, dict):
        return CustomerRecord(external_id=None, diagnostics=("record:not_an_object",))

    diagnostics: List[str] = []
    external_id = strip_gid(raw.get("id"))
    if external_id is None:
        diagnostics.append("external_id:missing")

    email = _first_present(raw, "email")
    if email is None:
        email, source = _from_addresses(raw, "email")
        if source:
            diagnostics.append(f"email:{source}")

    first_name, last_name, name_diagnostics = derive_name_parts(raw)
    diagnostics.extend(name_diagnostics)

    spent_raw = _first_present(raw, "total_spent", "totalSpent", "amountSpent")
    total_spent, ok = parse_amount(spent_raw)
    if not ok and spent_raw is not None:
        diagnostics.append("total_spent:unparseable")

    return CustomerRecord(
        external_id=external_id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        total_spent=total_spent,
        diagnostics=tuple(diagnostics),
    )


def _first_variant_price(raw: Dict[str, Any]) -> Any:
    variants = raw.get("variants")
    if isinstance(variants, dict):
        # GraphQL connection: {"edges": [{"node": {...}}]}
        edges = variants.get("edges") or []
        nodes = [_as_dict(e).get("node") for e in edges]
        variants = [n for n in nodes if isinstance(n, dict)]
    if isinstance(variants, list) and variants and isinstance(variants[0], dict):
        return variants[0].get("price")
    return None


def normalize_product(raw: Any) -> ProductRecord:
    """Normalize a REST or GraphQL product. Price comes from the first variant."""
    if not isinstance(raw, dict):
        return ProductRecord(external_id=None, diagnostics=("record:not_an_object",))

    diagnostics: List[str] = []
    external_id = strip_gid(raw.get("id"))
    if external_id is None:
        diagnostics.append("external_id:missing")

    price_raw = _first_variant_price(raw)
    price, ok = parse_amount(price_raw)
    if not ok:
        diagnostics.append("price:missing" if price_raw is None else "price:unparseable")

    return ProductRecord(
        external_id=external_id,
        title=raw.get("title"),
        vendor=raw.get("vendor"),
        product_type=_first_present(raw, "product_type", "productType"),
        price=price,
        diagnostics=tuple(diagnostics),
    )


def normalize_line_item(raw: Any, position: int) -> LineItemRecord:
    """
    Normalize a line item. Items without an id are keyed by their position
    in the order.
    """
    raw = _as_dict(raw)
    external_id = strip_gid(raw.get("id")) or str(position)

    quantity_raw = raw.get("quantity")
    try:
        quantity = int(quantity_raw) if quantity_raw is not None else 0
    except (TypeError, ValueError):
        quantity = 0

    price, _ = parse_amount(
        _first_present(raw, "price", "originalUnitPriceSet", "originalUnitPrice")
    )

    return LineItemRecord(
        external_id=external_id,
        title=_first_present(raw, "title", "name"),
        quantity=quantity,
        price=price,
    )


def _line_items(raw: Dict[str, Any]) -> Optional[List[LineItemRecord]]:
    if "line_items" in raw:
        items = raw.get("line_items")
    elif "lineItems" in raw:
        items = raw.get("lineItems")
        if isinstance(items, dict):
            items = [_as_dict(e).get("node") for e in items.get("edges") or []]
    else:
        return None
    if not isinstance(items, list):
        return []
    return [
        normalize_line_item(item, position)
        for position, item in enumerate(items)
        if isinstance(item, dict)
    ]


def normalize_order(raw: Any) -> OrderRecord:
    """Normalize a REST or GraphQL order, including nested line items."""
    if not isinstance(raw, dict):
        return OrderRecord(external_id=None, diagnostics=("record:not_an_object",))

    diagnostics: List[str] = []
    external_id = strip_gid(raw.get("id"))
    if external_id is None:
        diagnostics.append("external_id:missing")

    customer_external_id = strip_gid(_as_dict(raw.get("customer")).get("id"))

    order_number = _first_present(raw, "order_number", "name")
    if order_number is not None:
        order_number = str(order_number)

    price_raw = _first_present(raw, "total_price", "totalPriceSet", "totalPrice")
    total_price, ok = parse_amount(price_raw)
    if not ok:
        diagnostics.append("total_price:missing" if price_raw is None else "total_price:unparseable")

    order_date = parse_timestamp(_first_present(raw, "created_at", "createdAt"))
    if order_date is None:
        diagnostics.append("order_date:missing")

    return OrderRecord(
        external_id=external_id,
        customer_external_id=customer_external_id,
        order_number=order_number,
        total_price=total_price,
        order_date=order_date,
        line_items=_line_items(raw),
        diagnostics=tuple(diagnostics),
    )
