# marketplace/domain/projection.py
from decimal import Decimal
from typing import Any, Dict, Mapping


def project_for_seller(order: Mapping[str, Any], seller_id: int) -> Dict[str, Any]:
    """
    Seller scoped view of an order.

    Keeps only the seller's own line items and replaces total_amount with the
    sum of their subtotals. Returns a new dict, the input is left untouched.
    """
    items = [dict(item) for item in order["items"] if item["seller_id"] == seller_id]
    total = sum((Decimal(item["subtotal"]) for item in items), Decimal("0.00"))

    projected = dict(order)
    projected["items"] = items
    projected["total_amount"] = total
    if isinstance(order.get("shipping_address"), Mapping):
        projected["shipping_address"] = dict(order["shipping_address"])
    return projected
