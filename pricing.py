"""
Cart and order pricing.

Lines are always priced at the owning product's effective price at the moment
they are resolved. Orders persist the resolved lines right away; carts are
re-resolved on refresh and may change total when a product price changes.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from errors import BatchValidationError, ConsistencyError, NotFoundError, StoreError, ValidationError

logger = logging.getLogger(__name__)


def effective_price(price_data: Optional[Mapping[str, Any]]) -> float:
    price_data = price_data or {}
    discounted = price_data.get("discounted_price")
    if discounted is not None and float(discounted) > 0:
        return float(discounted)
    return float(price_data.get("price") or 0)


def _check_request(sku, quantity, for_order: bool):
    if not isinstance(sku, str) or not sku.strip():
        raise ValidationError("Missing SKU", sku=sku if isinstance(sku, str) else None)
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f'Quantity for SKU "{sku}" must be an integer.', sku=sku)
    if quantity <= 0:
        what = "an order" if for_order else "a cart"
        raise ValidationError(f'Quantity for SKU "{sku}" must be positive in {what} line.', sku=sku)


def _match_variant(product: dict, sku: str) -> Optional[dict]:
    for variant in product.get("variants") or []:
        if variant.get("sku") == sku:
            return variant
    if not product.get("variants") and product.get("sku") == sku:
        # product without variants is sold at its own SKU
        return {"sku": sku, "options": {}}
    return None


def resolve_line(sku: str, quantity: int, catalog, for_order: bool = False, product_id=None) -> Dict[str, Any]:
    """
    Resolve one (sku, quantity) request to a priced line.

    When `product_id` is given the line is re-resolved against that product
    and a missing variant means the product's options were regenerated since
    the line was added.
    """
    _check_request(sku, quantity, for_order)

    if product_id is not None:
        product = catalog.find_product_by_id(product_id)
        if not product:
            raise NotFoundError(f'Product for SKU "{sku}" no longer exists.', sku=sku)
        variant = _match_variant(product, sku)
        if variant is None and product.get("sku") == sku:
            raise NotFoundError(f'Variant with SKU "{sku}" not found in product.', sku=sku)
        if variant is None:
            raise ConsistencyError(f'Variant with SKU "{sku}" no longer exists in product "{product.get("name")}".', sku=sku)
    else:
        found = catalog.find_product_by_variant_sku(sku)
        if found:
            product, variant = found
        else:
            product = catalog.find_product_by_sku(sku)
            if not product:
                raise NotFoundError(f'Product with SKU "{sku}" not found.', sku=sku)
            variant = _match_variant(product, sku)
            if variant is None:
                raise NotFoundError(f'Variant with SKU "{sku}" not found in product.', sku=sku)

    unit_price = effective_price(product.get("price_data"))
    return {
        "product_id": str(product["_id"]),
        "product_name": product.get("name"),
        "sku": sku,
        "unit_price": unit_price,
        "quantity": quantity,
        "line_total": round(unit_price * quantity, 2),
        "variant_options": dict(variant.get("options") or {}),
    }


def aggregate(lines: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
    total = 0.0
    product_ids: List[str] = []
    for line in lines.values():
        total += float(line["unit_price"]) * line["quantity"]
        if line["product_id"] not in product_ids:
            product_ids.append(line["product_id"])
    return {"total_amount": round(total, 2), "product_ids": product_ids}


def apply_cart_line(items: Dict[str, Dict[str, Any]], sku: str, quantity: int, catalog) -> Dict[str, Dict[str, Any]]:
    """Upsert the line for `sku`, or drop it when quantity <= 0."""
    if not isinstance(sku, str) or not sku.strip():
        raise ValidationError("Missing SKU")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f'Quantity for SKU "{sku}" must be an integer.', sku=sku)
    items = dict(items)
    if quantity <= 0:
        items.pop(sku, None)
    else:
        items[sku] = resolve_line(sku, quantity, catalog)
    return items


def resolve_order_lines(requests: List[Mapping[str, Any]], catalog) -> Dict[str, Dict[str, Any]]:
    """
    Resolve every requested line or none of them.

    Failures are collected across the whole batch so the caller can report
    each failing SKU at once.
    """
    if not requests:
        raise BatchValidationError("Order must contain at least one item", [])

    lines: Dict[str, Dict[str, Any]] = {}
    problems: List[StoreError] = []
    for request in requests:
        sku = request.get("sku")
        try:
            line = resolve_line(sku, request.get("quantity"), catalog, for_order=True, product_id=request.get("product_id"))
        except (ValidationError, NotFoundError) as e:
            problems.append(e)
            continue
        if sku in lines:
            problems.append(ValidationError(f'SKU "{sku}" appears more than once in the order.', sku=sku))
            continue
        lines[sku] = line

    if problems:
        logger.info("Rejected order: %d of %d lines failed", len(problems), len(requests))
        raise BatchValidationError("Invalid order items", problems)
    return lines
