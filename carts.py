"""
Cart documents.

Each cart carries a `version` counter. Writes only land if the version read
is still current; a lost race re-reads the cart and re-applies the change.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import ConflictError, NotFoundError
from pricing import aggregate, apply_cart_line, resolve_line

logger = logging.getLogger(__name__)

CART_WRITE_RETRIES = int(os.getenv("CART_WRITE_RETRIES", "3"))


def _attempts(retries: Optional[int]) -> int:
    return max(1, retries if retries is not None else CART_WRITE_RETRIES)


def get_or_create_cart(db, user_identifier: str) -> dict:
    now = datetime.now(timezone.utc)
    try:
        return db["cart"].find_one_and_update(
            {"user_identifier": user_identifier},
            {"$setOnInsert": {
                "user_identifier": user_identifier,
                "items": {},
                "products": [],
                "total_amount": 0.0,
                "version": 0,
                "created_at": now,
                "updated_at": now,
            }},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # a concurrent upsert created it first; the unique index kept it single
        return db["cart"].find_one({"user_identifier": user_identifier})


def _write_items(db, cart: dict, items: Dict[str, Dict[str, Any]]) -> bool:
    totals = aggregate(items)
    result = db["cart"].update_one(
        {"_id": cart["_id"], "version": cart["version"]},
        {
            "$set": {
                "items": items,
                "products": totals["product_ids"],
                "total_amount": totals["total_amount"],
                "updated_at": datetime.now(timezone.utc),
            },
            "$inc": {"version": 1},
        },
    )
    return result.matched_count == 1


def update_cart_line(db, catalog, user_identifier: str, sku: str, quantity: int, retries: Optional[int] = None) -> dict:
    """Upsert or delete one line of the user's cart and recompute its total."""
    attempts = _attempts(retries)
    for attempt in range(attempts):
        cart = get_or_create_cart(db, user_identifier)
        items = apply_cart_line(cart.get("items") or {}, sku, quantity, catalog)
        if _write_items(db, cart, items):
            return db["cart"].find_one({"_id": cart["_id"]})
        logger.info("Cart %s changed during update of %s (attempt %d/%d)", user_identifier, sku, attempt + 1, attempts)
    raise ConflictError(f"Cart for {user_identifier} is being modified concurrently, try again.", sku=sku)


def refresh_cart(db, catalog, user_identifier: str, retries: Optional[int] = None) -> Tuple[dict, List[dict]]:
    """
    Re-price every line at current product prices.

    Lines whose product or variant disappeared are left untouched and returned
    as issues.
    """
    attempts = _attempts(retries)
    for attempt in range(attempts):
        cart = get_or_create_cart(db, user_identifier)
        items = dict(cart.get("items") or {})
        issues = []
        for sku, line in list(items.items()):
            try:
                items[sku] = resolve_line(sku, line["quantity"], catalog, product_id=line.get("product_id"))
            except NotFoundError as e:
                issues.append(e.to_dict())
        if _write_items(db, cart, items):
            return db["cart"].find_one({"_id": cart["_id"]}), issues
        logger.info("Cart %s changed during refresh (attempt %d/%d)", user_identifier, attempt + 1, attempts)
    raise ConflictError(f"Cart for {user_identifier} is being modified concurrently, try again.")
