"""Product lookups by id and SKU over the `product` collection."""
from typing import Iterable, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId


def parse_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


class MongoCatalog:
    def __init__(self, db):
        self.collection = db["product"]

    def find_product_by_id(self, product_id) -> Optional[dict]:
        oid = parse_object_id(product_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def find_product_by_sku(self, sku: str) -> Optional[dict]:
        return self.collection.find_one({"sku": sku})

    def find_product_by_variant_sku(self, sku: str) -> Optional[Tuple[dict, dict]]:
        product = self.collection.find_one({"variants.sku": sku})
        if not product:
            return None
        for variant in product.get("variants") or []:
            if variant.get("sku") == sku:
                return product, variant
        return None

    def find_sku_conflict(self, skus: Iterable[str], exclude_id=None) -> Optional[dict]:
        """Return another product already using one of `skus`, base or variant."""
        skus = list(skus)
        query = {"$or": [{"sku": {"$in": skus}}, {"variants.sku": {"$in": skus}}]}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return self.collection.find_one(query)
