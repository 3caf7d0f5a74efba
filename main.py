import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError

import variants
from carts import get_or_create_cart, refresh_cart, update_cart_line
from catalog import MongoCatalog, parse_object_id
from database import db, create_document, get_documents
from errors import BatchValidationError, ConflictError, NotFoundError, StoreError, ValidationError
from pricing import aggregate, resolve_order_lines
from schemas import (
    Cart,
    CartLineRequest,
    Category,
    Order,
    OrderRequest,
    OrderStatusUpdate,
    Product,
    Tag,
    VariantUpdate,
)

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

VARIANT_REGENERATION = os.getenv("VARIANT_REGENERATION", "merge")

app = FastAPI(title="Storefront API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Helpers

def to_str_id(doc: dict):
    if not doc:
        return doc
    d = doc.copy()
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def require_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def get_user_identifier(x_user_identifier: Optional[str] = Header(None)) -> str:
    if not x_user_identifier:
        raise HTTPException(status_code=401, detail="No active session found")
    return x_user_identifier


def http_error(e: StoreError) -> HTTPException:
    if isinstance(e, BatchValidationError):
        return HTTPException(status_code=404 if e.all_not_found else 400, detail=e.to_dict())
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=e.to_dict())
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=e.to_dict())
    return HTTPException(status_code=400, detail=e.to_dict())


def cart_out(cart: dict) -> dict:
    out = Cart(**cart).model_dump()
    out["id"] = str(cart["_id"])
    out["updated_at"] = cart.get("updated_at")
    return out

# -----------------------
# Product documents
# -----------------------

def check_product_unique(name: str, skus: List[str], exclude_id=None):
    """
    Early, readable 409s for name and SKU clashes.

    The unique indexes from database.ensure_indexes still guard concurrent
    writes; base SKU against another product's variant SKU is only checked here.
    """
    name_query = {"name": name}
    if exclude_id is not None:
        name_query["_id"] = {"$ne": exclude_id}
    if db["product"].find_one(name_query):
        raise ConflictError(f'Product name "{name}" already exists.')
    clash = MongoCatalog(db).find_sku_conflict(skus, exclude_id=exclude_id)
    if clash:
        raise ConflictError(f'SKU already used by product "{clash.get("name")}".')


def build_product_document(payload: Product, existing: Optional[dict] = None) -> dict:
    """
    Validate option groups, regenerate variants and check SKU/name uniqueness.

    On update the previous variants are merged by option combination unless
    VARIANT_REGENERATION is "replace".
    """
    groups = variants.clean_option_groups([g.model_dump() for g in payload.product_options])
    option_map = variants.normalize_option_groups(groups)
    generated = variants.generate_variants(option_map, payload.sku, payload.stock)

    duplicates = variants.find_duplicate_skus(generated)
    if duplicates:
        raise ValidationError(f"Option values collapse to the same SKU: {', '.join(duplicates)}", sku=duplicates[0])

    if existing is not None and VARIANT_REGENERATION == "merge":
        generated = variants.merge_variants(existing.get("variants"), generated)

    skus = [payload.sku] + [v["sku"] for v in generated]
    unstorable = variants.find_unstorable_skus(skus)
    if unstorable:
        raise ValidationError(f"SKUs cannot contain '.' or start with '$': {', '.join(unstorable)}", sku=unstorable[0])

    check_product_unique(payload.name, skus, existing["_id"] if existing is not None else None)

    doc = payload.model_dump()
    doc["slug"] = variants.slugify(payload.name)
    doc["product_options"] = groups
    doc["variants"] = generated
    return doc

# ---------
# Root/Test
# ---------

@app.get("/")
def read_root():
    return {"message": "Storefront API is running"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response

# ---------------
# Catalog Endpoints
# ---------------

@app.get("/api/products")
def list_products(category: Optional[str] = None, q: Optional[str] = None, limit: int = 50, include_unpublished: bool = False):
    require_db()
    filter_dict = {}
    if not include_unpublished:
        filter_dict["published"] = True
    if category:
        # category id, else category slug
        if parse_object_id(category) is None:
            category_doc = db["category"].find_one({"slug": category})
            if not category_doc:
                return []
            category = str(category_doc["_id"])
        filter_dict["categories"] = category
    if q:
        filter_dict["name"] = {"$regex": q, "$options": "i"}
    docs = get_documents("product", filter_dict, limit)
    return [to_str_id(d) for d in docs]

@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    require_db()
    doc = MongoCatalog(db).find_product_by_id(product_id)
    if doc is None:
        # client may pass slug
        doc = db["product"].find_one({"slug": product_id})
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return to_str_id(doc)

@app.post("/api/products", status_code=201)
def create_product(payload: Product):
    require_db()
    try:
        doc = build_product_document(payload)
    except StoreError as e:
        raise http_error(e) from e
    try:
        inserted_id = create_document("product", doc)
    except DuplicateKeyError as e:
        raise http_error(ConflictError("Product name or SKU already exists.", sku=payload.sku)) from e
    logger.info("Created product %s with %d variants", payload.sku, len(doc["variants"]))
    return to_str_id(db["product"].find_one({"_id": parse_object_id(inserted_id)}))

@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: Product):
    require_db()
    existing = MongoCatalog(db).find_product_by_id(product_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Product not found")
    try:
        doc = build_product_document(payload, existing=existing)
    except StoreError as e:
        raise http_error(e) from e
    doc["created_at"] = existing.get("created_at")
    doc["updated_at"] = datetime.now(timezone.utc)
    try:
        db["product"].replace_one({"_id": existing["_id"]}, doc)
    except DuplicateKeyError as e:
        raise http_error(ConflictError("Product name or SKU already exists.", sku=payload.sku)) from e
    return to_str_id(db["product"].find_one({"_id": existing["_id"]}))

@app.patch("/api/products/{product_id}/variants/{sku}")
def update_variant(product_id: str, sku: str, payload: VariantUpdate):
    require_db()
    oid = parse_object_id(product_id)
    changes = {f"variants.$.{k}": v for k, v in payload.model_dump().items() if v is not None}
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    result = db["product"].update_one({"_id": oid, "variants.sku": sku}, {"$set": changes})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail=f'Variant with SKU "{sku}" not found in product.')
    return to_str_id(db["product"].find_one({"_id": oid}))

@app.delete("/api/products/{product_id}")
def delete_product(product_id: str):
    require_db()
    result = db["product"].delete_one({"_id": parse_object_id(product_id)})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"message": "Product deleted"}


# Categories and tags share one shape; products point back through these fields
PRODUCT_REFERENCE = {"category": "categories", "tag": "tags"}


def _name_taken(collection: str, name: str) -> HTTPException:
    return HTTPException(status_code=409, detail=f'{collection.title()} "{name}" already exists')


def _create_named(collection: str, payload: BaseModel):
    require_db()
    if db[collection].find_one({"name": payload.name}):
        raise _name_taken(collection, payload.name)
    doc = payload.model_dump()
    doc["slug"] = variants.slugify(payload.name)
    try:
        inserted_id = create_document(collection, doc)
    except DuplicateKeyError as e:
        raise _name_taken(collection, payload.name) from e
    return {"id": inserted_id, "slug": doc["slug"]}


def _find_named(collection: str, item_id: str) -> dict:
    oid = parse_object_id(item_id)
    if oid is None:
        raise HTTPException(status_code=400, detail=f"Invalid {collection.title()} ID")
    doc = db[collection].find_one({"_id": oid})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{collection.title()} not found")
    return doc


def _get_named(collection: str, item_id: str) -> dict:
    require_db()
    doc = to_str_id(_find_named(collection, item_id))
    product_ids = [oid for oid in (parse_object_id(p) for p in doc.get("products") or []) if oid is not None]
    summaries = db["product"].find({"_id": {"$in": product_ids}}, {"name": 1, "slug": 1, "sku": 1, "media_urls": 1})
    doc["products"] = [to_str_id(p) for p in summaries]
    return doc


def _update_named(collection: str, item_id: str, payload: BaseModel) -> dict:
    require_db()
    doc = _find_named(collection, item_id)
    if db[collection].find_one({"name": payload.name, "_id": {"$ne": doc["_id"]}}):
        raise _name_taken(collection, payload.name)
    changes = {"name": payload.name, "slug": variants.slugify(payload.name), "updated_at": datetime.now(timezone.utc)}
    try:
        db[collection].update_one({"_id": doc["_id"]}, {"$set": changes})
    except DuplicateKeyError as e:
        raise _name_taken(collection, payload.name) from e
    return to_str_id(db[collection].find_one({"_id": doc["_id"]}))


def _delete_named(collection: str, item_id: str) -> dict:
    require_db()
    doc = _find_named(collection, item_id)
    db[collection].delete_one({"_id": doc["_id"]})
    field = PRODUCT_REFERENCE[collection]
    db["product"].update_many({field: str(doc["_id"])}, {"$pull": {field: str(doc["_id"])}})
    return {"message": f"{collection.title()} deleted"}

@app.get("/api/categories")
def list_categories(limit: int = 50):
    require_db()
    docs = get_documents("category", {}, limit)
    return [to_str_id(d) for d in docs]

@app.post("/api/categories", status_code=201)
def create_category(payload: Category):
    return _create_named("category", payload)

@app.get("/api/categories/{category_id}")
def get_category(category_id: str):
    return _get_named("category", category_id)

@app.put("/api/categories/{category_id}")
def update_category(category_id: str, payload: Category):
    return _update_named("category", category_id, payload)

@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str):
    return _delete_named("category", category_id)

class AddProductRequest(BaseModel):
    product: str

@app.put("/api/categories/{category_id}/add-product")
def add_product_to_category(category_id: str, payload: AddProductRequest):
    require_db()
    category = _find_named("category", category_id)
    product_oid = parse_object_id(payload.product)
    if product_oid is None:
        raise HTTPException(status_code=400, detail="Invalid Product ID")
    if not db["product"].find_one({"_id": product_oid}):
        raise HTTPException(status_code=404, detail="Product not found")
    db["category"].update_one({"_id": category["_id"]}, {"$addToSet": {"products": str(product_oid)}})
    db["product"].update_one({"_id": product_oid}, {"$addToSet": {"categories": str(category["_id"])}})
    return to_str_id(db["category"].find_one({"_id": category["_id"]}))

@app.get("/api/tags")
def list_tags(limit: int = 50):
    require_db()
    docs = get_documents("tag", {}, limit)
    return [to_str_id(d) for d in docs]

@app.post("/api/tags", status_code=201)
def create_tag(payload: Tag):
    return _create_named("tag", payload)

@app.get("/api/tags/{tag_id}")
def get_tag(tag_id: str):
    return _get_named("tag", tag_id)

@app.put("/api/tags/{tag_id}")
def update_tag(tag_id: str, payload: Tag):
    return _update_named("tag", tag_id, payload)

@app.delete("/api/tags/{tag_id}")
def delete_tag(tag_id: str):
    return _delete_named("tag", tag_id)

# ---------------
# Cart Endpoints
# ---------------

@app.get("/api/cart")
def get_cart(user_identifier: str = Depends(get_user_identifier)):
    require_db()
    return cart_out(get_or_create_cart(db, user_identifier))

@app.post("/api/cart")
def update_cart(payload: CartLineRequest, user_identifier: str = Depends(get_user_identifier)):
    require_db()
    try:
        cart = update_cart_line(db, MongoCatalog(db), user_identifier, payload.sku, payload.quantity)
    except StoreError as e:
        raise http_error(e) from e
    return cart_out(cart)

@app.post("/api/cart/refresh")
def refresh(user_identifier: str = Depends(get_user_identifier)):
    require_db()
    try:
        cart, issues = refresh_cart(db, MongoCatalog(db), user_identifier)
    except StoreError as e:
        raise http_error(e) from e
    return {"cart": cart_out(cart), "issues": issues}

# -------------------------
# Pricing endpoints (quote)
# -------------------------

class QuoteRequest(BaseModel):
    items: List[CartLineRequest]

@app.post("/api/pricing/quote")
def pricing_quote(payload: QuoteRequest):
    require_db()
    try:
        lines = resolve_order_lines([i.model_dump() for i in payload.items], MongoCatalog(db))
    except StoreError as e:
        raise http_error(e) from e
    totals = aggregate(lines)
    return {"items": lines, "total_amount": totals["total_amount"], "products": totals["product_ids"]}

# ---------------
# Orders Endpoints
# ---------------

@app.post("/api/orders", status_code=201)
def create_order(payload: OrderRequest):
    require_db()
    try:
        lines = resolve_order_lines([i.model_dump() for i in payload.items], MongoCatalog(db))
    except StoreError as e:
        raise http_error(e) from e
    totals = aggregate(lines)

    # Snapshot the resolved lines; orders are never re-priced
    order = Order(
        items=lines,
        products=totals["product_ids"],
        total_amount=totals["total_amount"],
        shipping_address=payload.shipping_address,
        billing_address=payload.billing_address,
        payment_method=payload.payment_method,
    )
    inserted_id = create_document("order", order)
    logger.info("Created order %s: %d lines, total %.2f", inserted_id, len(lines), order.total_amount)
    return to_str_id(db["order"].find_one({"_id": parse_object_id(inserted_id)}))

@app.get("/api/orders")
def list_orders(limit: int = 50):
    require_db()
    docs = db["order"].find().sort("created_at", -1).limit(limit)
    return [to_str_id(d) for d in docs]

def _find_order(order_id: str) -> dict:
    oid = parse_object_id(order_id)
    if oid is None:
        raise HTTPException(status_code=400, detail="Invalid order ID.")
    doc = db["order"].find_one({"_id": oid})
    if not doc:
        raise HTTPException(status_code=404, detail="Order not found.")
    return doc

@app.get("/api/orders/{order_id}")
def get_order(order_id: str):
    require_db()
    return to_str_id(_find_order(order_id))

@app.put("/api/orders/{order_id}")
def update_order_status(order_id: str, payload: OrderStatusUpdate):
    require_db()
    doc = _find_order(order_id)
    db["order"].update_one(
        {"_id": doc["_id"]},
        {"$set": {"order_status": payload.order_status, "updated_at": datetime.now(timezone.utc)}},
    )
    return to_str_id(db["order"].find_one({"_id": doc["_id"]}))

@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str):
    require_db()
    doc = _find_order(order_id)
    db["order"].delete_one({"_id": doc["_id"]})
    return {"message": "Order deleted"}

# ---------------
# Seed demo data
# ---------------

def _seed_payload():
    categories = [
        Category(name="T-Shirts"),
        Category(name="Accessories"),
    ]
    products = [
        Product(
            name="Classic Cotton Tee",
            sku="SHIRT",
            stock=10,
            price_data={"price": 100, "discounted_price": 80},
            product_options=[
                {"name": "Color", "option_type": "color", "choices": {"Red": "#FF0000", "Blue": "#0000FF"}},
                {"name": "Size", "option_type": "drop_down", "choices": ["S", "M"]},
                {"name": "Care", "option_type": "json", "choices": {"wash": "30C"}},
            ],
        ),
        Product(
            name="Canvas Tote Bag",
            sku="TOTE",
            stock=25,
            price_data={"price": 35},
        ),
    ]
    return categories, products


def ensure_seeded() -> dict:
    created = {"categories": 0, "products": 0}
    if db is None:
        return created
    categories, products = _seed_payload()
    try:
        if db["category"].count_documents({}) == 0:
            for category in categories:
                _create_named("category", category)
            created["categories"] = len(categories)
        if db["product"].count_documents({}) == 0:
            for product in products:
                create_document("product", build_product_document(product))
            created["products"] = len(products)
    except Exception as exc:
        logger.warning("Unable to seed demo data: %s", exc)
    return created

@app.post("/api/seed")
def seed_demo():
    """Seed categories and sample products if collections are empty."""
    created = ensure_seeded()
    return {"seeded": created}

# Auto-seed on startup if empty (idempotent)

@app.on_event("startup")
async def startup_event():
    ensure_seeded()

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
