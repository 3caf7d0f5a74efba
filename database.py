"""
MongoDB access for the storefront.

`db` stays None when DATABASE_URL / DATABASE_NAME are not configured so the
API can still boot and report the problem from /test.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

_client: Optional[MongoClient] = None
db = None

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


UNIQUE_INDEXES = [
    ("product", "name", None),
    ("product", "sku", None),
    # products without variants carry no variants.sku key
    ("product", "variants.sku", {"variants.sku": {"$exists": True}}),
    ("cart", "user_identifier", None),
    ("category", "name", None),
    ("tag", "name", None),
]


def ensure_indexes(database) -> None:
    """Create the unique indexes that back name and SKU uniqueness."""
    for collection_name, field, partial in UNIQUE_INDEXES:
        options = {"unique": True}
        if partial:
            options["partialFilterExpression"] = partial
        try:
            database[collection_name].create_index([(field, ASCENDING)], **options)
        except Exception as exc:
            logger.warning("Unable to ensure unique index %s.%s: %s", collection_name, field, exc)


if db is not None:
    ensure_indexes(db)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with created/updated timestamps and return its id."""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    data_dict["created_at"] = _now()
    data_dict["updated_at"] = _now()
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
