import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from catalog import MongoCatalog
from schemas import Product


@pytest.fixture
def mongo_db(monkeypatch):
    mdb = mongomock.MongoClient()["storefront_test"]
    database.ensure_indexes(mdb)
    monkeypatch.setattr(database, "db", mdb)
    monkeypatch.setattr(main, "db", mdb)
    return mdb


@pytest.fixture
def catalog(mongo_db):
    return MongoCatalog(mongo_db)


@pytest.fixture
def client(mongo_db):
    # no context manager: the startup seed stays out of the way
    return TestClient(main.app)


def shirt_payload(**overrides):
    payload = {
        "name": "Classic Cotton Tee",
        "sku": "SHIRT",
        "stock": 10,
        "price_data": {"price": 100, "discounted_price": 80},
        "product_options": [
            {"name": "Color", "option_type": "color", "choices": {"Red": "#FF0000", "Blue": "#0000FF"}},
            {"name": "Size", "option_type": "drop_down", "choices": ["S", "M"]},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def add_product(mongo_db):
    def _add(**overrides):
        doc = main.build_product_document(Product(**shirt_payload(**overrides)))
        inserted_id = database.create_document("product", doc)
        return mongo_db["product"].find_one({"_id": main.parse_object_id(inserted_id)})
    return _add


@pytest.fixture
def shirt():
    return shirt_payload
