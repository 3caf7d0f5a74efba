import pytest

from errors import BatchValidationError, ConsistencyError, NotFoundError, ValidationError
from pricing import aggregate, apply_cart_line, effective_price, resolve_line, resolve_order_lines


@pytest.mark.parametrize("price_data,expected", [
    ({"price": 100, "discounted_price": 80}, 80),
    ({"price": 100, "discounted_price": None}, 100),
    ({"price": 100, "discounted_price": 0}, 100),
    ({"price": 100}, 100),
])
def test_effective_price(price_data, expected):
    assert effective_price(price_data) == expected


def test_resolve_uses_discounted_price(add_product, catalog):
    product = add_product()
    line = resolve_line("SHIRT-RED-S", 3, catalog)
    assert line["unit_price"] == 80
    assert line["line_total"] == 240
    assert line["product_id"] == str(product["_id"])
    assert line["product_name"] == "Classic Cotton Tee"
    assert line["variant_options"] == {"Color": "Red", "Size": "S"}


def test_resolve_without_discount(add_product, catalog):
    add_product(price_data={"price": 100})
    line = resolve_line("SHIRT-BLUE-M", 3, catalog)
    assert (line["unit_price"], line["line_total"]) == (100, 300)


def test_price_is_read_at_resolution_time(add_product, catalog, mongo_db):
    product = add_product()
    assert resolve_line("SHIRT-RED-S", 1, catalog)["unit_price"] == 80
    mongo_db["product"].update_one({"_id": product["_id"]}, {"$set": {"price_data.discounted_price": 70}})
    assert resolve_line("SHIRT-RED-S", 1, catalog)["unit_price"] == 70


def test_product_without_variants_sells_at_base_sku(add_product, catalog):
    add_product(name="Tote", sku="TOTE", product_options=[], price_data={"price": 35})
    line = resolve_line("TOTE", 2, catalog)
    assert line["line_total"] == 70
    assert line["variant_options"] == {}


def test_unknown_sku(add_product, catalog):
    add_product()
    with pytest.raises(NotFoundError):
        resolve_line("NOPE", 1, catalog)


def test_base_sku_of_product_with_variants_is_not_sellable(add_product, catalog):
    add_product()
    with pytest.raises(NotFoundError) as exc:
        resolve_line("SHIRT", 1, catalog)
    assert not isinstance(exc.value, ConsistencyError)


def test_regenerated_variant_is_a_consistency_error(add_product, catalog, mongo_db):
    product = add_product()
    mongo_db["product"].update_one(
        {"_id": product["_id"]},
        {"$pull": {"variants": {"sku": "SHIRT-RED-S"}}},
    )
    with pytest.raises(ConsistencyError):
        resolve_line("SHIRT-RED-S", 1, catalog, product_id=str(product["_id"]))


@pytest.mark.parametrize("sku,quantity", [("", 1), ("SHIRT-RED-S", 0), ("SHIRT-RED-S", -2), ("SHIRT-RED-S", "2")])
def test_invalid_requests(add_product, catalog, sku, quantity):
    add_product()
    with pytest.raises(ValidationError):
        resolve_line(sku, quantity, catalog, for_order=True)


def test_aggregate_dedupes_products():
    lines = {
        "A-1": {"product_id": "p1", "unit_price": 10.0, "quantity": 2},
        "A-2": {"product_id": "p1", "unit_price": 10.0, "quantity": 1},
        "B": {"product_id": "p2", "unit_price": 2.5, "quantity": 4},
    }
    assert aggregate(lines) == {"total_amount": 40.0, "product_ids": ["p1", "p2"]}


def test_aggregate_empty():
    assert aggregate({}) == {"total_amount": 0.0, "product_ids": []}


def test_cart_line_upsert_and_delete(add_product, catalog):
    add_product()
    items = apply_cart_line({}, "SHIRT-RED-S", 2, catalog)
    items = apply_cart_line(items, "SHIRT-BLUE-M", 1, catalog)
    items = apply_cart_line(items, "SHIRT-RED-S", 5, catalog)
    assert items["SHIRT-RED-S"]["quantity"] == 5
    assert aggregate(items)["total_amount"] == 480

    items = apply_cart_line(items, "SHIRT-RED-S", 0, catalog)
    assert list(items) == ["SHIRT-BLUE-M"]
    assert aggregate(items)["total_amount"] == 80


def test_cart_delete_needs_no_product(catalog):
    items = {"GONE": {"product_id": "p", "unit_price": 1.0, "quantity": 1}}
    assert apply_cart_line(items, "GONE", 0, catalog) == {}


def test_order_lines_all_or_nothing(add_product, catalog):
    add_product()
    requests = [
        {"sku": "SHIRT-RED-S", "quantity": 1},
        {"sku": "SHIRT-RED-M", "quantity": 2},
        {"sku": "SHIRT-BLUE-S", "quantity": 1},
        {"sku": "UNKNOWN", "quantity": 1},
    ]
    with pytest.raises(BatchValidationError) as exc:
        resolve_order_lines(requests, catalog)
    assert [e.sku for e in exc.value.errors] == ["UNKNOWN"]
    assert exc.value.all_not_found


def test_order_lines_report_every_failure(add_product, catalog):
    add_product()
    requests = [
        {"sku": "SHIRT-RED-S", "quantity": 0},
        {"sku": "UNKNOWN", "quantity": 1},
        {"sku": "SHIRT-BLUE-S", "quantity": 1},
        {"sku": "SHIRT-BLUE-S", "quantity": 3},
    ]
    with pytest.raises(BatchValidationError) as exc:
        resolve_order_lines(requests, catalog)
    assert [e.sku for e in exc.value.errors] == ["SHIRT-RED-S", "UNKNOWN", "SHIRT-BLUE-S"]
    assert not exc.value.all_not_found


def test_empty_order_rejected(catalog):
    with pytest.raises(BatchValidationError):
        resolve_order_lines([], catalog)


def test_base_sku_with_known_product_is_not_a_consistency_error(add_product, catalog):
    product = add_product()
    with pytest.raises(NotFoundError) as exc:
        resolve_line("SHIRT", 1, catalog, product_id=str(product["_id"]))
    assert not isinstance(exc.value, ConsistencyError)
