import pytest

from errors import BatchValidationError
from variants import (
    WILDCARD_CHOICE,
    clean_option_groups,
    find_duplicate_skus,
    find_unstorable_skus,
    generate_variants,
    merge_variants,
    normalize_option_groups,
    slugify,
)


def test_normalize_keeps_color_and_dropdown_in_order():
    groups = [
        {"name": "Color", "option_type": "color", "choices": {"Red": "#FF0000", "Blue": "#0000FF"}},
        {"name": "Care", "option_type": "none"},
        {"name": "Size", "option_type": "drop_down", "choices": ["S", "M", "L"]},
    ]
    option_map = normalize_option_groups(groups)
    assert list(option_map.items()) == [("Color", ["Red", "Blue"]), ("Size", ["S", "M", "L"])]


def test_normalize_skips_json_groups_with_data():
    groups = [
        {"name": "Specs", "option_type": "json", "choices": ["a", "b"]},
        {"name": "Extra", "option_type": "json", "choices": '{"material": "cotton"}'},
    ]
    assert normalize_option_groups(groups) == {}


def test_wildcard_is_appended_once():
    groups = [{"name": "Design", "option_type": "drop_down", "choices": ["Cat"], "include_wildcard": True}]
    assert normalize_option_groups(groups) == {"Design": ["Cat", WILDCARD_CHOICE]}

    groups[0]["choices"] = ["Cat", WILDCARD_CHOICE]
    assert normalize_option_groups(groups) == {"Design": ["Cat", WILDCARD_CHOICE]}


def test_invalid_groups_are_reported_per_group():
    groups = [
        {"name": "   ", "option_type": "drop_down", "choices": ["S"]},
        {"name": "Size", "option_type": "drop_down", "choices": []},
        {"name": "Color", "option_type": "color", "choices": {"Red": "#F00"}},
        {"name": "Specs", "option_type": "json", "choices": "{not json"},
    ]
    with pytest.raises(BatchValidationError) as exc:
        clean_option_groups(groups)
    assert [e.group for e in exc.value.errors] == ["   ", "Size", "Specs"]


def test_duplicate_group_names_rejected():
    groups = [
        {"name": "Size", "option_type": "drop_down", "choices": ["S"]},
        {"name": " Size ", "option_type": "drop_down", "choices": ["M"]},
    ]
    with pytest.raises(BatchValidationError) as exc:
        normalize_option_groups(groups)
    assert exc.value.errors[0].group == "Size"


def test_json_primitive_rejected():
    with pytest.raises(BatchValidationError):
        clean_option_groups([{"name": "Specs", "option_type": "json", "choices": "42"}])


def test_generate_shirt_skus_in_order():
    variants = generate_variants({"Color": ["Red", "Blue"], "Size": ["S", "M"]}, "SHIRT", 10)
    assert [v["sku"] for v in variants] == ["SHIRT-RED-S", "SHIRT-RED-M", "SHIRT-BLUE-S", "SHIRT-BLUE-M"]
    assert variants[1] == {
        "sku": "SHIRT-RED-M",
        "options": {"Color": "Red", "Size": "M"},
        "price_adjustment": 0,
        "stock": 10,
    }


def test_generate_is_complete_and_deterministic():
    option_map = {"A": ["1", "2", "3"], "B": ["x", "y"], "C": ["p", "q", "r", "s"]}
    first = generate_variants(option_map, "BASE", 0)
    assert len(first) == 24
    assert len({tuple(v["options"].items()) for v in first}) == 24
    assert generate_variants(option_map, "BASE", 0) == first


def test_generate_empty_options():
    assert generate_variants({}, "SHIRT", 10) == []


def test_group_with_no_values_yields_nothing():
    assert generate_variants({"Color": ["Red"], "Size": []}, "SHIRT", 1) == []


def test_whitespace_and_case_in_suffix():
    variants = generate_variants({"Color": ["Sky  blue"], "Size": ["x large"]}, "TEE", 2)
    assert variants[0]["sku"] == "TEE-SKY-BLUE-X-LARGE"


def test_find_duplicate_skus():
    variants = generate_variants({"Size": ["Extra Large", "extra large", "S"]}, "TEE", 1)
    assert find_duplicate_skus(variants) == ["TEE-EXTRA-LARGE"]


def test_merge_keeps_edits_for_unchanged_combinations():
    old = generate_variants({"Color": ["Red", "Blue"]}, "TEE", 5)
    old[1]["stock"] = 1
    old[1]["price_adjustment"] = 2.5
    new = generate_variants({"Color": ["Blue", "Green"]}, "TEE", 5)

    merged = merge_variants(old, new)
    assert [v["sku"] for v in merged] == ["TEE-BLUE", "TEE-GREEN"]
    assert (merged[0]["stock"], merged[0]["price_adjustment"]) == (1, 2.5)
    assert (merged[1]["stock"], merged[1]["price_adjustment"]) == (5, 0)


@pytest.mark.parametrize("name,slug", [
    ("Classic Cotton Tee", "classic-cotton-tee"),
    ("  Été  Collection ", "ete-collection"),
    ("T-Shirts & Tops!", "t-shirts-tops"),
])
def test_slugify(name, slug):
    assert slugify(name) == slug


def test_slugify_blank_falls_back_to_random():
    assert len(slugify("!!!")) == 32


def test_find_unstorable_skus():
    assert find_unstorable_skus(["SHIRT-RED", "SHIRT-V1.5", "$HIRT", "A$B"]) == ["SHIRT-V1.5", "$HIRT"]
