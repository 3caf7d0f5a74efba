"""
Option groups -> variants.

A product declares ordered option groups (Color, Size, ...). Only `color` and
`drop_down` groups take part in variant identity; every combination of their
values becomes one SKU-bearing variant.
"""
import json
import logging
import re
import unicodedata
from collections import Counter
from typing import Any, Dict, List, Optional
from uuid import uuid4

from errors import BatchValidationError, ValidationError

logger = logging.getLogger(__name__)

OPTION_TYPES = ("none", "drop_down", "color", "json")
ENUMERATED_TYPES = ("color", "drop_down")
WILDCARD_CHOICE = "Depends on Your Luck"

OptionMap = Dict[str, List[str]]


def _clean_group(group: Dict[str, Any], seen_names: set) -> Dict[str, Any]:
    raw_name = group.get("name")
    name = raw_name.strip() if isinstance(raw_name, str) else ""
    option_type = group.get("option_type") or "none"
    choices = group.get("choices")

    if not name:
        raise ValidationError(f'Option group name cannot be empty for option type "{option_type}".', group=raw_name or "")
    if name in seen_names:
        raise ValidationError(f'Option group "{name}" is declared more than once.', group=name)
    if option_type not in OPTION_TYPES:
        raise ValidationError(f'Unknown option type "{option_type}" for "{name}".', group=name)

    if option_type == "color":
        if not isinstance(choices, dict) or not choices:
            raise ValidationError(f'Color options must have at least one color for "{name}".', group=name)
        colors = {}
        for color, code in choices.items():
            if not isinstance(color, str) or not color.strip():
                raise ValidationError(f'Color names cannot be blank for "{name}".', group=name)
            colors[color] = code
        choices = colors

    elif option_type == "drop_down":
        if not isinstance(choices, list):
            raise ValidationError(f'Dropdown options must be a list for "{name}".', group=name)
        values = list(choices)
        if group.get("include_wildcard") and WILDCARD_CHOICE not in values:
            values.append(WILDCARD_CHOICE)
        if not values:
            raise ValidationError(f'Dropdown options must have at least one value for "{name}".', group=name)
        for value in values:
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f'Dropdown values cannot be blank for "{name}".', group=name)
        duplicates = [v for v, n in Counter(values).items() if n > 1]
        if duplicates:
            raise ValidationError(f'Dropdown values for "{name}" repeat: {", ".join(duplicates)}.', group=name)
        choices = values

    elif option_type == "json":
        if isinstance(choices, str):
            if not choices.strip():
                choices = {}
            else:
                try:
                    choices = json.loads(choices)
                except ValueError:
                    raise ValidationError(f'Invalid JSON format for option group "{name}".', group=name)
        if choices is None:
            choices = {}
        if not isinstance(choices, (dict, list)):
            raise ValidationError(f'JSON for "{name}" must be an object or an array.', group=name)

    else:
        choices = {}

    return {"name": name, "option_type": option_type, "choices": choices}


def clean_option_groups(groups: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Validate raw option groups and return them in stored form.

    Each group is checked on its own; all failures are raised together so the
    caller can show one message per group.
    """
    cleaned = []
    problems: List[ValidationError] = []
    seen_names: set = set()
    for group in groups or []:
        try:
            clean = _clean_group(group, seen_names)
        except ValidationError as e:
            problems.append(e)
            continue
        seen_names.add(clean["name"])
        cleaned.append(clean)
    if problems:
        raise BatchValidationError("Invalid option groups", problems)
    return cleaned


def normalize_option_groups(groups: List[Dict[str, Any]]) -> OptionMap:
    """Map group name -> ordered values for the groups that define variants."""
    option_map: OptionMap = {}
    for group in clean_option_groups(groups):
        if group["option_type"] == "color":
            option_map[group["name"]] = list(group["choices"].keys())
        elif group["option_type"] == "drop_down":
            option_map[group["name"]] = list(group["choices"])
    return option_map


def sku_suffix(value: str) -> str:
    return re.sub(r"\s+", "-", value).upper()


def generate_variants(option_map: OptionMap, base_sku: str, base_stock: int) -> List[Dict[str, Any]]:
    """
    Expand the option map into one variant per combination of values.

    Groups are walked in declaration order, values in declaration order within
    a group, so the first group is the outermost loop.
    """
    names = list(option_map.keys())
    if not names:
        return []

    combinations: List[List[tuple]] = []

    def walk(index: int, current: List[tuple]):
        if index == len(names):
            combinations.append(list(current))
            return
        name = names[index]
        for value in option_map[name]:
            current.append((name, value))
            walk(index + 1, current)
            current.pop()

    walk(0, [])

    variants = []
    for combination in combinations:
        suffix = "-".join(sku_suffix(value) for _, value in combination)
        variants.append({
            "sku": f"{base_sku}-{suffix}",
            "options": dict(combination),
            "price_adjustment": 0,
            "stock": base_stock,
        })
    return variants


def find_duplicate_skus(variants: List[Dict[str, Any]]) -> List[str]:
    counts = Counter(v["sku"] for v in variants)
    return [sku for sku, n in counts.items() if n > 1]


def find_unstorable_skus(skus: List[str]) -> List[str]:
    # cart and order lines are keyed by SKU inside the document
    return [sku for sku in skus if "." in sku or sku.startswith("$")]


def combination_key(options: Dict[str, str]) -> frozenset:
    return frozenset((options or {}).items())


def merge_variants(existing: Optional[List[Dict[str, Any]]], generated: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Carry stock and price adjustment over from `existing` for every generated
    variant whose option combination was already there.

    Order and SKUs follow `generated`; combinations that vanished are dropped.
    """
    previous = {combination_key(v.get("options")): v for v in existing or []}
    merged = []
    kept = 0
    for variant in generated:
        old = previous.get(combination_key(variant["options"]))
        if old is not None:
            variant = dict(variant)
            variant["stock"] = old.get("stock", variant["stock"])
            variant["price_adjustment"] = old.get("price_adjustment", 0)
            kept += 1
        merged.append(variant)
    logger.debug("Merged variants: %d kept, %d new, %d dropped", kept, len(generated) - kept, len(previous) - kept)
    return merged


def slugify(name: Optional[str]) -> str:
    condensed = " ".join(str(name or "").split()).lower()
    ascii_name = unicodedata.normalize("NFKD", condensed).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_name).strip("-")
    if not slug:
        slug = uuid4().hex
    return slug
