"""
stock.py
Club equipment stock: item normalization, search / status filter and
low-stock alerts. Read-only, loaded from the stock seed document.
"""

from __future__ import annotations

from collections.abc import Mapping

from models import DEFAULT_STOCK_STATUS, STOCK_STATUSES
from utils import normalize_amount, text_from_value

SEARCH_FIELDS = ("product", "category", "supplier")


def _count(value) -> int:
    return int(normalize_amount(value))


def normalize_stock_item(item) -> dict:
    source = item if isinstance(item, Mapping) else {}
    status = text_from_value(source.get("status")).strip().lower()
    unit_price = source.get("unitPrice")
    return {
        "product": text_from_value(source.get("product")).strip(),
        "category": text_from_value(source.get("category")).strip(),
        "supplier": text_from_value(source.get("supplier")).strip(),
        "purchaseDate": text_from_value(source.get("purchaseDate")).strip(),
        "quantity": _count(source.get("quantity")),
        "alertThreshold": _count(source.get("alertThreshold")),
        # None keeps "no price" apart from a real 0.00
        "unitPrice": None if unit_price in (None, "") else normalize_amount(unit_price),
        "status": status if status in STOCK_STATUSES else DEFAULT_STOCK_STATUS,
    }


def normalize_stock(items) -> list[dict]:
    if not isinstance(items, (list, tuple)):
        return []
    return [normalize_stock_item(item) for item in items]


def is_alert(item: Mapping) -> bool:
    """At or below the alert threshold."""
    return item["quantity"] <= item["alertThreshold"]


def status_label(status: str | None) -> str:
    return STOCK_STATUSES.get((status or "").lower(), STOCK_STATUSES[DEFAULT_STOCK_STATUS])


def filter_stock(items: list[dict], search: str = "", status: str = "all") -> list[dict]:
    """
    Items whose product, category or supplier contains search
    (case-insensitive), restricted to one status unless status is "all".
    """
    needle = (search or "").strip().lower()
    result = []
    for item in items:
        if status and status != "all" and item["status"] != status:
            continue
        if needle and not any(needle in item[field].lower() for field in SEARCH_FIELDS):
            continue
        result.append(item)
    return result


def stock_alerts(items: list[dict]) -> list[dict]:
    return [item for item in items if is_alert(item)]
