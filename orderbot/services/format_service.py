"""
services/format_service.py
--------------------------
Order-format validation and owner-query rendering.

Formats are stored on the world as the raw JSON text the owner pasted;
`parse_order_format` / `parse_display_format` turn that text into models
and return None for anything malformed (user input, never an error).
"""

import json
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from orderbot.schemas.formats import DisplayFormat, OrderFormat
from orderbot.schemas.order import LedgerOrder

VendorOf = Callable[[str], str]

DEFAULT_USERS_SEPARATOR = "、"


def _load_object(text: Optional[str]) -> Optional[dict]:
    if not text:
        return None
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def parse_order_format(text: Optional[str]) -> Optional[OrderFormat]:
    data = _load_object(text)
    if data is None:
        return None
    try:
        return OrderFormat.model_validate(data)
    except PydanticValidationError:
        return None


def parse_display_format(text: Optional[str]) -> Optional[DisplayFormat]:
    data = _load_object(text)
    if data is None:
        return None
    try:
        return DisplayFormat.model_validate(data)
    except PydanticValidationError:
        return None


def item_matches_order_format(item_name: str, order_format: Optional[OrderFormat]) -> bool:
    """True when `item_name` satisfies every rule (no format means no rules)."""
    if order_format is None:
        return True
    for field in order_format.required_fields:
        if field not in item_name:
            return False
    pattern = order_format.compiled_item_format()
    if pattern is not None and not pattern.search(item_name):
        return False
    return True


def invalid_items(names: Iterable[str], order_format: Optional[OrderFormat]) -> List[str]:
    return [name for name in names if not item_matches_order_format(name, order_format)]


# ── Owner query rendering ─────────────────────────────────────────────────────

class _Aggregate:
    __slots__ = ("total", "users")

    def __init__(self) -> None:
        self.total = 0
        self.users: Dict[str, int] = {}


def _aggregate(
    orders: Iterable[LedgerOrder], vendor_of: VendorOf
) -> Dict[str, Dict[str, Dict[str, _Aggregate]]]:
    """vendor → branch → item → (total qty, qty per actor)."""
    tree: Dict[str, Dict[str, Dict[str, _Aggregate]]] = defaultdict(
        lambda: defaultdict(lambda: defaultdict(_Aggregate))
    )
    for order in orders:
        for line in order.items:
            rec = tree[vendor_of(line.name)][order.branch][line.name]
            rec.total += line.qty
            if order.actor_label:
                rec.users[order.actor_label] = rec.users.get(order.actor_label, 0) + line.qty
    return tree


def _users_suffix(rec: _Aggregate) -> str:
    names = sorted(name for name in rec.users if name)
    return f"({DEFAULT_USERS_SEPARATOR.join(names)})" if names else ""


def format_orders_by_vendor_default(orders: Iterable[LedgerOrder], vendor_of: VendorOf) -> str:
    """
    vendor
     branch
        item total (userA、userB)
    """
    tree = _aggregate(orders, vendor_of)
    lines: List[str] = []
    for vendor in sorted(tree):
        lines.append(vendor)
        for branch in sorted(tree[vendor]):
            lines.append(f" {branch}")
            for item in sorted(tree[vendor][branch]):
                rec = tree[vendor][branch][item]
                suffix = _users_suffix(rec)
                lines.append(f"    {item} {rec.total}" + (f" {suffix}" if suffix else ""))
    return "\n".join(lines).strip()


def format_orders_by_display_format(
    orders: Iterable[LedgerOrder],
    display_format: Optional[DisplayFormat],
    vendor_of: VendorOf,
) -> str:
    """Render one template line per (vendor, branch, item); default layout without a template."""
    if display_format is None:
        return format_orders_by_vendor_default(orders, vendor_of)

    tree = _aggregate(orders, vendor_of)
    out: List[str] = []
    for vendor in sorted(tree):
        for branch in sorted(tree[vendor]):
            for item in sorted(tree[vendor][branch]):
                rec = tree[vendor][branch][item]
                users = _users_suffix(rec) if display_format.show_users else ""
                line = (
                    display_format.template.replace("{vendor}", vendor)
                    .replace("{branch}", branch)
                    .replace("{item}", item)
                    .replace("{qty}", str(rec.total))
                    .replace("{users}", users)
                    .replace("\\n", "\n")
                )
                out.append(line)
    return "\n".join(out).strip()
