"""
conversation/parser.py
----------------------
Text → intent. Every `parse_*` method is pure: it returns one Intent or
None, and None means "not mine, try the next parser".

Shared rules:
  - Lines are trimmed and blank lines dropped before matching.
  - Item names: non-empty, at most 100 characters.
  - Order quantities 1..999999; catalog quantities 0..999999.
  - An 8-char [A-Z0-9] token is a world code (uppercased), never an id.
"""

import json
import re
from typing import List, Optional

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from orderbot.conversation.keywords import DEFAULT_KEYWORDS, Keywords, matches
from orderbot.schemas.intents import (
    FormatIntent,
    Intent,
    IntentKind,
    MemberIntent,
    MenuImageIntent,
    MenuItemIntent,
    MenuTextIntent,
    ModifyOrderIntent,
    PlaceOrderIntent,
    QueryIntent,
    WorldIntent,
    WorldRef,
)
from orderbot.schemas.order import MAX_ITEM_NAME_LENGTH, MAX_QTY, OrderLine, parse_count

WORLD_CODE = re.compile(r"^([A-Z0-9]{8})\s*$", re.IGNORECASE)
WORLD_ID = re.compile(r"^#?\s*(\d+)\s*[.\s]*$")
ORDER_LINE = re.compile(r"^(.+?)\s+(\d+)$")
ORDER_DATE = re.compile(r"^(\d{4}[-/]\d{1,2}[-/]\d{1,2})(?:\s|$)")
CATALOG_LINE = re.compile(r"^(.+?)(?:\s+(\d+))?$")
MODIFY_AMOUNT = re.compile(r"^([+\-=]?)\s*(\d+)$")
# World ids are stored in a 32-bit integer column
MAX_WORLD_ID = 2_147_483_647

_url_adapter = TypeAdapter(HttpUrl)


def split_lines(text: str) -> List[str]:
    return [line.strip() for line in (text or "").split("\n") if line.strip()]


def valid_item_name(name: str) -> bool:
    name = (name or "").strip()
    return 0 < len(name) <= MAX_ITEM_NAME_LENGTH


def valid_order_qty(qty: int) -> bool:
    return 1 <= qty <= MAX_QTY


def valid_catalog_qty(qty: int) -> bool:
    return 0 <= qty <= MAX_QTY


def _world_id_ref(digits: str) -> Optional[WorldRef]:
    world_id = parse_count(digits)
    if world_id is None or not 0 < world_id <= MAX_WORLD_ID:
        return None
    return WorldRef(world_id=world_id)


def parse_world_ref(arg: str, loose_code: bool = False) -> Optional[WorldRef]:
    """
    `ABCD2345` → code, `12` / `#000012` / `12.` → id.
    With `loose_code`, any other argument of 6+ characters is taken as a code.
    """
    arg = (arg or "").strip()
    m = WORLD_CODE.match(arg)
    if m:
        return WorldRef(world_code=m.group(1).upper())
    m = WORLD_ID.match(arg)
    if m:
        return _world_id_ref(m.group(1))
    if loose_code and len(arg) >= 6:
        return WorldRef(world_code=arg.upper())
    return None


def looks_like_json_object(text: str) -> bool:
    t = (text or "").strip()
    if not (t.startswith("{") and t.endswith("}")):
        return False
    try:
        return isinstance(json.loads(t), dict)
    except ValueError:
        return False


class CommandParser:

    def __init__(self, keywords: Keywords = DEFAULT_KEYWORDS) -> None:
        self.kw = keywords

    # ── Simple keywords ───────────────────────────────────────────────────────

    def is_restart(self, text: str) -> bool:
        return text.strip() == self.kw.restart

    def is_help(self, text: str) -> bool:
        return text.strip() == self.kw.help

    def is_cancel(self, text: str) -> bool:
        return text.strip() == self.kw.cancel

    def is_clear_command(self, text: str) -> bool:
        return text.strip() in self.kw.clear_orders

    # ── Pre-binding ───────────────────────────────────────────────────────────

    def parse_pre_binding(self, text: str) -> Optional[Intent]:
        t = text.strip()
        if t == self.kw.restart:
            return Intent(kind=IntentKind.restart)
        if t in self.kw.join_exact or self.kw.join_contains in t:
            return Intent(kind=IntentKind.join_prompt)
        if t in self.kw.create_exact or self.kw.create_contains in t:
            return Intent(kind=IntentKind.create_world)
        m = WORLD_CODE.match(t)
        if m:
            return WorldIntent(kind=IntentKind.join_world, target=WorldRef(world_code=m.group(1).upper()))
        m = re.match(r"^#?(\d+)$", t)
        ref = _world_id_ref(m.group(1)) if m else None
        if ref is not None:
            return WorldIntent(kind=IntentKind.join_world, target=ref)
        return None

    # ── World management ──────────────────────────────────────────────────────

    def _explicit_world_arg(self, t: str, keywords) -> Optional[WorldRef]:
        for k in keywords:
            if t.startswith(k):
                rest = t[len(k):].strip().lstrip(":：").strip()
                if rest:
                    return parse_world_ref(rest, loose_code=True)
        return None

    def parse_world_command(self, text: str) -> Optional[Intent]:
        t = text.strip()

        m = re.match(rf"^{re.escape(self.kw.confirm_delete)}[\s:：]+(.+)$", t)
        if m:
            ref = parse_world_ref(m.group(1), loose_code=True)
            if ref is not None:
                return WorldIntent(kind=IntentKind.confirm_delete, target=ref)

        # Explicit forms carry an argument and win over the bare prompts
        ref = self._explicit_world_arg(t, self.kw.switch)
        if ref is not None:
            return WorldIntent(kind=IntentKind.switch_world, target=ref)
        ref = self._explicit_world_arg(t, self.kw.leave_exact)
        if ref is not None:
            return WorldIntent(kind=IntentKind.leave_world, target=ref)

        if matches(t, self.kw.switch, self.kw.switch):
            return Intent(kind=IntentKind.switch_prompt)
        if matches(t, self.kw.list_worlds_exact, self.kw.list_worlds_prefix):
            return Intent(kind=IntentKind.list_worlds)
        if matches(t, self.kw.current_world_exact, self.kw.current_world_prefix):
            return Intent(kind=IntentKind.current_world)
        if matches(t, self.kw.leave_exact, self.kw.leave_prefix):
            return Intent(kind=IntentKind.leave_prompt)

        ref = parse_world_ref(t)
        if ref is not None:
            return WorldIntent(kind=IntentKind.switch_world, target=ref)
        return None

    # ── Formats ───────────────────────────────────────────────────────────────

    def parse_format_command(self, text: str) -> Optional[Intent]:
        t = text.strip()
        for keywords, kind in (
            (self.kw.order_format, IntentKind.set_order_format),
            (self.kw.display_format, IntentKind.set_display_format),
        ):
            if matches(t, keywords, keywords):
                body = t.split("\n", 1)[1].strip() if "\n" in t else ""
                return FormatIntent(kind=kind, body=body or None)
        return None

    # ── Menu image ────────────────────────────────────────────────────────────

    def parse_menu_image_command(self, text: str) -> Optional[Intent]:
        lines = split_lines(text)
        if not lines:
            return None
        first = lines[0]
        if first in self.kw.clear_menu_image:
            return Intent(kind=IntentKind.clear_menu_image)
        if matches(first, self.kw.set_menu_image, self.kw.set_menu_image):
            if len(lines) < 2:
                return Intent(kind=IntentKind.set_menu_image_prompt)
            url = lines[1]
            try:
                _url_adapter.validate_python(url)
            except PydanticValidationError:
                return MenuImageIntent(kind=IntentKind.set_menu_image, url=url, invalid=True)
            return MenuImageIntent(kind=IntentKind.set_menu_image, url=url)
        return None

    # ── Menu / catalog ────────────────────────────────────────────────────────

    def parse_menu_command(self, text: str) -> Optional[Intent]:
        lines = split_lines(text)
        if not lines:
            return None
        first = lines[0]

        if first in self.kw.menu_format_help:
            return Intent(kind=IntentKind.menu_format_help)
        if first in self.kw.set_menu_full:
            content = text.split("\n", 1)[1] if "\n" in text else ""
            return MenuTextIntent(kind=IntentKind.set_menu_full, content=content)
        if first in self.kw.view_menu:
            return Intent(kind=IntentKind.view_menu)

        if matches(first, self.kw.add_menu_item, self.kw.add_menu_item):
            if len(lines) < 3:
                return None
            parsed = self._catalog_item(lines[2])
            if parsed is None:
                return None
            name, qty = parsed
            return MenuItemIntent(
                kind=IntentKind.add_menu_item, vendor=lines[1], item_name=name, qty=qty or 0
            )

        if matches(first, self.kw.remove_menu_item, self.kw.remove_menu_item):
            if len(lines) < 3 or not valid_item_name(lines[2]):
                return None
            return MenuItemIntent(kind=IntentKind.remove_menu_item, vendor=lines[1], item_name=lines[2])

        if matches(first, self.kw.update_menu_item, self.kw.update_menu_item):
            if len(lines) < 4 or not valid_item_name(lines[2]):
                return None
            parsed = self._catalog_item(lines[3])
            if parsed is None:
                return None
            new_name, qty = parsed
            return MenuItemIntent(
                kind=IntentKind.update_menu_item,
                vendor=lines[1],
                item_name=lines[2],
                new_item_name=new_name,
                qty=qty,
            )
        return None

    @staticmethod
    def _catalog_item(line: str):
        m = CATALOG_LINE.match(line)
        if not m:
            return None
        name = m.group(1).strip()
        qty = parse_count(m.group(2)) if m.group(2) is not None else None
        if not valid_item_name(name):
            return None
        if m.group(2) is not None and qty is None:
            return None
        if qty is not None and not valid_catalog_qty(qty):
            return None
        return name, qty

    # ── Members ───────────────────────────────────────────────────────────────

    def parse_member_command(self, text: str) -> Optional[Intent]:
        lines = split_lines(text)
        if not lines:
            return None
        first = lines[0]
        if first in self.kw.view_members:
            return Intent(kind=IntentKind.view_members)
        if matches(first, self.kw.remove_member, self.kw.remove_member):
            if len(lines) < 2:
                return Intent(kind=IntentKind.remove_member_prompt)
            return MemberIntent(kind=IntentKind.remove_member, target_user_id=lines[1])
        return None

    # ── Orders ────────────────────────────────────────────────────────────────

    def parse_order_message(self, text: str) -> Optional[Intent]:
        lines = split_lines(text)
        if not lines:
            return None
        first = lines[0]

        if first in self.kw.modify_order:
            if len(lines) < 3 or not valid_item_name(lines[1]):
                return None
            m = MODIFY_AMOUNT.match(lines[2])
            if not m:
                return None
            sign, number = m.group(1), parse_count(m.group(2))
            if number is None:
                return None
            if sign == "=":
                if number > MAX_QTY:
                    return None
                return ModifyOrderIntent(
                    kind=IntentKind.modify_order, item=lines[1], amount=number, absolute=True
                )
            if not valid_order_qty(number):
                return None
            return ModifyOrderIntent(
                kind=IntentKind.modify_order,
                item=lines[1],
                amount=-number if sign == "-" else number,
            )

        if first in self.kw.boss_query:
            if len(lines) < 2:
                return None
            return QueryIntent(kind=IntentKind.boss_query, date=lines[1])

        if first in self.kw.query:
            if len(lines) < 2:
                return None
            branch = lines[2] if len(lines) > 2 else None
            return QueryIntent(kind=IntentKind.query_orders, date=lines[1], branch=branch)

        items: List[OrderLine] = []
        time_str = None
        for idx, line in enumerate(lines):
            date_match = ORDER_DATE.match(line)
            if date_match and idx == len(lines) - 1 and items:
                time_str = date_match.group(1)
                break
            m = ORDER_LINE.match(line)
            if m:
                name, qty = m.group(1).strip(), parse_count(m.group(2))
                if qty is not None and valid_item_name(name) and valid_order_qty(qty):
                    items.append(OrderLine(name=name, qty=qty))
        if not items:
            return None
        return PlaceOrderIntent(kind=IntentKind.place_order, items=tuple(items), time=time_str)
