"""
services/catalog_service.py
---------------------------
Catalog (vendor map) parsing, rendering, vendor resolution and storage.

Text grammar accepted from the chat:

    全聯
      雞蛋 10
      - 牛奶
    UNIQLO:
      T恤 黑 M 10 [黑, M]

  - A line that is not indented, does not start with '-', and is not an
    item line opens a vendor section (a trailing ':' is dropped).
  - Item lines are indented, or start with '-', or (once a vendor is open)
    end in an integer. `- name` means quantity 0; otherwise the last
    whitespace-separated token is the quantity (1..999999).
  - An optional `[a, b]` suffix attaches attributes to the item.

The pure functions here never touch the database; CatalogService wraps
them with load/save against worlds.vendor_map.
"""

import re
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from orderbot.core.exceptions import NotFoundError, ValidationError
from orderbot.core.logging import get_logger
from orderbot.models.world import World
from orderbot.schemas.catalog import (
    CatalogEntry,
    ExcelMapping,
    VendorMap,
    vendor_map_from_raw,
    vendor_map_to_raw,
)
from orderbot.schemas.order import MAX_ITEM_NAME_LENGTH, MAX_QTY
from orderbot.services.catalog_import import CatalogImporter

logger = get_logger(__name__)

PLACEHOLDER_VENDOR = "未分類"
UNKNOWN_VENDOR = "其他"

_ATTRS_SUFFIX = re.compile(r"^(?P<body>.*?)\s*\[(?P<attrs>[^\[\]]*)\]$")
_TRAILING_QTY = re.compile(r"^(.+?)\s+(\d+)(?:\s*\[[^\[\]]*\])?$")


class CatalogDiagnosis(str, Enum):
    empty = "empty"
    single_line = "single_line"
    missing_vendor = "missing_vendor"
    missing_items = "missing_items"
    bad_item = "bad_item"


# ── Parsing ───────────────────────────────────────────────────────────────────

def _split_attributes(body: str) -> Tuple[str, Tuple[str, ...]]:
    m = _ATTRS_SUFFIX.match(body)
    if not m:
        return body, ()
    attrs = tuple(a.strip() for a in m.group("attrs").split(",") if a.strip())
    return m.group("body"), attrs


def _parse_item_line(stripped: str) -> Optional[Tuple[str, CatalogEntry]]:
    body, attrs = _split_attributes(stripped)
    if body.startswith("-"):
        name = body[1:].strip()
        qty = 0
    else:
        parts = body.split()
        if len(parts) < 2:
            return None
        try:
            qty = int(parts[-1])
        except ValueError:
            return None
        if qty <= 0 or qty > MAX_QTY:
            return None
        name = " ".join(parts[:-1])
    if not name or len(name) > MAX_ITEM_NAME_LENGTH:
        return None
    return name, CatalogEntry(qty=qty, attributes=attrs)


def _is_item_line(raw_line: str, stripped: str, vendor_open: bool) -> bool:
    if stripped.startswith("-") or raw_line[:1] in (" ", "\t", "　"):
        return True
    return vendor_open and _TRAILING_QTY.match(stripped) is not None


def parse_vendor_map(text: str) -> Optional[VendorMap]:
    """Parse catalog text. Returns None if any rule of the grammar is broken."""
    result: VendorMap = {}
    current: Optional[str] = None

    for raw_line in (text or "").splitlines():
        stripped = raw_line.strip()
        if not stripped:
            continue
        if _is_item_line(raw_line, stripped, current is not None):
            if current is None:
                return None
            parsed = _parse_item_line(stripped)
            if parsed is None:
                return None
            name, entry = parsed
            result[current][name] = entry
        else:
            current = re.sub(r"[:：]\s*$", "", stripped).strip()
            if not current:
                return None
            result.setdefault(current, {})

    if not result or any(not items for items in result.values()):
        return None
    return result


def diagnose_vendor_map_text(text: str) -> CatalogDiagnosis:
    """Best guess at why `parse_vendor_map` rejected `text`."""
    raw_lines = [line for line in (text or "").splitlines() if line.strip()]
    if not raw_lines:
        return CatalogDiagnosis.empty
    if len(raw_lines) == 1:
        return CatalogDiagnosis.single_line

    first = raw_lines[0]
    if first[:1] in (" ", "\t", "　") or first.strip().startswith("-"):
        return CatalogDiagnosis.missing_vendor

    current_has_items = False
    vendor_open = False
    for raw_line in raw_lines:
        stripped = raw_line.strip()
        if _is_item_line(raw_line, stripped, vendor_open):
            if _parse_item_line(stripped) is None:
                return CatalogDiagnosis.bad_item
            current_has_items = True
        else:
            if vendor_open and not current_has_items:
                return CatalogDiagnosis.missing_items
            vendor_open = True
            current_has_items = False
    if not current_has_items:
        return CatalogDiagnosis.missing_items
    return CatalogDiagnosis.bad_item


# ── Rendering ─────────────────────────────────────────────────────────────────

def _render_item(name: str, entry: CatalogEntry) -> str:
    attr_str = f" [{', '.join(entry.attributes)}]" if entry.attributes else ""
    if entry.qty == 0:
        return f"  - {name}{attr_str}"
    return f"  {name} {entry.qty}{attr_str}"


def render_vendor_map_text(vendor_map: VendorMap) -> str:
    """Render in the input grammar, preserving vendor and item order."""
    lines = []
    for vendor, items in vendor_map.items():
        lines.append(vendor)
        lines.extend(_render_item(name, entry) for name, entry in items.items())
    return "\n".join(lines)


def format_vendor_map(vendor_map: Optional[VendorMap]) -> str:
    """Chat display: sorted vendors and items under a menu header."""
    if not vendor_map:
        return "菜單為空"
    blocks = []
    for vendor in sorted(vendor_map):
        lines = [vendor]
        items = vendor_map[vendor]
        lines.extend(_render_item(name, items[name]) for name in sorted(items))
        blocks.append("\n".join(lines))
    return ("📋 菜單\n\n" + "\n\n".join(blocks)).strip()


# ── Vendor resolution ─────────────────────────────────────────────────────────

def resolve_vendor_for_item_name(item_name: str, vendor_map: Optional[VendorMap]) -> Optional[str]:
    """
    Find the vendor whose catalog item best matches an order item name.

    A catalog item matches when it equals the order item, or the order item
    starts with it followed by a space (free-text attributes after the name).
    The longest matching catalog name wins; ties keep the first found.
    """
    if not item_name or not vendor_map:
        return None
    found: Optional[str] = None
    longest = 0
    for vendor, items in vendor_map.items():
        for menu_name in items:
            if not menu_name:
                continue
            if item_name == menu_name or item_name.startswith(menu_name + " "):
                if len(menu_name) > longest:
                    longest = len(menu_name)
                    found = vendor
    return found


def vendor_resolver(
    vendor_map: Optional[VendorMap],
    fallback: Optional[Mapping[str, str]] = None,
) -> Callable[[str], str]:
    """World catalog first, then the static item→vendor table, then 其他."""
    fallback = fallback or {}

    def resolve(item_name: str) -> str:
        return (
            resolve_vendor_for_item_name(item_name, vendor_map)
            or fallback.get(item_name)
            or UNKNOWN_VENDOR
        )

    return resolve


# ── Storage ───────────────────────────────────────────────────────────────────

class CatalogService:

    @staticmethod
    async def _get_world(db: AsyncSession, world_id: int) -> World:
        world = await db.get(World, world_id)
        if world is None:
            raise NotFoundError(f"World {world_id} not found")
        return world

    @staticmethod
    async def get_vendor_map(db: AsyncSession, world_id: int) -> Optional[VendorMap]:
        world = await db.get(World, world_id)
        if world is None:
            return None
        return vendor_map_from_raw(world.vendor_map)

    @staticmethod
    async def _store(db: AsyncSession, world: World, vendor_map: VendorMap) -> None:
        # Assign a fresh object so the JSON column is flagged dirty
        world.vendor_map = vendor_map_to_raw(vendor_map)
        await db.flush()

    @staticmethod
    async def save_vendor_map(db: AsyncSession, world_id: int, vendor_map: VendorMap) -> None:
        """Persist a complete catalog. Empty catalogs and empty vendors are rejected."""
        if not vendor_map or any(not items for items in vendor_map.values()):
            raise ValidationError("Catalog must have at least one vendor and one item per vendor")
        world = await CatalogService._get_world(db, world_id)
        await CatalogService._store(db, world, vendor_map)
        logger.info("Catalog saved", world_id=world_id, vendors=len(vendor_map))

    @staticmethod
    async def replace_from_text(db: AsyncSession, world_id: int, text: str) -> VendorMap:
        parsed = parse_vendor_map(text)
        if parsed is None:
            raise ValidationError(diagnose_vendor_map_text(text).value)
        await CatalogService.save_vendor_map(db, world_id, parsed)
        return parsed

    @staticmethod
    async def add_item(
        db: AsyncSession, world_id: int, vendor: str, item_name: str, qty: int = 0
    ) -> None:
        world = await CatalogService._get_world(db, world_id)
        vendor_map = vendor_map_from_raw(world.vendor_map) or {}
        if PLACEHOLDER_VENDOR in vendor_map and not vendor_map[PLACEHOLDER_VENDOR]:
            del vendor_map[PLACEHOLDER_VENDOR]
        items = vendor_map.setdefault(vendor, {})
        previous = items.get(item_name)
        items[item_name] = CatalogEntry(
            qty=qty, attributes=previous.attributes if previous else ()
        )
        await CatalogService._store(db, world, vendor_map)
        logger.info("Catalog item added", world_id=world_id, vendor=vendor, item=item_name, qty=qty)

    @staticmethod
    async def remove_item(db: AsyncSession, world_id: int, vendor: str, item_name: str) -> bool:
        """Drop an item; an emptied vendor goes with it. False if absent."""
        world = await CatalogService._get_world(db, world_id)
        vendor_map = vendor_map_from_raw(world.vendor_map)
        if not vendor_map or item_name not in vendor_map.get(vendor, {}):
            return False
        del vendor_map[vendor][item_name]
        if not vendor_map[vendor]:
            del vendor_map[vendor]
        if not vendor_map:
            vendor_map[PLACEHOLDER_VENDOR] = {}
        await CatalogService._store(db, world, vendor_map)
        logger.info("Catalog item removed", world_id=world_id, vendor=vendor, item=item_name)
        return True

    @staticmethod
    async def update_item(
        db: AsyncSession,
        world_id: int,
        vendor: str,
        old_name: str,
        new_name: Optional[str] = None,
        qty: Optional[int] = None,
    ) -> bool:
        """Rename and/or re-quantify an item in place. False if absent."""
        world = await CatalogService._get_world(db, world_id)
        vendor_map = vendor_map_from_raw(world.vendor_map)
        if not vendor_map or old_name not in vendor_map.get(vendor, {}):
            return False
        items = vendor_map[vendor]
        current = items[old_name]
        updated = current if qty is None else current.model_copy(update={"qty": qty})
        if new_name and new_name != old_name:
            # Rebuild to keep the item's position
            vendor_map[vendor] = {
                (new_name if name == old_name else name): (updated if name == old_name else entry)
                for name, entry in items.items()
                if name != new_name
            }
        else:
            items[old_name] = updated
        await CatalogService._store(db, world, vendor_map)
        logger.info(
            "Catalog item updated",
            world_id=world_id,
            vendor=vendor,
            item=old_name,
            new_name=new_name,
            qty=qty,
        )
        return True

    @staticmethod
    async def import_catalog(
        db: AsyncSession,
        world_id: int,
        importer: CatalogImporter,
        sheet: Any,
    ) -> VendorMap:
        """
        Replace a world's catalog from a spreadsheet.

        Uses the world's stored column mapping when it has one, otherwise the
        importer's detected mapping. Stores the catalog, the mapping and the
        per-item attribute options. CatalogImportError propagates unchanged.
        """
        world = await CatalogService._get_world(db, world_id)
        mapping: Optional[ExcelMapping] = None
        if world.excel_mapping:
            mapping = ExcelMapping.model_validate(world.excel_mapping)
        else:
            mapping = importer.detect_mapping(sheet)
        if mapping is None:
            raise ValidationError("Could not detect the item and quantity columns")

        vendor_map = importer.parse_to_vendor_map(sheet, mapping)
        options = importer.parse_item_options(sheet, mapping)

        await CatalogService.save_vendor_map(db, world_id, vendor_map)
        world.excel_mapping = mapping.model_dump(by_alias=True)
        world.item_attribute_options = {
            name: [opt.model_dump() for opt in opts] for name, opts in options.items()
        } or None
        await db.flush()
        logger.info(
            "Catalog imported",
            world_id=world_id,
            vendors=len(vendor_map),
            items=sum(len(items) for items in vendor_map.values()),
        )
        return vendor_map
