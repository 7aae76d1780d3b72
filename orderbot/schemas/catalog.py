"""
schemas/catalog.py
------------------
Pydantic models for the catalog (vendor map) and its import metadata.

Stored shape (worlds.vendor_map):
    { vendor: { item_name: qty | {"qty": qty, "attributes": [...]} } }

In memory every value is a CatalogEntry; `from_raw` / `to_raw` convert at
the storage boundary so the rest of the code never sniffs shapes.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RawCatalogValue = Union[int, Dict[str, Any]]


class CatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    qty: int = Field(default=0, ge=0, le=999999)
    attributes: tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, value: Any) -> "CatalogEntry":
        if isinstance(value, CatalogEntry):
            return value
        if isinstance(value, dict):
            qty = value.get("qty")
            attrs = value.get("attributes")
            return cls(
                qty=qty if isinstance(qty, int) else 0,
                attributes=tuple(str(a) for a in attrs) if isinstance(attrs, list) else (),
            )
        if isinstance(value, bool) or value is None:
            return cls()
        try:
            return cls(qty=max(int(value), 0))
        except (TypeError, ValueError):
            return cls()

    def to_raw(self) -> RawCatalogValue:
        if self.attributes:
            return {"qty": self.qty, "attributes": list(self.attributes)}
        return self.qty


VendorMap = Dict[str, Dict[str, CatalogEntry]]


def vendor_map_from_raw(raw: Optional[Dict[str, Any]]) -> Optional[VendorMap]:
    """Decode a stored vendor map; None when absent or not an object."""
    if not raw or not isinstance(raw, dict):
        return None
    result: VendorMap = {}
    for vendor, items in raw.items():
        if not isinstance(items, dict):
            continue
        result[str(vendor)] = {str(name): CatalogEntry.from_raw(v) for name, v in items.items()}
    return result


def vendor_map_to_raw(vendor_map: VendorMap) -> Dict[str, Dict[str, RawCatalogValue]]:
    return {
        vendor: {name: entry.to_raw() for name, entry in items.items()}
        for vendor, items in vendor_map.items()
    }


class ExcelMapping(BaseModel):
    """Column layout of an imported spreadsheet (column letters, 1-based rows)."""

    model_config = ConfigDict(populate_by_name=True)

    vendor_column: Optional[str] = Field(default=None, alias="vendorColumn")
    item_column: str = Field(alias="itemColumn")
    qty_column: str = Field(alias="qtyColumn")
    attr_column: Optional[str] = Field(default=None, alias="attrColumn")
    options_column: Optional[str] = Field(default=None, alias="optionsColumn")
    has_header: bool = Field(default=True, alias="hasHeader")
    start_row: int = Field(default=2, ge=1, alias="startRow")


class ItemOption(BaseModel):
    """A named drop-down attribute offered for a catalog item (e.g. 甜度)."""

    name: str
    options: List[str] = []


ItemAttributeOptions = Dict[str, List[ItemOption]]
