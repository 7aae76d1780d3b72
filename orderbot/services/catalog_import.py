"""
services/catalog_import.py
--------------------------
Contract for spreadsheet catalog import.

Column detection and cell parsing live outside this package; anything
implementing CatalogImporter can feed CatalogService.import_catalog. The
`sheet` argument is opaque here (a worksheet object, rows, ...).
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from orderbot.schemas.catalog import ExcelMapping, ItemOption, VendorMap


class CatalogImportErrorKind(str, Enum):
    no_sheet = "no_sheet"
    empty_range = "empty_range"
    no_valid_rows = "no_valid_rows"
    all_rows_filtered = "all_rows_filtered"
    read_error = "read_error"


class CatalogImportError(Exception):
    """Spreadsheet could not be turned into a catalog. `kind` says why."""

    def __init__(self, kind: CatalogImportErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)


class CatalogImporter(Protocol):

    def detect_mapping(self, sheet: Any) -> Optional[ExcelMapping]:
        ...

    def parse_to_vendor_map(self, sheet: Any, mapping: ExcelMapping) -> VendorMap:
        """Raises CatalogImportError when no catalog can be built."""
        ...

    def parse_item_options(self, sheet: Any, mapping: ExcelMapping) -> Dict[str, List[ItemOption]]:
        ...

    def preview(self, sheet: Any) -> List[List[str]]:
        ...
