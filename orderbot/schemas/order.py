"""
schemas/order.py
----------------
Value objects exchanged with the order ledger.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_ITEM_NAME_LENGTH = 100
MAX_QTY = 999999
# Longer digit runs are out of range for every quantity and world id
MAX_NUMBER_DIGITS = 15


def parse_count(digits: str) -> Optional[int]:
    """Decimal digits to int, or None when the text is not decimal or too long to be in range."""
    digits = (digits or "").lstrip("0") or "0"
    if len(digits) > MAX_NUMBER_DIGITS or not digits.isdecimal():
        return None
    return int(digits)


class OrderLine(BaseModel):
    """One requested item inside an order: name plus a positive quantity."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=MAX_ITEM_NAME_LENGTH)
    qty: int = Field(ge=1, le=MAX_QTY)


class LedgerOrder(BaseModel):
    """An order as recorded at creation time, read back from history."""

    order_id: int
    branch: str
    items: List[OrderLine]
    created_at: datetime
    # Display label of whoever placed it; populated for owner-wide queries
    actor_label: Optional[str] = None


class ModifiedLine(BaseModel):
    order_id: int
    branch: str
    item: str
    old_qty: int
    new_qty: int
    deleted: bool = False


class ModifyResult(BaseModel):
    modified: int = 0
    results: List[ModifiedLine] = []
    message: Optional[str] = None
