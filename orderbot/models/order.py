"""
models/order.py
---------------
Order ledger: live line items plus the append-only history.

`orders` holds the current projection: one row per line item, updated or
deleted in place when quantities change. `order_history` records every
mutation with before/after snapshots. Date queries read the history, so
they stay accurate after live rows are edited or removed.

world_id is nullable on both tables: rows written before worlds existed
are kept and treated as visible to everyone.
"""

from enum import Enum as PyEnum
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from orderbot.db.base import Base, CreatedAtMixin


class OrderAction(str, PyEnum):
    create_order = "create-order"
    modify_quantity = "modify-quantity"
    delete_item = "delete-item"


class OrderItem(Base, CreatedAtMixin):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    branch: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    item: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    world_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    def snapshot(self) -> dict[str, Any]:
        return {"id": self.id, "item": self.item, "qty": self.qty}

    def __repr__(self) -> str:
        return f"<OrderItem id={self.id} order_id={self.order_id} item={self.item} qty={self.qty}>"


class OrderHistory(Base, CreatedAtMixin):
    __tablename__ = "order_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    old_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    new_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    # Display label of the actor (platform display name), and the raw user id
    user: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    world_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<OrderHistory id={self.id} order_id={self.order_id} action={self.action_type}>"
