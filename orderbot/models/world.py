"""
models/world.py
---------------
World (tenant) ORM model.

A world is an isolated ordering workspace: one owner, any number of
employees, a catalog (vendor map) and optional order/display formats. All
ledger rows are scoped by world_id at the query level.

Sub-documents (catalog, mapping, attribute options) are stored as JSON.
The order and display formats are kept as the raw JSON text the owner
pasted, so a re-pasted identical payload can be recognised.
"""

from enum import Enum as PyEnum
from typing import Any, Optional

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from orderbot.db.base import Base, TimestampMixin


class WorldStatus(str, PyEnum):
    none = "none"
    vendor_map_setup = "vendorMap_setup"
    world_naming = "world_naming"
    active = "active"
    failed = "failed"


class World(Base, TimestampMixin):
    __tablename__ = "worlds"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    world_code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=WorldStatus.vendor_map_setup.value
    )
    owner_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    vendor_map: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    order_format: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    display_format: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    menu_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    excel_mapping: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    item_attribute_options: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == WorldStatus.active.value

    @property
    def label(self) -> str:
        """Display name, falling back to the zero-padded id."""
        return self.name or f"世界 #{format_world_id(self.id)}"

    def __repr__(self) -> str:
        return f"<World id={self.id} code={self.world_code} status={self.status}>"


def format_world_id(world_id: int) -> str:
    return str(world_id).zfill(6)
