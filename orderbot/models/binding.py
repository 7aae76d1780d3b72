"""
models/binding.py
-----------------
Membership bindings and the per-user "current world" pointer.

Role design:
  - 'owner':    created the world; manages catalog, formats and members.
  - 'employee': joined by id or code; places and edits orders.

Users are not stored entities (they are the platform's opaque user ids),
so bindings cascade on world deletion only.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from orderbot.db.base import Base, CreatedAtMixin


class BindingRole(str, PyEnum):
    owner = "owner"
    employee = "employee"


class WorldBinding(Base, CreatedAtMixin):
    __tablename__ = "user_world_bindings"
    __table_args__ = (UniqueConstraint("user_id", "world_id", name="uq_binding_user_world"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    world_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("worlds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BindingRole.employee.value
    )

    def __repr__(self) -> str:
        return f"<WorldBinding user_id={self.user_id} world_id={self.world_id} role={self.role}>"


class UserCurrentWorld(Base):
    __tablename__ = "user_current_world"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_world_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<UserCurrentWorld user_id={self.user_id} world_id={self.current_world_id}>"
