"""
schemas/world.py
----------------
Read models joining a user's bindings with the worlds they point at.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from orderbot.models.binding import BindingRole
from orderbot.models.world import WorldStatus, format_world_id


class UserWorld(BaseModel):
    world_id: int
    role: BindingRole
    status: WorldStatus
    name: Optional[str] = None
    world_code: Optional[str] = None
    owner_user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_owner(self) -> bool:
        return self.role == BindingRole.owner

    @property
    def is_active(self) -> bool:
        return self.status == WorldStatus.active

    @property
    def label(self) -> str:
        return self.name or f"世界 #{format_world_id(self.world_id)}"
