"""
conversation/state.py
---------------------
Derive a user's conversation stage from their bindings and current-world
pointer.

The pointer self-heals: when it is missing (or points at a world the user
is no longer bound to) and the user has an active world, the first active
world is adopted and the state is read once more. At most one repair per
call.
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from orderbot.core.logging import get_logger
from orderbot.models.world import WorldStatus
from orderbot.schemas.world import UserWorld
from orderbot.services.world_service import WorldService

logger = get_logger(__name__)

_SETUP_STATUSES = (WorldStatus.vendor_map_setup, WorldStatus.failed)


class Stage(str, Enum):
    no_binding = "no_binding"
    catalog_setup = "catalog_setup"
    naming = "naming"
    active = "active"
    inactive_non_owner = "inactive_non_owner"


class UserState(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    bindings: Tuple[UserWorld, ...] = ()
    current_world_id: Optional[int] = None

    @property
    def current(self) -> Optional[UserWorld]:
        for binding in self.bindings:
            if binding.world_id == self.current_world_id:
                return binding
        return None

    @property
    def has_binding(self) -> bool:
        return bool(self.bindings)

    @property
    def current_status(self) -> Optional[WorldStatus]:
        current = self.current
        return current.status if current else None

    @property
    def is_owner(self) -> bool:
        current = self.current
        return bool(current and current.is_owner)

    @property
    def is_world_active(self) -> bool:
        return self.current_status == WorldStatus.active

    @property
    def in_catalog_setup(self) -> bool:
        return self.is_owner and self.current_status in _SETUP_STATUSES

    @property
    def in_naming(self) -> bool:
        return self.is_owner and self.current_status == WorldStatus.world_naming

    @property
    def active_world_ids(self) -> list[int]:
        return [b.world_id for b in self.bindings if b.is_active]

    @property
    def owned_world(self) -> Optional[UserWorld]:
        for binding in self.bindings:
            if binding.is_owner:
                return binding
        return None

    @property
    def stage(self) -> Stage:
        if not self.bindings:
            return Stage.no_binding
        if self.in_catalog_setup:
            return Stage.catalog_setup
        if self.in_naming:
            return Stage.naming
        if self.is_world_active:
            return Stage.active
        return Stage.inactive_non_owner

    def needs_pointer_repair(self) -> Optional[int]:
        """World id to adopt as current, or None when no repair applies."""
        if self.current is not None:
            return None
        for binding in self.bindings:
            if binding.is_active:
                return binding.world_id
        return None


async def _read_state(db: AsyncSession, user_id: str) -> UserState:
    bindings = await WorldService.get_bindings(db, user_id)
    current_world_id = await WorldService.get_current_world_id(db, user_id)
    return UserState(user_id=user_id, bindings=tuple(bindings), current_world_id=current_world_id)


async def get_state(db: AsyncSession, user_id: str) -> UserState:
    state = await _read_state(db, user_id)
    adopt = state.needs_pointer_repair()
    if adopt is None:
        return state
    await WorldService.set_current_world(db, user_id, adopt)
    logger.info("Current world adopted", user_id=user_id, world_id=adopt)
    return await _read_state(db, user_id)
