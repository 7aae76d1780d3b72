"""
services/world_service.py
-------------------------
Business logic for worlds, membership bindings and the current-world pointer.

Service layer is responsible for:
  - Constructing queries
  - Enforcing storage-level rules (unique world code, unique binding)
  - Returning domain objects (ORM models / read models) to the flows
  - Never building reply text (that's the conversation layer's job)

Writes only flush; the conversation handler commits once per event.
"""

import secrets
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderbot.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from orderbot.core.logging import get_logger
from orderbot.models.binding import BindingRole, UserCurrentWorld, WorldBinding
from orderbot.models.order import OrderHistory, OrderItem
from orderbot.models.world import World, WorldStatus
from orderbot.schemas.world import UserWorld

logger = get_logger(__name__)

# No 0/O or 1/I so codes survive being read aloud
WORLD_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
WORLD_CODE_LENGTH = 8
_CODE_ATTEMPTS = 5


def generate_world_code() -> str:
    return "".join(secrets.choice(WORLD_CODE_ALPHABET) for _ in range(WORLD_CODE_LENGTH))


class WorldService:

    # ── Worlds ────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_world(
        db: AsyncSession,
        owner_user_id: str,
        status: WorldStatus = WorldStatus.vendor_map_setup,
    ) -> World:
        """
        Create a world with a fresh 8-char code.
        A code collision is retried inside a savepoint; raises ConflictError
        if every attempt collides.
        """
        for _ in range(_CODE_ATTEMPTS):
            world = World(
                world_code=generate_world_code(),
                owner_user_id=owner_user_id,
                status=status.value,
            )
            try:
                async with db.begin_nested():
                    db.add(world)
                    await db.flush()
            except IntegrityError:
                logger.warning("World code collision, retrying", code=world.world_code)
                continue
            await db.refresh(world)
            logger.info("World created", world_id=world.id, code=world.world_code, owner=owner_user_id)
            return world
        raise ConflictError("Could not allocate a unique world code")

    @staticmethod
    async def get_world_by_id(db: AsyncSession, world_id: int) -> World | None:
        return await db.get(World, world_id)

    @staticmethod
    async def get_world_by_code(db: AsyncSession, world_code: str) -> World | None:
        result = await db.execute(select(World).where(World.world_code == world_code.upper()))
        return result.scalar_one_or_none()

    @staticmethod
    async def _require(db: AsyncSession, world_id: int) -> World:
        world = await db.get(World, world_id)
        if world is None:
            raise NotFoundError(f"World {world_id} not found")
        return world

    @staticmethod
    async def update_status(db: AsyncSession, world_id: int, status: WorldStatus) -> World:
        world = await WorldService._require(db, world_id)
        world.status = status.value
        await db.flush()
        logger.info("World status changed", world_id=world_id, status=status.value)
        return world

    @staticmethod
    async def update_name(db: AsyncSession, world_id: int, name: str) -> World:
        world = await WorldService._require(db, world_id)
        world.name = name
        await db.flush()
        return world

    @staticmethod
    async def update_order_format(db: AsyncSession, world_id: int, order_format: Optional[str]) -> None:
        world = await WorldService._require(db, world_id)
        world.order_format = order_format
        await db.flush()

    @staticmethod
    async def update_display_format(db: AsyncSession, world_id: int, display_format: Optional[str]) -> None:
        world = await WorldService._require(db, world_id)
        world.display_format = display_format
        await db.flush()

    @staticmethod
    async def update_menu_image_url(db: AsyncSession, world_id: int, url: Optional[str]) -> None:
        world = await WorldService._require(db, world_id)
        world.menu_image_url = url
        await db.flush()

    @staticmethod
    async def delete_unfinished_world(db: AsyncSession, world_id: int) -> bool:
        """
        Remove a world still in setup, with its bindings and pointers.
        Returns False (and deletes nothing) for active or missing worlds.
        """
        world = await db.get(World, world_id)
        if world is None or world.is_active:
            return False
        await WorldService._purge(db, world, include_ledger=False)
        logger.info("Unfinished world deleted", world_id=world_id)
        return True

    @staticmethod
    async def delete_world_permanently(db: AsyncSession, world_id: int) -> bool:
        """Delete a world and everything scoped to it, ledger rows included."""
        world = await db.get(World, world_id)
        if world is None:
            return False
        await WorldService._purge(db, world, include_ledger=True)
        logger.info("World deleted permanently", world_id=world_id)
        return True

    @staticmethod
    async def _purge(db: AsyncSession, world: World, include_ledger: bool) -> None:
        if include_ledger:
            await db.execute(delete(OrderItem).where(OrderItem.world_id == world.id))
            await db.execute(delete(OrderHistory).where(OrderHistory.world_id == world.id))
        await db.execute(delete(WorldBinding).where(WorldBinding.world_id == world.id))
        await db.execute(
            delete(UserCurrentWorld).where(UserCurrentWorld.current_world_id == world.id)
        )
        await db.delete(world)
        await db.flush()

    # ── Bindings ──────────────────────────────────────────────────────────────

    @staticmethod
    async def bind_user(
        db: AsyncSession, user_id: str, world_id: int, role: BindingRole
    ) -> WorldBinding:
        """Raises ConflictError if the user is already bound to the world."""
        binding = WorldBinding(user_id=user_id, world_id=world_id, role=role.value)
        try:
            async with db.begin_nested():
                db.add(binding)
                await db.flush()
        except IntegrityError:
            raise ConflictError(f"User already bound to world {world_id}")
        logger.info("User bound to world", user_id=user_id, world_id=world_id, role=role.value)
        return binding

    @staticmethod
    async def unbind_user(db: AsyncSession, user_id: str, world_id: int) -> bool:
        result = await db.execute(
            delete(WorldBinding).where(
                WorldBinding.user_id == user_id, WorldBinding.world_id == world_id
            )
        )
        await db.flush()
        removed = result.rowcount > 0
        if removed:
            logger.info("User unbound from world", user_id=user_id, world_id=world_id)
        return removed

    @staticmethod
    async def get_binding(db: AsyncSession, user_id: str, world_id: int) -> WorldBinding | None:
        result = await db.execute(
            select(WorldBinding).where(
                WorldBinding.user_id == user_id, WorldBinding.world_id == world_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def require_owner(db: AsyncSession, user_id: str, world_id: int) -> WorldBinding:
        binding = await WorldService.get_binding(db, user_id, world_id)
        if binding is None or binding.role != BindingRole.owner.value:
            raise PermissionDeniedError(f"User {user_id} does not own world {world_id}")
        return binding

    @staticmethod
    async def get_bindings(db: AsyncSession, user_id: str) -> List[UserWorld]:
        """All of a user's worlds, in the order they were joined."""
        result = await db.execute(
            select(WorldBinding, World)
            .join(World, World.id == WorldBinding.world_id)
            .where(WorldBinding.user_id == user_id)
            .order_by(WorldBinding.id.asc())
        )
        return [_user_world(binding, world) for binding, world in result.all()]

    @staticmethod
    async def get_all_worlds_for_user(db: AsyncSession, user_id: str) -> List[UserWorld]:
        """All of a user's worlds, newest world first (for listings)."""
        worlds = await WorldService.get_bindings(db, user_id)
        return sorted(worlds, key=lambda w: (w.created_at is not None, w.created_at, w.world_id), reverse=True)

    @staticmethod
    async def get_world_members(db: AsyncSession, world_id: int) -> List[WorldBinding]:
        """Owner first, then employees by join time."""
        result = await db.execute(
            select(WorldBinding)
            .where(WorldBinding.world_id == world_id)
            .order_by(WorldBinding.role.desc(), WorldBinding.created_at.asc(), WorldBinding.id.asc())
        )
        return list(result.scalars().all())

    # ── Current world pointer ─────────────────────────────────────────────────

    @staticmethod
    async def set_current_world(db: AsyncSession, user_id: str, world_id: int) -> None:
        pointer = await db.get(UserCurrentWorld, user_id)
        if pointer is None:
            db.add(UserCurrentWorld(user_id=user_id, current_world_id=world_id))
        else:
            pointer.current_world_id = world_id
        await db.flush()

    @staticmethod
    async def get_current_world_id(db: AsyncSession, user_id: str) -> Optional[int]:
        pointer = await db.get(UserCurrentWorld, user_id)
        return pointer.current_world_id if pointer else None

    @staticmethod
    async def clear_current_world(db: AsyncSession, user_id: str) -> None:
        await db.execute(delete(UserCurrentWorld).where(UserCurrentWorld.user_id == user_id))
        await db.flush()


def _user_world(binding: WorldBinding, world: World) -> UserWorld:
    return UserWorld(
        world_id=world.id,
        role=binding.role,
        status=world.status,
        name=world.name,
        world_code=world.world_code,
        owner_user_id=world.owner_user_id,
        created_at=world.created_at,
    )
