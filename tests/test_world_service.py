"""
Tests for worlds, bindings and the current-world pointer
"""

import pytest
from sqlalchemy import select

from orderbot.core.exceptions import ConflictError, PermissionDeniedError
from orderbot.models import BindingRole, OrderItem, UserCurrentWorld, WorldBinding, WorldStatus
from orderbot.schemas.order import OrderLine
from orderbot.services.order_service import OrderService
from orderbot.services.world_service import (
    WORLD_CODE_ALPHABET,
    WORLD_CODE_LENGTH,
    WorldService,
    generate_world_code,
)


def test_generated_codes_use_unambiguous_alphabet():
    for _ in range(20):
        code = generate_world_code()
        assert len(code) == WORLD_CODE_LENGTH
        assert set(code) <= set(WORLD_CODE_ALPHABET)
        assert not set(code) & set("01IO")


class TestWorlds:

    @pytest.mark.asyncio
    async def test_create_and_lookup(self, test_db):
        world = await WorldService.create_world(test_db, "U-owner")
        assert world.status == WorldStatus.vendor_map_setup.value
        assert (await WorldService.get_world_by_id(test_db, world.id)) is world
        assert (await WorldService.get_world_by_code(test_db, world.world_code.lower())) is world

    @pytest.mark.asyncio
    async def test_code_collisions_are_retried(self, test_db, monkeypatch):
        first = await WorldService.create_world(test_db, "U-a")
        codes = iter([first.world_code, first.world_code, "NEWCODE2"])
        monkeypatch.setattr(
            "orderbot.services.world_service.generate_world_code", lambda: next(codes)
        )
        second = await WorldService.create_world(test_db, "U-b")
        assert second.world_code == "NEWCODE2"

    @pytest.mark.asyncio
    async def test_code_allocation_gives_up(self, test_db, monkeypatch):
        first = await WorldService.create_world(test_db, "U-a")
        monkeypatch.setattr(
            "orderbot.services.world_service.generate_world_code", lambda: first.world_code
        )
        with pytest.raises(ConflictError):
            await WorldService.create_world(test_db, "U-b")

    @pytest.mark.asyncio
    async def test_status_and_name_updates(self, test_db):
        world = await WorldService.create_world(test_db, "U-owner")
        await WorldService.update_name(test_db, world.id, "早餐店")
        await WorldService.update_status(test_db, world.id, WorldStatus.active)
        assert world.is_active
        assert world.label == "早餐店"

    @pytest.mark.asyncio
    async def test_delete_unfinished_refuses_active_worlds(self, test_db):
        world = await WorldService.create_world(test_db, "U-owner", status=WorldStatus.active)
        assert not await WorldService.delete_unfinished_world(test_db, world.id)
        assert await WorldService.get_world_by_id(test_db, world.id) is not None

    @pytest.mark.asyncio
    async def test_permanent_delete_removes_everything_scoped(self, test_db):
        world = await WorldService.create_world(test_db, "U-owner", status=WorldStatus.active)
        await WorldService.bind_user(test_db, "U-owner", world.id, BindingRole.owner)
        await WorldService.bind_user(test_db, "U-staff", world.id, BindingRole.employee)
        await WorldService.set_current_world(test_db, "U-staff", world.id)
        await OrderService.create_order(test_db, "", [OrderLine(name="雞蛋", qty=1)], world_id=world.id)

        assert await WorldService.delete_world_permanently(test_db, world.id)
        assert await WorldService.get_world_by_id(test_db, world.id) is None
        assert (await test_db.execute(select(WorldBinding))).scalars().all() == []
        assert (await test_db.execute(select(UserCurrentWorld))).scalars().all() == []
        assert (await test_db.execute(select(OrderItem))).scalars().all() == []


class TestBindings:

    @pytest.mark.asyncio
    async def test_bind_twice_conflicts(self, test_db):
        world = await WorldService.create_world(test_db, "U-owner")
        await WorldService.bind_user(test_db, "U-staff", world.id, BindingRole.employee)
        with pytest.raises(ConflictError):
            await WorldService.bind_user(test_db, "U-staff", world.id, BindingRole.employee)
        # The session is still usable after the rejected insert
        assert await WorldService.get_binding(test_db, "U-staff", world.id) is not None

    @pytest.mark.asyncio
    async def test_unbind(self, test_db):
        world = await WorldService.create_world(test_db, "U-owner")
        await WorldService.bind_user(test_db, "U-staff", world.id, BindingRole.employee)
        assert await WorldService.unbind_user(test_db, "U-staff", world.id)
        assert not await WorldService.unbind_user(test_db, "U-staff", world.id)

    @pytest.mark.asyncio
    async def test_bindings_join_world_data(self, test_db):
        a = await WorldService.create_world(test_db, "U-a", status=WorldStatus.active)
        b = await WorldService.create_world(test_db, "U-b")
        await WorldService.bind_user(test_db, "U-x", a.id, BindingRole.employee)
        await WorldService.bind_user(test_db, "U-x", b.id, BindingRole.employee)

        worlds = await WorldService.get_bindings(test_db, "U-x")
        assert [(w.world_id, w.status, w.role) for w in worlds] == [
            (a.id, WorldStatus.active, BindingRole.employee),
            (b.id, WorldStatus.vendor_map_setup, BindingRole.employee),
        ]

    @pytest.mark.asyncio
    async def test_require_owner(self, test_db):
        world = await WorldService.create_world(test_db, "U-owner")
        await WorldService.bind_user(test_db, "U-owner", world.id, BindingRole.owner)
        await WorldService.bind_user(test_db, "U-staff", world.id, BindingRole.employee)
        assert (await WorldService.require_owner(test_db, "U-owner", world.id)).user_id == "U-owner"
        for outsider in ("U-staff", "U-nobody"):
            with pytest.raises(PermissionDeniedError):
                await WorldService.require_owner(test_db, outsider, world.id)

    @pytest.mark.asyncio
    async def test_members_owner_first(self, test_db):
        world = await WorldService.create_world(test_db, "U-owner")
        await WorldService.bind_user(test_db, "U-staff", world.id, BindingRole.employee)
        await WorldService.bind_user(test_db, "U-owner", world.id, BindingRole.owner)
        members = await WorldService.get_world_members(test_db, world.id)
        assert [m.user_id for m in members] == ["U-owner", "U-staff"]


class TestCurrentWorldPointer:

    @pytest.mark.asyncio
    async def test_set_get_clear(self, test_db):
        assert await WorldService.get_current_world_id(test_db, "U1") is None
        await WorldService.set_current_world(test_db, "U1", 3)
        await WorldService.set_current_world(test_db, "U1", 4)
        assert await WorldService.get_current_world_id(test_db, "U1") == 4
        await WorldService.clear_current_world(test_db, "U1")
        assert await WorldService.get_current_world_id(test_db, "U1") is None
