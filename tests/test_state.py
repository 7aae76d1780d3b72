"""
Tests for conversation stage derivation and the current-world pointer repair
"""

import pytest

from orderbot.conversation.state import Stage, UserState, get_state
from orderbot.models import BindingRole, WorldStatus
from orderbot.schemas.world import UserWorld
from orderbot.services.world_service import WorldService


def _binding(world_id, role=BindingRole.employee, status=WorldStatus.active):
    return UserWorld(world_id=world_id, role=role, status=status)


class TestStage:

    def test_no_binding(self):
        assert UserState(user_id="U1").stage == Stage.no_binding

    @pytest.mark.parametrize("status", [WorldStatus.vendor_map_setup, WorldStatus.failed])
    def test_owner_of_unfinished_world_is_in_catalog_setup(self, status):
        state = UserState(
            user_id="U1",
            bindings=(_binding(1, BindingRole.owner, status),),
            current_world_id=1,
        )
        assert state.in_catalog_setup
        assert state.stage == Stage.catalog_setup

    def test_owner_naming(self):
        state = UserState(
            user_id="U1",
            bindings=(_binding(1, BindingRole.owner, WorldStatus.world_naming),),
            current_world_id=1,
        )
        assert state.stage == Stage.naming

    def test_employee_of_unfinished_world(self):
        state = UserState(
            user_id="U1",
            bindings=(_binding(1, status=WorldStatus.vendor_map_setup),),
            current_world_id=1,
        )
        assert not state.in_catalog_setup
        assert state.stage == Stage.inactive_non_owner

    def test_active_follows_current_world_only(self):
        state = UserState(
            user_id="U1",
            bindings=(
                _binding(1, BindingRole.owner, WorldStatus.vendor_map_setup),
                _binding(2),
            ),
            current_world_id=2,
        )
        assert state.stage == Stage.active
        assert not state.is_owner
        assert state.owned_world.world_id == 1
        assert state.active_world_ids == [2]

    def test_pointer_to_unbound_world_counts_as_missing(self):
        state = UserState(user_id="U1", bindings=(_binding(5),), current_world_id=9)
        assert state.current is None
        assert state.needs_pointer_repair() == 5

    def test_no_repair_without_an_active_world(self):
        state = UserState(
            user_id="U1",
            bindings=(_binding(5, status=WorldStatus.world_naming),),
        )
        assert state.needs_pointer_repair() is None


class TestGetState:

    @pytest.mark.asyncio
    async def test_missing_pointer_adopts_first_active_world(self, test_db):
        pending = await WorldService.create_world(test_db, "U-a")
        ready = await WorldService.create_world(test_db, "U-b", status=WorldStatus.active)
        await WorldService.bind_user(test_db, "U-x", pending.id, BindingRole.employee)
        await WorldService.bind_user(test_db, "U-x", ready.id, BindingRole.employee)

        state = await get_state(test_db, "U-x")
        assert state.current_world_id == ready.id
        assert state.stage == Stage.active
        assert await WorldService.get_current_world_id(test_db, "U-x") == ready.id

    @pytest.mark.asyncio
    async def test_valid_pointer_is_left_alone(self, test_db):
        pending = await WorldService.create_world(test_db, "U-x")
        ready = await WorldService.create_world(test_db, "U-b", status=WorldStatus.active)
        await WorldService.bind_user(test_db, "U-x", pending.id, BindingRole.owner)
        await WorldService.bind_user(test_db, "U-x", ready.id, BindingRole.employee)
        await WorldService.set_current_world(test_db, "U-x", pending.id)

        state = await get_state(test_db, "U-x")
        assert state.current_world_id == pending.id
        assert state.stage == Stage.catalog_setup

    @pytest.mark.asyncio
    async def test_unbound_user(self, test_db):
        state = await get_state(test_db, "U-nobody")
        assert state.stage == Stage.no_binding
        assert state.current_world_id is None
