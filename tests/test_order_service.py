"""
Tests for the order ledger (live rows + history)
"""

from datetime import date

import pytest
from sqlalchemy import select

from orderbot.models.order import OrderAction, OrderHistory, OrderItem
from orderbot.schemas.order import OrderLine
from orderbot.services.order_service import (
    NO_SUCH_DATE,
    OrderService,
    generate_order_id,
    resolve_query_date,
)


def _lines(*pairs):
    return [OrderLine(name=n, qty=q) for n, q in pairs]


async def _live(db):
    return list((await db.execute(select(OrderItem).order_by(OrderItem.id))).scalars().all())


async def _history(db, action=None):
    stmt = select(OrderHistory).order_by(OrderHistory.id)
    if action is not None:
        stmt = stmt.where(OrderHistory.action_type == action.value)
    return list((await db.execute(stmt)).scalars().all())


def test_order_ids_are_time_based_and_distinct():
    ids = {generate_order_id() for _ in range(50)}
    assert len(ids) > 1
    assert all(i > 1_600_000_000_000 * 1000 for i in ids)


class TestResolveQueryDate:

    def test_today_tokens(self):
        today = date(2024, 1, 15)
        assert resolve_query_date("今天", today) == today
        assert resolve_query_date("TODAY", today) == today

    def test_date_patterns(self):
        assert resolve_query_date("2024-1-5") == date(2024, 1, 5)
        assert resolve_query_date("2024/01/15") == date(2024, 1, 15)

    def test_unparseable_means_any_date(self):
        assert resolve_query_date("昨天") is None
        assert resolve_query_date("whenever") is None

    def test_impossible_calendar_date_matches_nothing(self):
        assert resolve_query_date("2024-13-40") == NO_SUCH_DATE
        assert resolve_query_date("2023/02/29") == NO_SUCH_DATE


class TestCreateOrder:

    @pytest.mark.asyncio
    async def test_rows_then_one_history_entry(self, test_db):
        order_id = await OrderService.create_order(
            test_db, "台北店", _lines(("雞蛋", 10), ("牛奶", 5)), actor_label="小明", world_id=1, user_id="U1"
        )
        rows = await _live(test_db)
        assert [(r.order_id, r.item, r.qty, r.world_id) for r in rows] == [
            (order_id, "雞蛋", 10, 1),
            (order_id, "牛奶", 5, 1),
        ]
        history = await _history(test_db)
        assert len(history) == 1
        assert history[0].action_type == OrderAction.create_order.value
        assert history[0].new_data == {
            "branch": "台北店",
            "items": [{"name": "雞蛋", "qty": 10}, {"name": "牛奶", "qty": 5}],
        }
        assert history[0].user == "小明"

    def test_live_rows_carry_only_ledger_columns(self):
        assert set(OrderItem.__table__.columns.keys()) == {
            "id", "order_id", "branch", "item", "qty", "world_id", "created_at",
        }


class TestModifyOrder:

    @pytest.mark.asyncio
    async def test_delta_updates_and_logs(self, test_db):
        await OrderService.create_order(test_db, "", _lines(("雞蛋", 10)), world_id=1)
        result = await OrderService.modify_order_item_by_name(test_db, "雞蛋", 5, world_ids=[1])

        assert result.modified == 1
        assert (result.results[0].old_qty, result.results[0].new_qty) == (10, 15)
        assert (await _live(test_db))[0].qty == 15
        entry = (await _history(test_db, OrderAction.modify_quantity))[0]
        assert entry.old_data["qty"] == 10
        assert entry.new_data["qty"] == 15

    @pytest.mark.asyncio
    async def test_negative_delta_clamps_and_deletes(self, test_db):
        await OrderService.create_order(test_db, "", _lines(("雞蛋", 3)), world_id=1)
        result = await OrderService.modify_order_item_by_name(test_db, "雞蛋", -10, world_ids=[1])
        assert result.results[0].deleted
        assert result.results[0].new_qty == 0
        assert await _live(test_db) == []
        assert len(await _history(test_db, OrderAction.delete_item)) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prior", [1, 42, 999999])
    async def test_absolute_zero_always_deletes(self, test_db, prior):
        await OrderService.create_order(test_db, "", _lines(("雞蛋", prior)), world_id=1)
        result = await OrderService.modify_order_item_by_name(test_db, "雞蛋", 0, absolute=True, world_ids=[1])
        assert [r.deleted for r in result.results] == [True]
        assert await _live(test_db) == []

    @pytest.mark.asyncio
    async def test_scope_includes_legacy_rows_but_not_other_worlds(self, test_db):
        await OrderService.create_order(test_db, "", _lines(("雞蛋", 1)), world_id=1)
        await OrderService.create_order(test_db, "", _lines(("雞蛋", 1)), world_id=None)
        await OrderService.create_order(test_db, "", _lines(("雞蛋", 1)), world_id=2)

        result = await OrderService.modify_order_item_by_name(test_db, "雞蛋", 4, absolute=True, world_ids=[1])
        assert result.modified == 2
        assert sorted(r.qty for r in await _live(test_db)) == [1, 4, 4]

    @pytest.mark.asyncio
    async def test_missing_item(self, test_db):
        result = await OrderService.modify_order_item_by_name(test_db, "不存在", 1, world_ids=[1])
        assert result.modified == 0
        assert result.message == "找不到品項：不存在"


class TestQueries:

    @pytest.mark.asyncio
    async def test_queries_read_history_not_live_rows(self, test_db):
        order_id = await OrderService.create_order(test_db, "台北店", _lines(("雞蛋", 10)), world_id=1)
        await OrderService.modify_order_item_by_name(test_db, "雞蛋", 0, absolute=True, world_ids=[1])

        orders = await OrderService.query_orders_by_date_and_branch(test_db, "今天", world_id=1)
        assert [o.order_id for o in orders] == [order_id]
        assert orders[0].items[0].qty == 10

    @pytest.mark.asyncio
    async def test_branch_and_world_filters(self, test_db):
        await OrderService.create_order(test_db, "台北店", _lines(("雞蛋", 1)), world_id=1)
        await OrderService.create_order(test_db, "", _lines(("牛奶", 1)), world_id=1)
        await OrderService.create_order(test_db, "台北店", _lines(("吐司", 1)), world_id=2)

        taipei = await OrderService.query_orders_by_date_and_branch(test_db, "今天", "台北店", world_id=1)
        assert [o.items[0].name for o in taipei] == ["雞蛋"]

        unbranched = await OrderService.query_orders_by_date_and_branch(test_db, "今天", "", world_id=1)
        assert [o.items[0].name for o in unbranched] == ["牛奶"]

        every = await OrderService.query_orders_by_date_and_branch(test_db, "whenever", world_id=1)
        assert len(every) == 2

    @pytest.mark.asyncio
    async def test_other_dates_are_excluded(self, test_db):
        await OrderService.create_order(test_db, "", _lines(("雞蛋", 1)), world_id=1)
        assert await OrderService.query_orders_by_date_and_branch(test_db, "2000-01-01", world_id=1) == []

    @pytest.mark.asyncio
    async def test_impossible_date_returns_no_orders(self, test_db):
        await OrderService.create_order(test_db, "台北店", _lines(("雞蛋", 1)), world_id=1)
        assert await OrderService.query_orders_by_date_and_branch(test_db, "2024-13-45", world_id=1) == []
        assert await OrderService.query_all_orders_by_date(test_db, "2024-02-30", world_id=1) == []

    @pytest.mark.asyncio
    async def test_owner_query_carries_actor(self, test_db):
        await OrderService.create_order(test_db, "A", _lines(("雞蛋", 1)), actor_label="小明", world_id=1)
        orders = await OrderService.query_all_orders_by_date(test_db, "今天", world_id=1)
        assert orders[0].actor_label == "小明"
        plain = await OrderService.query_orders_by_date_and_branch(test_db, "今天", world_id=1)
        assert plain[0].actor_label is None

    @pytest.mark.asyncio
    async def test_malformed_history_is_skipped(self, test_db):
        test_db.add(OrderHistory(order_id=1, action_type=OrderAction.create_order.value, new_data={"x": 1}, world_id=1))
        await test_db.flush()
        await OrderService.create_order(test_db, "", _lines(("雞蛋", 1)), world_id=1)
        assert len(await OrderService.query_orders_by_date_and_branch(test_db, "今天", world_id=1)) == 1


class TestClear:

    @pytest.mark.asyncio
    async def test_clear_one_world_keeps_history(self, test_db):
        await OrderService.create_order(test_db, "", _lines(("雞蛋", 1), ("牛奶", 2)), world_id=1)
        await OrderService.create_order(test_db, "", _lines(("吐司", 1)), world_id=2)

        assert await OrderService.clear_all_orders(test_db, world_id=1) == 2
        assert [r.item for r in await _live(test_db)] == ["吐司"]
        assert len(await _history(test_db, OrderAction.create_order)) == 2
