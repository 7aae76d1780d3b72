"""
services/order_service.py
-------------------------
Order ledger: create, modify, query and clear.

Every mutation of the live `orders` rows is paired with an `order_history`
entry. Date queries read only the "create-order" history entries, so they
keep reporting what was ordered even after live rows are edited away.

The service does not decide whether a user may order (world active, role);
callers enforce that before calling in.
"""

import random
import re
import time
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderbot.core.logging import get_logger
from orderbot.models.order import OrderAction, OrderHistory, OrderItem
from orderbot.schemas.order import LedgerOrder, ModifiedLine, ModifyResult, OrderLine

logger = get_logger(__name__)

_TODAY_TOKENS = {"今天", "今日", "today"}
_DATE_PATTERN = re.compile(r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})")

# Written like a date but not on the calendar (2024-13-40); no order carries it
NO_SUCH_DATE = date.min


def generate_order_id() -> int:
    """Millisecond timestamp * 1000 plus a random 0..999 suffix."""
    return int(time.time() * 1000) * 1000 + random.randint(0, 999)


def resolve_query_date(date_str: str, today: Optional[date] = None) -> Optional[date]:
    """
    Turn a user date token into a calendar date.
    Returns None when the token is not understood, meaning "any date", and
    NO_SUCH_DATE when it is date-shaped but invalid, so nothing matches.
    """
    token = (date_str or "").strip()
    if token.lower() in _TODAY_TOKENS:
        return today or datetime.now(timezone.utc).date()
    m = _DATE_PATTERN.search(token)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return NO_SUCH_DATE
    return None


def _row_date(created_at: datetime) -> date:
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc)
    return created_at.date()


class OrderService:

    @staticmethod
    async def log_order_history(
        db: AsyncSession,
        order_id: int,
        action: OrderAction,
        old_data: Optional[dict],
        new_data: Optional[dict],
        user: Optional[str] = None,
        user_id: Optional[str] = None,
        world_id: Optional[int] = None,
    ) -> OrderHistory:
        entry = OrderHistory(
            order_id=order_id,
            action_type=action.value,
            old_data=old_data,
            new_data=new_data,
            user=user,
            user_id=user_id,
            world_id=world_id,
        )
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def create_order(
        db: AsyncSession,
        branch: str,
        items: Sequence[OrderLine],
        actor_label: Optional[str] = None,
        world_id: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> int:
        """
        Insert one live row per item, then one history entry for the order.
        The history entry is only written once every row has flushed; a
        failing insert propagates before anything is logged.
        """
        order_id = generate_order_id()
        for line in items:
            db.add(
                OrderItem(
                    order_id=order_id,
                    branch=branch,
                    item=line.name,
                    qty=line.qty,
                    world_id=world_id,
                )
            )
        await db.flush()

        await OrderService.log_order_history(
            db,
            order_id,
            OrderAction.create_order,
            None,
            {"branch": branch, "items": [line.model_dump() for line in items]},
            user=actor_label,
            user_id=user_id,
            world_id=world_id,
        )
        logger.info(
            "Order created",
            order_id=order_id,
            world_id=world_id,
            branch=branch,
            items=len(items),
        )
        return order_id

    @staticmethod
    async def modify_order_item_by_name(
        db: AsyncSession,
        item_name: str,
        amount: int,
        absolute: bool = False,
        world_ids: Optional[Iterable[int]] = None,
        actor_label: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ModifyResult:
        """
        Apply a delta (`absolute=False`) or set a quantity on every live row
        named `item_name` within `world_ids` (rows without a world included).

        A delta that would go negative clamps to 0. A resulting 0 deletes the
        row and logs "delete-item"; anything else updates it and logs
        "modify-quantity".
        """
        stmt = select(OrderItem).where(OrderItem.item == item_name)
        scope = list(world_ids or [])
        if scope:
            stmt = stmt.where(or_(OrderItem.world_id.is_(None), OrderItem.world_id.in_(scope)))
        stmt = stmt.order_by(OrderItem.id.asc())
        rows = list((await db.execute(stmt)).scalars().all())

        if not rows:
            return ModifyResult(modified=0, message=f"找不到品項：{item_name}")

        results: List[ModifiedLine] = []
        for row in rows:
            old_snapshot = row.snapshot()
            new_qty = amount if absolute else max(row.qty + amount, 0)

            if new_qty == 0:
                await db.delete(row)
                await db.flush()
                await OrderService.log_order_history(
                    db, row.order_id, OrderAction.delete_item, old_snapshot, None,
                    user=actor_label, user_id=user_id, world_id=row.world_id,
                )
            else:
                row.qty = new_qty
                await db.flush()
                await OrderService.log_order_history(
                    db, row.order_id, OrderAction.modify_quantity, old_snapshot, row.snapshot(),
                    user=actor_label, user_id=user_id, world_id=row.world_id,
                )

            results.append(
                ModifiedLine(
                    order_id=row.order_id,
                    branch=row.branch,
                    item=row.item,
                    old_qty=old_snapshot["qty"],
                    new_qty=new_qty,
                    deleted=new_qty == 0,
                )
            )

        logger.info(
            "Order items modified",
            item=item_name,
            amount=amount,
            absolute=absolute,
            modified=len(results),
        )
        return ModifyResult(modified=len(results), results=results)

    @staticmethod
    async def _created_orders(
        db: AsyncSession,
        date_str: str,
        world_id: Optional[int],
        branch: Optional[str],
        with_actor: bool,
    ) -> List[LedgerOrder]:
        stmt = select(OrderHistory).where(
            OrderHistory.action_type == OrderAction.create_order.value
        )
        if world_id is not None:
            stmt = stmt.where(OrderHistory.world_id == world_id)
        stmt = stmt.order_by(OrderHistory.created_at.desc(), OrderHistory.id.desc())
        entries = (await db.execute(stmt)).scalars().all()

        target = resolve_query_date(date_str)
        orders: List[LedgerOrder] = []
        for entry in entries:
            data = entry.new_data
            if not isinstance(data, dict) or not isinstance(data.get("items"), list):
                logger.warning("Skipping malformed history entry", order_id=entry.order_id)
                continue
            entry_branch = data.get("branch") or ""
            if branch is not None and entry_branch != branch:
                continue
            if target is not None and _row_date(entry.created_at) != target:
                continue
            try:
                orders.append(
                    LedgerOrder(
                        order_id=entry.order_id,
                        branch=entry_branch,
                        items=data["items"],
                        created_at=entry.created_at,
                        actor_label=entry.user if with_actor else None,
                    )
                )
            except PydanticValidationError:
                logger.warning("Skipping malformed history entry", order_id=entry.order_id)
        return orders

    @staticmethod
    async def query_orders_by_date_and_branch(
        db: AsyncSession,
        date_str: str,
        branch: Optional[str] = None,
        world_id: Optional[int] = None,
    ) -> List[LedgerOrder]:
        """Orders created on `date_str`, newest first. `branch=None` means any branch."""
        return await OrderService._created_orders(db, date_str, world_id, branch, with_actor=False)

    @staticmethod
    async def query_all_orders_by_date(
        db: AsyncSession,
        date_str: str,
        world_id: Optional[int] = None,
    ) -> List[LedgerOrder]:
        """Owner-wide variant: every branch, with the ordering member's label."""
        return await OrderService._created_orders(db, date_str, world_id, None, with_actor=True)

    @staticmethod
    async def clear_all_orders(db: AsyncSession, world_id: Optional[int] = None) -> int:
        """Delete live rows (one world's, or all). History is kept."""
        stmt = delete(OrderItem)
        if world_id is not None:
            stmt = stmt.where(OrderItem.world_id == world_id)
        result = await db.execute(stmt)
        await db.flush()
        logger.info("Live orders cleared", world_id=world_id, deleted=result.rowcount)
        return result.rowcount
