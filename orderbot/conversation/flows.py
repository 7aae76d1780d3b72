"""
conversation/flows.py
---------------------
One async function per conversation step. A flow owns its reply text and
its store writes; it never commits.

Flow contract:
  - Receives a FlowContext (session, user, derived state, collaborators)
    and, for routed commands, the parsed intent.
  - Returns the reply payload (text or a list of typed messages).
  - Queues work that must only run after a successful commit (the owner's
    new-order push) on `ctx.after_commit`.
  - User-input problems are answered, not raised. Store failures are
    caught by `guarded`, which rolls back and answers with a generic text.
"""

import functools
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderbot.conversation import messages
from orderbot.conversation.parser import CommandParser
from orderbot.conversation.state import UserState
from orderbot.core.exceptions import ConflictError, PermissionDeniedError
from orderbot.core.logging import get_logger
from orderbot.models.binding import BindingRole
from orderbot.models.world import World, WorldStatus
from orderbot.schemas.intents import (
    FormatIntent,
    Intent,
    MemberIntent,
    MenuImageIntent,
    MenuItemIntent,
    MenuTextIntent,
    ModifyOrderIntent,
    PlaceOrderIntent,
    QueryIntent,
    WorldIntent,
    WorldRef,
)
from orderbot.schemas.messaging import ImageMessage, ReplyPayload, TextMessage
from orderbot.services.catalog_service import (
    CatalogService,
    diagnose_vendor_map_text,
    format_vendor_map,
    parse_vendor_map,
    vendor_resolver,
)
from orderbot.services.format_service import (
    format_orders_by_display_format,
    invalid_items,
    parse_display_format,
    parse_order_format,
)
from orderbot.services.messaging_service import Messenger
from orderbot.services.order_service import OrderService
from orderbot.services.world_service import WorldService

logger = get_logger(__name__)

MAX_WORLD_NAME_LENGTH = 255

AfterCommit = Callable[[], Awaitable[None]]


@dataclass
class FlowContext:
    db: AsyncSession
    user_id: str
    state: UserState
    messenger: Messenger
    parser: CommandParser
    item_vendor_fallback: Mapping[str, str] = field(default_factory=dict)
    after_commit: List[AfterCommit] = field(default_factory=list)

    @property
    def world_id(self) -> Optional[int]:
        return self.state.current_world_id if self.state.current else None

    async def current_world(self) -> Optional[World]:
        if self.world_id is None:
            return None
        return await WorldService.get_world_by_id(self.db, self.world_id)

    async def display_name(self, user_id: Optional[str] = None) -> str:
        target = user_id or self.user_id
        return await self.messenger.get_display_name(target) or target


def guarded(operation: str):
    """Turn store failures inside a flow into a rollback and a generic reply."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(ctx: FlowContext, *args, **kwargs) -> ReplyPayload:
            try:
                return await fn(ctx, *args, **kwargs)
            except SQLAlchemyError:
                await ctx.db.rollback()
                ctx.after_commit.clear()
                logger.error(
                    "Flow failed",
                    operation=operation,
                    flow=fn.__name__,
                    world_id=ctx.state.current_world_id,
                    exc_info=True,
                )
                return f"❌ {operation}時發生錯誤，請稍後再試"

        return wrapper

    return decorator


async def _find_world(db: AsyncSession, ref: WorldRef) -> Optional[World]:
    if ref.world_code is not None:
        return await WorldService.get_world_by_code(db, ref.world_code)
    return await WorldService.get_world_by_id(db, ref.world_id)


# ── Onboarding ────────────────────────────────────────────────────────────────

async def follow(ctx: FlowContext) -> ReplyPayload:
    return messages.WELCOME_BACK if ctx.state.has_binding else messages.WELCOME


async def restart(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    return messages.RESTART


async def join_prompt(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    return messages.ASK_WORLD_ID


@guarded("加入世界")
async def join_world(ctx: FlowContext, intent: WorldIntent) -> ReplyPayload:
    world = await _find_world(ctx.db, intent.target)
    if world is None:
        return messages.WORLD_NOT_FOUND_PRE
    if await WorldService.get_binding(ctx.db, ctx.user_id, world.id) is not None:
        return messages.ALREADY_JOINED
    try:
        await WorldService.bind_user(ctx.db, ctx.user_id, world.id, BindingRole.employee)
    except ConflictError:
        return messages.ALREADY_JOINED
    await WorldService.set_current_world(ctx.db, ctx.user_id, world.id)
    return messages.world_joined(world)


@guarded("建立世界")
async def create_world(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    if ctx.state.owned_world is not None:
        return messages.ALREADY_OWNER
    try:
        world = await WorldService.create_world(ctx.db, ctx.user_id)
    except ConflictError:
        logger.error("World code allocation exhausted", user_id=ctx.user_id)
        return "❌ 建立世界時發生錯誤，請稍後再試"
    await WorldService.bind_user(ctx.db, ctx.user_id, world.id, BindingRole.owner)
    await WorldService.set_current_world(ctx.db, ctx.user_id, world.id)
    return messages.world_created(world)


@guarded("重新開始")
async def restart_in_setup(ctx: FlowContext, text: str) -> ReplyPayload:
    """Abandon every unfinished world: owners delete theirs, employees unbind."""
    abandoned = [b for b in ctx.state.bindings if not b.is_active]
    for binding in abandoned:
        if binding.is_owner:
            await WorldService.delete_unfinished_world(ctx.db, binding.world_id)
        else:
            await WorldService.unbind_user(ctx.db, ctx.user_id, binding.world_id)
    if ctx.state.current_world_id in {b.world_id for b in abandoned}:
        await WorldService.clear_current_world(ctx.db, ctx.user_id)
    if ctx.state.active_world_ids:
        return messages.RESTART_KEPT_WORLDS
    return messages.RESTART


@guarded("設定訂單格式")
async def catalog_setup(ctx: FlowContext, text: str) -> ReplyPayload:
    world_id = ctx.state.current_world_id
    vendor_map = parse_vendor_map(text)
    if vendor_map is None:
        await WorldService.update_status(ctx.db, world_id, WorldStatus.failed)
        return messages.catalog_failed(diagnose_vendor_map_text(text))
    await CatalogService.save_vendor_map(ctx.db, world_id, vendor_map)
    await WorldService.update_status(ctx.db, world_id, WorldStatus.world_naming)
    return messages.ASK_WORLD_NAME


@guarded("設定世界名稱")
async def naming(ctx: FlowContext, text: str) -> ReplyPayload:
    name = text.strip().strip("「」").strip()
    if not name or len(name) > MAX_WORLD_NAME_LENGTH:
        return messages.INVALID_WORLD_NAME
    world_id = ctx.state.current_world_id
    await WorldService.update_name(ctx.db, world_id, name)
    world = await WorldService.update_status(ctx.db, world_id, WorldStatus.active)
    return messages.world_ready(world.id, world.world_code)


async def help_text(ctx: FlowContext, text: str) -> ReplyPayload:
    return messages.HELP_OWNER if ctx.state.is_owner else messages.HELP_MEMBER


async def cancel(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    return messages.CANCELLED


# ── World management ──────────────────────────────────────────────────────────

@guarded("查詢世界列表")
async def list_worlds(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    worlds = await WorldService.get_all_worlds_for_user(ctx.db, ctx.user_id)
    if not worlds:
        return messages.NO_WORLDS
    return messages.world_list(worlds, ctx.state.current_world_id)


@guarded("查詢當前世界")
async def current_world(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    if ctx.state.current_world_id is None:
        return messages.NO_CURRENT_WORLD
    world = await ctx.current_world()
    if world is None:
        return messages.CURRENT_WORLD_MISSING
    return messages.current_world(world, ctx.state.current)


@guarded("切換世界")
async def switch_prompt(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    worlds = await WorldService.get_all_worlds_for_user(ctx.db, ctx.user_id)
    if not worlds:
        return messages.NO_WORLDS
    if len(worlds) == 1:
        return messages.ONLY_ONE_WORLD
    return messages.switch_prompt(worlds, ctx.state.current_world_id)


@guarded("切換世界")
async def switch_world(ctx: FlowContext, intent: WorldIntent) -> ReplyPayload:
    world = await _find_world(ctx.db, intent.target)
    if world is None:
        return messages.SWITCH_NOT_FOUND
    binding = await WorldService.get_binding(ctx.db, ctx.user_id, world.id)
    if binding is None:
        return messages.SWITCH_NOT_MEMBER
    await WorldService.set_current_world(ctx.db, ctx.user_id, world.id)
    return messages.switched(world, binding.role == BindingRole.owner.value)


@guarded("退出世界")
async def leave_prompt(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    worlds = await WorldService.get_all_worlds_for_user(ctx.db, ctx.user_id)
    if not worlds:
        return messages.NO_WORLDS
    return messages.leave_prompt(worlds)


@guarded("退出世界")
async def leave_world(ctx: FlowContext, intent: WorldIntent) -> ReplyPayload:
    world = await _find_world(ctx.db, intent.target)
    if world is None:
        return messages.LEAVE_NOT_FOUND
    binding = await WorldService.get_binding(ctx.db, ctx.user_id, world.id)
    if binding is None:
        return messages.NOT_A_MEMBER
    if binding.role == BindingRole.owner.value:
        return messages.owner_cannot_leave(world)

    await WorldService.unbind_user(ctx.db, ctx.user_id, world.id)
    was_current = ctx.state.current_world_id == world.id
    if was_current:
        await WorldService.clear_current_world(ctx.db, ctx.user_id)
    remaining = len(ctx.state.bindings) - 1
    return messages.left_world(world, remaining, was_current)


@guarded("刪除世界")
async def confirm_delete(ctx: FlowContext, intent: WorldIntent) -> ReplyPayload:
    world = await _find_world(ctx.db, intent.target)
    if world is None:
        return messages.LEAVE_NOT_FOUND
    try:
        await WorldService.require_owner(ctx.db, ctx.user_id, world.id)
    except PermissionDeniedError:
        return messages.ONLY_OWNER_CAN_DELETE
    reply = messages.world_deleted(world)
    await WorldService.delete_world_permanently(ctx.db, world.id)
    return reply


# ── Menu ──────────────────────────────────────────────────────────────────────

async def menu_format_help(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    return messages.CATALOG_FORMAT_HELP


@guarded("查看菜單")
async def view_menu(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    world = await ctx.current_world()
    if world is None:
        return messages.NOT_BOUND
    vendor_map = await CatalogService.get_vendor_map(ctx.db, world.id)
    has_items = bool(vendor_map) and any(vendor_map.values())

    if world.menu_image_url:
        text = format_vendor_map(vendor_map) if has_items else messages.MENU_TEXT_EMPTY
        return [ImageMessage.from_url(world.menu_image_url), TextMessage(text=text)]
    if not has_items:
        return messages.MENU_EMPTY
    return format_vendor_map(vendor_map)


@guarded("設定菜單")
async def set_menu_full(ctx: FlowContext, intent: MenuTextIntent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_MENU
    if not intent.content.strip():
        return messages.MENU_FULL_MISSING
    vendor_map = parse_vendor_map(intent.content)
    if vendor_map is None:
        return messages.catalog_failed(diagnose_vendor_map_text(intent.content))
    await CatalogService.save_vendor_map(ctx.db, ctx.world_id, vendor_map)
    items = sum(len(entries) for entries in vendor_map.values())
    return messages.menu_replaced(len(vendor_map), items)


@guarded("新增品項")
async def add_menu_item(ctx: FlowContext, intent: MenuItemIntent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_MENU
    qty = intent.qty or 0
    await CatalogService.add_item(ctx.db, ctx.world_id, intent.vendor, intent.item_name, qty)
    return messages.menu_item_added(intent.vendor, intent.item_name, qty)


@guarded("刪除品項")
async def remove_menu_item(ctx: FlowContext, intent: MenuItemIntent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_MENU
    removed = await CatalogService.remove_item(ctx.db, ctx.world_id, intent.vendor, intent.item_name)
    if not removed:
        return messages.menu_item_missing(intent.item_name)
    return messages.menu_item_removed(intent.vendor, intent.item_name)


@guarded("修改品項")
async def update_menu_item(ctx: FlowContext, intent: MenuItemIntent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_MENU
    updated = await CatalogService.update_item(
        ctx.db,
        ctx.world_id,
        intent.vendor,
        intent.item_name,
        new_name=intent.new_item_name,
        qty=intent.qty,
    )
    if not updated:
        return messages.menu_item_missing(intent.item_name)
    return messages.menu_item_updated(intent.vendor, intent.item_name, intent.new_item_name, intent.qty)


# ── Menu image ────────────────────────────────────────────────────────────────

@guarded("清除菜單圖片")
async def clear_menu_image(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_IMAGE
    await WorldService.update_menu_image_url(ctx.db, ctx.world_id, None)
    return messages.MENU_IMAGE_CLEARED


async def set_menu_image_prompt(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_IMAGE
    return messages.MENU_IMAGE_PROMPT


@guarded("設定菜單圖片")
async def set_menu_image(ctx: FlowContext, intent: MenuImageIntent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_IMAGE
    if intent.invalid or not intent.url:
        return messages.MENU_IMAGE_INVALID
    await WorldService.update_menu_image_url(ctx.db, ctx.world_id, intent.url)
    return messages.menu_image_set(intent.url)


# ── Members ───────────────────────────────────────────────────────────────────

@guarded("查詢成員")
async def view_members(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_MEMBERS
    owners, employees = [], []
    for binding in await WorldService.get_world_members(ctx.db, ctx.world_id):
        name = await ctx.display_name(binding.user_id)
        joined = f"{binding.created_at:%Y-%m-%d}" if binding.created_at else "未知"
        row = (name, binding.user_id, joined)
        (owners if binding.role == BindingRole.owner.value else employees).append(row)
    return messages.member_list(owners, employees)


async def remove_member_prompt(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_REMOVE_MEMBER
    return messages.REMOVE_MEMBER_PROMPT


@guarded("剔除成員")
async def remove_member(ctx: FlowContext, intent: MemberIntent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_REMOVE_MEMBER
    target = intent.target_user_id
    if target == ctx.user_id:
        return messages.CANNOT_REMOVE_SELF
    binding = await WorldService.get_binding(ctx.db, target, ctx.world_id)
    if binding is None:
        return messages.MEMBER_NOT_FOUND
    if binding.role == BindingRole.owner.value:
        return messages.CANNOT_REMOVE_OWNER

    await WorldService.unbind_user(ctx.db, target, ctx.world_id)
    if await WorldService.get_current_world_id(ctx.db, target) == ctx.world_id:
        await WorldService.clear_current_world(ctx.db, target)
    logger.info("Member removed", world_id=ctx.world_id, target=target)
    return messages.member_removed(await ctx.display_name(target))


# ── Formats ───────────────────────────────────────────────────────────────────

@guarded("設定訂購格式")
async def set_order_format(ctx: FlowContext, intent: FormatIntent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_ORDER_FORMAT
    if intent.body is None:
        return messages.ORDER_FORMAT_PROMPT
    if parse_order_format(intent.body) is None:
        return messages.FORMAT_JSON_INVALID
    await WorldService.update_order_format(ctx.db, ctx.world_id, intent.body)
    return messages.ORDER_FORMAT_SAVED


@guarded("設定顯示格式")
async def set_display_format(ctx: FlowContext, intent: FormatIntent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_DISPLAY_FORMAT
    if intent.body is None:
        return messages.DISPLAY_FORMAT_PROMPT
    if parse_display_format(intent.body) is None:
        return messages.FORMAT_JSON_INVALID
    await WorldService.update_display_format(ctx.db, ctx.world_id, intent.body)
    return messages.DISPLAY_FORMAT_SAVED


@guarded("設定訂購格式")
async def bare_json_format(ctx: FlowContext, intent: FormatIntent) -> ReplyPayload:
    """
    A pasted JSON object from an owner is taken as a new order format,
    unless it repeats a format already stored on the world.
    """
    world = await ctx.current_world()
    body = intent.body or ""
    if world is None or body in (world.order_format, world.display_format):
        return messages.fallback(True, ctx.state.is_world_active, ctx.state.is_owner)
    return await set_order_format(ctx, intent)


# ── Orders ────────────────────────────────────────────────────────────────────

@guarded("清理訂單")
async def clear_orders(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_CLEAR
    count = await OrderService.clear_all_orders(ctx.db, world_id=ctx.world_id)
    return messages.orders_cleared(count)


def _notify_owner(ctx: FlowContext, owner_user_id: str, text: str, order_id: int) -> AfterCommit:
    async def send() -> None:
        delivered = await ctx.messenger.push(owner_user_id, text)
        if not delivered:
            logger.warning("Owner notification not delivered", order_id=order_id, owner=owner_user_id)

    return send


@guarded("建立訂單")
async def place_order(ctx: FlowContext, intent: PlaceOrderIntent) -> ReplyPayload:
    world = await ctx.current_world()
    if world is None:
        return messages.NOT_BOUND

    order_format = parse_order_format(world.order_format)
    rejected = invalid_items([line.name for line in intent.items], order_format)
    if rejected:
        return messages.order_format_violation(
            rejected, order_format.required_fields, order_format.item_format
        )

    actor = await ctx.display_name()
    order_id = await OrderService.create_order(
        ctx.db,
        intent.branch,
        intent.items,
        actor_label=actor,
        world_id=world.id,
        user_id=ctx.user_id,
    )

    if world.owner_user_id and world.owner_user_id != ctx.user_id:
        vendor_of = vendor_resolver(
            await CatalogService.get_vendor_map(ctx.db, world.id), ctx.item_vendor_fallback
        )
        grouped: Dict[str, list] = defaultdict(list)
        for line in intent.items:
            grouped[vendor_of(line.name)].append(line)
        text = messages.owner_new_order(order_id, actor, grouped)
        ctx.after_commit.append(_notify_owner(ctx, world.owner_user_id, text, order_id))

    return messages.order_created(order_id, intent.items)


@guarded("修改訂單")
async def modify_order(ctx: FlowContext, intent: ModifyOrderIntent) -> ReplyPayload:
    world_ids = [binding.world_id for binding in ctx.state.bindings]
    result = await OrderService.modify_order_item_by_name(
        ctx.db,
        intent.item,
        intent.amount,
        absolute=intent.absolute,
        world_ids=world_ids,
        actor_label=await ctx.display_name(),
        user_id=ctx.user_id,
    )
    if result.modified == 0:
        return f"❌ {result.message}"
    return messages.order_modified(intent.item, intent.amount, intent.absolute, result)


@guarded("查詢訂單")
async def query_orders(ctx: FlowContext, intent: QueryIntent) -> ReplyPayload:
    orders = await OrderService.query_orders_by_date_and_branch(
        ctx.db, intent.date, branch=intent.branch, world_id=ctx.world_id
    )
    if not orders:
        return messages.no_orders(intent.date, intent.branch)
    return messages.query_results(intent.date, intent.branch, orders)


@guarded("老闆查詢")
async def boss_query(ctx: FlowContext, intent: QueryIntent) -> ReplyPayload:
    if not ctx.state.is_owner:
        return messages.ONLY_OWNER_BOSS_QUERY
    world = await ctx.current_world()
    if world is None:
        return messages.NOT_BOUND
    orders = await OrderService.query_all_orders_by_date(ctx.db, intent.date, world_id=world.id)
    if not orders:
        return messages.no_orders(intent.date)

    vendor_map = await CatalogService.get_vendor_map(ctx.db, world.id)
    body = format_orders_by_display_format(
        orders,
        parse_display_format(world.display_format),
        vendor_resolver(vendor_map, ctx.item_vendor_fallback),
    )
    return messages.boss_results(intent.date, body)


# ── Fallback ──────────────────────────────────────────────────────────────────

async def fallback(ctx: FlowContext, text: str) -> ReplyPayload:
    state = ctx.state
    if state.has_binding and not state.is_world_active:
        # Order-shaped text in a world that is not ready yet
        if ctx.parser.parse_order_message(text) is not None:
            return messages.NOT_READY_OWNER if state.is_owner else messages.NOT_READY_MEMBER
    if state.is_world_active:
        explained = messages.describe_input_error(text, ctx.parser.kw)
        if explained is not None:
            return explained
    return messages.fallback(state.has_binding, state.is_world_active, state.is_owner)
