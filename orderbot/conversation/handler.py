"""
conversation/handler.py
-----------------------
Webhook event → one reply.

Per event:
  1. Events without a user, a reply token, or text (other than `follow`)
     are ignored.
  2. Turns from the same user are serialised with an in-process lock.
  3. One session per event: the state is derived, exactly one route runs,
     and the session commits once after the flow returns.
  4. The reply is sent, then the after-commit tasks run (owner
     notification). A failing task is logged and never affects the reply.

Routes are tried in order; the first matcher that returns a payload wins
and its flow gets that payload (an Intent, or the raw text for stage
flows). Nothing matched → fallback flow.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from weakref import WeakValueDictionary

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderbot.conversation import flows, messages
from orderbot.conversation.flows import AfterCommit, FlowContext
from orderbot.conversation.parser import CommandParser, looks_like_json_object
from orderbot.conversation.state import UserState, get_state
from orderbot.core.logging import bind_event_context, clear_event_context, get_logger
from orderbot.schemas.intents import FormatIntent, Intent, IntentKind
from orderbot.schemas.messaging import LineEvent, ReplyPayload
from orderbot.services.messaging_service import Messenger

logger = get_logger(__name__)

Matcher = Callable[[UserState, str], Any]
Flow = Callable[[FlowContext, Any], Awaitable[ReplyPayload]]
Route = Tuple[str, Matcher, Flow]


COMMAND_FLOWS: Dict[IntentKind, Flow] = {
    IntentKind.restart: flows.restart,
    IntentKind.join_prompt: flows.join_prompt,
    IntentKind.join_world: flows.join_world,
    IntentKind.create_world: flows.create_world,
    IntentKind.switch_prompt: flows.switch_prompt,
    IntentKind.switch_world: flows.switch_world,
    IntentKind.list_worlds: flows.list_worlds,
    IntentKind.current_world: flows.current_world,
    IntentKind.leave_prompt: flows.leave_prompt,
    IntentKind.leave_world: flows.leave_world,
    IntentKind.confirm_delete: flows.confirm_delete,
    IntentKind.set_order_format: flows.set_order_format,
    IntentKind.set_display_format: flows.set_display_format,
    IntentKind.clear_menu_image: flows.clear_menu_image,
    IntentKind.set_menu_image_prompt: flows.set_menu_image_prompt,
    IntentKind.set_menu_image: flows.set_menu_image,
    IntentKind.cancel: flows.cancel,
    IntentKind.menu_format_help: flows.menu_format_help,
    IntentKind.set_menu_full: flows.set_menu_full,
    IntentKind.view_menu: flows.view_menu,
    IntentKind.add_menu_item: flows.add_menu_item,
    IntentKind.remove_menu_item: flows.remove_menu_item,
    IntentKind.update_menu_item: flows.update_menu_item,
    IntentKind.view_members: flows.view_members,
    IntentKind.remove_member_prompt: flows.remove_member_prompt,
    IntentKind.remove_member: flows.remove_member,
    IntentKind.clear_orders: flows.clear_orders,
    IntentKind.place_order: flows.place_order,
    IntentKind.modify_order: flows.modify_order,
    IntentKind.query_orders: flows.query_orders,
    IntentKind.boss_query: flows.boss_query,
}

_MENU_VIEW_KINDS = (IntentKind.view_menu, IntentKind.set_menu_full)
_MENU_EDIT_KINDS = (IntentKind.add_menu_item, IntentKind.remove_menu_item, IntentKind.update_menu_item)


async def run_command(ctx: FlowContext, intent: Intent) -> ReplyPayload:
    return await COMMAND_FLOWS[intent.kind](ctx, intent)


def _kinds(intent: Optional[Intent], kinds: Iterable[IntentKind]) -> Optional[Intent]:
    return intent if intent is not None and intent.kind in kinds else None


class ConversationHandler:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        messenger: Messenger,
        parser: Optional[CommandParser] = None,
        item_vendor_fallback: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.messenger = messenger
        self.parser = parser or CommandParser()
        self.item_vendor_fallback = dict(item_vendor_fallback or {})
        self._locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()
        self.routes: List[Route] = self._build_routes()

    # ── Routing ───────────────────────────────────────────────────────────────

    def _build_routes(self) -> List[Route]:
        p = self.parser

        def bound(state: UserState) -> bool:
            return state.has_binding

        def active(state: UserState) -> bool:
            return state.has_binding and state.is_world_active

        def owner_active(state: UserState) -> bool:
            return active(state) and state.is_owner

        def json_format(state: UserState, text: str) -> Optional[Intent]:
            if owner_active(state) and looks_like_json_object(text):
                return FormatIntent(kind=IntentKind.set_order_format, body=text.strip())
            return None

        return [
            ("pre_binding",
             lambda s, t: p.parse_pre_binding(t) if not bound(s) else None,
             run_command),
            ("restart_in_setup",
             lambda s, t: t if bound(s) and (s.in_catalog_setup or not s.is_world_active) and p.is_restart(t) else None,
             flows.restart_in_setup),
            ("catalog_setup", lambda s, t: t if s.in_catalog_setup else None, flows.catalog_setup),
            ("naming", lambda s, t: t if s.in_naming else None, flows.naming),
            ("help", lambda s, t: t if bound(s) and p.is_help(t) else None, flows.help_text),
            ("cancel",
             lambda s, t: Intent(kind=IntentKind.cancel) if bound(s) and p.is_cancel(t) else None,
             run_command),
            ("world", lambda s, t: p.parse_world_command(t) if bound(s) else None, run_command),
            ("menu_help",
             lambda s, t: _kinds(p.parse_menu_command(t), (IntentKind.menu_format_help,)) if bound(s) else None,
             run_command),
            ("menu_view",
             lambda s, t: _kinds(p.parse_menu_command(t), _MENU_VIEW_KINDS) if active(s) else None,
             run_command),
            ("menu_edit",
             lambda s, t: _kinds(p.parse_menu_command(t), _MENU_EDIT_KINDS) if active(s) else None,
             run_command),
            ("menu_image", lambda s, t: p.parse_menu_image_command(t) if active(s) else None, run_command),
            ("members", lambda s, t: p.parse_member_command(t) if active(s) else None, run_command),
            ("formats", lambda s, t: p.parse_format_command(t) if active(s) else None, run_command),
            ("json_format", json_format, flows.bare_json_format),
            ("clear_orders",
             lambda s, t: Intent(kind=IntentKind.clear_orders) if active(s) and p.is_clear_command(t) else None,
             run_command),
            ("orders", lambda s, t: p.parse_order_message(t) if active(s) else None, run_command),
        ]

    async def dispatch(self, ctx: FlowContext, text: str) -> Tuple[str, ReplyPayload]:
        for name, match, flow in self.routes:
            payload = match(ctx.state, text)
            if payload is not None:
                return name, await flow(ctx, payload)
        return "fallback", await flows.fallback(ctx, text)

    # ── Event handling ────────────────────────────────────────────────────────

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def handle_events(self, events: Iterable[LineEvent]) -> None:
        """
        Handle a webhook batch. A failing event is logged and the rest of the
        batch still runs; the first failure is re-raised once all are done.
        """
        first_error: Optional[Exception] = None
        for event in events:
            try:
                await self.handle_event(event)
            except Exception as exc:
                logger.error("Event failed", event_type=event.type, user_id=event.user_id, exc_info=True)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    async def handle_event(self, event: LineEvent) -> None:
        user_id = event.user_id
        if not user_id or not event.reply_token:
            logger.debug("Event without user or reply token ignored", event_type=event.type)
            return
        if not event.is_follow and event.text is None:
            logger.debug("Unsupported event ignored", event_type=event.type)
            return

        bind_event_context(user_id=user_id, event_type=event.type)
        try:
            async with self._lock_for(user_id):
                reply, after_commit = await self._process(event, user_id)
                await self.messenger.reply(event.reply_token, reply)
            await self._run_after_commit(after_commit)
        finally:
            clear_event_context()

    async def _process(self, event: LineEvent, user_id: str) -> Tuple[ReplyPayload, List[AfterCommit]]:
        async with self.session_factory() as db:
            try:
                state = await get_state(db, user_id)
                ctx = FlowContext(
                    db=db,
                    user_id=user_id,
                    state=state,
                    messenger=self.messenger,
                    parser=self.parser,
                    item_vendor_fallback=self.item_vendor_fallback,
                )
                if event.is_follow:
                    route, reply = "follow", await flows.follow(ctx)
                else:
                    route, reply = await self.dispatch(ctx, event.text)
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                logger.error("Event processing failed", exc_info=True)
                return messages.GENERIC_ERROR, []

        logger.info("Event handled", route=route, stage=state.stage.value, world_id=state.current_world_id)
        return reply, ctx.after_commit

    async def _run_after_commit(self, tasks: List[AfterCommit]) -> None:
        for task in tasks:
            try:
                await task()
            except Exception:
                logger.error("After-commit task failed", exc_info=True)
