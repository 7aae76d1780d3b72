"""
schemas/intents.py
------------------
Typed intents produced by the command parser.

Every intent carries a closed `IntentKind`; families that need arguments
subclass `Intent`. Intents are immutable and hold no reply text.
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from orderbot.schemas.order import OrderLine


class IntentKind(str, Enum):
    # Pre-binding
    restart = "restart"
    join_prompt = "join_prompt"
    join_world = "join_world"
    create_world = "create_world"
    # World management
    switch_prompt = "switch_prompt"
    switch_world = "switch_world"
    list_worlds = "list_worlds"
    current_world = "current_world"
    leave_prompt = "leave_prompt"
    leave_world = "leave_world"
    confirm_delete = "confirm_delete"
    # Formats
    set_order_format = "set_order_format"
    set_display_format = "set_display_format"
    # Menu image
    clear_menu_image = "clear_menu_image"
    set_menu_image_prompt = "set_menu_image_prompt"
    set_menu_image = "set_menu_image"
    # Misc
    cancel = "cancel"
    # Menu / catalog
    menu_format_help = "menu_format_help"
    set_menu_full = "set_menu_full"
    view_menu = "view_menu"
    add_menu_item = "add_menu_item"
    remove_menu_item = "remove_menu_item"
    update_menu_item = "update_menu_item"
    # Members
    view_members = "view_members"
    remove_member_prompt = "remove_member_prompt"
    remove_member = "remove_member"
    # Orders
    clear_orders = "clear_orders"
    place_order = "place_order"
    modify_order = "modify_order"
    query_orders = "query_orders"
    boss_query = "boss_query"


class Intent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: IntentKind


class WorldRef(BaseModel):
    """Numeric world id or 8-char world code; exactly one is set."""

    model_config = ConfigDict(frozen=True)

    world_id: Optional[int] = None
    world_code: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one(self) -> "WorldRef":
        if (self.world_id is None) == (self.world_code is None):
            raise ValueError("exactly one of world_id / world_code is required")
        return self

    def __str__(self) -> str:
        return self.world_code if self.world_code is not None else str(self.world_id)


class WorldIntent(Intent):
    target: WorldRef


class FormatIntent(Intent):
    # JSON payload following the keyword, or the bare JSON; None prompts for it
    body: Optional[str] = None


class MenuImageIntent(Intent):
    url: Optional[str] = None
    invalid: bool = False


class MenuTextIntent(Intent):
    content: str


class MenuItemIntent(Intent):
    vendor: str
    item_name: str
    qty: Optional[int] = None
    new_item_name: Optional[str] = None


class MemberIntent(Intent):
    target_user_id: str


class PlaceOrderIntent(Intent):
    branch: str = ""
    items: Tuple[OrderLine, ...]
    # Trailing date annotation, kept as typed
    time: Optional[str] = None


class ModifyOrderIntent(Intent):
    item: str
    amount: int
    absolute: bool = False


class QueryIntent(Intent):
    date: str
    # None matches every branch
    branch: Optional[str] = None
