"""
conversation/keywords.py
------------------------
Command keyword lists, grouped per intent family.

Keywords are configuration: a `Keywords` instance is built once and handed
to the CommandParser. `exact` lists match the whole (first) line; `prefix`
lists also match when the line starts with the keyword.
"""

from typing import Tuple

from pydantic import BaseModel, ConfigDict


class Keywords(BaseModel):
    model_config = ConfigDict(frozen=True)

    restart: str = "重來"
    help: str = "幫助"
    cancel: str = "取消"

    # Pre-binding menu
    join_exact: Tuple[str, ...] = ("1", "1️⃣", "加入既有世界", "加入世界")
    join_contains: str = "加入"
    create_exact: Tuple[str, ...] = ("2", "2️⃣", "建立新世界")
    create_contains: str = "建立"

    # World management
    switch: Tuple[str, ...] = ("切換世界", "切換店家")
    list_worlds_exact: Tuple[str, ...] = ("我的店家", "所有店家", "查看店家", "店家列表")
    list_worlds_prefix: Tuple[str, ...] = ("我的店家", "所有店家")
    current_world_exact: Tuple[str, ...] = ("當前店家", "目前店家", "當前世界", "目前世界")
    current_world_prefix: Tuple[str, ...] = ("當前店家", "目前店家")
    leave_exact: Tuple[str, ...] = ("退出世界", "離開世界", "退出店家", "離開店家", "刪除世界")
    leave_prefix: Tuple[str, ...] = ("退出世界", "離開世界", "刪除世界")
    confirm_delete: str = "確認刪除世界"

    # Formats
    order_format: Tuple[str, ...] = ("設定訂購格式", "設定下單格式")
    display_format: Tuple[str, ...] = ("設定顯示格式", "設定查詢格式")

    # Menu image
    clear_menu_image: Tuple[str, ...] = ("清除菜單圖片", "刪除菜單圖片", "移除菜單圖片")
    set_menu_image: Tuple[str, ...] = ("設定菜單圖片", "設定圖片")

    # Menu
    menu_format_help: Tuple[str, ...] = ("菜單格式", "菜單格式說明")
    set_menu_full: Tuple[str, ...] = ("設定菜單", "更新菜單")
    view_menu: Tuple[str, ...] = ("查看菜單", "菜單", "查看", "看菜單")
    add_menu_item: Tuple[str, ...] = ("新增品項", "加入品項")
    remove_menu_item: Tuple[str, ...] = ("刪除品項", "移除品項")
    update_menu_item: Tuple[str, ...] = ("修改品項", "更新品項")

    # Members
    view_members: Tuple[str, ...] = ("查看成員", "成員名單", "成員列表", "查看成員名單")
    remove_member: Tuple[str, ...] = ("剔除成員", "移除成員", "刪除成員")

    # Orders
    clear_orders: Tuple[str, ...] = ("清理訂單", "清除訂單", "清空訂單", "刪除訂單", "清理", "清除", "清空")
    modify_order: Tuple[str, ...] = ("修改", "改")
    boss_query: Tuple[str, ...] = ("老闆查詢", "老闆查")
    query: Tuple[str, ...] = ("查詢",)


DEFAULT_KEYWORDS = Keywords()


def matches(text: str, exact: Tuple[str, ...], prefix: Tuple[str, ...] = ()) -> bool:
    return text in exact or any(text.startswith(k) for k in prefix)
