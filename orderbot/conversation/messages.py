"""
conversation/messages.py
------------------------
Reply texts. Flows pick and fill these; nothing here touches the store.
"""

from typing import List, Optional, Sequence

from orderbot.conversation.keywords import Keywords
from orderbot.conversation.parser import MODIFY_AMOUNT, ORDER_LINE, split_lines
from orderbot.models.world import World, WorldStatus, format_world_id
from orderbot.schemas.order import LedgerOrder, MAX_QTY, ModifyResult, OrderLine, parse_count
from orderbot.schemas.world import UserWorld
from orderbot.services.catalog_service import CatalogDiagnosis

# ── Onboarding ────────────────────────────────────────────────────────────────

WELCOME = """歡迎使用訂單系統 👋

請選擇你要做的事：
1️⃣ 加入既有世界
2️⃣ 建立新世界（當老闆）

請直接回覆 1 或 2

輸入「重來」可重新選擇"""

WELCOME_BACK = "歡迎回來 👋\n\n輸入「我的店家」查看已加入的世界\n輸入「幫助」查看可用指令"

RESTART = """好，我們重新來一次 🙂

請選擇：
1️⃣ 加入世界
2️⃣ 建立新世界"""

RESTART_KEPT_WORLDS = "已放棄尚未完成的世界 🙂\n\n輸入「我的店家」查看已加入的世界"

ASK_WORLD_ID = """請輸入世界 ID 或世界代碼
（例如：1、#000001 或 ABCD2345）

輸入「重來」可重新選擇"""

WORLD_NOT_FOUND_PRE = """❌ 找不到這個世界
請確認世界 ID 是否正確

請選擇：
1️⃣ 重新輸入世界 ID
2️⃣ 建立新世界

輸入「重來」可重新選擇"""

ALREADY_JOINED = "您已經加入此世界"
ALREADY_OWNER = "您已經擁有世界，無法重複建立"

CATALOG_EXAMPLES = """📋 基本格式範例：
全聯
  雞蛋 10
  牛奶 5
  吐司 3

📋 進階格式範例（含屬性）：
UNIQLO
  T恤 黑 M 10
  T恤 白 S 5
  T恤 藍 L 3

💡 格式說明：
• 第一行：廠商/店家名稱
• 後續行：品項名稱 數量（用空格分隔）
• 品項名稱可包含屬性（如顏色、尺寸）
• 數量必須是數字，放在最後
• 使用「- 品項名稱」表示數量為 0"""


def world_created(world: World) -> str:
    return (
        f"✅ 世界建立完成！\n世界代碼: {world.world_code}\n\n"
        "下一步：請設定訂單格式（vendorMap）\n\n"
        f"{CATALOG_EXAMPLES}\n\n"
        "請直接貼上你要的格式\n\n"
        "輸入「重來」放棄建立並重新選擇"
    )


def world_joined(world: World) -> str:
    code = f" (代碼: {world.world_code})" if world.world_code else ""
    title = f"「{world.name}」" if world.name else f" #{format_world_id(world.id)}"
    return f"✅ 成功加入世界{title}{code}\n\n現在可以開始使用訂單功能了！\n\n輸入「幫助」查看可用指令"


_DIAGNOSIS_TEXT = {
    CatalogDiagnosis.empty: "您沒有輸入任何內容",
    CatalogDiagnosis.single_line: "格式不完整：只有一行內容\n\n📋 正確格式：\n廠商名稱\n  品項名稱 數量\n  品項名稱 數量",
    CatalogDiagnosis.missing_vendor: "缺少廠商名稱（第一行應該是廠商名稱）",
    CatalogDiagnosis.missing_items: "缺少品項資訊（廠商名稱下方應該有品項列表）",
    CatalogDiagnosis.bad_item: "品項格式錯誤",
}

CATALOG_FORMAT_HELP = f"""📋 菜單格式說明

範例 1（基本格式）：
全聯
  雞蛋 10
  牛奶 5
  吐司 3

範例 2（使用 - 符號，數量為 0）：
全聯
  - 雞蛋
  - 牛奶

範例 3（多個廠商）：
全聯
  雞蛋 10
  牛奶 5
UNIQLO
  T恤 黑 M 10
  T恤 白 S 5

範例 4（品項屬性）：
飲料店
  奶茶 1 [大杯, 少冰]

💡 格式說明：
• 第一行：廠商名稱（不可縮排）
• 後續行：品項名稱 數量（建議縮排，用空格分隔）
• 或使用：- 品項名稱（數量為 0）
• 數量必須是正整數（1-{MAX_QTY}）

老闆可用「設定菜單」＋換行＋整份菜單，一次替換菜單"""


def catalog_failed(diagnosis: CatalogDiagnosis) -> str:
    return (
        f"❌ 訂單格式設定失敗\n\n{_DIAGNOSIS_TEXT[diagnosis]}\n\n"
        f"{CATALOG_FORMAT_HELP}\n\n"
        "請重新輸入正確格式（或輸入「重來」放棄建立）"
    )


ASK_WORLD_NAME = "請為自己創立的世界取名: 「世界名稱」"
INVALID_WORLD_NAME = "請輸入有效的世界名稱"


def world_ready(world_id: int, world_code: str) -> str:
    return (
        "🎉 訂單格式設定完成！\n\n你現在可以：\n- 開始記訂單\n"
        f"- 邀請使用者加入（請他們輸入世界 ID: #{format_world_id(world_id)} 或代碼: {world_code}）\n\n"
        "輸入「幫助」查看可用指令"
    )


# ── Help ──────────────────────────────────────────────────────────────────────

HELP_OWNER = """📋 可用指令（老闆）：

🔹 訂單相關：
• 記訂單：品項 數量（可多行）
• 查訂單：查詢→換行→日期
• 修改訂單：修改→換行→品項名稱→換行→+數量／-數量／=數量
• 老闆查詢：老闆查詢→換行→日期（查看所有訂單，按廠商分組）

🔹 世界管理：
• 我的店家：查看所有已加入的世界
• 當前店家：查看目前使用的世界
• 切換世界：切換到其他世界
• 確認刪除世界 [ID/代碼]：永久刪除自己的世界
• 清理訂單：清理（清除目前世界的所有訂單）
• 查看成員：查看世界成員名單
• 剔除成員：剔除成員→換行→成員 ID

🔹 格式設定：
• 設定訂購格式：設定訂單格式規範
• 設定顯示格式：設定老闆查詢顯示格式

🔹 菜單管理：
• 查看菜單：查看菜單
• 菜單格式：查看菜單格式說明
• 設定菜單：設定菜單→換行→整份菜單
• 新增品項：新增品項→換行→廠商→換行→品項名稱 [數量]
• 刪除品項：刪除品項→換行→廠商→換行→品項名稱
• 修改品項：修改品項→換行→廠商→換行→品項名稱→換行→新名稱 [數量]
• 設定菜單圖片：設定菜單圖片→換行→圖片 URL"""

HELP_MEMBER = """📋 可用指令（員工）：

🔹 訂單相關：
• 記訂單：品項 數量（可多行）
• 查訂單：查詢→換行→日期
• 修改訂單：修改→換行→品項名稱→換行→+數量／-數量／=數量

🔹 世界管理：
• 我的店家：查看所有已加入的世界
• 當前店家：查看目前使用的世界
• 切換世界：切換到其他世界
• 退出世界：離開某個世界

🔹 其他：
• 查看菜單：查看菜單
• 菜單格式：查看菜單格式說明"""


# ── Worlds ────────────────────────────────────────────────────────────────────

NO_WORLDS = "❌ 您尚未加入任何世界\n\n請選擇：\n1️⃣ 加入既有世界\n2️⃣ 建立新世界"


def _status_text(status: WorldStatus) -> str:
    if status == WorldStatus.active:
        return "✅ 啟用中"
    if status in (WorldStatus.vendor_map_setup, WorldStatus.world_naming):
        return "⏳ 設定中"
    return "❌ 未啟用"


def world_list(worlds: Sequence[UserWorld], current_world_id: Optional[int]) -> str:
    lines = ["📋 我的店家列表：", ""]
    for idx, w in enumerate(worlds, start=1):
        is_current = w.world_id == current_world_id
        prefix = "👉 " if is_current else "   "
        role_icon = "👑" if w.is_owner else "👤"
        code = f" ({w.world_code})" if w.world_code else ""
        lines.append(f"{prefix}{idx}. {role_icon} {w.label}{code}")
        lines.append(f"    {_status_text(w.status)}")
        if is_current:
            lines.append("    目前使用中")
        lines.append("")
    lines += [
        "💡 提示：",
        "• 輸入「切換世界」可切換到其他店家",
        "• 輸入「當前店家」查看目前使用的店家",
        "• 輸入「退出世界」可離開店家",
    ]
    return "\n".join(lines)


NO_CURRENT_WORLD = "❌ 您尚未設定當前世界\n\n請先加入或建立一個世界"
CURRENT_WORLD_MISSING = "❌ 找不到當前世界\n\n請使用「切換世界」選擇一個世界"


def current_world(world: World, binding: Optional[UserWorld]) -> str:
    is_owner = bool(binding and binding.is_owner)
    role = ("👑 擁有者" if is_owner else "👤 員工") if binding else "未知"
    lines = [
        "📍 當前店家資訊：",
        "",
        f"名稱: {world.label}",
        f"世界 ID: #{format_world_id(world.id)}",
        f"世界代碼: {world.world_code}",
        f"角色: {role}",
        f"狀態: {_status_text(WorldStatus(world.status))}",
        "",
    ]
    if world.is_active:
        lines += ["💡 現在可以：", "• 記訂單", "• 查訂單", "• 修改訂單"]
        if is_owner:
            lines += ["• 老闆查詢", "• 清理訂單"]
    else:
        lines.append("⚠️ 此世界尚未完成設定")
        lines.append("請先完成世界設定" if is_owner else "請等待老闆完成設定")
    lines += ["", "輸入「幫助」查看所有可用指令"]
    return "\n".join(lines)


ONLY_ONE_WORLD = "❌ 您只有一個世界，無需切換\n\n輸入「我的店家」查看世界列表"


def switch_prompt(worlds: Sequence[UserWorld], current_world_id: Optional[int]) -> str:
    lines = ["🔄 切換世界", "", "請輸入要切換的世界 ID 或代碼：", ""]
    for idx, w in enumerate(worlds, start=1):
        is_current = w.world_id == current_world_id
        prefix = "👉 " if is_current else "   "
        code = f" ({w.world_code})" if w.world_code else ""
        suffix = " [目前使用中]" if is_current else ""
        lines.append(f"{prefix}{idx}. {w.label}{code}{suffix}")
    lines += [
        "",
        "💡 輸入方式：",
        "• 世界 ID：例如 1 或 #000001",
        "• 世界代碼：例如 ABCD2345",
        "• 或輸入「切換世界 [ID/代碼]」",
    ]
    return "\n".join(lines)


SWITCH_NOT_FOUND = "❌ 找不到這個世界\n\n請確認世界 ID 或代碼是否正確\n\n輸入「切換世界」查看可用世界列表"
SWITCH_NOT_MEMBER = "❌ 您尚未加入此世界\n\n請先加入此世界後才能切換\n\n輸入「我的店家」查看已加入的世界"


def switched(world: World, is_owner: bool) -> str:
    code = f" (代碼: {world.world_code})" if world.world_code else ""
    if world.is_active:
        return f"✅ 已切換到「{world.label}」{code}\n\n現在可以開始使用訂單功能了！\n\n輸入「幫助」查看可用指令"
    tail = "請先完成世界設定\n\n輸入「重來」可重新開始設定" if is_owner else "請等待老闆完成世界設定"
    return f"⚠️ 已切換（此世界尚未完成設定）到「{world.label}」{code}\n\n{tail}"


def leave_prompt(worlds: Sequence[UserWorld]) -> str:
    lines = ["🚪 退出世界", "", "請輸入要退出的世界 ID 或代碼：", ""]
    for idx, w in enumerate(worlds, start=1):
        code = f" ({w.world_code})" if w.world_code else ""
        role = " [擁有者]" if w.is_owner else ""
        lines.append(f"   {idx}. {w.label}{code}{role}")
    lines += [
        "",
        "⚠️ 注意：",
        "• 退出後將無法再使用該世界的訂單功能",
        "• 擁有者無法退出自己的世界，只能以「確認刪除世界 [ID/代碼]」永久刪除",
        "• 如果這是您唯一的世界，退出後需要重新加入或建立世界",
        "",
        "💡 輸入方式：「退出世界 [ID/代碼]」",
    ]
    return "\n".join(lines)


LEAVE_NOT_FOUND = "❌ 找不到這個世界\n\n請確認世界 ID 或代碼是否正確\n\n輸入「退出世界」查看可用世界列表"
NOT_A_MEMBER = "❌ 您尚未加入此世界"


def owner_cannot_leave(world: World) -> str:
    return (
        f"⚠️ 您是「{world.label}」的擁有者，無法直接退出\n\n"
        "如要永久刪除此世界（含所有訂單與成員），請輸入：\n"
        f"確認刪除世界 {world.world_code}\n\n"
        "此操作無法復原"
    )


def left_world(world: World, remaining: int, was_current: bool) -> str:
    msg = f"✅ 已退出「{world.label}」\n\n"
    if remaining == 0:
        return msg + "您現在沒有任何世界了\n\n請選擇：\n1️⃣ 加入既有世界\n2️⃣ 建立新世界"
    msg += f"您還有 {remaining} 個世界\n\n"
    if was_current:
        return msg + "⚠️ 已清除當前世界設定\n請使用「切換世界」選擇要使用的世界"
    return msg + "輸入「我的店家」查看剩餘的世界"


ONLY_OWNER_CAN_DELETE = "❌ 僅世界擁有者可以刪除世界"


def world_deleted(world: World) -> str:
    return f"🗑️ 已永久刪除「{world.label}」\n\n所有訂單、成員與菜單均已移除\n\n{RESTART}"


# ── Menu ──────────────────────────────────────────────────────────────────────

ONLY_OWNER_MENU = "❌ 僅世界擁有者可以管理菜單"
MENU_EMPTY = "📋 菜單為空\n\n老闆尚未設定菜單"
MENU_TEXT_EMPTY = "📋 菜單（文字版為空）"


def menu_item_added(vendor: str, name: str, qty: int) -> str:
    return f"✅ 已新增品項到菜單\n\n廠商: {vendor}\n品項: {name}\n數量: {qty}"


def menu_item_removed(vendor: str, name: str) -> str:
    return f"✅ 已從菜單刪除品項\n\n廠商: {vendor}\n品項: {name}"


def menu_item_missing(name: str) -> str:
    return f"❌ 找不到品項「{name}」\n\n請確認廠商和品項名稱是否正確"


def menu_item_updated(vendor: str, old: str, new: Optional[str], qty: Optional[int]) -> str:
    lines = ["✅ 已修改菜單品項", "", f"廠商: {vendor}"]
    if new and new != old:
        lines.append(f"品項: {old} → {new}")
    if qty is not None:
        lines.append(f"數量: {qty}")
    return "\n".join(lines)


def menu_replaced(vendors: int, items: int) -> str:
    return f"✅ 菜單已更新\n\n共 {vendors} 個廠商、{items} 個品項\n\n輸入「查看菜單」確認內容"


MENU_FULL_MISSING = "❌ 請在「設定菜單」下一行貼上整份菜單\n\n輸入「菜單格式」查看格式說明"

ONLY_OWNER_IMAGE = "❌ 僅世界擁有者可以設定菜單圖片"
MENU_IMAGE_CLEARED = "✅ 已清除菜單圖片"
MENU_IMAGE_PROMPT = """📷 設定菜單圖片

請輸入圖片 URL：

格式：
設定菜單圖片
https://example.com/menu.jpg

說明：
• 圖片 URL 必須是公開可訪問的網址
• 支援常見圖片格式（jpg, png, gif 等）
• 輸入「清除菜單圖片」可移除圖片"""
MENU_IMAGE_INVALID = "❌ 圖片 URL 格式錯誤，請確認 URL 是否正確\n\n請重新輸入「設定菜單圖片」＋換行＋圖片 URL"


def menu_image_set(url: str) -> str:
    return f"✅ 已設定菜單圖片\n\n圖片 URL: {url}"


# ── Members ───────────────────────────────────────────────────────────────────

ONLY_OWNER_MEMBERS = "❌ 僅世界擁有者可以查看成員名單"
ONLY_OWNER_REMOVE_MEMBER = "❌ 僅世界擁有者可以剔除成員"
REMOVE_MEMBER_PROMPT = """❌ 剔除成員格式錯誤

缺少成員 ID

📋 正確格式：
剔除成員
[成員的 LINE User ID]

💡 說明：
• 使用「查看成員」可查看所有成員
• 成員 ID 是 LINE 的 User ID（通常是一串長字串）
• 只能剔除員工，無法剔除擁有者"""
MEMBER_NOT_FOUND = "❌ 找不到該成員\n\n請確認成員 ID 是否正確\n\n使用「查看成員」可查看所有成員的 ID"
CANNOT_REMOVE_OWNER = "❌ 無法剔除世界擁有者\n\n只能剔除員工成員"
CANNOT_REMOVE_SELF = "❌ 無法剔除自己\n\n您是世界的擁有者"


def member_removed(display_name: str) -> str:
    return f"✅ 已剔除成員\n\n成員：{display_name}\n\n該成員已無法再使用此世界的訂單功能"


def member_list(owners: List[tuple], employees: List[tuple]) -> str:
    """owners / employees: (display_name, user_id, joined_date) tuples."""
    lines = ["📋 成員名單", ""]
    for title, members in (("👑 擁有者：", owners), ("👥 員工：", employees)):
        if not members:
            continue
        lines.append(title)
        for idx, (name, user_id, joined) in enumerate(members, start=1):
            lines += [f"{idx}. {name}", f"   ID: {user_id}", f"   加入時間：{joined}"]
        lines.append("")
    lines.append(f"總共 {len(owners) + len(employees)} 位成員")
    return "\n".join(lines)


# ── Formats ───────────────────────────────────────────────────────────────────

ONLY_OWNER_ORDER_FORMAT = "❌ 僅世界擁有者可以設定訂購格式"
ONLY_OWNER_DISPLAY_FORMAT = "❌ 僅世界擁有者可以設定顯示格式"

ORDER_FORMAT_PROMPT = """📋 設定使用者訂購格式

請輸入 JSON 格式的訂購格式規範：

範例 1（要求包含特定欄位）：
{
  "requiredFields": ["大杯", "正常甜", "正常冰"]
}

範例 2（使用正則表達式）：
{
  "itemFormat": "^.+\\\\s+(大杯|中杯|小杯)\\\\s+(正常甜|半糖|微糖|無糖)\\\\s+(正常冰|少冰|去冰)$"
}

範例 3（兩者結合）：
{
  "requiredFields": ["大杯"],
  "itemFormat": "^.+\\\\s+(正常甜|半糖|微糖|無糖)\\\\s+(正常冰|少冰|去冰)$"
}

說明：
• requiredFields：品項名稱必須包含的欄位（陣列，可選）
• itemFormat：品項名稱必須符合的正則表達式（字串，可選）
• 兩者可同時使用，必須都符合才算通過

請直接貼上 JSON，或輸入「設定訂購格式」＋換行＋JSON"""

DISPLAY_FORMAT_PROMPT = """📋 設定老闆查詢顯示格式

請輸入「設定顯示格式」＋換行＋JSON 格式的顯示格式模板：

範例 1（預設格式）：
{
  "template": "{vendor}\\\\n {branch}\\\\n    {item} {qty}{users}",
  "showUsers": true
}

範例 2（簡化格式）：
{
  "template": "{item} x{qty}{users}",
  "showUsers": true
}

範例 3（不顯示點單者）：
{
  "template": "{vendor} - {branch} - {item} {qty}",
  "showUsers": false
}

可用變數：
• {vendor}：廠商名稱
• {branch}：分店名稱
• {item}：品項名稱
• {qty}：數量
• {users}：點單者列表（格式：(使用者A、使用者B)）

說明：
• template：顯示模板（字串，\\\\n 代表換行）
• showUsers：是否顯示點單者（布林值，預設 true）"""

FORMAT_JSON_INVALID = "❌ JSON 格式錯誤，請檢查格式是否正確\n\n請重新輸入 JSON 格式"
ORDER_FORMAT_SAVED = "✅ 訂購格式設定完成！\n\n使用者下單時將根據此格式驗證\n\n輸入「幫助」查看其他指令"
DISPLAY_FORMAT_SAVED = "✅ 顯示格式設定完成！\n\n老闆查詢時將使用此格式顯示\n\n輸入「幫助」查看其他指令"
CANCELLED = "已取消"


# ── Orders ────────────────────────────────────────────────────────────────────

ONLY_OWNER_CLEAR = "❌ 僅世界擁有者（老闆）可以清理訂單"
ONLY_OWNER_BOSS_QUERY = "❌ 僅世界擁有者（老闆）可以使用老闆查詢"
NOT_BOUND = "❌ 您尚未加入任何世界"
WORLD_NOT_READY_NOTE = "此世界尚未完成設定\n・員工請等待老闆完成設定\n・老闆可繼續進行設定"


def orders_cleared(count: int) -> str:
    return f"✅ 已清理所有訂單（共 {count} 筆）"


def order_created(order_id: int, items: Sequence[OrderLine]) -> str:
    lines = ["✅ 訂單已建立", f"訂單 ID: {order_id}"]
    lines += [f"{line.name} x{line.qty}" for line in items]
    return "\n".join(lines)


def order_format_violation(names: Sequence[str], required: Sequence[str], item_format: Optional[str]) -> str:
    lines = ["❌ 訂購格式不符合規範", "", "以下品項格式錯誤："]
    lines += [f"• {name}" for name in names]
    if required:
        lines += ["", "📋 品項名稱必須包含以下欄位："]
        lines += [f"• {field}" for field in required]
    if item_format:
        lines += ["", "📋 品項名稱必須符合格式：", item_format]
    lines += ["", "請確認品項名稱是否符合設定的訂購格式"]
    return "\n".join(lines)


def owner_new_order(order_id: int, orderer: str, grouped: dict) -> str:
    """grouped: vendor → list of OrderLine."""
    lines = [f"訂單 ID: {order_id}", f"下單者: {orderer or '未知'}", ""]
    for vendor in sorted(grouped):
        lines.append(f"{vendor}：")
        lines += [f"• {line.name} {line.qty}" for line in grouped[vendor]]
        lines.append("")
    return "\n".join(lines).rstrip()


def order_modified(item: str, amount: int, absolute: bool, result: ModifyResult) -> str:
    lines = [f"✅ 已修改 {result.modified} 筆訂單", f"品項: {item}", ""]
    for r in result.results:
        branch = f" ({r.branch})" if r.branch else ""
        lines.append(f"訂單 {r.order_id}{branch}")
        if r.deleted:
            lines.append(f"  {r.item}: 已刪除 (數量為 0)")
        elif absolute:
            lines.append(f"  {r.item}: {r.old_qty} → 設為 {r.new_qty}")
        else:
            sign = "+" if amount > 0 else ""
            lines.append(f"  {r.item}: {r.old_qty} → {r.new_qty} ({sign}{amount})")
    return "\n".join(lines)


def no_orders(date_str: str, branch: Optional[str] = None) -> str:
    msg = f"📋 查無訂單\n日期: {date_str}"
    return msg + (f"\n分店: {branch}" if branch else "")


def query_results(date_str: str, branch: Optional[str], orders: Sequence[LedgerOrder]) -> str:
    lines = [f"📋 查詢結果 (共 {len(orders)} 筆)", f"日期: {date_str}"]
    if branch:
        lines.append(f"分店: {branch}")
    lines.append("")
    for idx, order in enumerate(orders, start=1):
        lines.append(f"訂單 {idx} (ID: {order.order_id})")
        lines += [f"  {line.name} x{line.qty}" for line in order.items]
        lines.append(f"建立時間: {order.created_at:%Y-%m-%d %H:%M:%S}")
        lines.append("")
    return "\n".join(lines).strip()


def boss_results(date_str: str, body: str) -> str:
    return f"📋 老闆查詢結果\n日期: {date_str}\n\n{body}"


# ── Fallback ──────────────────────────────────────────────────────────────────

NOT_READY_OWNER = (
    "❌ 世界尚未完成設定，無法使用訂單功能\n\n請先完成世界設定：\n"
    "• 設定訂單格式（vendorMap）\n• 為世界取名\n\n輸入「重來」可重新開始設定"
)
NOT_READY_MEMBER = (
    "❌ 世界尚未完成設定，無法使用訂單功能\n\n請等待老闆完成世界設定\n\n輸入「重來」可重新選擇世界"
)

_ORDER_EXAMPLE = "📋 正確格式：\n品項名稱 數量\n品項名稱 數量\n\n💡 範例：\n大杯紙杯 100\n小杯紙杯 50"
_MODIFY_EXAMPLE = (
    "📋 正確格式：\n修改\n品項名稱\n+5（或 -3、=10）\n\n💡 範例：\n"
    "修改\n大杯紙杯\n+10（增加 10 個）\n修改\n大杯紙杯\n-5（減少 5 個）\n修改\n大杯紙杯\n=20（設為 20 個）"
)


def describe_input_error(text: str, keywords: Keywords) -> Optional[str]:
    """Explain why an active-world message did not parse, when the shape is recognisable."""
    lines = split_lines(text)
    if not lines:
        return None
    first = lines[0]

    if first in keywords.modify_order:
        if len(lines) < 2:
            return f"❌ 修改訂單格式錯誤\n\n缺少品項名稱\n\n{_MODIFY_EXAMPLE}"
        if len(lines) < 3:
            return f"❌ 修改訂單格式錯誤\n\n缺少數量變化\n\n{_MODIFY_EXAMPLE}"
        change = lines[2]
        m = MODIFY_AMOUNT.match(change)
        if not m:
            return f"❌ 修改訂單格式錯誤\n\n數量格式錯誤：「{change}」\n\n{_MODIFY_EXAMPLE}"
        if parse_count(m.group(2)) == 0:
            return (
                f"❌ 修改訂單格式錯誤\n\n數量不能為 0\n\n{_MODIFY_EXAMPLE}\n\n"
                "⚠️ 如果要將數量設為 0，請使用「=0」（會自動刪除該品項）"
            )
        return f"❌ 修改訂單格式錯誤\n\n數量必須是 1-{MAX_QTY} 之間的正整數\n\n{_MODIFY_EXAMPLE}"

    if first in keywords.query:
        return "❌ 查詢格式錯誤\n\n缺少日期\n\n📋 正確格式：\n查詢\n今天（或 2024-01-15）"
    if first in keywords.boss_query:
        return "❌ 老闆查詢格式錯誤\n\n缺少日期\n\n📋 正確格式：\n老闆查詢\n今天（或 2024-01-15）"

    errors = []
    has_digit_line = False
    for idx, line in enumerate(lines, start=1):
        m = ORDER_LINE.match(line)
        if m:
            has_digit_line = True
            qty = parse_count(m.group(2))
            if qty is None or qty > MAX_QTY:
                errors.append(f"第 {idx} 行「{line}」：數量超過上限（最多 {MAX_QTY}）")
            elif qty <= 0:
                errors.append(f"第 {idx} 行「{line}」：數量必須大於 0")
        elif any(ch.isdigit() for ch in line):
            has_digit_line = True
            errors.append(f"第 {idx} 行「{line}」：數量格式錯誤（數量必須是正整數，且與品項名稱用空格分隔）")
    # Plain text without any numbers is not treated as an attempted order
    if errors and has_digit_line:
        return (
            "❌ 下訂單格式錯誤\n\n" + "\n".join(errors) + f"\n\n{_ORDER_EXAMPLE}\n\n"
            f"⚠️ 注意：\n• 品項名稱和數量之間必須用空格分隔\n• 數量必須是 1-{MAX_QTY} 之間的正整數"
        )
    return None


def fallback(has_binding: bool, is_world_active: bool, is_owner: bool) -> str:
    if not has_binding:
        return "❌ 訊息格式錯誤（當前階段：加入或建立世界）\n\n格式範例：1、2，或「重來」\n\n輸入「重來」可重新選擇"
    if not is_world_active:
        suffix = (
            f"{CATALOG_EXAMPLES}\n\n輸入「重來」放棄建立並重新選擇"
            if is_owner
            else "輸入「重來」可重新選擇世界"
        )
        return f"❌ 訊息格式錯誤（當前階段：世界設定中）\n\n{WORLD_NOT_READY_NOTE}\n\n{suffix}"
    return (
        "❌ 訊息格式錯誤（當前階段：訂單／查詢／修改）\n\n"
        "格式範例：品項 數量｜查詢→換行→日期｜修改→換行→品項→換行→±1｜老闆查詢→換行→日期｜幫助｜清理（僅老闆）"
    )


GENERIC_ERROR = "❌ 處理訊息時發生錯誤，請稍後再試"
