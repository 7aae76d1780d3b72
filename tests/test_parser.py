"""
Tests for the command parser (text → intent)
"""

import pytest

from orderbot.conversation.keywords import Keywords
from orderbot.conversation.messages import describe_input_error
from orderbot.conversation.parser import CommandParser, parse_world_ref
from orderbot.schemas.intents import IntentKind


@pytest.fixture
def parser() -> CommandParser:
    return CommandParser()


class TestPreBinding:
    """Join / create / restart before the user has any world"""

    @pytest.mark.parametrize("text", ["1", "1️⃣", "加入世界", "我想加入"])
    def test_join_prompt(self, parser, text):
        assert parser.parse_pre_binding(text).kind == IntentKind.join_prompt

    @pytest.mark.parametrize("text", ["2", "2️⃣", "建立新世界", "我要建立"])
    def test_create(self, parser, text):
        assert parser.parse_pre_binding(text).kind == IntentKind.create_world

    def test_restart(self, parser):
        assert parser.parse_pre_binding(" 重來 ").kind == IntentKind.restart

    def test_numeric_id_joins(self, parser):
        intent = parser.parse_pre_binding("#000012")
        assert intent.kind == IntentKind.join_world
        assert intent.target.world_id == 12

    def test_code_is_uppercased_and_never_an_id(self, parser):
        intent = parser.parse_pre_binding("abcd2345")
        assert intent.target.world_code == "ABCD2345"
        digits = parser.parse_pre_binding("12345678")
        assert digits.target.world_code == "12345678"
        assert digits.target.world_id is None

    def test_zero_id_and_free_text_do_not_match(self, parser):
        assert parser.parse_pre_binding("0") is None
        assert parser.parse_pre_binding("你好") is None

    def test_oversized_id_is_not_a_join(self, parser):
        assert parser.parse_pre_binding("9" * 5000) is None
        assert parser.parse_pre_binding("#2147483648") is None
        assert parser.parse_pre_binding("2147483647").target.world_id == 2147483647


class TestWorldCommands:

    def test_prompts(self, parser):
        assert parser.parse_world_command("切換世界").kind == IntentKind.switch_prompt
        assert parser.parse_world_command("我的店家").kind == IntentKind.list_worlds
        assert parser.parse_world_command("當前店家").kind == IntentKind.current_world
        assert parser.parse_world_command("退出世界").kind == IntentKind.leave_prompt

    def test_explicit_forms_win_over_prompts(self, parser):
        switch = parser.parse_world_command("切換世界 ABCD2345")
        assert switch.kind == IntentKind.switch_world
        assert switch.target.world_code == "ABCD2345"

        leave = parser.parse_world_command("退出世界 #3")
        assert leave.kind == IntentKind.leave_world
        assert leave.target.world_id == 3

    def test_explicit_form_accepts_loose_code(self, parser):
        intent = parser.parse_world_command("切換世界 abc123x")
        assert intent.target.world_code == "ABC123X"

    def test_confirm_delete(self, parser):
        intent = parser.parse_world_command("確認刪除世界 WXYZ9876")
        assert intent.kind == IntentKind.confirm_delete
        assert intent.target.world_code == "WXYZ9876"

    def test_bare_token_switches(self, parser):
        assert parser.parse_world_command("7").target.world_id == 7
        assert parser.parse_world_command("wxyz9876").target.world_code == "WXYZ9876"

    def test_order_text_is_not_a_world_command(self, parser):
        assert parser.parse_world_command("雞蛋 10") is None

    def test_oversized_id_is_not_a_world_command(self, parser):
        assert parser.parse_world_command("9" * 5000) is None
        switch = parser.parse_world_command("切換世界 " + "9" * 5000)
        assert switch.kind == IntentKind.switch_prompt


def test_parse_world_ref_forms():
    assert parse_world_ref("12.").world_id == 12
    assert parse_world_ref("# 5").world_id == 5
    assert parse_world_ref("abc") is None
    assert parse_world_ref("abcdef", loose_code=True).world_code == "ABCDEF"
    assert parse_world_ref("9" * 5000) is None
    assert parse_world_ref("#" + "9" * 5000, loose_code=True) is None


class TestFormatsAndImage:

    def test_format_prompt_without_body(self, parser):
        intent = parser.parse_format_command("設定訂購格式")
        assert intent.kind == IntentKind.set_order_format
        assert intent.body is None

    def test_display_format_with_inline_body(self, parser):
        intent = parser.parse_format_command('設定顯示格式\n{"template": "{item} x{qty}"}')
        assert intent.kind == IntentKind.set_display_format
        assert intent.body == '{"template": "{item} x{qty}"}'

    def test_menu_image(self, parser):
        assert parser.parse_menu_image_command("清除菜單圖片").kind == IntentKind.clear_menu_image
        assert parser.parse_menu_image_command("設定菜單圖片").kind == IntentKind.set_menu_image_prompt

        ok = parser.parse_menu_image_command("設定菜單圖片\nhttps://example.com/menu.jpg")
        assert ok.kind == IntentKind.set_menu_image
        assert not ok.invalid

        bad = parser.parse_menu_image_command("設定菜單圖片\nnot a url")
        assert bad.kind == IntentKind.set_menu_image
        assert bad.invalid


class TestMenuCommands:

    def test_add_item_with_and_without_qty(self, parser):
        intent = parser.parse_menu_command("新增品項\n全聯\n雞蛋 10")
        assert (intent.vendor, intent.item_name, intent.qty) == ("全聯", "雞蛋", 10)
        assert parser.parse_menu_command("新增品項\n全聯\n牛奶").qty == 0

    def test_add_item_qty_bounds(self, parser):
        assert parser.parse_menu_command("新增品項\n全聯\n雞蛋 999999").qty == 999999
        assert parser.parse_menu_command("新增品項\n全聯\n雞蛋 1000000") is None
        assert parser.parse_menu_command("新增品項\n全聯\n雞蛋 " + "9" * 5000) is None

    def test_add_item_requires_three_lines(self, parser):
        assert parser.parse_menu_command("新增品項\n全聯") is None

    def test_update_item(self, parser):
        intent = parser.parse_menu_command("修改品項\n全聯\n雞蛋\n土雞蛋 20")
        assert intent.kind == IntentKind.update_menu_item
        assert (intent.item_name, intent.new_item_name, intent.qty) == ("雞蛋", "土雞蛋", 20)

    def test_set_full_menu_keeps_content(self, parser):
        intent = parser.parse_menu_command("設定菜單\n全聯\n  雞蛋 10")
        assert intent.kind == IntentKind.set_menu_full
        assert intent.content == "全聯\n  雞蛋 10"

    def test_view_and_help(self, parser):
        assert parser.parse_menu_command("查看菜單").kind == IntentKind.view_menu
        assert parser.parse_menu_command("菜單格式").kind == IntentKind.menu_format_help


class TestMembers:

    def test_remove_member_prompts_without_target(self, parser):
        assert parser.parse_member_command("剔除成員").kind == IntentKind.remove_member_prompt
        intent = parser.parse_member_command("剔除成員\nU123")
        assert intent.kind == IntentKind.remove_member
        assert intent.target_user_id == "U123"


class TestOrderMessages:

    def test_place_order_lines(self, parser):
        intent = parser.parse_order_message("雞蛋 10\n牛奶  5")
        assert intent.kind == IntentKind.place_order
        assert [(l.name, l.qty) for l in intent.items] == [("雞蛋", 10), ("牛奶", 5)]

    @pytest.mark.parametrize(
        "qty, accepted",
        [("1", True), ("999999", True), ("0", False), ("1000000", False), ("-3", False), ("2.5", False)],
    )
    def test_order_quantity_bounds(self, parser, qty, accepted):
        intent = parser.parse_order_message(f"雞蛋 {qty}")
        assert (intent is not None) == accepted

    def test_oversized_quantity_is_not_an_order(self, parser):
        assert parser.parse_order_message("雞蛋 " + "9" * 5000) is None
        assert parser.parse_order_message("雞蛋 " + "0" * 20 + "5").items[0].qty == 5

    def test_item_name_length_limit(self, parser):
        assert parser.parse_order_message(f"{'蛋' * 100} 1") is not None
        assert parser.parse_order_message(f"{'蛋' * 101} 1") is None

    def test_trailing_date_is_annotation(self, parser):
        intent = parser.parse_order_message("雞蛋 10\n2024-01-15")
        assert len(intent.items) == 1
        assert intent.time == "2024-01-15"

    def test_date_alone_is_not_an_order(self, parser):
        assert parser.parse_order_message("2024-01-15") is None

    def test_modify_delta_and_absolute(self, parser):
        plus = parser.parse_order_message("修改\n雞蛋\n+5")
        assert (plus.item, plus.amount, plus.absolute) == ("雞蛋", 5, False)
        minus = parser.parse_order_message("改\n雞蛋\n-3")
        assert minus.amount == -3
        absolute = parser.parse_order_message("修改\n雞蛋\n=0")
        assert (absolute.amount, absolute.absolute) == (0, True)

    def test_modify_rejects_zero_delta(self, parser):
        assert parser.parse_order_message("修改\n雞蛋\n+0") is None
        assert parser.parse_order_message("修改\n雞蛋") is None

    def test_modify_rejects_oversized_and_non_decimal_amounts(self, parser):
        assert parser.parse_order_message("修改\n雞蛋\n+" + "9" * 5000) is None
        assert parser.parse_order_message("修改\n雞蛋\n=" + "9" * 5000) is None
        assert parser.parse_order_message("修改\n雞蛋\n+²") is None

    def test_queries(self, parser):
        query = parser.parse_order_message("查詢\n今天")
        assert query.kind == IntentKind.query_orders
        assert query.branch is None
        with_branch = parser.parse_order_message("查詢\n2024-01-15\n台北店")
        assert with_branch.branch == "台北店"
        boss = parser.parse_order_message("老闆查詢\n今天")
        assert boss.kind == IntentKind.boss_query


def test_keywords_are_injectable():
    parser = CommandParser(Keywords(help="help", clear_orders=("wipe",)))
    assert parser.is_help("help")
    assert not parser.is_help("幫助")
    assert parser.is_clear_command("wipe")


class TestInputErrors:
    """Hints for active-world text that almost parsed"""

    def test_non_decimal_modify_amount(self):
        hint = describe_input_error("修改\n雞蛋\n+²", Keywords())
        assert hint.startswith("❌ 修改訂單格式錯誤")
        assert "數量格式錯誤：「+²」" in hint

    def test_modify_amount_zero_and_out_of_range(self):
        assert "數量不能為 0" in describe_input_error("修改\n雞蛋\n+000", Keywords())
        assert "正整數" in describe_input_error("修改\n雞蛋\n+" + "9" * 5000, Keywords())

    def test_order_quantity_limits(self):
        hint = describe_input_error("雞蛋 " + "9" * 5000 + "\n牛奶 0", Keywords())
        assert "第 1 行" in hint and "數量超過上限" in hint
        assert "第 2 行「牛奶 0」：數量必須大於 0" in hint

    def test_plain_text_has_no_hint(self):
        assert describe_input_error("你好", Keywords()) is None
