"""
Unit tests for card templates, the Feishu card builder and text sanitizing.
"""

import pytest
from datetime import datetime, timezone

from feishubot.cards import build_card
from feishubot.cards import renderer
from feishubot.cards.builder import action_value
from feishubot.cards.sanitize import sanitize_markdown, sanitize_plain, strip_html
from feishubot.cards.templates import ActionRef, Notice, Tone
from feishubot.models.card_action import CardKind, ChatScope
from feishubot.models.session import AIMode, PicResolution


@pytest.fixture
def ref():
    return ActionRef(session_key="om_root", message_id="om_msg", chat_scope=ChatScope.GROUP)


class TestSanitize:

    def test_escaped_newlines_are_folded(self):
        assert sanitize_markdown("line1\\nline2\r\nline3") == "line1\nline2\nline3"

    def test_html_and_scripts_are_dropped(self):
        text = "<b>bold</b><script>alert(1)</script> text"
        assert sanitize_markdown(text) == "bold text"

    def test_comparison_is_not_a_tag(self):
        assert strip_html("a < b and c > d") == "a < b and c > d"

    def test_generic_types_survive(self):
        text = "Return a List<String> or a vector<int>, never Map<K, V>"
        assert sanitize_markdown(text) == text

    def test_attributes_and_self_closing_tags_are_dropped(self):
        assert strip_html('<a href="x">link</a><br/><abbr title="t">ok</abbr>') == "linkok"

    def test_control_chars_removed(self):
        assert sanitize_markdown("a\x00b\x07c\td") == "abc\td"

    def test_blank_runs_collapse(self):
        assert sanitize_markdown("a\n\n\n\n\nb") == "a\n\nb"

    def test_empty(self):
        assert sanitize_markdown("") == ""

    def test_plain_unquotes(self):
        assert sanitize_plain('say \\"hi\\"') == 'say "hi"'


class TestActionValue:

    def test_round_trip_fields(self, ref):
        value = action_value(CardKind.CLEAR, "1", ref)
        assert value == {
            "kind": "clear",
            "value": "1",
            "chatType": "group",
            "sessionId": "om_root",
            "msgId": "om_msg",
        }

    def test_msg_id_omitted_when_unknown(self):
        value = action_value(CardKind.CLEAR, "1", ActionRef(session_key="s1"))
        assert "msgId" not in value
        assert value["chatType"] == "personal"


class TestBuildCard:

    def test_clear_confirm(self, ref):
        card = build_card(renderer.clear_confirm_card(ref))
        assert card["header"]["template"] == "blue"
        actions = card["elements"][-1]["actions"]
        assert [a["value"]["value"] for a in actions] == ["1", "0"]
        assert all(a["value"]["kind"] == "clear" for a in actions)
        assert card["elements"][-1]["layout"] == "bisected"

    def test_tone_colours(self):
        assert build_card(renderer.context_cleared_card())["header"]["template"] == "grey"
        assert build_card(renderer.context_retained_card())["header"]["template"] == "green"
        assert build_card(renderer.failure_card("x"))["header"]["template"] == "red"

    def test_pic_mode_entry_menu(self, ref):
        card = build_card(renderer.pic_mode_entry_card(ref, PicResolution.RES_512))
        menu = card["elements"][0]["actions"][0]
        assert menu["tag"] == "select_static"
        assert menu["placeholder"]["content"] == "Resolution: 512x512"
        assert [o["value"] for o in menu["options"]] == ["256x256", "512x512", "1024x1024"]
        assert menu["value"]["kind"] == "pic_resolution"

    def test_image_result(self, ref):
        card = build_card(renderer.image_result_card("img_1", "a red fox", ref))
        assert card["elements"][0]["img_key"] == "img_1"
        button = card["elements"][2]["actions"][0]
        assert button["value"]["kind"] == "pic_text_more"
        assert button["value"]["value"] == "a red fox"
        assert "header" not in card

    def test_variant_result_regenerates_from_itself(self, ref):
        card = build_card(renderer.variant_result_card("img_2", ref))
        button = card["elements"][2]["actions"][0]
        assert button["value"]["kind"] == "pic_var_more"
        assert button["value"]["value"] == "img_2"

    def test_role_entry_is_plain_text(self):
        card = build_card(renderer.role_entry_card("You are <b>a poet</b>"))
        text = card["elements"][0]["fields"][0]["text"]
        assert text["tag"] == "plain_text"
        assert text["content"] == "You are a poet"
        assert card["header"]["template"] == "indigo"

    def test_ai_mode_menu(self, ref):
        card = build_card(renderer.ai_mode_card(ref, AIMode.CREATIVE))
        menu = card["elements"][0]["actions"][0]
        assert [o["value"] for o in menu["options"]] == ["Strict", "Simple", "Standard", "Creative"]

    def test_help_sections(self, ref):
        template = renderer.help_card(ref)
        card = build_card(template)
        tags = [e["tag"] for e in card["elements"]]
        text_sections = [s for s in template.sections if isinstance(s, str)]
        assert tags.count("hr") == len(text_sections)

    def test_help_clear_button(self, ref):
        card = build_card(renderer.help_card(ref))
        rows = [e for e in card["elements"] if e["tag"] == "action"]
        assert len(rows) == 1
        button = rows[0]["actions"][0]
        assert button["type"] == "danger"
        assert button["value"]["kind"] == "clear"
        assert button["value"]["value"] == "1"
        assert button["value"]["sessionId"] == "om_root"

    def test_balance(self):
        card = build_card(renderer.balance_card(
            18.0, 2.5, 15.5,
            datetime(2023, 1, 1, tzinfo=timezone.utc),
            datetime(2023, 7, 1, tzinfo=timezone.utc),
        ))
        contents = [e["fields"][0]["text"]["content"] for e in card["elements"] if e["tag"] == "div"]
        assert contents == ["Total amount: 18.00$", "Used: 2.50$", "Available amount: 15.50$"]
        assert card["elements"][-1]["tag"] == "note"

    def test_markdown_body_is_sanitized(self):
        card = build_card(Notice(title="t", body="hi\\n<i>there</i>", tone=Tone.INFO))
        assert card["elements"][0]["fields"][0]["text"]["content"] == "hi\nthere"

    def test_unsupported_template(self):
        with pytest.raises(TypeError):
            build_card("not a card")
