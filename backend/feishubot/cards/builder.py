"""
Feishu Card Builder - Turns card templates into interactive-card JSON.

Only this module knows Feishu markup: header colour templates, element tags
and the shape of the value dict that buttons and menus send back.
"""

from typing import Any, Dict, List, Optional

from .sanitize import sanitize_markdown, sanitize_plain
from .templates import (
    ActionRef,
    BalanceReport,
    Button,
    Card,
    Confirm,
    ImageResult,
    MenuOption,
    Notice,
    SelectorMenu,
    Tone,
)
from ..models.card_action import CardKind

TONE_COLORS = {
    Tone.INFO: "blue",
    Tone.SUCCESS: "green",
    Tone.DANGER: "red",
    Tone.NEUTRAL: "grey",
    Tone.ACCENT: "indigo",
}

DEFAULT_TITLE = "🤖️ Robot reminder"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _plain_text(content: str) -> Dict[str, Any]:
    return {"tag": "plain_text", "content": content}


def _header(title: str, tone: Tone) -> Dict[str, Any]:
    return {
        "template": TONE_COLORS[tone],
        "title": _plain_text(title or DEFAULT_TITLE),
    }


def _markdown(content: str) -> Dict[str, Any]:
    return {
        "tag": "div",
        "fields": [{
            "is_short": True,
            "text": {"tag": "lark_md", "content": sanitize_markdown(content)},
        }],
    }


def _text(content: str) -> Dict[str, Any]:
    return {
        "tag": "div",
        "fields": [{
            "is_short": False,
            "text": _plain_text(sanitize_plain(content)),
        }],
    }


def _note(content: str) -> Dict[str, Any]:
    return {"tag": "note", "elements": [_plain_text(content)]}


def _split_line() -> Dict[str, Any]:
    return {"tag": "hr"}


def action_value(kind: CardKind, value: str, ref: ActionRef) -> Dict[str, Any]:
    """The dict Feishu echoes back in ``action.value`` when the element is used."""
    payload = {
        "kind": kind.value,
        "value": value,
        "chatType": ref.chat_scope.value,
        "sessionId": ref.session_key,
    }
    if ref.message_id:
        payload["msgId"] = ref.message_id
    return payload


def _button(label: str, value: Dict[str, Any], button_type: str = "default") -> Dict[str, Any]:
    return {
        "tag": "button",
        "text": _plain_text(label),
        "type": button_type,
        "value": value,
    }


def _menu(placeholder: str, value: Dict[str, Any], options: List[MenuOption]) -> Dict[str, Any]:
    return {
        "tag": "select_static",
        "placeholder": _plain_text(placeholder),
        "value": value,
        "options": [
            {"text": _plain_text(option.label), "value": option.value}
            for option in options
        ],
    }


def _actions(actions: List[Dict[str, Any]], layout: str = "flow") -> Dict[str, Any]:
    return {"tag": "action", "actions": actions, "layout": layout}


def _image(image_key: str) -> Dict[str, Any]:
    return {
        "tag": "img",
        "img_key": image_key,
        "alt": _plain_text(""),
        "preview": True,
        "mode": "crop_center",
        "compact_width": True,
    }


def _envelope(elements: List[Dict[str, Any]], header: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    card: Dict[str, Any] = {
        "config": {
            "wide_screen_mode": False,
            "enable_forward": True,
            "update_multi": False,
        },
        "elements": elements,
    }
    if header is not None:
        card["header"] = header
    return card


def _build_notice(card: Notice) -> Dict[str, Any]:
    elements = [_text(card.body) if card.plain else _markdown(card.body)]
    for section in card.sections:
        if isinstance(section, Button):
            value = action_value(section.action_kind, section.value, section.ref)
            elements.append(_actions([_button(section.label, value, section.style)]))
            continue
        elements.append(_split_line())
        elements.append(_markdown(section))
    if card.footnote:
        elements.append(_note(card.footnote))
    return _envelope(elements, _header(card.title, card.tone))


def _build_confirm(card: Confirm) -> Dict[str, Any]:
    confirm = _button(
        card.confirm_label,
        action_value(card.action_kind, card.confirm_value, card.ref),
        "danger",
    )
    cancel = _button(
        card.cancel_label,
        action_value(card.action_kind, card.cancel_value, card.ref),
        "default",
    )
    elements = [_markdown(card.body)]
    if card.footnote:
        elements.append(_note(card.footnote))
    elements.append(_actions([confirm, cancel], layout="bisected"))
    return _envelope(elements, _header(card.title, card.tone))


def _build_selector(card: SelectorMenu) -> Dict[str, Any]:
    elements = []
    if card.body:
        elements.append(_markdown(card.body))
    menu = _menu(
        card.placeholder,
        action_value(card.action_kind, "0", card.ref),
        list(card.options),
    )
    elements.append(_actions([menu]))
    if card.footnote:
        elements.append(_note(card.footnote))
    return _envelope(elements, _header(card.title, card.tone))


def _build_image_result(card: ImageResult) -> Dict[str, Any]:
    more = _button(
        card.button_label,
        action_value(card.action_kind, card.regenerate_value, card.ref),
        "primary",
    )
    return _envelope([_image(card.image_key), _split_line(), _actions([more])])


def _build_balance(card: BalanceReport) -> Dict[str, Any]:
    elements = [
        _markdown(f"Total amount: {card.total:.2f}$"),
        _markdown(f"Used: {card.used:.2f}$"),
        _markdown(f"Available amount: {card.available:.2f}$"),
    ]
    if card.valid_from and card.valid_to:
        elements.append(_note(
            f"Validity period: {card.valid_from.strftime(TIME_FORMAT)}"
            f" - {card.valid_to.strftime(TIME_FORMAT)}"
        ))
    return _envelope(elements, _header(card.title, Tone.INFO))


def build_card(card: Card) -> Dict[str, Any]:
    """
    Build the Feishu interactive-card JSON for a template.

    Args:
        card: Any card template

    Returns:
        Card JSON as a dict, ready for ``json.dumps``
    """
    if isinstance(card, Notice):
        return _build_notice(card)
    if isinstance(card, Confirm):
        return _build_confirm(card)
    if isinstance(card, SelectorMenu):
        return _build_selector(card)
    if isinstance(card, ImageResult):
        return _build_image_result(card)
    if isinstance(card, BalanceReport):
        return _build_balance(card)
    raise TypeError(f"Unsupported card template: {type(card).__name__}")
