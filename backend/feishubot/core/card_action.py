"""
Card Action Classifier - Parses a Feishu card callback into a CardAction.

The value dict attached to a button or menu when the card was built comes
back under ``action.value``; a menu choice arrives as ``action.option``.
"""

import logging
from typing import Any, Dict

from ..exceptions import ClassificationError
from ..models.card_action import (
    ActionPayload,
    CardAction,
    CardKind,
    ChatScope,
    Confirmation,
    MediaRef,
    Prompt,
    Selection,
)

logger = logging.getLogger(__name__)

CONFIRM_KINDS = {CardKind.CLEAR, CardKind.PIC_MODE_CHANGE}
SELECT_KINDS = {
    CardKind.PIC_RESOLUTION,
    CardKind.ROLE_TAGS_CHOOSE,
    CardKind.ROLE_CHOOSE,
    CardKind.AI_MODE_CHOOSE,
}


def _parse_confirmation(value: Any) -> Confirmation:
    raw = None if value is None else str(value)
    if raw == "1":
        return Confirmation(decision=True, raw=raw)
    if raw == "0":
        return Confirmation(decision=False, raw=raw)
    return Confirmation(decision=None, raw=raw)


def _parse_payload(kind: CardKind, value: Any, option: Any) -> ActionPayload:
    if kind in CONFIRM_KINDS:
        return _parse_confirmation(value)
    if kind in SELECT_KINDS:
        # Menus carry a placeholder "0" in value; the choice is in option
        choice = option if option is not None else value
        return Selection(option=None if choice is None else str(choice))
    if kind == CardKind.PIC_TEXT_MORE:
        return Prompt(text="" if value is None else str(value))
    return MediaRef(image_key="" if value is None else str(value))


def classify(raw_action: Dict[str, Any]) -> CardAction:
    """
    Classify a raw card callback.

    Args:
        raw_action: Callback body posted by Feishu

    Returns:
        The typed CardAction

    Raises:
        ClassificationError: If the kind is unknown or the required keys are missing
    """
    action = raw_action.get("action") or {}
    if not isinstance(action, dict):
        raise ClassificationError(None, "card callback action is not an object")
    value = action.get("value")
    if not isinstance(value, dict):
        raise ClassificationError(None, "card action carries no value dict")

    kind = CardKind.parse(value.get("kind"))
    if kind is None:
        raise ClassificationError(value.get("kind"))

    session_key = value.get("sessionId")
    if not session_key:
        raise ClassificationError(kind.value, "card action carries no sessionId")

    chat_scope = ChatScope.GROUP if value.get("chatType") == ChatScope.GROUP.value else ChatScope.PERSONAL

    card_action = CardAction(
        kind=kind,
        payload=_parse_payload(kind, value.get("value"), action.get("option")),
        session_key=str(session_key),
        message_id=value.get("msgId") or raw_action.get("open_message_id"),
        chat_scope=chat_scope,
        open_id=raw_action.get("open_id"),
    )
    logger.debug(f"Classified card action: kind={kind.value}, session={session_key}")
    return card_action
