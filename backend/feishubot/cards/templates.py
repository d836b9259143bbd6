"""
Card Templates - Logical descriptions of every card the bot can send.

Templates carry no platform markup; ``cards.builder`` turns them into
Feishu interactive-card JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union

from ..models.card_action import CardKind, ChatScope


class Tone(str, Enum):
    """Visual severity of a card header."""
    INFO = "info"
    SUCCESS = "success"
    DANGER = "danger"
    NEUTRAL = "neutral"
    ACCENT = "accent"


@dataclass(frozen=True)
class ActionRef:
    """Identifies the session and message a button/menu reports back to."""
    session_key: str
    message_id: Optional[str] = None
    chat_scope: ChatScope = ChatScope.PERSONAL


@dataclass(frozen=True)
class MenuOption:
    value: str
    label: str


@dataclass(frozen=True)
class Button:
    """A standalone button inside a Notice, reporting action_kind/value back."""
    label: str
    action_kind: CardKind
    value: str
    ref: ActionRef
    style: str = "default"  # default, primary or danger


@dataclass(frozen=True)
class Notice:
    title: str
    body: str
    footnote: Optional[str] = None
    tone: Tone = Tone.INFO
    plain: bool = False  # body rendered as plain text instead of markdown
    # Extra markdown blocks, divided by rules; a Button renders under the block before it
    sections: Tuple[Union[str, Button], ...] = ()


@dataclass(frozen=True)
class Confirm:
    title: str
    body: str
    footnote: Optional[str]
    action_kind: CardKind
    ref: ActionRef
    confirm_label: str = "Confirm"
    cancel_label: str = "Let me think again"
    confirm_value: str = "1"
    cancel_value: str = "0"
    tone: Tone = Tone.INFO


@dataclass(frozen=True)
class SelectorMenu:
    title: str
    placeholder: str
    options: Tuple[MenuOption, ...]
    footnote: Optional[str]
    action_kind: CardKind
    ref: ActionRef
    tone: Tone = Tone.ACCENT
    body: Optional[str] = None


@dataclass(frozen=True)
class ImageResult:
    image_key: str
    action_kind: CardKind  # PIC_TEXT_MORE or PIC_VAR_MORE
    regenerate_value: str  # prompt text or source image key
    ref: ActionRef
    button_label: str = "One more"


@dataclass(frozen=True)
class BalanceReport:
    total: float
    used: float
    available: float
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    title: str = field(default="🎰️ Balance query")


Card = Union[Notice, Confirm, SelectorMenu, ImageResult, BalanceReport]
