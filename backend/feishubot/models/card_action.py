"""
Card Action Models - Typed view of a button tap or menu selection.

Each action kind carries its own payload type, so handlers never have to
guess what ``value`` means.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class CardKind(str, Enum):
    """Action kinds round-tripped in card button/menu values."""
    CLEAR = "clear"                        # Clear context confirmation
    PIC_MODE_CHANGE = "pic_mode_change"    # Enter picture creation mode
    PIC_RESOLUTION = "pic_resolution"      # Picture resolution menu
    PIC_TEXT_MORE = "pic_text_more"        # Regenerate from the same prompt
    PIC_VAR_MORE = "pic_var_more"          # Another variant of an image
    ROLE_TAGS_CHOOSE = "role_tags_choose"  # Built-in role category menu
    ROLE_CHOOSE = "role_choose"            # Built-in role menu
    AI_MODE_CHOOSE = "ai_mode_choose"      # AI mode menu

    @classmethod
    def parse(cls, value) -> Optional["CardKind"]:
        for item in cls:
            if item.value == value:
                return item
        return None


class ChatScope(str, Enum):
    GROUP = "group"
    PERSONAL = "personal"


@dataclass(frozen=True)
class Confirmation:
    """Payload of a confirm/cancel button. decision is None for unknown values."""
    decision: Optional[bool]
    raw: Optional[str] = None


@dataclass(frozen=True)
class Selection:
    """Option picked from a select menu."""
    option: Optional[str]


@dataclass(frozen=True)
class Prompt:
    """Free-text image prompt to generate from again."""
    text: str


@dataclass(frozen=True)
class MediaRef:
    """Reference to an uploaded image (Feishu image_key)."""
    image_key: str


ActionPayload = Union[Confirmation, Selection, Prompt, MediaRef]


@dataclass(frozen=True)
class CardAction:
    kind: CardKind
    payload: ActionPayload
    session_key: str
    message_id: Optional[str] = None
    chat_scope: ChatScope = ChatScope.PERSONAL
    open_id: Optional[str] = None
