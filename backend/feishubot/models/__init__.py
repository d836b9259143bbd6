"""Models module."""

from .session import SessionMode, PicResolution, AIMode, ChatTurn, Session
from .card_action import (
    CardKind, ChatScope, Confirmation, Selection, Prompt, MediaRef, CardAction
)

__all__ = [
    'SessionMode', 'PicResolution', 'AIMode', 'ChatTurn', 'Session',
    'CardKind', 'ChatScope', 'Confirmation', 'Selection', 'Prompt', 'MediaRef', 'CardAction',
]
