"""Cards module - card templates, the renderer and the Feishu card builder."""

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
from .builder import build_card

__all__ = [
    'ActionRef',
    'BalanceReport',
    'Button',
    'Card',
    'Confirm',
    'ImageResult',
    'MenuOption',
    'Notice',
    'SelectorMenu',
    'Tone',
    'build_card',
]
