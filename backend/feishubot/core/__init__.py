"""Core module - card action classification, dispatch and message handling."""

from .card_action import classify
from .card_handlers import CardHandler, Decision, DecisionKind, PASS_TO_NEXT
from .dispatcher import CardActionDispatcher, CardActionResult
from .message_handler import MessageHandler
from .roles import Role, RoleCatalog

__all__ = [
    'classify',
    'CardHandler',
    'Decision',
    'DecisionKind',
    'PASS_TO_NEXT',
    'CardActionDispatcher',
    'CardActionResult',
    'MessageHandler',
    'Role',
    'RoleCatalog',
]
