"""
Card Handlers - One handler per card action kind.

Handlers form an ordered chain. Each either claims an action and returns a
Decision, or answers PASS_TO_NEXT so the next handler can try. New action
kinds are added by appending a handler; existing ones stay untouched.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Union

from ..cards import renderer
from ..cards.templates import ActionRef, Card
from ..exceptions import ActionValidationError
from ..models.card_action import (
    CardAction,
    CardKind,
    Confirmation,
    MediaRef,
    Prompt,
    Selection,
)
from ..models.session import AIMode, PicResolution, Session, SessionMode
from ..services.image_jobs import ImageJob
from ..storage.session_store import SessionStore
from .roles import RoleCatalog

logger = logging.getLogger(__name__)


class DecisionKind(str, Enum):
    NOOP = "noop"
    RENDER = "render"
    MUTATE_AND_RENDER = "mutate_and_render"
    SPAWN_JOB = "spawn_job"


@dataclass(frozen=True)
class Decision:
    """
    Outcome of a handler.

    card replaces the card the user interacted with; reply (a card or plain
    text) is sent as a new reply to the originating message.
    """
    kind: DecisionKind
    card: Optional[Card] = None
    reply: Optional[Union[Card, str]] = None
    job: Optional[ImageJob] = None

    @classmethod
    def noop(cls) -> "Decision":
        return cls(DecisionKind.NOOP)

    @classmethod
    def render(cls, card: Optional[Card] = None, reply=None) -> "Decision":
        return cls(DecisionKind.RENDER, card=card, reply=reply)

    @classmethod
    def mutate_and_render(cls, card: Optional[Card] = None, reply=None) -> "Decision":
        return cls(DecisionKind.MUTATE_AND_RENDER, card=card, reply=reply)

    @classmethod
    def spawn(cls, job: ImageJob) -> "Decision":
        return cls(DecisionKind.SPAWN_JOB, job=job)


class PassToNext:
    """Sentinel returned by a handler that does not own an action."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PASS_TO_NEXT"


PASS_TO_NEXT = PassToNext()


def action_ref(action: CardAction) -> ActionRef:
    return ActionRef(
        session_key=action.session_key,
        message_id=action.message_id,
        chat_scope=action.chat_scope,
    )


async def enter_pic_mode(store: SessionStore, session_key: str) -> Session:
    """Clear history, switch to picture mode at the default resolution."""
    async with store.edit(session_key) as session:
        session.clear_history()
        session.mode = SessionMode.PIC_CREATE
        session.pic_resolution = PicResolution.RES_256
    return session


async def enter_role_play(store: SessionStore, session_key: str, system_prompt: str) -> Session:
    """Clear history and install a role-play system instruction."""
    async with store.edit(session_key) as session:
        session.clear_history()
        session.mode = SessionMode.ROLE_PLAY
        session.system_prompt = system_prompt
    return session


class CardHandler(ABC):
    """Base class for handlers in the card action chain."""

    kinds: FrozenSet[CardKind] = frozenset()

    def __init__(self, store: SessionStore):
        self.store = store

    async def try_handle(self, action: CardAction) -> Union[Decision, PassToNext]:
        if action.kind not in self.kinds:
            return PASS_TO_NEXT
        try:
            return await self.handle(action)
        except ActionValidationError as e:
            logger.debug(f"Ignoring card action: {e}")
            return Decision.noop()

    @abstractmethod
    async def handle(self, action: CardAction) -> Decision:
        """Handle an action of one of this handler's kinds."""
        pass


def _confirmation(action: CardAction) -> bool:
    payload = action.payload
    if not isinstance(payload, Confirmation) or payload.decision is None:
        raise ActionValidationError(action.kind.value, getattr(payload, "raw", payload))
    return payload.decision


def _selection(action: CardAction) -> str:
    payload = action.payload
    if not isinstance(payload, Selection) or not payload.option:
        raise ActionValidationError(action.kind.value, getattr(payload, "option", payload))
    return payload.option


class ClearCardHandler(CardHandler):
    kinds = frozenset({CardKind.CLEAR})

    async def handle(self, action: CardAction) -> Decision:
        if _confirmation(action):
            await self.store.clear_history(action.session_key)
            logger.info(f"Session {action.session_key}: context cleared")
            return Decision.mutate_and_render(renderer.context_cleared_card())
        return Decision.render(renderer.context_retained_card())


class PicModeChangeHandler(CardHandler):
    kinds = frozenset({CardKind.PIC_MODE_CHANGE})

    async def handle(self, action: CardAction) -> Decision:
        if _confirmation(action):
            session = await enter_pic_mode(self.store, action.session_key)
            logger.info(f"Session {action.session_key}: entered picture mode")
            return Decision.mutate_and_render(
                renderer.pic_mode_entry_card(action_ref(action), session.pic_resolution)
            )
        return Decision.render(renderer.context_retained_card())


class PicResolutionHandler(CardHandler):
    kinds = frozenset({CardKind.PIC_RESOLUTION})

    async def handle(self, action: CardAction) -> Decision:
        option = _selection(action)
        resolution = PicResolution.parse(option)
        if resolution is None:
            raise ActionValidationError(action.kind.value, option)
        await self.store.set_pic_resolution(action.session_key, resolution)
        return Decision.mutate_and_render(reply=renderer.resolution_updated_text(resolution))


class PicTextMoreHandler(CardHandler):
    kinds = frozenset({CardKind.PIC_TEXT_MORE})

    async def handle(self, action: CardAction) -> Decision:
        payload = action.payload
        if not isinstance(payload, Prompt) or not payload.text.strip():
            raise ActionValidationError(action.kind.value, payload)
        resolution = await self.store.get_pic_resolution(action.session_key)
        return Decision.spawn(ImageJob(
            session_key=action.session_key,
            message_id=action.message_id or action.session_key,
            resolution=resolution,
            prompt=payload.text,
            chat_scope=action.chat_scope,
        ))


class PicVarMoreHandler(CardHandler):
    kinds = frozenset({CardKind.PIC_VAR_MORE})

    async def handle(self, action: CardAction) -> Decision:
        payload = action.payload
        if not isinstance(payload, MediaRef) or not payload.image_key:
            raise ActionValidationError(action.kind.value, payload)
        resolution = await self.store.get_pic_resolution(action.session_key)
        return Decision.spawn(ImageJob(
            session_key=action.session_key,
            message_id=action.message_id or action.session_key,
            resolution=resolution,
            source_image_key=payload.image_key,
            chat_scope=action.chat_scope,
        ))


class RoleTagsHandler(CardHandler):
    kinds = frozenset({CardKind.ROLE_TAGS_CHOOSE})

    def __init__(self, store: SessionStore, roles: RoleCatalog):
        super().__init__(store)
        self.roles = roles

    async def handle(self, action: CardAction) -> Decision:
        tag = _selection(action)
        titles = self.roles.titles_by_tag(tag)
        if not titles:
            raise ActionValidationError(action.kind.value, tag)
        return Decision.render(reply=renderer.role_list_card(action_ref(action), tag, titles))


class RoleChooseHandler(CardHandler):
    kinds = frozenset({CardKind.ROLE_CHOOSE})

    def __init__(self, store: SessionStore, roles: RoleCatalog):
        super().__init__(store)
        self.roles = roles

    async def handle(self, action: CardAction) -> Decision:
        title = _selection(action)
        content = self.roles.content_by_title(title)
        if content is None:
            raise ActionValidationError(action.kind.value, title)
        session = await enter_role_play(self.store, action.session_key, content)
        logger.info(f"Session {action.session_key}: role-play as {title}")
        return Decision.mutate_and_render(reply=renderer.role_entry_card(session.system_prompt))


class AIModeHandler(CardHandler):
    kinds = frozenset({CardKind.AI_MODE_CHOOSE})

    async def handle(self, action: CardAction) -> Decision:
        option = _selection(action)
        ai_mode = AIMode.parse(option)
        if ai_mode is None:
            raise ActionValidationError(action.kind.value, option)
        await self.store.set_ai_mode(action.session_key, ai_mode)
        return Decision.mutate_and_render(reply=renderer.ai_mode_updated_text(ai_mode))


def default_handlers(store: SessionStore, roles: RoleCatalog) -> list:
    """The built-in handler chain, in dispatch order."""
    return [
        ClearCardHandler(store),
        PicModeChangeHandler(store),
        PicResolutionHandler(store),
        PicTextMoreHandler(store),
        PicVarMoreHandler(store),
        RoleTagsHandler(store, roles),
        RoleChooseHandler(store, roles),
        AIModeHandler(store),
    ]
