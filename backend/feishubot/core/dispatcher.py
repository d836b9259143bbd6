"""
Mode Dispatcher - Entry point for card actions and keyword commands.

Card actions are classified, run through the handler chain, and the
resulting decision is applied: replies are delivered, image jobs are
spawned, and the replacement card is handed back to the webhook.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..cards import renderer
from ..cards.builder import build_card
from ..cards.templates import ActionRef, Card, Notice, Tone
from ..exceptions import BackendError, ClassificationError, DeliveryError
from ..llm.base import LLMProvider
from ..models.card_action import CardAction, ChatScope
from ..services.image_jobs import ImageJob, ImageJobOutcome, ImageJobRunner
from ..storage.session_store import SessionStore
from .card_action import classify
from .card_handlers import (
    CardHandler,
    Decision,
    DecisionKind,
    PASS_TO_NEXT,
    default_handlers,
    enter_pic_mode,
    enter_role_play,
)
from .roles import RoleCatalog

logger = logging.getLogger(__name__)

CLEAR_COMMANDS = {"clear", "/clear", "清除"}
PICTURE_COMMANDS = {"/picture", "图片创作"}
SYSTEM_PREFIXES = ("/system", "角色扮演")
ROLES_COMMANDS = {"/roles", "角色列表"}
AI_MODE_COMMANDS = {"/ai_mode", "ai模式"}
BALANCE_COMMANDS = {"/balance", "余额"}
HELP_COMMANDS = {"/help", "帮助"}


@dataclass
class CardActionResult:
    """
    Result of handling one card callback.

    passed is True when no handler in the chain claimed the action.
    """
    card: Optional[Card] = None
    passed: bool = False
    decision: Optional[Decision] = None

    def body(self) -> Dict[str, Any]:
        """HTTP response body for the card callback: the new card, or {}."""
        return build_card(self.card) if self.card is not None else {}


class CardActionDispatcher:
    """
    Decides transitions for card actions and text commands.

    Collaborators are injected: the session store, the Feishu client used to
    deliver replies, the image job runner and the LLM provider.
    """

    def __init__(
        self,
        store: SessionStore,
        bot,
        job_runner: ImageJobRunner,
        llm_provider: Optional[LLMProvider] = None,
        roles: Optional[RoleCatalog] = None,
        handlers: Optional[List[CardHandler]] = None,
    ):
        self.store = store
        self.bot = bot
        self.job_runner = job_runner
        self.llm_provider = llm_provider
        self.roles = roles or RoleCatalog()
        self.handlers = handlers if handlers is not None else default_handlers(store, self.roles)

    async def handle_card_action(self, raw_action: Dict[str, Any]) -> CardActionResult:
        """
        Handle a raw card callback.

        Raises:
            DeliveryError: If a reply the decision asks for cannot be delivered
        """
        try:
            action = classify(raw_action)
        except ClassificationError as e:
            logger.debug(f"Card action passed on: {e}")
            return CardActionResult(passed=True)

        decision = await self.dispatch(action)
        if decision is PASS_TO_NEXT:
            return CardActionResult(passed=True)

        await self._apply(decision, action)
        return CardActionResult(card=decision.card, decision=decision)

    async def dispatch(self, action: CardAction):
        """Run the handler chain; returns a Decision or PASS_TO_NEXT."""
        for handler in self.handlers:
            decision = await handler.try_handle(action)
            if decision is not PASS_TO_NEXT:
                logger.info(
                    f"Card action {action.kind.value} -> {decision.kind.value}",
                    extra={"extra_fields": {
                        "session_key": action.session_key,
                        "kind": action.kind.value,
                        "decision": decision.kind.value,
                    }}
                )
                return decision
        return PASS_TO_NEXT

    async def _apply(self, decision: Decision, action: CardAction) -> None:
        if decision.kind == DecisionKind.SPAWN_JOB and decision.job is not None:
            self.spawn_image_job(decision.job)
            return
        if decision.reply is None:
            return
        if not action.message_id:
            logger.warning(f"Card action {action.kind.value} has no message to reply to")
            return
        await self.deliver(action.message_id, decision.reply)

    async def deliver(self, message_id: str, content) -> None:
        """Reply with a card template or plain text."""
        if isinstance(content, str):
            await self.bot.reply_text(message_id, content)
        else:
            await self.bot.reply_card(message_id, build_card(content))

    def spawn_image_job(self, job: ImageJob):
        return self.job_runner.spawn(job, self._deliver_image_outcome)

    async def _deliver_image_outcome(self, outcome: ImageJobOutcome) -> None:
        """Terminal notice of an image job: the image card, or a failure notice."""
        job = outcome.job
        if outcome.ok:
            ref = ActionRef(session_key=job.session_key, message_id=job.message_id,
                            chat_scope=job.chat_scope)
            if job.is_variant:
                card = renderer.variant_result_card(outcome.image_key, ref)
            else:
                card = renderer.image_result_card(outcome.image_key, job.prompt, ref)
        else:
            card = renderer.failure_card("image generation", str(outcome.error) or None)
        try:
            await self.deliver(job.message_id, card)
        except DeliveryError as e:
            # The card was refused; the job still owes the user one notice
            logger.warning(f"Image job {job.job_id}: result card not delivered, sending text notice: {e}")
            await self.bot.reply_text(job.message_id, renderer.image_job_fallback_text(outcome.ok))

    async def handle_text_command(
        self,
        session_key: str,
        message_id: Optional[str],
        text: str,
        chat_scope: ChatScope = ChatScope.PERSONAL,
    ) -> Optional[Card]:
        """
        Map a keyword command to its transition and card.

        Returns:
            The card to reply with, or None if text is not a command
        """
        command = text.strip()
        lowered = command.lower()
        ref = ActionRef(session_key=session_key, message_id=message_id, chat_scope=chat_scope)

        if lowered in CLEAR_COMMANDS:
            return renderer.clear_confirm_card(ref)

        if lowered in PICTURE_COMMANDS:
            session = await enter_pic_mode(self.store, session_key)
            return renderer.pic_mode_entry_card(ref, session.pic_resolution)

        for prefix in SYSTEM_PREFIXES:
            if lowered == prefix or lowered.startswith(prefix + " "):
                system_prompt = command[len(prefix):].strip()
                if not system_prompt:
                    return Notice(
                        title="🥷 Role-playing mode",
                        body=f"Please add the role information after *{prefix}*, e.g. `{prefix} You are a poet`",
                        tone=Tone.ACCENT,
                    )
                session = await enter_role_play(self.store, session_key, system_prompt)
                return renderer.role_entry_card(session.system_prompt)

        if lowered in ROLES_COMMANDS:
            return renderer.role_tags_card(ref, self.roles.unique_tags())

        if lowered in AI_MODE_COMMANDS:
            session = await self.store.get(session_key)
            return renderer.ai_mode_card(ref, session.ai_mode)

        if lowered in BALANCE_COMMANDS:
            return await self._balance_card()

        if lowered in HELP_COMMANDS:
            return renderer.help_card(ref)

        return None

    async def _balance_card(self) -> Card:
        if self.llm_provider is None:
            return renderer.failure_card("balance query", "LLM provider not configured")
        try:
            balance = await self.llm_provider.get_balance()
        except BackendError as e:
            logger.warning(f"Balance query failed: {e}")
            return renderer.failure_card("balance query", str(e))
        return renderer.balance_card(
            total=balance.total_granted,
            used=balance.total_used,
            available=balance.total_available,
            valid_from=balance.effective_at,
            valid_to=balance.expires_at,
        )
