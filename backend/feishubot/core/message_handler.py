"""
Message Handler - Routes an inbound Feishu message by session mode.

Text commands go to the dispatcher; in picture mode text and images become
image jobs; otherwise the message is answered by the chat model with the
session's history, system prompt and AI-mode temperature.
"""

import logging
from typing import Any, Dict, List, Optional

from ..cards import renderer
from ..cards.builder import build_card
from ..cards.templates import ActionRef
from ..exceptions import BackendError
from ..llm.base import LLMMessage, LLMProvider
from ..models.card_action import ChatScope
from ..models.session import ChatTurn, Session, SessionMode
from ..services.image_jobs import ImageJob
from ..services.transcription import TranscriptionService
from ..storage.session_store import SessionStore
from .dispatcher import CardActionDispatcher

logger = logging.getLogger(__name__)


class MessageHandler:
    """
    Handles ``im.message.receive_v1`` events parsed by FeishuBot.parse_event.
    """

    def __init__(
        self,
        store: SessionStore,
        bot,
        dispatcher: CardActionDispatcher,
        llm_provider: Optional[LLMProvider] = None,
        transcription: Optional[TranscriptionService] = None,
    ):
        self.store = store
        self.bot = bot
        self.dispatcher = dispatcher
        self.llm_provider = llm_provider
        self.transcription = transcription

    async def handle_message(self, event: Dict[str, Any]) -> None:
        """
        Process one parsed message event.

        Raises:
            DeliveryError: If a reply cannot be delivered
        """
        message_id = event.get("message_id", "")
        session_key = event.get("session_key") or message_id
        msg_type = event.get("message_type", "text")
        chat_scope = ChatScope.GROUP if event.get("chat_type") == "group" else ChatScope.PERSONAL

        if chat_scope == ChatScope.GROUP and not self.bot.is_mentioned(event.get("mentions", [])):
            logger.debug(f"Ignoring group message {message_id}: bot not mentioned")
            return

        logger.info(
            f"Handling {msg_type} message {message_id}",
            extra={"extra_fields": {"session_key": session_key, "chat_scope": chat_scope.value}}
        )

        if msg_type == "audio":
            text = await self._transcribe(event)
            if text is None:
                return
            await self._handle_text(session_key, message_id, text, chat_scope)
        elif msg_type == "text":
            text = event.get("text", "")
            if not text:
                return
            await self._handle_text(session_key, message_id, text, chat_scope)
        elif msg_type == "image":
            await self._handle_image(session_key, message_id, event.get("image_key", ""), chat_scope)
        else:
            await self.bot.reply_text(message_id, f"Message type {msg_type} is not supported yet")

    async def _transcribe(self, event: Dict[str, Any]) -> Optional[str]:
        message_id = event.get("message_id", "")
        if self.transcription is None or not self.transcription.is_configured():
            await self.bot.reply_text(message_id, "Voice messages are not enabled")
            return None
        audio = await self.bot.download_audio(message_id, event.get("file_key", ""))
        try:
            text = await self.transcription.transcribe_audio(audio)
        except BackendError as e:
            await self.bot.reply_card(message_id, build_card(
                renderer.failure_card("speech recognition", str(e))
            ))
            return None
        if not text.strip():
            await self.bot.reply_text(message_id, "Sorry, I could not make out that voice message")
            return None
        return text

    async def _handle_text(self, session_key: str, message_id: str, text: str,
                           chat_scope: ChatScope) -> None:
        card = await self.dispatcher.handle_text_command(session_key, message_id, text, chat_scope)
        if card is not None:
            await self.bot.reply_card(message_id, build_card(card))
            return

        session = await self.store.get(session_key)
        if session.mode == SessionMode.PIC_CREATE:
            self.dispatcher.spawn_image_job(ImageJob(
                session_key=session_key,
                message_id=message_id,
                resolution=session.pic_resolution,
                prompt=text,
                chat_scope=chat_scope,
            ))
            await self.bot.reply_text(message_id, "🤖 Drawing, please wait a moment...")
            return

        await self._chat(session, message_id, text)

    async def _handle_image(self, session_key: str, message_id: str, image_key: str,
                            chat_scope: ChatScope) -> None:
        session = await self.store.get(session_key)
        if session.mode != SessionMode.PIC_CREATE:
            if chat_scope == ChatScope.PERSONAL:
                ref = ActionRef(session_key=session_key, message_id=message_id, chat_scope=chat_scope)
                await self.bot.reply_card(message_id, build_card(renderer.pic_mode_confirm_card(ref)))
            else:
                await self.bot.reply_text(message_id, "Pictures are only handled in picture creation mode")
            return

        image = await self.bot.download_image(message_id, image_key)
        self.dispatcher.spawn_image_job(ImageJob(
            session_key=session_key,
            message_id=message_id,
            resolution=session.pic_resolution,
            source_image=image,
            chat_scope=chat_scope,
        ))
        await self.bot.reply_text(message_id, "🤖 Drawing a variation, please wait a moment...")

    def _build_messages(self, session: Session, text: str) -> List[LLMMessage]:
        messages = []
        if session.system_prompt:
            messages.append(LLMMessage.text("system", session.system_prompt))
        messages.extend(LLMMessage.text(turn.role, turn.content) for turn in session.history)
        messages.append(LLMMessage.text("user", text))
        return messages

    async def _chat(self, session: Session, message_id: str, text: str) -> None:
        if self.llm_provider is None:
            await self.bot.reply_text(
                message_id,
                "LLM not configured. Set LLM_API_KEY in environment to enable AI responses."
            )
            return

        try:
            response = await self.llm_provider.chat_completion(
                self._build_messages(session, text),
                temperature=session.ai_mode.temperature,
            )
        except BackendError as e:
            await self.bot.reply_card(message_id, build_card(
                renderer.failure_card("the AI reply", str(e))
            ))
            return

        await self.store.append_turns(
            session.session_key,
            ChatTurn(role="user", content=text),
            ChatTurn(role="assistant", content=response.content),
        )
        await self.bot.reply_text(message_id, response.content)
