"""
Feishu Webhook API - Receives message events and interactive card callbacks.

Collaborators (bot, dispatcher, message handler) are built once at startup
and read from ``app.state``.
"""

import logging
from collections import OrderedDict
from fastapi import APIRouter, Request, HTTPException

from ..channels.feishu import FeishuBot
from ..core.dispatcher import CardActionDispatcher
from ..core.message_handler import MessageHandler
from ..exceptions import DeliveryError, StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/feishu", tags=["feishu"])

# Track processed event IDs; Feishu redelivers events it considers unanswered
_processed_events: "OrderedDict[str, None]" = OrderedDict()
_MAX_PROCESSED_EVENTS = 1000


def _get_feishu_bot(request: Request) -> FeishuBot:
    bot = getattr(request.app.state, "bot", None)
    if bot is None:
        raise HTTPException(status_code=503, detail="Feishu bot not configured")
    return bot


def _get_dispatcher(request: Request) -> CardActionDispatcher:
    return request.app.state.dispatcher


def _get_message_handler(request: Request) -> MessageHandler:
    return request.app.state.message_handler


def _seen_before(event_id: str) -> bool:
    """Record an event ID; True if it was already processed."""
    if not event_id:
        return False
    if event_id in _processed_events:
        return True
    _processed_events[event_id] = None
    # Prevent unbounded growth, oldest first
    while len(_processed_events) > _MAX_PROCESSED_EVENTS:
        _processed_events.popitem(last=False)
    return False


@router.post("/webhook")
async def feishu_webhook(request: Request):
    """
    Handle incoming Feishu message events.
    Supports text messages, image uploads, and voice messages.
    """
    bot = _get_feishu_bot(request)
    raw_body = await request.body()

    signature = request.headers.get("X-Lark-Signature")
    if signature is not None and not bot.verify_signature(
        request.headers.get("X-Lark-Request-Timestamp", ""),
        request.headers.get("X-Lark-Request-Nonce", ""),
        raw_body.decode("utf-8"),
        signature,
    ):
        raise HTTPException(status_code=403, detail="Invalid signature")

    body = await request.json()
    event = bot.parse_event(body)

    if event["type"] == "url_verification":
        if not bot.verify_token(event.get("token")):
            raise HTTPException(status_code=403, detail="Invalid verification token")
        return {"challenge": event["challenge"]}

    if event["type"] != "message":
        logger.debug(f"Ignoring Feishu event {event.get('event_type')}")
        return {"code": 0, "msg": "ok"}

    if not bot.verify_token(event.get("token")):
        raise HTTPException(status_code=403, detail="Invalid verification token")

    if _seen_before(event.get("event_id", "")):
        logger.info(f"Duplicate Feishu event {event['event_id']} skipped")
        return {"code": 0, "msg": "ok"}

    handler = _get_message_handler(request)
    try:
        await handler.handle_message(event)
    except Exception:
        logger.exception(
            "Error processing Feishu message",
            extra={"extra_fields": {
                "message_id": event.get("message_id"),
                "session_key": event.get("session_key"),
            }}
        )
        try:
            await bot.reply_text(event.get("message_id", ""), "Sorry, something went wrong while handling your message.")
        except DeliveryError:
            logger.exception("Failed to send error message to Feishu")

    return {"code": 0, "msg": "ok"}


@router.post("/card")
async def feishu_card_callback(request: Request):
    """
    Handle interactive card callbacks.

    The response body replaces the clicked card; an empty object leaves it
    unchanged.
    """
    body = await request.json()
    bot = _get_feishu_bot(request)

    if "challenge" in body:
        if not bot.verify_token(body.get("token")):
            raise HTTPException(status_code=403, detail="Invalid verification token")
        return {"challenge": body["challenge"]}

    if not bot.verify_token(body.get("token")):
        raise HTTPException(status_code=403, detail="Invalid verification token")

    dispatcher = _get_dispatcher(request)
    try:
        result = await dispatcher.handle_card_action(body)
    except DeliveryError:
        logger.exception("Failed to deliver card action reply")
        return {}
    except StorageError:
        logger.exception("Failed to store card action result")
        return {}

    if result.passed:
        logger.debug("Card action not claimed by any handler")
    return result.body()
