"""
Integration tests for the webhook API.
Runs the FastAPI app with its lifespan and swaps collaborators on app.state.
"""

import hashlib
import json
import uuid
import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from feishubot.channels.feishu import FeishuBot
from feishubot.core.dispatcher import CardActionDispatcher
from feishubot.core.message_handler import MessageHandler
from feishubot.exceptions import DeliveryError, StorageError
from feishubot.main import app
from feishubot.models.session import SessionMode
from feishubot.services.image_jobs import ImageJobRunner
from feishubot.storage.session_store import MemorySessionStore


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


@pytest.fixture
def wired(client):
    """Configured bot with outbound calls mocked, wired into app.state."""
    bot = FeishuBot(app_id="cli_test", app_secret="secret", verification_token="tok")
    bot.reply_text = AsyncMock(return_value={"code": 0})
    bot.reply_card = AsyncMock(return_value={"code": 0})
    store = MemorySessionStore()
    llm_provider = MagicMock()
    llm_provider.chat_completion = AsyncMock()
    dispatcher = CardActionDispatcher(store, bot, ImageJobRunner(llm_provider, bot), llm_provider)

    app.state.bot = bot
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.message_handler = MessageHandler(store, bot, dispatcher, llm_provider=llm_provider)
    return {"bot": bot, "store": store, "dispatcher": dispatcher}


def _message_event(text, event_id=None, token="tok"):
    return {
        "schema": "2.0",
        "header": {
            "event_type": "im.message.receive_v1",
            "event_id": event_id or uuid.uuid4().hex,
            "token": token,
        },
        "event": {
            "message": {
                "message_type": "text",
                "chat_type": "p2p",
                "chat_id": "oc_1",
                "message_id": "om_1",
                "content": json.dumps({"text": text}),
            },
            "sender": {"sender_id": {"open_id": "ou_1"}, "sender_type": "user"},
        },
    }


def _card_callback(kind, value, token="tok", option=None):
    action = {"tag": "button", "value": {
        "kind": kind, "value": value, "sessionId": "om_1", "msgId": "om_1", "chatType": "personal",
    }}
    if option is not None:
        action["option"] = option
    return {"open_id": "ou_1", "open_message_id": "om_card", "token": token, "action": action}


class TestAppEndpoints:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["feishu_configured"] is False

    def test_lifespan_wires_state(self, client):
        assert isinstance(app.state.dispatcher, CardActionDispatcher)
        assert isinstance(app.state.message_handler, MessageHandler)


class TestUnconfigured:

    def test_webhook_returns_503(self, client):
        response = client.post("/feishu/webhook", json={"challenge": "abc"})
        assert response.status_code == 503

    def test_card_returns_503(self, client):
        response = client.post("/feishu/card", json=_card_callback("clear", "1"))
        assert response.status_code == 503


class TestWebhook:

    def test_url_verification(self, client, wired):
        response = client.post("/feishu/webhook", json={"challenge": "abc", "token": "tok"})
        assert response.json() == {"challenge": "abc"}

    def test_url_verification_bad_token(self, client, wired):
        response = client.post("/feishu/webhook", json={"challenge": "abc", "token": "nope"})
        assert response.status_code == 403

    def test_message_is_handled(self, client, wired):
        response = client.post("/feishu/webhook", json=_message_event("/help"))
        assert response.json() == {"code": 0, "msg": "ok"}
        wired["bot"].reply_card.assert_awaited_once()

    def test_duplicate_event_is_skipped(self, client, wired):
        body = _message_event("/help", event_id=f"evt_{uuid.uuid4().hex}")
        client.post("/feishu/webhook", json=body)
        client.post("/feishu/webhook", json=body)
        assert wired["bot"].reply_card.await_count == 1

    def test_bad_token_is_rejected(self, client, wired):
        response = client.post("/feishu/webhook", json=_message_event("/help", token="nope"))
        assert response.status_code == 403
        wired["bot"].reply_card.assert_not_called()

    def test_handler_failure_still_acknowledges(self, client, wired):
        wired["bot"].reply_card.side_effect = DeliveryError("reply_interactive", "forbidden", 230002)
        response = client.post("/feishu/webhook", json=_message_event("/help"))
        assert response.json() == {"code": 0, "msg": "ok"}
        wired["bot"].reply_text.assert_awaited_once()

    def test_signed_request(self, client, wired):
        wired["bot"].encrypt_key = "key"
        raw = json.dumps(_message_event("/help"))
        signature = hashlib.sha256(("1700000000" + "nonce" + "key" + raw).encode("utf-8")).hexdigest()

        response = client.post("/feishu/webhook", content=raw, headers={
            "Content-Type": "application/json",
            "X-Lark-Request-Timestamp": "1700000000",
            "X-Lark-Request-Nonce": "nonce",
            "X-Lark-Signature": signature,
        })

        assert response.json() == {"code": 0, "msg": "ok"}
        wired["bot"].reply_card.assert_awaited_once()

    def test_bad_signature_is_rejected(self, client, wired):
        wired["bot"].encrypt_key = "key"
        response = client.post("/feishu/webhook", content=json.dumps(_message_event("/help")), headers={
            "Content-Type": "application/json",
            "X-Lark-Request-Timestamp": "1700000000",
            "X-Lark-Request-Nonce": "nonce",
            "X-Lark-Signature": "forged",
        })
        assert response.status_code == 403

    def test_other_events_are_acknowledged(self, client, wired):
        body = {"schema": "2.0", "header": {"event_type": "im.chat.member.bot.added_v1"}, "event": {}}
        response = client.post("/feishu/webhook", json=body)
        assert response.json() == {"code": 0, "msg": "ok"}


class TestCardCallback:

    def test_challenge(self, client, wired):
        response = client.post("/feishu/card", json={"challenge": "xyz", "token": "tok"})
        assert response.json() == {"challenge": "xyz"}

    def test_bad_token(self, client, wired):
        response = client.post("/feishu/card", json=_card_callback("clear", "1", token="nope"))
        assert response.status_code == 403

    def test_pic_mode_confirm_returns_new_card(self, client, wired):
        response = client.post("/feishu/card", json=_card_callback("pic_mode_change", "1"))

        card = response.json()
        menu = card["elements"][0]["actions"][0]
        assert menu["value"]["kind"] == "pic_resolution"
        store = wired["store"]
        assert store._sessions["om_1"].mode == SessionMode.PIC_CREATE

    def test_noop_returns_empty_body(self, client, wired):
        response = client.post("/feishu/card", json=_card_callback("clear", "maybe"))
        assert response.status_code == 200
        assert response.json() == {}

    def test_unknown_kind_returns_empty_body(self, client, wired):
        response = client.post("/feishu/card", json=_card_callback("weather", "1"))
        assert response.json() == {}

    def test_delivery_error_returns_empty_body(self, client, wired):
        wired["bot"].reply_text.side_effect = DeliveryError("reply_text", "forbidden", 230002)
        response = client.post(
            "/feishu/card", json=_card_callback("ai_mode_choose", "0", option="Strict")
        )
        assert response.status_code == 200
        assert response.json() == {}

    def test_storage_error_leaves_card_unchanged(self, client, wired):
        wired["store"]._write = AsyncMock(side_effect=StorageError("save", "sessions/om_1.json"))
        response = client.post("/feishu/card", json=_card_callback("pic_mode_change", "1"))
        assert response.status_code == 200
        assert response.json() == {}
        assert "om_1" not in wired["store"]._sessions

    def test_malformed_action_returns_empty_body(self, client, wired):
        response = client.post("/feishu/card", json={"token": "tok", "action": "clear"})
        assert response.status_code == 200
        assert response.json() == {}
