"""
Feishu (Lark) Bot Integration.
Sends replies, text and cards, uploads/downloads images and parses webhook events.
"""

import hashlib
import hmac
import json
import logging
import re
import uuid
from typing import Dict, Any, Optional, List

import httpx

from ..exceptions import DeliveryError

logger = logging.getLogger(__name__)

_MENTION_KEY = re.compile(r"@_user_\d+")


class FeishuBot:
    """
    Feishu (Lark) bot client.
    Every outbound call raises DeliveryError on transport failure or a
    non-zero Feishu response code.
    """

    BASE_URL = "https://open.feishu.cn/open-apis"
    TENANT_TOKEN_URL = BASE_URL + "/auth/v3/tenant_access_token/internal"
    REPLY_MESSAGE_URL = BASE_URL + "/im/v1/messages/{message_id}/reply"
    UPLOAD_IMAGE_URL = BASE_URL + "/im/v1/images"
    GET_IMAGE_URL = BASE_URL + "/im/v1/images/{image_key}"
    GET_RESOURCE_URL = BASE_URL + "/im/v1/messages/{message_id}/resources/{file_key}"

    # Tenant token invalid / expired
    TOKEN_EXPIRED_CODES = {99991661, 99991663}

    def __init__(self, app_id: str, app_secret: str,
                 verification_token: Optional[str] = None,
                 encrypt_key: Optional[str] = None,
                 bot_name: Optional[str] = None,
                 timeout: float = 30.0):
        """
        Initialize Feishu bot.

        Args:
            app_id: Feishu app ID
            app_secret: Feishu app secret
            verification_token: Token echoed in event and card callbacks
            encrypt_key: Event encryption key, used for signature checks
            bot_name: Display name of the bot, used to detect mentions in groups
            timeout: Seconds to wait for any Feishu API call
        """
        self.app_id = app_id
        self.app_secret = app_secret
        self.verification_token = verification_token
        self.encrypt_key = encrypt_key
        self.bot_name = bot_name
        self.timeout = timeout
        self._tenant_access_token: Optional[str] = None

    async def get_tenant_access_token(self) -> str:
        """Get or refresh tenant access token."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.TENANT_TOKEN_URL,
                    json={"app_id": self.app_id, "app_secret": self.app_secret},
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            raise DeliveryError("tenant_access_token", str(e)) from e

        if data.get("code", 0) != 0 or "tenant_access_token" not in data:
            raise DeliveryError("tenant_access_token", data.get("msg", "no token"), data.get("code"))

        self._tenant_access_token = data["tenant_access_token"]
        return self._tenant_access_token

    def _get_auth_headers(self, json_body: bool = True) -> Dict[str, str]:
        """Get headers with tenant access token."""
        headers = {"Authorization": f"Bearer {self._tenant_access_token}"}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _call(self, operation: str, method: str, url: str,
                    json_body: bool = True, **kwargs) -> Dict[str, Any]:
        """
        Perform an authenticated JSON API call.
        The token is refreshed once if Feishu reports it expired.
        """
        if not self._tenant_access_token:
            await self.get_tenant_access_token()

        for attempt in range(2):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.request(
                        method, url, headers=self._get_auth_headers(json_body), **kwargs
                    )
                    data = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Feishu {operation} failed: {e}")
                raise DeliveryError(operation, str(e)) from e

            code = data.get("code", 0)
            if code in self.TOKEN_EXPIRED_CODES and attempt == 0:
                logger.info("Feishu tenant token expired, refreshing")
                await self.get_tenant_access_token()
                continue
            if code != 0:
                logger.error(
                    f"Feishu {operation} rejected: code={code}, msg={data.get('msg')}",
                    extra={"extra_fields": {"operation": operation, "code": code}}
                )
                raise DeliveryError(operation, data.get("msg", "unknown error"), code)
            return data

        raise DeliveryError(operation, "tenant token refresh did not help")

    async def _download(self, operation: str, url: str,
                        params: Optional[Dict[str, str]] = None) -> bytes:
        if not self._tenant_access_token:
            await self.get_tenant_access_token()
        try:
            async with httpx.AsyncClient(timeout=self.timeout * 2) as client:
                resp = await client.get(url, params=params, headers=self._get_auth_headers())
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as e:
            raise DeliveryError(operation, str(e)) from e

    async def reply_message(self, message_id: str, msg_type: str,
                            content: str) -> Dict[str, Any]:
        """
        Reply to a message.

        Args:
            message_id: Message being replied to
            msg_type: "text", "interactive" or "image"
            content: Serialized message content
        """
        url = self.REPLY_MESSAGE_URL.format(message_id=message_id)
        payload = {
            "msg_type": msg_type,
            "content": content,
            "uuid": str(uuid.uuid4()),
        }
        return await self._call(f"reply_{msg_type}", "POST", url, json=payload)

    async def reply_text(self, message_id: str, text: str) -> Dict[str, Any]:
        return await self.reply_message(
            message_id, "text", json.dumps({"text": text.strip()}, ensure_ascii=False)
        )

    async def reply_card(self, message_id: str, card: Dict[str, Any]) -> Dict[str, Any]:
        """Reply with an interactive card built by cards.builder."""
        return await self.reply_message(
            message_id, "interactive", json.dumps(card, ensure_ascii=False)
        )

    async def upload_image(self, image_bytes: bytes) -> str:
        """
        Upload an image for use in messages and cards.

        Returns:
            The image_key assigned by Feishu
        """
        data = await self._call(
            "upload_image", "POST", self.UPLOAD_IMAGE_URL, json_body=False,
            data={"image_type": "message"},
            files={"image": ("image.png", image_bytes, "image/png")},
        )
        image_key = data.get("data", {}).get("image_key")
        if not image_key:
            raise DeliveryError("upload_image", "response carried no image_key")
        return image_key

    async def download_image(self, message_id: str, file_key: str) -> bytes:
        """Download an image a user sent in a message."""
        url = self.GET_RESOURCE_URL.format(message_id=message_id, file_key=file_key)
        return await self._download("download_image", url, {"type": "image"})

    async def download_image_by_key(self, image_key: str) -> bytes:
        """Download an image the bot uploaded itself."""
        url = self.GET_IMAGE_URL.format(image_key=image_key)
        return await self._download("download_image", url)

    async def download_audio(self, message_id: str, file_key: str) -> bytes:
        """Download audio from a voice message."""
        url = self.GET_RESOURCE_URL.format(message_id=message_id, file_key=file_key)
        return await self._download("download_audio", url, {"type": "file"})

    def verify_signature(self, timestamp: str, nonce: str,
                         body: str, signature: str) -> bool:
        """
        Verify the webhook event signature.

        Returns:
            True if signature is valid or no encrypt key is configured
        """
        if not self.encrypt_key:
            return True

        content = timestamp + nonce + self.encrypt_key + body
        computed = hashlib.sha256(content.encode("utf-8")).hexdigest()
        return hmac.compare_digest(computed, signature)

    def verify_token(self, token: Optional[str]) -> bool:
        """Check the verification token carried by callbacks, if one is configured."""
        if not self.verification_token:
            return True
        return hmac.compare_digest(self.verification_token, token or "")

    def is_mentioned(self, mentions: List[Dict[str, Any]]) -> bool:
        """Whether the bot is among a message's mentions."""
        if not mentions:
            return False
        if not self.bot_name:
            return True
        return any(m.get("name") == self.bot_name for m in mentions)

    @staticmethod
    def parse_event(body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Parse a Feishu webhook event body into a standardized format.

        Args:
            body: Raw event body from Feishu webhook

        Returns:
            Parsed event with type, message content, sender info, etc.
        """
        # URL verification challenge
        if "challenge" in body:
            return {
                "type": "url_verification",
                "challenge": body["challenge"],
                "token": body.get("token"),
            }

        header = body.get("header", {})
        event = body.get("event", {})
        event_type = header.get("event_type", body.get("type", ""))

        if event_type == "im.message.receive_v1":
            message = event.get("message", {})
            sender = event.get("sender", {})
            msg_type = message.get("message_type", "text")
            message_id = message.get("message_id", "")
            root_id = message.get("root_id") or ""

            parsed = {
                "type": "message",
                "event_id": header.get("event_id", ""),
                "token": header.get("token"),
                "message_type": msg_type,
                "chat_id": message.get("chat_id", ""),
                "chat_type": message.get("chat_type", "p2p"),
                "message_id": message_id,
                "root_id": root_id,
                # Replies in a thread share the thread's session
                "session_key": root_id or message_id,
                "mentions": message.get("mentions") or [],
                "sender_id": sender.get("sender_id", {}).get("open_id", ""),
                "sender_type": sender.get("sender_type", ""),
            }

            content_str = message.get("content", "{}")
            try:
                content = json.loads(content_str)
            except json.JSONDecodeError:
                content = {}

            if msg_type == "text":
                text = content.get("text", "")
                parsed["text"] = _MENTION_KEY.sub("", text).strip()
            elif msg_type == "image":
                parsed["image_key"] = content.get("image_key", "")
            elif msg_type == "audio":
                parsed["file_key"] = content.get("file_key", "")
                parsed["duration"] = content.get("duration", 0)

            return parsed

        return {"type": "unknown", "event_type": event_type, "raw": body}
