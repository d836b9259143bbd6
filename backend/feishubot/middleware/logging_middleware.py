"""
ASGI middleware logging every webhook call.

Pure ASGI (not BaseHTTPMiddleware), so the request body can be observed
without consuming it. Feishu callbacks carry verification tokens in the
body; they are masked before logging.
"""

import json
import logging
import time
from typing import Optional
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.logging_config import filter_sensitive_data, truncate_large_data

logger = logging.getLogger(__name__)


def _summarize_body(raw: bytes, max_length: int = 2000) -> Optional[str]:
    """Decode a request body, mask secrets if it is JSON, and truncate."""
    if not raw:
        return None
    text = raw.decode("utf-8", errors="ignore")
    try:
        text = json.dumps(filter_sensitive_data(json.loads(text)), ensure_ascii=False)
    except json.JSONDecodeError:
        pass
    return truncate_large_data(text, max_length=max_length)


def _event_label(body_text: Optional[str]) -> Optional[str]:
    """Feishu event type or card action kind, when the body reveals one."""
    if not body_text:
        return None
    try:
        payload = json.loads(body_text)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    event_type = payload.get("header", {}).get("event_type")
    if event_type:
        return event_type
    value = (payload.get("action") or {}).get("value")
    if isinstance(value, dict) and value.get("kind"):
        return f"card:{value['kind']}"
    if "challenge" in payload:
        return "url_verification"
    return None


class RequestLoggingMiddleware:
    """Logs method, path, Feishu event label, status and duration of each request."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[list] = None):
        """
        Args:
            app: The ASGI application
            exclude_paths: Paths that are passed through without logging
        """
        self.app = app
        self.exclude_paths = exclude_paths or ["/health", "/"]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path", "") in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        body_chunks = []
        status_code = 0

        async def logging_receive() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                body_chunks.append(message.get("body", b""))
            return message

        async def logging_send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            await send(message)

        try:
            await self.app(scope, logging_receive, logging_send)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {method} {path} - {str(e)}",
                exc_info=True,
                extra={"extra_fields": {
                    "method": method,
                    "path": path,
                    "duration_ms": round(duration_ms, 2),
                    "error": str(e),
                }}
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        body_text = _summarize_body(b"".join(body_chunks))
        label = _event_label(body_text)

        if status_code < 400:
            log_level = logging.INFO
        elif status_code < 500:
            log_level = logging.WARNING
        else:
            log_level = logging.ERROR

        logger.log(
            log_level,
            f"Request completed: {method} {path} [{label or '-'}] - {status_code} ({duration_ms:.2f}ms)",
            extra={"extra_fields": {
                "method": method,
                "path": path,
                "event": label,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
            }}
        )
        if logger.isEnabledFor(logging.DEBUG) and body_text:
            logger.debug(f"Request body: {body_text}")
