"""
Exceptions shared by the dispatcher, the Feishu channel and the LLM client.

Kept at the package root so that channels/, llm/ and core/ can all raise
and catch the same types without importing each other.
"""

from typing import Optional


class BotError(Exception):
    """Base class for every error raised inside the bot."""


class ClassificationError(BotError):
    """
    Raised when a card action carries a kind no classifier knows.

    This is a routing signal ("not mine, try the next handler"),
    not a failure.
    """

    def __init__(self, kind: Optional[str], reason: str = "unknown card action kind"):
        self.kind = kind
        super().__init__(f"{reason}: {kind!r}")


class ActionValidationError(BotError):
    """Raised when a recognized action kind carries a value it cannot act on."""

    def __init__(self, kind: str, value):
        self.kind = kind
        self.value = value
        super().__init__(f"Unrecognized value {value!r} for card action {kind}")


class DeliveryError(BotError):
    """Raised when the chat platform rejects or fails a send/reply/upload."""

    def __init__(self, operation: str, message: str, code: Optional[int] = None):
        self.operation = operation
        self.code = code
        detail = f"{operation} failed: {message}"
        if code is not None:
            detail += f" (code={code})"
        super().__init__(detail)


class BackendError(BotError):
    """Raised when a generative backend call fails or times out."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class StorageError(BotError):
    """Raised when a session cannot be read from or written to its backend."""

    def __init__(self, operation: str, path: str, message: str = ""):
        self.operation = operation
        self.path = path
        detail = f"{operation} {path} failed"
        if message:
            detail += f": {message}"
        super().__init__(detail)
