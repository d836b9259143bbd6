"""
Session Models - Per-conversation state tracked by the bot.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field


class SessionMode(str, Enum):
    """Conversational behaviour of a session."""
    CHAT = "chat"
    PIC_CREATE = "pic_create"
    ROLE_PLAY = "role_play"


class PicResolution(str, Enum):
    """Image sizes accepted by the image generation endpoint."""
    RES_256 = "256x256"
    RES_512 = "512x512"
    RES_1024 = "1024x1024"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["PicResolution"]:
        """Return the matching resolution, or None for anything unrecognized."""
        for item in cls:
            if item.value == value:
                return item
        return None


class AIMode(str, Enum):
    """Temperature presets offered by the AI mode menu."""
    STRICT = "Strict"
    SIMPLE = "Simple"
    STANDARD = "Standard"
    CREATIVE = "Creative"

    @property
    def temperature(self) -> float:
        return _AI_MODE_TEMPERATURES[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AIMode"]:
        for item in cls:
            if item.value == value:
                return item
        return None


_AI_MODE_TEMPERATURES = {
    AIMode.STRICT: 0.2,
    AIMode.SIMPLE: 0.6,
    AIMode.STANDARD: 1.0,
    AIMode.CREATIVE: 1.4,
}


class ChatTurn(BaseModel):
    """One message of the conversation history."""
    role: str  # "user" or "assistant"
    content: str


class Session(BaseModel):
    """State of a single conversation, keyed by session_key."""
    session_key: str
    mode: SessionMode = SessionMode.CHAT
    pic_resolution: PicResolution = PicResolution.RES_256
    ai_mode: AIMode = AIMode.STANDARD
    system_prompt: Optional[str] = None  # Role-play instruction
    history: List[ChatTurn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def reset(self) -> None:
        """Back to a fresh chat session. Timestamps and key are kept."""
        self.mode = SessionMode.CHAT
        self.pic_resolution = PicResolution.RES_256
        self.ai_mode = AIMode.STANDARD
        self.system_prompt = None
        self.history = []

    def clear_history(self) -> None:
        self.history = []

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)
