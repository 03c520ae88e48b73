import time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MessageRole = Literal["user", "model"]

WELCOME_TEXT = "Hello! I'm here to listen and support you. What's on your mind today?"
DEFAULT_TITLE = "New Conversation"
PLACEHOLDER_TEXT = "..."
ERROR_TEXT = "Sorry, I encountered an error. Please try again."
TITLE_MAX_CHARS = 25


def now_ms() -> int:
    return int(time.time() * 1000)


class Message(BaseModel):
    role: MessageRole
    text: str
    timestamp: int = Field(default_factory=now_ms)


class ChatSession(BaseModel):
    """One conversation as held by the client. `messages` is never empty."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = DEFAULT_TITLE
    messages: list[Message] = Field(min_length=1)
    created_at: int = Field(default_factory=now_ms, alias="createdAt")

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


def welcome_message() -> Message:
    return Message(role="model", text=WELCOME_TEXT)


def derive_title(text: str) -> str:
    """First user message, cut to 25 chars with an ellipsis when longer."""
    return text[:TITLE_MAX_CHARS] + ("..." if len(text) > TITLE_MAX_CHARS else "")
