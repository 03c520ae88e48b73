"""Durable record shapes for chats and messages.

Chat -> User and Message -> Chat by foreign key. Field names follow the
JSON the CRUD routes return, so records dump straight to the wire.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class ChatRecord(_Record):
    userId: str
    title: str


class MessageRecord(_Record):
    chatId: str
    role: Literal["user", "model"]
    text: str
    timestamp: int


USERS = "users"
CHATS = "chats"
MESSAGES = "messages"

# (collection, keys, options)
INDEXES: list[tuple[str, list[tuple[str, int]], dict]] = [
    (USERS, [("username", 1)], {"unique": True}),
    (CHATS, [("userId", 1), ("createdAt", -1)], {}),
    (MESSAGES, [("chatId", 1), ("timestamp", 1)], {}),
]
