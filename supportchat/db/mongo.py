import logging
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient

from ..chat.models import Message
from .models import CHATS, INDEXES, MESSAGES, ChatRecord, MessageRecord

logger = logging.getLogger(__name__)


def _stringify_ids(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: str(v) if isinstance(v, ObjectId) else v for k, v in doc.items()}


class MongoStore:
    """Chats and messages in MongoDB. Ids cross the API boundary as hex strings."""

    def __init__(self, client: AsyncIOMotorClient, db_name: str = "") -> None:
        self._client = client
        self._db = client[db_name] if db_name else client.get_default_database("supportchat")

    @classmethod
    async def connect(cls, uri: str, db_name: str = "") -> "MongoStore":
        client = AsyncIOMotorClient(uri)
        await client.admin.command("ping")
        store = cls(client, db_name)
        await store.ensure_indexes()
        logger.info("MongoDB connected (db=%s)", store._db.name)
        return store

    def close(self) -> None:
        self._client.close()

    async def ensure_indexes(self) -> None:
        for collection, keys, options in INDEXES:
            await self._db[collection].create_index(keys, **options)

    async def create_chat(self, user_id: str, title: str) -> ChatRecord:
        now = datetime.now(timezone.utc)
        doc = {"userId": ObjectId(user_id), "title": title, "createdAt": now, "updatedAt": now}
        result = await self._db[CHATS].insert_one(doc)
        doc["_id"] = result.inserted_id
        return ChatRecord(**_stringify_ids(doc))

    async def list_chats(self, user_id: str) -> list[ChatRecord]:
        cursor = self._db[CHATS].find({"userId": ObjectId(user_id)}).sort("createdAt", -1)
        return [ChatRecord(**_stringify_ids(doc)) async for doc in cursor]

    async def delete_chat(self, chat_id: str) -> None:
        oid = ObjectId(chat_id)
        await self._db[MESSAGES].delete_many({"chatId": oid})
        await self._db[CHATS].delete_one({"_id": oid})

    async def list_messages(self, chat_id: str) -> list[MessageRecord]:
        cursor = self._db[MESSAGES].find({"chatId": ObjectId(chat_id)}).sort("timestamp", 1)
        return [MessageRecord(**_stringify_ids(doc)) async for doc in cursor]

    async def add_message(self, chat_id: str, message: Message) -> MessageRecord:
        now = datetime.now(timezone.utc)
        doc = {
            "chatId": ObjectId(chat_id),
            "role": message.role,
            "text": message.text,
            "timestamp": message.timestamp,
            "createdAt": now,
            "updatedAt": now,
        }
        result = await self._db[MESSAGES].insert_one(doc)
        doc["_id"] = result.inserted_id
        return MessageRecord(**_stringify_ids(doc))
