"""CRUD over durable chats and messages.

Without a configured store, reads return an empty list and writes answer
501, so the client falls back to its local session storage.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..db.mongo import MongoStore
from ..errors import BadRequest
from .deps import get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chats"])


class CreateChatRequest(BaseModel):
    userId: Optional[str] = None
    title: Optional[str] = None


def _db_disabled() -> JSONResponse:
    return JSONResponse({"error": "db disabled"}, status_code=501)


@router.post("/chats")
async def create_chat(
    req: Optional[CreateChatRequest] = None,
    store: Optional[MongoStore] = Depends(get_store),
):
    if store is None:
        return _db_disabled()
    req = req or CreateChatRequest()
    if not req.userId or not req.title:
        raise BadRequest("userId and title required")
    try:
        chat = await store.create_chat(req.userId, req.title)
    except Exception as e:
        logger.error("Create chat failed: %s", e)
        return JSONResponse({"error": "create failed"}, status_code=500)
    return chat.to_json()


@router.get("/chats/{user_id}")
async def list_chats(user_id: str, store: Optional[MongoStore] = Depends(get_store)):
    if store is None:
        return []
    try:
        chats = await store.list_chats(user_id)
    except Exception as e:
        logger.error("List chats failed for %s: %s", user_id, e)
        return JSONResponse({"error": "list failed"}, status_code=500)
    return [c.to_json() for c in chats]


@router.delete("/chats/{chat_id}")
async def delete_chat(chat_id: str, store: Optional[MongoStore] = Depends(get_store)):
    if store is None:
        return _db_disabled()
    try:
        await store.delete_chat(chat_id)
    except Exception as e:
        logger.error("Delete chat %s failed: %s", chat_id, e)
        return JSONResponse({"error": "delete failed"}, status_code=500)
    return {"ok": True}


@router.get("/messages/{chat_id}")
async def list_messages(chat_id: str, store: Optional[MongoStore] = Depends(get_store)):
    if store is None:
        return []
    try:
        messages = await store.list_messages(chat_id)
    except Exception as e:
        logger.error("List messages failed for %s: %s", chat_id, e)
        return JSONResponse({"error": "messages failed"}, status_code=500)
    return [m.to_json() for m in messages]
