from typing import Optional

from fastapi import Request

from ..db.mongo import MongoStore
from ..llm.base import LLMProvider
from ..llm.registry import get_provider


async def get_store(request: Request) -> Optional[MongoStore]:
    """Durable store set up by the app lifespan, or None when persistence is off."""
    return getattr(request.app.state, "store", None)


async def get_chat_provider() -> Optional[LLMProvider]:
    return get_provider()
