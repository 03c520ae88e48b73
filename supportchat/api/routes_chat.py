import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from ..chat.curator import curate_request
from ..chat.models import Message
from ..chat.sse import encode_record
from ..config import get_config
from ..db.mongo import MongoStore
from ..errors import BadRequest, PersistenceFailure
from ..llm.base import LLMProvider
from .deps import get_chat_provider, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class StreamRequest(BaseModel):
    model: Optional[str] = None
    history: Any = None  # list of {role, text, ...}; malformed entries are dropped
    message: Any = None
    chatId: Optional[str] = None
    userId: Optional[str] = None


@dataclass
class _RelayOutcome:
    parts: list[str] = field(default_factory=list)
    completed: bool = False


async def _first_fragment(fragments: AsyncIterator[str]) -> Optional[str]:
    async for text in fragments:
        if text:
            return text
    return None


async def _close_quietly(fragments: AsyncIterator[str]) -> None:
    aclose = getattr(fragments, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug("Ignoring error while closing provider stream: %s", e)


async def _persist_exchange(
    store: MongoStore, chat_id: str, message: str, outcome: _RelayOutcome
) -> None:
    """Record the user turn and the full model reply. Failures are only logged."""
    if not outcome.completed:
        return
    try:
        await store.add_message(chat_id, Message(role="user", text=message))
        reply = "".join(outcome.parts)
        if reply:
            await store.add_message(chat_id, Message(role="model", text=reply))
    except Exception as e:
        err = PersistenceFailure(f"chat {chat_id}: {e}")
        logger.error("Persist stream messages failed: %s", err)


@router.post("/stream")
async def stream_chat(
    req: Optional[StreamRequest] = None,
    provider: Optional[LLMProvider] = Depends(get_chat_provider),
    store: Optional[MongoStore] = Depends(get_store),
):
    req = req or StreamRequest()
    message = req.message
    if not isinstance(message, str) or not message.strip():
        raise BadRequest("message is required")

    config = get_config()
    model = req.model or config.llm.default_model
    curated = curate_request(req.history, message)
    logger.info(
        "Relay request: model=%s prior_turns=%d chat=%s",
        model, len(curated.prior_turns), req.chatId or "-",
    )

    if provider is None:
        logger.error("Streaming error: GEMINI_API_KEY is not configured")
        return JSONResponse({"error": "stream failed"}, status_code=500)

    fragments = provider.stream(
        curated.prior_turns, message, model, config.llm.system_instruction
    )
    # Nothing has been sent yet, so a provider failure here can still become a 500
    try:
        first = await _first_fragment(fragments)
    except Exception as e:
        logger.error("Streaming error: %s", e, exc_info=True)
        await _close_quietly(fragments)
        return JSONResponse({"error": "stream failed"}, status_code=500)

    outcome = _RelayOutcome()

    async def event_stream():
        try:
            if first:
                outcome.parts.append(first)
                yield encode_record(first)
            async for text in fragments:
                if not text:
                    continue
                outcome.parts.append(text)
                yield encode_record(text)
            outcome.completed = True
        except Exception as e:
            # Headers are out; the only signal left is closing the connection
            logger.error("Provider stream failed mid-response: %s", e)
        finally:
            await _close_quietly(fragments)

    background = None
    if store is not None and req.chatId and req.userId:
        background = BackgroundTask(_persist_exchange, store, req.chatId, message, outcome)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=background,
    )
