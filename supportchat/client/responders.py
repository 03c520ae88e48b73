"""Where a client send gets its answer from.

A responder takes a chat id and that chat's history (ending with the new
user message) and streams back TextDeltas. RelayResponder goes through the
relay's /api/chat/stream endpoint; DirectResponder talks to the provider
from the client process and is meant for local development.
"""

import logging
from typing import AsyncIterator, Optional, Protocol, Sequence

import httpx

from ..chat.context_cache import ChatContextCache
from ..chat.curator import curate
from ..chat.models import Message
from ..chat.sse import DeltaStream, TextDelta
from ..config import AppConfig, get_config
from ..errors import ProviderFailure
from ..llm.base import ChatContext, LLMProvider
from ..llm.registry import get_provider

logger = logging.getLogger(__name__)


class Responder(Protocol):
    def respond(self, chat_id: str, history: Sequence[Message]) -> AsyncIterator[TextDelta]:
        ...


class RelayResponder:
    def __init__(
        self,
        base_url: str,
        model: str,
        user_id: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/api/chat/stream"
        self._model = model
        self._user_id = user_id
        self._timeout = timeout
        self._transport = transport

    def _payload(self, chat_id: str, history: Sequence[Message]) -> dict:
        payload = {
            "model": self._model,
            "history": [m.model_dump() for m in history],
            "message": history[-1].text,
        }
        if self._user_id:
            payload["chatId"] = chat_id
            payload["userId"] = self._user_id
        return payload

    async def respond(self, chat_id: str, history: Sequence[Message]) -> AsyncIterator[TextDelta]:
        curate(history)  # raises InvalidHistory before any request goes out
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            async with client.stream("POST", self._url, json=self._payload(chat_id, history)) as resp:
                if resp.status_code != 200:
                    await resp.aread()
                    raise ProviderFailure(
                        f"Backend stream failed: HTTP {resp.status_code} {resp.text[:200]}"
                    )
                deltas = DeltaStream(resp.aiter_bytes())
                try:
                    async for delta in deltas:
                        yield delta
                finally:
                    await deltas.aclose()


class DirectResponder:
    def __init__(
        self,
        provider: LLMProvider,
        model: str,
        system_instruction: str,
        cache: Optional[ChatContextCache[ChatContext]] = None,
    ) -> None:
        self._provider = provider
        self._model = model
        self._system_instruction = system_instruction
        self._cache: ChatContextCache[ChatContext] = cache if cache is not None else ChatContextCache()

    async def respond(self, chat_id: str, history: Sequence[Message]) -> AsyncIterator[TextDelta]:
        curated = curate(history)
        # A cached context already holds this chat's earlier turns
        chat = self._cache.get_or_create(
            chat_id,
            lambda: self._provider.start_chat(
                curated.prior_turns, self._model, self._system_instruction
            ),
        )
        async for text in chat.send_stream(curated.new_message.text):
            yield TextDelta(text=text)

    def forget(self, chat_id: str) -> None:
        self._cache.discard(chat_id)


def build_responder(config: Optional[AppConfig] = None, user_id: Optional[str] = None) -> Responder:
    config = config or get_config()
    if config.client.use_remote_api:
        return RelayResponder(
            base_url=config.client.api_base_url,
            model=config.llm.default_model,
            user_id=user_id,
            timeout=config.client.request_timeout,
        )
    provider = get_provider()
    if provider is None:
        raise ProviderFailure("GEMINI_API_KEY not set; enable USE_REMOTE_API to go through the relay")
    logger.warning("Talking to the provider directly; use the relay in production")
    return DirectResponder(
        provider,
        model=config.llm.default_model,
        system_instruction=config.llm.system_instruction,
        cache=ChatContextCache(config.client.context_cache_size),
    )
