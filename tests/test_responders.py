import asyncio
import json

import httpx
import pytest

from supportchat.api.deps import get_chat_provider, get_store
from supportchat.chat.context_cache import ChatContextCache
from supportchat.chat.models import Message
from supportchat.chat.sse import encode_record
from supportchat.client.responders import DirectResponder, RelayResponder, build_responder
from supportchat.client.storage import ChatStorage
from supportchat.client.store import ConversationStore
from supportchat.config import AppConfig
from supportchat.errors import InvalidHistory, ProviderFailure
from supportchat.llm.base import ChatContext, LLMProvider
from supportchat.main import app

HISTORY = [
    Message(role="model", text="welcome", timestamp=1),
    Message(role="user", text="hello", timestamp=2),
]


async def _collect(responder, chat_id, history):
    return [d.text async for d in responder.respond(chat_id, history)]


def test_relay_responder_decodes_stream():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        body = encode_record("Hel") + encode_record("lo")
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    responder = RelayResponder("http://relay/", "gemini-2.5-flash", transport=httpx.MockTransport(handler))
    texts = asyncio.run(_collect(responder, "chat_1", HISTORY))
    assert texts == ["Hel", "lo"]
    assert captured["url"] == "http://relay/api/chat/stream"
    assert captured["body"]["message"] == "hello"
    assert captured["body"]["history"][0] == {"role": "model", "text": "welcome", "timestamp": 1}
    assert "chatId" not in captured["body"]


def test_relay_responder_sends_ids_when_user_known():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"")

    responder = RelayResponder(
        "http://relay", "m", user_id="u1", transport=httpx.MockTransport(handler)
    )
    assert asyncio.run(_collect(responder, "c1", HISTORY)) == []
    assert captured["body"]["chatId"] == "c1"
    assert captured["body"]["userId"] == "u1"


def test_relay_responder_raises_on_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "stream failed"}))
    responder = RelayResponder("http://relay", "m", transport=transport)
    with pytest.raises(ProviderFailure):
        asyncio.run(_collect(responder, "c1", HISTORY))


def test_relay_responder_rejects_bad_history():
    transport = httpx.MockTransport(lambda request: pytest.fail("no request expected"))
    responder = RelayResponder("http://relay", "m", transport=transport)
    with pytest.raises(InvalidHistory):
        asyncio.run(_collect(responder, "c1", [Message(role="model", text="w")]))


class EchoProvider(LLMProvider):
    name = "echo"

    async def stream(self, history, message, model, system_instruction):
        for word in ["You said: ", message, f" ({len(history)} prior)"]:
            yield word

    def start_chat(self, history, model, system_instruction):
        raise NotImplementedError


def test_store_through_relay_end_to_end(tmp_path):
    app.dependency_overrides[get_chat_provider] = lambda: EchoProvider()
    app.dependency_overrides[get_store] = lambda: None
    try:
        responder = RelayResponder(
            "http://testserver", "m", transport=httpx.ASGITransport(app=app)
        )
        store = ConversationStore("u1", responder, ChatStorage(tmp_path))
        store.load()
        chat = asyncio.run(store.send("exams"))
    finally:
        app.dependency_overrides.clear()
    assert chat.messages[-1].text == "You said: exams (0 prior)"
    assert chat.title == "exams"


class FakeChat(ChatContext):
    def __init__(self, history):
        self.history = list(history)
        self.sent = []

    async def send_stream(self, message):
        self.sent.append(message)
        yield "re: "
        yield message


class FakeChatProvider(LLMProvider):
    name = "fake"

    def __init__(self):
        self.chats = []

    async def stream(self, history, message, model, system_instruction):
        raise NotImplementedError
        yield  # pragma: no cover

    def start_chat(self, history, model, system_instruction):
        chat = FakeChat(history)
        self.chats.append(chat)
        return chat


def test_direct_responder_reuses_cached_chat():
    provider = FakeChatProvider()
    responder = DirectResponder(provider, "m", "be kind", cache=ChatContextCache(4))
    first = asyncio.run(_collect(responder, "chat_1", HISTORY))
    later = HISTORY + [
        Message(role="model", text="re: hello"),
        Message(role="user", text="again"),
    ]
    second = asyncio.run(_collect(responder, "chat_1", later))
    assert first == ["re: ", "hello"]
    assert second == ["re: ", "again"]
    assert len(provider.chats) == 1
    assert provider.chats[0].history == []
    assert provider.chats[0].sent == ["hello", "again"]


def test_direct_responder_seeds_new_chat_with_curated_history():
    provider = FakeChatProvider()
    responder = DirectResponder(provider, "m", "be kind")
    history = [
        Message(role="model", text="welcome"),
        Message(role="user", text="a"),
        Message(role="model", text="b"),
        Message(role="user", text="c"),
    ]
    asyncio.run(_collect(responder, "chat_9", history))
    assert [m.text for m in provider.chats[0].history] == ["a", "b"]
    responder.forget("chat_9")
    asyncio.run(_collect(responder, "chat_9", history))
    assert len(provider.chats) == 2


def test_build_responder_prefers_relay_when_enabled():
    config = AppConfig()
    config.client.use_remote_api = True
    config.client.api_base_url = "http://relay"
    assert isinstance(build_responder(config), RelayResponder)


def test_build_responder_without_key_fails(monkeypatch):
    monkeypatch.setattr("supportchat.client.responders.get_provider", lambda: None)
    with pytest.raises(ProviderFailure):
        build_responder(AppConfig())
