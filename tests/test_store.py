import asyncio
import json

import pytest
from pydantic import ValidationError

from supportchat.chat.models import ERROR_TEXT, WELCOME_TEXT, ChatSession, Message, derive_title
from supportchat.chat.sse import TextDelta
from supportchat.client.responders import RelayResponder
from supportchat.client.storage import ChatStorage
from supportchat.client.store import ConversationStore, fold_delta, open_store
from supportchat.config import AppConfig
from supportchat.errors import SendInProgress


class FakeResponder:
    def __init__(self, deltas=(), error=None, gate=None):
        self.deltas = list(deltas)
        self.error = error
        self.gate = gate
        self.calls = []

    async def respond(self, chat_id, history):
        self.calls.append((chat_id, [(m.role, m.text) for m in history]))
        for i, text in enumerate(self.deltas):
            if self.gate is not None and i == 1:
                await self.gate.wait()
            yield TextDelta(text)
        if self.error is not None:
            raise self.error


def _store(tmp_path, responder):
    store = ConversationStore("u1", responder, ChatStorage(tmp_path))
    store.load()
    return store


def test_load_seeds_welcome_chat(tmp_path):
    store = _store(tmp_path, FakeResponder())
    assert len(store.sessions) == 1
    chat = store.active_chat
    assert chat.title == "New Conversation"
    assert [(m.role, m.text) for m in chat.messages] == [("model", WELCOME_TEXT)]
    assert (tmp_path / "chats_u1.json").exists()


def test_load_restores_saved_sessions(tmp_path):
    ChatStorage(tmp_path).save_chats(
        "u1",
        [
            ChatSession(id="chat_2", messages=[Message(role="model", text="w")]),
            ChatSession(id="chat_1", messages=[Message(role="model", text="w")]),
        ],
    )
    store = _store(tmp_path, FakeResponder())
    assert [s.id for s in store.sessions] == ["chat_2", "chat_1"]
    assert store.active_id == "chat_2"


def test_send_folds_deltas_into_placeholder(tmp_path):
    responder = FakeResponder(["Hel", "lo, ", "world"])
    store = _store(tmp_path, responder)
    chat = asyncio.run(store.send("  I feel anxious about exams and don't know what to do "))
    assert [m.role for m in chat.messages] == ["model", "user", "model"]
    assert chat.messages[-1].text == "Hello, world"
    assert chat.title == "I feel anxious about exam..."
    chat_id, history = responder.calls[0]
    assert chat_id == chat.id
    assert history[-1] == ("user", "I feel anxious about exams and don't know what to do")
    reloaded = ChatStorage(tmp_path).load_chats("u1")
    assert reloaded[0].messages[-1].text == "Hello, world"


def test_short_first_message_is_title_verbatim(tmp_path):
    store = _store(tmp_path, FakeResponder(["ok"]))
    chat = asyncio.run(store.send("Exam worry"))
    assert chat.title == "Exam worry"


def test_title_only_set_on_first_exchange(tmp_path):
    store = _store(tmp_path, FakeResponder(["ok"]))
    asyncio.run(store.send("first topic"))
    chat = asyncio.run(store.send("second topic entirely different"))
    assert chat.title == "first topic"
    assert len(chat.messages) == 5


def test_empty_text_is_ignored(tmp_path):
    responder = FakeResponder(["x"])
    store = _store(tmp_path, responder)
    assert asyncio.run(store.send("   ")) is None
    assert responder.calls == []
    assert len(store.active_chat.messages) == 1


def test_stream_error_replaces_placeholder(tmp_path):
    store = _store(tmp_path, FakeResponder(["partial"], error=RuntimeError("drop")))
    chat = asyncio.run(store.send("hello"))
    assert chat.messages[-1].role == "model"
    assert chat.messages[-1].text == ERROR_TEXT
    assert chat.messages[-2].text == "hello"
    assert not store.is_sending(chat.id)


def test_fold_delta_never_overwrites_user_message():
    session = ChatSession(id="c", messages=[Message(role="user", text="mine")])
    assert fold_delta(session, "reply") is False
    assert session.messages[-1].text == "mine"


def test_second_send_while_streaming_is_rejected(tmp_path):
    async def main():
        gate = asyncio.Event()
        store = _store(tmp_path, FakeResponder(["a", "b"], gate=gate))
        chat_id = store.active_id
        task = asyncio.create_task(store.send("first"))
        await asyncio.sleep(0)
        assert store.is_sending(chat_id)
        with pytest.raises(SendInProgress):
            await store.send("second")
        gate.set()
        chat = await task
        return store, chat

    store, chat = asyncio.run(main())
    assert chat.messages[-1].text == "ab"
    assert [m.text for m in chat.messages if m.role == "user"] == ["first"]
    assert not store.is_sending(chat.id)


def test_background_chat_keeps_streaming_after_switch(tmp_path):
    async def main():
        gate = asyncio.Event()
        store = _store(tmp_path, FakeResponder(["Hi ", "there"], gate=gate))
        background_id = store.active_id
        task = asyncio.create_task(store.send("hello"))
        await asyncio.sleep(0)
        other = store.new_chat()
        gate.set()
        await task
        return store, background_id, other.id

    store, background_id, other_id = asyncio.run(main())
    assert store.active_id == other_id
    assert store.get_chat(background_id).messages[-1].text == "Hi there"
    assert [m.text for m in store.get_chat(other_id).messages] == [WELCOME_TEXT]


def test_delete_reassigns_active(tmp_path):
    store = _store(tmp_path, FakeResponder())
    first = store.active_id
    second = store.new_chat().id
    assert store.sessions[0].id == second
    store.delete_chat(second)
    assert store.active_id == first
    store.delete_chat(first)
    assert store.active_id is None
    assert store.sessions == []
    assert not (tmp_path / "chats_u1.json").exists()


def test_select_unknown_chat_raises(tmp_path):
    store = _store(tmp_path, FakeResponder())
    with pytest.raises(KeyError):
        store.select_chat("nope")


def test_derive_title():
    assert derive_title("I feel anxious about exams and don't know what to do") == "I feel anxious about exam..."
    assert derive_title("Exam worry") == "Exam worry"
    assert derive_title("x" * 25) == "x" * 25


def test_open_store_uses_configured_storage(tmp_path):
    config = AppConfig()
    config.client.use_remote_api = True
    config.client.api_base_url = "http://relay.test"
    config.client.storage_dir = str(tmp_path)
    store = open_store("u9", config)
    assert isinstance(store._responder, RelayResponder)
    assert (tmp_path / "chats_u9.json").exists()


def test_unreadable_saved_chats_are_left_on_disk(tmp_path):
    blob = json.dumps([
        {"id": "chat_0", "title": "t", "messages": [{"role": "assistant", "text": "x", "timestamp": 1}], "createdAt": 1},
        {"id": "chat_1", "title": "t", "messages": [{"role": "model", "text": "w", "timestamp": 1}], "createdAt": 1},
    ])
    path = tmp_path / "chats_u1.json"
    path.write_text(blob, encoding="utf-8")
    store = _store(tmp_path, FakeResponder(["ok"]))
    assert [(m.role, m.text) for m in store.active_chat.messages] == [("model", WELCOME_TEXT)]
    chat = asyncio.run(store.send("hello"))
    assert chat.messages[-1].text == "ok"
    store.delete_chat(chat.id)
    assert path.read_text(encoding="utf-8") == blob


def test_delete_releases_responder_context(tmp_path):
    class ForgetfulResponder(FakeResponder):
        def __init__(self):
            super().__init__()
            self.forgotten = []

        def forget(self, chat_id):
            self.forgotten.append(chat_id)

    responder = ForgetfulResponder()
    store = _store(tmp_path, responder)
    chat_id = store.active_id
    store.delete_chat(chat_id)
    assert responder.forgotten == [chat_id]


def test_session_needs_at_least_one_message():
    with pytest.raises(ValidationError):
        ChatSession(id="c")
    with pytest.raises(ValidationError):
        ChatSession(id="c", messages=[])
