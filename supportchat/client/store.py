"""Client-side conversation state.

ConversationStore owns the in-memory session list for one user. A send
applies optimistic updates (the user message plus a "..." placeholder),
folds streamed deltas into the placeholder, and writes the whole list to
local storage after every mutation. All updates address a session by id,
so a reply keeps streaming into its own chat while another chat is active.
"""

import logging
from typing import Optional

from ..chat.models import (
    ERROR_TEXT,
    PLACEHOLDER_TEXT,
    ChatSession,
    Message,
    derive_title,
    now_ms,
    welcome_message,
)
from ..config import AppConfig, get_config, storage_dir
from ..errors import SendInProgress, StorageError
from .responders import Responder, build_responder
from .storage import ChatStorage

logger = logging.getLogger(__name__)


def fold_delta(session: ChatSession, text: str) -> bool:
    """Overwrite the in-flight reply with `text`.

    Only the last message may be touched, and only when it is a model
    message, so a user message that landed meanwhile is never clobbered.
    """
    if not session.messages or session.messages[-1].role != "model":
        return False
    session.messages[-1].text = text
    return True


class ConversationStore:
    def __init__(self, user_id: str, responder: Responder, storage: ChatStorage) -> None:
        self.user_id = user_id
        self._responder = responder
        self._storage = storage
        self._sessions: list[ChatSession] = []
        self._active_id: Optional[str] = None
        self._sending: set[str] = set()
        self._loaded = False
        self._read_only = False

    @property
    def sessions(self) -> list[ChatSession]:
        return list(self._sessions)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_chat(self) -> Optional[ChatSession]:
        return self.get_chat(self._active_id) if self._active_id else None

    def get_chat(self, chat_id: str) -> Optional[ChatSession]:
        for session in self._sessions:
            if session.id == chat_id:
                return session
        return None

    def is_sending(self, chat_id: str) -> bool:
        return chat_id in self._sending

    def load(self) -> list[ChatSession]:
        """Read the saved sessions once; a user with none gets a welcome chat."""
        if self._loaded:
            return self.sessions
        self._loaded = True
        try:
            self._sessions = self._storage.load_chats(self.user_id)
        except StorageError as e:
            # Leave the unreadable blob on disk; this session runs in memory only
            logger.error("Saved chats unavailable, not saving this session: %s", e)
            self._read_only = True
            self._sessions = []
        if self._sessions:
            self._active_id = self._sessions[0].id
        else:
            self.new_chat()
        return self.sessions

    def _save(self) -> None:
        if self._read_only:
            return
        try:
            self._storage.save_chats(self.user_id, self._sessions)
        except StorageError as e:
            logger.error("Failed to save chats: %s", e)

    def _new_chat_id(self) -> str:
        chat_id = f"chat_{now_ms()}"
        suffix = 1
        while self.get_chat(chat_id) is not None:
            chat_id = f"chat_{now_ms()}_{suffix}"
            suffix += 1
        return chat_id

    def new_chat(self) -> ChatSession:
        session = ChatSession(id=self._new_chat_id(), messages=[welcome_message()])
        self._sessions.insert(0, session)
        self._active_id = session.id
        self._save()
        return session

    def select_chat(self, chat_id: str) -> None:
        if self.get_chat(chat_id) is None:
            raise KeyError(chat_id)
        self._active_id = chat_id

    def delete_chat(self, chat_id: str) -> None:
        self._sessions = [s for s in self._sessions if s.id != chat_id]
        forget = getattr(self._responder, "forget", None)
        if forget is not None:
            forget(chat_id)
        if self._active_id == chat_id:
            self._active_id = self._sessions[0].id if self._sessions else None
        self._save()

    async def send(self, text: str, chat_id: Optional[str] = None) -> Optional[ChatSession]:
        """Send `text` to a chat (the active one by default) and stream the reply in.

        Returns the updated session, or None when there is nothing to send.
        Raises SendInProgress if that chat is still streaming a reply.
        """
        text = text.strip()
        chat_id = chat_id or self._active_id
        if not text or chat_id is None:
            return None
        session = self.get_chat(chat_id)
        if session is None:
            return None
        if chat_id in self._sending:
            raise SendInProgress(chat_id)

        self._sending.add(chat_id)
        try:
            first_exchange = len(session.messages) < 2
            user_message = Message(role="user", text=text)
            history = [*session.messages, user_message]
            session.messages.append(user_message)
            session.messages.append(Message(role="model", text=PLACEHOLDER_TEXT))
            self._save()

            try:
                full_response = ""
                async for delta in self._responder.respond(chat_id, history):
                    full_response += delta.text
                    if fold_delta(session, full_response):
                        self._save()
                if first_exchange:
                    session.title = derive_title(text)
                    self._save()
            except Exception as e:
                logger.error("Error getting response for chat %s: %s", chat_id, e)
                fold_delta(session, ERROR_TEXT)
                self._save()
        finally:
            self._sending.discard(chat_id)
        return session


def open_store(user_id: str, config: Optional[AppConfig] = None) -> ConversationStore:
    config = config or get_config()
    store = ConversationStore(
        user_id,
        build_responder(config, user_id=user_id),
        ChatStorage(storage_dir(config)),
    )
    store.load()
    return store
