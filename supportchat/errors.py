"""Error types shared by the relay and the client store."""


class ChatError(Exception):
    """Base class for supportchat errors."""


class InvalidHistory(ChatError):
    """History handed to the curator does not end with a user message."""


class BadRequest(ChatError):
    """Caller-correctable request problem (e.g. empty message)."""


class ProviderFailure(ChatError):
    """The LLM provider (or the relay in front of it) could not produce a stream."""


class PersistenceFailure(ChatError):
    """A durable write failed. Logged, never surfaced to the request."""


class StorageError(ChatError):
    """Client-local session storage could not be read or written."""


class SendInProgress(ChatError):
    """A second send was attempted while one is still streaming for the same chat."""

    def __init__(self, chat_id: str):
        self.chat_id = chat_id
        super().__init__(f"A message is already being answered in chat {chat_id}")
