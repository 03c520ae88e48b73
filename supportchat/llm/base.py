from abc import ABC, abstractmethod
from typing import AsyncIterator, Sequence

from ..chat.models import Message


class ChatContext(ABC):
    """Provider-side conversation that remembers its own turns."""

    @abstractmethod
    def send_stream(self, message: str) -> AsyncIterator[str]:
        """Send one user message and stream response fragments."""
        ...


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str

    @abstractmethod
    def stream(
        self,
        history: Sequence[Message],
        message: str,
        model: str,
        system_instruction: str,
    ) -> AsyncIterator[str]:
        """Stream response fragments for `message` after the curated `history`."""
        ...

    @abstractmethod
    def start_chat(
        self,
        history: Sequence[Message],
        model: str,
        system_instruction: str,
    ) -> ChatContext:
        """Open a stateful chat seeded with the curated `history`."""
        ...
