from typing import AsyncIterator, Sequence

from google import genai
from google.genai import types

from ..chat.models import Message
from .base import ChatContext, LLMProvider


def _to_contents(history: Sequence[Message]) -> list[types.Content]:
    # Message roles already use Gemini's vocabulary ("user" / "model")
    return [
        types.Content(role=m.role, parts=[types.Part.from_text(text=m.text)])
        for m in history
    ]


class GeminiChatContext(ChatContext):
    def __init__(self, chat) -> None:
        self._chat = chat

    async def send_stream(self, message: str) -> AsyncIterator[str]:
        async for chunk in await self._chat.send_message_stream(message):
            if chunk.text:
                yield chunk.text


class GeminiProvider(LLMProvider):
    name = "gemini"

    def __init__(self, api_key: str) -> None:
        self.client = genai.Client(api_key=api_key)

    async def stream(
        self,
        history: Sequence[Message],
        message: str,
        model: str,
        system_instruction: str,
    ) -> AsyncIterator[str]:
        contents = _to_contents(history)
        contents.append(
            types.Content(role="user", parts=[types.Part.from_text(text=message)])
        )
        async for chunk in await self.client.aio.models.generate_content_stream(
            model=model,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
            ),
        ):
            if chunk.text:
                yield chunk.text

    def start_chat(
        self,
        history: Sequence[Message],
        model: str,
        system_instruction: str,
    ) -> ChatContext:
        chat = self.client.aio.chats.create(
            model=model,
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
            ),
            history=_to_contents(history),
        )
        return GeminiChatContext(chat)
