"""History curation.

Gemini rejects a conversation history that opens with a model turn, while
every client session opens with the model's welcome message. The helpers
here turn a stored message log into the prior turns the provider accepts
plus the new user utterance.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from ..errors import InvalidHistory
from .models import Message

_VALID_ROLES = ("user", "model")


@dataclass(frozen=True)
class CuratedHistory:
    prior_turns: list[Message]
    new_message: Message


def strip_leading_model(messages: Sequence[Message]) -> list[Message]:
    start = 0
    while start < len(messages) and messages[start].role == "model":
        start += 1
    return list(messages[start:])


def curate(history: Sequence[Message]) -> CuratedHistory:
    """Split `history` into provider-valid prior turns and the new user message.

    Raises InvalidHistory when the log is empty or does not end with a user
    message. A log whose earlier turns are all model turns (only the welcome
    message, typically) yields an empty prior list.
    """
    if not history:
        raise InvalidHistory("History is empty")
    last = history[-1]
    if last.role != "user":
        raise InvalidHistory(f"Last message must be user, got {last.role!r}")
    return CuratedHistory(prior_turns=strip_leading_model(history[:-1]), new_message=last)


def sanitize_history(raw: Iterable[Any] | None) -> list[Message]:
    """Keep only well-formed {role, text} entries from untrusted JSON."""
    if not raw or isinstance(raw, (str, bytes, dict)):
        return []
    cleaned: list[Message] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        text = item.get("text")
        if role not in _VALID_ROLES or not isinstance(text, str):
            continue
        ts = item.get("timestamp")
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            ts = 0
        cleaned.append(Message(role=role, text=text, timestamp=int(ts)))
    return cleaned


def curate_request(raw_history: Iterable[Any] | None, message: str) -> CuratedHistory:
    """Curate a relay request's history around its new `message`.

    Clients may send the history with or without the new user message at the
    end; it is appended only when missing so it never reaches the provider twice.
    """
    log = sanitize_history(raw_history)
    if not log or log[-1].role != "user" or log[-1].text != message:
        log.append(Message(role="user", text=message))
    return curate(log)
