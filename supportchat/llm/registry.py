from typing import Optional

from ..config import get_config
from .base import LLMProvider
from .gemini_provider import GeminiProvider

_providers: dict[str, LLMProvider] = {}


def _init_provider() -> Optional[LLMProvider]:
    api_key = get_config().llm.gemini_api_key
    if not api_key:
        return None
    return GeminiProvider(api_key)


def get_provider() -> Optional[LLMProvider]:
    """Return the shared provider, or None when no API key is configured."""
    if GeminiProvider.name not in _providers:
        provider = _init_provider()
        if provider is None:
            return None
        _providers[GeminiProvider.name] = provider
    return _providers[GeminiProvider.name]


def reset_providers() -> None:
    _providers.clear()
