"""Bounded cache of provider chat contexts, keyed by chat id.

Lives inside one process. Two relay or client instances each hold their
own copy, so routing the same chat to different instances gives each one a
different context; use the stateless curated-history path when that matters.
"""

import logging
import threading
from collections import OrderedDict
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChatContextCache(Generic[T]):
    def __init__(
        self,
        max_sessions: int = 32,
        on_evict: Optional[Callable[[str, T], None]] = None,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self._max = max_sessions
        self._on_evict = on_evict
        self._items: OrderedDict[str, T] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._items

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            if key not in self._items:
                return None
            self._items.move_to_end(key)
            return self._items[key]

    def put(self, key: str, value: T) -> None:
        evicted: list[tuple[str, T]] = []
        with self._lock:
            self._items[key] = value
            self._items.move_to_end(key)
            while len(self._items) > self._max:
                evicted.append(self._items.popitem(last=False))
        for old_key, old_value in evicted:
            logger.debug("Evicting chat context %s", old_key)
            if self._on_evict:
                self._on_evict(old_key, old_value)

    def get_or_create(self, key: str, factory: Callable[[], T]) -> T:
        existing = self.get(key)
        if existing is not None:
            return existing
        value = factory()
        self.put(key, value)
        return value

    def discard(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
