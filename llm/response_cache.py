"""
Response Cache for Ofie Assistant.

Read-through cache of generated replies, keyed by user, normalized query
and conversation. Entries expire after a fixed TTL and are never mutated.
"""

import hashlib
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger(__name__)


def normalize_query(query: str) -> str:
    """Collapse whitespace and lowercase."""
    return " ".join(query.split()).lower()


class ResponseCache:
    """
    TTL cache with LRU eviction once ``max_entries`` is reached.

    Writers never coordinate: the same key always maps to an equivalent
    value, so a write race is harmless.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(user_id: str, query: str, conversation_id: str) -> str:
        raw = f"assistant_reply:{user_id}:{normalize_query(query)}:{conversation_id}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            logger.debug(f"Cache entry expired: {key[:12]}")
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def set(self, key: str, value: Any):
        """Insert a value; an existing live entry is left untouched."""
        existing = self._entries.get(key)
        if existing is not None and self._clock() - existing[1] < self.ttl_seconds:
            return
        self._entries[key] = (value, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self):
        self._entries.clear()
