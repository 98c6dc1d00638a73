"""
In-process cache tier.

A bounded insertion-ordered map of entries with its key trie, tag index
and byte accounting. Every method is synchronous, so an insert or delete
and the matching index update happen in one step from the event loop's
point of view.
"""

import logging
from typing import Dict, Iterable, List, Optional

from replivity.cache.keys import KeyIndex, TagIndex
from replivity.cache.serialization import CacheEntry


logger = logging.getLogger(__name__)


class MemoryTier:
    """Bounded in-process entry store."""

    def __init__(self, max_size: int = 10000):
        self.max_size = max_size
        self._entries: Dict[str, CacheEntry] = {}
        self._sizes: Dict[str, int] = {}
        self.keys = KeyIndex()
        self.tags = TagIndex()
        self.memory_usage = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def is_full(self) -> bool:
        return len(self._entries) >= self.max_size

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry, size: int, now: float) -> int:
        """Store an entry, evicting if at capacity. Returns entries evicted."""
        evicted = 0
        if key in self._entries:
            # Re-insert so the key moves to the young end
            self.remove(key)
        elif self.is_full:
            evicted += len(self.purge_expired(now))
            while self.is_full and self._entries:
                self.remove(next(iter(self._entries)))
                evicted += 1

        self._entries[key] = entry
        self._sizes[key] = size
        self.memory_usage += size
        self.keys.add(key)
        self.tags.add(key, entry.tags)

        if evicted:
            logger.debug(f"Evicted {evicted} entries to make room for {key}")
        return evicted

    def remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False

        self.tags.remove(key, entry.tags)
        self.keys.discard(key)
        self.memory_usage -= self._sizes.pop(key, 0)
        return True

    def remove_many(self, keys: Iterable[str]) -> List[str]:
        return [key for key in list(keys) if self.remove(key)]

    def purge_expired(self, now: float) -> List[str]:
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        for key in expired:
            self.remove(key)
        return expired

    def match(self, pattern: str) -> List[str]:
        return self.keys.match(pattern)

    def clear(self):
        self._entries.clear()
        self._sizes.clear()
        self.keys.clear()
        self.tags.clear()
        self.memory_usage = 0
