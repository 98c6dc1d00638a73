"""
Cache Entry Serialization

Entries travel to the remote tier as JSON text. The in-process tier keeps
the entry object itself and only uses the encoded size for accounting.
"""

import json
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable

from replivity.cache.exceptions import CacheSerializationError


ENTRY_VERSION = 1


def _default_handler(obj):
    if hasattr(obj, 'isoformat'):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if hasattr(obj, '__dict__'):
        return {k: v for k, v in obj.__dict__.items() if not k.startswith('_')}
    return str(obj)


@dataclass
class CacheEntry:
    """
    The unit of storage.

    ``timestamp`` is the creation instant and ``ttl`` the lifetime, both in
    seconds. ``version`` is reserved for migrations of cached shapes.
    """
    data: Any
    timestamp: float
    ttl: float
    tags: FrozenSet[str] = field(default_factory=frozenset)
    version: int = ENTRY_VERSION

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl

    def expires_in(self, now: float) -> float:
        """Seconds left before the entry goes stale (never negative)."""
        return max(0.0, self.timestamp + self.ttl - now)


def encode_value(value: Any) -> str:
    """Encode any value as JSON text using the cache's default handler."""
    try:
        return json.dumps(value, default=_default_handler, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Cannot encode value: {e}") from e


def serialize_entry(entry: CacheEntry) -> str:
    """Encode an entry as JSON text for the remote tier."""
    return encode_value({
        "data": entry.data,
        "timestamp": entry.timestamp,
        "ttl": entry.ttl,
        "tags": sorted(entry.tags),
        "version": entry.version,
    })


def deserialize_entry(text) -> CacheEntry:
    """
    Decode JSON text (or bytes) produced by ``serialize_entry``.

    Raises CacheSerializationError on anything that is not a well-formed
    entry.
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode('utf-8')
        except UnicodeDecodeError as e:
            raise CacheSerializationError(f"Entry is not UTF-8: {e}") from e

    try:
        raw = json.loads(text)
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Malformed cache entry: {e}") from e

    if not isinstance(raw, dict) or not {"data", "timestamp", "ttl"} <= raw.keys():
        raise CacheSerializationError("Cache entry is missing required fields")

    try:
        return CacheEntry(
            data=raw["data"],
            timestamp=float(raw["timestamp"]),
            ttl=float(raw["ttl"]),
            tags=frozenset(_as_tags(raw.get("tags") or [])),
            version=int(raw.get("version", ENTRY_VERSION)),
        )
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Invalid cache entry field: {e}") from e


def _as_tags(tags: Iterable) -> Iterable[str]:
    if isinstance(tags, str):
        raise TypeError("tags must be a list")
    return (str(tag) for tag in tags)
