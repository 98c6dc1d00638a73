"""
Cache Keys and Indices

Deterministic key generation plus the two in-process indices the store
maintains alongside its entries:

- KeyIndex: trie of live key stems, used for ``*`` glob deletion
  without scanning the whole key space
- TagIndex: tag -> keys reverse index, used for group invalidation
"""

import hashlib
import json
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set


DEFAULT_KEY_PREFIX = "replivity:cache:"


def _canonical_default(obj):
    if hasattr(obj, 'isoformat'):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


def canonical_payload(
    identity: str,
    params: Optional[Dict[str, Any]] = None,
    tags: Optional[Iterable[str]] = None,
) -> str:
    """Order-independent JSON rendering of a query identity triple."""
    return json.dumps(
        {
            "query": identity,
            "params": params or {},
            "tags": sorted(set(tags or ())),
        },
        sort_keys=True,
        separators=(",", ":"),
        default=_canonical_default,
    )


def generate_key(
    identity: str,
    params: Optional[Dict[str, Any]] = None,
    tags: Optional[Iterable[str]] = None,
    prefix: str = DEFAULT_KEY_PREFIX,
) -> str:
    """
    Build the cache key for ``(identity, params, tags)``.

    Keys look like ``<prefix><identity>:<md5>`` so that identity globs such
    as ``replivity:cache:user:profile*`` select every parameterisation of a
    query kind.
    """
    digest = hashlib.md5(canonical_payload(identity, params, tags).encode("utf-8")).hexdigest()
    return f"{prefix}{identity}:{digest}"


def glob_match(pattern: str, key: str) -> bool:
    """Match ``key`` against a pattern where ``*`` is the only wildcard."""
    if "*" not in pattern:
        return pattern == key

    parts = pattern.split("*")
    head, tail = parts[0], parts[-1]
    if len(key) < len(head) + len(tail):
        return False
    if not key.startswith(head) or not key.endswith(tail):
        return False

    position = len(head)
    end = len(key) - len(tail)
    for part in parts[1:-1]:
        if not part:
            continue
        found = key.find(part, position, end)
        if found < 0:
            return False
        position = found + len(part)
    return True


def key_stem(key: str) -> str:
    """Everything up to and including the last ``:``, i.e. ``<prefix><identity>:``."""
    return key[:key.rfind(":") + 1] or key


class _TrieNode:
    __slots__ = ("children", "keys")

    def __init__(self):
        self.children: Dict[str, "_TrieNode"] = {}
        self.keys: Set[str] = set()


class KeyIndex:
    """
    Prefix trie over the stems of live in-process keys.

    Only the ``<prefix><identity>:`` stem is spelled out in the trie; the
    node at the end of a stem holds the full keys sharing it. The digest
    suffix of every key is unique, so the trie grows with the number of
    query kinds rather than the number of entries.

    ``match`` walks the literal prefix of a pattern (everything before the
    first ``*``) and only inspects keys below that node, plus the buckets
    of stems that are themselves a prefix of the literal.
    """

    def __init__(self):
        self._root = _TrieNode()
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __contains__(self, key: str) -> bool:
        node = self._find(key_stem(key))
        return node is not None and key in node.keys

    def add(self, key: str) -> None:
        node = self._root
        for char in key_stem(key):
            node = node.children.setdefault(char, _TrieNode())
        if key not in node.keys:
            node.keys.add(key)
            self._size += 1

    def discard(self, key: str) -> None:
        stem = key_stem(key)
        path = [self._root]
        for char in stem:
            child = path[-1].children.get(char)
            if child is None:
                return
            path.append(child)

        if key not in path[-1].keys:
            return
        path[-1].keys.discard(key)
        self._size -= 1

        # Prune branches that no longer lead to a key
        for depth in range(len(stem), 0, -1):
            node = path[depth]
            if node.keys or node.children:
                break
            del path[depth - 1].children[stem[depth - 1]]

    def match(self, pattern: str) -> List[str]:
        if "*" not in pattern:
            return [pattern] if pattern in self else []

        literal = pattern[:pattern.index("*")]
        candidates: List[str] = []
        node = self._root
        for char in literal:
            # Stems shorter than the literal can still match through their digest
            candidates.extend(node.keys)
            node = node.children.get(char)
            if node is None:
                break
        else:
            candidates.extend(self._walk(node))

        return [key for key in candidates if glob_match(pattern, key)]

    def node_count(self) -> int:
        count = 0
        stack = [self._root]
        while stack:
            node = stack.pop()
            count += 1
            stack.extend(node.children.values())
        return count

    def clear(self) -> None:
        self._root = _TrieNode()
        self._size = 0

    def __iter__(self) -> Iterator[str]:
        return self._walk(self._root)

    def _find(self, prefix: str) -> Optional[_TrieNode]:
        node = self._root
        for char in prefix:
            node = node.children.get(char)
            if node is None:
                return None
        return node

    def _walk(self, node: _TrieNode) -> Iterator[str]:
        stack = [node]
        while stack:
            current = stack.pop()
            yield from current.keys
            stack.extend(current.children.values())


class TagIndex:
    """Tag -> set of keys currently carrying that tag."""

    def __init__(self):
        self._tags: Dict[str, Set[str]] = {}

    def __contains__(self, tag: str) -> bool:
        return tag in self._tags

    def __len__(self) -> int:
        return len(self._tags)

    def add(self, key: str, tags: Iterable[str]) -> None:
        for tag in tags:
            self._tags.setdefault(tag, set()).add(key)

    def remove(self, key: str, tags: Iterable[str]) -> None:
        for tag in tags:
            keys = self._tags.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tags[tag]

    def keys_for(self, tag: str) -> Set[str]:
        return set(self._tags.get(tag, ()))

    def pop(self, tag: str) -> Set[str]:
        return self._tags.pop(tag, set())

    def tags(self) -> List[str]:
        return list(self._tags)

    def clear(self) -> None:
        self._tags.clear()
