"""Bounded LRU cache with optional TTL.

Hash map for O(1) lookup plus a doubly linked list for O(1) recency
updates. The head is the most recently used entry, the tail the least.
Expiry is lazy: an entry older than ``ttl`` milliseconds since its last
write is removed the next time ``get`` or ``has`` touches it.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from typing import Any


def _now_ms() -> float:
    return time.monotonic() * 1000


class _Node:
    __slots__ = ("key", "value", "prev", "next", "timestamp")

    def __init__(self, key: Hashable, value: Any, timestamp: float):
        self.key = key
        self.value = value
        self.prev: _Node | None = None
        self.next: _Node | None = None
        self.timestamp = timestamp


class LRUCache:
    """Least-recently-used cache.

    Args:
        max: Maximum number of entries before the LRU entry is evicted
        ttl: Optional lifetime in milliseconds, measured from the last ``set``
        clock: Millisecond clock, injectable for tests
    """

    def __init__(self, max: int, ttl: float | None = None, clock: Callable[[], float] | None = None):
        self.max = max
        self.ttl = ttl
        self._clock = clock or _now_ms
        self._cache: dict[Hashable, _Node] = {}
        self._head: _Node | None = None
        self._tail: _Node | None = None

    def get(self, key: Hashable, default: Any = None) -> Any:
        node = self._cache.get(key)
        if node is None:
            return default

        if self._is_expired(node):
            self.delete(key)
            return default

        self._move_to_front(node)
        return node.value

    def set(self, key: Hashable, value: Any) -> None:
        existing = self._cache.get(key)
        if existing is not None:
            existing.value = value
            existing.timestamp = self._clock()
            self._move_to_front(existing)
            return

        node = _Node(key, value, self._clock())
        self._cache[key] = node
        self._add_to_front(node)

        if len(self._cache) > self.max:
            self._evict_lru()

    def has(self, key: Hashable) -> bool:
        node = self._cache.get(key)
        if node is None:
            return False

        if self._is_expired(node):
            self.delete(key)
            return False

        return True

    def __contains__(self, key: Hashable) -> bool:
        return self.has(key)

    def delete(self, key: Hashable) -> bool:
        node = self._cache.pop(key, None)
        if node is None:
            return False
        self._remove_node(node)
        return True

    def clear(self) -> None:
        self._cache.clear()
        self._head = None
        self._tail = None

    @property
    def size(self) -> int:
        return len(self._cache)

    def __len__(self) -> int:
        return len(self._cache)

    def keys(self) -> list[Hashable]:
        return list(self._cache.keys())

    def values(self) -> list[Any]:
        """Live values from most to least recently used."""
        values = []
        current = self._head
        while current is not None:
            if not self._is_expired(current):
                values.append(current.value)
            current = current.next
        return values

    def _is_expired(self, node: _Node) -> bool:
        if not self.ttl:
            return False
        return self._clock() - node.timestamp > self.ttl

    def _move_to_front(self, node: _Node) -> None:
        if node is self._head:
            return
        self._remove_node(node)
        self._add_to_front(node)

    def _add_to_front(self, node: _Node) -> None:
        node.next = self._head
        node.prev = None
        if self._head is not None:
            self._head.prev = node
        self._head = node
        if self._tail is None:
            self._tail = node

    def _remove_node(self, node: _Node) -> None:
        if node.prev is not None:
            node.prev.next = node.next
        else:
            self._head = node.next

        if node.next is not None:
            node.next.prev = node.prev
        else:
            self._tail = node.prev

        node.prev = None
        node.next = None

    def _evict_lru(self) -> None:
        if self._tail is None:
            return
        tail = self._tail
        del self._cache[tail.key]
        self._remove_node(tail)
