"""Caches shared by concurrent callers of one `Validator`.

- `TypeCache`: per-type memo with load-or-store semantics. Concurrent first
  writers may both compute, but every caller ends up with the value that
  was stored first.
- `SchemaCache`: compiled JSON Schemas keyed by caller-supplied id with
  least-recently-used eviction. Lookups never take the lock; inserts and
  evictions do.
"""

import logging
import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

__all__ = ["TypeCache", "SchemaCache", "SchemaCacheEntry"]

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TypeCache(Generic[K, V]):
    """Get-or-compute memo keyed by type (or any hashable key)."""

    def __init__(self, name: str):
        self.name = name
        self._entries: dict[K, V] = {}

    def get_or_compute(self, key: K, compute: Callable[[K], V]) -> V:
        """Return the cached value for ``key``, computing and storing it if missing.

        Args:
            key: Cache key, usually a type
            compute: Builds the value from the key

        Returns:
            The stored value (the first one stored if callers raced)
        """
        try:
            return self._entries[key]
        except KeyError:
            pass
        value = compute(key)
        # dict.setdefault is atomic: the first stored value wins
        return self._entries.setdefault(key, value)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


@dataclass
class SchemaCacheEntry:
    """A compiled schema and its last access time in monotonic nanoseconds."""

    schema: Any
    last_access: int


class SchemaCache:
    """Bounded cache of compiled schemas with LRU eviction.

    Example:
        >>> cache = SchemaCache(capacity=2)
        >>> cache.get_or_compile("user", lambda: compile_schema(text))
    """

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._entries: dict[str, SchemaCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, schema_id: str) -> Any | None:
        """Return the compiled schema for ``schema_id`` and refresh its access time."""
        entry = self._entries.get(schema_id)
        if entry is None:
            return None
        # Plain attribute store; hits never need the lock
        entry.last_access = time.monotonic_ns()
        return entry.schema

    def put(self, schema_id: str, schema: Any) -> None:
        """Insert a compiled schema, evicting the least recently used one if full."""
        with self._lock:
            if schema_id not in self._entries and len(self._entries) >= self.capacity:
                self._evict_oldest()
            self._entries[schema_id] = SchemaCacheEntry(schema, time.monotonic_ns())

    def get_or_compile(self, schema_id: str, compile_fn: Callable[[], V]) -> V:
        """Return a cached schema or compile, cache and return a new one.

        An empty ``schema_id`` is never cached. Errors raised by
        ``compile_fn`` propagate and nothing is stored.
        """
        if schema_id:
            cached = self.get(schema_id)
            if cached is not None:
                logger.debug(f"Schema cache hit for '{schema_id}'")
                return cached  # type: ignore[no-any-return]

        schema = compile_fn()
        if schema_id:
            self.put(schema_id, schema)
        return schema

    def _evict_oldest(self) -> None:
        # Caller holds the lock. min() keeps the earliest inserted entry on ties.
        if not self._entries:
            return
        oldest_id = min(self._entries, key=lambda sid: self._entries[sid].last_access)
        del self._entries[oldest_id]
        logger.debug(f"Evicted schema '{oldest_id}' from cache (capacity {self.capacity})")

    def __contains__(self, schema_id: object) -> bool:
        return schema_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
