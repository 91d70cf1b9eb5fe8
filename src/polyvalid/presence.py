"""Presence tracking for partial (PATCH) validation.

`compute_presence` turns a raw JSON body into a `PresenceMap`: the set of
dot-delimited paths the client actually sent. Both the tag and the schema
strategies use it in partial mode to validate exactly the fields a request
touched.

Example:
    >>> pm = compute_presence(b'{"user": {"name": "Alice", "age": 30}}')
    >>> sorted(pm)
    ['user', 'user.age', 'user.name']
    >>> pm.leaf_paths()
    ['user.age', 'user.name']
"""

import json
import logging
from collections.abc import Iterable, Iterator
from typing import Any

logger = logging.getLogger(__name__)

__all__ = ["MAX_RECURSION_DEPTH", "PresenceMap", "compute_presence"]

# Nesting depth past which presence marking and pruning stop descending.
# Deeper keys are omitted, not reported as errors.
MAX_RECURSION_DEPTH = 100


class PresenceMap:
    """Set of dot-delimited paths present in a JSON payload.

    Every ancestor of a recorded path is recorded independently when built
    by `compute_presence`, so ``"items.2.price"`` comes with ``"items"``
    and ``"items.2"``.
    """

    __slots__ = ("_paths",)

    def __init__(self, paths: Iterable[str] = ()):
        self._paths: frozenset[str] = frozenset(paths)

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PresenceMap):
            return self._paths == other._paths
        if isinstance(other, set | frozenset):
            return self._paths == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._paths)

    def __repr__(self) -> str:
        return f"PresenceMap({sorted(self._paths)!r})"

    def has(self, path: str) -> bool:
        """Return True if exactly ``path`` was recorded."""
        return path in self._paths

    def has_prefix(self, prefix: str) -> bool:
        """Return True if ``prefix`` or any path below it was recorded.

        An exact match counts as a prefix match. Matching is by whole
        segments: ``"addr"`` does not match ``"address"``.
        """
        if prefix in self._paths:
            return True
        dotted = prefix + "."
        return any(path.startswith(dotted) for path in self._paths)

    def leaf_paths(self) -> list[str]:
        """Return the recorded paths that have no recorded descendants.

        A path is not a leaf iff another path starts with ``path + "."``.
        The result is sorted.
        """
        ancestors = set()
        for path in self._paths:
            end = path.rfind(".")
            while end > 0:
                ancestors.add(path[:end])
                end = path.rfind(".", 0, end)
        return sorted(self._paths - ancestors)


def compute_presence(raw: bytes | bytearray | str) -> PresenceMap:
    """Build a `PresenceMap` from a raw JSON document.

    One path is recorded for every object key and every array index at
    every depth. Nesting deeper than `MAX_RECURSION_DEPTH` is skipped
    silently. A scalar document produces an empty map.

    Args:
        raw: JSON text or bytes

    Returns:
        The presence map

    Raises:
        json.JSONDecodeError: If ``raw`` is not valid JSON
        ValueError: If ``raw`` is nested too deeply for the JSON decoder
    """
    try:
        data = json.loads(raw)
    except RecursionError as e:
        raise ValueError("JSON document is nested too deeply") from e
    paths: set[str] = set()
    _mark_presence(data, "", paths, 0)
    return PresenceMap(paths)


def _mark_presence(data: Any, prefix: str, paths: set[str], depth: int) -> None:
    if depth > MAX_RECURSION_DEPTH:
        logger.debug(f"Presence depth limit reached at '{prefix}'")
        return

    if isinstance(data, dict):
        children: Iterable[tuple[str, Any]] = ((str(k), v) for k, v in data.items())
    elif isinstance(data, list):
        children = ((str(i), v) for i, v in enumerate(data))
    else:
        return

    for key, value in children:
        path = f"{prefix}.{key}" if prefix else key
        paths.add(path)
        _mark_presence(value, path, paths, depth + 1)
