"""Disjoint-set forest over string keys."""

from __future__ import annotations

import logging
from collections import defaultdict

LOGGER = logging.getLogger(__name__)


class UnionFind:
    """Union-find whose representative is always the smallest key of a set.

    Because the winner of every union is the lexicographically smaller root,
    the representative of a set does not depend on the order in which unions
    were applied.
    """

    def __init__(self) -> None:
        """Start with an empty forest."""
        self._parent: dict[str, str] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._parent

    def __len__(self) -> int:
        return len(self._parent)

    def add(self, key: str) -> None:
        """Register ``key`` as a singleton set if it is new."""
        self._parent.setdefault(key, key)

    def find(self, key: str) -> str:
        """Return the representative of ``key``, compressing the path."""
        self.add(key)
        path: list[str] = []
        seen: set[str] = set()
        cursor = key
        while self._parent[cursor] != cursor:
            if cursor in seen:
                # Corrupted forest; re-root on the smallest key in the loop.
                cursor = min(seen)
                self._parent[cursor] = cursor
                LOGGER.warning("Broke parent cycle while resolving %s", key)
                break
            seen.add(cursor)
            path.append(cursor)
            cursor = self._parent[cursor]
        for node in path:
            self._parent[node] = cursor
        return cursor

    def union(self, left: str, right: str) -> str:
        """Merge the sets holding ``left`` and ``right``; return the new root."""
        left_root = self.find(left)
        right_root = self.find(right)
        if left_root == right_root:
            return left_root
        winner, loser = sorted((left_root, right_root))
        self._parent[loser] = winner
        return winner

    def connected(self, left: str, right: str) -> bool:
        """Return ``True`` when both keys share a set."""
        return self.find(left) == self.find(right)

    def groups(self) -> dict[str, list[str]]:
        """Return every set keyed by its representative, members sorted."""
        collected: dict[str, list[str]] = defaultdict(list)
        for key in list(self._parent):
            collected[self.find(key)].append(key)
        return {root: sorted(members) for root, members in collected.items()}


__all__ = ["UnionFind"]
