"""Partition messages into conversation threads."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from order_desk.core.datetime_utils import ensure_utc
from order_desk.core.models import Message, Thread

from .headers import normalize_message_id, normalize_subject, parse_references
from .union_find import UnionFind

LOGGER = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


def message_sort_key(message: Message) -> tuple[bool, datetime, str]:
    """Order by timestamp ascending, undated messages last, uid as tie-break."""
    sent_at = ensure_utc(message.sent_at)
    return (sent_at is None, sent_at or _EPOCH, message.uid)


class ThreadCorrelator:
    """Union-find based grouping of messages into threads.

    Every message contributes a seed key (first reference, in-reply-to, own
    id, normalized subject, or its storage uid). Seeds are joined when a
    message replies to a known message, when message ids repeat, when the
    first messages of two groups share a meaningful subject, and when a
    caller explicitly merges two threads. The published thread key is the
    seed of the earliest message so keys survive the arrival of new mail.
    """

    def __init__(self, *, subject_min_length: int = 5) -> None:
        """Configure the subject length a merge requires."""
        self._subject_min_length = subject_min_length
        self._forest = UnionFind()
        self._messages: dict[str, Message] = {}
        self._seeds: dict[str, str] = {}

    def correlate(
        self,
        messages: Iterable[Message],
        links: Iterable[tuple[str, str]] = (),
    ) -> list[Thread]:
        """Partition ``messages``; ``links`` are previously accepted merges."""
        self._forest = UnionFind()
        self._messages = {}
        self._seeds = {}

        for message in sorted(messages, key=message_sort_key):
            if message.uid in self._messages:
                LOGGER.debug("Ignoring duplicate message uid %s", message.uid)
                continue
            self._messages[message.uid] = message

        known_ids: set[str] = set()
        for message in self._messages.values():
            seed = self._seed_for(message)
            self._seeds[message.uid] = seed
            self._forest.add(seed)
            own_id = normalize_message_id(message.message_id)
            if own_id:
                known_ids.add(own_id)
                self._forest.union(seed, own_id)

        for message in self._messages.values():
            parent_id = normalize_message_id(message.in_reply_to)
            if parent_id and parent_id in known_ids:
                self._forest.union(self._seeds[message.uid], parent_id)

        self._merge_by_subject()

        for left, right in links:
            if left in self._forest and right in self._forest:
                self._forest.union(left, right)

        return self.partition()

    def merge(self, key_a: str, key_b: str) -> str:
        """Fold two threads together and return the surviving thread key."""
        if key_a not in self._forest or key_b not in self._forest:
            msg = f"Unknown thread key in merge: {key_a!r}, {key_b!r}"
            raise KeyError(msg)
        self._forest.union(key_a, key_b)
        return self.resolve_key(key_a)

    def resolve_key(self, key: str) -> str:
        """Return the current thread key for any key ever seen."""
        if key not in self._forest:
            msg = f"Unknown thread key: {key!r}"
            raise KeyError(msg)
        root = self._forest.find(key)
        members = [
            message
            for uid, message in self._messages.items()
            if self._forest.find(self._seeds[uid]) == root
        ]
        first = min(members, key=message_sort_key)
        return self._seeds[first.uid]

    def partition(self) -> list[Thread]:
        """Return the current threads, sorted by key."""
        grouped: dict[str, list[Message]] = defaultdict(list)
        for uid, message in self._messages.items():
            grouped[self._forest.find(self._seeds[uid])].append(message)

        threads: list[Thread] = []
        for members in grouped.values():
            members.sort(key=message_sort_key)
            threads.append(Thread(key=self._seeds[members[0].uid], messages=members))
        threads.sort(key=lambda thread: thread.key)
        return threads

    def _seed_for(self, message: Message) -> str:
        references = parse_references(message.references)
        if references:
            return references[0]
        parent_id = normalize_message_id(message.in_reply_to)
        if parent_id:
            return parent_id
        own_id = normalize_message_id(message.message_id)
        if own_id:
            return own_id
        subject = normalize_subject(message.subject)
        if len(subject) > self._subject_min_length:
            return f"subject:{subject}"
        return f"message:{message.uid}"

    def _merge_by_subject(self) -> None:
        firsts: dict[str, Message] = {}
        for uid, message in self._messages.items():
            root = self._forest.find(self._seeds[uid])
            current = firsts.get(root)
            if current is None or (
                message_sort_key(message) < message_sort_key(current)
            ):
                firsts[root] = message

        by_subject: dict[str, list[str]] = defaultdict(list)
        for root, first in firsts.items():
            subject = normalize_subject(first.subject)
            if len(subject) > self._subject_min_length:
                by_subject[subject].append(root)

        for roots in by_subject.values():
            for other in roots[1:]:
                self._forest.union(roots[0], other)


def correlate(
    messages: Sequence[Message], *, subject_min_length: int = 5
) -> list[Thread]:
    """Convenience wrapper returning the partition of ``messages``."""
    return ThreadCorrelator(subject_min_length=subject_min_length).correlate(messages)


__all__ = ["ThreadCorrelator", "correlate", "message_sort_key"]
