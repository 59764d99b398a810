"""Batch supervisor: batched calls with per-item fallback."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class Outcome(Generic[R]):
    """Result of processing one item: a value or the error that prevented it."""

    value: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        """Return ``True`` when a value was produced."""
        return self.error is None and self.value is not None


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    """Split ``items`` into consecutive slices of at most ``size``."""
    if size <= 0:
        raise ValueError("size must be positive")
    return [items[index : index + size] for index in range(0, len(items), size)]


# pylint: disable=too-many-arguments
def run_batched(
    items: Sequence[T],
    *,
    key: Callable[[T], str],
    batch_size: int,
    batch_fn: Callable[[Sequence[T]], Mapping[str, R]],
    single_fn: Callable[[T], R | None],
    recoverable: tuple[type[Exception], ...],
) -> dict[str, Outcome[R]]:
    """Process ``items`` in batches, falling back to one call per item.

    A batch that raises one of ``recoverable`` is retried item by item once;
    items a successful batch left unanswered get the same treatment. Every
    item ends up with an :class:`Outcome`; nothing in ``recoverable`` escapes.
    """
    outcomes: dict[str, Outcome[R]] = {}
    for batch in chunked(items, batch_size):
        pending: list[T] = []
        try:
            answers = batch_fn(batch)
        except recoverable as exc:
            LOGGER.warning(
                "Batch of %d failed, retrying individually: %s", len(batch), exc
            )
            pending = list(batch)
        else:
            for item in batch:
                item_key = key(item)
                value = answers.get(item_key)
                if value is None:
                    pending.append(item)
                else:
                    outcomes[item_key] = Outcome(value=value)

        for item in pending:
            item_key = key(item)
            try:
                value = single_fn(item)
            except recoverable as exc:
                LOGGER.warning("Individual call failed for %s: %s", item_key, exc)
                outcomes[item_key] = Outcome(error=exc)
                continue
            outcomes[item_key] = Outcome(value=value)
    return outcomes


__all__ = ["Outcome", "chunked", "run_batched"]
