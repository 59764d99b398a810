"""Retry helper with exponential backoff and jitter."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class RetryPolicy:
    """Bounded retry of a collaborator call.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates on the first attempt.
    """

    stage: str
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    jitter: float = 0.1
    retry_on: tuple[type[Exception], ...] = (Exception,)
    sleep_fn: Callable[[float], None] | None = time.sleep

    def execute(self, func: Callable[..., T], *args: object, **kwargs: object) -> T:
        """Call ``func`` until it succeeds or the attempts are exhausted."""
        attempt = 0
        last_error: Exception | None = None

        while attempt < self.max_attempts:
            attempt += 1
            try:
                return func(*args, **kwargs)
            except self.retry_on as exc:
                last_error = exc
                LOGGER.warning(
                    "%s failed on attempt %d/%d: %s",
                    self.stage,
                    attempt,
                    self.max_attempts,
                    exc,
                )

            if attempt >= self.max_attempts:
                break

            self._backoff(attempt)

        if last_error is None:
            raise ValueError(f"{self.stage}: max_attempts must be at least 1")
        raise last_error

    def _backoff(self, attempt: int) -> None:
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        delay += random.uniform(0, self.jitter)
        LOGGER.debug("%s retry %d scheduled in %.3fs", self.stage, attempt, delay)
        if self.sleep_fn is not None:
            self.sleep_fn(delay)


__all__ = ["RetryPolicy"]
