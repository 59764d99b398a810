"""Lazy service container used to wire collaborators for a run."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceContainer:
    """Dependency container with lazy singleton semantics."""

    def __init__(self) -> None:
        """Initialise container storage."""
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}
        self._order: list[str] = []

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register a factory under a given key."""
        self._factories[key] = factory

    def resolve(self, key: str) -> Any:
        """Resolve a dependency by key, invoking its factory once."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            msg = f"Service '{key}' is not registered"
            raise KeyError(msg)
        instance = self._factories[key](self)
        self._instances[key] = instance
        self._order.append(key)
        return instance

    def close(self) -> None:
        """Close resolved services in reverse creation order."""
        for key in reversed(self._order):
            closer = getattr(self._instances.get(key), "close", None)
            if callable(closer):
                LOGGER.debug("Closing service %s", key)
                closer()
        self._instances.clear()
        self._order.clear()


__all__ = ["ServiceContainer"]
