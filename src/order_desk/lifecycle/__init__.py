"""Follow-up todo lifecycle."""

from .todos import TodoLifecycleManager, TodoTransitionError, derive_todo_type

__all__ = ["TodoLifecycleManager", "TodoTransitionError", "derive_todo_type"]
