"""Derive and track follow-up todos from classified threads."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime

from order_desk.core.datetime_utils import ensure_utc, to_utc, utcnow
from order_desk.core.interfaces import TodoStore
from order_desk.core.models import (
    CATEGORIES,
    CATEGORY_CUSTOMER,
    ITEM_GENERAL,
    ITEM_PO_RECEIVED,
    ITEM_QUOTE_REQUEST,
    ITEM_TYPES,
    RESOLVED_EMAIL_ACTIVITY,
    RESOLVED_MANUAL,
    STATUS_DISMISSED,
    STATUS_OPEN,
    STATUS_RESOLVED,
    TODO_GENERAL_UNANSWERED,
    TODO_PO_UNACKNOWLEDGED,
    TODO_QUOTE_UNANSWERED,
    TODO_VENDOR_FOLLOWUP,
    Correction,
    ReconcileReport,
    Thread,
    Todo,
)

LOGGER = logging.getLogger(__name__)

CORRECTABLE_FIELDS = ("category", "item_type", "needs_response", "contact_name")
_TRUE_WORDS = frozenset({"true", "yes", "1"})
_FALSE_WORDS = frozenset({"false", "no", "0"})


class TodoTransitionError(ValueError):
    """Raised when a manual transition is not legal from the current status."""


def derive_todo_type(category: str | None, item_type: str | None) -> str:
    """Map a thread classification onto a todo type."""
    if category is not None and category != CATEGORY_CUSTOMER:
        return TODO_VENDOR_FOLLOWUP
    if item_type == ITEM_PO_RECEIVED:
        return TODO_PO_UNACKNOWLEDGED
    if item_type == ITEM_QUOTE_REQUEST:
        return TODO_QUOTE_UNANSWERED
    return TODO_GENERAL_UNANSWERED


def wants_todo(thread: Thread) -> bool:
    """Return ``True`` when the thread owes the customer a reply."""
    last = thread.last_message
    return (
        thread.category == CATEGORY_CUSTOMER
        and last is not None
        and last.is_inbound
        and thread.needs_response
    )


class TodoLifecycleManager:
    """Create, auto-resolve and manually transition todos.

    Todos move from ``open`` to ``resolved`` or ``dismissed`` and never back
    on their own. Dismissals are remembered per thread so a dismissed thread
    does not produce a fresh todo until it is explicitly reopened.
    """

    def __init__(
        self, store: TodoStore, *, clock: Callable[[], datetime] = utcnow
    ) -> None:
        """Bind the manager to its store and clock."""
        self._store = store
        self._clock = clock

    def reconcile(self, threads: Iterable[Thread]) -> ReconcileReport:
        """Bring stored todos in line with freshly classified threads."""
        report = ReconcileReport()
        for thread in threads:
            existing = self._store.fetch_todo(thread.key)
            if existing is None:
                if self._create(thread):
                    report.created.append(thread.key)
                continue
            if existing.status != STATUS_OPEN:
                continue
            if _replied_since(thread, existing.detected_at):
                self._close(existing, STATUS_RESOLVED, RESOLVED_EMAIL_ACTIVITY)
                LOGGER.info("Todo for thread %s resolved by reply", thread.key)
                report.auto_resolved.append(thread.key)
                continue
            if self._refresh(existing, thread):
                report.updated.append(thread.key)
        LOGGER.info(
            "Todo reconcile: %d created, %d auto-resolved, %d updated",
            len(report.created),
            len(report.auto_resolved),
            len(report.updated),
        )
        return report

    def resolve(self, thread_key: str) -> Todo:
        """Mark an open todo as handled by a person."""
        todo = self._require_open(thread_key)
        return self._close(todo, STATUS_RESOLVED, RESOLVED_MANUAL)

    def dismiss(self, thread_key: str) -> Todo:
        """Dismiss an open todo and stop the thread from producing new ones."""
        todo = self._require_open(thread_key)
        self._store.record_dismissal(thread_key, self._clock())
        return self._close(todo, STATUS_DISMISSED, RESOLVED_MANUAL)

    def reopen(self, thread_key: str) -> Todo:
        """Reopen a closed todo and forget any dismissal of its thread."""
        todo = self._store.fetch_todo(thread_key)
        if todo is None:
            raise KeyError(thread_key)
        self._store.clear_dismissal(thread_key)
        if todo.status == STATUS_OPEN:
            return todo
        todo.status = STATUS_OPEN
        todo.resolved_by = None
        todo.resolved_at = None
        todo.updated_at = self._clock()
        self._store.update_todo(todo)
        return todo

    def record_corrections(
        self, thread_key: str, changes: Mapping[str, str | None]
    ) -> list[Correction]:
        """Store human corrections of a todo's classification fields."""
        todo = self._store.fetch_todo(thread_key)
        if todo is None:
            raise KeyError(thread_key)
        unknown = set(changes) - set(CORRECTABLE_FIELDS)
        if unknown:
            msg = f"Fields cannot be corrected: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        wanted = _normalize_changes(changes)

        now = self._clock()
        current = _todo_fields(todo)
        recorded: list[Correction] = []
        for field_name in CORRECTABLE_FIELDS:
            if field_name not in wanted:
                continue
            new_value = wanted[field_name]
            if new_value == current[field_name]:
                continue
            recorded.append(
                self._store.add_correction(
                    Correction(
                        thread_key=thread_key,
                        field=field_name,
                        original_value=current[field_name],
                        corrected_value=new_value,
                        subject=todo.subject,
                        created_at=now,
                    )
                )
            )

        if not recorded:
            return recorded
        if "contact_name" in wanted:
            todo.contact_name = wanted["contact_name"]
        todo.category = wanted.get("category") or todo.category
        todo.item_type = wanted.get("item_type") or todo.item_type
        if "needs_response" in wanted:
            todo.needs_response = wanted["needs_response"] == "true"
        todo.todo_type = derive_todo_type(todo.category, todo.item_type)
        todo.updated_at = now
        self._store.update_todo(todo)
        return recorded

    def _create(self, thread: Thread) -> bool:
        if not wants_todo(thread):
            return False
        if self._store.is_dismissed(thread.key):
            LOGGER.debug("Thread %s was dismissed; no todo created", thread.key)
            return False
        last_inbound = thread.last_inbound
        now = self._clock()
        todo = Todo(
            thread_key=thread.key,
            todo_type=derive_todo_type(thread.category, thread.item_type),
            status=STATUS_OPEN,
            subject=thread.subject,
            contact_name=thread.contact_name,
            contact_email=thread.contact_email,
            detected_at=last_inbound.sent_at if last_inbound else None,
            created_at=now,
            updated_at=now,
            category=thread.category or CATEGORY_CUSTOMER,
            item_type=thread.item_type or ITEM_GENERAL,
            needs_response=thread.needs_response,
        )
        return self._store.insert_todo(todo)

    def _refresh(self, todo: Todo, thread: Thread) -> bool:
        todo_type = derive_todo_type(thread.category, thread.item_type)
        last_inbound = thread.last_inbound
        detected_at = todo.detected_at
        if detected_at is None and last_inbound is not None:
            detected_at = last_inbound.sent_at
        contact_name = thread.contact_name or todo.contact_name
        contact_email = thread.contact_email or todo.contact_email
        category = thread.category or todo.category
        item_type = thread.item_type or todo.item_type
        if (
            todo.todo_type == todo_type
            and todo.category == category
            and todo.item_type == item_type
            and todo.needs_response == thread.needs_response
            and todo.detected_at == detected_at
            and todo.contact_name == contact_name
            and todo.contact_email == contact_email
        ):
            return False
        todo.todo_type = todo_type
        todo.detected_at = detected_at
        todo.contact_name = contact_name
        todo.contact_email = contact_email
        todo.category = category
        todo.item_type = item_type
        todo.needs_response = thread.needs_response
        todo.updated_at = self._clock()
        self._store.update_todo(todo)
        return True

    def _close(self, todo: Todo, status: str, resolved_by: str) -> Todo:
        now = self._clock()
        todo.status = status
        todo.resolved_by = resolved_by
        todo.resolved_at = now
        todo.updated_at = now
        self._store.update_todo(todo)
        return todo

    def _require_open(self, thread_key: str) -> Todo:
        todo = self._store.fetch_todo(thread_key)
        if todo is None:
            raise KeyError(thread_key)
        if todo.status != STATUS_OPEN:
            msg = f"Todo for {thread_key} is already {todo.status}"
            raise TodoTransitionError(msg)
        return todo


def _replied_since(thread: Thread, detected_at: datetime | None) -> bool:
    """Return ``True`` when any outbound message follows ``detected_at``."""
    outbound = [message for message in thread.messages if message.is_outbound]
    if not outbound:
        return False
    if detected_at is None:
        return True
    cutoff = to_utc(detected_at)
    for message in outbound:
        sent_at = ensure_utc(message.sent_at)
        if sent_at is None or sent_at > cutoff:
            return True
    return False


def _todo_fields(todo: Todo) -> dict[str, str | None]:
    """Return the stored classification of a todo as correction values."""
    return {
        "category": todo.category,
        "item_type": todo.item_type,
        "needs_response": _flag_text(todo.needs_response),
        "contact_name": todo.contact_name,
    }


def _flag_text(value: bool) -> str:
    return "true" if value else "false"


def _normalize_changes(changes: Mapping[str, str | None]) -> dict[str, str | None]:
    """Validate corrected values and spell flags as ``true``/``false``."""
    wanted = dict(changes)
    if "category" in wanted and wanted["category"] not in CATEGORIES:
        raise ValueError(f"Unknown category: {wanted['category']}")
    if "item_type" in wanted and wanted["item_type"] not in ITEM_TYPES:
        raise ValueError(f"Unknown item type: {wanted['item_type']}")
    if "needs_response" in wanted:
        raw = (wanted["needs_response"] or "").strip().lower()
        if raw in _TRUE_WORDS:
            wanted["needs_response"] = "true"
        elif raw in _FALSE_WORDS:
            wanted["needs_response"] = "false"
        else:
            raise ValueError(f"needs_response must be true or false, got {raw!r}")
    return wanted


__all__ = [
    "CORRECTABLE_FIELDS",
    "TodoLifecycleManager",
    "TodoTransitionError",
    "derive_todo_type",
    "wants_todo",
]
