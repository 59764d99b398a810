"""Protocol interfaces for decoupling components from their collaborators."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from .models import (
    AttachmentMeta,
    ClassifierVerdict,
    Correction,
    DocumentAnalysis,
    LedgerCustomer,
    LedgerDocument,
    Message,
    SyncAlert,
    Thread,
    Todo,
)


class ClassifierError(RuntimeError):
    """Raised when the external classifier cannot produce a verdict."""


class DocumentAnalysisError(RuntimeError):
    """Raised when an attachment cannot be analysed."""


class LedgerError(RuntimeError):
    """Raised when the ledger cannot be reached or answers unexpectedly."""


class NotificationError(RuntimeError):
    """Raised when a summary could not be delivered."""


class MessageSource(Protocol):
    """Read-only supplier of messages for a time window."""

    def fetch_messages(self, start: datetime, end: datetime) -> Sequence[Message]:
        """Return messages whose timestamp falls in ``[start, end)``."""
        raise NotImplementedError


class ThreadClassifier(Protocol):
    """External classifier assigning business intent to threads."""

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing model/provider."""
        raise NotImplementedError

    def classify_batch(
        self, threads: Sequence[Thread], corrections: Sequence[Correction]
    ) -> dict[str, ClassifierVerdict]:
        """Return verdicts keyed by thread key; raise ``ClassifierError`` on failure."""
        raise NotImplementedError


class DocumentAnalyzer(Protocol):
    """Extracts structured fields from an attachment."""

    def analyze(self, message: Message, attachment: AttachmentMeta) -> DocumentAnalysis:
        """Return extracted fields or a ``relevant=False`` result."""
        raise NotImplementedError


class LedgerClient(Protocol):
    """Lookups against the accounting ledger."""

    def list_customers(self) -> Sequence[LedgerCustomer]:
        """Return every active customer."""
        raise NotImplementedError

    def list_documents(
        self, customer_id: str, kind: str, *, open_only: bool = False
    ) -> Sequence[LedgerDocument]:
        """Return documents of ``kind`` (sales_order, estimate, invoice)."""
        raise NotImplementedError


class NotificationSink(Protocol):
    """Delivers a rendered summary to the operator."""

    def send(self, subject: str, body: str) -> None:
        """Deliver the summary; raise ``NotificationError`` on failure."""
        raise NotImplementedError


class TodoStore(Protocol):
    """Persistence for todos, dismissals and corrections."""

    def fetch_todo(self, thread_key: str) -> Todo | None:
        """Return the todo stored for ``thread_key``."""
        raise NotImplementedError

    def insert_todo(self, todo: Todo) -> bool:
        """Insert ``todo`` unless its thread has one; return ``True`` if inserted."""
        raise NotImplementedError

    def update_todo(self, todo: Todo) -> None:
        """Persist mutable todo fields."""
        raise NotImplementedError

    def list_todos(self, *, status: str | None = None) -> list[Todo]:
        """Return todos optionally filtered by status."""
        raise NotImplementedError

    def is_dismissed(self, thread_key: str) -> bool:
        """Return ``True`` when the thread was dismissed by a user."""
        raise NotImplementedError

    def record_dismissal(self, thread_key: str, dismissed_at: datetime) -> None:
        """Remember that ``thread_key`` must not produce new todos."""
        raise NotImplementedError

    def clear_dismissal(self, thread_key: str) -> None:
        """Forget a dismissal so the thread may produce todos again."""
        raise NotImplementedError

    def add_correction(self, correction: Correction) -> Correction:
        """Store a human correction."""
        raise NotImplementedError

    def list_recent_corrections(self, limit: int) -> list[Correction]:
        """Return the most recent corrections, newest first."""
        raise NotImplementedError


class AlertStore(Protocol):
    """Persistence for sync alerts."""

    def insert_alert(self, alert: SyncAlert) -> SyncAlert | None:
        """Insert ``alert`` unless an open one shares its dedup key."""
        raise NotImplementedError

    def update_alert(self, alert: SyncAlert) -> bool:
        """Persist mutable alert fields while the stored alert is still open."""
        raise NotImplementedError

    def fetch_alert(self, alert_id: int) -> SyncAlert | None:
        """Return a single alert by id."""
        raise NotImplementedError

    def list_alerts(
        self,
        *,
        status: str | None = None,
        alert_types: Sequence[str] | None = None,
        customer_id: str | None = None,
    ) -> list[SyncAlert]:
        """Return alerts matching the optional filters."""
        raise NotImplementedError

    def list_alerts_due(self, cutoff: datetime) -> list[SyncAlert]:
        """Return open, unescalated po_detected alerts detected by ``cutoff``."""
        raise NotImplementedError

    def alert_keys(self) -> set[str]:
        """Return thread keys that already have an alert of any status."""
        raise NotImplementedError

    def mark_alerts_notified(self, alert_ids: Sequence[int], when: datetime) -> None:
        """Stamp alerts as included in a delivered summary."""
        raise NotImplementedError


__all__ = [
    "AlertStore",
    "ClassifierError",
    "DocumentAnalysisError",
    "DocumentAnalyzer",
    "LedgerClient",
    "LedgerError",
    "MessageSource",
    "NotificationError",
    "NotificationSink",
    "ThreadClassifier",
    "TodoStore",
]
