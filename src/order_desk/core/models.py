"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

INBOUND = "inbound"
OUTBOUND = "outbound"

CATEGORY_CUSTOMER = "customer"
CATEGORY_VENDOR = "vendor"
CATEGORY_OTHER = "other"
CATEGORIES = (CATEGORY_CUSTOMER, CATEGORY_VENDOR, CATEGORY_OTHER)

ITEM_GENERAL = "general"
ITEM_PO_RECEIVED = "po_received"
ITEM_QUOTE_REQUEST = "quote_request"
ITEM_TYPES = (ITEM_GENERAL, ITEM_PO_RECEIVED, ITEM_QUOTE_REQUEST)

STATUS_OPEN = "open"
STATUS_RESOLVED = "resolved"
STATUS_DISMISSED = "dismissed"

RESOLVED_MANUAL = "manual"
RESOLVED_EMAIL_ACTIVITY = "email_activity"
RESOLVED_AUTO = "auto"

TODO_PO_UNACKNOWLEDGED = "po_unacknowledged"
TODO_QUOTE_UNANSWERED = "quote_unanswered"
TODO_GENERAL_UNANSWERED = "general_unanswered"
TODO_VENDOR_FOLLOWUP = "vendor_followup"

ALERT_PO_DETECTED = "po_detected"
ALERT_PO_DETECTED_WITH_SO = "po_detected_with_so"
ALERT_NO_CUSTOMER = "no_qb_customer"
ALERT_SUSPICIOUS = "suspicious_po_email"
ALERT_PO_MISSING_SO = "po_missing_so"
ALERT_SO_SHOULD_BE_CLOSED = "so_should_be_closed"


@dataclass(frozen=True, slots=True)
class AttachmentMeta:
    """Metadata describing a message attachment."""

    filename: str | None
    content_type: str | None
    size: int | None
    content_id: str | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class Message:
    """Immutable message as supplied by the message source."""

    uid: str
    direction: str
    sender: str | None
    recipients: tuple[str, ...]
    subject: str | None
    body: str | None
    sent_at: datetime | None
    message_id: str | None = None
    in_reply_to: str | None = None
    references: tuple[str, ...] = ()
    attachments: tuple[AttachmentMeta, ...] = ()
    sender_name: str | None = None
    ingested_at: datetime | None = None

    @property
    def is_inbound(self) -> bool:
        """Return ``True`` when the message was received from outside."""
        return self.direction == INBOUND

    @property
    def is_outbound(self) -> bool:
        """Return ``True`` when the message was sent by us."""
        return self.direction == OUTBOUND


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class Thread:
    """Conversation: canonical key, ordered messages, derived classification."""

    key: str
    messages: list[Message] = field(default_factory=list)
    category: str | None = None
    item_type: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    needs_response: bool = False
    summary: str | None = None
    needs_review: bool = False
    related_to: str | None = None

    @property
    def first_message(self) -> Message | None:
        """Earliest message, or ``None`` for an empty thread."""
        return self.messages[0] if self.messages else None

    @property
    def last_message(self) -> Message | None:
        """Latest dated message; undated messages are only used as a last resort."""
        dated = [message for message in self.messages if message.sent_at is not None]
        if dated:
            return dated[-1]
        return self.messages[-1] if self.messages else None

    @property
    def last_inbound(self) -> Message | None:
        """Most recent inbound message."""
        for message in reversed(self.messages):
            if message.is_inbound and message.sent_at is not None:
                return message
        for message in reversed(self.messages):
            if message.is_inbound:
                return message
        return None

    @property
    def subject(self) -> str | None:
        """Subject of the first message."""
        first = self.first_message
        return first.subject if first else None

    @property
    def message_ids(self) -> tuple[str, ...]:
        """Storage identifiers of all member messages."""
        return tuple(message.uid for message in self.messages)


@dataclass(slots=True)
class ClassifierVerdict:
    """Fields returned by the external classifier for one thread."""

    thread_key: str
    category: str | None = None
    item_type: str | None = None
    contact_name: str | None = None
    summary: str | None = None
    needs_response: bool | None = None
    related_to: str | None = None


@dataclass(slots=True)
class Correction:
    """Human correction of a classification field."""

    thread_key: str
    field: str
    original_value: str | None
    corrected_value: str | None
    subject: str | None
    created_at: datetime
    id: int | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class Todo:
    """Tracked follow-up obligation for a thread."""

    thread_key: str
    todo_type: str
    status: str
    subject: str | None
    contact_name: str | None
    contact_email: str | None
    detected_at: datetime | None
    created_at: datetime
    updated_at: datetime
    category: str = CATEGORY_CUSTOMER
    item_type: str | None = None
    needs_response: bool = True
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    id: int | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class SyncAlert:
    """One purchase-order to ledger reconciliation case."""

    alert_type: str
    thread_key: str
    detected_at: datetime
    status: str = STATUS_OPEN
    subject: str | None = None
    contact_email: str | None = None
    contact_name: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    po_number: str | None = None
    po_total: float | None = None
    sales_order_id: str | None = None
    sales_order_ref: str | None = None
    estimate_id: str | None = None
    estimate_ref: str | None = None
    invoice_refs: tuple[str, ...] = ()
    escalated_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    last_notified_at: datetime | None = None
    notification_count: int = 0
    id: int | None = None


@dataclass(frozen=True, slots=True)
class LedgerCustomer:
    """Customer record as exposed by the ledger."""

    id: str
    name: str
    emails: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class LedgerLine:
    """Single line item on a ledger document."""

    item: str | None
    quantity: float | None
    amount: float | None


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class LedgerDocument:
    """Sales order, estimate or invoice stored in the ledger."""

    id: str
    kind: str
    customer_id: str
    ref_number: str | None = None
    po_number: str | None = None
    memo: str | None = None
    total: float | None = None
    txn_date: date | None = None
    is_closed: bool = False
    fully_invoiced: bool = False
    linked_ids: tuple[str, ...] = ()
    lines: tuple[LedgerLine, ...] = ()


@dataclass(frozen=True, slots=True)
class CustomerMatch:
    """Result of matching a thread contact against ledger customers."""

    customer: LedgerCustomer
    matched_on: str


@dataclass(frozen=True, slots=True)
class DocumentAnalysis:
    """Structured fields extracted from an attachment."""

    relevant: bool
    document_type: str | None = None
    po_number: str | None = None
    total: float | None = None
    customer_name: str | None = None


@dataclass(slots=True)
class ReconcileReport:
    """Outcome of a todo reconciliation pass."""

    created: list[str] = field(default_factory=list)
    auto_resolved: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AlertReport:
    """Alerts touched by one alert-engine pass."""

    created: list[SyncAlert] = field(default_factory=list)
    escalated: list[SyncAlert] = field(default_factory=list)
    resolved: list[SyncAlert] = field(default_factory=list)

    def extend(self, other: AlertReport) -> None:
        """Fold ``other`` into this report."""
        self.created.extend(other.created)
        self.escalated.extend(other.escalated)
        self.resolved.extend(other.resolved)


@dataclass(slots=True)
class SyncReport:
    """Outcome of correlating and classifying a window of messages."""

    messages: int
    threads: list[Thread]
    todos: ReconcileReport


@dataclass(slots=True)
class AlertJobReport:
    """Outcome of one scheduled alert run."""

    skipped: bool
    window_start: datetime | None = None
    window_end: datetime | None = None
    sync: SyncReport | None = None
    alerts: AlertReport = field(default_factory=AlertReport)
    notified: int = 0
    subject: str | None = None
    body: str | None = None


__all__ = [
    "AlertJobReport",
    "AlertReport",
    "AttachmentMeta",
    "ClassifierVerdict",
    "Correction",
    "CustomerMatch",
    "DocumentAnalysis",
    "LedgerCustomer",
    "LedgerDocument",
    "LedgerLine",
    "Message",
    "ReconcileReport",
    "SyncAlert",
    "SyncReport",
    "Thread",
    "Todo",
]
