"""SQLite-backed repository for messages, threads, todos and alerts."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from datetime import datetime, timedelta
from pathlib import Path
from types import TracebackType

from order_desk.core.config import StorageSettings
from order_desk.core.datetime_utils import parse_datetime, serialize_datetime, utcnow
from order_desk.core.models import (
    ALERT_PO_DETECTED,
    OUTBOUND,
    STATUS_OPEN,
    AttachmentMeta,
    Correction,
    DocumentAnalysis,
    Message,
    SyncAlert,
    Thread,
    Todo,
)
from order_desk.correlation.headers import domain_of

LOGGER = logging.getLogger(__name__)

_ALERT_COLUMNS = (
    "alert_type",
    "status",
    "thread_key",
    "subject",
    "contact_email",
    "contact_name",
    "customer_id",
    "customer_name",
    "po_number",
    "po_total",
    "sales_order_id",
    "sales_order_ref",
    "estimate_id",
    "estimate_ref",
    "invoice_refs",
    "detected_at",
    "escalated_at",
    "resolved_at",
    "resolved_by",
    "last_notified_at",
    "notification_count",
)


# pylint: disable=too-many-public-methods
class SqliteRepository:
    """Persist the order desk state using SQLite."""

    def __init__(self, settings: StorageSettings) -> None:
        """Open the database and apply migrations."""
        self._settings = settings
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(
            db_path,
            timeout=settings.busy_timeout_seconds,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._configure_connection()
        self._apply_migrations()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteRepository:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # Messages ----------------------------------------------------------------
    def persist_message(self, message: Message) -> None:
        """Insert or update the stored record for ``message``."""
        if not message.uid:
            raise ValueError("Message uid is required")
        LOGGER.debug("Persisting message %s", message.uid)
        ingested_at = message.ingested_at or utcnow()
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO messages (
                    uid, direction, message_id, in_reply_to, refs, sender,
                    sender_name, recipients, subject, body, attachments,
                    sent_at, ingested_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(uid) DO UPDATE SET
                    direction=excluded.direction,
                    message_id=excluded.message_id,
                    in_reply_to=excluded.in_reply_to,
                    refs=excluded.refs,
                    sender=excluded.sender,
                    sender_name=excluded.sender_name,
                    recipients=excluded.recipients,
                    subject=excluded.subject,
                    body=excluded.body,
                    attachments=excluded.attachments,
                    sent_at=excluded.sent_at
                """,
                (
                    message.uid,
                    message.direction,
                    message.message_id,
                    message.in_reply_to,
                    json.dumps(list(message.references)),
                    message.sender,
                    message.sender_name,
                    json.dumps(list(message.recipients)),
                    message.subject,
                    message.body,
                    json.dumps([_attachment_to_dict(a) for a in message.attachments]),
                    serialize_datetime(message.sent_at),
                    serialize_datetime(ingested_at),
                ),
            )

    def fetch_messages(self, start: datetime, end: datetime) -> list[Message]:
        """Return messages timestamped in ``[start, end)``.

        Undated messages are placed by the time they were ingested.
        """
        cur = self._connection.execute(
            """
            SELECT * FROM messages
            WHERE COALESCE(sent_at, ingested_at) >= ?
              AND COALESCE(sent_at, ingested_at) < ?
            ORDER BY uid
            """,
            (serialize_datetime(start), serialize_datetime(end)),
        )
        return [_row_to_message(row) for row in cur.fetchall()]

    def fetch_message(self, uid: str) -> Message | None:
        """Return a single stored message."""
        row = self._connection.execute(
            "SELECT * FROM messages WHERE uid = ?", (uid,)
        ).fetchone()
        return _row_to_message(row) if row else None

    def outbound_recipient_domains(self) -> set[str]:
        """Return every domain we have sent mail to."""
        domains: set[str] = set()
        cur = self._connection.execute(
            "SELECT recipients FROM messages WHERE direction = ?", (OUTBOUND,)
        )
        for row in cur.fetchall():
            for recipient in _load_json_list(row["recipients"]):
                domain = domain_of(str(recipient))
                if domain:
                    domains.add(domain)
        return domains

    # Threads -----------------------------------------------------------------
    def save_thread(self, thread: Thread) -> None:
        """Store the classification of ``thread`` and its membership."""
        last = thread.last_message
        now = serialize_datetime(utcnow())
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO threads (
                    thread_key, subject, category, item_type, contact_name,
                    contact_email, needs_response, needs_review, summary,
                    message_count, last_message_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(thread_key) DO UPDATE SET
                    subject=excluded.subject,
                    category=excluded.category,
                    item_type=excluded.item_type,
                    contact_name=excluded.contact_name,
                    contact_email=excluded.contact_email,
                    needs_response=excluded.needs_response,
                    needs_review=excluded.needs_review,
                    summary=excluded.summary,
                    message_count=excluded.message_count,
                    last_message_at=excluded.last_message_at,
                    updated_at=excluded.updated_at
                """,
                (
                    thread.key,
                    thread.subject,
                    thread.category,
                    thread.item_type,
                    thread.contact_name,
                    thread.contact_email,
                    int(thread.needs_response),
                    int(thread.needs_review),
                    thread.summary,
                    len(thread.messages),
                    serialize_datetime(last.sent_at if last else None),
                    now,
                ),
            )
            self._connection.execute(
                "DELETE FROM thread_messages WHERE thread_key = ?", (thread.key,)
            )
            self._connection.executemany(
                "DELETE FROM thread_messages WHERE message_uid = ?",
                [(message.uid,) for message in thread.messages],
            )
            self._connection.executemany(
                """
                INSERT OR REPLACE INTO thread_messages (thread_key, message_uid)
                SELECT ?, uid FROM messages WHERE uid = ?
                """,
                [(thread.key, message.uid) for message in thread.messages],
            )
            self._connection.execute(
                """
                DELETE FROM threads
                WHERE thread_key <> ?
                  AND thread_key NOT IN (SELECT thread_key FROM thread_messages)
                """,
                (thread.key,),
            )

    def fetch_thread(self, thread_key: str) -> Thread | None:
        """Return the stored classification and messages of a thread."""
        row = self._connection.execute(
            "SELECT * FROM threads WHERE thread_key = ?", (thread_key,)
        ).fetchone()
        if row is None:
            return None
        cur = self._connection.execute(
            """
            SELECT m.* FROM messages AS m
            JOIN thread_messages AS tm ON tm.message_uid = m.uid
            WHERE tm.thread_key = ?
            ORDER BY m.sent_at IS NULL, m.sent_at, m.uid
            """,
            (thread_key,),
        )
        return Thread(
            key=row["thread_key"],
            messages=[_row_to_message(item) for item in cur.fetchall()],
            category=row["category"],
            item_type=row["item_type"],
            contact_name=row["contact_name"],
            contact_email=row["contact_email"],
            needs_response=bool(row["needs_response"]),
            summary=row["summary"],
            needs_review=bool(row["needs_review"]),
        )

    def save_thread_link(self, left_key: str, right_key: str) -> None:
        """Remember that two thread keys belong to one conversation."""
        left, right = sorted((left_key, right_key))
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO thread_links (left_key, right_key, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(left_key, right_key) DO NOTHING
                """,
                (left, right, serialize_datetime(utcnow())),
            )

    def list_thread_links(self) -> list[tuple[str, str]]:
        """Return every remembered merge."""
        cur = self._connection.execute(
            "SELECT left_key, right_key FROM thread_links ORDER BY left_key, right_key"
        )
        return [(row["left_key"], row["right_key"]) for row in cur.fetchall()]

    # Todos -------------------------------------------------------------------
    def fetch_todo(self, thread_key: str) -> Todo | None:
        """Return the todo stored for ``thread_key``."""
        row = self._connection.execute(
            "SELECT * FROM todos WHERE thread_key = ?", (thread_key,)
        ).fetchone()
        return _row_to_todo(row) if row else None

    def insert_todo(self, todo: Todo) -> bool:
        """Insert ``todo`` unless its thread already has one."""
        with self._connection:
            cur = self._connection.execute(
                """
                INSERT INTO todos (
                    thread_key, todo_type, status, subject, contact_name,
                    contact_email, detected_at, created_at, updated_at,
                    resolved_by, resolved_at, category, item_type,
                    needs_response
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(thread_key) DO NOTHING
                """,
                (
                    todo.thread_key,
                    todo.todo_type,
                    todo.status,
                    todo.subject,
                    todo.contact_name,
                    todo.contact_email,
                    serialize_datetime(todo.detected_at),
                    serialize_datetime(todo.created_at),
                    serialize_datetime(todo.updated_at),
                    todo.resolved_by,
                    serialize_datetime(todo.resolved_at),
                    todo.category,
                    todo.item_type,
                    int(todo.needs_response),
                ),
            )
        inserted = cur.rowcount == 1
        if inserted:
            todo.id = cur.lastrowid
        return inserted

    def update_todo(self, todo: Todo) -> None:
        """Persist the mutable fields of ``todo``."""
        with self._connection:
            self._connection.execute(
                """
                UPDATE todos SET
                    todo_type = ?, status = ?, subject = ?, contact_name = ?,
                    contact_email = ?, detected_at = ?, updated_at = ?,
                    resolved_by = ?, resolved_at = ?, category = ?, item_type = ?,
                    needs_response = ?
                WHERE thread_key = ?
                """,
                (
                    todo.todo_type,
                    todo.status,
                    todo.subject,
                    todo.contact_name,
                    todo.contact_email,
                    serialize_datetime(todo.detected_at),
                    serialize_datetime(todo.updated_at),
                    todo.resolved_by,
                    serialize_datetime(todo.resolved_at),
                    todo.category,
                    todo.item_type,
                    int(todo.needs_response),
                    todo.thread_key,
                ),
            )

    def list_todos(self, *, status: str | None = None) -> list[Todo]:
        """Return todos, newest detection first, optionally filtered by status."""
        query = "SELECT * FROM todos"
        params: list[object] = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY detected_at IS NULL, detected_at DESC, id DESC"
        cur = self._connection.execute(query, params)
        return [_row_to_todo(row) for row in cur.fetchall()]

    def is_dismissed(self, thread_key: str) -> bool:
        """Return ``True`` when the thread was dismissed by a user."""
        row = self._connection.execute(
            "SELECT 1 FROM dismissed_threads WHERE thread_key = ?", (thread_key,)
        ).fetchone()
        return row is not None

    def record_dismissal(self, thread_key: str, dismissed_at: datetime) -> None:
        """Remember that ``thread_key`` must not produce new todos."""
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO dismissed_threads (thread_key, dismissed_at)
                VALUES (?, ?)
                ON CONFLICT(thread_key) DO NOTHING
                """,
                (thread_key, serialize_datetime(dismissed_at)),
            )

    def clear_dismissal(self, thread_key: str) -> None:
        """Forget a dismissal."""
        with self._connection:
            self._connection.execute(
                "DELETE FROM dismissed_threads WHERE thread_key = ?", (thread_key,)
            )

    def add_correction(self, correction: Correction) -> Correction:
        """Store a human correction and return it with its id."""
        with self._connection:
            cur = self._connection.execute(
                """
                INSERT INTO ai_corrections (
                    thread_key, field, original_value, corrected_value,
                    subject, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    correction.thread_key,
                    correction.field,
                    correction.original_value,
                    correction.corrected_value,
                    correction.subject,
                    serialize_datetime(correction.created_at),
                ),
            )
        correction.id = cur.lastrowid
        return correction

    def list_recent_corrections(self, limit: int) -> list[Correction]:
        """Return the most recent corrections, newest first."""
        cur = self._connection.execute(
            "SELECT * FROM ai_corrections ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [
            Correction(
                id=row["id"],
                thread_key=row["thread_key"],
                field=row["field"],
                original_value=row["original_value"],
                corrected_value=row["corrected_value"],
                subject=row["subject"],
                created_at=_required_datetime(row["created_at"]),
            )
            for row in cur.fetchall()
        ]

    # Alerts ------------------------------------------------------------------
    def insert_alert(self, alert: SyncAlert) -> SyncAlert | None:
        """Insert ``alert`` unless an open alert already holds its dedup key."""
        placeholders = ", ".join("?" for _ in _ALERT_COLUMNS)
        with self._connection:
            cur = self._connection.execute(
                f"""
                INSERT INTO sync_alerts ({", ".join(_ALERT_COLUMNS)})
                VALUES ({placeholders})
                ON CONFLICT DO NOTHING
                """,
                _alert_values(alert),
            )
        if cur.rowcount != 1:
            LOGGER.debug(
                "Open %s alert already exists for %s",
                alert.alert_type,
                alert.thread_key,
            )
            return None
        alert.id = cur.lastrowid
        return alert

    def update_alert(self, alert: SyncAlert) -> bool:
        """Persist ``alert`` if the stored row is still open.

        Returns ``False`` when another writer already closed the alert.
        """
        if alert.id is None:
            raise ValueError("Alert id is required for updates")
        assignments = ", ".join(f"{column} = ?" for column in _ALERT_COLUMNS)
        with self._connection:
            cur = self._connection.execute(
                f"UPDATE sync_alerts SET {assignments} WHERE id = ? AND status = ?",
                (*_alert_values(alert), alert.id, STATUS_OPEN),
            )
        return cur.rowcount == 1

    def fetch_alert(self, alert_id: int) -> SyncAlert | None:
        """Return a single alert by id."""
        row = self._connection.execute(
            "SELECT * FROM sync_alerts WHERE id = ?", (alert_id,)
        ).fetchone()
        return _row_to_alert(row) if row else None

    def list_alerts(
        self,
        *,
        status: str | None = None,
        alert_types: Sequence[str] | None = None,
        customer_id: str | None = None,
    ) -> list[SyncAlert]:
        """Return alerts matching the optional filters, oldest first."""
        clauses: list[str] = []
        params: list[object] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if alert_types:
            clauses.append(f"alert_type IN ({', '.join('?' for _ in alert_types)})")
            params.extend(alert_types)
        if customer_id is not None:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        query = "SELECT * FROM sync_alerts"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY detected_at, id"
        cur = self._connection.execute(query, params)
        return [_row_to_alert(row) for row in cur.fetchall()]

    def list_alerts_due(self, cutoff: datetime) -> list[SyncAlert]:
        """Return open, unescalated po_detected alerts detected by ``cutoff``."""
        cur = self._connection.execute(
            """
            SELECT * FROM sync_alerts
            WHERE status = ? AND alert_type = ?
              AND escalated_at IS NULL AND detected_at <= ?
            ORDER BY detected_at, id
            """,
            (STATUS_OPEN, ALERT_PO_DETECTED, serialize_datetime(cutoff)),
        )
        return [_row_to_alert(row) for row in cur.fetchall()]

    def alert_keys(self) -> set[str]:
        """Return thread keys that already have an alert of any status."""
        cur = self._connection.execute("SELECT DISTINCT thread_key FROM sync_alerts")
        return {row["thread_key"] for row in cur.fetchall()}

    def mark_alerts_notified(self, alert_ids: Sequence[int], when: datetime) -> None:
        """Stamp alerts as included in a delivered summary."""
        if not alert_ids:
            return
        with self._connection:
            self._connection.executemany(
                """
                UPDATE sync_alerts
                SET last_notified_at = ?, notification_count = notification_count + 1
                WHERE id = ?
                """,
                [(serialize_datetime(when), alert_id) for alert_id in alert_ids],
            )

    # Document analyses -------------------------------------------------------
    def fetch_document_analysis(self, content_key: str) -> DocumentAnalysis | None:
        """Return the cached analysis for an attachment."""
        row = self._connection.execute(
            "SELECT * FROM document_analyses WHERE content_key = ?", (content_key,)
        ).fetchone()
        if row is None:
            return None
        return DocumentAnalysis(
            relevant=bool(row["relevant"]),
            document_type=row["document_type"],
            po_number=row["po_number"],
            total=row["total"],
            customer_name=row["customer_name"],
        )

    def save_document_analysis(
        self, content_key: str, analysis: DocumentAnalysis
    ) -> None:
        """Cache the analysis for an attachment."""
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO document_analyses (
                    content_key, relevant, document_type, po_number, total,
                    customer_name, analyzed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(content_key) DO UPDATE SET
                    relevant=excluded.relevant,
                    document_type=excluded.document_type,
                    po_number=excluded.po_number,
                    total=excluded.total,
                    customer_name=excluded.customer_name,
                    analyzed_at=excluded.analyzed_at
                """,
                (
                    content_key,
                    int(analysis.relevant),
                    analysis.document_type,
                    analysis.po_number,
                    analysis.total,
                    analysis.customer_name,
                    serialize_datetime(utcnow()),
                ),
            )

    # Job state ---------------------------------------------------------------
    def get_checkpoint(self, job: str) -> datetime | None:
        """Return the end of the last fully processed window for ``job``."""
        row = self._connection.execute(
            "SELECT window_end FROM sync_state WHERE job = ?", (job,)
        ).fetchone()
        return parse_datetime(row["window_end"]) if row else None

    def set_checkpoint(self, job: str, window_end: datetime) -> None:
        """Advance the checkpoint for ``job``."""
        LOGGER.debug("Updating checkpoint job=%s window_end=%s", job, window_end)
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO sync_state (job, window_end)
                VALUES (?, ?)
                ON CONFLICT(job) DO UPDATE SET window_end=excluded.window_end
                """,
                (job, serialize_datetime(window_end)),
            )

    def try_acquire_lease(
        self, name: str, holder: str, now: datetime, ttl: timedelta
    ) -> bool:
        """Take the named lease if it is free or expired; never waits for it."""
        with self._connection:
            cur = self._connection.execute(
                """
                INSERT INTO job_leases (name, holder, acquired_at, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    holder=excluded.holder,
                    acquired_at=excluded.acquired_at,
                    expires_at=excluded.expires_at
                WHERE job_leases.expires_at <= excluded.acquired_at
                """,
                (
                    name,
                    holder,
                    serialize_datetime(now),
                    serialize_datetime(now + ttl),
                ),
            )
        acquired = cur.rowcount == 1
        LOGGER.debug("Lease %s for %s acquired=%s", name, holder, acquired)
        return acquired

    def release_lease(self, name: str, holder: str) -> None:
        """Release the lease if ``holder`` still owns it."""
        with self._connection:
            self._connection.execute(
                "DELETE FROM job_leases WHERE name = ? AND holder = ?", (name, holder)
            )

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._connection.close()

    # Internal helpers --------------------------------------------------------
    def _configure_connection(self) -> None:
        busy_ms = int(self._settings.busy_timeout_seconds * 1000)
        self._connection.execute("PRAGMA foreign_keys = ON")
        self._connection.execute(f"PRAGMA busy_timeout = {busy_ms}")

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        with self._connection:
            self._connection.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    name TEXT PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
        applied = {
            row["name"]
            for row in self._connection.execute("SELECT name FROM schema_migrations")
        }
        for migration in sorted(schema_dir.glob("*.sql")):
            if migration.name in applied:
                continue
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            self._connection.executescript(script)
            with self._connection:
                self._connection.execute(
                    """
                    INSERT INTO schema_migrations (name, applied_at) VALUES (?, ?)
                    ON CONFLICT(name) DO NOTHING
                    """,
                    (migration.name, serialize_datetime(utcnow())),
                )


def _attachment_to_dict(attachment: AttachmentMeta) -> dict[str, object]:
    return {
        "filename": attachment.filename,
        "content_type": attachment.content_type,
        "size": attachment.size,
        "content_id": attachment.content_id,
    }


def _load_json_list(value: str | None) -> list[object]:
    if not value:
        return []
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        return []
    return decoded if isinstance(decoded, list) else []


def _row_to_message(row: sqlite3.Row) -> Message:
    attachments = tuple(
        AttachmentMeta(
            filename=item.get("filename"),
            content_type=item.get("content_type"),
            size=item.get("size"),
            content_id=item.get("content_id"),
        )
        for item in _load_json_list(row["attachments"])
        if isinstance(item, dict)
    )
    return Message(
        uid=row["uid"],
        direction=row["direction"],
        sender=row["sender"],
        sender_name=row["sender_name"],
        recipients=tuple(str(item) for item in _load_json_list(row["recipients"])),
        subject=row["subject"],
        body=row["body"],
        sent_at=parse_datetime(row["sent_at"]),
        message_id=row["message_id"],
        in_reply_to=row["in_reply_to"],
        references=tuple(str(item) for item in _load_json_list(row["refs"])),
        attachments=attachments,
        ingested_at=parse_datetime(row["ingested_at"]),
    )


def _required_datetime(value: str) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Stored timestamp is unreadable: {value!r}")
    return parsed


def _row_to_todo(row: sqlite3.Row) -> Todo:
    return Todo(
        id=row["id"],
        thread_key=row["thread_key"],
        todo_type=row["todo_type"],
        status=row["status"],
        subject=row["subject"],
        contact_name=row["contact_name"],
        contact_email=row["contact_email"],
        detected_at=parse_datetime(row["detected_at"]),
        created_at=_required_datetime(row["created_at"]),
        updated_at=_required_datetime(row["updated_at"]),
        category=row["category"],
        item_type=row["item_type"],
        needs_response=bool(row["needs_response"]),
        resolved_by=row["resolved_by"],
        resolved_at=parse_datetime(row["resolved_at"]),
    )


def _alert_values(alert: SyncAlert) -> tuple[object, ...]:
    return (
        alert.alert_type,
        alert.status,
        alert.thread_key,
        alert.subject,
        alert.contact_email,
        alert.contact_name,
        alert.customer_id,
        alert.customer_name,
        alert.po_number,
        alert.po_total,
        alert.sales_order_id,
        alert.sales_order_ref,
        alert.estimate_id,
        alert.estimate_ref,
        json.dumps(list(alert.invoice_refs)),
        serialize_datetime(alert.detected_at),
        serialize_datetime(alert.escalated_at),
        serialize_datetime(alert.resolved_at),
        alert.resolved_by,
        serialize_datetime(alert.last_notified_at),
        alert.notification_count,
    )


def _row_to_alert(row: sqlite3.Row) -> SyncAlert:
    return SyncAlert(
        id=row["id"],
        alert_type=row["alert_type"],
        status=row["status"],
        thread_key=row["thread_key"],
        subject=row["subject"],
        contact_email=row["contact_email"],
        contact_name=row["contact_name"],
        customer_id=row["customer_id"],
        customer_name=row["customer_name"],
        po_number=row["po_number"],
        po_total=row["po_total"],
        sales_order_id=row["sales_order_id"],
        sales_order_ref=row["sales_order_ref"],
        estimate_id=row["estimate_id"],
        estimate_ref=row["estimate_ref"],
        invoice_refs=tuple(str(item) for item in _load_json_list(row["invoice_refs"])),
        detected_at=_required_datetime(row["detected_at"]),
        escalated_at=parse_datetime(row["escalated_at"]),
        resolved_at=parse_datetime(row["resolved_at"]),
        resolved_by=row["resolved_by"],
        last_notified_at=parse_datetime(row["last_notified_at"]),
        notification_count=row["notification_count"],
    )


__all__ = ["SqliteRepository"]
