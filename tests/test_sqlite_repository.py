"""Tests for the SQLite-backed repository."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

from order_desk.core.config import StorageSettings
from order_desk.core.models import (
    ALERT_PO_DETECTED,
    ALERT_SO_SHOULD_BE_CLOSED,
    INBOUND,
    OUTBOUND,
    STATUS_OPEN,
    STATUS_RESOLVED,
    AttachmentMeta,
    Correction,
    DocumentAnalysis,
    Message,
    SyncAlert,
    Thread,
    Todo,
)
from order_desk.storage import SqliteRepository

NOW = datetime(2025, 10, 24, 15, 0, tzinfo=timezone.utc)


def _message(uid: str, *, direction: str = INBOUND, hours: float = 0) -> Message:
    return Message(
        uid=uid,
        direction=direction,
        sender="buyer@customer.com" if direction == INBOUND else "me@acme.com",
        recipients=(
            ("me@acme.com",) if direction == INBOUND else ("buyer@customer.com",)
        ),
        subject="PO 4471",
        body="Please see attached",
        sent_at=NOW + timedelta(hours=hours),
        message_id=f"<{uid}@example.com>",
        references=("<root@example.com>",),
        attachments=(
            AttachmentMeta(
                filename="po.pdf", content_type="application/pdf", size=4096
            ),
        ),
    )


def _alert(thread_key: str, **overrides: object) -> SyncAlert:
    values: dict[str, object] = {
        "alert_type": ALERT_PO_DETECTED,
        "thread_key": thread_key,
        "detected_at": NOW,
        "subject": "PO 4471",
    }
    values.update(overrides)
    return SyncAlert(**values)  # type: ignore[arg-type]


def _repository(tmp_path: Path, name: str = "desk.db") -> SqliteRepository:
    return SqliteRepository(StorageSettings(db_path=tmp_path / name))


def test_repository_persists_message_round_trip(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    repository.persist_message(_message("m-1"))
    repository.persist_message(_message("m-1"))

    stored = repository.fetch_message("m-1")
    repository.close()

    assert stored is not None
    assert stored.references == ("<root@example.com>",)
    assert stored.attachments[0].filename == "po.pdf"
    assert stored.attachments[0].size == 4096
    assert stored.sent_at == NOW
    assert stored.ingested_at is not None


def test_fetch_messages_uses_half_open_window(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    for uid, hours in (("early", -1), ("start", 0), ("end", 2)):
        repository.persist_message(_message(uid, hours=hours))

    uids = [m.uid for m in repository.fetch_messages(NOW, NOW + timedelta(hours=2))]
    repository.close()

    assert uids == ["start"]


def test_outbound_recipient_domains(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    repository.persist_message(_message("in", direction=INBOUND))
    repository.persist_message(_message("out", direction=OUTBOUND))

    assert repository.outbound_recipient_domains() == {"customer.com"}
    repository.close()


def test_save_thread_moves_messages_between_threads(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    first, second = _message("a"), _message("b", hours=1)
    repository.persist_message(first)
    repository.persist_message(second)
    repository.save_thread(Thread(key="t-a", messages=[first], category="customer"))
    repository.save_thread(Thread(key="t-b", messages=[second], category="customer"))

    repository.save_thread(Thread(key="t-a", messages=[first, second]))

    merged = repository.fetch_thread("t-a")
    assert merged is not None
    assert merged.message_ids == ("a", "b")
    assert repository.fetch_thread("t-b") is None
    repository.close()


def test_thread_links_are_unordered_and_unique(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    repository.save_thread_link("t-b", "t-a")
    repository.save_thread_link("t-a", "t-b")

    assert repository.list_thread_links() == [("t-a", "t-b")]
    repository.close()


def test_todo_unique_per_thread(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    todo = Todo(
        thread_key="t-1",
        todo_type="po_unacknowledged",
        status=STATUS_OPEN,
        subject="PO 4471",
        contact_name=None,
        contact_email="buyer@customer.com",
        detected_at=NOW,
        created_at=NOW,
        updated_at=NOW,
    )
    assert repository.insert_todo(todo) is True
    assert todo.id is not None

    assert repository.insert_todo(
        Todo(
            thread_key="t-1",
            todo_type="general_unanswered",
            status=STATUS_OPEN,
            subject=None,
            contact_name=None,
            contact_email=None,
            detected_at=NOW,
            created_at=NOW,
            updated_at=NOW,
        )
    ) is False
    assert len(repository.list_todos()) == 1
    repository.close()


def test_dismissal_and_corrections(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    repository.record_dismissal("t-1", NOW)
    assert repository.is_dismissed("t-1")
    repository.clear_dismissal("t-1")
    assert not repository.is_dismissed("t-1")

    for index in range(3):
        repository.add_correction(
            Correction(
                thread_key="t-1",
                field="category",
                original_value="other",
                corrected_value="customer",
                subject=f"Subject {index}",
                created_at=NOW + timedelta(minutes=index),
            )
        )
    recent = repository.list_recent_corrections(2)
    assert [c.subject for c in recent] == ["Subject 2", "Subject 1"]
    repository.close()


def test_open_alert_unique_per_thread_across_connections(tmp_path: Path) -> None:
    first = _repository(tmp_path)
    second = _repository(tmp_path)

    created = first.insert_alert(_alert("t-1"))
    duplicate = second.insert_alert(_alert("t-1"))

    assert created is not None and created.id is not None
    assert duplicate is None
    assert len(first.list_alerts(status=STATUS_OPEN)) == 1
    first.close()
    second.close()


def test_closed_alert_allows_a_new_open_one(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    created = repository.insert_alert(_alert("t-1"))
    assert created is not None
    created.status = STATUS_RESOLVED
    created.resolved_at = NOW
    assert repository.update_alert(created) is True
    assert repository.update_alert(created) is False

    assert repository.insert_alert(_alert("t-1")) is not None
    assert repository.alert_keys() == {"t-1"}
    repository.close()


def test_should_close_alert_unique_per_sales_order(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    kwargs = {"alert_type": ALERT_SO_SHOULD_BE_CLOSED, "sales_order_id": "so-9"}
    assert repository.insert_alert(_alert("so:so-9", **kwargs)) is not None
    assert repository.insert_alert(_alert("so:so-9", **kwargs)) is None
    repository.close()


def test_alerts_due_for_escalation(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    repository.insert_alert(_alert("old", detected_at=NOW - timedelta(hours=5)))
    repository.insert_alert(_alert("boundary", detected_at=NOW - timedelta(hours=4)))
    repository.insert_alert(_alert("young", detected_at=NOW - timedelta(hours=1)))

    due = repository.list_alerts_due(NOW - timedelta(hours=4))
    assert sorted(alert.thread_key for alert in due) == ["boundary", "old"]
    repository.close()


def test_mark_alerts_notified_counts_deliveries(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    created = repository.insert_alert(_alert("t-1"))
    assert created is not None and created.id is not None

    repository.mark_alerts_notified([created.id], NOW)
    repository.mark_alerts_notified([created.id], NOW + timedelta(hours=1))

    stored = repository.fetch_alert(created.id)
    assert stored is not None
    assert stored.notification_count == 2
    assert stored.last_notified_at == NOW + timedelta(hours=1)
    repository.close()


def test_document_analysis_cache_keeps_irrelevant_results(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    repository.save_document_analysis("key-1", DocumentAnalysis(relevant=False))

    cached = repository.fetch_document_analysis("key-1")
    assert cached == DocumentAnalysis(relevant=False)
    assert repository.fetch_document_analysis("key-2") is None
    repository.close()


def test_checkpoint_roundtrip(tmp_path: Path) -> None:
    with _repository(tmp_path) as repository:
        assert repository.get_checkpoint("alert_job") is None

        repository.set_checkpoint("alert_job", NOW)
        repository.set_checkpoint("alert_job", NOW + timedelta(hours=1))

    with _repository(tmp_path) as reopened:
        assert reopened.get_checkpoint("alert_job") == NOW + timedelta(hours=1)


def test_lease_is_exclusive_until_released_or_expired(tmp_path: Path) -> None:
    first = _repository(tmp_path)
    second = _repository(tmp_path)
    ttl = timedelta(minutes=15)

    assert first.try_acquire_lease("alert_job", "one", NOW, ttl) is True
    assert second.try_acquire_lease("alert_job", "two", NOW, ttl) is False

    second.release_lease("alert_job", "two")
    assert second.try_acquire_lease("alert_job", "two", NOW, ttl) is False

    later = NOW + ttl
    assert second.try_acquire_lease("alert_job", "two", later, ttl) is True

    first.release_lease("alert_job", "two")
    assert first.try_acquire_lease("alert_job", "one", later, ttl) is True
    first.close()
    second.close()


def test_migrations_are_idempotent(tmp_path: Path) -> None:
    _repository(tmp_path).close()
    _repository(tmp_path).close()

    with sqlite3.connect(tmp_path / "desk.db") as conn:
        rows = conn.execute("SELECT COUNT(*) FROM schema_migrations").fetchone()
    assert rows[0] == 2
