"""Tests for the sync pipeline."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from order_desk.core.config import ClassificationSettings, StorageSettings
from order_desk.core.models import (
    INBOUND,
    ITEM_PO_RECEIVED,
    OUTBOUND,
    STATUS_OPEN,
    STATUS_RESOLVED,
    TODO_PO_UNACKNOWLEDGED,
    Message,
)
from order_desk.intelligence import ClassificationEngine
from order_desk.lifecycle import TodoLifecycleManager
from order_desk.pipeline import SyncPipeline, in_window
from order_desk.storage import SqliteRepository

BASE = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)


def _message(
    uid: str,
    subject: str,
    *,
    hours: float,
    direction: str = INBOUND,
    in_reply_to: str | None = None,
    body: str = "Please process the attached order.",
) -> Message:
    inbound = direction == INBOUND
    return Message(
        uid=uid,
        direction=direction,
        sender="jane@customer.com" if inbound else "sales@acme.com",
        recipients=("sales@acme.com",) if inbound else ("jane@customer.com",),
        subject=subject,
        body=body,
        sent_at=BASE + timedelta(hours=hours),
        message_id=f"<{uid}@mail>",
        in_reply_to=in_reply_to,
    )


class ListSource:
    def __init__(self, messages: list[Message]) -> None:
        self.messages = messages

    def fetch_messages(self, start: datetime, end: datetime) -> list[Message]:
        return [m for m in self.messages if in_window(m, start, end)]


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[SqliteRepository]:
    repo = SqliteRepository(StorageSettings(db_path=tmp_path / "pipeline.db"))
    yield repo
    repo.close()


def _pipeline(repository: SqliteRepository) -> SyncPipeline:
    settings = ClassificationSettings(our_domains=["acme.com"])
    return SyncPipeline(
        repository,
        ClassificationEngine(None, settings),
        TodoLifecycleManager(repository),
        settings,
    )


def test_ingest_copies_window_from_source(repository: SqliteRepository) -> None:
    source = ListSource(
        [
            _message("m1", "PO 7781", hours=0),
            _message("m2", "PO 7782", hours=30),
        ]
    )

    count = _pipeline(repository).ingest(source, BASE, BASE + timedelta(days=1))

    assert count == 1
    assert repository.fetch_message("m1") is not None
    assert repository.fetch_message("m2") is None


def test_classify_window_builds_threads_and_todos(
    repository: SqliteRepository,
) -> None:
    pipeline = _pipeline(repository)
    pipeline.persist(
        [
            _message("m1", "PO 7781", hours=0),
            _message("m2", "Lunch plans", hours=-72),
        ]
    )

    report = pipeline.classify_window(
        BASE - timedelta(hours=1), BASE + timedelta(hours=1)
    )

    assert report.messages == 1
    assert [thread.key for thread in report.threads] == ["m1@mail"]
    thread = report.threads[0]
    assert thread.item_type == ITEM_PO_RECEIVED
    assert thread.needs_response
    assert report.todos.created == ["m1@mail"]
    todo = repository.fetch_todo("m1@mail")
    assert todo is not None
    assert (todo.todo_type, todo.status) == (TODO_PO_UNACKNOWLEDGED, STATUS_OPEN)
    assert repository.fetch_thread("m1@mail") is not None


def test_context_messages_rebuild_whole_threads(repository: SqliteRepository) -> None:
    pipeline = _pipeline(repository)
    pipeline.persist([_message("m1", "PO 7781", hours=0)])
    pipeline.classify_window(BASE - timedelta(hours=1), BASE + timedelta(hours=1))

    pipeline.persist(
        [
            _message(
                "m2",
                "RE: PO 7781",
                hours=24,
                direction=OUTBOUND,
                in_reply_to="<m1@mail>",
                body="Received, we will ship Friday.",
            )
        ]
    )
    report = pipeline.classify_window(
        BASE + timedelta(hours=23), BASE + timedelta(hours=25)
    )

    assert [thread.key for thread in report.threads] == ["m1@mail"]
    assert [m.uid for m in report.threads[0].messages] == ["m1", "m2"]
    assert not report.threads[0].needs_response
    assert report.todos.auto_resolved == ["m1@mail"]
    todo = repository.fetch_todo("m1@mail")
    assert todo is not None and todo.status == STATUS_RESOLVED


def test_rerunning_a_window_is_idempotent(repository: SqliteRepository) -> None:
    pipeline = _pipeline(repository)
    pipeline.persist([_message("m1", "PO 7781", hours=0)])
    window = (BASE - timedelta(hours=1), BASE + timedelta(hours=1))

    first = pipeline.classify_window(*window)
    second = pipeline.classify_window(*window)

    assert first.todos.created == ["m1@mail"]
    assert second.todos.created == []
    assert len(repository.list_todos()) == 1
