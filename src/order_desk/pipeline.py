"""Sync orchestration: correlate, classify, persist and reconcile todos."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from order_desk.core.config import ClassificationSettings
from order_desk.core.datetime_utils import ensure_utc, to_utc
from order_desk.core.interfaces import MessageSource
from order_desk.core.models import Message, SyncReport, Thread
from order_desk.correlation import ThreadCorrelator
from order_desk.intelligence import ClassificationEngine
from order_desk.lifecycle import TodoLifecycleManager
from order_desk.storage import SqliteRepository

LOGGER = logging.getLogger(__name__)


def message_time(message: Message) -> datetime | None:
    """Timestamp used to place a message in a window."""
    return ensure_utc(message.sent_at or message.ingested_at)


def in_window(message: Message, start: datetime, end: datetime) -> bool:
    """Return ``True`` when the message falls in ``[start, end)``."""
    stamp = message_time(message)
    return stamp is not None and start <= stamp < end


class SyncPipeline:
    """Turn stored messages into classified threads and todos."""

    def __init__(
        self,
        repository: SqliteRepository,
        engine: ClassificationEngine,
        todos: TodoLifecycleManager,
        settings: ClassificationSettings,
    ) -> None:
        """Bind the pipeline to storage and its processing stages."""
        self._repository = repository
        self._engine = engine
        self._todos = todos
        self._settings = settings

    def ingest(self, source: MessageSource, start: datetime, end: datetime) -> int:
        """Copy messages for a window from ``source`` into storage."""
        messages = list(source.fetch_messages(start, end))
        self.persist(messages)
        LOGGER.info("Ingested %d message(s) from %s to %s", len(messages), start, end)
        return len(messages)

    def persist(self, messages: Iterable[Message]) -> None:
        """Store messages; reruns on the same messages are harmless."""
        for message in messages:
            self._repository.persist_message(message)

    def classify_window(self, start: datetime, end: datetime) -> SyncReport:
        """Rebuild and classify every thread with a message in ``[start, end)``.

        Earlier messages are loaded as context so that threads are rebuilt
        whole. Storage errors propagate to the caller.
        """
        start_utc = to_utc(start)
        end_utc = to_utc(end)
        context_start = start_utc - timedelta(days=self._settings.context_days)
        messages = self._repository.fetch_messages(context_start, end_utc)
        in_range = sum(
            1 for message in messages if in_window(message, start_utc, end_utc)
        )
        LOGGER.info(
            "Classifying window %s to %s: %d message(s), %d with context",
            start_utc,
            end_utc,
            in_range,
            len(messages),
        )

        correlator = ThreadCorrelator(
            subject_min_length=self._settings.subject_merge_min_length
        )
        correlator.correlate(messages, links=self._repository.list_thread_links())
        corrections = self._repository.list_recent_corrections(
            self._settings.corrections_limit
        )

        def touched(thread: Thread) -> bool:
            return any(in_window(m, start_utc, end_utc) for m in thread.messages)

        run = self._engine.classify_threads(correlator, corrections, include=touched)
        for left, right in run.merges:
            self._repository.save_thread_link(left, right)
        for thread in run.threads:
            self._repository.save_thread(thread)
        todo_report = self._todos.reconcile(run.threads)
        return SyncReport(messages=in_range, threads=run.threads, todos=todo_report)


__all__ = ["SyncPipeline", "in_window", "message_time"]
