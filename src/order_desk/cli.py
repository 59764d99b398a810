"""Command-line entry point for Order Desk."""

from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
from datetime import timedelta
from pathlib import Path

from order_desk.alerts import AlertEngine, AlertJob, TrustedDomains
from order_desk.core import (
    AppSettings,
    ServiceContainer,
    configure_logging,
    load_app_settings,
)
from order_desk.core.datetime_utils import utcnow
from order_desk.core.interfaces import LedgerError, NotificationError
from order_desk.core.models import STATUS_DISMISSED, STATUS_OPEN, STATUS_RESOLVED
from order_desk.ingestion import EmlDirectorySource, MessageParser
from order_desk.intelligence import (
    CachingDocumentAnalyzer,
    ClassificationEngine,
    LLMThreadClassifier,
    OllamaClient,
)
from order_desk.ledger import HttpLedgerClient
from order_desk.lifecycle import TodoLifecycleManager, TodoTransitionError
from order_desk.pipeline import SyncPipeline
from order_desk.storage import SqliteRepository
from order_desk.transport import ConsoleNotificationSink, SmtpNotificationSink

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Order Desk mailbox reconciliation")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("info", help="Show the active configuration.")

    ingest = commands.add_parser("ingest", help="Import .eml files from a folder.")
    ingest.add_argument("directory", type=Path, help="Folder holding .eml files.")
    ingest.add_argument(
        "--hours",
        type=float,
        default=24 * 30,
        help="Only import messages from the last N hours (default: 720).",
    )

    sync = commands.add_parser("sync", help="Correlate, classify and track todos.")
    sync.add_argument(
        "--hours",
        type=float,
        default=24.0,
        help="Look-back window in hours (default: 24).",
    )

    alerts = commands.add_parser("alerts", help="Run the scheduled alert job.")
    alerts.add_argument(
        "--preview",
        action="store_true",
        help="Print the summary instead of sending it; keep the checkpoint.",
    )
    alerts.add_argument(
        "--morning",
        action="store_true",
        help="Summarise every open alert instead of this run's changes.",
    )

    todos = commands.add_parser("todos", help="List and update todos.")
    todos.add_argument(
        "--status",
        choices=[STATUS_OPEN, STATUS_RESOLVED, STATUS_DISMISSED, "all"],
        default=STATUS_OPEN,
        help="Status filter (default: open).",
    )
    todos.add_argument("--resolve", metavar="KEY", help="Resolve a todo first.")
    todos.add_argument("--dismiss", metavar="KEY", help="Dismiss a todo first.")
    todos.add_argument("--reopen", metavar="KEY", help="Reopen a todo first.")

    status = commands.add_parser("alert-status", help="Close an alert by hand.")
    status.add_argument("alert_id", type=int, help="Alert identifier.")
    status.add_argument("action", choices=["resolve", "dismiss"])

    correct = commands.add_parser("correct", help="Correct a thread classification.")
    correct.add_argument("thread_key", help="Thread key of the todo.")
    correct.add_argument(
        "changes", nargs="+", metavar="FIELD=VALUE", help="Fields to correct."
    )
    return parser


def build_container(settings: AppSettings) -> ServiceContainer:
    """Register the collaborators used by the commands."""
    container = ServiceContainer()
    container.register("repository", lambda _: SqliteRepository(settings.storage))
    container.register("ledger", lambda _: _build_ledger(settings))
    container.register("todos", lambda c: TodoLifecycleManager(c.resolve("repository")))
    container.register(
        "pipeline",
        lambda c: SyncPipeline(
            c.resolve("repository"),
            ClassificationEngine(_build_classifier(settings), settings.classification),
            c.resolve("todos"),
            settings.classification,
        ),
    )
    container.register("alert_engine", lambda c: _build_alert_engine(c, settings))
    container.register(
        "alert_job",
        lambda c: AlertJob(
            c.resolve("repository"),
            c.resolve("pipeline"),
            c.resolve("alert_engine"),
            _build_sink(settings),
            settings.alerts,
        ),
    )
    return container


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return the exit status."""
    command = args.command or "info"
    if command == "info":
        _run_info(settings)
        return 0
    container = build_container(settings)
    try:
        if command == "ingest":
            _run_ingest(container, settings, args.directory, args.hours)
        elif command == "sync":
            _run_sync(container, args.hours)
        elif command == "alerts":
            return _run_alerts(container, preview=args.preview, morning=args.morning)
        elif command == "todos":
            return _run_todos(container, args)
        elif command == "alert-status":
            return _run_alert_status(container, args.alert_id, args.action)
        elif command == "correct":
            return _run_correct(container, args.thread_key, args.changes)
    except sqlite3.Error as exc:
        LOGGER.error("Storage failure during %s", command, exc_info=True)
        print(f"{command} failed: storage error: {exc}")
        return 2
    finally:
        container.close()
    return 0


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    sys.exit(execute(args, settings))


def _build_ledger(settings: AppSettings) -> HttpLedgerClient | None:
    if not settings.ledger.base_url:
        LOGGER.info("Ledger not configured; alerts will not be reconciled")
        return None
    return HttpLedgerClient(settings.ledger)


def _build_classifier(settings: AppSettings) -> LLMThreadClassifier | None:
    if not settings.llm.enabled:
        return None
    return LLMThreadClassifier(
        OllamaClient(settings.llm),
        body_char_limit=settings.classification.body_char_limit,
    )


def _build_alert_engine(
    container: ServiceContainer, settings: AppSettings
) -> AlertEngine:
    repository: SqliteRepository = container.resolve("repository")
    ledger = container.resolve("ledger")
    trusted = TrustedDomains.build(
        settings.alerts.trusted_domains,
        repository.outbound_recipient_domains(),
        ledger,
    )
    return AlertEngine(
        repository,
        ledger,
        settings.alerts,
        trusted=trusted,
        documents=CachingDocumentAnalyzer(None, repository),
    )


def _build_sink(
    settings: AppSettings,
) -> SmtpNotificationSink | ConsoleNotificationSink:
    if settings.smtp.host and settings.alerts.notify_recipient:
        return SmtpNotificationSink(settings.smtp, settings.alerts.notify_recipient)
    LOGGER.info("SMTP not configured; summaries are printed")
    return ConsoleNotificationSink()


def _run_info(settings: AppSettings) -> None:
    print("Order Desk is ready.")
    print(f"Database path: {settings.storage.db_path}")
    print(f"Our domains: {', '.join(settings.classification.our_domains) or '-'}")
    print(f"LLM: {settings.llm.model if settings.llm.enabled else 'disabled'}")
    print(f"Ledger: {settings.ledger.base_url or 'not configured'}")
    print(f"Alert recipient: {settings.alerts.notify_recipient or 'console'}")


def _run_ingest(
    container: ServiceContainer, settings: AppSettings, directory: Path, hours: float
) -> None:
    end = utcnow()
    source = EmlDirectorySource(
        directory, MessageParser(settings.classification.our_domains)
    )
    pipeline: SyncPipeline = container.resolve("pipeline")
    count = pipeline.ingest(source, end - timedelta(hours=hours), end)
    print(f"Imported {count} message(s) from {directory}")


def _run_sync(container: ServiceContainer, hours: float) -> None:
    end = utcnow()
    pipeline: SyncPipeline = container.resolve("pipeline")
    report = pipeline.classify_window(end - timedelta(hours=hours), end)
    print(
        f"Classified {len(report.threads)} thread(s) "
        f"from {report.messages} message(s)"
    )
    print(
        f"Todos: {len(report.todos.created)} created, "
        f"{len(report.todos.auto_resolved)} auto-resolved, "
        f"{len(report.todos.updated)} updated"
    )
    for thread in report.threads:
        review = " [review]" if thread.needs_review else ""
        print(
            f"- {thread.key}: {thread.category}/{thread.item_type} "
            f"respond={thread.needs_response}{review} | {thread.subject or ''}"
        )


def _run_alerts(container: ServiceContainer, *, preview: bool, morning: bool) -> int:
    job: AlertJob = container.resolve("alert_job")
    try:
        report = job.run(preview=preview, morning=morning)
    except (NotificationError, LedgerError) as exc:
        print(f"Alert run failed: {exc}")
        return 1
    if report.skipped:
        print("Another alert run holds the lease; skipped.")
        return 0
    alerts = report.alerts
    print(
        f"Window {report.window_start} to {report.window_end}: "
        f"{len(alerts.created)} created, {len(alerts.escalated)} escalated, "
        f"{len(alerts.resolved)} resolved, {report.notified} notified"
    )
    if preview and report.body:
        print(f"Subject: {report.subject}")
        print(report.body)
    return 0


def _run_todos(container: ServiceContainer, args: argparse.Namespace) -> int:
    manager: TodoLifecycleManager = container.resolve("todos")
    try:
        if args.resolve:
            manager.resolve(args.resolve)
        if args.dismiss:
            manager.dismiss(args.dismiss)
        if args.reopen:
            manager.reopen(args.reopen)
    except (TodoTransitionError, KeyError) as exc:
        print(f"Todo update failed: {exc}")
        return 1

    repository: SqliteRepository = container.resolve("repository")
    status = None if args.status == "all" else args.status
    todos = repository.list_todos(status=status)
    if not todos:
        print("No todos found.")
        return 0
    print(f"Showing {len(todos)} todo(s):")
    for todo in todos:
        contact = todo.contact_name or todo.contact_email or "-"
        print(
            f"- [{todo.status}] {todo.thread_key} {todo.todo_type} | "
            f"{contact} | {todo.subject or ''}"
        )
    return 0


def _run_alert_status(container: ServiceContainer, alert_id: int, action: str) -> int:
    engine: AlertEngine = container.resolve("alert_engine")
    try:
        if action == "resolve":
            alert = engine.resolve_alert(alert_id)
        else:
            alert = engine.dismiss_alert(alert_id)
    except (ValueError, KeyError) as exc:
        print(f"Alert update failed: {exc}")
        return 1
    print(f"Alert {alert.id} is now {alert.status}")
    return 0


def _run_correct(container: ServiceContainer, thread_key: str, pairs: list[str]) -> int:
    changes: dict[str, str | None] = {}
    for pair in pairs:
        field, sep, value = pair.partition("=")
        if not sep:
            print(f"Expected FIELD=VALUE, got {pair!r}")
            return 1
        changes[field.strip()] = value.strip() or None
    manager: TodoLifecycleManager = container.resolve("todos")
    try:
        corrections = manager.record_corrections(thread_key, changes)
    except (ValueError, KeyError) as exc:
        print(f"Correction failed: {exc}")
        return 1
    print(f"Recorded {len(corrections)} correction(s) for {thread_key}")
    return 0


if __name__ == "__main__":
    main()
