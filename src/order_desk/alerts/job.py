"""Scheduled alert run guarded by a lease and a checkpoint."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from order_desk.core.config import AlertSettings
from order_desk.core.datetime_utils import utcnow
from order_desk.core.interfaces import NotificationSink
from order_desk.core.models import STATUS_OPEN, AlertJobReport, AlertReport, SyncAlert
from order_desk.pipeline import SyncPipeline
from order_desk.storage import SqliteRepository

from .engine import AlertEngine
from .render import render_morning_review, render_run_summary

LOGGER = logging.getLogger(__name__)

JOB_NAME = "alert_job"


class AlertJob:
    """Run detection, escalation and notification at most once at a time.

    The checkpoint only moves after the summary has been delivered, so a
    failed send makes the next run reprocess the same window.
    """

    def __init__(
        self,
        repository: SqliteRepository,
        pipeline: SyncPipeline,
        engine: AlertEngine,
        sink: NotificationSink | None,
        settings: AlertSettings,
        *,
        clock: Callable[[], datetime] = utcnow,
        holder: str | None = None,
    ) -> None:
        """Wire the job to its collaborators."""
        self._repository = repository
        self._pipeline = pipeline
        self._engine = engine
        self._sink = sink
        self._settings = settings
        self._clock = clock
        self._holder = holder or uuid.uuid4().hex

    def run(self, *, preview: bool = False, morning: bool = False) -> AlertJobReport:
        """Execute one run, or skip it when another run holds the lease."""
        now = self._clock()
        ttl = timedelta(seconds=self._settings.lease_ttl_seconds)
        if not self._repository.try_acquire_lease(JOB_NAME, self._holder, now, ttl):
            LOGGER.info("Alert job already running elsewhere; skipping")
            return AlertJobReport(skipped=True)
        try:
            return self._run_locked(now, preview=preview, morning=morning)
        finally:
            self._repository.release_lease(JOB_NAME, self._holder)

    def _run_locked(
        self, now: datetime, *, preview: bool, morning: bool
    ) -> AlertJobReport:
        checkpoint = self._repository.get_checkpoint(JOB_NAME)
        start = checkpoint or now - timedelta(hours=self._settings.lookback_hours)
        LOGGER.info("Alert job window %s to %s (preview=%s)", start, now, preview)

        sync = self._pipeline.classify_window(start, now)
        alerts = self._engine.run_full_check(sync.threads)
        report = AlertJobReport(
            skipped=False, window_start=start, window_end=now, sync=sync, alerts=alerts
        )

        open_alerts = self._repository.list_alerts(status=STATUS_OPEN)
        pending = [alert for alert in open_alerts if alert.last_notified_at is None]
        if morning:
            subject, body = render_morning_review(open_alerts, now)
            notify = [*open_alerts, *alerts.resolved]
        else:
            subject, body = render_run_summary(alerts, pending, now)
            notify = [*pending, *alerts.resolved]
        report.subject, report.body = subject, body

        if preview:
            LOGGER.info("Preview run; summary not sent and checkpoint kept")
            return report

        if morning or _has_news(alerts, pending):
            self._deliver(subject, body)
            alert_ids = sorted({alert.id for alert in notify if alert.id is not None})
            self._repository.mark_alerts_notified(alert_ids, now)
            report.notified = len(alert_ids)
        else:
            LOGGER.info("Nothing new to report")
        self._repository.set_checkpoint(JOB_NAME, now)
        return report

    def _deliver(self, subject: str, body: str) -> None:
        if self._sink is None:
            LOGGER.warning("No notification sink configured; summary dropped")
            return
        self._sink.send(subject, body)
        LOGGER.info("Alert summary delivered: %s", subject)


def _has_news(report: AlertReport, pending: list[SyncAlert]) -> bool:
    return bool(pending or report.resolved)


__all__ = ["JOB_NAME", "AlertJob"]
