"""Plain-text rendering of alert summaries."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from order_desk.core.datetime_utils import ensure_utc
from order_desk.core.models import (
    ALERT_NO_CUSTOMER,
    ALERT_PO_DETECTED,
    ALERT_PO_DETECTED_WITH_SO,
    ALERT_PO_MISSING_SO,
    ALERT_SO_SHOULD_BE_CLOSED,
    ALERT_SUSPICIOUS,
    AlertReport,
    SyncAlert,
)

# Section order is the order of urgency.
SECTIONS = (
    (ALERT_PO_MISSING_SO, "OVERDUE", "!"),
    (ALERT_SUSPICIOUS, "SUSPICIOUS", "?"),
    (ALERT_NO_CUSTOMER, "NO LEDGER CUSTOMER", "-"),
    (ALERT_PO_DETECTED, "PENDING", "-"),
    (ALERT_SO_SHOULD_BE_CLOSED, "SO SHOULD BE CLOSED", "-"),
    (ALERT_PO_DETECTED_WITH_SO, "WITH SO", "+"),
)
ACTIONABLE = frozenset(kind for kind, _, _ in SECTIONS) - {ALERT_PO_DETECTED_WITH_SO}


def format_age(when: datetime | None, now: datetime) -> str:
    """Render how long ago ``when`` was, e.g. ``5h ago``."""
    start = ensure_utc(when)
    end = ensure_utc(now)
    if start is None or end is None:
        return "unknown"
    minutes = int((end - start).total_seconds() // 60)
    if minutes < 60:
        return f"{max(minutes, 0)}m ago"
    if minutes < 48 * 60:
        return f"{minutes // 60}h ago"
    return f"{minutes // (24 * 60)}d ago"


def _describe(alert: SyncAlert, now: datetime) -> list[str]:
    contact = alert.contact_name or alert.contact_email or "unknown sender"
    if alert.alert_type == ALERT_PO_MISSING_SO:
        return [
            f"{alert.subject or '(no subject)'}",
            f"{contact} - {format_age(alert.detected_at, now)}",
        ]
    if alert.alert_type in (ALERT_SUSPICIOUS, ALERT_NO_CUSTOMER):
        return [alert.subject or "(no subject)", alert.contact_email or "unknown"]
    if alert.alert_type == ALERT_PO_DETECTED:
        lines = [
            alert.subject or "(no subject)",
            f"{contact} -> {alert.customer_name or '?'}",
        ]
        if alert.estimate_ref:
            lines.append(f"estimate {alert.estimate_ref} on file")
        return lines
    if alert.alert_type == ALERT_SO_SHOULD_BE_CLOSED:
        invoices = ", ".join(alert.invoice_refs) or "?"
        order = alert.sales_order_ref or alert.sales_order_id
        return [f"{order} (invoices: {invoices})"]
    return [f"{alert.subject or '(no subject)'} -> SO {alert.sales_order_ref or '?'}"]


def render_sections(alerts: Sequence[SyncAlert], now: datetime) -> list[str]:
    """Group ``alerts`` by type into the text sections of a summary."""
    lines: list[str] = []
    for kind, title, marker in SECTIONS:
        group = [alert for alert in alerts if alert.alert_type == kind]
        if not group:
            continue
        lines.append(f"{title} ({len(group)}):")
        for alert in group:
            head, *rest = _describe(alert, now)
            lines.append(f"  {marker} {head}")
            lines.extend(f"    {line}" for line in rest)
        lines.append("")
    return lines


def render_run_summary(
    report: AlertReport, pending: Sequence[SyncAlert], now: datetime
) -> tuple[str, str]:
    """Return ``(subject, body)`` for the alerts touched by one run."""
    seen: set[int | None] = set()
    notify: list[SyncAlert] = []
    for alert in [*report.escalated, *report.created, *pending]:
        key = alert.id if alert.id is not None else id(alert)
        if key in seen:
            continue
        seen.add(key)
        notify.append(alert)

    urgent = sum(1 for alert in notify if alert.alert_type in ACTIONABLE)
    subject = f"Order desk: {urgent} alert(s) need attention"
    if report.escalated:
        subject = f"Order desk: {len(report.escalated)} overdue PO(s)"

    lines = ["=== Order Desk Alert Summary ===", ""]
    lines.extend(render_sections(notify, now))
    if report.resolved:
        lines.append(f"RESOLVED ({len(report.resolved)}):")
        lines.extend(
            f"  + {alert.subject or alert.sales_order_ref or alert.thread_key}"
            for alert in report.resolved
        )
        lines.append("")
    if len(lines) == 2:
        lines.append("All caught up! No pending alerts.")
    return subject, "\n".join(lines).rstrip() + "\n"


def render_morning_review(
    open_alerts: Sequence[SyncAlert], now: datetime
) -> tuple[str, str]:
    """Return ``(subject, body)`` summarising every open alert."""
    actionable = sum(1 for alert in open_alerts if alert.alert_type in ACTIONABLE)
    subject = f"Order desk morning review: {actionable} open alert(s)"
    lines = ["=== Order Desk Morning Review ===", ""]
    lines.extend(render_sections(open_alerts, now))
    if not open_alerts:
        lines.append("All caught up! No pending alerts.")
    return subject, "\n".join(lines).rstrip() + "\n"


__all__ = [
    "ACTIONABLE",
    "SECTIONS",
    "format_age",
    "render_morning_review",
    "render_run_summary",
    "render_sections",
]
