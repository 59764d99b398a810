"""Two-stage purchase-order alert lifecycle."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta

from order_desk.core.config import AlertSettings
from order_desk.core.datetime_utils import utcnow
from order_desk.core.interfaces import AlertStore, LedgerClient, LedgerError
from order_desk.core.models import (
    ALERT_NO_CUSTOMER,
    ALERT_PO_DETECTED,
    ALERT_PO_DETECTED_WITH_SO,
    ALERT_PO_MISSING_SO,
    ALERT_SO_SHOULD_BE_CLOSED,
    ALERT_SUSPICIOUS,
    ITEM_PO_RECEIVED,
    RESOLVED_AUTO,
    RESOLVED_MANUAL,
    STATUS_DISMISSED,
    STATUS_OPEN,
    STATUS_RESOLVED,
    AlertReport,
    CustomerMatch,
    DocumentAnalysis,
    LedgerDocument,
    SyncAlert,
    Thread,
)
from order_desk.intelligence.documents import CachingDocumentAnalyzer
from order_desk.intelligence.patterns import extract_po_number
from order_desk.ledger.matching import (
    find_invoices_covering_order,
    match_by_po_or_amount,
    match_customer,
)

from .trust import TrustedDomains

LOGGER = logging.getLogger(__name__)

SALES_ORDER = "sales_order"
ESTIMATE = "estimate"
INVOICE = "invoice"


class AlertTransitionError(ValueError):
    """Raised when a manual transition is not legal from the current status."""


class AlertEngine:
    """Create, escalate and resolve purchase-order sync alerts.

    Stage 1 classifies a new purchase-order thread into exactly one alert
    kind. Stage 2 re-checks ``po_detected`` alerts once they are older than
    the escalation threshold and either resolves them, when a sales order
    has appeared, or promotes them to ``po_missing_so``. Ledger failures
    only skip the affected item.
    """

    def __init__(
        self,
        store: AlertStore,
        ledger: LedgerClient | None,
        settings: AlertSettings,
        *,
        trusted: TrustedDomains,
        documents: CachingDocumentAnalyzer | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Bind the engine to its store and collaborators."""
        self._store = store
        self._ledger = ledger
        self._settings = settings
        self._trusted = trusted
        self._documents = documents
        self._clock = clock

    # Stage 1 -----------------------------------------------------------------
    def detect(self, threads: Iterable[Thread]) -> AlertReport:
        """Open one alert for every purchase-order thread not seen before."""
        report = AlertReport()
        candidates = [t for t in threads if t.item_type == ITEM_PO_RECEIVED]
        if not candidates:
            return report
        known = self._store.alert_keys()
        for thread in candidates:
            if thread.key in known:
                LOGGER.debug("Alert already exists for thread %s", thread.key)
                continue
            alert = self._classify_po(thread)
            stored = self._store.insert_alert(alert)
            if stored is None:
                continue
            LOGGER.info(
                "Opened %s alert for thread %s (%s)",
                stored.alert_type,
                thread.key,
                stored.contact_email,
            )
            report.created.append(stored)
        return report

    def _classify_po(self, thread: Thread) -> SyncAlert:
        alert = SyncAlert(
            alert_type=ALERT_PO_DETECTED,
            thread_key=thread.key,
            detected_at=self._clock(),
            subject=thread.subject,
            contact_email=thread.contact_email,
            contact_name=thread.contact_name,
        )
        if not thread.contact_email or not self._trusted.is_trusted(
            thread.contact_email
        ):
            alert.alert_type = ALERT_SUSPICIOUS
            return alert

        details = self._po_details(thread)
        alert.po_number = details.po_number
        alert.po_total = details.total
        ledger = self._ledger
        if ledger is None:
            return alert

        try:
            match = self._match_customer(ledger, alert)
            if match is None:
                alert.alert_type = ALERT_NO_CUSTOMER
                return alert
            alert.customer_id = match.customer.id
            alert.customer_name = match.customer.name
            sales_order = self._find_document(ledger, alert, SALES_ORDER)
            if sales_order is not None:
                alert.alert_type = ALERT_PO_DETECTED_WITH_SO
                alert.sales_order_id = sales_order.id
                alert.sales_order_ref = sales_order.ref_number
                return alert
            estimate = self._find_document(ledger, alert, ESTIMATE)
            if estimate is not None:
                alert.estimate_id = estimate.id
                alert.estimate_ref = estimate.ref_number
        except LedgerError as exc:
            LOGGER.warning(
                "Ledger lookup failed for thread %s; keeping po_detected: %s",
                thread.key,
                exc,
            )
        return alert

    def _po_details(self, thread: Thread) -> DocumentAnalysis:
        if self._documents is not None:
            return self._documents.purchase_order_details(thread)
        return DocumentAnalysis(
            relevant=False,
            po_number=extract_po_number(*(m.subject for m in thread.messages)),
        )

    # Stage 2 -----------------------------------------------------------------
    def escalate(self) -> AlertReport:
        """Re-verify overdue ``po_detected`` alerts and escalate or resolve them."""
        report = AlertReport()
        ledger = self._ledger
        if ledger is None:
            LOGGER.info("Ledger unavailable; escalation check skipped")
            return report
        now = self._clock()
        cutoff = now - timedelta(hours=self._settings.escalation_hours)
        for alert in self._store.list_alerts_due(cutoff):
            try:
                sales_order = self._recheck_sales_order(ledger, alert)
            except LedgerError as exc:
                LOGGER.warning(
                    "Escalation check for alert %s failed: %s", alert.id, exc
                )
                continue
            if sales_order is not None:
                if self._close(alert, STATUS_RESOLVED, RESOLVED_AUTO, sales_order):
                    LOGGER.info(
                        "Alert %s resolved: sales order %s found",
                        alert.id,
                        sales_order.ref_number,
                    )
                    report.resolved.append(alert)
                continue
            alert.alert_type = ALERT_PO_MISSING_SO
            alert.escalated_at = now
            alert.last_notified_at = None
            if self._store.update_alert(alert):
                LOGGER.info("Alert %s escalated: still no sales order", alert.id)
                report.escalated.append(alert)
        return report

    # Auto-resolution ---------------------------------------------------------
    def auto_resolve(self) -> AlertReport:
        """Close alerts whose discrepancy has disappeared from the ledger."""
        report = AlertReport()
        ledger = self._ledger
        if ledger is None:
            return report
        po_alerts = self._store.list_alerts(
            status=STATUS_OPEN, alert_types=(ALERT_PO_DETECTED, ALERT_PO_MISSING_SO)
        )
        for alert in po_alerts:
            if not alert.customer_id:
                continue
            try:
                sales_order = self._find_document(ledger, alert, SALES_ORDER)
            except LedgerError as exc:
                LOGGER.warning(
                    "Auto-resolve check for alert %s failed: %s", alert.id, exc
                )
                continue
            if sales_order is not None and self._close(
                alert, STATUS_RESOLVED, RESOLVED_AUTO, sales_order
            ):
                LOGGER.info("Auto-resolved alert %s: sales order found", alert.id)
                report.resolved.append(alert)

        no_customer = self._store.list_alerts(
            status=STATUS_OPEN, alert_types=(ALERT_NO_CUSTOMER,)
        )
        for alert in no_customer:
            if not alert.contact_email:
                continue
            try:
                match = self._match_customer(ledger, alert)
            except LedgerError as exc:
                LOGGER.warning(
                    "Customer re-match for alert %s failed: %s", alert.id, exc
                )
                continue
            if match is None:
                continue
            alert.customer_id = match.customer.id
            alert.customer_name = match.customer.name
            if self._close(alert, STATUS_RESOLVED, RESOLVED_AUTO):
                LOGGER.info(
                    "Auto-resolved alert %s: customer %s found",
                    alert.id,
                    match.customer.name,
                )
                report.resolved.append(alert)
        return report

    # Sales orders to close ---------------------------------------------------
    def check_sales_orders_to_close(self) -> AlertReport:
        """Flag open sales orders already covered by invoices."""
        report = AlertReport()
        if self._ledger is None:
            return report
        with_so = self._store.list_alerts(
            status=STATUS_OPEN, alert_types=(ALERT_PO_DETECTED_WITH_SO,)
        )
        known = self._store.alert_keys()
        customers: dict[str, str | None] = {}
        for alert in with_so:
            if alert.customer_id and alert.customer_id not in customers:
                customers[alert.customer_id] = alert.customer_name
        for customer_id in sorted(customers):
            try:
                orders = self._ledger.list_documents(
                    customer_id, SALES_ORDER, open_only=True
                )
                invoices = self._ledger.list_documents(customer_id, INVOICE)
            except LedgerError as exc:
                LOGGER.warning(
                    "Invoice check for customer %s failed: %s", customer_id, exc
                )
                continue
            open_orders = [
                order
                for order in orders
                if not (order.is_closed or order.fully_invoiced)
            ]
            claimed: set[str] = set()
            for order in open_orders:
                covering = find_invoices_covering_order(
                    order,
                    [invoice for invoice in invoices if invoice.id not in claimed],
                    tolerance=self._settings.amount_tolerance,
                    lag_days=self._settings.invoice_lag_days,
                    other_orders=open_orders,
                )
                claimed.update(invoice.id for invoice in covering)
                if not covering or should_close_key(order) in known:
                    continue
                alert = self._store.insert_alert(
                    _should_close_alert(
                        order, covering, customers[customer_id], self._clock()
                    )
                )
                if alert is not None:
                    LOGGER.info(
                        "Sales order %s should be closed (invoices %s)",
                        order.ref_number or order.id,
                        ", ".join(alert.invoice_refs),
                    )
                    report.created.append(alert)
        return report

    def run_full_check(self, threads: Sequence[Thread]) -> AlertReport:
        """Run detection, escalation, auto-resolution and the closing check."""
        report = self.detect(threads)
        report.extend(self.escalate())
        report.extend(self.auto_resolve())
        report.extend(self.check_sales_orders_to_close())
        LOGGER.info(
            "Alert check: %d created, %d escalated, %d resolved",
            len(report.created),
            len(report.escalated),
            len(report.resolved),
        )
        return report

    # Manual operations -------------------------------------------------------
    def resolve_alert(self, alert_id: int) -> SyncAlert:
        """Resolve an open alert on behalf of a person."""
        alert = self._require_open(alert_id)
        if not self._close(alert, STATUS_RESOLVED, RESOLVED_MANUAL):
            raise AlertTransitionError(f"Alert {alert_id} was closed concurrently")
        return alert

    def dismiss_alert(self, alert_id: int) -> SyncAlert:
        """Dismiss an open alert."""
        alert = self._require_open(alert_id)
        if not self._close(alert, STATUS_DISMISSED, RESOLVED_MANUAL):
            raise AlertTransitionError(f"Alert {alert_id} was closed concurrently")
        return alert

    # Helpers -----------------------------------------------------------------
    def _require_open(self, alert_id: int) -> SyncAlert:
        alert = self._store.fetch_alert(alert_id)
        if alert is None:
            raise KeyError(alert_id)
        if alert.status != STATUS_OPEN:
            raise AlertTransitionError(f"Alert {alert_id} is already {alert.status}")
        return alert

    def _close(
        self,
        alert: SyncAlert,
        status: str,
        resolved_by: str,
        sales_order: LedgerDocument | None = None,
    ) -> bool:
        alert.status = status
        alert.resolved_by = resolved_by
        alert.resolved_at = self._clock()
        if sales_order is not None:
            alert.sales_order_id = sales_order.id
            alert.sales_order_ref = sales_order.ref_number
        return self._store.update_alert(alert)

    def _match_customer(
        self, ledger: LedgerClient, alert: SyncAlert
    ) -> CustomerMatch | None:
        return match_customer(
            ledger.list_customers(), alert.contact_email, alert.contact_name
        )

    def _find_document(
        self, ledger: LedgerClient, alert: SyncAlert, kind: str
    ) -> LedgerDocument | None:
        if not alert.customer_id:
            return None
        documents = ledger.list_documents(alert.customer_id, kind)
        return match_by_po_or_amount(
            documents,
            alert.po_number,
            alert.po_total,
            tolerance=self._settings.amount_tolerance,
            tax_inclusive_tolerance=self._settings.tax_inclusive_tolerance,
        )

    def _recheck_sales_order(
        self, ledger: LedgerClient, alert: SyncAlert
    ) -> LedgerDocument | None:
        if not alert.customer_id and alert.contact_email:
            match = self._match_customer(ledger, alert)
            if match is not None:
                alert.customer_id = match.customer.id
                alert.customer_name = match.customer.name
        return self._find_document(ledger, alert, SALES_ORDER)


def should_close_key(order: LedgerDocument) -> str:
    """Dedup key of the closing alert for a sales order."""
    return f"so:{order.id}"


def _should_close_alert(
    order: LedgerDocument,
    invoices: Sequence[LedgerDocument],
    customer_name: str | None,
    detected_at: datetime,
) -> SyncAlert:
    reference = order.ref_number or order.id
    return SyncAlert(
        alert_type=ALERT_SO_SHOULD_BE_CLOSED,
        thread_key=should_close_key(order),
        detected_at=detected_at,
        subject=f"SO {reference} should be closed",
        customer_id=order.customer_id,
        customer_name=customer_name,
        po_number=order.po_number,
        sales_order_id=order.id,
        sales_order_ref=order.ref_number,
        invoice_refs=tuple(invoice.ref_number or invoice.id for invoice in invoices),
    )


__all__ = ["AlertEngine", "AlertTransitionError"]
