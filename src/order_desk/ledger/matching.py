"""Match email contacts and purchase orders to ledger records."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from datetime import date, timedelta

from order_desk.core.models import (
    CustomerMatch,
    LedgerCustomer,
    LedgerDocument,
    LedgerLine,
)
from order_desk.correlation.headers import address_of, domain_of

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_NAME_NOISE = re.compile(
    r"\b(?:inc|incorporated|ltd|limited|llc|corp|corporation|co|company)\b"
)
MIN_PO_LENGTH = 3

# Mailbox providers whose domain says nothing about the customer.
PUBLIC_MAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "hotmail.com",
        "outlook.com",
        "live.com",
        "yahoo.com",
        "icloud.com",
        "aol.com",
        "proton.me",
        "protonmail.com",
    }
)


def normalize_po(value: str | None) -> str:
    """Lower-case a reference and drop everything but letters and digits."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", value.lower())


def reference_matches(po_number: str | None, reference: str | None) -> bool:
    """Return ``True`` when ``reference`` names the purchase order.

    Accepts an exact match, a single trailing letter (``123`` vs ``123A``) and
    a revision suffix (``123R1``, ``123REV2``). Short numbers never match so
    ``PO 1`` does not claim ``PO 10``.
    """
    po_norm = normalize_po(po_number)
    ref_norm = normalize_po(reference)
    if len(po_norm) < MIN_PO_LENGTH or not ref_norm:
        return False
    if ref_norm == po_norm:
        return True
    escaped = re.escape(po_norm)
    if re.fullmatch(escaped + r"[a-z]", ref_norm):
        return True
    return re.fullmatch(escaped + r"(?:r|rev)\d+", ref_norm) is not None


def amount_matches(
    po_total: float | None,
    document_total: float | None,
    *,
    tolerance: float,
    tax_inclusive_tolerance: float,
) -> bool:
    """Compare totals within the base band or the tax-inclusive band."""
    if not po_total or document_total is None or po_total <= 0:
        return False
    if abs(document_total - po_total) <= po_total * tolerance:
        return True
    return po_total < document_total <= po_total * (1 + tax_inclusive_tolerance)


def match_by_po_or_amount(
    documents: Sequence[LedgerDocument],
    po_number: str | None,
    po_total: float | None,
    *,
    tolerance: float,
    tax_inclusive_tolerance: float,
) -> LedgerDocument | None:
    """Return the first document matching the PO by reference, else by amount."""
    for document in documents:
        if any(
            reference_matches(po_number, value)
            for value in (document.po_number, document.ref_number, document.memo)
        ):
            return document
    for document in documents:
        if amount_matches(
            po_total,
            document.total,
            tolerance=tolerance,
            tax_inclusive_tolerance=tax_inclusive_tolerance,
        ):
            return document
    return None


def _normalize_name(value: str | None) -> str:
    if not value:
        return ""
    return _NON_ALNUM.sub("", _NAME_NOISE.sub("", value.lower()))


def match_customer(
    customers: Iterable[LedgerCustomer],
    email: str | None,
    name: str | None = None,
) -> CustomerMatch | None:
    """Find the ledger customer behind a contact.

    Exact email beats a shared business domain, which beats a normalized
    company or contact name.
    """
    candidates = list(customers)
    address = address_of(email)
    if address:
        for customer in candidates:
            if address in customer.emails:
                return CustomerMatch(customer=customer, matched_on="email")
        domain = domain_of(address)
        if domain and domain not in PUBLIC_MAIL_DOMAINS:
            for customer in candidates:
                if any(domain_of(other) == domain for other in customer.emails):
                    return CustomerMatch(customer=customer, matched_on="domain")
    wanted = _normalize_name(name)
    if len(wanted) >= MIN_PO_LENGTH:
        for customer in candidates:
            if _normalize_name(customer.name) == wanted:
                return CustomerMatch(customer=customer, matched_on="name")
    return None


def customer_domains(customers: Iterable[LedgerCustomer]) -> set[str]:
    """Return business email domains of ledger customers."""
    domains: set[str] = set()
    for customer in customers:
        for email in customer.emails:
            domain = domain_of(email)
            if domain and domain not in PUBLIC_MAIL_DOMAINS:
                domains.add(domain)
    return domains


def _lines_cover(
    order_lines: Sequence[LedgerLine], invoices: Sequence[LedgerDocument]
) -> bool:
    wanted: dict[str, float] = {}
    for line in order_lines:
        key = normalize_po(line.item)
        if key:
            wanted[key] = wanted.get(key, 0.0) + (line.quantity or 0.0)
    if not wanted:
        return False
    invoiced: dict[str, float] = {}
    for invoice in invoices:
        for line in invoice.lines:
            key = normalize_po(line.item)
            if key:
                invoiced[key] = invoiced.get(key, 0.0) + (line.quantity or 0.0)
    return all(
        key in invoiced and invoiced[key] >= quantity
        for key, quantity in wanted.items()
    )


def _within_lag(
    order_date: date | None, invoice_date: date | None, lag_days: int
) -> bool:
    if order_date is None or invoice_date is None:
        return True
    return order_date <= invoice_date <= order_date + timedelta(days=lag_days)


def invoice_references_order(order: LedgerDocument, invoice: LedgerDocument) -> bool:
    """Return ``True`` when ``invoice`` links to or names ``order``."""
    if order.id in invoice.linked_ids:
        return True
    if order.ref_number and any(
        reference_matches(order.ref_number, value)
        for value in (invoice.memo, invoice.po_number)
    ):
        return True
    return bool(
        order.po_number and reference_matches(order.po_number, invoice.po_number)
    )


def find_invoices_covering_order(
    order: LedgerDocument,
    invoices: Sequence[LedgerDocument],
    *,
    tolerance: float,
    lag_days: int,
    other_orders: Sequence[LedgerDocument] = (),
) -> list[LedgerDocument]:
    """Return the invoices that fully bill ``order``, or an empty list.

    Invoices must be dated on or after the order and within ``lag_days``.
    Invoices that link to or name the order cover it once their summed
    totals reach the order total within ``tolerance`` or their lines cover
    every order line. Without such a reference a single invoice must match
    the lines or the total on its own, and invoices that are linked to some
    other transaction or name one of ``other_orders`` are never used.
    """
    candidates = sorted(
        (
            invoice
            for invoice in invoices
            if _within_lag(order.txn_date, invoice.txn_date, lag_days)
        ),
        key=lambda invoice: (invoice.txn_date or date.min, invoice.id),
    )
    if not candidates:
        return []

    referencing = [
        invoice for invoice in candidates if invoice_references_order(order, invoice)
    ]
    if referencing:
        billed = sum(invoice.total or 0.0 for invoice in referencing)
        if order.total is None or billed >= order.total * (1 - tolerance):
            return referencing
        if _lines_cover(order.lines, referencing):
            return referencing
        return []

    others = [other for other in other_orders if other.id != order.id]
    for invoice in candidates:
        if invoice.linked_ids or any(
            invoice_references_order(other, invoice) for other in others
        ):
            continue
        if _lines_cover(order.lines, [invoice]):
            return [invoice]
        if (
            order.total
            and invoice.total is not None
            and abs(invoice.total - order.total) <= order.total * tolerance
        ):
            return [invoice]
    return []


__all__ = [
    "PUBLIC_MAIL_DOMAINS",
    "amount_matches",
    "customer_domains",
    "find_invoices_covering_order",
    "invoice_references_order",
    "match_by_po_or_amount",
    "match_customer",
    "normalize_po",
    "reference_matches",
]
