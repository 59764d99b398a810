"""Ledger collaborator: HTTP client and record matching."""

from .http_client import DOCUMENT_KINDS, HttpLedgerClient
from .matching import (
    find_invoices_covering_order,
    match_by_po_or_amount,
    match_customer,
    normalize_po,
)

__all__ = [
    "DOCUMENT_KINDS",
    "HttpLedgerClient",
    "find_invoices_covering_order",
    "match_by_po_or_amount",
    "match_customer",
    "normalize_po",
]
