"""Tests for ledger matching and the HTTP ledger client."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from order_desk.core.config import LedgerSettings
from order_desk.core.interfaces import LedgerError
from order_desk.core.models import LedgerCustomer, LedgerDocument, LedgerLine
from order_desk.core.retry import RetryPolicy
from order_desk.ledger import (
    HttpLedgerClient,
    find_invoices_covering_order,
    match_by_po_or_amount,
    match_customer,
    normalize_po,
)
from order_desk.ledger.matching import amount_matches, reference_matches

CUSTOMERS = [
    LedgerCustomer(id="c-1", name="Northwind Traders Inc.", emails=("ap@north.com",)),
    LedgerCustomer(id="c-2", name="Contoso", emails=("jane@contoso.com",)),
    LedgerCustomer(id="c-3", name="Solo Buyer", emails=("solo@gmail.com",)),
]


def _doc(doc_id: str, **kwargs: object) -> LedgerDocument:
    kwargs.setdefault("kind", "sales_order")
    kwargs.setdefault("customer_id", "c-1")
    return LedgerDocument(id=doc_id, **kwargs)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("po_number", "reference", "expected"),
    [
        ("PO-7781", "7781", False),
        ("7781", "po7781", False),
        ("7781", "7781", True),
        ("7781", "7781-A", True),
        ("7781", "7781 R2", True),
        ("7781", "7781rev3", True),
        ("7781", "77810", False),
        ("12", "12", False),
        ("7781", None, False),
        (None, "7781", False),
    ],
)
def test_reference_matches(
    po_number: str | None, reference: str | None, expected: bool
) -> None:
    assert reference_matches(po_number, reference) is expected


def test_normalize_po_strips_punctuation() -> None:
    assert normalize_po(" PO#7781-a ") == "po7781a"
    assert normalize_po(None) == ""


def test_amount_bands() -> None:
    bands = {"tolerance": 0.05, "tax_inclusive_tolerance": 0.15}

    assert amount_matches(100.0, 104.0, **bands)
    assert amount_matches(100.0, 96.0, **bands)
    assert amount_matches(100.0, 113.0, **bands)
    assert not amount_matches(100.0, 90.0, **bands)
    assert not amount_matches(100.0, 120.0, **bands)
    assert not amount_matches(None, 100.0, **bands)
    assert not amount_matches(0.0, 0.0, **bands)


def test_reference_beats_amount() -> None:
    by_amount = _doc("so-1", ref_number="SO-1", total=500.0)
    by_reference = _doc("so-2", ref_number="SO-2", po_number="7781", total=900.0)

    found = match_by_po_or_amount(
        [by_amount, by_reference],
        "7781",
        500.0,
        tolerance=0.05,
        tax_inclusive_tolerance=0.15,
    )

    assert found is by_reference


def test_amount_fallback_and_no_match() -> None:
    documents = [_doc("so-1", total=1000.0), _doc("so-2", total=505.0)]

    assert (
        match_by_po_or_amount(
            documents, None, 500.0, tolerance=0.05, tax_inclusive_tolerance=0.15
        )
        is documents[1]
    )
    assert (
        match_by_po_or_amount(
            documents, "9999", 10.0, tolerance=0.05, tax_inclusive_tolerance=0.15
        )
        is None
    )


def test_match_customer_precedence() -> None:
    exact = match_customer(CUSTOMERS, "Jane <JANE@contoso.com>")
    domain = match_customer(CUSTOMERS, "bob@contoso.com")
    by_name = match_customer(CUSTOMERS, "buyer@other.com", "Northwind Traders")

    assert exact is not None and exact.matched_on == "email"
    assert exact.customer.id == "c-2"
    assert domain is not None and domain.matched_on == "domain"
    assert by_name is not None and by_name.customer.id == "c-1"
    assert by_name.matched_on == "name"


def test_public_mail_domain_does_not_match() -> None:
    assert match_customer(CUSTOMERS, "someone@gmail.com") is None


def test_invoices_linked_to_order_cover_it() -> None:
    order = _doc("so-1", ref_number="SO-1", total=1000.0, txn_date=date(2025, 1, 1))
    first = _doc(
        "inv-1",
        kind="invoice",
        total=600.0,
        txn_date=date(2025, 1, 10),
        linked_ids=("so-1",),
    )
    second = _doc(
        "inv-2", kind="invoice", memo="SO-1", total=400.0, txn_date=date(2025, 1, 12)
    )

    covering = find_invoices_covering_order(
        order, [second, first], tolerance=0.05, lag_days=180
    )

    assert [invoice.id for invoice in covering] == ["inv-1", "inv-2"]


def test_partial_billing_does_not_cover() -> None:
    order = _doc("so-1", total=1000.0, txn_date=date(2025, 1, 1))
    partial = _doc(
        "inv-1",
        kind="invoice",
        total=300.0,
        txn_date=date(2025, 1, 10),
        linked_ids=("so-1",),
    )

    covering = find_invoices_covering_order(
        order, [partial], tolerance=0.05, lag_days=180
    )

    assert covering == []


def test_invoice_outside_lag_window_is_ignored() -> None:
    order = _doc("so-1", total=1000.0, txn_date=date(2025, 1, 1))
    early = _doc("inv-1", kind="invoice", total=1000.0, txn_date=date(2024, 12, 30))
    late = _doc(
        "inv-2",
        kind="invoice",
        total=1000.0,
        txn_date=date(2025, 1, 1) + timedelta(days=200),
    )

    covering = find_invoices_covering_order(
        order, [early, late], tolerance=0.05, lag_days=180
    )

    assert covering == []


def test_unreferenced_invoice_matches_by_lines() -> None:
    order = _doc(
        "so-1",
        total=1000.0,
        txn_date=date(2025, 1, 1),
        lines=(LedgerLine(item="Bracket-A", quantity=10, amount=1000.0),),
    )
    invoice = _doc(
        "inv-1",
        kind="invoice",
        total=1080.0,
        txn_date=date(2025, 1, 3),
        lines=(LedgerLine(item="bracket a", quantity=10, amount=1080.0),),
    )

    covering = find_invoices_covering_order(
        order, [invoice], tolerance=0.05, lag_days=180
    )

    assert covering == [invoice]


def _widget_order(doc_id: str, ref: str) -> LedgerDocument:
    return _doc(
        doc_id,
        ref_number=ref,
        total=500.0,
        txn_date=date(2025, 1, 1),
        lines=(LedgerLine(item="Widget", quantity=5, amount=500.0),),
    )


def test_invoice_linked_elsewhere_never_covers_by_amount() -> None:
    first = _widget_order("so-1", "SO-100")
    second = _widget_order("so-2", "SO-101")
    invoice = _doc(
        "inv-1",
        kind="invoice",
        total=500.0,
        txn_date=date(2025, 1, 5),
        lines=(LedgerLine(item="Widget", quantity=5, amount=500.0),),
        linked_ids=("so-1",),
    )

    assert find_invoices_covering_order(
        first, [invoice], tolerance=0.05, lag_days=180
    ) == [invoice]
    assert (
        find_invoices_covering_order(second, [invoice], tolerance=0.05, lag_days=180)
        == []
    )


def test_invoice_naming_another_order_is_skipped() -> None:
    first = _widget_order("so-1", "SO-100")
    second = _widget_order("so-2", "SO-101")
    invoice = _doc(
        "inv-1", kind="invoice", memo="SO-100", total=500.0, txn_date=date(2025, 1, 5)
    )

    covering = find_invoices_covering_order(
        second,
        [invoice],
        tolerance=0.05,
        lag_days=180,
        other_orders=[first, second],
    )

    assert covering == []


# HTTP client -----------------------------------------------------------------


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    clock: Callable[[], datetime] | None = None,
) -> HttpLedgerClient:
    return HttpLedgerClient(
        LedgerSettings(base_url="https://ledger.test/api", api_key="secret"),
        transport=httpx.MockTransport(handler),
        retry=RetryPolicy(
            stage="ledger",
            max_attempts=2,
            jitter=0.0,
            retry_on=(httpx.TransportError,),
            sleep_fn=None,
        ),
        clock=clock or (lambda: datetime.now(timezone.utc)),
    )


def test_customers_are_paginated_and_cached() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.params.get("cursor") == "p2":
            return httpx.Response(
                200, json={"data": [{"id": "c-2", "companyName": "Contoso"}]}
            )
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "id": "c-1",
                        "fullName": "Northwind",
                        "email": "AP@north.com; ops@north.com",
                    }
                ],
                "nextCursor": "p2",
            },
        )

    now = datetime(2025, 6, 2, tzinfo=timezone.utc)
    client = _client(handler, lambda: now)

    customers = client.list_customers()
    client.list_customers()

    assert [c.id for c in customers] == ["c-1", "c-2"]
    assert customers[0].emails == ("ap@north.com", "ops@north.com")
    assert customers[1].name == "Contoso"
    assert len(requests) == 2
    assert requests[0].headers["Authorization"] == "Bearer secret"
    assert requests[0].url.path == "/api/customers"

    client.refresh_customers()
    client.list_customers()
    assert len(requests) == 4


def test_documents_are_converted_and_filtered() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/sales-orders"
        assert request.url.params["customerIds"] == "c-1"
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "id": "so-1",
                        "refNumber": "SO-1",
                        "purchaseOrderNumber": "7781",
                        "totalAmount": 500,
                        "transactionDate": "2025-06-01",
                        "lines": [{"description": "Bracket", "quantity": 5}],
                    },
                    {"id": "so-2", "isManuallyClosed": True},
                ]
            },
        )

    documents = _client(handler).list_documents("c-1", "sales_order", open_only=True)

    assert [d.id for d in documents] == ["so-1"]
    assert documents[0].txn_date == date(2025, 6, 1)
    assert documents[0].lines[0].item == "Bracket"
    assert documents[0].customer_id == "c-1"


def test_http_errors_become_ledger_errors() -> None:
    client = _client(lambda request: httpx.Response(500, json={}))

    with pytest.raises(LedgerError):
        client.list_customers()


def test_transport_errors_are_retried_then_raised() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LedgerError):
        _client(handler).list_documents("c-1", "invoice")
    assert calls["count"] == 2


def test_unknown_document_kind_is_rejected() -> None:
    with pytest.raises(ValueError):
        _client(lambda request: httpx.Response(200, json={})).list_documents(
            "c-1", "bill"
        )


def test_missing_base_url_is_rejected() -> None:
    with pytest.raises(LedgerError):
        HttpLedgerClient(LedgerSettings())
