"""HTTP client for the accounting ledger service."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from order_desk.core.config import LedgerSettings
from order_desk.core.datetime_utils import utcnow
from order_desk.core.interfaces import LedgerError
from order_desk.core.models import LedgerCustomer, LedgerDocument, LedgerLine
from order_desk.core.retry import RetryPolicy

LOGGER = logging.getLogger(__name__)

DOCUMENT_KINDS = ("sales_order", "estimate", "invoice")

_ENDPOINTS = {
    "sales_order": "sales-orders",
    "estimate": "estimates",
    "invoice": "invoices",
}
_PAGE_SIZE = 150
_MAX_PAGES = 100


class _RateLimited(httpx.HTTPError):
    """Raised for HTTP 429 so the retry policy backs off."""


class _CustomerPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str | None = None
    full_name: str | None = Field(default=None, alias="fullName")
    company_name: str | None = Field(default=None, alias="companyName")
    email: str | None = None
    emails: list[str] = Field(default_factory=list)


class _LinePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    item: str | None = Field(default=None, alias="description")
    quantity: float | None = None
    amount: float | None = None


class _DocumentPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    customer_id: str | None = Field(default=None, alias="customerId")
    ref_number: str | None = Field(default=None, alias="refNumber")
    memo: str | None = None
    po_number: str | None = Field(default=None, alias="purchaseOrderNumber")
    total: float | None = Field(default=None, alias="totalAmount")
    txn_date: date | None = Field(default=None, alias="transactionDate")
    is_closed: bool = Field(default=False, alias="isManuallyClosed")
    fully_invoiced: bool = Field(default=False, alias="isFullyInvoiced")
    linked_ids: list[str] = Field(default_factory=list, alias="linkedTransactionIds")
    lines: list[_LinePayload] = Field(default_factory=list)


class HttpLedgerClient:
    """Read customers and documents from a paginated JSON ledger API."""

    def __init__(
        self,
        settings: LedgerSettings,
        *,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], datetime] = utcnow,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Create the HTTP session; ``transport`` allows injecting a mock."""
        if not settings.base_url:
            raise LedgerError("Ledger base URL is not configured")
        headers = {"Accept": "application/json"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"
        self._client = httpx.Client(
            base_url=settings.base_url.rstrip("/") + "/",
            headers=headers,
            timeout=settings.timeout_seconds,
            transport=transport,
        )
        self._ttl = timedelta(hours=settings.customer_cache_ttl_hours)
        self._clock = clock
        self._retry = retry or RetryPolicy(
            stage="ledger",
            max_attempts=3,
            base_delay=1.0,
            max_delay=8.0,
            retry_on=(httpx.TransportError, _RateLimited),
        )
        self._customers: list[LedgerCustomer] | None = None
        self._customers_loaded_at: datetime | None = None

    def list_customers(self) -> Sequence[LedgerCustomer]:
        """Return active customers, reusing the cached list within its TTL."""
        now = self._clock()
        if (
            self._customers is not None
            and self._customers_loaded_at is not None
            and now - self._customers_loaded_at < self._ttl
        ):
            return self._customers
        LOGGER.info("Fetching ledger customer list")
        customers = [
            _to_customer(item)
            for item in self._paginate("customers", {"status": "active"})
        ]
        self._customers = customers
        self._customers_loaded_at = now
        LOGGER.info("Cached %d ledger customers", len(customers))
        return customers

    def refresh_customers(self) -> None:
        """Drop the cached customer list."""
        self._customers = None
        self._customers_loaded_at = None

    def list_documents(
        self, customer_id: str, kind: str, *, open_only: bool = False
    ) -> Sequence[LedgerDocument]:
        """Return documents of ``kind`` for a customer."""
        if kind not in _ENDPOINTS:
            raise ValueError(f"Unknown ledger document kind: {kind}")
        documents = [
            _to_document(item, kind, customer_id)
            for item in self._paginate(_ENDPOINTS[kind], {"customerIds": customer_id})
        ]
        if open_only:
            documents = [
                doc for doc in documents if not doc.is_closed and not doc.fully_invoiced
            ]
        return documents

    def close(self) -> None:
        """Close the HTTP session."""
        self._client.close()

    def _paginate(self, endpoint: str, params: dict[str, str]) -> list[Any]:
        items: list[Any] = []
        cursor: str | None = None
        for _ in range(_MAX_PAGES):
            query: dict[str, str | int] = {**params, "limit": _PAGE_SIZE}
            if cursor:
                query["cursor"] = cursor
            data = self._get(endpoint, query)
            page = data.get("data") or []
            if not isinstance(page, list):
                raise LedgerError(f"Ledger returned malformed page for {endpoint}")
            items.extend(page)
            cursor = data.get("nextCursor")
            if not cursor:
                return items
        LOGGER.warning(
            "Pagination limit reached for %s; %d records fetched", endpoint, len(items)
        )
        return items

    def _get(self, endpoint: str, params: dict[str, str | int]) -> dict[str, Any]:
        try:
            response = self._retry.execute(self._request, endpoint, params)
        except httpx.HTTPError as exc:
            raise LedgerError(f"Ledger request to {endpoint} failed: {exc}") from exc
        if response.status_code >= 400:
            raise LedgerError(
                f"Ledger API error {response.status_code} for {endpoint}"
            )
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise LedgerError(f"Ledger returned invalid JSON for {endpoint}") from exc
        if not isinstance(data, dict):
            raise LedgerError(f"Ledger returned unexpected payload for {endpoint}")
        return data

    def _request(self, endpoint: str, params: dict[str, str | int]) -> httpx.Response:
        response = self._client.get(endpoint, params=params)
        if response.status_code == 429:
            raise _RateLimited(f"Rate limited on {endpoint}")
        return response


def _to_customer(item: Any) -> LedgerCustomer:
    try:
        payload = _CustomerPayload.model_validate(item)
    except ValidationError as exc:
        raise LedgerError("Ledger customer record is malformed") from exc
    emails = [address.strip().lower() for address in payload.emails if address]
    if payload.email:
        emails.extend(
            part.strip().lower()
            for part in payload.email.replace(";", ",").split(",")
            if part.strip()
        )
    name = payload.full_name or payload.name or payload.company_name or payload.id
    return LedgerCustomer(id=payload.id, name=name, emails=tuple(dict.fromkeys(emails)))


def _to_document(item: Any, kind: str, customer_id: str) -> LedgerDocument:
    try:
        payload = _DocumentPayload.model_validate(item)
    except ValidationError as exc:
        raise LedgerError(f"Ledger {kind} record is malformed") from exc
    return LedgerDocument(
        id=payload.id,
        kind=kind,
        customer_id=payload.customer_id or customer_id,
        ref_number=payload.ref_number,
        po_number=payload.po_number,
        memo=payload.memo,
        total=payload.total,
        txn_date=payload.txn_date,
        is_closed=payload.is_closed,
        fully_invoiced=payload.fully_invoiced,
        linked_ids=tuple(payload.linked_ids),
        lines=tuple(
            LedgerLine(item=line.item, quantity=line.quantity, amount=line.amount)
            for line in payload.lines
        ),
    )


__all__ = ["DOCUMENT_KINDS", "HttpLedgerClient"]
