"""Tests for the cached document analyzer."""

from __future__ import annotations

from datetime import datetime, timezone

from order_desk.core.interfaces import DocumentAnalysisError
from order_desk.core.models import (
    INBOUND,
    OUTBOUND,
    AttachmentMeta,
    DocumentAnalysis,
    Message,
    Thread,
)
from order_desk.intelligence import CachingDocumentAnalyzer
from order_desk.intelligence.documents import content_key

SENT = datetime(2025, 4, 1, 12, 0, tzinfo=timezone.utc)
PDF = AttachmentMeta("order.pdf", "application/pdf", 80_000)


class StubAnalyzer:
    def __init__(self, result: DocumentAnalysis | None = None) -> None:
        self.result = result or DocumentAnalysis(
            relevant=True,
            document_type="purchase_order",
            po_number="PO-7781",
            total=1250.0,
        )
        self.calls = 0
        self.fail = False

    def analyze(self, message: Message, attachment: AttachmentMeta) -> DocumentAnalysis:
        self.calls += 1
        if self.fail:
            raise DocumentAnalysisError("vision model unavailable")
        return self.result


class MemoryCache:
    def __init__(self) -> None:
        self.entries: dict[str, DocumentAnalysis] = {}

    def fetch_document_analysis(self, key: str) -> DocumentAnalysis | None:
        return self.entries.get(key)

    def save_document_analysis(self, key: str, analysis: DocumentAnalysis) -> None:
        self.entries[key] = analysis


def _message(
    uid: str,
    *,
    direction: str = INBOUND,
    subject: str = "New order",
    attachments: tuple[AttachmentMeta, ...] = (PDF,),
) -> Message:
    return Message(
        uid=uid,
        direction=direction,
        sender="jane@customer.com",
        recipients=("sales@acme.com",),
        subject=subject,
        body="See attached",
        sent_at=SENT,
        message_id=f"<{uid}@mail>",
        attachments=attachments,
    )


def test_analyzer_called_once_per_attachment() -> None:
    analyzer = StubAnalyzer()
    cache = MemoryCache()
    documents = CachingDocumentAnalyzer(analyzer, cache)
    message = _message("1")

    first = documents.analyze(message, PDF)
    second = documents.analyze(message, PDF)

    assert first == second
    assert analyzer.calls == 1
    assert content_key(message, PDF) in cache.entries


def test_not_relevant_results_are_cached_across_instances() -> None:
    analyzer = StubAnalyzer(DocumentAnalysis(relevant=False))
    cache = MemoryCache()
    message = _message("1")

    CachingDocumentAnalyzer(analyzer, cache).analyze(message, PDF)
    again = CachingDocumentAnalyzer(analyzer, cache).analyze(message, PDF)

    assert again == DocumentAnalysis(relevant=False)
    assert analyzer.calls == 1


def test_failures_are_not_cached() -> None:
    analyzer = StubAnalyzer()
    analyzer.fail = True
    cache = MemoryCache()
    documents = CachingDocumentAnalyzer(analyzer, cache)

    assert documents.analyze(_message("1"), PDF) is None
    analyzer.fail = False
    assert documents.analyze(_message("1"), PDF) is not None
    assert analyzer.calls == 2


def test_content_id_is_preferred_identity() -> None:
    attachment = AttachmentMeta("a.pdf", "application/pdf", 10, content_id="cid-42")
    assert content_key(_message("1"), attachment) == "cid-42"
    assert content_key(_message("1"), PDF) != content_key(_message("2"), PDF)


def test_purchase_order_details_use_first_inbound_pdf() -> None:
    analyzer = StubAnalyzer()
    thread = Thread(
        key="t-1",
        messages=[
            _message("0", direction=OUTBOUND),
            _message("1"),
            _message("2"),
        ],
    )

    details = CachingDocumentAnalyzer(analyzer, MemoryCache()).purchase_order_details(
        thread
    )

    assert details.po_number == "PO-7781"
    assert details.total == 1250.0
    assert analyzer.calls == 1


def test_purchase_order_details_fall_back_to_subject() -> None:
    thread = Thread(key="t-1", messages=[_message("1", subject="PO#445210 attached")])

    without_analyzer = CachingDocumentAnalyzer(None, MemoryCache())
    details = without_analyzer.purchase_order_details(thread)

    assert details.relevant is False
    assert details.po_number == "445210"

    relevant_without_number = StubAnalyzer(
        DocumentAnalysis(relevant=True, document_type="purchase_order", total=99.0)
    )
    enriched = CachingDocumentAnalyzer(
        relevant_without_number, MemoryCache()
    ).purchase_order_details(thread)
    assert enriched.po_number == "445210"
    assert enriched.total == 99.0
