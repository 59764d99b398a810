"""Tests for the deterministic classification patterns."""

from __future__ import annotations

import pytest

from order_desk.core.models import AttachmentMeta
from order_desk.intelligence.patterns import (
    extract_po_number,
    is_acknowledgment,
    is_billing_subject,
    is_quotation_subject,
    is_real_attachment,
    mentions_purchase_order,
    mentions_quote_request,
    strip_signature,
)


@pytest.mark.parametrize(
    "body",
    [
        "Thanks!",
        "thank you",
        "Got it, thanks.",
        "Sounds good",
        "Perfect, thank you!",
        "Thanks,\nJane",
        "Thanks!\n\n--\nJane Doe\nPurchasing Manager\n+1 555 0100",
        "Great, thanks\nBest regards,\nJane Doe",
    ],
)
def test_acknowledgment_only_bodies(body: str) -> None:
    assert is_acknowledgment(body) is True


@pytest.mark.parametrize(
    "body",
    [
        "Thank you, please find attached our PO.",
        "Thanks! Can you also send the updated drawings?",
        "Got it. When will this ship?",
        "Thanks\nPlease confirm the delivery date for line 3.",
        "Thanks\nNeed Pricing Today",
        "Thanks\nRegards,\nJane\nSend Samples",
        "",
        None,
    ],
)
def test_bodies_that_are_not_acknowledgments(body: str | None) -> None:
    assert is_acknowledgment(body) is False


def test_strip_signature_drops_quoted_reply() -> None:
    body = "Sounds good\n\nOn Tue, Mar 4, 2025 Jane wrote:\n> Please quote 40 pcs"
    assert strip_signature(body) == "Sounds good"


@pytest.mark.parametrize(
    ("subject", "filenames", "expected"),
    [
        ("PO#445210 attached,", (), True),
        ("Purchase Order for brackets", (), True),
        ("New order", ("PO_88123.pdf",), True),
        ("Question about delivery", ("drawing.pdf",), False),
        ("Report on positions", (), False),
    ],
)
def test_mentions_purchase_order(
    subject: str, filenames: tuple[str, ...], expected: bool
) -> None:
    assert mentions_purchase_order(subject, filenames) is expected


def test_quote_request_patterns() -> None:
    assert mentions_quote_request("RFQ steel plates")
    assert mentions_quote_request(None, "Could you please send a quote for 200 pcs?")
    assert not mentions_quote_request("Here's your quote Q-1049")


def test_quotation_and_billing_subjects() -> None:
    assert is_quotation_subject("Quotation #1049 from Acme")
    assert is_quotation_subject("Estimate EST-221")
    assert not is_quotation_subject("Quote request")
    assert is_billing_subject("Invoice 5521")
    assert not is_billing_subject("PO for vendor X raw materials")


def test_extract_po_number() -> None:
    assert extract_po_number("PO#445210 attached,") == "445210"
    assert extract_po_number(None, "Purchase Order No. 7781-B") == "7781-B"
    assert extract_po_number("Please review") is None


@pytest.mark.parametrize(
    ("attachment", "expected"),
    [
        (AttachmentMeta("po.pdf", "application/pdf", 52_000), True),
        (AttachmentMeta("logo.png", "image/png", 52_000), False),
        (AttachmentMeta("image001.jpg", "image/jpeg", 3_000), False),
        (AttachmentMeta("smime.p7s", "application/pkcs7-signature", 4_000), False),
        (AttachmentMeta("tiny.txt", "text/plain", 20), False),
    ],
)
def test_real_attachment_detection(attachment: AttachmentMeta, expected: bool) -> None:
    assert is_real_attachment(attachment, min_bytes=1024) is expected
