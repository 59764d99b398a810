"""Tests for RFC822 parsing into messages."""

from __future__ import annotations

from datetime import datetime, timezone
from email.message import EmailMessage

from order_desk.core.models import INBOUND, OUTBOUND
from order_desk.ingestion import MessageParser


def _payload(sender: str = "Jane Buyer <Jane@Customer.com>") -> bytes:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = "sales@acme.com"
    message["Cc"] = "Ops <ops@customer.com>"
    message["Subject"] = "RE: PO 7781"
    message["Date"] = "Mon, 02 Jun 2025 11:30:00 +0200"
    message["Message-ID"] = "<1234@customer.com>"
    message["In-Reply-To"] = "<0999@acme.com>"
    message["References"] = "<0001@customer.com> <0999@acme.com>"
    message.set_content("Please confirm the order.")
    message.add_attachment(
        b"%PDF-1.4 order",
        maintype="application",
        subtype="pdf",
        filename="po-7781.pdf",
    )
    return message.as_bytes()


def test_parser_extracts_headers_body_and_attachments() -> None:
    parsed = MessageParser(["acme.com"]).parse("101", _payload())

    assert parsed.uid == "101"
    assert parsed.direction == INBOUND
    assert parsed.sender == "jane@customer.com"
    assert parsed.sender_name == "Jane Buyer"
    assert parsed.recipients == ("sales@acme.com", "ops@customer.com")
    assert parsed.subject == "RE: PO 7781"
    assert parsed.sent_at == datetime(2025, 6, 2, 9, 30, tzinfo=timezone.utc)
    assert parsed.message_id == "<1234@customer.com>"
    assert parsed.in_reply_to == "<0999@acme.com>"
    assert parsed.references == ("0001@customer.com", "0999@acme.com")
    assert parsed.body == "Please confirm the order."
    assert len(parsed.attachments) == 1
    attachment = parsed.attachments[0]
    assert attachment.filename == "po-7781.pdf"
    assert attachment.content_type == "application/pdf"
    assert attachment.size == len(b"%PDF-1.4 order")


def test_mail_from_our_domain_is_outbound() -> None:
    parsed = MessageParser(["acme.com"]).parse(
        "102", _payload("Sales <sales@mail.acme.com>")
    )

    assert parsed.direction == OUTBOUND


def test_missing_headers_are_tolerated() -> None:
    payload = b"Content-Type: text/plain\r\n\r\nhello\r\n"

    parsed = MessageParser(["acme.com"]).parse("103", payload)

    assert parsed.sender is None
    assert parsed.direction == INBOUND
    assert parsed.sent_at is None
    assert parsed.subject is None
    assert parsed.references == ()
    assert parsed.attachments == ()
