"""Deterministic text patterns backing the classification rules."""

from __future__ import annotations

import re
from collections.abc import Iterable

from order_desk.core.models import AttachmentMeta, Message

_AUTOMATED = re.compile(
    r"newsletter|noreply|no-reply|donotreply|do-not-reply|automated|notification"
    r"|alert@|mailer-daemon|postmaster",
    re.IGNORECASE,
)

_BILLING_SUBJECT = re.compile(
    r"invoice|quotation|quote|estimate|\best_|\binv_", re.IGNORECASE
)

_PO_SUBJECT = re.compile(
    r"\bpo\s*number|\bpo\s*attached|\bpo\s*#|purchase\s+order|\bp\.o\.?\s*#?\s*\d+"
    r"|\bpo\s*-?\s*\d+",
    re.IGNORECASE,
)

_PO_FILENAME = re.compile(
    r"(?:^|[^a-z])(?:po|p\.o\.?)[\s_#-]*\d{3,}|purchase[\s_-]*order", re.IGNORECASE
)

_RFQ = re.compile(
    r"\brfq\b|request\s+for\s+(?:a\s+)?(?:quote|quotation|pricing|price)"
    r"|quot(?:e|ation)\s+request|please\s+(?:send\s+(?:a\s+|us\s+a\s+)?)?quote"
    r"|need\s+(?:a\s+)?(?:quote|pricing)|price\s+request|pricing\s+request",
    re.IGNORECASE,
)

_QUOTATION_SUBJECT = re.compile(
    r"\b(?:quotation|quote|estimate)\b\s*(?:#|no\.?|number)?\s*:?\s*"
    r"[a-z]{0,3}[-_]?\d+",
    re.IGNORECASE,
)

_SIGNATURE_SPLIT = re.compile(
    r"\n\s*[-_]{2,}|\n\s*sent from|\n\s*get outlook|\n\s*\[|\n\s*>"
    r"|\n\s*on .{0,200}wrote:|\n\s*-+\s*original message|\n\s*from:\s",
    re.IGNORECASE,
)

_ACK_CORE = (
    r"(?:(?:great|ok|okay|perfect|awesome),?\s+)?"
    r"(?:thanks?|thank\s+you|thanks?\s+so\s+much|thank\s+you\s+so\s+much"
    r"|many\s+thanks|much\s+appreciated|appreciated|got\s+it|sounds\s+good"
    r"|perfect|received|ok|okay|will\s+do|noted|acknowledged|awesome|great)"
)
_ACK_ONLY = re.compile(
    rf"{_ACK_CORE}(?:\s*[,!.]?\s*(?:thanks?|thank\s+you))?\s*[,!.]*\s*(?::\)|:-\))?"
)

_CLOSING_LINE = re.compile(
    r"(?:best|regards|best\s+regards|kind\s+regards|warm\s+regards|cheers"
    r"|sincerely|thanks|thank\s+you|br|rgds|cordially)\s*[,.!]?",
    re.IGNORECASE,
)
_NAME_LINE = re.compile(r"[A-Z][A-Za-z'.-]*(?:\s+[A-Z][A-Za-z'.-]*)?\s*[,.]?")
MAX_NAME_LINE = 24

_PO_NUMBER = re.compile(
    r"\b(?:p\.?o\.?(?![a-z])|purchase\s+order)\s*(?:number|no\.?|#)?"
    r"\s*[:#]?\s*([a-z0-9][a-z0-9-]{2,})",
    re.IGNORECASE,
)

_IMAGE_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tif", ".tiff", ".webp"
)
_SIGNATURE_NAME = re.compile(
    r"logo|signature|^image\d*\.|^outlook-|smime\.p7s|winmail\.dat|^att\d+\.",
    re.IGNORECASE,
)
_SIGNATURE_TYPES = ("application/pkcs7-signature", "application/x-pkcs7-signature")


def is_automated(message: Message | None) -> bool:
    """Return ``True`` for newsletters, no-reply senders and bounces."""
    if message is None:
        return False
    return bool(
        _AUTOMATED.search(message.sender or "")
        or _AUTOMATED.search(message.subject or "")
    )


def is_billing_subject(subject: str | None) -> bool:
    """Return ``True`` when the subject names an invoice, quote or estimate."""
    return bool(subject and _BILLING_SUBJECT.search(subject))


def mentions_purchase_order(
    subject: str | None, filenames: Iterable[str] = ()
) -> bool:
    """Return ``True`` when the subject or an attachment name signals a PO."""
    if subject and _PO_SUBJECT.search(subject):
        return True
    return any(_PO_FILENAME.search(name) for name in filenames if name)


def mentions_quote_request(*texts: str | None) -> bool:
    """Return ``True`` when any text asks for a quotation."""
    return any(text and _RFQ.search(text) for text in texts)


def is_quotation_subject(subject: str | None) -> bool:
    """Return ``True`` for subjects such as ``Quotation #1049``."""
    return bool(subject and _QUOTATION_SUBJECT.search(subject))


def strip_signature(body: str | None) -> str:
    """Return the text before the first signature or quoted-reply marker."""
    if not body:
        return ""
    text = body.replace("\r\n", "\n").replace("\r", "\n")
    return _SIGNATURE_SPLIT.split("\n" + text, maxsplit=1)[0].strip()


def is_acknowledgment(body: str | None) -> bool:
    """Return ``True`` when the body says nothing beyond a short thanks.

    The whole pre-signature text must be the acknowledgment, optionally
    followed by one closing line and one short name line, so polite openings
    such as "Thank you, please find attached" never qualify.
    """
    text = strip_signature(body)
    if not text:
        return False
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    head, tail = lines[0], lines[1:]
    if tail and _CLOSING_LINE.fullmatch(tail[0]):
        tail = tail[1:]
    if len(tail) > 1:
        return False
    if tail and not (
        len(tail[0]) <= MAX_NAME_LINE and _NAME_LINE.fullmatch(tail[0])
    ):
        return False
    return bool(_ACK_ONLY.fullmatch(head.lower()))


def is_real_attachment(attachment: AttachmentMeta, *, min_bytes: int) -> bool:
    """Return ``True`` for a material, non-image, non-signature attachment."""
    content_type = (attachment.content_type or "").lower()
    filename = (attachment.filename or "").lower()
    if content_type.startswith("image/") or filename.endswith(_IMAGE_EXTENSIONS):
        return False
    if content_type in _SIGNATURE_TYPES or _SIGNATURE_NAME.search(filename):
        return False
    if attachment.size is not None and attachment.size < min_bytes:
        return False
    return True


def has_real_attachment(message: Message | None, *, min_bytes: int) -> bool:
    """Return ``True`` when ``message`` carries any real attachment."""
    if message is None:
        return False
    return any(
        is_real_attachment(attachment, min_bytes=min_bytes)
        for attachment in message.attachments
    )


def extract_po_number(*texts: str | None) -> str | None:
    """Return the first purchase-order number mentioned in ``texts``."""
    for text in texts:
        if not text:
            continue
        for match in _PO_NUMBER.finditer(text):
            candidate = match.group(1)
            if any(char.isdigit() for char in candidate):
                return candidate.upper()
    return None


def is_pdf(attachment: AttachmentMeta) -> bool:
    """Return ``True`` for PDF attachments."""
    content_type = (attachment.content_type or "").lower()
    filename = (attachment.filename or "").lower()
    return "pdf" in content_type or filename.endswith(".pdf")


__all__ = [
    "extract_po_number",
    "has_real_attachment",
    "is_acknowledgment",
    "is_automated",
    "is_billing_subject",
    "is_pdf",
    "is_quotation_subject",
    "is_real_attachment",
    "mentions_purchase_order",
    "mentions_quote_request",
    "strip_signature",
]
