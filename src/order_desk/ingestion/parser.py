"""Parse raw RFC822 messages into core message models."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime

from order_desk.core.datetime_utils import ensure_utc
from order_desk.core.models import INBOUND, OUTBOUND, AttachmentMeta, Message
from order_desk.correlation.headers import is_internal, parse_references


class MessageParser:
    """Convert raw email payloads into :class:`Message` objects.

    Direction is derived from the sender: mail from one of ``our_domains``
    is outbound, everything else inbound.
    """

    def __init__(self, our_domains: Sequence[str]) -> None:
        """Prepare the parser for the given internal domains."""
        self._parser = BytesParser(policy=policy.default)
        self._our_domains = list(our_domains)

    def parse(self, uid: str, payload: bytes) -> Message:
        """Parse raw RFC822 bytes into a :class:`Message`."""
        message = self._parser.parsebytes(payload)
        sender_name, sender = _take_first_address(message.get("From"))
        recipients = tuple(
            _extract_addresses(
                [*message.get_all("To", []), *message.get_all("Cc", [])]
            )
        )
        direction = OUTBOUND if is_internal(sender, self._our_domains) else INBOUND
        return Message(
            uid=uid,
            direction=direction,
            sender=sender,
            sender_name=sender_name,
            recipients=recipients,
            subject=_header(message, "Subject"),
            body=_extract_text(message),
            sent_at=_try_parse_datetime(message.get("Date")),
            message_id=_header(message, "Message-ID"),
            in_reply_to=_header(message, "In-Reply-To"),
            references=tuple(parse_references(_header(message, "References"))),
            attachments=tuple(_collect_attachments(message)),
        )


def _header(message: EmailMessage, name: str) -> str | None:
    value = message.get(name)
    return str(value) if value else None


def _extract_addresses(headers: Iterable[str]) -> Iterable[str]:
    for _, email_address in getaddresses([str(header) for header in headers]):
        if email_address:
            yield email_address.lower()


def _take_first_address(header_value: str | None) -> tuple[str | None, str | None]:
    if header_value is None:
        return None, None
    for name, address in getaddresses([str(header_value)]):
        if address:
            return (name or None), address.lower()
    return None, None


def _extract_text(message: EmailMessage) -> str | None:
    chunks: list[str] = []
    for part in message.walk():
        if part.is_multipart() or part.get_content_disposition() == "attachment":
            continue
        if part.get_content_type() != "text/plain":
            continue
        try:
            content = part.get_content()
        except LookupError:
            continue
        if isinstance(content, str) and content.strip():
            chunks.append(content.strip())
    return "\n\n".join(chunks) or None


def _collect_attachments(message: EmailMessage) -> Iterable[AttachmentMeta]:
    for part in message.iter_attachments():
        payload = part.get_payload(decode=True) or b""
        content_id = part.get("Content-ID")
        yield AttachmentMeta(
            filename=part.get_filename(),
            content_type=part.get_content_type(),
            size=len(payload) if payload else None,
            content_id=str(content_id).strip("<> ") if content_id else None,
        )


def _try_parse_datetime(header_value: str | None) -> datetime | None:
    if header_value is None:
        return None
    try:
        return ensure_utc(parsedate_to_datetime(str(header_value)))
    except (TypeError, ValueError):
        return None


__all__ = ["MessageParser"]
