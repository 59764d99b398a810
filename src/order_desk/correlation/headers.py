"""Helpers for reading correlation headers, subjects and addresses."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from email.utils import parseaddr

from order_desk.core.models import Message

_REPLY_PREFIX = re.compile(
    r"^\s*(?:re|fwd?|fw|aw|wg)\s*(?:\[\d+\])?\s*:\s*", re.IGNORECASE
)
_TAG_PREFIX = re.compile(r"^\s*\[[^\]]*\]\s*")
_WHITESPACE = re.compile(r"\s+")
_MESSAGE_ID = re.compile(r"<([^<>\s]+)>")


def normalize_subject(subject: str | None) -> str:
    """Strip reply/forward prefixes and bracketed tags, case-fold and trim."""
    if not subject:
        return ""
    text = subject
    while True:
        stripped = _TAG_PREFIX.sub("", _REPLY_PREFIX.sub("", text, count=1), count=1)
        if stripped == text:
            break
        text = stripped
    return _WHITESPACE.sub(" ", text).strip().casefold()


def normalize_message_id(value: str | None) -> str | None:
    """Return a bare message identifier, or ``None`` when it is unusable."""
    if not value:
        return None
    candidate = value.strip()
    bracketed = _MESSAGE_ID.search(candidate)
    if bracketed:
        candidate = bracketed.group(1)
    candidate = candidate.strip("<>").strip()
    if not candidate or any(char.isspace() for char in candidate):
        return None
    return candidate


def parse_references(values: Iterable[str] | str | None) -> list[str]:
    """Return usable identifiers from a references header, preserving order."""
    if not values:
        return []
    if isinstance(values, str):
        raw: list[str] = _MESSAGE_ID.findall(values) or values.split()
    else:
        raw = list(values)
    cleaned: list[str] = []
    for item in raw:
        identifier = normalize_message_id(item)
        if identifier and identifier not in cleaned:
            cleaned.append(identifier)
    return cleaned


def address_of(value: str | None) -> str | None:
    """Return the lower-cased bare address from ``value``."""
    if not value:
        return None
    _, address = parseaddr(value)
    address = address.strip().lower()
    return address if "@" in address else None


def domain_of(value: str | None) -> str | None:
    """Return the domain part of an address."""
    address = address_of(value)
    if address is None:
        return None
    return address.rsplit("@", 1)[1]


def is_internal(address: str | None, our_domains: Sequence[str]) -> bool:
    """Return ``True`` when ``address`` belongs to one of ``our_domains``."""
    domain = domain_of(address)
    if domain is None:
        return False
    return any(domain == own or domain.endswith("." + own) for own in our_domains)


def identify_contact(
    messages: Sequence[Message], our_domains: Sequence[str]
) -> tuple[str | None, str | None]:
    """Return ``(name, email)`` of the external party in a conversation.

    The first inbound sender outside our domains wins; otherwise the first
    external recipient of an outbound message is used.
    """
    for message in messages:
        if message.is_inbound:
            address = address_of(message.sender)
            if address and not is_internal(address, our_domains):
                return (message.sender_name or address, address)
        else:
            for recipient in message.recipients:
                address = address_of(recipient)
                if address and not is_internal(address, our_domains):
                    return (None, address)
    return (None, None)


__all__ = [
    "address_of",
    "domain_of",
    "identify_contact",
    "is_internal",
    "normalize_message_id",
    "normalize_subject",
    "parse_references",
]
