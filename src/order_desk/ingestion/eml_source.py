"""Message source reading ``.eml`` files from a directory."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from order_desk.core.datetime_utils import to_utc, utcnow
from order_desk.core.models import Message

from .parser import MessageParser

LOGGER = logging.getLogger(__name__)


class EmlDirectorySource:
    """Serve messages stored as one ``.eml`` file each.

    The file stem is the message uid. Undated messages are placed at the
    time they are read.
    """

    def __init__(self, directory: Path, parser: MessageParser) -> None:
        """Read messages from ``directory`` using ``parser``."""
        self._directory = directory
        self._parser = parser

    def fetch_messages(self, start: datetime, end: datetime) -> list[Message]:
        """Return parsed messages whose timestamp falls in ``[start, end)``."""
        lower = to_utc(start)
        upper = to_utc(end)
        messages: list[Message] = []
        for path in sorted(self._directory.glob("*.eml")):
            try:
                message = self._parser.parse(path.stem, path.read_bytes())
            except OSError as exc:
                LOGGER.warning("Skipping unreadable message %s: %s", path, exc)
                continue
            stamp = message.sent_at or utcnow()
            if lower <= stamp < upper:
                messages.append(message)
        LOGGER.debug("Read %d message(s) from %s", len(messages), self._directory)
        return messages


__all__ = ["EmlDirectorySource"]
