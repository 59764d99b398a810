"""Tests for the ``.eml`` directory message source."""

from __future__ import annotations

from datetime import datetime, timezone
from email.message import EmailMessage
from pathlib import Path

from order_desk.ingestion import EmlDirectorySource, MessageParser


def _write(directory: Path, name: str, date: str, subject: str) -> None:
    message = EmailMessage()
    message["From"] = "buyer@customer.com"
    message["To"] = "sales@acme.com"
    message["Subject"] = subject
    message["Date"] = date
    message.set_content("body")
    (directory / f"{name}.eml").write_bytes(message.as_bytes())


def test_fetch_returns_messages_inside_window(tmp_path: Path) -> None:
    _write(tmp_path, "b", "Mon, 02 Jun 2025 10:00:00 +0000", "inside")
    _write(tmp_path, "a", "Sun, 01 Jun 2025 10:00:00 +0000", "before")
    _write(tmp_path, "c", "Tue, 03 Jun 2025 00:00:00 +0000", "at end")
    (tmp_path / "notes.txt").write_text("ignored")
    source = EmlDirectorySource(tmp_path, MessageParser(["acme.com"]))

    messages = source.fetch_messages(
        datetime(2025, 6, 2, tzinfo=timezone.utc),
        datetime(2025, 6, 3, tzinfo=timezone.utc),
    )

    assert [(m.uid, m.subject) for m in messages] == [("b", "inside")]


def test_files_are_read_in_name_order(tmp_path: Path) -> None:
    for name in ("m2", "m1", "m3"):
        _write(tmp_path, name, "Mon, 02 Jun 2025 10:00:00 +0000", name)
    source = EmlDirectorySource(tmp_path, MessageParser(["acme.com"]))

    messages = source.fetch_messages(
        datetime(2025, 6, 1, tzinfo=timezone.utc),
        datetime(2025, 6, 3, tzinfo=timezone.utc),
    )

    assert [m.uid for m in messages] == ["m1", "m2", "m3"]


def test_empty_directory_yields_nothing(tmp_path: Path) -> None:
    source = EmlDirectorySource(tmp_path, MessageParser([]))

    assert (
        source.fetch_messages(
            datetime(2025, 6, 1, tzinfo=timezone.utc),
            datetime(2025, 6, 3, tzinfo=timezone.utc),
        )
        == []
    )
