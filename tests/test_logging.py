"""Tests for logging utilities."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from order_desk.core.config import LoggingSettings
from order_desk.core.logging import AUDIT_LOGGER_NAME, audit, configure_logging


def test_configure_logging_sets_root_level() -> None:
    """configure_logging should set the root logger level according to settings."""

    settings = LoggingSettings(level="DEBUG", structured=False)
    configure_logging(settings)
    assert logging.getLogger().level == logging.DEBUG


def test_audit_events_written_as_json_lines(tmp_path: Path) -> None:
    audit_path = tmp_path / "logs" / "audit.jsonl"
    configure_logging(LoggingSettings(level="INFO", audit_path=audit_path))

    audit("safety_net_override", thread_key="t-1", forced="po_received")
    for handler in logging.getLogger(AUDIT_LOGGER_NAME).handlers:
        handler.flush()

    lines = audit_path.read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "safety_net_override"
    assert record["thread_key"] == "t-1"
    assert record["forced"] == "po_received"

    configure_logging(LoggingSettings(level="INFO"))
