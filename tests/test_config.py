"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from order_desk.core.config import load_app_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure each test sees a fresh settings instance."""

    load_app_settings.cache_clear()


def test_defaults_loaded_without_env_file() -> None:
    """Default values should be returned when no overrides are present."""

    settings = load_app_settings(include_environment=False)
    assert settings.storage.db_path == Path("./order_desk.db")
    assert settings.classification.batch_size == 20
    assert settings.classification.subject_merge_min_length == 5
    assert settings.alerts.escalation_hours == 4.0
    assert settings.alerts.lease_ttl_seconds == 900
    assert settings.ledger.base_url is None


def test_env_file_overrides(tmp_path: Path) -> None:
    """Values defined in an env file should override defaults."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "ORDER_DESK_ALERTS__ESCALATION_HOURS=6\n"
        "ORDER_DESK_CLASSIFICATION__OUR_DOMAINS=Acme.com, acme.co.uk\n"
        "ORDER_DESK_LLM__ENABLED=false\n"
        "ORDER_DESK_LEDGER__API_KEY=\n",
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, include_environment=False)
    assert settings.alerts.escalation_hours == 6.0
    assert settings.classification.our_domains == ["acme.com", "acme.co.uk"]
    assert settings.llm.enabled is False
    assert settings.ledger.api_key is None


def test_process_environment_wins_over_env_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / "test.env"
    env_file.write_text("ORDER_DESK_ALERTS__LOOKBACK_HOURS=3\n", encoding="utf-8")
    monkeypatch.setenv("ORDER_DESK_ALERTS__LOOKBACK_HOURS", "5")

    settings = load_app_settings(env_file=env_file)
    assert settings.alerts.lookback_hours == 5.0


def test_unrelated_variables_are_ignored(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("OTHER_APP_STORAGE__DB_PATH", "/tmp/elsewhere.db")

    settings = load_app_settings(env_file=tmp_path / "missing.env")
    assert settings.storage.db_path == Path("./order_desk.db")
