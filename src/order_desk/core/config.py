"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator


def _split_csv(value: Any) -> Any:
    """Accept comma separated strings for list-valued settings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip().lower() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(part).strip().lower() for part in value if str(part).strip()]
    return value


class LlmSettings(BaseModel):
    """Settings for the local LLM provider backing the thread classifier."""

    enabled: bool = Field(default=True, description="Call the LLM classifier")
    base_url: str = Field(
        default="http://localhost:11434", description="Ollama server URL"
    )
    model: str = Field(default="gpt-oss:20b", description="Model identifier")
    timeout_seconds: int = Field(
        default=60, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for LLM completions",
    )
    max_output_tokens: int | None = Field(
        default=2048,
        ge=32,
        description="Maximum tokens to request from the provider",
    )


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./order_desk.db"), description="SQLite database path"
    )
    busy_timeout_seconds: float = Field(
        default=5.0, ge=0.0, description="Seconds to wait on a locked database"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )
    audit_path: Path | None = Field(
        default=None,
        description="JSON-lines file receiving classification override records",
    )


class SmtpSettings(BaseModel):
    """Settings for delivering alert summaries over SMTP."""

    host: str | None = Field(default=None, description="SMTP hostname")
    port: int = Field(default=587, description="SMTP port")
    username: str | None = Field(default=None, description="SMTP username")
    password: str | None = Field(default=None, description="SMTP password")
    use_tls: bool = Field(default=True, description="Use STARTTLS instead of SSL")
    from_address: str | None = Field(
        default=None, description="Sender address for outgoing summaries"
    )
    timeout_seconds: int = Field(default=30, description="Socket timeout")


class ClassificationSettings(BaseModel):
    """Knobs for thread correlation and classification."""

    our_domains: list[str] = Field(
        default_factory=list,
        description="Domains considered internal; messages from them are outbound",
    )
    batch_size: int = Field(
        default=20, ge=1, description="Threads sent per classifier request"
    )
    batch_attempts: int = Field(
        default=2, ge=1, description="Attempts per classifier batch before fallback"
    )
    body_char_limit: int = Field(
        default=1500, ge=100, description="Per-message body characters in prompts"
    )
    corrections_limit: int = Field(
        default=20, ge=0, description="Recent corrections forwarded as hints"
    )
    min_attachment_bytes: int = Field(
        default=1024,
        ge=0,
        description="Smallest attachment treated as a real document",
    )
    subject_merge_min_length: int = Field(
        default=5,
        ge=0,
        description="Normalized subjects must be longer than this to merge threads",
    )
    context_days: int = Field(
        default=30,
        ge=0,
        description="Earlier days loaded to rebuild threads touched by a window",
    )

    @field_validator("our_domains", mode="before")
    @classmethod
    def normalize_domains(cls, value: Any) -> Any:
        """Allow comma separated domain lists."""
        return _split_csv(value)


class AlertSettings(BaseModel):
    """Settings for the purchase-order alert job."""

    escalation_hours: float = Field(
        default=4.0, gt=0, description="Age at which po_detected alerts escalate"
    )
    lookback_hours: float = Field(
        default=2.0, gt=0, description="Initial detection window without checkpoint"
    )
    lease_ttl_seconds: int = Field(
        default=900, ge=1, description="Lifetime of the job lease"
    )
    trusted_domains: list[str] = Field(
        default_factory=list, description="Sender domains always trusted"
    )
    notify_recipient: str | None = Field(
        default=None, description="Recipient of alert summaries"
    )
    amount_tolerance: float = Field(
        default=0.05, ge=0.0, description="Relative tolerance for amount matches"
    )
    tax_inclusive_tolerance: float = Field(
        default=0.15,
        ge=0.0,
        description="Extra headroom when ledger totals include tax or freight",
    )
    invoice_lag_days: int = Field(
        default=180, ge=0, description="Max days between a sales order and invoice"
    )

    @field_validator("trusted_domains", mode="before")
    @classmethod
    def normalize_domains(cls, value: Any) -> Any:
        """Allow comma separated domain lists."""
        return _split_csv(value)


class LedgerSettings(BaseModel):
    """Connection settings for the accounting ledger service."""

    base_url: str | None = Field(default=None, description="Ledger API base URL")
    api_key: str | None = Field(default=None, description="Ledger API token")
    timeout_seconds: int = Field(default=30, description="Request timeout")
    customer_cache_ttl_hours: float = Field(
        default=24.0, ge=0.0, description="How long the customer list is reused"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    llm: LlmSettings = Field(default_factory=LlmSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    classification: ClassificationSettings = Field(
        default_factory=ClassificationSettings
    )
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)


ENV_PREFIX = "ORDER_DESK_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, str] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AlertSettings",
    "AppSettings",
    "ClassificationSettings",
    "LedgerSettings",
    "LlmSettings",
    "LoggingSettings",
    "SmtpSettings",
    "StorageSettings",
    "load_app_settings",
]
