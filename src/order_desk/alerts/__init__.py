"""Purchase-order to ledger reconciliation alerts."""

from .engine import AlertEngine, AlertTransitionError
from .job import JOB_NAME, AlertJob
from .render import render_morning_review, render_run_summary
from .trust import TrustedDomains

__all__ = [
    "JOB_NAME",
    "AlertEngine",
    "AlertJob",
    "AlertTransitionError",
    "TrustedDomains",
    "render_morning_review",
    "render_run_summary",
]
