"""Grouping of messages into conversation threads."""

from .correlator import ThreadCorrelator, correlate, message_sort_key
from .headers import identify_contact, normalize_message_id, normalize_subject
from .union_find import UnionFind

__all__ = [
    "ThreadCorrelator",
    "UnionFind",
    "correlate",
    "identify_contact",
    "message_sort_key",
    "normalize_message_id",
    "normalize_subject",
]
