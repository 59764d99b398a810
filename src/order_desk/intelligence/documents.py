"""Cached access to the document analyzer."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import replace
from typing import Protocol

from order_desk.core.interfaces import DocumentAnalysisError, DocumentAnalyzer
from order_desk.core.logging import audit
from order_desk.core.models import AttachmentMeta, DocumentAnalysis, Message, Thread

from .patterns import extract_po_number, is_pdf

LOGGER = logging.getLogger(__name__)


class AnalysisCache(Protocol):
    """Persistent store of analyses keyed by attachment identity."""

    def fetch_document_analysis(self, content_key: str) -> DocumentAnalysis | None:
        """Return a stored analysis."""
        raise NotImplementedError

    def save_document_analysis(
        self, content_key: str, analysis: DocumentAnalysis
    ) -> None:
        """Store an analysis."""
        raise NotImplementedError


def content_key(message: Message, attachment: AttachmentMeta) -> str:
    """Return a stable identity for an attachment."""
    if attachment.content_id:
        return attachment.content_id
    raw = "|".join(
        (
            message.message_id or message.uid,
            attachment.filename or "",
            attachment.content_type or "",
            str(attachment.size or 0),
        )
    )
    return "sha1:" + hashlib.sha1(raw.encode("utf-8")).hexdigest()


class CachingDocumentAnalyzer:
    """Call the analyzer at most once per distinct attachment.

    Results, including "not relevant" answers, are kept in memory for the
    process and in ``cache`` across runs. Analyzer failures are not cached so
    the next run tries again.
    """

    def __init__(
        self, analyzer: DocumentAnalyzer | None, cache: AnalysisCache
    ) -> None:
        """Wrap ``analyzer`` with the persistent ``cache``."""
        self._analyzer = analyzer
        self._cache = cache
        self._memory: dict[str, DocumentAnalysis] = {}

    def analyze(
        self, message: Message, attachment: AttachmentMeta
    ) -> DocumentAnalysis | None:
        """Return the analysis for ``attachment`` or ``None`` when unavailable."""
        key = content_key(message, attachment)
        if key in self._memory:
            return self._memory[key]
        stored = self._cache.fetch_document_analysis(key)
        if stored is not None:
            self._memory[key] = stored
            return stored
        if self._analyzer is None:
            return None
        try:
            analysis = self._analyzer.analyze(message, attachment)
        except DocumentAnalysisError as exc:
            LOGGER.warning("Document analysis failed for %s: %s", key, exc)
            audit(
                "document_analysis_failed",
                content_key=key,
                filename=attachment.filename,
                error=str(exc),
            )
            return None
        self._memory[key] = analysis
        self._cache.save_document_analysis(key, analysis)
        return analysis

    def purchase_order_details(self, thread: Thread) -> DocumentAnalysis:
        """Return PO fields from the first inbound PDF, else from subjects."""
        fallback = _po_from_thread(thread)
        first_pdf = _first_pdf(thread)
        analysis = self.analyze(*first_pdf) if first_pdf else None
        if analysis is None or not analysis.relevant:
            return DocumentAnalysis(relevant=False, po_number=fallback)
        if analysis.po_number:
            return analysis
        return replace(analysis, po_number=fallback)


def _first_pdf(thread: Thread) -> tuple[Message, AttachmentMeta] | None:
    for message in thread.messages:
        if not message.is_inbound:
            continue
        for attachment in message.attachments:
            if is_pdf(attachment):
                return message, attachment
    return None


def _po_from_thread(thread: Thread) -> str | None:
    texts: list[str | None] = [message.subject for message in thread.messages]
    texts.extend(
        attachment.filename
        for message in thread.messages
        for attachment in message.attachments
    )
    return extract_po_number(*texts)


__all__ = ["AnalysisCache", "CachingDocumentAnalyzer", "content_key"]
