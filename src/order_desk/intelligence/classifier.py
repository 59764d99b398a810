"""Classification engine: rule priors, external classifier, safety nets."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from order_desk.core.config import ClassificationSettings
from order_desk.core.interfaces import ClassifierError, ThreadClassifier
from order_desk.core.logging import audit
from order_desk.core.models import (
    CATEGORY_CUSTOMER,
    CATEGORY_OTHER,
    CATEGORY_VENDOR,
    ITEM_GENERAL,
    ITEM_PO_RECEIVED,
    ITEM_QUOTE_REQUEST,
    ClassifierVerdict,
    Correction,
    Thread,
)
from order_desk.core.retry import RetryPolicy
from order_desk.correlation import ThreadCorrelator, identify_contact

from .batching import Outcome, run_batched
from .patterns import (
    has_real_attachment,
    is_acknowledgment,
    is_automated,
    is_billing_subject,
    is_quotation_subject,
    mentions_purchase_order,
    mentions_quote_request,
    strip_signature,
)

LOGGER = logging.getLogger(__name__)

_URGENT_ITEM_TYPES = (ITEM_PO_RECEIVED, ITEM_QUOTE_REQUEST)


@dataclass(slots=True)
class ClassificationRun:
    """Classified threads plus the merges the classifier triggered."""

    threads: list[Thread] = field(default_factory=list)
    merges: list[tuple[str, str]] = field(default_factory=list)


class ClassificationEngine:
    """Assign category, item type, contact and response need to threads.

    Rules run in a fixed order: automated senders are filtered out, the
    direction of the first message seeds the category, the external
    classifier refines it, deterministic pattern checks guard the
    purchase-order and quote item types, and the response flag is derived
    from the last message. A failing classifier only degrades the result to
    the rule-based priors.
    """

    def __init__(
        self,
        classifier: ThreadClassifier | None,
        settings: ClassificationSettings,
        *,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Bind the engine to an optional classifier and its settings."""
        self._classifier = classifier
        self._settings = settings
        self._retry = retry or RetryPolicy(
            stage="classifier",
            max_attempts=settings.batch_attempts,
            retry_on=(ClassifierError,),
        )

    def classify(
        self, thread: Thread, corrections: Sequence[Correction] = ()
    ) -> Thread:
        """Classify one thread in place; ``related_to`` is reported, not merged."""
        hints = self._bounded(corrections)
        outcomes = self._consult([thread], hints)
        outcome = outcomes.get(thread.key)
        verdict = outcome.value if outcome else None
        self._finalize(thread, verdict, classifier_failed=_failed(outcome))
        thread.related_to = verdict.related_to if verdict else None
        return thread

    def classify_threads(
        self,
        correlator: ThreadCorrelator,
        corrections: Sequence[Correction] = (),
        *,
        include: Callable[[Thread], bool] | None = None,
    ) -> ClassificationRun:
        """Classify the correlator's threads, folding related ones together.

        ``include`` limits the run to matching threads; merged threads are
        kept when the merged result matches.
        """
        hints = self._bounded(corrections)
        threads = _selected(correlator, include)
        candidates = [
            thread for thread in threads if not is_automated(thread.first_message)
        ]
        outcomes = self._consult(candidates, hints)
        verdicts = {
            key: outcome.value
            for key, outcome in outcomes.items()
            if outcome.value is not None
        }

        candidate_keys = {thread.key for thread in candidates}
        merges: list[tuple[str, str]] = []
        for key in sorted(verdicts):
            related = verdicts[key].related_to
            if not related or related == key or related not in candidate_keys:
                continue
            if correlator.resolve_key(key) == correlator.resolve_key(related):
                continue
            survivor = correlator.merge(key, related)
            LOGGER.info("Merged thread %s with %s into %s", key, related, survivor)
            merges.append((key, related))

        if not merges:
            for thread in threads:
                outcome = outcomes.get(thread.key)
                self._finalize(
                    thread,
                    outcome.value if outcome else None,
                    classifier_failed=_failed(outcome),
                )
            return ClassificationRun(threads=list(threads), merges=merges)

        constituents: dict[str, list[str]] = {}
        for thread in threads:
            constituents.setdefault(correlator.resolve_key(thread.key), []).append(
                thread.key
            )

        merged_threads = _selected(correlator, include)
        for thread in merged_threads:
            old_keys = sorted(constituents.get(thread.key, [thread.key]))
            verdict = _combine_verdicts(thread.key, old_keys, verdicts)
            failed = any(_failed(outcomes.get(old_key)) for old_key in old_keys)
            self._finalize(thread, verdict, classifier_failed=failed)
        return ClassificationRun(threads=merged_threads, merges=merges)

    # Pipeline stages ----------------------------------------------------------
    def _consult(
        self, threads: Sequence[Thread], corrections: Sequence[Correction]
    ) -> dict[str, Outcome[ClassifierVerdict]]:
        classifier = self._classifier
        if classifier is None or not threads:
            return {}

        def batch_fn(batch: Sequence[Thread]) -> dict[str, ClassifierVerdict]:
            return self._retry.execute(classifier.classify_batch, batch, corrections)

        def single_fn(thread: Thread) -> ClassifierVerdict | None:
            return classifier.classify_batch([thread], corrections).get(thread.key)

        return run_batched(
            list(threads),
            key=lambda thread: thread.key,
            batch_size=self._settings.batch_size,
            batch_fn=batch_fn,
            single_fn=single_fn,
            recoverable=(ClassifierError,),
        )

    def _finalize(
        self,
        thread: Thread,
        verdict: ClassifierVerdict | None,
        *,
        classifier_failed: bool,
    ) -> None:
        try:
            self._apply_rules(thread, verdict)
            thread.needs_review = classifier_failed
        except Exception:  # pylint: disable=broad-except
            LOGGER.error(
                "Rule pipeline failed for thread %s", thread.key, exc_info=True
            )
            thread.category = CATEGORY_OTHER
            thread.item_type = ITEM_GENERAL
            thread.needs_response = False
            thread.needs_review = True

    def _apply_rules(self, thread: Thread, verdict: ClassifierVerdict | None) -> None:
        header_name, contact_email = identify_contact(
            thread.messages, self._settings.our_domains
        )
        thread.contact_email = contact_email
        classifier_name = verdict.contact_name if verdict else None
        thread.contact_name = classifier_name or header_name
        thread.summary = verdict.summary if verdict else None

        if is_automated(thread.first_message):
            thread.category = CATEGORY_OTHER
            thread.item_type = ITEM_GENERAL
            thread.needs_response = False
            return

        category = verdict.category if verdict else None
        category = category or self.prior_category(thread)
        item_type = (verdict.item_type if verdict else None) or ITEM_GENERAL
        if category == CATEGORY_CUSTOMER and item_type == ITEM_GENERAL:
            item_type = self._safety_net(thread)
            if item_type != ITEM_GENERAL:
                audit(
                    "safety_net_override",
                    thread_key=thread.key,
                    subject=thread.subject,
                    classifier_item_type=verdict.item_type if verdict else None,
                    forced_item_type=item_type,
                )

        thread.category = category
        thread.item_type = item_type
        thread.needs_response = self.needs_response(thread, verdict)

        last = thread.last_message
        if item_type in _URGENT_ITEM_TYPES and last is not None and last.is_inbound:
            thread.needs_response = True

    def prior_category(self, thread: Thread) -> str:
        """Seed a category from the direction of the first message."""
        first = thread.first_message
        if first is None:
            return CATEGORY_OTHER
        if first.is_outbound:
            if is_billing_subject(first.subject):
                return CATEGORY_CUSTOMER
            return CATEGORY_VENDOR
        return CATEGORY_CUSTOMER

    def needs_response(
        self, thread: Thread, verdict: ClassifierVerdict | None
    ) -> bool:
        """Decide whether the business owes the thread a reply."""
        last = thread.last_message
        if last is None or last.is_outbound:
            return False
        if has_real_attachment(last, min_bytes=self._settings.min_attachment_bytes):
            return True
        if is_acknowledgment(last.body):
            return False
        if verdict is not None and verdict.needs_response is not None:
            return verdict.needs_response
        return True

    def _safety_net(self, thread: Thread) -> str:
        inbound = [message for message in thread.messages if message.is_inbound]
        for message in inbound:
            filenames = [
                attachment.filename or "" for attachment in message.attachments
            ]
            if mentions_purchase_order(message.subject, filenames):
                return ITEM_PO_RECEIVED
        first_inbound = inbound[0] if inbound else None
        if first_inbound is not None and mentions_quote_request(
            *(message.subject for message in inbound),
            strip_signature(first_inbound.body),
        ):
            return ITEM_QUOTE_REQUEST
        if any(
            message.is_outbound and is_quotation_subject(message.subject)
            for message in thread.messages
        ):
            return ITEM_QUOTE_REQUEST
        return ITEM_GENERAL

    def _bounded(self, corrections: Sequence[Correction]) -> list[Correction]:
        limit = self._settings.corrections_limit
        ordered = sorted(
            corrections, key=lambda correction: correction.created_at, reverse=True
        )
        return ordered[:limit]


def _selected(
    correlator: ThreadCorrelator, include: Callable[[Thread], bool] | None
) -> list[Thread]:
    threads = correlator.partition()
    if include is None:
        return threads
    return [thread for thread in threads if include(thread)]


def _failed(outcome: Outcome[ClassifierVerdict] | None) -> bool:
    return outcome is not None and outcome.error is not None


def _combine_verdicts(
    survivor_key: str,
    old_keys: Sequence[str],
    verdicts: dict[str, ClassifierVerdict],
) -> ClassifierVerdict | None:
    """Pick the surviving verdict and append the summaries of absorbed threads."""
    available = [verdicts[key] for key in old_keys if key in verdicts]
    if not available:
        return None
    primary = verdicts.get(survivor_key) or available[0]
    summaries = [primary.summary] if primary.summary else []
    summaries.extend(
        verdict.summary
        for verdict in available
        if verdict is not primary and verdict.summary
    )
    return ClassifierVerdict(
        thread_key=survivor_key,
        category=primary.category,
        item_type=primary.item_type,
        contact_name=primary.contact_name,
        summary=" ".join(summaries) or None,
        needs_response=primary.needs_response,
        related_to=None,
    )


__all__ = ["ClassificationEngine", "ClassificationRun"]
