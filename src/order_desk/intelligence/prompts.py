"""Prompt templates for the thread classifier."""

from __future__ import annotations

from collections.abc import Sequence
from textwrap import dedent

from order_desk.core.models import Correction, Message, Thread


def format_corrections(corrections: Sequence[Correction]) -> str:
    """Render human corrections as advisory hint lines."""
    lines = []
    for correction in corrections:
        subject = correction.subject or "(no subject)"
        lines.append(
            f'- Thread "{subject}" was classified as '
            f'{correction.field}="{correction.original_value}" but should be '
            f'{correction.field}="{correction.corrected_value}"'
        )
    return "\n".join(lines)


def _format_message(message: Message, *, body_char_limit: int) -> str:
    direction = "OUTBOUND (from us)" if message.is_outbound else "INBOUND (to us)"
    sent = message.sent_at.isoformat(timespec="minutes") if message.sent_at else "?"
    sender = message.sender_name or message.sender or "(unknown sender)"
    body = (message.body or "").strip()
    if len(body) > body_char_limit:
        body = body[:body_char_limit] + " [...]"
    attachments = ", ".join(
        attachment.filename or "(unnamed)" for attachment in message.attachments
    )
    return (
        f"  [{direction}] {sent} from {sender}\n"
        f"  Subject: {message.subject or '(no subject)'}\n"
        f"  Attachments: {attachments or 'none'}\n"
        f"  Body:\n{body}\n"
    )


def _format_thread(thread: Thread, *, body_char_limit: int) -> str:
    messages = "\n".join(
        _format_message(message, body_char_limit=body_char_limit)
        for message in thread.messages
    )
    return f"=== thread_key: {thread.key} ===\n{messages}"


def build_classification_prompt(
    threads: Sequence[Thread],
    corrections: Sequence[Correction],
    *,
    body_char_limit: int,
) -> str:
    """Compose a JSON-only classification prompt for a batch of threads."""
    hints = format_corrections(corrections)
    hint_block = ""
    if hints:
        hint_block = (
            "Past mistakes corrected by staff (use as guidance only):\n" + hints + "\n"
        )
    rendered = "\n".join(
        _format_thread(thread, body_char_limit=body_char_limit) for thread in threads
    )

    prompt = f"""
    You triage email conversations for a manufacturing business.
    For every thread below return one entry. Respond strictly with JSON:
    {{
      "threads": [
        {{
          "thread_key": string,          # copied verbatim from the thread header
          "category": "customer" | "vendor" | "other",
          "item_type": "general" | "po_received" | "quote_request",
          "contact_name": string | null, # the external person we deal with
          "summary": string,             # one or two sentences
          "needs_response": boolean,     # does the business owe a reply?
          "related_to": string | null    # thread_key of another thread in this
                                         # batch that is the same conversation
        }}
      ]
    }}

    customer = someone buying from us; vendor = someone we buy from;
    other = newsletters, notifications, internal or unrelated mail.
    Do not include any additional keys or prose outside the JSON object.
    """
    return dedent(prompt).strip() + "\n\n" + hint_block + "\n" + rendered


__all__ = ["build_classification_prompt", "format_corrections"]
