"""Compose outbound message descriptors from a parsed support API reply.

Descriptors are plain strings or dicts in the loose shape accepted by
``sakhi_bridge.whatsapp.payloads.build_outbound_payloads``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Sequence
from typing import Any

from sakhi_bridge.models import FollowUpRow, InfographicAttachment
from sakhi_bridge.reply.parser import normalise_follow_up_label, parse_reply
from sakhi_bridge.whatsapp.links import normalise_preview_link

MAX_OUTBOUND_MESSAGES = 3
MAX_FOLLOW_UP_ROWS = 3
MAX_ROW_ID_CHARS = 200
MAX_ROW_TITLE_CHARS = 24
MAX_FOLLOW_UP_DESCRIPTION_CHARS = 72
FOLLOW_UP_TITLE_EMOJIS = ("1️⃣", "2️⃣", "3️⃣")
FOLLOW_UP_ID_PREFIX = "followup_"
FALLBACK_FOLLOW_UP_BODY = "Choose a follow-up option below:"

# Interactive body limit enforced by the Cloud API
MAX_INTERACTIVE_BODY_CHARS = 1024
# WORKAROUND: WhatsApp collapses long interactive bodies behind "Read more"
# more cleanly when the first lines are followed by invisible padding.
# Rendering behaviour only; nothing depends on the filler being present.
PREVIEW_CHAR_LIMIT = 250
MAX_FILLER_CHARS = 600
_ZERO_WIDTH_SPACE = "\u200b"

DEFAULT_TOPIC_MENU_BODY = "Hello! How can I assist you today?"
TOPIC_MENU_ROWS: tuple[FollowUpRow, ...] = (
    FollowUpRow(id="topic_ivf", title="IVF", description="In vitro fertilisation guidance"),
    FollowUpRow(id="topic_fertility", title="Fertility", description="Fertility checks and tips"),
    FollowUpRow(id="topic_parenthood", title="Parenthood", description="Support on becoming a parent"),
    FollowUpRow(id="topic_pregnancy", title="Pregnancy", description="Prenatal care and wellbeing"),
    FollowUpRow(id="topic_ovulation", title="Ovulation", description="Tracking and optimisation advice"),
    FollowUpRow(id="topic_infertility", title="Infertility", description="Causes, options, and support"),
)

_TRAILING_YOUTUBE_LABEL = re.compile(r"(?:\r?\n)*\s*youtube\s*:?\s*$", re.IGNORECASE)
_SENTENCE_START = re.compile(r"^[^.!?\n\r]{5,80}")
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")


# --- Text helpers ---


def strip_trailing_youtube_label(text: str) -> str:
    """Drop a dangling "YouTube:" label left behind once the link is removed."""
    return _TRAILING_YOUTUBE_LABEL.sub("", text).rstrip()


def build_reply_body(main_text: str | None) -> str | None:
    body = strip_trailing_youtube_label((main_text or "").strip())
    return body or None


def build_interactive_body(body: str | None) -> str:
    """Fit a reply body into an interactive message body."""
    if not body:
        return FALLBACK_FOLLOW_UP_BODY
    if len(body) <= PREVIEW_CHAR_LIMIT:
        return body

    preview, remainder = body[:PREVIEW_CHAR_LIMIT], body[PREVIEW_CHAR_LIMIT:]
    filler_count = min(MAX_INTERACTIVE_BODY_CHARS - len(body), MAX_FILLER_CHARS)
    filler = _ZERO_WIDTH_SPACE * filler_count if filler_count > 0 else ""

    full = f"{preview}{filler}{remainder}"
    if len(full) > MAX_INTERACTIVE_BODY_CHARS:
        full = full[:MAX_INTERACTIVE_BODY_CHARS - 3] + "..."
    return full


def summarise_follow_up_title(text: str) -> str:
    """Short slug source: the opening sentence, else the first five words."""
    match = _SENTENCE_START.match(text)
    if match:
        return match.group(0).strip()
    return " ".join(text.split()[:5]) or "Follow-up"


def truncate_follow_up_description(text: str) -> str:
    safe = text.strip() if isinstance(text, str) else ""
    if len(safe) <= MAX_FOLLOW_UP_DESCRIPTION_CHARS:
        return safe
    return f"{safe[:MAX_FOLLOW_UP_DESCRIPTION_CHARS - 3].rstrip()}..."


# --- Follow-up list ---


def create_follow_up_row(raw_label: object, index: int) -> FollowUpRow | None:
    label = normalise_follow_up_label(raw_label)
    if not label:
        return None

    slug = _NON_ALPHANUMERIC.sub("_", summarise_follow_up_title(label).lower()).strip("_")
    slug = slug or f"option_{index + 1}"
    title = FOLLOW_UP_TITLE_EMOJIS[index] if index < len(FOLLOW_UP_TITLE_EMOJIS) else f"{index + 1}."

    return FollowUpRow(
        id=f"{FOLLOW_UP_ID_PREFIX}{index + 1}_{slug}"[:MAX_ROW_ID_CHARS],
        title=title[:MAX_ROW_TITLE_CHARS],
        description=truncate_follow_up_description(label),
    )


def format_follow_up_rows(options: Iterable[object] | None) -> list[FollowUpRow]:
    candidates = list(options or [])[:MAX_FOLLOW_UP_ROWS]
    rows = (create_follow_up_row(option, index) for index, option in enumerate(candidates))
    return [row for row in rows if row is not None]


def _list_message(
    body_text: str,
    rows: Sequence[FollowUpRow],
    button: str,
    section_title: str,
    footer: str,
) -> dict[str, Any]:
    return {
        "type": "interactive",
        "interactive": {
            "type": "list",
            "body": {"text": body_text},
            "footer": {"text": footer},
            "action": {
                "button": button,
                "sections": [{
                    "title": section_title,
                    "rows": [row.model_dump(exclude_none=True) for row in rows],
                }],
            },
        },
    }


def build_follow_up_list(options: Iterable[object] | None, body_text: str | None) -> dict[str, Any] | None:
    """Interactive list offering up to three follow-ups, or None if none are usable."""
    rows = format_follow_up_rows(options)
    if not rows:
        return None
    return _list_message(
        body_text or FALLBACK_FOLLOW_UP_BODY,
        rows,
        button="Follow-up Questions",
        section_title="Next steps",
        footer="Tap to select an item",
    )


def build_topic_menu_message(
    body_text: str | None = None,
    rows: Sequence[FollowUpRow] = TOPIC_MENU_ROWS,
) -> dict[str, Any]:
    if not rows:
        raise ValueError("Topic menu requires at least one option")
    headline = (body_text or "").strip() or DEFAULT_TOPIC_MENU_BODY
    return _list_message(
        headline[:MAX_INTERACTIVE_BODY_CHARS],
        rows,
        button="Browse topics",
        section_title="Support areas",
        footer="Pick a topic to continue.",
    )


# --- Other messages ---


def build_link_message(link: str) -> dict[str, Any]:
    canonical = normalise_preview_link(link.strip()) or link.strip()
    return {"type": "text", "text": {"body": canonical, "preview_url": True}}


def build_infographic_message(attachment: InfographicAttachment | None) -> dict[str, Any] | None:
    if attachment is None:
        return None
    if attachment.media_id:
        return {"type": "image", "image": {"id": attachment.media_id}}
    link = (attachment.link or "").strip()
    if not link:
        return None
    return {"type": "image", "image": {"link": link}}


# --- Assembly ---


def build_response_messages(
    main_text: str | None,
    link: str | None,
    follow_ups: Iterable[object] | None,
    attachment: InfographicAttachment | None = None,
) -> list[str | dict[str, Any]]:
    """Link, then text with follow-ups (or plain text), then the infographic."""
    messages: list[str | dict[str, Any]] = []

    if link and link.strip():
        messages.append(build_link_message(link))

    body = build_reply_body(main_text)
    follow_up_list = build_follow_up_list(follow_ups, build_interactive_body(body))
    if follow_up_list:
        messages.append(follow_up_list)
    elif body:
        messages.append(body)

    infographic = build_infographic_message(attachment)
    if infographic:
        messages.append(infographic)

    return messages


def _dedup_key(message: object) -> str:
    if isinstance(message, str | int | float):
        return f"text:{message}"
    return f"json:{json.dumps(message, sort_keys=True, default=str)}"


def select_unique_messages(messages: Iterable[Any], limit: int = MAX_OUTBOUND_MESSAGES) -> list[Any]:
    """Drop repeated messages, keeping first occurrences in order, up to ``limit``."""
    if limit <= 0:
        return []

    unique: list[Any] = []
    seen: set[str] = set()
    for message in messages:
        if len(unique) >= limit:
            break
        key = _dedup_key(message)
        if key in seen:
            continue
        seen.add(key)
        unique.append(message)
    return unique


def compose_reply_messages(
    reply_text: str,
    link: str | None = None,
    attachment: InfographicAttachment | None = None,
) -> list[str | dict[str, Any]]:
    """Ready-to-send descriptors for one support API reply, at most three."""
    parsed = parse_reply(reply_text, link)
    messages = build_response_messages(parsed.main_text, parsed.link, parsed.follow_ups, attachment)
    return select_unique_messages(messages, MAX_OUTBOUND_MESSAGES)
