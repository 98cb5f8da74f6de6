"""Parse support API reply text into body, link and follow-up questions.

Replies are free text. Suggested next questions, when present, follow a
"Follow-ups:" marker, one per line, usually bulleted or numbered:

    Some advice.
    https://youtu.be/abc
    Follow-ups:
    1) What next?
    - Another one
"""

from __future__ import annotations

import re

from sakhi_bridge.models import ParsedReply

MAX_FOLLOW_UPS = 10

_FOLLOW_UP_MARKER = re.compile(r"follow[\s-]*ups?\s*:", re.IGNORECASE)
_FOLLOW_UP_ECHO = re.compile(r"^follow[\s-]*ups?\s*:?\s*", re.IGNORECASE)
_BULLET = re.compile(r"^[-*•]+")
# "(1)", "(a)", "1)", "1.", "1-", "1", "a.", "b)" followed by whitespace.
# A bare letter needs punctuation so words like "A" or "I" survive.
_LIST_MARKER = re.compile(
    r"^(?:\(\s*(?:\d{1,2}|[a-z])\s*\)[.:-]?|\d{1,2}[.)-]?|[a-z][.)-])\s+",
    re.IGNORECASE,
)
_URL = re.compile(r"https?://\S+")
_TRAILING_PUNCTUATION = re.compile(r"[.,;:!?]+$")
_LINE_BREAK = re.compile(r"\r?\n")


def normalise_follow_up_label(value: object) -> str:
    """Strip marker echoes, bullets and list numbering from one label."""
    if not isinstance(value, str):
        return ""
    cleaned = _FOLLOW_UP_ECHO.sub("", value.strip())
    cleaned = _BULLET.sub("", cleaned).lstrip()
    cleaned = _LIST_MARKER.sub("", cleaned)
    return cleaned.strip()


def extract_follow_ups(text: str) -> list[str]:
    match = _FOLLOW_UP_MARKER.search(text or "")
    if not match:
        return []
    block = text[match.end():].strip()
    labels = (normalise_follow_up_label(line) for line in _LINE_BREAK.split(block))
    return [label for label in labels if label][:MAX_FOLLOW_UPS]


def remove_follow_ups_block(text: str) -> str:
    if not text:
        return ""
    match = _FOLLOW_UP_MARKER.search(text)
    if not match:
        return text.strip()
    return text[:match.start()].rstrip()


def _clean_link(link: str | None) -> str | None:
    if not link:
        return None
    return _TRAILING_PUNCTUATION.sub("", link.strip()) or None


def parse_reply(reply_text: object, preferred_link: str | None = None) -> ParsedReply:
    """Split a reply into main text, one link and up to ten follow-ups.

    Without a preferred link, the first http(s) URL in the body is used.
    The main text is whatever precedes the link's first occurrence, or
    the whole body when the link is not in it.
    """
    text = reply_text if isinstance(reply_text, str) else ""
    follow_ups = extract_follow_ups(text)
    body = remove_follow_ups_block(text)

    link = _clean_link(preferred_link)
    if not link:
        match = _URL.search(body)
        link = _clean_link(match.group(0) if match else None)

    link_index = body.find(link) if link else -1
    main_text = body[:link_index].strip() if link_index >= 0 else body.strip()

    return ParsedReply(main_text=main_text, link=link, follow_ups=tuple(follow_ups))
