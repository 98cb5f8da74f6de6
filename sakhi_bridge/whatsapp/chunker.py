"""Split over-length text into WhatsApp-sized chunks."""

from __future__ import annotations

import logging
import math
from typing import Any

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 4096

# Preferred break points, best first
_SEPARATORS = ("\n\n", "\n", ". ", " ")
# A break point earlier than this share of the limit would leave a stub chunk
_MIN_BREAK_RATIO = 0.4


def find_chunk_break_index(text: str, limit: int) -> int:
    """Index to cut ``text`` at so the first piece fits within ``limit``."""
    earliest = math.floor(limit * _MIN_BREAK_RATIO)
    for separator in _SEPARATORS:
        latest_start = max(limit - len(separator), 0)
        idx = text.rfind(separator, 0, latest_start + len(separator))
        if idx >= 0 and idx >= earliest:
            return min(idx + len(separator), limit)
    return limit


def split_text_into_chunks(text: str, limit: int = MAX_TEXT_CHARS) -> list[str]:
    """Split text into trimmed, non-empty chunks of at most ``limit`` characters.

    Whitespace-only input yields no chunks; text that already fits yields
    exactly one.
    """
    if not text or not text.strip():
        return []

    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= limit:
            chunks.append(remaining.strip())
            break

        split_index = find_chunk_break_index(remaining, limit)
        if split_index <= 0:
            split_index = limit

        chunk = remaining[:split_index].strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[split_index:].lstrip()

    return chunks


def expand_payload_if_needed(
    payload: dict[str, Any], limit: int = MAX_TEXT_CHARS,
) -> list[dict[str, Any]]:
    """Expand a text wire payload whose body exceeds ``limit`` into several.

    Every chunk keeps the payload's other fields. Only the first chunk
    keeps the original preview flag; later chunks never preview.
    """
    text = payload.get("text")
    if payload.get("type") != "text" or not isinstance(text, dict):
        return [payload]

    body = text.get("body")
    if not isinstance(body, str) or len(body) <= limit:
        return [payload]

    chunks = split_text_into_chunks(body, limit)
    if not chunks:
        return [payload]

    logger.warning(
        "Splitting long WhatsApp reply into %d parts (length %d)", len(chunks), len(body),
    )
    first_preview = text.get("preview_url", False)
    return [
        {
            **payload,
            "text": {
                **text,
                "body": chunk,
                "preview_url": first_preview if index == 0 else False,
            },
        }
        for index, chunk in enumerate(chunks)
    ]
