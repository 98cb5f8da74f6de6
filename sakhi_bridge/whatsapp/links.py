"""Link canonicalization and link-preview classification.

WhatsApp renders native video attachments from YouTube and Instagram
unreliably, so links to those hosts are sent as text with a preview
instead. YouTube links are rewritten to a single watch URL form first so
the preview card resolves.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_PREVIEW_HOSTS = ("youtube.com", "youtu.be", "instagram.com", "instagram.cdninstagram.com")
_INSTAGRAM_MEDIA_PATH = re.compile(r"^/(reel|reels|p|tv)/", re.IGNORECASE)
_YOUTUBE_ID_PATH = re.compile(r"^/(shorts|embed)/", re.IGNORECASE)
_ID_TERMINATOR = re.compile(r"[/?#]")

# Query parameters that are rebuilt rather than copied
_REBUILT_PARAMS = frozenset({"v", "t", "time_continue", "app"})


def _host(hostname: str | None) -> str:
    return re.sub(r"^www\.", "", hostname or "", flags=re.IGNORECASE).lower()


def should_send_as_link_preview(url: str | None) -> bool:
    """Return True if the URL should go out as preview text, not native media."""
    if not url:
        return False

    try:
        parts = urlsplit(url)
        host = _host(parts.hostname)
    except ValueError:
        return False

    if not host:
        return False
    if host.endswith(_PREVIEW_HOSTS):
        return True
    # Instagram CDN short domains such as scontent.cdninstagram.com
    if "cdninstagram.com" in host or host.endswith("fbcdn.net"):
        return True
    return host.endswith("instagram.com") and bool(_INSTAGRAM_MEDIA_PATH.match(parts.path))


def _video_id(path: str) -> str:
    return _ID_TERMINATOR.split(path, maxsplit=1)[0]


def _canonical_watch_url(video_id: str, query: str) -> str:
    original: dict[str, str] = {}
    for key, value in parse_qsl(query, keep_blank_values=True):
        original.setdefault(key, value)
    params = {"v": video_id, "app": "desktop"}
    params.update({k: v for k, v in original.items() if k not in _REBUILT_PARAMS})

    start = original.get("t") or original.get("time_continue")
    if start:
        params["t"] = start.removesuffix("s")
    return f"https://www.youtube.com/watch?{urlencode(params)}"


def normalise_preview_link(raw_url: str | None) -> str | None:
    """Rewrite YouTube short, shorts and embed links to the canonical watch URL.

    Any other URL, including malformed ones, is returned unchanged.
    """
    if not raw_url:
        return raw_url

    try:
        parts = urlsplit(raw_url)
        host = _host(parts.hostname)
    except ValueError:
        return raw_url

    if host == "youtu.be":
        video_id = _video_id(parts.path.lstrip("/"))
        return _canonical_watch_url(video_id, parts.query) if video_id else raw_url

    if not host.endswith("youtube.com"):
        return raw_url

    match = _YOUTUBE_ID_PATH.match(parts.path)
    if match:
        video_id = _video_id(parts.path[match.end():])
        if video_id:
            return _canonical_watch_url(video_id, parts.query)

    if parts.path == "/watch":
        query = parse_qsl(parts.query, keep_blank_values=True)
        if not any(key == "app" for key, _ in query):
            query.append(("app", "desktop"))
            return urlunsplit(parts._replace(query=urlencode(query)))

    return raw_url


def build_link_preview_body(link: str, caption: str | None = None) -> dict[str, object]:
    """Text body carrying an optional caption, a blank line, then the link."""
    parts = [str(caption).strip()] if caption else []
    parts.append(link)
    return {"body": "\n\n".join(parts), "preview_url": True}
