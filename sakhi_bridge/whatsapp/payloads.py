"""Map loose message descriptors onto WhatsApp Cloud API wire payloads.

Callers describe a message as a plain string or a dict in any of several
legacy spellings. ``decode_message`` turns that into one tagged variant,
resolving the variant in this order:

1. ``str`` -> text
2. ``messaging_product == "whatsapp"`` -> raw (already wire shaped)
3. explicit ``type`` of interactive, template, video, image or text
4. ``template_name`` or ``template`` -> template
5. ``video``, ``videoUrl`` or a bare ``link`` -> video
6. ``image``, ``imageUrl`` or ``mediaUrl`` -> image
7. anything else -> text

Within a variant, a nested object's field wins over the flat alias:
video link ``video.link`` > ``link`` > ``videoUrl``; image source
``image.link``/``image.id`` > ``link`` > ``imageUrl`` > ``mediaUrl``;
template name ``template_name`` > ``template.name``; text body
``text.body`` > ``body``. A variant missing its required content decodes
to None.

An image goes out with its media id when it has one, otherwise its link;
the Cloud API takes one source per image. Other fields of a nested
``image`` object, such as ``filename``, are passed through unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sakhi_bridge.whatsapp.chunker import expand_payload_if_needed
from sakhi_bridge.whatsapp.links import (
    build_link_preview_body,
    normalise_preview_link,
    should_send_as_link_preview,
)

logger = logging.getLogger(__name__)

MESSAGING_PRODUCT = "whatsapp"
DEFAULT_TEMPLATE_LANGUAGE = "en_US"


def _envelope(to: str, message_type: str, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "messaging_product": MESSAGING_PRODUCT,
        "to": to,
        "type": message_type,
        message_type: body,
    }


@dataclass(frozen=True)
class TextMessage:
    body: str
    preview_url: bool | None = None

    def to_payload(self, to: str) -> dict[str, Any]:
        text: dict[str, Any] = {"body": self.body}
        if self.preview_url is not None:
            text["preview_url"] = self.preview_url
        return _envelope(to, "text", text)


@dataclass(frozen=True)
class InteractiveMessage:
    interactive: dict[str, Any]

    def to_payload(self, to: str) -> dict[str, Any]:
        return _envelope(to, "interactive", self.interactive)


@dataclass(frozen=True)
class TemplateMessage:
    name: str
    language_code: str = DEFAULT_TEMPLATE_LANGUAGE
    components: list[Any] = field(default_factory=list)

    def to_payload(self, to: str) -> dict[str, Any]:
        template: dict[str, Any] = {"name": self.name, "language": {"code": self.language_code}}
        if self.components:
            template["components"] = self.components
        return _envelope(to, "template", template)


@dataclass(frozen=True)
class VideoMessage:
    link: str
    caption: str | None = None

    def to_payload(self, to: str) -> dict[str, Any]:
        link = normalise_preview_link(self.link) or self.link
        if should_send_as_link_preview(link):
            return _envelope(to, "text", build_link_preview_body(link, self.caption))

        video: dict[str, Any] = {"link": link}
        if self.caption:
            video["caption"] = self.caption
        return _envelope(to, "video", video)


@dataclass(frozen=True)
class ImageMessage:
    link: str | None = None
    media_id: str | None = None
    caption: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self, to: str) -> dict[str, Any]:
        image: dict[str, Any] = {**self.extra}
        image.update({"id": self.media_id} if self.media_id else {"link": self.link})
        if self.caption:
            image["caption"] = self.caption
        return _envelope(to, "image", image)


@dataclass(frozen=True)
class RawPayload:
    payload: dict[str, Any]

    def to_payload(self, to: str) -> dict[str, Any]:
        return {**self.payload, "to": self.payload.get("to") or to}


OutboundMessage = (
    TextMessage | InteractiveMessage | TemplateMessage | VideoMessage | ImageMessage | RawPayload
)


def _mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _first(*values: object) -> Any:
    """First truthy value, or None."""
    return next((v for v in values if v), None)


def _decode_text(message: Mapping[str, Any]) -> TextMessage | None:
    nested = message.get("text")
    text = _mapping(nested)
    body = _first(nested if isinstance(nested, str) else None, text.get("body"), message.get("body"))
    if not isinstance(body, str):
        return None

    preview = text.get("preview_url")
    if preview is None:
        preview = message.get("preview_url")
    return TextMessage(body=body, preview_url=None if preview is None else bool(preview))


def _decode_interactive(message: Mapping[str, Any]) -> InteractiveMessage | None:
    interactive = message.get("interactive")
    if not isinstance(interactive, Mapping) or not interactive:
        return None
    return InteractiveMessage(interactive=dict(interactive))


def _decode_template(message: Mapping[str, Any]) -> TemplateMessage | None:
    template = _mapping(message.get("template"))
    name = _first(message.get("template_name"), template.get("name"))
    if not name:
        return None
    language = _first(
        message.get("language_code"),
        _mapping(template.get("language")).get("code"),
        DEFAULT_TEMPLATE_LANGUAGE,
    )
    components = _first(message.get("components"), template.get("components")) or []
    return TemplateMessage(name=str(name), language_code=str(language), components=list(components))


def _decode_video(message: Mapping[str, Any]) -> VideoMessage | None:
    video = _mapping(message.get("video"))
    link = _first(video.get("link"), message.get("link"), message.get("videoUrl"))
    if not link:
        return None
    return VideoMessage(link=str(link), caption=_first(video.get("caption"), message.get("caption")))


_IMAGE_SOURCE_FIELDS = frozenset({"id", "link", "caption"})


def _decode_image(message: Mapping[str, Any]) -> ImageMessage | None:
    image = _mapping(message.get("image"))
    caption = _first(image.get("caption"), message.get("caption"))
    if image.get("id") or image.get("link"):
        return ImageMessage(
            link=image.get("link"),
            media_id=image.get("id"),
            caption=caption,
            extra={k: v for k, v in image.items() if k not in _IMAGE_SOURCE_FIELDS},
        )

    link = _first(message.get("link"), message.get("imageUrl"), message.get("mediaUrl"))
    if not link:
        return None
    return ImageMessage(link=str(link), caption=caption)


_DECODERS_BY_TYPE = {
    "interactive": _decode_interactive,
    "template": _decode_template,
    "video": _decode_video,
    "image": _decode_image,
    "text": _decode_text,
}


def decode_message(message: object) -> OutboundMessage | None:
    """Decode a string or dict message descriptor into a tagged variant."""
    if isinstance(message, str):
        return TextMessage(body=message) if message.strip() else None
    if not isinstance(message, Mapping):
        return None

    if message.get("messaging_product") == MESSAGING_PRODUCT:
        return RawPayload(payload=dict(message))

    message_type = message.get("type")
    decoder = _DECODERS_BY_TYPE.get(message_type) if isinstance(message_type, str) else None
    if decoder is not None:
        return decoder(message)

    if message.get("template_name") or message.get("template"):
        return _decode_template(message)
    if message.get("video") or message.get("videoUrl") or message.get("link"):
        return _decode_video(message)
    if message.get("image") or message.get("imageUrl") or message.get("mediaUrl"):
        return _decode_image(message)
    return _decode_text(message)


def build_outbound_payloads(to: str, message: object) -> list[dict[str, Any]]:
    """Wire payloads for one message descriptor; empty when it is unsupported.

    Text bodies over the WhatsApp limit are split into several payloads.
    """
    decoded = decode_message(message)
    if decoded is None:
        logger.warning("Unsupported WhatsApp message payload: %.200r", message)
        return []
    return expand_payload_if_needed(decoded.to_payload(to))
