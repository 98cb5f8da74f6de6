"""Outbound calls to the WhatsApp Cloud API: messages and media uploads.

TLS certificate verification is always on. Sends are not retried: a
failed payload is logged and reported back to the caller.
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import httpx

from sakhi_bridge.models import DeliveryEvent, DeliveryEventType, ErrorKind, StageResult
from sakhi_bridge.reply.support_api import truncate_for_log
from sakhi_bridge.whatsapp.images import normalise_image
from sakhi_bridge.whatsapp.payloads import build_outbound_payloads

if TYPE_CHECKING:
    from sakhi_bridge.config import BridgeSettings
    from sakhi_bridge.delivery.logger import DeliveryLogger

logger = logging.getLogger(__name__)

_SEND_TIMEOUT_SECONDS = 30.0
_DOWNLOAD_TIMEOUT_SECONDS = 30.0
_IMAGE_CONTENT_TYPE = re.compile(r"^image/", re.IGNORECASE)
_FALLBACK_FILENAMES = (
    (re.compile(r"image/png", re.IGNORECASE), "infographic.png"),
    (re.compile(r"image/jpe?g", re.IGNORECASE), "infographic.jpg"),
    (re.compile(r"image/gif", re.IGNORECASE), "infographic.gif"),
)


def infer_filename_from_url(file_url: str, content_type: str = "") -> str:
    """Last path segment of the URL, else a name derived from the content type."""
    try:
        base = posixpath.basename(urlsplit(file_url).path)
    except ValueError:
        base = ""
    if base:
        return base

    for pattern, filename in _FALLBACK_FILENAMES:
        if pattern.search(content_type or ""):
            return filename
    return "infographic-image"


class WhatsAppClient:
    """Sends wire payloads and uploads media through the Graph API."""

    def __init__(
        self,
        settings: BridgeSettings,
        delivery_logger: DeliveryLogger | None = None,
    ) -> None:
        self._messages_url = settings.messages_url
        self._media_url = settings.media_url
        self._access_token = settings.whatsapp_token
        self._delivery = delivery_logger

    @property
    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    def _record(
        self,
        event_type: DeliveryEventType,
        action: str,
        result: str,
        recipient: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        if self._delivery:
            self._delivery.log(DeliveryEvent(
                event_type=event_type,
                recipient=recipient,
                action=action,
                result=result,
                details=details,
            ))

    async def post_payload(self, payload: dict[str, Any]) -> StageResult[None]:
        """POST one wire payload to the messages endpoint."""
        recipient = payload.get("to")
        message_type = payload.get("type")

        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    self._messages_url,
                    json=payload,
                    headers=self._auth_headers,
                    timeout=_SEND_TIMEOUT_SECONDS,
                )
        except httpx.HTTPError as exc:
            logger.error("Error sending WhatsApp %s message: %s", message_type, exc)
            self._record(
                DeliveryEventType.SEND_FAILURE, "send", "failure", recipient,
                {"type": message_type, "error": str(exc)},
            )
            return StageResult.failure(ErrorKind.REMOTE_FAILURE, f"send failed: {exc}")

        if resp.status_code >= 400:
            logger.error(
                "WhatsApp API rejected %s message status=%d body=%s",
                message_type, resp.status_code, truncate_for_log(resp.text),
            )
            self._record(
                DeliveryEventType.SEND_FAILURE, "send", "failure", recipient,
                {"type": message_type, "status": resp.status_code},
            )
            return StageResult.failure(
                ErrorKind.REMOTE_FAILURE, f"WhatsApp API returned {resp.status_code}",
            )

        self._record(
            DeliveryEventType.MESSAGE_SENT, "send", "success", recipient,
            {"type": message_type, "status": resp.status_code},
        )
        return StageResult.success(None)

    async def send_payloads(self, payloads: list[dict[str, Any]]) -> StageResult[int]:
        """Send payloads in order, stopping at the first failure.

        The value is the number of payloads accepted by the API.
        """
        sent = 0
        for payload in payloads:
            result = await self.post_payload(payload)
            if not result.ok:
                return StageResult(value=sent, error=result.error, detail=result.detail)
            sent += 1
        return StageResult.success(sent)

    async def send_message(self, to: str, message: object) -> StageResult[int]:
        """Build and send the payloads for one message descriptor."""
        payloads = build_outbound_payloads(to, message)
        if not payloads:
            return StageResult.failure(
                ErrorKind.UNSUPPORTED_PAYLOAD, "no WhatsApp payload could be built",
            )
        return await self.send_payloads(payloads)

    async def upload_external_image(self, file_url: str | None) -> str | None:
        """Download an image and re-host it on the media API.

        Returns the media id, or None when the download is not an image or
        any step fails. Oversized images are shrunk first.
        """
        url = (file_url or "").strip()
        if not url:
            return None

        try:
            async with httpx.AsyncClient(verify=True, follow_redirects=True) as client:
                download = await client.get(url, timeout=_DOWNLOAD_TIMEOUT_SECONDS)
                download.raise_for_status()

                content_type = download.headers.get("content-type") or "application/octet-stream"
                if not _IMAGE_CONTENT_TYPE.match(content_type):
                    logger.warning(
                        "Infographic URL did not return an image content_type=%s url=%s",
                        content_type, url,
                    )
                    self._record(
                        DeliveryEventType.MEDIA_UPLOAD, "upload", "skipped",
                        details={"url": url, "content_type": content_type},
                    )
                    return None

                image = await normalise_image(download.content, content_type.split(";")[0].strip())
                media_type = image.content_type.lower()
                upload = await client.post(
                    self._media_url,
                    headers=self._auth_headers,
                    data={"messaging_product": "whatsapp", "type": media_type},
                    files={"file": (infer_filename_from_url(url, media_type), image.data, media_type)},
                    timeout=_SEND_TIMEOUT_SECONDS,
                )
                upload.raise_for_status()
                body = upload.json()
                media_id = (body.get("id") or None) if isinstance(body, dict) else None
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.error("Failed to upload infographic to WhatsApp media API: %s", exc)
            self._record(
                DeliveryEventType.MEDIA_UPLOAD, "upload", "failure",
                details={"url": url, "error": str(exc)},
            )
            return None

        self._record(
            DeliveryEventType.MEDIA_UPLOAD, "upload", "success" if media_id else "failure",
            details={"url": url, "media_id": media_id},
        )
        return media_id
