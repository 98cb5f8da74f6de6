"""Inbound message to WhatsApp reply pipeline.

Stages:
1. Duplicate check (message id)
2. Support API call
3. Onboarding reply, or: infographic upload, reply parsing, message building
4. Send, one message descriptor at a time
5. Delivery log
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sakhi_bridge.config import DEFAULT_INTRO_IMAGE_URL
from sakhi_bridge.models import (
    DeliveryEvent,
    DeliveryEventType,
    ErrorKind,
    InboundEvent,
    InfographicAttachment,
    StageResult,
)
from sakhi_bridge.reply.builder import build_topic_menu_message, compose_reply_messages
from sakhi_bridge.reply.support_api import ONBOARDING_COMPLETE, normalise_phone_number

if TYPE_CHECKING:
    from sakhi_bridge.delivery.logger import DeliveryLogger
    from sakhi_bridge.reply.support_api import SupportApiClient, SupportReply
    from sakhi_bridge.webhook.dedup import ProcessedMessageStore
    from sakhi_bridge.whatsapp.client import WhatsAppClient

logger = logging.getLogger(__name__)


class ReplyPipeline:
    """Answers one inbound WhatsApp message through the support API."""

    def __init__(
        self,
        support_api: SupportApiClient,
        whatsapp: WhatsAppClient,
        processed_messages: ProcessedMessageStore,
        delivery_logger: DeliveryLogger | None = None,
        intro_image_url: str = DEFAULT_INTRO_IMAGE_URL,
    ) -> None:
        self._support_api = support_api
        self._whatsapp = whatsapp
        self._processed = processed_messages
        self._delivery = delivery_logger
        self._intro_image_url = intro_image_url

    def _record(
        self,
        event_type: DeliveryEventType,
        action: str,
        result: str,
        recipient: str | None,
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

    async def handle(self, event: InboundEvent) -> StageResult[int]:
        """Run the pipeline; the value is the number of messages sent."""
        if not event.sender_id or not event.text:
            logger.warning("Inbound message without sender or text ignored id=%s", event.message_id)
            return StageResult.failure(ErrorKind.MALFORMED_INPUT, "message has no sender or text")

        # Stage 1: Duplicate check
        if self._processed.check_and_record(event.message_id):
            logger.info("Duplicate inbound message ignored id=%s", event.message_id)
            self._record(
                DeliveryEventType.DUPLICATE_DROPPED, "dedup", "skipped", event.sender_id,
                {"message_id": event.message_id},
            )
            return StageResult.success(0, "duplicate")

        self._record(
            DeliveryEventType.INBOUND_MESSAGE, "receive", "success", event.sender_id,
            {"message_id": event.message_id},
        )

        # Stage 2: Support API
        api_result = await self._support_api.chat(normalise_phone_number(event.sender_id), event.text)
        self._record(
            DeliveryEventType.SUPPORT_API_CALL, "chat",
            "success" if api_result.ok else "failure", event.sender_id,
            None if api_result.ok else {"error": api_result.error.value, "detail": api_result.detail},
        )
        if not api_result.ok:
            return StageResult.failure(api_result.error, api_result.detail or "support API failed")
        reply = api_result.value

        # Stage 3: Messages to send
        if reply.mode == ONBOARDING_COMPLETE:
            messages = self._onboarding_messages(reply)
        else:
            if not reply.reply:
                logger.warning("Support API returned no reply field")
                return StageResult.failure(ErrorKind.MALFORMED_INPUT, "support API reply is empty")
            attachment = await self.prepare_infographic(reply.infographic_url)
            messages = compose_reply_messages(reply.reply, reply.youtube_link, attachment)

        if not messages:
            logger.warning("Could not build WhatsApp message from API reply")
            return StageResult.failure(ErrorKind.UNSUPPORTED_PAYLOAD, "no message could be built")

        # Stage 4: Send
        sent = 0
        for message in messages:
            result = await self._whatsapp.send_message(event.sender_id, message)
            if result.ok:
                sent += 1
        return StageResult.success(sent)

    def _onboarding_messages(self, reply: SupportReply) -> list[str | dict]:
        messages: list[str | dict] = []
        if reply.reply:
            messages.append(reply.reply)
        messages.append({"type": "image", "image": {"link": self._intro_image_url}})
        messages.append(build_topic_menu_message())
        return messages

    async def prepare_infographic(self, url: str | None) -> InfographicAttachment | None:
        """Uploaded media id when the upload works, else the original link."""
        trimmed = (url or "").strip()
        if not trimmed:
            return None
        try:
            media_id = await self._whatsapp.upload_external_image(trimmed)
        except Exception:
            logger.exception("Infographic upload raised, sending by link url=%s", trimmed)
            media_id = None
        if media_id:
            return InfographicAttachment(media_id=media_id)
        return InfographicAttachment(link=trimmed)
