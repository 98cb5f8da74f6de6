"""WhatsApp Cloud API inbound webhook handling.

Covers the Meta verification handshake, optional HMAC signature checks,
and extraction of the user message (or status update) from a webhook
payload.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Iterator
from typing import Any

from sakhi_bridge.models import InboundEvent, StatusUpdate
from sakhi_bridge.reply.builder import FOLLOW_UP_ID_PREFIX
from sakhi_bridge.reply.parser import normalise_follow_up_label


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)


def is_whatsapp_event(payload: object) -> bool:
    return (
        isinstance(payload, dict)
        and bool(payload.get("object"))
        and isinstance(payload.get("entry"), list)
    )


def _change_values(payload: dict[str, Any]) -> Iterator[dict[str, Any]]:
    for entry in payload.get("entry") or []:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes") or []:
            if isinstance(change, dict):
                yield change.get("value") or {}


def _selected_text(message: dict[str, Any]) -> str | None:
    """Text typed by the user, or the label of the option they tapped."""
    text = (message.get("text") or {}).get("body") or None
    interactive = message.get("interactive") or {}

    button_reply = interactive.get("button_reply") or {}
    if button_reply and not text:
        text = button_reply.get("title") or button_reply.get("id") or None

    list_reply = interactive.get("list_reply") or {}
    if list_reply:
        list_id = list_reply.get("id") or ""
        selected = list_reply.get("description") or list_reply.get("title") or ""
        if isinstance(list_id, str) and list_id.startswith(FOLLOW_UP_ID_PREFIX):
            cleaned = normalise_follow_up_label(selected)
        else:
            cleaned = selected.strip()
        text = cleaned or text or selected or None

    return text


class WhatsAppWebhook:
    """Verifies and unpacks WhatsApp Cloud API webhook calls."""

    def __init__(self, verify_token: str, app_secret: str | None = None) -> None:
        self._verify_token = verify_token
        self._app_secret = app_secret

    @property
    def signature_required(self) -> bool:
        return bool(self._app_secret)

    def verify_signature(self, headers: dict[str, str], body: bytes) -> bool:
        """Check the X-Hub-Signature-256 HMAC of the raw body.

        Always True when no app secret is configured.
        """
        if not self._app_secret:
            return True
        signature = headers.get("x-hub-signature-256", "")
        if not signature.startswith("sha256="):
            return False

        expected = hmac.new(
            self._app_secret.encode(), body, hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(signature[7:], expected)

    def handle_verification(self, params: dict[str, str]) -> str | None:
        """Return the challenge for a valid subscribe request, else None."""
        mode = params.get("hub.mode")
        token = params.get("hub.verify_token", "")
        if mode != "subscribe" or not token or not self._verify_token:
            return None
        if hmac.compare_digest(token, self._verify_token):
            return params.get("hub.challenge", "")
        return None

    def extract_message(self, payload: dict[str, Any]) -> InboundEvent | None:
        """Extract the first user message of the webhook payload.

        Button and list replies are turned into the text of the chosen
        option; follow-up rows yield their cleaned question.
        """
        for value in _change_values(payload):
            messages = value.get("messages")
            if not isinstance(messages, list) or not messages:
                continue

            message = messages[0] or {}
            return InboundEvent(
                sender_id=message.get("from") or (value.get("metadata") or {}).get("phone_number_id"),
                text=_selected_text(message),
                message_id=message.get("id") or None,
                raw=message,
            )
        return None

    def extract_status(self, payload: dict[str, Any]) -> StatusUpdate | None:
        """Extract the first delivery status update (sent, delivered, read)."""
        for value in _change_values(payload):
            statuses = value.get("statuses")
            if not isinstance(statuses, list) or not statuses:
                continue

            status = statuses[0] or {}
            return StatusUpdate(
                id=_optional_str(status.get("id")),
                status=_optional_str(status.get("status")),
                timestamp=_optional_str(status.get("timestamp")),
            )
        return None
