"""Tests for WhatsApp webhook verification and message extraction."""

from __future__ import annotations

import hashlib
import hmac as hmac_mod
from typing import Any
from unittest.mock import patch

from sakhi_bridge.webhook.whatsapp import WhatsAppWebhook, is_whatsapp_event
from tests.conftest import make_status_payload, make_whatsapp_payload


def _make_webhook(**kwargs: Any) -> WhatsAppWebhook:
    defaults: dict[str, Any] = {"verify_token": "test_verify", "app_secret": "test_secret"}
    defaults.update(kwargs)
    return WhatsAppWebhook(**defaults)


def _sign_body(app_secret: str, body: bytes) -> str:
    sig = hmac_mod.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={sig}"


def _with_message(message: dict[str, Any]) -> dict[str, Any]:
    payload = make_whatsapp_payload()
    payload["entry"][0]["changes"][0]["value"]["messages"] = [message]
    return payload


class TestSignatureVerification:
    def test_valid_signature_accepted(self) -> None:
        webhook = _make_webhook(app_secret="my_secret")
        body = b'{"test": "data"}'
        headers = {"x-hub-signature-256": _sign_body("my_secret", body)}
        assert webhook.verify_signature(headers, body) is True

    def test_invalid_signature_rejected(self) -> None:
        webhook = _make_webhook()
        headers = {"x-hub-signature-256": "sha256=wrong"}
        assert webhook.verify_signature(headers, b"body") is False

    def test_missing_or_malformed_signature_rejected(self) -> None:
        webhook = _make_webhook()
        assert webhook.verify_signature({}, b"body") is False
        assert webhook.verify_signature({"x-hub-signature-256": "abc123"}, b"body") is False

    def test_no_secret_skips_check(self) -> None:
        webhook = _make_webhook(app_secret=None)
        assert webhook.signature_required is False
        assert webhook.verify_signature({}, b"anything") is True

    def test_constant_time_comparison(self) -> None:
        webhook = _make_webhook(app_secret="s")
        body = b"data"
        headers = {"x-hub-signature-256": _sign_body("s", body)}
        with patch("sakhi_bridge.webhook.whatsapp.hmac.compare_digest", return_value=True) as mock_cmp:
            webhook.verify_signature(headers, body)
            mock_cmp.assert_called_once()


class TestVerificationChallenge:
    def test_valid_subscribe_returns_challenge(self) -> None:
        webhook = _make_webhook(verify_token="my_verify")
        params = {
            "hub.mode": "subscribe",
            "hub.verify_token": "my_verify",
            "hub.challenge": "challenge_string_123",
        }
        assert webhook.handle_verification(params) == "challenge_string_123"

    def test_wrong_token_returns_none(self) -> None:
        webhook = _make_webhook(verify_token="correct")
        params = {"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "c"}
        assert webhook.handle_verification(params) is None

    def test_non_subscribe_mode_returns_none(self) -> None:
        assert _make_webhook().handle_verification({"hub.mode": "unsubscribe"}) is None

    def test_unconfigured_token_never_verifies(self) -> None:
        webhook = _make_webhook(verify_token="")
        params = {"hub.mode": "subscribe", "hub.verify_token": "", "hub.challenge": "c"}
        assert webhook.handle_verification(params) is None


class TestMessageExtraction:
    def test_extracts_text_message(self) -> None:
        event = _make_webhook().extract_message(make_whatsapp_payload(text="hello world"))
        assert event is not None
        assert event.text == "hello world"
        assert event.sender_id == "15551234567"
        assert event.message_id == "wamid.1"
        assert event.raw["type"] == "text"

    def test_button_reply_title(self) -> None:
        payload = _with_message({
            "from": "1", "id": "m", "interactive": {"button_reply": {"id": "b1", "title": "Yes"}},
        })
        assert _make_webhook().extract_message(payload).text == "Yes"

    def test_follow_up_list_reply_is_cleaned(self) -> None:
        payload = _with_message({
            "from": "1",
            "id": "m",
            "interactive": {
                "list_reply": {"id": "followup_1_x", "title": "1️⃣", "description": "1) What next?"},
            },
        })
        assert _make_webhook().extract_message(payload).text == "What next?"

    def test_topic_list_reply_uses_description(self) -> None:
        payload = _with_message({
            "from": "1",
            "id": "m",
            "interactive": {
                "list_reply": {"id": "topic_ivf", "title": "IVF", "description": " IVF guidance "},
            },
        })
        assert _make_webhook().extract_message(payload).text == "IVF guidance"

    def test_sender_falls_back_to_phone_number_id(self) -> None:
        payload = _with_message({"id": "m", "text": {"body": "hi"}})
        assert _make_webhook().extract_message(payload).sender_id == "PID"

    def test_status_payload_has_no_message(self) -> None:
        assert _make_webhook().extract_message(make_status_payload()) is None

    def test_empty_entry(self) -> None:
        payload = {"object": "whatsapp_business_account", "entry": []}
        assert _make_webhook().extract_message(payload) is None


class TestStatusExtraction:
    def test_extracts_status(self) -> None:
        status = _make_webhook().extract_status(make_status_payload(status="read"))
        assert status is not None
        assert status.id == "wamid.1"
        assert status.status == "read"
        assert status.timestamp == "1700000001"

    def test_numeric_timestamp_coerced(self) -> None:
        payload = make_status_payload()
        payload["entry"][0]["changes"][0]["value"]["statuses"][0]["timestamp"] = 1700000001
        assert _make_webhook().extract_status(payload).timestamp == "1700000001"


class TestIsWhatsAppEvent:
    def test_shapes(self) -> None:
        assert is_whatsapp_event(make_whatsapp_payload()) is True
        assert is_whatsapp_event({"object": "page"}) is False
        assert is_whatsapp_event({"entry": []}) is False
        assert is_whatsapp_event([]) is False
