"""Shared test fixtures for sakhi-bridge."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from sakhi_bridge.config import BridgeSettings
from sakhi_bridge.delivery.logger import DeliveryLogger
from sakhi_bridge.models import InboundEvent


@pytest.fixture
def settings() -> BridgeSettings:
    return make_settings()


@pytest.fixture
def mock_delivery_logger() -> MagicMock:
    return MagicMock(spec=DeliveryLogger)


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> BridgeSettings:
    defaults: dict[str, Any] = {
        "whatsapp_token": "wa_token",
        "phone_number_id": "123456",
        "verify_token": "wa_verify",
        "support_api_url": "http://support.test/sakhi/chat",
    }
    defaults.update(kwargs)
    return BridgeSettings(**defaults)


def make_inbound_event(**kwargs: Any) -> InboundEvent:
    defaults: dict[str, Any] = {
        "sender_id": "15551234567",
        "text": "hello",
        "message_id": "wamid.1",
    }
    defaults.update(kwargs)
    return InboundEvent(**defaults)


def make_whatsapp_payload(
    text: str = "hello",
    phone: str = "15551234567",
    message_id: str = "wamid.1",
) -> dict[str, Any]:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "BID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": "PID"},
                            "messages": [
                                {
                                    "from": phone,
                                    "id": message_id,
                                    "timestamp": "1700000000",
                                    "type": "text",
                                    "text": {"body": text},
                                }
                            ],
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


def make_status_payload(message_id: str = "wamid.1", status: str = "delivered") -> dict[str, Any]:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "BID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": "PID"},
                            "statuses": [
                                {"id": message_id, "status": status, "timestamp": "1700000001"}
                            ],
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


def mock_async_client(**methods: Any) -> MagicMock:
    """An httpx.AsyncClient stand-in usable as ``async with`` target.

    Keyword arguments set return values (or side effects, for lists and
    exceptions) of the client's async methods, e.g. ``post=response``.
    """
    client = AsyncMock()
    for name, outcome in methods.items():
        method = getattr(client, name)
        if isinstance(outcome, list | BaseException):
            method.side_effect = outcome
        else:
            method.return_value = outcome
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


def make_response(status_code: int = 200, json_data: Any = None, text: str = "", **kwargs: Any) -> MagicMock:
    response = MagicMock(status_code=status_code, text=text, **kwargs)
    if isinstance(json_data, BaseException):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response
