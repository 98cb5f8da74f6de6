"""Tests for the support API client."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from sakhi_bridge.models import ErrorKind
from sakhi_bridge.reply.support_api import (
    SupportApiClient,
    SupportReply,
    normalise_phone_number,
    truncate_for_log,
)
from tests.conftest import make_response, mock_async_client

_URL = "http://support.test/sakhi/chat"


class TestNormalisePhoneNumber:
    def test_adds_plus(self) -> None:
        assert normalise_phone_number("15551234567") == "+15551234567"

    def test_keeps_existing_plus(self) -> None:
        assert normalise_phone_number("+15551234567") == "+15551234567"

    def test_empty_is_none(self) -> None:
        assert normalise_phone_number("") is None
        assert normalise_phone_number(None) is None


def test_truncate_for_log() -> None:
    assert truncate_for_log("short") == "short"
    assert truncate_for_log("x" * 510, limit=500) == "x" * 500 + "...[10 more]"


class TestChat:
    @pytest.mark.asyncio
    async def test_posts_request_body(self) -> None:
        api = SupportApiClient(_URL, timeout_seconds=5.0)
        mock_client = mock_async_client(post=make_response(200, json_data={"reply": "Hi there"}))

        with patch("sakhi_bridge.reply.support_api.httpx.AsyncClient", return_value=mock_client):
            result = await api.chat("+15551234567", "hello")

        assert result.ok
        assert result.value == SupportReply(reply="Hi there")
        args, kwargs = mock_client.post.call_args
        assert args[0] == _URL
        assert kwargs["json"] == {
            "user_id": None,
            "phone_number": "+15551234567",
            "message": "hello",
            "language": "en",
        }
        assert kwargs["timeout"] == 5.0

    @pytest.mark.asyncio
    async def test_reads_all_reply_fields(self) -> None:
        api = SupportApiClient(_URL)
        body = {
            "reply": "r",
            "youtube_link": "https://youtu.be/a",
            "infographic_url": "https://cdn/i.png",
            "mode": "onboarding_complete",
            "extra": "ignored",
        }
        mock_client = mock_async_client(post=make_response(200, json_data=body))

        with patch("sakhi_bridge.reply.support_api.httpx.AsyncClient", return_value=mock_client):
            result = await api.chat("+1", "hi")

        assert result.value.mode == "onboarding_complete"
        assert result.value.infographic_url == "https://cdn/i.png"

    @pytest.mark.asyncio
    async def test_error_status_is_remote_failure(self) -> None:
        api = SupportApiClient(_URL)
        mock_client = mock_async_client(post=make_response(503, text="unavailable"))

        with patch("sakhi_bridge.reply.support_api.httpx.AsyncClient", return_value=mock_client):
            result = await api.chat("+1", "hi")

        assert result.error == ErrorKind.REMOTE_FAILURE
        assert "503" in result.detail

    @pytest.mark.asyncio
    async def test_timeout_is_remote_failure(self) -> None:
        api = SupportApiClient(_URL)
        mock_client = mock_async_client(post=httpx.ReadTimeout("timed out"))

        with patch("sakhi_bridge.reply.support_api.httpx.AsyncClient", return_value=mock_client):
            result = await api.chat("+1", "hi")

        assert result.error == ErrorKind.REMOTE_FAILURE

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self) -> None:
        api = SupportApiClient(_URL)
        response = make_response(200, json_data=json.JSONDecodeError("bad", "x", 0), text="x")
        mock_client = mock_async_client(post=response)

        with patch("sakhi_bridge.reply.support_api.httpx.AsyncClient", return_value=mock_client):
            result = await api.chat("+1", "hi")

        assert result.error == ErrorKind.MALFORMED_INPUT

    @pytest.mark.asyncio
    async def test_non_object_body_is_malformed(self) -> None:
        api = SupportApiClient(_URL)
        mock_client = mock_async_client(post=make_response(200, json_data=["not", "an", "object"]))

        with patch("sakhi_bridge.reply.support_api.httpx.AsyncClient", return_value=mock_client):
            result = await api.chat("+1", "hi")

        assert result.error == ErrorKind.MALFORMED_INPUT
