"""Client for the Sakhi support chat API."""

from __future__ import annotations

import json
import logging

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from sakhi_bridge.models import ErrorKind, StageResult

logger = logging.getLogger(__name__)

ONBOARDING_COMPLETE = "onboarding_complete"
_LOGGED_BODY_CHARS = 500


class SupportReply(BaseModel):
    """Fields of a support API response the bridge acts on."""

    model_config = ConfigDict(extra="ignore")

    reply: str | None = None
    youtube_link: str | None = None
    infographic_url: str | None = None
    mode: str | None = None


def normalise_phone_number(raw: str | None) -> str | None:
    """E.164-style number with a leading '+', as the support API expects."""
    if not raw:
        return None
    return raw if raw.startswith("+") else f"+{raw}"


def truncate_for_log(text: str, limit: int = _LOGGED_BODY_CHARS) -> str:
    return text if len(text) <= limit else f"{text[:limit]}...[{len(text) - limit} more]"


class SupportApiClient:
    """Forwards user text to the support API and returns its reply."""

    def __init__(self, url: str, timeout_seconds: float = 20.0, language: str = "en") -> None:
        self._url = url
        self._timeout_seconds = timeout_seconds
        self._language = language

    async def chat(self, phone_number: str | None, message: str) -> StageResult[SupportReply]:
        """Send one user message; failures are logged and returned, never raised."""
        request_body = {
            "user_id": None,
            "phone_number": phone_number,
            "message": message,
            "language": self._language,
        }
        logger.info("Calling support API at %s", self._url)

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self._url, json=request_body, timeout=self._timeout_seconds,
                )
        except httpx.HTTPError as exc:
            logger.error("Failed calling support API: %s", exc)
            return StageResult.failure(ErrorKind.REMOTE_FAILURE, f"support API unreachable: {exc}")

        if resp.status_code >= 400:
            logger.error(
                "Support API returned error status=%d body=%s",
                resp.status_code, truncate_for_log(resp.text),
            )
            return StageResult.failure(
                ErrorKind.REMOTE_FAILURE, f"support API returned {resp.status_code}",
            )

        try:
            data = resp.json()
            reply = SupportReply.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.error(
                "Support API returned an unreadable body: %s body=%s",
                exc, truncate_for_log(resp.text),
            )
            return StageResult.failure(ErrorKind.MALFORMED_INPUT, "unreadable support API response")

        return StageResult.success(reply)
