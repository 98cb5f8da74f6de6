"""Shared data models for the Sakhi WhatsApp bridge."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

# --- Enums ---


class ErrorKind(str, Enum):
    """Why a pipeline stage gave up on a message."""

    MALFORMED_INPUT = "malformed_input"
    LIMIT_VIOLATION = "limit_violation"
    REMOTE_FAILURE = "remote_failure"
    UNSUPPORTED_PAYLOAD = "unsupported_payload"


class DeliveryEventType(str, Enum):
    INBOUND_MESSAGE = "inbound_message"
    DUPLICATE_DROPPED = "duplicate_dropped"
    STATUS_UPDATE = "status_update"
    SUPPORT_API_CALL = "support_api_call"
    MEDIA_UPLOAD = "media_upload"
    MESSAGE_SENT = "message_sent"
    SEND_FAILURE = "send_failure"


# --- Stage results ---


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of one pipeline stage: a value, or the kind of failure."""

    value: T | None = None
    error: ErrorKind | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, detail: str | None = None) -> StageResult[T]:
        return cls(value=value, detail=detail)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str) -> StageResult[T]:
        return cls(error=error, detail=detail)


# --- Inbound ---


class InboundEvent(BaseModel):
    """A user message extracted from one webhook call."""

    model_config = ConfigDict(frozen=True)

    sender_id: str | None
    text: str | None
    message_id: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class StatusUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    status: str | None = None
    timestamp: str | None = None


# --- Reply pipeline ---


class ParsedReply(BaseModel):
    """Support API reply split into body text, link and follow-up labels."""

    model_config = ConfigDict(frozen=True)

    main_text: str
    link: str | None = None
    follow_ups: tuple[str, ...] = Field(default=(), max_length=10)


class FollowUpRow(BaseModel):
    """One selectable row of an interactive list message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=200)
    title: str = Field(min_length=1, max_length=24)
    description: str | None = Field(default=None, max_length=72)


class InfographicAttachment(BaseModel):
    """Infographic to send: an uploaded media id, or the original link."""

    model_config = ConfigDict(frozen=True)

    media_id: str | None = None
    link: str | None = None


# --- Delivery log ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DeliveryEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: DeliveryEventType
    recipient: str | None = None
    action: str
    result: str  # "success" | "failure" | "skipped"
    details: dict[str, object] | None = None
