"""Runtime settings for the bridge, read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SUPPORT_API_URL = "http://localhost:8000/sakhi/chat"
DEFAULT_INTRO_IMAGE_URL = (
    "https://fxmahshkttkccevualan.supabase.co/storage/v1/object/public/"
    "sakhi_infographics/Sakhi_Intro-min.png"
)
_GRAPH_API_HOST = "https://graph.facebook.com"


class BridgeSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    whatsapp_token: str = Field(min_length=1)
    phone_number_id: str = Field(min_length=1)
    verify_token: str = ""
    app_secret: str | None = None
    graph_api_version: str = "v21.0"
    support_api_url: str = DEFAULT_SUPPORT_API_URL
    support_api_timeout_ms: int = Field(default=20_000, gt=0)
    internal_api_token: str | None = None
    delivery_log_path: str | None = None
    intro_image_url: str = DEFAULT_INTRO_IMAGE_URL

    @property
    def messages_url(self) -> str:
        return f"{_GRAPH_API_HOST}/{self.graph_api_version}/{self.phone_number_id}/messages"

    @property
    def media_url(self) -> str:
        return f"{_GRAPH_API_HOST}/{self.graph_api_version}/{self.phone_number_id}/media"

    @property
    def support_api_timeout(self) -> float:
        return self.support_api_timeout_ms / 1000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BridgeSettings:
        """Build settings from environment variables.

        WHATSAPP_TOKEN and PHONE_NUMBER_ID are required; everything else
        falls back to a default. Empty optional values count as unset.
        """
        env = os.environ if environ is None else environ
        return cls(
            whatsapp_token=env["WHATSAPP_TOKEN"],
            phone_number_id=env["PHONE_NUMBER_ID"],
            verify_token=env.get("VERIFY_TOKEN", ""),
            app_secret=env.get("WHATSAPP_APP_SECRET") or None,
            graph_api_version=env.get("GRAPH_API_VERSION") or "v21.0",
            support_api_url=env.get("SAKHI_API_URL") or DEFAULT_SUPPORT_API_URL,
            support_api_timeout_ms=int(env.get("SAKHI_API_TIMEOUT_MS") or 20_000),
            internal_api_token=env.get("INTERNAL_API_TOKEN") or None,
            delivery_log_path=env.get("DELIVERY_LOG_PATH") or None,
            intro_image_url=env.get("INTRO_IMAGE_URL") or DEFAULT_INTRO_IMAGE_URL,
        )
