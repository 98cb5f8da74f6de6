"""FastAPI application exposing the WhatsApp webhook and internal send API."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from sakhi_bridge.config import BridgeSettings
from sakhi_bridge.delivery.logger import DeliveryLogger
from sakhi_bridge.models import DeliveryEvent, DeliveryEventType, ErrorKind
from sakhi_bridge.reply.pipeline import ReplyPipeline
from sakhi_bridge.reply.support_api import SupportApiClient
from sakhi_bridge.server.auth_middleware import ApiTokenMiddleware
from sakhi_bridge.webhook.dedup import ProcessedMessageStore
from sakhi_bridge.webhook.whatsapp import WhatsAppWebhook, is_whatsapp_event
from sakhi_bridge.whatsapp.client import WhatsAppClient
from sakhi_bridge.whatsapp.payloads import build_outbound_payloads

logger = logging.getLogger(__name__)

BANNER = "Sakhi WhatsApp bridge is running"


class SendRequest(BaseModel):
    """Body of POST /api/messages."""

    to: str = Field(min_length=1)
    message: str | dict[str, Any]


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    settings = BridgeSettings.from_env()
    delivery_logger = (
        DeliveryLogger.from_env(settings.delivery_log_path)
        if settings.delivery_log_path else None
    )
    return create_app(settings, delivery_logger=delivery_logger)


def create_app(
    settings: BridgeSettings,
    whatsapp_client: WhatsAppClient | None = None,
    support_api: SupportApiClient | None = None,
    processed_messages: ProcessedMessageStore | None = None,
    delivery_logger: DeliveryLogger | None = None,
) -> FastAPI:
    """Create the bridge app; collaborators default to ones built from settings."""
    app = FastAPI(docs_url=None, redoc_url=None)

    webhook = WhatsAppWebhook(settings.verify_token, settings.app_secret)
    whatsapp = whatsapp_client if whatsapp_client is not None else WhatsAppClient(settings, delivery_logger)
    if support_api is None:
        support_api = SupportApiClient(settings.support_api_url, settings.support_api_timeout)
    if processed_messages is None:
        processed_messages = ProcessedMessageStore()
    pipeline = ReplyPipeline(
        support_api=support_api,
        whatsapp=whatsapp,
        processed_messages=processed_messages,
        delivery_logger=delivery_logger,
        intro_image_url=settings.intro_image_url,
    )

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return BANNER

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/webhook")
    async def verify_webhook(request: Request) -> Response:
        challenge = webhook.handle_verification(dict(request.query_params))
        if challenge is None:
            logger.warning("Webhook verification failed")
            return Response(status_code=403)
        logger.info("Webhook verified")
        return PlainTextResponse(challenge)

    @app.post("/webhook")
    async def receive_webhook(request: Request) -> Response:
        body = await request.body()
        if not webhook.verify_signature(dict(request.headers), body):
            return JSONResponse({"error": "Invalid signature"}, status_code=401)

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse({"error": "Invalid JSON"}, status_code=400)

        if not is_whatsapp_event(payload):
            return Response(status_code=404)

        # Meta redelivers on non-2xx, so processing failures still answer 200
        try:
            event = webhook.extract_message(payload)
            if event is not None:
                result = await pipeline.handle(event)
                if not result.ok:
                    logger.info(
                        "Reply pipeline stopped id=%s error=%s detail=%s",
                        event.message_id, result.error.value, result.detail,
                    )
            else:
                status = webhook.extract_status(payload)
                if status is not None:
                    logger.info("Status update for %s: %s", status.id, status.status)
                    if delivery_logger:
                        delivery_logger.log(DeliveryEvent(
                            event_type=DeliveryEventType.STATUS_UPDATE,
                            action="status",
                            result=status.status or "unknown",
                            details=status.model_dump(exclude_none=True),
                        ))
        except Exception:
            logger.exception("Failed to process webhook")

        return PlainTextResponse("OK")

    if settings.internal_api_token:
        @app.post("/api/messages")
        async def send_message(send_request: SendRequest) -> Response:
            payloads = build_outbound_payloads(send_request.to, send_request.message)
            if not payloads:
                return JSONResponse(
                    {"error": ErrorKind.UNSUPPORTED_PAYLOAD.value}, status_code=422,
                )

            result = await whatsapp.send_payloads(payloads)
            if not result.ok:
                return JSONResponse(
                    {"error": result.error.value, "detail": result.detail, "sent": result.value or 0},
                    status_code=502,
                )
            return JSONResponse({"sent": result.value, "payloads": payloads})

        app.add_middleware(ApiTokenMiddleware, token=settings.internal_api_token)

    return app
