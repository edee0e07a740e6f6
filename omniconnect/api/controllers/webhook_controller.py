"""
Webhook controller.

Routes handle HTTP parsing; the controller classifies the delivery, runs the
normalizer and hands accepted messages to the ingestion service.
"""

from typing import Any

from fastapi import HTTPException, Request

from omniconnect.api.dependencies.services import (
    get_channel_repository,
    get_inbound_service,
    require_channel,
)
from omniconnect.core.logging.context import set_request_context
from omniconnect.core.logging.logger import get_logger, get_webhook_logger
from omniconnect.webhooks.zapi.events import WebhookEventKind, classify_webhook
from omniconnect.webhooks.zapi.normalizer import normalize_inbound

SUPPORTED_PROVIDERS = frozenset({"zapi"})


class WebhookController:
    """Processes provider webhook deliveries for a channel."""

    def __init__(self):
        self.logger = get_logger(__name__)

    async def process_webhook(
        self,
        request: Request,
        provider: str,
        channel_id: str,
        payload: Any,
    ) -> dict[str, Any]:
        """
        Process one webhook delivery.

        Args:
            request: FastAPI request object
            provider: Provider path segment
            channel_id: Channel the webhook was configured for
            payload: Decoded JSON body

        Returns:
            ``{"success": True, "message": ...}`` acknowledgement

        Raises:
            HTTPException: 404 for unknown channel or provider, 400 for
                payloads the normalizer rejects
        """
        set_request_context(channel_id=channel_id)
        logger = get_webhook_logger(__name__, channel_id)

        if provider.lower() not in SUPPORTED_PROVIDERS:
            raise HTTPException(status_code=404, detail=f"Unsupported provider: {provider}")

        channel = await require_channel(request, channel_id)
        await self._record_receipt(request, channel_id)

        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Webhook payload must be a JSON object")

        event_kind = classify_webhook(payload)
        if event_kind == WebhookEventKind.VERIFICATION:
            logger.info("Webhook verification event acknowledged")
            return {"success": True, "message": "Verification acknowledged"}
        if event_kind == WebhookEventKind.NOTIFICATION:
            logger.debug(f"Non-message callback ignored: {payload.get('type')}")
            return {"success": True, "message": "Event acknowledged"}
        if event_kind == WebhookEventKind.ECHO:
            logger.debug("Echo of an outbound message ignored")
            return {"success": True, "message": "Outbound echo ignored"}

        message = normalize_inbound(payload)
        if message is None:
            logger.warning("Webhook payload rejected: no phone field")
            raise HTTPException(
                status_code=400, detail="Payload does not identify a sender phone"
            )

        stored = await get_inbound_service(request).ingest(channel, message)
        return {
            "success": True,
            "message": "Message processed",
            "messageId": stored.id,
            "conversationId": stored.conversation_id,
        }

    async def _record_receipt(self, request: Request, channel_id: str) -> None:
        try:
            await get_channel_repository(request).record_webhook_received(channel_id)
        except Exception:
            self.logger.exception("Failed to record webhook receipt")
