"""
Provider webhook routes.

Routes handle only HTTP concerns (JSON parsing, responses); processing is
delegated to the WebhookController.
"""

from fastapi import APIRouter, HTTPException, Request

from omniconnect.api.controllers import WebhookController
from omniconnect.core.logging.logger import get_logger


def create_webhook_router() -> APIRouter:
    """
    Create the webhook router.

    Returns:
        APIRouter with ``POST /webhooks/{provider}/{channel_id}``
    """
    webhook_controller = WebhookController()

    router = APIRouter(
        prefix="/webhooks",
        tags=["Webhooks"],
        responses={
            400: {"description": "Bad Request - Payload rejected"},
            404: {"description": "Not Found - Unknown channel or provider"},
            500: {"description": "Internal Server Error"},
        },
    )

    @router.post("/{provider}/{channel_id}")
    async def process_webhook(request: Request, provider: str, channel_id: str):
        """
        Receive an inbound provider event for a channel.

        Returns:
            ``{success, message}`` acknowledgement
        """
        try:
            payload = await request.json()
        except Exception as e:
            get_logger(__name__).error(f"Failed to parse webhook payload: {e}")
            raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

        return await webhook_controller.process_webhook(
            request=request,
            provider=provider,
            channel_id=channel_id,
            payload=payload,
        )

    return router
