"""Channel management routes."""

from typing import Any

from fastapi import APIRouter, Request

from omniconnect.api.controllers import ChannelController
from omniconnect.api.controllers.channel_controller import (
    ChannelUpsertRequest,
    SendMessageResponse,
)
from omniconnect.domain.models.channel import Channel
from omniconnect.domain.services.channel_setup import SetupResult
from omniconnect.messaging.zapi.models import OutboundMessageRequest


def create_channel_router() -> APIRouter:
    """Create the channel router delegating to ChannelController."""
    controller = ChannelController()

    router = APIRouter(
        prefix="/channels",
        tags=["Channels"],
        responses={
            404: {"description": "Not Found - Unknown channel"},
            502: {"description": "Bad Gateway - Provider error"},
        },
    )

    @router.put(
        "/{channel_id}", response_model=Channel, response_model_exclude={"credential"}
    )
    async def upsert_channel(request: Request, channel_id: str, body: ChannelUpsertRequest):
        """Register or replace a channel's provider credentials."""
        return await controller.upsert_channel(request, channel_id, body)

    @router.post("/{channel_id}/setup", response_model=SetupResult)
    async def setup_channel(request: Request, channel_id: str):
        """
        Connect a channel: configure the webhook when already paired,
        otherwise return a QR code to scan.
        """
        return await controller.setup_channel(request, channel_id)

    @router.get("/{channel_id}/status")
    async def channel_status(request: Request, channel_id: str) -> dict[str, Any]:
        return await controller.get_status(request, channel_id)

    @router.get("/{channel_id}/qr-code")
    async def channel_qr_code(request: Request, channel_id: str) -> dict[str, Any]:
        return await controller.get_qr_code(request, channel_id)

    @router.post("/{channel_id}/restart")
    async def restart_channel(request: Request, channel_id: str) -> dict[str, Any]:
        return await controller.restart(request, channel_id)

    @router.post("/{channel_id}/disconnect")
    async def disconnect_channel(request: Request, channel_id: str) -> dict[str, Any]:
        return await controller.disconnect(request, channel_id)

    @router.get("/{channel_id}/webhook")
    async def channel_webhook_status(request: Request, channel_id: str) -> dict[str, Any]:
        """Report whether the instance webhook points at this channel."""
        return await controller.webhook_status(request, channel_id)

    @router.get("/{channel_id}/chats")
    async def channel_chats(request: Request, channel_id: str) -> dict[str, Any]:
        return await controller.list_chats(request, channel_id)

    @router.post("/{channel_id}/messages/{message_id}/read")
    async def mark_message_read(
        request: Request, channel_id: str, message_id: str
    ) -> dict[str, Any]:
        return await controller.mark_read(request, channel_id, message_id)

    @router.get("/{channel_id}/diagnostics")
    async def channel_diagnostics(request: Request, channel_id: str) -> dict[str, Any]:
        """Probe every endpoint hypothesis and report the likely cause of failures."""
        return await controller.diagnostics(request, channel_id)

    @router.post("/{channel_id}/messages", response_model=SendMessageResponse)
    async def send_message(request: Request, channel_id: str, body: OutboundMessageRequest):
        """Send an agent message through the channel."""
        return await controller.send_message(request, channel_id, body)

    return router
