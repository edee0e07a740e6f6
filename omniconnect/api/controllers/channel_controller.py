"""
Channel controller.

Connects channels through the setup orchestrator and exposes provider
operations (status, QR code, restart, diagnostics, outbound sends) for a
channel's stored credentials.
"""

from functools import partial
from typing import Any

from fastapi import HTTPException, Request
from pydantic import BaseModel, Field

from omniconnect.api.dependencies.services import (
    get_channel_client,
    get_channel_repository,
    get_client_registry,
    get_hub,
    get_message_repository,
    require_channel,
)
from omniconnect.core.config.settings import settings
from omniconnect.core.logging.context import set_request_context
from omniconnect.core.logging.logger import get_logger
from omniconnect.domain.models.channel import Channel
from omniconnect.domain.models.messages import ConversationContext
from omniconnect.domain.services.channel_setup import ChannelSetupOrchestrator, SetupResult
from omniconnect.domain.services.inbound_messages import new_message_payload
from omniconnect.messaging.zapi.models import (
    ChannelCredential,
    OutboundMessageRequest,
    SendResult,
)
from omniconnect.messaging.zapi.utils.error_helpers import operator_message
from omniconnect.realtime.models import server_event
from omniconnect.schemas.core.types import AuthMode, ConnectionState, ServerFrameType


class ChannelUpsertRequest(BaseModel):
    """Channel registration payload."""

    name: str = ""
    instance_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    auth_mode: AuthMode = AuthMode.TOKEN_IN_PATH
    client_token: str | None = None


class SendMessageResponse(BaseModel):
    """Outcome of an agent send as shown to the agent UI."""

    success: bool
    message_id: str | None = None
    recipient: str | None = None
    error: str | None = None
    message: str | None = None

    @classmethod
    def from_result(cls, result: SendResult) -> "SendMessageResponse":
        return cls(
            success=result.success,
            message_id=result.message_id,
            recipient=result.recipient,
            error=result.error,
            message=None if result.success else operator_message(result.error),
        )


def webhook_url_for(channel_id: str) -> str:
    return f"{settings.public_base_url}/webhooks/zapi/{channel_id}"


class ChannelController:
    """Channel operations backed by the provider client registry."""

    def __init__(self):
        self.logger = get_logger(__name__)

    async def upsert_channel(
        self, request: Request, channel_id: str, body: ChannelUpsertRequest
    ) -> Channel:
        set_request_context(channel_id=channel_id)
        repository = get_channel_repository(request)
        existing = await repository.get_channel(channel_id)

        channel = Channel(
            id=channel_id,
            name=body.name or (existing.name if existing else channel_id),
            credential=ChannelCredential(
                instance_id=body.instance_id,
                secret_token=body.token,
                auth_mode=body.auth_mode,
                client_token=body.client_token,
            ),
            webhook_url=webhook_url_for(channel_id),
        )
        saved = await repository.save_channel(channel)
        get_client_registry(request).forget(channel_id)
        self.logger.info("Channel credentials saved")
        return saved

    async def setup_channel(self, request: Request, channel_id: str) -> SetupResult:
        set_request_context(channel_id=channel_id)
        channel = await require_channel(request, channel_id)
        registry = get_client_registry(request)

        orchestrator = ChannelSetupOrchestrator(partial(registry.get, channel.id))
        result = await orchestrator.setup_channel(
            channel.credential, webhook_url=webhook_url_for(channel.id)
        )

        await get_channel_repository(request).update_connection_state(
            channel.id, ConnectionState(result.connection_state)
        )
        self.logger.info(f"Channel setup finished: {result.state}")
        return result

    async def get_status(self, request: Request, channel_id: str) -> dict[str, Any]:
        set_request_context(channel_id=channel_id)
        client = await get_channel_client(request, channel_id)
        status = await client.get_status()

        if status.success:
            state = ConnectionState.CONNECTED if status.connected else ConnectionState.DISCONNECTED
        else:
            state = ConnectionState.ERROR
        await get_channel_repository(request).update_connection_state(channel_id, state)

        return {
            "channelId": channel_id,
            "state": state.value,
            "connected": status.connected,
            "smartphoneConnected": status.smartphone_connected,
            "message": None if status.success else operator_message(status.error),
        }

    async def get_qr_code(self, request: Request, channel_id: str) -> dict[str, Any]:
        set_request_context(channel_id=channel_id)
        client = await get_channel_client(request, channel_id)
        qr = await client.get_qr_code()
        if not qr.success:
            raise HTTPException(status_code=502, detail=operator_message(qr.error))
        return {
            "channelId": channel_id,
            "connected": qr.connected,
            "qrNeeded": qr.qr_needed,
            "qrCode": qr.qr_payload,
        }

    async def restart(self, request: Request, channel_id: str) -> dict[str, Any]:
        set_request_context(channel_id=channel_id)
        client = await get_channel_client(request, channel_id)
        result = await client.restart_session()
        if not result.success:
            raise HTTPException(status_code=502, detail=operator_message(result.error))
        return {"success": True, "message": "Session restart requested"}

    async def disconnect(self, request: Request, channel_id: str) -> dict[str, Any]:
        set_request_context(channel_id=channel_id)
        client = await get_channel_client(request, channel_id)
        result = await client.disconnect_session()
        if not result.success:
            raise HTTPException(status_code=502, detail=operator_message(result.error))

        await get_channel_repository(request).update_connection_state(
            channel_id, ConnectionState.DISCONNECTED
        )
        self.logger.info("Channel session disconnected")
        return {"success": True, "message": "Session disconnected"}

    async def webhook_status(self, request: Request, channel_id: str) -> dict[str, Any]:
        """Compare the instance's configured webhook with this channel's webhook URL."""
        set_request_context(channel_id=channel_id)
        client = await get_channel_client(request, channel_id)
        expected = webhook_url_for(channel_id)
        status = await client.get_webhook_status(expected)
        if not status.success:
            raise HTTPException(status_code=502, detail=operator_message(status.error))

        if not status.configured:
            message = "Webhook is not configured. Run channel setup to configure it."
        elif not status.matches:
            message = f"Webhook points elsewhere. Expected {expected}."
        else:
            message = "Webhook is configured"
        return {
            "channelId": channel_id,
            "configured": status.configured,
            "webhookUrl": status.webhook_url,
            "expectedWebhookUrl": expected,
            "matches": status.matches,
            "webhookFeatures": status.webhook_features,
            "message": message,
        }

    async def list_chats(self, request: Request, channel_id: str) -> dict[str, Any]:
        set_request_context(channel_id=channel_id)
        client = await get_channel_client(request, channel_id)
        result = await client.list_chats()
        if not result.success:
            raise HTTPException(status_code=502, detail=operator_message(result.error))
        chats = result.data if isinstance(result.data, list) else []
        return {"channelId": channel_id, "chats": chats}

    async def mark_read(
        self, request: Request, channel_id: str, message_id: str
    ) -> dict[str, Any]:
        set_request_context(channel_id=channel_id)
        client = await get_channel_client(request, channel_id)
        result = await client.mark_read(message_id)
        if not result.success:
            raise HTTPException(status_code=502, detail=operator_message(result.error))
        return {"success": True, "messageId": message_id}

    async def diagnostics(self, request: Request, channel_id: str) -> dict[str, Any]:
        set_request_context(channel_id=channel_id)
        client = await get_channel_client(request, channel_id)
        report = await client.probe()
        return {
            "client": client.diagnostics(),
            "probe": report.model_dump(mode="json"),
        }

    async def send_message(
        self, request: Request, channel_id: str, body: OutboundMessageRequest
    ) -> SendMessageResponse:
        """Send an agent message, then persist and broadcast it on success."""
        set_request_context(channel_id=channel_id)
        channel = await require_channel(request, channel_id)
        client = get_client_registry(request).get(channel.id, channel.credential)

        if body.kind == "text":
            if not body.text:
                raise HTTPException(status_code=400, detail="text is required")
            result = await client.send_text(body.phone, body.text)
            content = body.text
        elif body.kind == "media":
            if body.media_kind is None or not body.media_url:
                raise HTTPException(
                    status_code=400, detail="media_kind and media_url are required"
                )
            result = await client.send_media(
                body.phone, body.media_kind, body.media_url, body.caption, body.file_name
            )
            content = body.caption or ""
        elif body.kind == "location":
            if body.latitude is None or body.longitude is None:
                raise HTTPException(
                    status_code=400, detail="latitude and longitude are required"
                )
            result = await client.send_location(
                body.phone, body.latitude, body.longitude, body.title
            )
            content = body.title or "Location"
        else:
            if not body.contact_name or not body.contact_number:
                raise HTTPException(
                    status_code=400, detail="contact_name and contact_number are required"
                )
            result = await client.send_contact_card(
                body.phone, body.contact_name, body.contact_number
            )
            content = f"Contact: {body.contact_name}"

        if not result.success:
            self.logger.warning(f"Outbound {body.kind} failed: {result.error}")
            return SendMessageResponse.from_result(result)

        stored = await get_message_repository(request).persist_outbound_message(
            ConversationContext(channel_id=channel.id, provider=channel.provider),
            result.recipient,
            content,
            result.message_id,
        )
        await get_hub(request).broadcast(
            server_event(ServerFrameType.NEW_MESSAGE, new_message_payload(stored))
        )
        return SendMessageResponse.from_result(result)
