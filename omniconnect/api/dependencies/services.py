"""
Service dependency injection.

Every long-lived service is created by the application lifespan and kept on
``app.state``; these helpers hand them to routes and controllers.
"""

from fastapi import HTTPException, Request, WebSocket

from omniconnect.domain.interfaces.channel_repository import IChannelRepository
from omniconnect.domain.interfaces.message_repository import IMessageRepository
from omniconnect.domain.models.channel import Channel
from omniconnect.domain.services.inbound_messages import InboundMessageService
from omniconnect.messaging.zapi.client import ZapiClient
from omniconnect.messaging.zapi.registry import ZapiClientRegistry
from omniconnect.realtime.hub import FanOutHub


def get_hub(request: Request) -> FanOutHub:
    return request.app.state.hub


def get_ws_hub(websocket: WebSocket) -> FanOutHub:
    return websocket.app.state.hub


def get_channel_repository(request: Request) -> IChannelRepository:
    return request.app.state.channels


def get_client_registry(request: Request) -> ZapiClientRegistry:
    return request.app.state.clients


def get_message_repository(request: Request) -> IMessageRepository:
    return request.app.state.messages


def get_inbound_service(request: Request) -> InboundMessageService:
    return request.app.state.inbound


async def require_channel(request: Request, channel_id: str) -> Channel:
    """Load a channel or answer 404."""
    channel = await get_channel_repository(request).get_channel(channel_id)
    if channel is None:
        raise HTTPException(status_code=404, detail=f"Unknown channel: {channel_id}")
    return channel


async def get_channel_client(request: Request, channel_id: str) -> ZapiClient:
    """Provider client of an existing channel (404 when the channel is unknown)."""
    channel = await require_channel(request, channel_id)
    return get_client_registry(request).get(channel.id, channel.credential)
