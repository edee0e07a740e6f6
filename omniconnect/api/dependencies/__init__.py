from .services import (
    get_channel_client,
    get_channel_repository,
    get_client_registry,
    get_hub,
    get_inbound_service,
    get_message_repository,
    get_ws_hub,
    require_channel,
)

__all__ = [
    "get_channel_client",
    "get_channel_repository",
    "get_client_registry",
    "get_hub",
    "get_inbound_service",
    "get_message_repository",
    "get_ws_hub",
    "require_channel",
]
