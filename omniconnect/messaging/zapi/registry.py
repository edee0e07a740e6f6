"""Per-channel Z-API client registry."""

from collections.abc import Callable

import aiohttp

from omniconnect.core.logging.logger import get_logger

from .client import ZapiClient
from .models import ChannelCredential

ClientFactory = Callable[[aiohttp.ClientSession, ChannelCredential], ZapiClient]


class ZapiClientRegistry:
    """
    Keeps one ZapiClient per channel.

    The client (and its cached winning hypothesis) is reused while the
    channel's credentials stay the same and replaced as soon as they change.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        client_factory: ClientFactory | None = None,
    ):
        self.session = session
        self._factory = client_factory or ZapiClient
        self._clients: dict[str, ZapiClient] = {}
        self.logger = get_logger(__name__)

    def get(self, channel_id: str, credential: ChannelCredential) -> ZapiClient:
        client = self._clients.get(channel_id)
        if client is not None and client.credential == credential:
            return client

        if client is not None:
            self.logger.info(f"Credentials changed for channel {channel_id}, new client")
        client = self._factory(self.session, credential)
        self._clients[channel_id] = client
        return client

    def forget(self, channel_id: str) -> None:
        self._clients.pop(channel_id, None)

    def __len__(self) -> int:
        return len(self._clients)
