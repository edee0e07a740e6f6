"""Channel repository interface."""

from abc import ABC, abstractmethod

from omniconnect.schemas.core.types import ConnectionState

from ..models.channel import Channel


class IChannelRepository(ABC):
    """Interface for channel lookup and bookkeeping."""

    @abstractmethod
    async def get_channel(self, channel_id: str) -> Channel | None:
        """Return the channel, or None when it does not exist."""
        pass

    @abstractmethod
    async def save_channel(self, channel: Channel) -> Channel:
        """Create or replace a channel."""
        pass

    @abstractmethod
    async def update_connection_state(
        self, channel_id: str, state: ConnectionState
    ) -> None:
        """Record the latest known connection state of a channel."""
        pass

    @abstractmethod
    async def record_webhook_received(self, channel_id: str) -> None:
        """Bump the channel's webhook receipt statistics."""
        pass
