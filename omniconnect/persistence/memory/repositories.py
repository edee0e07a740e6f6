"""
In-memory repositories.

Used for development and tests. State lives in the process and is lost on
restart; conversations are keyed by (channel, contact phone).
"""

import itertools
from datetime import UTC, datetime

from omniconnect.domain.interfaces.channel_repository import IChannelRepository
from omniconnect.domain.interfaces.message_repository import IMessageRepository
from omniconnect.domain.interfaces.presence_repository import IPresenceRepository
from omniconnect.domain.models.channel import Channel
from omniconnect.domain.models.messages import (
    ConversationContext,
    NormalizedInboundMessage,
    StoredMessage,
)
from omniconnect.schemas.core.types import ConnectionState


class MemoryChannelRepository(IChannelRepository):
    def __init__(self, channels: list[Channel] | None = None):
        self._channels: dict[str, Channel] = {c.id: c for c in channels or []}

    async def get_channel(self, channel_id: str) -> Channel | None:
        return self._channels.get(channel_id)

    async def save_channel(self, channel: Channel) -> Channel:
        self._channels[channel.id] = channel
        return channel

    async def update_connection_state(
        self, channel_id: str, state: ConnectionState
    ) -> None:
        channel = self._channels.get(channel_id)
        if channel is not None:
            self._channels[channel_id] = channel.model_copy(
                update={"connection_state": state}
            )

    async def record_webhook_received(self, channel_id: str) -> None:
        channel = self._channels.get(channel_id)
        if channel is not None:
            self._channels[channel_id] = channel.model_copy(
                update={
                    "webhooks_received": channel.webhooks_received + 1,
                    "last_webhook_at": datetime.now(UTC),
                }
            )


class MemoryMessageRepository(IMessageRepository):
    def __init__(self):
        self._ids = itertools.count(1)
        self._conversations: dict[tuple[str, str], str] = {}
        self.messages: list[StoredMessage] = []

    def _conversation_id(self, channel_id: str, phone: str) -> str:
        key = (channel_id, phone)
        if key not in self._conversations:
            self._conversations[key] = f"conv-{len(self._conversations) + 1}"
        return self._conversations[key]

    async def persist_inbound_message(
        self, message: NormalizedInboundMessage, context: ConversationContext
    ) -> StoredMessage:
        stored = StoredMessage(
            id=str(next(self._ids)),
            conversation_id=self._conversation_id(
                context.channel_id, message.phone_digits_only
            ),
            channel_id=context.channel_id,
            contact_phone=message.phone_digits_only,
            content=message.text_content,
            external_message_id=message.external_message_id,
            media_kind=message.media_kind,
            media_url=message.media_url,
            file_name=message.file_name,
            created_at=datetime.fromtimestamp(message.timestamp_epoch_ms / 1000, UTC),
            metadata={"senderName": message.sender_display_name}
            if message.sender_display_name
            else {},
        )
        self.messages.append(stored)
        return stored

    async def persist_outbound_message(
        self,
        context: ConversationContext,
        phone: str,
        text: str,
        external_message_id: str | None = None,
    ) -> StoredMessage:
        stored = StoredMessage(
            id=str(next(self._ids)),
            conversation_id=self._conversation_id(context.channel_id, phone),
            channel_id=context.channel_id,
            contact_phone=phone,
            content=text,
            is_from_agent=True,
            external_message_id=external_message_id,
        )
        self.messages.append(stored)
        return stored

    async def recent_history(self, conversation_id: str, limit: int = 10) -> list[str]:
        contents = [m.content for m in self.messages if m.conversation_id == conversation_id]
        return contents[-limit:] if limit > 0 else []


class MemoryPresenceRepository(IPresenceRepository):
    def __init__(self):
        self._presence: dict[int, bool] = {}

    async def set_presence(self, user_id: int, is_online: bool) -> None:
        self._presence[user_id] = is_online

    async def get_presence(self, user_id: int) -> bool | None:
        return self._presence.get(user_id)
