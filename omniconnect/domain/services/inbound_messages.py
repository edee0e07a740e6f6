"""
Inbound message ingestion.

Persists a normalized message, fans it out to agents, then gives the
auto-reply policy a chance to answer. Persistence always completes before
the ``new_message`` broadcast of the same message.
"""

from omniconnect.core.logging.logger import get_logger
from omniconnect.messaging.zapi.registry import ZapiClientRegistry
from omniconnect.realtime.hub import FanOutHub
from omniconnect.realtime.models import server_event
from omniconnect.schemas.core.types import ServerFrameType

from ..interfaces.message_repository import IMessageRepository
from ..models.channel import Channel
from ..models.messages import ConversationContext, NormalizedInboundMessage, StoredMessage
from .auto_reply_policy import AutoReplyPolicy


def new_message_payload(
    stored: StoredMessage, sender_name: str | None = None
) -> dict:
    return {
        "conversationId": stored.conversation_id,
        "channelId": stored.channel_id,
        "message": stored.model_dump(mode="json"),
        "contact": {"phone": stored.contact_phone, "name": sender_name},
    }


class InboundMessageService:
    """Runs the ingestion pipeline for one normalized message at a time."""

    def __init__(
        self,
        messages: IMessageRepository,
        hub: FanOutHub,
        clients: ZapiClientRegistry | None = None,
        auto_reply: AutoReplyPolicy | None = None,
    ):
        self.messages = messages
        self.hub = hub
        self.clients = clients
        self.auto_reply = auto_reply
        self.logger = get_logger(__name__)

    async def ingest(
        self, channel: Channel, message: NormalizedInboundMessage
    ) -> StoredMessage:
        """
        Persist and broadcast an inbound message.

        Persistence errors propagate; auto-reply errors are logged only.
        """
        context = ConversationContext(channel_id=channel.id, provider=channel.provider)
        stored = await self.messages.persist_inbound_message(message, context)

        delivered = await self.hub.broadcast(
            server_event(
                ServerFrameType.NEW_MESSAGE,
                new_message_payload(stored, message.sender_display_name),
            )
        )
        self.logger.info(
            f"Inbound message {stored.id} from {message.phone_digits_only} "
            f"delivered to {delivered} agents"
        )

        if self._should_consider_auto_reply(message):
            try:
                await self._auto_reply(channel, context, stored, message)
            except Exception:
                self.logger.exception(f"Auto-reply failed for message {stored.id}")

        return stored

    def _should_consider_auto_reply(self, message: NormalizedInboundMessage) -> bool:
        return (
            self.auto_reply is not None
            and self.clients is not None
            and not message.is_media_message
            and bool(message.text_content.strip())
        )

    async def _auto_reply(
        self,
        channel: Channel,
        context: ConversationContext,
        stored: StoredMessage,
        message: NormalizedInboundMessage,
    ) -> None:
        history = await self.messages.recent_history(
            stored.conversation_id, self.auto_reply.history_limit
        )
        reply = await self.auto_reply.decide(message.text_content, history)
        if reply is None:
            return

        client = self.clients.get(channel.id, channel.credential)
        result = await client.send_text(message.phone_digits_only, reply)
        if not result.success:
            self.logger.warning(
                f"Auto-reply to {message.phone_digits_only} not sent: {result.error}"
            )
            return

        outbound = await self.messages.persist_outbound_message(
            context, message.phone_digits_only, reply, result.message_id
        )
        await self.hub.broadcast(
            server_event(ServerFrameType.NEW_MESSAGE, new_message_payload(outbound))
        )
        self.logger.info(f"Auto-reply sent to {message.phone_digits_only}")
