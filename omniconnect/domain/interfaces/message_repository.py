"""
Message repository interface.

Persistence collaborator for conversations and messages. The storage schema
lives outside this package.
"""

from abc import ABC, abstractmethod

from ..models.messages import ConversationContext, NormalizedInboundMessage, StoredMessage


class IMessageRepository(ABC):
    """Interface for message persistence."""

    @abstractmethod
    async def persist_inbound_message(
        self, message: NormalizedInboundMessage, context: ConversationContext
    ) -> StoredMessage:
        """
        Store an inbound message, creating the contact and conversation as needed.

        Args:
            message: Normalized inbound message
            context: Channel the message arrived on

        Returns:
            The stored message, including its conversation id
        """
        pass

    @abstractmethod
    async def persist_outbound_message(
        self,
        context: ConversationContext,
        phone: str,
        text: str,
        external_message_id: str | None = None,
    ) -> StoredMessage:
        """
        Store a message sent to a contact on behalf of the business.

        Args:
            context: Channel the message was sent through
            phone: Recipient phone, digits only
            text: Message content
            external_message_id: Provider id of the sent message

        Returns:
            The stored message
        """
        pass

    @abstractmethod
    async def recent_history(self, conversation_id: str, limit: int = 10) -> list[str]:
        """
        Return the latest message contents of a conversation, oldest first.

        Args:
            conversation_id: Conversation identifier
            limit: Maximum number of entries
        """
        pass
