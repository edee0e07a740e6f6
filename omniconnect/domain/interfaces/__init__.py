"""Collaborator interfaces reached by the messaging core."""

from .auto_reply import IAutoReplyDecider, NeverAutoReply
from .channel_repository import IChannelRepository
from .message_repository import IMessageRepository
from .presence_repository import IPresenceRepository

__all__ = [
    "IAutoReplyDecider",
    "IChannelRepository",
    "IMessageRepository",
    "IPresenceRepository",
    "NeverAutoReply",
]
