"""Domain services."""

from .auto_reply_policy import AutoReplyPolicy
from .channel_setup import ChannelSetupOrchestrator, SetupResult
from .inbound_messages import InboundMessageService

__all__ = [
    "AutoReplyPolicy",
    "ChannelSetupOrchestrator",
    "InboundMessageService",
    "SetupResult",
]
