from .auto_reply import AutoReplyDecision
from .channel import Channel
from .messages import ConversationContext, NormalizedInboundMessage, StoredMessage

__all__ = [
    "AutoReplyDecision",
    "Channel",
    "ConversationContext",
    "NormalizedInboundMessage",
    "StoredMessage",
]
