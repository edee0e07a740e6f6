from .channel_controller import ChannelController
from .webhook_controller import WebhookController

__all__ = ["ChannelController", "WebhookController"]
