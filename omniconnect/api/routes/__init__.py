from .channels import create_channel_router
from .health import router as health_router
from .realtime import router as realtime_router
from .webhooks import create_webhook_router

__all__ = [
    "create_channel_router",
    "create_webhook_router",
    "health_router",
    "realtime_router",
]
