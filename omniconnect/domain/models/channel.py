"""Channel model."""

from datetime import datetime

from pydantic import BaseModel, Field

from omniconnect.messaging.zapi.models import ChannelCredential
from omniconnect.schemas.core.types import ConnectionState


class Channel(BaseModel):
    """A configured messaging channel (one provider instance)."""

    id: str
    name: str = ""
    provider: str = "zapi"
    credential: ChannelCredential = Field(default_factory=ChannelCredential)
    connection_state: ConnectionState = ConnectionState.UNKNOWN
    webhook_url: str | None = None
    webhooks_received: int = 0
    last_webhook_at: datetime | None = None
