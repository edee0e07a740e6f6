"""
Message models shared by the webhook pipeline, persistence and the hub.
"""

import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from omniconnect.schemas.core.types import MediaKind

_DIGITS = re.compile(r"[0-9]+")


class NormalizedInboundMessage(BaseModel):
    """
    Canonical shape of an inbound provider message.

    Immutable once created. ``is_media_message`` is true exactly when
    ``media_kind`` is set, and the phone is ASCII digits only.
    """

    model_config = ConfigDict(frozen=True)

    phone_digits_only: str
    text_content: str = ""
    external_message_id: str | None = None
    sender_display_name: str | None = None
    timestamp_epoch_ms: int
    is_media_message: bool = False
    media_kind: MediaKind | None = None
    media_url: str | None = None
    file_name: str | None = None
    thumbnail_url: str | None = None
    duration_seconds: float | None = None
    is_quoted_reply: bool = False
    quoted_message_id: str | None = None
    quoted_message_text: str | None = None

    @field_validator("phone_digits_only")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not _DIGITS.fullmatch(v):
            raise ValueError("phone must contain ASCII digits only")
        return v

    @model_validator(mode="after")
    def validate_media_flag(self) -> "NormalizedInboundMessage":
        if self.is_media_message != (self.media_kind is not None):
            raise ValueError("is_media_message must be set exactly when media_kind is")
        return self


class ConversationContext(BaseModel):
    """Where an inbound message arrived."""

    channel_id: str
    provider: str = "zapi"


class StoredMessage(BaseModel):
    """A message as returned by the persistence collaborator."""

    id: str
    conversation_id: str
    channel_id: str
    contact_phone: str
    content: str = ""
    is_from_agent: bool = False
    external_message_id: str | None = None
    media_kind: MediaKind | None = None
    media_url: str | None = None
    file_name: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = Field(default_factory=dict)
