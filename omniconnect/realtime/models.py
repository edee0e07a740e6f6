"""Realtime frames and per-connection state."""

import itertools
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from omniconnect.schemas.core.types import ServerFrameType

from .connection import SocketHandle

_connection_ids = itertools.count(1)


def now_ms() -> int:
    return int(time.time() * 1000)


class RealtimeEvent(BaseModel):
    """JSON frame exchanged with agent sockets: ``{type, data?, timestamp?}``."""

    type: str
    data: dict[str, Any] | None = None
    timestamp: int = Field(default_factory=now_ms)

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


def server_event(frame_type: ServerFrameType, data: dict[str, Any] | None = None) -> RealtimeEvent:
    return RealtimeEvent(type=frame_type.value, data=data)


@dataclass(eq=False)
class LiveConnection:
    """One agent socket. Unauthenticated until ``user_id`` is set."""

    handle: SocketHandle
    id: int = field(default_factory=lambda: next(_connection_ids))
    user_id: int | None = None
    role: str | None = None
    is_alive: bool = True
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None
