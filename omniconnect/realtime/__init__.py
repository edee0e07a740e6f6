"""Realtime fan-out to agent sockets."""

from .connection import SocketHandle, StarletteSocketHandle
from .hub import FanOutHub
from .models import LiveConnection, RealtimeEvent, server_event

__all__ = [
    "FanOutHub",
    "LiveConnection",
    "RealtimeEvent",
    "SocketHandle",
    "StarletteSocketHandle",
    "server_event",
]
