from .repositories import (
    MemoryChannelRepository,
    MemoryMessageRepository,
    MemoryPresenceRepository,
)

__all__ = [
    "MemoryChannelRepository",
    "MemoryMessageRepository",
    "MemoryPresenceRepository",
]
