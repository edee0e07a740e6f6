"""Presence repository interface."""

from abc import ABC, abstractmethod


class IPresenceRepository(ABC):
    """Interface for agent presence persistence."""

    @abstractmethod
    async def set_presence(self, user_id: int, is_online: bool) -> None:
        """
        Persist an agent's online flag.

        Args:
            user_id: Agent identifier
            is_online: Whether the agent has a live connection
        """
        pass

    @abstractmethod
    async def get_presence(self, user_id: int) -> bool | None:
        """Return the stored online flag, or None if never recorded."""
        pass
