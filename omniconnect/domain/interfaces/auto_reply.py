"""Auto-reply decision interface."""

from abc import ABC, abstractmethod

from ..models.auto_reply import AutoReplyDecision


class IAutoReplyDecider(ABC):
    """
    Decides whether an inbound text deserves an automatic reply.

    Implementations typically call a hosted language model; none ships here.
    """

    @abstractmethod
    async def should_auto_reply(
        self, text: str, history: list[str] | None = None
    ) -> AutoReplyDecision:
        """
        Args:
            text: Inbound message text
            history: Recent conversation lines, oldest first

        Returns:
            AutoReplyDecision with a confidence in [0, 1]
        """
        pass


class NeverAutoReply(IAutoReplyDecider):
    """Decider used when no auto-reply collaborator is configured."""

    async def should_auto_reply(
        self, text: str, history: list[str] | None = None
    ) -> AutoReplyDecision:
        return AutoReplyDecision(should_reply=False, confidence=0.0)
