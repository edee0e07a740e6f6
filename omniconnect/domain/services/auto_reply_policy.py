"""Auto-reply policy: when the core may act on an auto-reply decision."""

from omniconnect.core.config.settings import settings
from omniconnect.core.logging.logger import get_logger

from ..interfaces.auto_reply import IAutoReplyDecider
from ..models.auto_reply import AutoReplyDecision


class AutoReplyPolicy:
    """
    Wraps the decider with the operator's confidence threshold.

    A decision is acted on only when the decider says to reply, offers a
    non-empty reply and is at least as confident as the threshold.
    """

    def __init__(
        self,
        decider: IAutoReplyDecider,
        threshold: float | None = None,
        history_limit: int = 10,
    ):
        self.decider = decider
        self.threshold = (
            settings.auto_reply_confidence_threshold if threshold is None else threshold
        )
        self.history_limit = history_limit
        self.logger = get_logger(__name__)

    def accepts(self, decision: AutoReplyDecision) -> bool:
        return (
            decision.should_reply
            and bool(decision.suggested_reply and decision.suggested_reply.strip())
            and decision.confidence >= self.threshold
        )

    async def decide(self, text: str, history: list[str] | None = None) -> str | None:
        """Return the reply to send, or None when the core must not reply."""
        decision = await self.decider.should_auto_reply(text, history)
        if not self.accepts(decision):
            self.logger.debug(
                f"Auto-reply declined (reply={decision.should_reply}, "
                f"confidence={decision.confidence:.2f}, threshold={self.threshold:.2f})"
            )
            return None
        return decision.suggested_reply
