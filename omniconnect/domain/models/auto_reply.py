"""Auto-reply decision model."""

from pydantic import BaseModel, Field


class AutoReplyDecision(BaseModel):
    """Verdict of the auto-reply collaborator for one inbound text."""

    should_reply: bool = False
    suggested_reply: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    sentiment: str | None = None
