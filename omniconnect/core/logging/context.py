"""
Request context management using contextvars for automatic propagation.

The channel context is set when a webhook for a channel is processed and the
user context is set while handling frames of an authenticated agent socket.
Both are picked up by every ContextLogger without passing them around.
"""

from contextvars import ContextVar

_channel_context: ContextVar[str | None] = ContextVar(
    "channel_id", default=None
)  # From webhook path / channel routes
_user_context: ContextVar[str | None] = ContextVar(
    "user_id", default=None
)  # From realtime authentication


def set_request_context(
    channel_id: str | None = None,
    user_id: str | None = None,
) -> None:
    """
    Set the request context for the current async context.

    Args:
        channel_id: Channel identifier the current request belongs to
        user_id: Agent identifier bound to the current realtime connection
    """
    if channel_id is not None:
        _channel_context.set(channel_id)
    if user_id is not None:
        _user_context.set(user_id)


def get_current_channel_context() -> str | None:
    """Get the current channel ID from context variables."""
    return _channel_context.get()


def get_current_user_context() -> str | None:
    """Get the current user ID from context variables."""
    return _user_context.get()


def clear_request_context() -> None:
    """
    Clear the request context.

    Context is isolated per asyncio task, this is mostly useful for testing.
    """
    _channel_context.set(None)
    _user_context.set(None)
