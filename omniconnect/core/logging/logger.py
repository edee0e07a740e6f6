"""
Rich-based logger with channel and user context support for OmniConnect.

Provides context-aware logging: every message is prefixed with the channel
and agent currently being served, read from context variables.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from omniconnect.core.config.settings import settings


class CompactFormatter(logging.Formatter):
    """Custom formatter that shortens long module names for better readability."""

    def format(self, record):
        if record.name.startswith("omniconnect."):
            # omniconnect.messaging.zapi.resolver -> zapi.resolver
            parts = record.name.split(".")
            if len(parts) > 2:
                record.name = ".".join(parts[-2:])

        return super().format(record)


_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "debug": "dim white",
    }
)
_console = Console(theme=_theme)


class ContextLogger:
    """
    Logger wrapper that adds channel and user context to messages.

    Context is added as a message prefix instead of through the format string,
    so third-party log records keep working with the same handlers.
    """

    def __init__(
        self,
        logger: logging.Logger,
        channel_id: str | None = None,
        user_id: str | None = None,
    ):
        self.logger = logger
        self.channel_id = channel_id or "---"
        self.user_id = user_id or "---"

    def _format_message(self, message: str) -> str:
        """Add context prefix to message."""
        from .context import get_current_channel_context, get_current_user_context

        current_channel = get_current_channel_context() or self.channel_id
        current_user = get_current_user_context() or self.user_id

        if current_channel and current_channel != "---":
            if current_user and current_user != "---":
                return f"[C:{current_channel}][U:{current_user}] {message}"
            return f"[C:{current_channel}] {message}"
        elif current_user and current_user != "---":
            return f"[U:{current_user}] {message}"
        return message

    def debug(self, message: str, *args, **kwargs) -> None:
        self.logger.debug(self._format_message(message), *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self.logger.info(self._format_message(message), *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self.logger.warning(self._format_message(message), *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self.logger.error(self._format_message(message), *args, **kwargs)

    def exception(self, message: str, *args, **kwargs) -> None:
        self.logger.exception(self._format_message(message), *args, **kwargs)

    def bind(self, **kwargs) -> ContextLogger:
        """
        Create a new ContextLogger with additional or updated context.

        Args:
            **kwargs: ``channel_id`` and/or ``user_id`` overrides

        Returns:
            New ContextLogger instance with updated context

        Example:
            hub_logger = logger.bind(user_id="42")
        """
        return ContextLogger(
            self.logger,
            channel_id=kwargs.get("channel_id", self.channel_id),
            user_id=kwargs.get("user_id", self.user_id),
        )


def setup_logging(
    *,
    level: str = "INFO",
    mode: str = "PROD",
    log_dir: str | None = None,
    console_fmt: str | None = None,
    file_fmt: str | None = None,
) -> None:
    """
    Initialize the root logger with Rich formatting.

    Parameters
    ----------
    level : str
        Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
    mode : str
        "DEV" creates daily log files + console; anything else → console only
    log_dir : str, optional
        Directory for log files (DEV mode only)
    console_fmt : str, optional
        Console format string
    file_fmt : str, optional
        File format string
    """
    lvl = level.upper()
    lvl = lvl if lvl in ("DEBUG", "INFO", "WARNING", "ERROR") else "INFO"

    # RichHandler already shows level and time
    console_format = console_fmt or "[%(name)s] %(message)s"
    file_format = file_fmt or "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

    rich_handler = RichHandler(
        console=_console,
        rich_tracebacks=True,
        show_time=True,
        show_level=True,
        markup=False,
    )
    rich_handler.setFormatter(CompactFormatter(console_format))

    handlers: list[logging.Handler] = [rich_handler]

    if mode.upper() == "DEV" and log_dir:
        os.makedirs(log_dir, exist_ok=True)
        logfile = os.path.join(log_dir, f"omniconnect_{datetime.now():%Y%m%d}.log")
        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(CompactFormatter(file_format))
        handlers.append(file_handler)
        _console.print(f"[green]DEV mode:[/] console + file → {logfile}")
    else:
        _console.print(f"Logging configured for mode '{mode}'. Console only.")

    logging.basicConfig(level=lvl, handlers=handlers, force=True)
    logging.getLogger("OmniConnectLoggerSetup").info(f"Logging initialized ({lvl})")


def setup_app_logging() -> None:
    """
    Initialize application logging.

    Called once during FastAPI application startup.
    """
    setup_logging(
        level=settings.log_level,
        mode="DEV" if settings.is_development else "PROD",
        log_dir=settings.log_dir if settings.is_development else None,
    )


def get_logger(name: str) -> ContextLogger:
    """
    Get a logger that automatically uses request context variables.

    Args:
        name: Logger name (usually __name__)

    Returns:
        ContextLogger instance with automatic context from context variables
    """
    from .context import get_current_channel_context, get_current_user_context

    return ContextLogger(
        logging.getLogger(name),
        channel_id=get_current_channel_context(),
        user_id=get_current_user_context(),
    )


def get_app_logger() -> ContextLogger:
    """Get application logger for startup and shutdown events."""
    return get_logger("omniconnect.app")


def get_webhook_logger(name: str, channel_id: str) -> ContextLogger:
    """
    Get a logger bound to the channel a webhook was delivered for.

    Args:
        name: Logger name (usually __name__)
        channel_id: Channel ID from the webhook path
    """
    return get_logger(name).bind(channel_id=channel_id)
