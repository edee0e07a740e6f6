"""Classification of Z-API webhook deliveries before normalization."""

from enum import Enum
from typing import Any

NON_MESSAGE_CALLBACKS = frozenset(
    {
        "messagestatuscallback",
        "presencechatcallback",
        "connectedcallback",
        "disconnectedcallback",
        "deliverycallback",
    }
)
NON_MESSAGE_EVENTS = frozenset(
    {"onstatus", "onpresence", "onconnected", "ondisconnected", "status", "presence"}
)


class WebhookEventKind(str, Enum):
    """What a webhook delivery carries."""

    MESSAGE = "message"
    VERIFICATION = "verification"
    NOTIFICATION = "notification"  # Status, presence and connection callbacks
    ECHO = "echo"  # Copy of a message sent by the business itself


def _lowered(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return value.strip().lower() if isinstance(value, str) else ""


def classify_webhook(payload: dict[str, Any]) -> WebhookEventKind:
    event = _lowered(payload, "event")
    kind = _lowered(payload, "type")

    if "verification" in (event, kind):
        return WebhookEventKind.VERIFICATION
    if kind in NON_MESSAGE_CALLBACKS or event in NON_MESSAGE_EVENTS:
        return WebhookEventKind.NOTIFICATION

    value = payload.get("value")
    if payload.get("fromMe") is True or (
        isinstance(value, dict) and value.get("fromMe") is True
    ):
        return WebhookEventKind.ECHO
    return WebhookEventKind.MESSAGE
