"""Z-API webhook handling."""

from .events import WebhookEventKind, classify_webhook
from .normalizer import normalize_inbound

__all__ = ["WebhookEventKind", "classify_webhook", "normalize_inbound"]
