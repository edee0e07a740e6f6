"""
Z-API inbound webhook normalizer.

Turns any of the provider's message payload variants into a
``NormalizedInboundMessage``. The function is pure and total: missing or
malformed fields degrade to defaults, and the only rejection is a payload
without a phone-identifying field.
"""

import math
import time
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from omniconnect.core.logging.logger import get_logger
from omniconnect.domain.models.messages import NormalizedInboundMessage
from omniconnect.messaging.zapi.client import digits_only
from omniconnect.schemas.core.types import MediaKind

logger = get_logger(__name__)

MEDIA_KIND_VALUES = {kind.value for kind in MediaKind}
KIND_ALIASES = {
    "chat": "text",
    "conversation": "text",
    "voice": "ptt",
    "contacts": "contact",
    "vcard": "contact",
}
INFERABLE_KINDS = ("image", "video", "audio", "document", "sticker", "location", "contact")

PHONE_FIELDS = ("phone", "from", "sender", "chatId", "remoteJid")
MESSAGE_ID_FIELDS = ("messageId", "id", "zaapId")
SENDER_NAME_FIELDS = ("senderName", "chatName", "pushName", "notifyName")
TIMESTAMP_FIELDS = ("momment", "timestamp", "messageTimestamp", "t", "time")
TEXT_FIELDS = ("body", "message", "content", "caption")
MEDIA_URL_FIELDS = ("url", "mediaUrl", "fileUrl", "link")
QUOTED_FIELDS = ("quotedMessage", "quotedMsg", "quoted")

DEFAULT_EXTENSIONS = {
    MediaKind.IMAGE: "jpg",
    MediaKind.VIDEO: "mp4",
    MediaKind.AUDIO: "ogg",
    MediaKind.PTT: "ogg",
    MediaKind.DOCUMENT: "bin",
    MediaKind.STICKER: "webp",
}

# 9999-12-31T23:59:59.999Z, the last instant datetime can hold
MAX_TIMESTAMP_MS = 253_402_300_799_999

MAP_LINK_TEMPLATE = "https://maps.google.com/?q={lat},{lng}"


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first_str(sources: list[dict[str, Any]], keys: tuple[str, ...]) -> str | None:
    """First non-empty string (or number) found under ``keys`` in ``sources``."""
    for source in sources:
        for key in keys:
            value = source.get(key)
            if isinstance(value, bool):
                continue
            if isinstance(value, (int, float)):
                return str(value)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _unwrap(payload: dict[str, Any]) -> dict[str, Any]:
    """Flatten the ``value``/``data``/``message`` envelopes of older versions."""
    message = payload
    for key in ("value", "data", "message"):
        inner = message.get(key)
        if isinstance(inner, dict) and any(
            field in inner for field in (*PHONE_FIELDS, *MESSAGE_ID_FIELDS)
        ):
            message = {**message, **inner}
    return message


def _phone(message: dict[str, Any]) -> str | None:
    for key in PHONE_FIELDS:
        value = message.get(key)
        if isinstance(value, dict):
            value = value.get("phone") or value.get("id")
        if isinstance(value, bool) or value is None:
            continue
        digits = digits_only(str(value).split("@")[0])
        if digits:
            return digits
    return None


def _kind(message: dict[str, Any]) -> str:
    for key in ("messageType", "mediaType", "type"):
        value = message.get(key)
        if isinstance(value, str):
            value = KIND_ALIASES.get(value.strip().lower(), value.strip().lower())
            if value in MEDIA_KIND_VALUES or value in ("text", "location", "contact"):
                return value

    audio = message.get("audio")
    if isinstance(audio, dict) and audio.get("ptt") is True:
        return MediaKind.PTT.value
    for kind in INFERABLE_KINDS:
        if isinstance(message.get(kind), dict):
            return kind
    if isinstance(message.get("ptt"), dict):
        return MediaKind.PTT.value
    return "text"


def _timestamp_ms(message: dict[str, Any], now_ms: int) -> int:
    for key in TIMESTAMP_FIELDS:
        value = message.get(key)
        number = _number(value)
        if number is not None:
            # Seconds until the year 33658, milliseconds after
            candidate = int(number * 1000) if number < 1e12 else int(number)
        elif isinstance(value, str) and value.strip():
            try:
                parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
                candidate = int(parsed.timestamp() * 1000)
            except (ValueError, OverflowError, OSError):
                continue
        else:
            continue
        if 0 < candidate <= MAX_TIMESTAMP_MS:
            return candidate
    return now_ms


def _text(message: dict[str, Any]) -> str:
    text = message.get("text")
    if isinstance(text, dict):
        nested = _first_str([text], ("message", "body", "text"))
        if nested:
            return nested
    elif isinstance(text, str) and text.strip():
        return text.strip()
    return _first_str([message], TEXT_FIELDS) or ""


def _extension(kind: MediaKind, mime_type: str | None) -> str:
    if mime_type and "/" in mime_type:
        subtype = mime_type.split("/", 1)[1].split(";", 1)[0].strip()
        if subtype and subtype.isalnum():
            return {"jpeg": "jpg", "mpeg": "mp3"}.get(subtype, subtype)
    return DEFAULT_EXTENSIONS[kind]


def _media_fields(
    message: dict[str, Any], kind: MediaKind, message_id: str | None, timestamp_ms: int
) -> dict[str, Any]:
    nested = _as_dict(message.get(kind.value))
    if kind == MediaKind.PTT and not nested:
        nested = _as_dict(message.get("audio"))
    sources = [nested, message]

    url = _first_str(sources, (f"{kind.value}Url", *MEDIA_URL_FIELDS))
    if kind == MediaKind.PTT and url is None:
        url = _first_str(sources, ("audioUrl",))

    file_name = _first_str(sources, ("fileName", "filename"))
    if file_name is None:
        mime_type = _first_str(sources, ("mimeType", "mimetype"))
        file_name = f"{kind.value}_{message_id or timestamp_ms}.{_extension(kind, mime_type)}"

    fields: dict[str, Any] = {
        "is_media_message": True,
        "media_kind": kind,
        "media_url": url,
        "file_name": file_name,
        "text_content": _first_str(sources, ("caption",)) or _text(message),
    }
    if kind in (MediaKind.VIDEO, MediaKind.AUDIO, MediaKind.PTT):
        fields["duration_seconds"] = _number(_first_str(sources, ("seconds", "duration")))
    if kind == MediaKind.VIDEO:
        fields["thumbnail_url"] = _first_str(sources, ("thumbnailUrl", "thumbnail"))
    return fields


def _location_fields(message: dict[str, Any]) -> dict[str, Any]:
    nested = _as_dict(message.get("location")) or message
    lat = _number(nested.get("latitude", nested.get("lat")))
    lng = _number(nested.get("longitude", nested.get("lng", nested.get("lon"))))
    url = (
        MAP_LINK_TEMPLATE.format(lat=lat, lng=lng)
        if lat is not None and lng is not None
        else _first_str([nested], ("url",))
    )
    title = _first_str([nested], ("name", "title", "address")) or "Location"
    return {"media_url": url, "text_content": title}


def _contact_fields(message: dict[str, Any]) -> dict[str, Any]:
    nested = _as_dict(message.get("contact"))
    if not nested and isinstance(message.get("contacts"), list) and message["contacts"]:
        nested = _as_dict(message["contacts"][0])
    name = _first_str([nested], ("displayName", "name", "formattedName")) or "Unknown"
    return {"text_content": f"Contact: {name}"}


def _quoted_fields(message: dict[str, Any]) -> dict[str, Any]:
    quoted: dict[str, Any] | None = None
    for key in QUOTED_FIELDS:
        if isinstance(message.get(key), dict):
            quoted = message[key]
            break

    reference_id = _first_str([message], ("referenceMessageId",))
    if quoted is None and reference_id is None:
        return {}

    quoted = quoted or {}
    return {
        "is_quoted_reply": True,
        "quoted_message_id": _first_str([quoted], ("messageId", "id", "stanzaId"))
        or reference_id,
        "quoted_message_text": _text(quoted) or None,
    }


def normalize_inbound(
    payload: Any, now_ms: int | None = None
) -> NormalizedInboundMessage | None:
    """
    Normalize a provider message payload.

    Args:
        payload: Decoded webhook JSON body
        now_ms: Clock value used when the payload carries no timestamp

    Returns:
        The normalized message, or None when no phone field is present
    """
    if not isinstance(payload, dict):
        return None

    message = _unwrap(payload)
    phone = _phone(message)
    if phone is None:
        return None

    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    timestamp_ms = _timestamp_ms(message, now_ms)
    message_id = _first_str([message], MESSAGE_ID_FIELDS)
    sender = _first_str([message], SENDER_NAME_FIELDS) or _first_str(
        [_as_dict(message.get("sender"))], ("name", "pushName")
    )

    fields: dict[str, Any] = {
        "phone_digits_only": phone,
        "external_message_id": message_id,
        "sender_display_name": sender,
        "timestamp_epoch_ms": timestamp_ms,
    }

    kind = _kind(message)
    if kind in MEDIA_KIND_VALUES:
        fields.update(_media_fields(message, MediaKind(kind), message_id, timestamp_ms))
    elif kind == "location":
        fields.update(_location_fields(message))
    elif kind == "contact":
        fields.update(_contact_fields(message))
    else:
        fields["text_content"] = _text(message)

    fields.update(_quoted_fields(message))

    try:
        return NormalizedInboundMessage(**fields)
    except ValidationError as e:
        logger.warning(f"Degrading malformed {kind} payload to a bare message: {e}")
        return NormalizedInboundMessage(
            phone_digits_only=phone,
            external_message_id=message_id,
            timestamp_epoch_ms=timestamp_ms,
        )
