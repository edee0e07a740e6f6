"""
Z-API WhatsApp provider client.

Typed request surface over the endpoint resolver. Every operation returns a
result model; classifiable provider failures are reported through the result's
``error`` kind instead of being raised.

Key Design Decisions:
- One client per channel credential set, so the resolver's cached winner
  lives as long as the credentials do
- Phone numbers are reduced to digits before any outbound payload
- aiohttp session is injected (no fallback session creation)
"""

import re
from typing import Any
from urllib.parse import quote, urlsplit

import aiohttp

from omniconnect.core.config.settings import settings
from omniconnect.core.logging.logger import get_logger
from omniconnect.schemas.core.types import MediaKind, ProviderErrorKind

from .models import (
    ChannelCredential,
    DataResult,
    EndpointHypothesis,
    ProbeReport,
    ProviderResponse,
    ProviderResult,
    QrCodeResult,
    SendResult,
    StatusResult,
    WebhookStatusResult,
)
from .resolver import EndpointResolver
from .utils.error_helpers import describe_failures, log_provider_failure

STATUS_PRIMARY_ENDPOINT = "/connection"
STATUS_FALLBACK_ENDPOINTS = ("/status", "/session", "/device", "/phone", "/instance", "/me")
# Endpoints that only answer at all when a device is paired
INFORMATIONAL_ENDPOINTS = frozenset({"/device", "/phone", "/me"})
STATUS_NOT_FOUND_STREAK_LIMIT = 3
CONNECTED_STATUS_VALUES = frozenset(
    {"connected", "open", "online", "authenticated", "inchat", "logged", "ready"}
)

QR_ENDPOINTS = ("/qr-code", "/qr-code/image", "/qrcode", "/v2/qr-code")
QR_PAYLOAD_KEYS = ("qrcode", "qrCode", "qr_code", "qr", "base64", "image", "value")

MEDIA_ENDPOINTS: dict[MediaKind, tuple[str, str]] = {
    MediaKind.IMAGE: ("/send-image", "image"),
    MediaKind.VIDEO: ("/send-video", "video"),
    MediaKind.AUDIO: ("/send-audio", "audio"),
    MediaKind.PTT: ("/send-audio", "audio"),
    MediaKind.DOCUMENT: ("/send-document", "document"),
    MediaKind.STICKER: ("/send-sticker", "sticker"),
}

WEBHOOK_FEATURES = {
    "receiveAllNotifications": True,
    "messageReceived": True,
    "messageCreate": True,
    "statusChange": True,
    "presenceChange": True,
    "deviceConnected": True,
    "receiveByEmail": False,
}

_NON_DIGITS = re.compile(r"[^0-9]")


def digits_only(phone: str | None) -> str:
    """Strip everything but ASCII digits from a phone number."""
    return _NON_DIGITS.sub("", phone or "")


def derive_connected(endpoint: str, body: dict[str, Any]) -> bool:
    """
    Derive the connected flag from a status-like response.

    True when the body says so explicitly, when its status string is one of
    the provider's connected values, or when an informational endpoint that
    only answers for paired devices answered.
    """
    if body.get("connected") is True:
        return True
    for key in ("status", "state", "connectionStatus", "connection"):
        value = body.get(key)
        if isinstance(value, str) and value.strip().lower() in CONNECTED_STATUS_VALUES:
            return True
    if body.get("connected") is False:
        return False
    return endpoint in INFORMATIONAL_ENDPOINTS


def extract_qr_payload(body: dict[str, Any]) -> str | None:
    """Return the first recognizable QR payload in a response body."""
    for key in QR_PAYLOAD_KEYS:
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def extract_message_id(body: dict[str, Any]) -> str | None:
    for key in ("messageId", "id", "zaapId"):
        value = body.get(key)
        if value:
            return str(value)
    return None


class ZapiClient:
    """Z-API client bound to one channel's credentials."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        credential: ChannelCredential,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        hypotheses: list[EndpointHypothesis] | None = None,
        status_not_found_streak_limit: int | None = None,
    ):
        """Initialize the client.

        Args:
            session: Shared aiohttp session
            credential: Channel credentials
            base_url: Provider host override
            timeout_seconds: Per-attempt timeout override
            hypotheses: Hypothesis list override
            status_not_found_streak_limit: Consecutive not-found status
                attempts after which the credentials are considered invalid
        """
        self.credential = credential
        self.resolver = EndpointResolver(
            session,
            credential,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            hypotheses=hypotheses,
        )
        self.status_not_found_streak_limit = (
            status_not_found_streak_limit
            or settings.status_not_found_streak_limit
            or STATUS_NOT_FOUND_STREAK_LIMIT
        )
        self.logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _missing(self, result_cls: type[ProviderResult], **extra) -> ProviderResult | None:
        if self.credential.is_complete:
            return None
        return result_cls(
            success=False,
            error=ProviderErrorKind.MISSING_CREDENTIALS,
            detail="Instance ID and token are required",
            **extra,
        )

    def _failed(
        self,
        result_cls: type[ProviderResult],
        response: ProviderResponse,
        operation: str,
        **extra,
    ) -> ProviderResult:
        kind = log_provider_failure(response, operation, self.logger)
        return result_cls(
            success=False,
            error=kind,
            detail=describe_failures(response),
            raw=response.raw_body,
            failures=response.failures,
            **extra,
        )

    async def _send(
        self, endpoint: str, payload: dict[str, Any], operation: str, recipient: str
    ) -> SendResult:
        if missing := self._missing(SendResult, recipient=recipient):
            return missing
        if not recipient:
            return SendResult(
                success=False,
                error=ProviderErrorKind.UNCLASSIFIED,
                detail="Recipient phone has no digits",
            )

        response = await self.resolver.resolve("POST", endpoint, payload)
        if not response.succeeded:
            return self._failed(SendResult, response, operation, recipient=recipient)

        message_id = extract_message_id(response.raw_body)
        self.logger.debug(f"{operation} to {recipient} accepted (id={message_id})")
        return SendResult(
            success=True,
            message_id=message_id,
            recipient=recipient,
            raw=response.raw_body,
        )

    async def _fetch(
        self, method: str, endpoint: str, operation: str, body: dict | None = None
    ) -> DataResult:
        if missing := self._missing(DataResult):
            return missing
        response = await self.resolver.resolve(method, endpoint, body)
        if not response.succeeded:
            return self._failed(DataResult, response, operation)
        data = response.raw_body.get("items", response.raw_body)
        return DataResult(success=True, data=data, raw=response.raw_body)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def get_status(self) -> StatusResult:
        """
        Get the connection status of the instance.

        Tries the primary connection endpoint, then the fallback list. An
        instance-not-found answer, or a streak of not-found answers, ends the
        walk early with ``INVALID_CREDENTIALS``.
        """
        if missing := self._missing(StatusResult):
            return missing

        streak = 0
        last_response: ProviderResponse | None = None
        for endpoint in (STATUS_PRIMARY_ENDPOINT, *STATUS_FALLBACK_ENDPOINTS):
            response = await self.resolver.resolve("GET", endpoint)

            if response.succeeded:
                body = response.raw_body
                smartphone = body.get("smartphoneConnected")
                return StatusResult(
                    success=True,
                    connected=derive_connected(endpoint, body),
                    endpoint=endpoint,
                    smartphone_connected=smartphone if isinstance(smartphone, bool) else None,
                    raw=body,
                )

            last_response = response
            if response.error_kind == ProviderErrorKind.INVALID_CREDENTIALS:
                return self._failed(StatusResult, response, "get connection status")

            if response.error_kind == ProviderErrorKind.API_INCOMPATIBLE:
                streak += 1
                if streak >= self.status_not_found_streak_limit:
                    self.logger.warning(
                        f"{streak} consecutive status endpoints not found, "
                        "treating credentials as invalid"
                    )
                    return StatusResult(
                        success=False,
                        error=ProviderErrorKind.INVALID_CREDENTIALS,
                        detail=f"{streak} consecutive status endpoints not found",
                        raw=response.raw_body,
                        failures=response.failures,
                    )
            else:
                streak = 0

        return self._failed(StatusResult, last_response, "get connection status")

    async def get_qr_code(self) -> QrCodeResult:
        """
        Get a QR code to pair the instance.

        Checks the status first: a connected instance needs no QR code and
        invalid credentials are reported without calling any QR endpoint.
        """
        status = await self.get_status()
        if status.success and status.connected:
            return QrCodeResult(success=True, connected=True, endpoint=status.endpoint)
        if not status.success and status.error in (
            ProviderErrorKind.MISSING_CREDENTIALS,
            ProviderErrorKind.INVALID_CREDENTIALS,
        ):
            return QrCodeResult(
                success=False,
                error=status.error,
                detail=status.detail,
                failures=status.failures,
            )

        last_response: ProviderResponse | None = None
        for endpoint in QR_ENDPOINTS:
            response = await self.resolver.resolve("GET", endpoint)
            if response.succeeded:
                body = response.raw_body
                if body.get("connected") is True:
                    return QrCodeResult(success=True, connected=True, endpoint=endpoint)
                payload = extract_qr_payload(body)
                if payload:
                    self.logger.info(f"QR code obtained from {endpoint}")
                    return QrCodeResult(success=True, qr_payload=payload, endpoint=endpoint)
                self.logger.debug(f"{endpoint} answered without a QR payload")
                continue

            if response.error_kind == ProviderErrorKind.INVALID_CREDENTIALS:
                return self._failed(QrCodeResult, response, "get QR code")
            last_response = response

        if last_response is None:
            return QrCodeResult(
                success=False,
                error=ProviderErrorKind.UNCLASSIFIED,
                detail="Provider answered without a QR code",
            )
        return self._failed(QrCodeResult, last_response, "get QR code")

    async def restart_session(self) -> DataResult:
        return await self._fetch("GET", "/restart", "restart session")

    async def disconnect_session(self) -> DataResult:
        return await self._fetch("GET", "/disconnect", "disconnect session")

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_text(self, phone: str, text: str) -> SendResult:
        recipient = digits_only(phone)
        return await self._send(
            "/send-text", {"phone": recipient, "message": text}, "send text message", recipient
        )

    async def send_media(
        self,
        phone: str,
        kind: MediaKind | str,
        url: str,
        caption: str | None = None,
        file_name: str | None = None,
    ) -> SendResult:
        """Send an image, video, audio, voice note, document or sticker by URL."""
        kind = MediaKind(kind)
        recipient = digits_only(phone)
        endpoint, field = MEDIA_ENDPOINTS[kind]
        payload: dict[str, Any] = {"phone": recipient, field: url}

        if caption and kind in (MediaKind.IMAGE, MediaKind.VIDEO, MediaKind.DOCUMENT):
            payload["caption"] = caption
        if kind == MediaKind.DOCUMENT:
            name = file_name or urlsplit(url).path.rsplit("/", 1)[-1] or "document"
            extension = name.rsplit(".", 1)[-1] if "." in name else "pdf"
            endpoint = f"{endpoint}/{extension}"
            payload["fileName"] = name
        if kind == MediaKind.PTT:
            payload["waveform"] = True

        return await self._send(endpoint, payload, f"send {kind.value}", recipient)

    async def send_location(
        self, phone: str, lat: float, lng: float, title: str | None = None
    ) -> SendResult:
        recipient = digits_only(phone)
        payload = {
            "phone": recipient,
            "title": title or "Location",
            "address": title or f"{lat},{lng}",
            "latitude": str(lat),
            "longitude": str(lng),
        }
        return await self._send("/send-location", payload, "send location", recipient)

    async def send_contact_card(self, phone: str, name: str, number: str) -> SendResult:
        recipient = digits_only(phone)
        payload = {
            "phone": recipient,
            "contactName": name,
            "contactPhone": digits_only(number),
        }
        return await self._send("/send-contact", payload, "send contact card", recipient)

    async def mark_read(self, message_id: str) -> DataResult:
        return await self._fetch(
            "POST", "/read-message", "mark message as read", {"messageId": message_id}
        )

    async def list_chats(self) -> DataResult:
        return await self._fetch("GET", "/chats", "list chats")

    async def get_messages(self, phone: str, count: int = 20) -> DataResult:
        endpoint = f"/chat-messages/{quote(digits_only(phone))}?amount={int(count)}"
        return await self._fetch("GET", endpoint, "get chat messages")

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def set_webhook(self, url: str) -> DataResult:
        """
        Point the instance's webhooks at ``url`` with every receive feature on.

        Falls back to the single received-message webhook endpoint when the
        combined configuration endpoint is unknown to the instance.
        """
        result = await self._fetch(
            "PUT",
            "/webhook",
            "configure webhook",
            {"url": url, "webhookFeatures": dict(WEBHOOK_FEATURES)},
        )
        if result.success or result.error != ProviderErrorKind.API_INCOMPATIBLE:
            return result

        self.logger.info("Combined webhook endpoint unknown, using received-webhook endpoint")
        return await self._fetch(
            "PUT", "/update-webhook-received", "configure webhook", {"value": url}
        )

    async def get_webhook(self) -> DataResult:
        return await self._fetch("GET", "/webhook", "get webhook configuration")

    async def get_webhook_status(
        self, expected_url: str | None = None
    ) -> WebhookStatusResult:
        """
        Report whether the instance webhook is configured, and where it points.

        Older instances answer with ``value`` instead of ``url``. Feature
        flags missing from the answer are reported as off.
        """
        result = await self.get_webhook()
        if not result.success:
            return WebhookStatusResult(
                success=False,
                error=result.error,
                detail=result.detail,
                failures=result.failures,
            )

        data = result.data if isinstance(result.data, dict) else {}
        url = data.get("url") or data.get("value")
        url = url.strip() if isinstance(url, str) and url.strip() else None
        features = data.get("webhookFeatures")
        features = features if isinstance(features, dict) else {}

        return WebhookStatusResult(
            success=True,
            configured=url is not None,
            webhook_url=url,
            matches=url is not None and url.rstrip("/") == (expected_url or "").rstrip("/"),
            webhook_features={name: features.get(name) is True for name in WEBHOOK_FEATURES},
            raw=result.raw,
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def diagnostics(self) -> dict[str, Any]:
        """Credential and resolver diagnostics safe to show to an operator."""
        token = self.credential.secret_token
        cached = self.resolver.cached_hypothesis
        return {
            "original_input": self.credential.instance_id,
            "extracted_instance_id": self.credential.resolved_instance_id,
            "token_length": len(token),
            "token_preview": f"{token[:5]}..." if token else "",
            "has_client_token": bool(self.credential.client_token),
            "auth_mode": self.credential.auth_mode.value,
            "hypotheses": [h.description for h in self.resolver.hypotheses],
            "cached_hypothesis": cached.description if cached else None,
        }

    async def probe(self, endpoint: str = "/status") -> ProbeReport:
        return await self.resolver.probe("GET", endpoint)
