"""
Pydantic models for the Z-API WhatsApp provider.

Credentials, endpoint hypotheses, per-attempt outcomes and the typed results
returned by the provider client.
"""

import re
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from omniconnect.schemas.core.types import (
    AuthMode,
    FailureKind,
    MediaKind,
    ProviderErrorKind,
)

_INSTANCE_IN_URL = re.compile(r"/instances/([A-Fa-f0-9]{32})")
_HEX_RUN = re.compile(r"[A-Fa-f0-9]{32}")


def extract_instance_id(value: str) -> str:
    """
    Extract the provider instance id from a raw id or a pasted dashboard URL.

    Operators frequently paste the whole instance URL instead of the id. The
    ``/instances/<id>`` segment wins, then any 32-hex run; anything else is
    returned trimmed and unchanged.
    """
    value = (value or "").strip()
    match = _INSTANCE_IN_URL.search(value)
    if match:
        return match.group(1)
    match = _HEX_RUN.search(value)
    if match:
        return match.group(0)
    return value


class ChannelCredential(BaseModel):
    """Provider credentials stored for a channel. Immutable per attempt."""

    model_config = ConfigDict(frozen=True)

    instance_id: str = ""
    secret_token: str = ""
    auth_mode: AuthMode = AuthMode.TOKEN_IN_PATH
    client_token: str | None = None

    @field_validator("instance_id", "secret_token", mode="before")
    @classmethod
    def strip_whitespace(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    @property
    def is_complete(self) -> bool:
        return bool(self.instance_id) and bool(self.secret_token)

    @property
    def resolved_instance_id(self) -> str:
        return extract_instance_id(self.instance_id)


class EndpointHypothesis(BaseModel):
    """One candidate URL family and auth placement for the provider API."""

    model_config = ConfigDict(frozen=True)

    base_url_template: str
    auth_mode: AuthMode
    description: str


class HypothesisFailure(BaseModel):
    """Why a single hypothesis attempt was rejected."""

    hypothesis: str
    url: str
    kind: FailureKind
    status: int | None = None
    detail: str = ""


class ProviderResponse(BaseModel):
    """
    Result of resolving one logical provider call across hypotheses.

    ``raw_body`` is the parsed body of the winning attempt, or of the last
    attempt when every hypothesis failed.
    """

    succeeded: bool
    error_kind: ProviderErrorKind | None = None
    raw_body: dict[str, Any] = Field(default_factory=dict)
    hypothesis_used: str | None = None
    failures: list[HypothesisFailure] = Field(default_factory=list)

    @property
    def failure_kinds(self) -> set[FailureKind]:
        return {f.kind for f in self.failures}


class ProbeOutcome(BaseModel):
    """Outcome of one hypothesis during a diagnostic probe."""

    hypothesis: str
    url: str
    succeeded: bool
    status: int | None = None
    failure: FailureKind | None = None
    detail: str = ""


class ProbeReport(BaseModel):
    """Diagnostic probe across every hypothesis, with a likely cause."""

    endpoint: str
    outcomes: list[ProbeOutcome]
    conclusion: str

    @property
    def working(self) -> list[ProbeOutcome]:
        return [o for o in self.outcomes if o.succeeded]


class ProviderResult(BaseModel):
    """Base result of a provider client operation."""

    success: bool
    error: ProviderErrorKind | None = None
    detail: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)
    failures: list[HypothesisFailure] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    class Config:
        use_enum_values = True


class StatusResult(ProviderResult):
    """Connection status of a provider instance."""

    connected: bool = False
    endpoint: str | None = None
    smartphone_connected: bool | None = None


class QrCodeResult(ProviderResult):
    """QR code lookup result; ``connected`` short-circuits the QR flow."""

    connected: bool = False
    qr_payload: str | None = None
    endpoint: str | None = None

    @property
    def qr_needed(self) -> bool:
        return not self.connected


class SendResult(ProviderResult):
    """Result of an outbound send."""

    message_id: str | None = None
    recipient: str | None = None


class DataResult(ProviderResult):
    """Generic result carrying provider data (webhook config, chats, messages)."""

    data: Any = None


class WebhookStatusResult(ProviderResult):
    """
    Webhook configuration of an instance.

    ``matches`` compares the configured URL with the URL the caller expects
    (False when no expectation was given).
    """

    configured: bool = False
    webhook_url: str | None = None
    matches: bool = False
    webhook_features: dict[str, bool] = Field(default_factory=dict)


class OutboundMessageRequest(BaseModel):
    """Agent-initiated outbound message accepted by the channel routes."""

    phone: str = Field(..., min_length=1)
    kind: Literal["text", "media", "location", "contact"] = "text"
    text: str | None = None
    media_kind: MediaKind | None = None
    media_url: str | None = None
    caption: str | None = None
    file_name: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    title: str | None = None
    contact_name: str | None = None
    contact_number: str | None = None
