"""
Strict classification of a single provider HTTP attempt.

Every raw response is turned into an ``AttemptSuccess`` or ``AttemptFailure``
right at the HTTP boundary. Nothing downstream inspects raw bodies for error
markers.
"""

from dataclasses import dataclass, field
from typing import Any

from omniconnect.schemas.core.types import FailureKind

INSTANCE_NOT_FOUND_MARKERS = ("instance not found",)
NOT_FOUND_MARKERS = ("not_found", "not found")
AUTHENTICATION_MARKERS = (
    "client-token",
    "token",
    "unauthorized",
    "not authorized",
    "forbidden",
)


@dataclass(frozen=True)
class AttemptSuccess:
    status: int
    body: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AttemptFailure:
    kind: FailureKind
    status: int | None = None
    detail: str = ""
    body: dict[str, Any] = field(default_factory=dict)


AttemptOutcome = AttemptSuccess | AttemptFailure


def _error_text(body: dict[str, Any]) -> str | None:
    """Return the provider error text, or None when the body carries no error."""
    error = body.get("error")
    if error:
        message = body.get("message")
        if isinstance(message, str) and message:
            return f"{error} {message}"
        return str(error)
    return None


def _kind_from_text(text: str) -> FailureKind:
    lowered = text.lower()
    if any(marker in lowered for marker in INSTANCE_NOT_FOUND_MARKERS):
        return FailureKind.INSTANCE_NOT_FOUND
    if any(marker in lowered for marker in AUTHENTICATION_MARKERS):
        return FailureKind.AUTHENTICATION
    if any(marker in lowered for marker in NOT_FOUND_MARKERS):
        return FailureKind.NOT_FOUND
    return FailureKind.PROVIDER_ERROR


def classify_response(status: int, body: dict[str, Any]) -> AttemptOutcome:
    """
    Classify a completed HTTP exchange.

    Args:
        status: HTTP status code
        body: Parsed response body (always a dict, see ``parse_body``)

    Returns:
        AttemptSuccess for a 2xx without error marker, AttemptFailure otherwise
    """
    error_text = _error_text(body)

    if 200 <= status < 300:
        if error_text is None:
            return AttemptSuccess(status=status, body=body)
        return AttemptFailure(
            kind=_kind_from_text(error_text),
            status=status,
            detail=error_text,
            body=body,
        )

    message = body.get("message") if isinstance(body.get("message"), str) else ""
    detail = error_text or message or f"HTTP {status}"
    if status in (401, 403):
        kind = FailureKind.AUTHENTICATION
        if error_text or message:
            text_kind = _kind_from_text(detail)
            # "Instance not found" answered with 401/403 is still a bad instance id
            if text_kind == FailureKind.INSTANCE_NOT_FOUND:
                kind = text_kind
    elif status == 404:
        text_kind = _kind_from_text(detail) if (error_text or message) else None
        kind = (
            FailureKind.INSTANCE_NOT_FOUND
            if text_kind == FailureKind.INSTANCE_NOT_FOUND
            else FailureKind.NOT_FOUND
        )
    elif error_text or message:
        kind = _kind_from_text(detail)
    else:
        kind = FailureKind.TRANSPORT

    return AttemptFailure(kind=kind, status=status, detail=detail, body=body)
