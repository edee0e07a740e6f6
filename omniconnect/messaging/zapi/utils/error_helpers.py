"""
Z-API error handling utilities.

Maps resolver outcomes onto the client error taxonomy and provides the plain
language wording shown to operators for each error kind.
"""

from omniconnect.core.logging.logger import ContextLogger
from omniconnect.schemas.core.types import FailureKind, ProviderErrorKind

from ..models import ProviderResponse

# Failures compatible with "the token was rejected" when at least one attempt
# explicitly complained about authentication
_AUTH_COMPATIBLE = {
    FailureKind.AUTHENTICATION,
    FailureKind.NOT_FOUND,
    FailureKind.INSTANCE_NOT_FOUND,
}

OPERATOR_MESSAGES: dict[ProviderErrorKind, str] = {
    ProviderErrorKind.MISSING_CREDENTIALS: (
        "Missing credentials: both the instance ID and the token are required."
    ),
    ProviderErrorKind.INVALID_CREDENTIALS: (
        "Invalid credentials: the provider does not know this instance. "
        "Check the instance ID and token in the provider dashboard."
    ),
    ProviderErrorKind.API_INCOMPATIBLE: (
        "The provider API did not recognize any of the known endpoints. "
        "The integration needs to be updated."
    ),
    ProviderErrorKind.AUTHENTICATION_FAILED: (
        "Authentication failed: the provider rejected the token. "
        "Check the instance token and the account security token."
    ),
    ProviderErrorKind.MULTIPLE_TRANSIENT_ERRORS: (
        "Temporary error while talking to the provider. Please try again."
    ),
    ProviderErrorKind.UNCLASSIFIED: (
        "Temporary error while talking to the provider. Please try again."
    ),
}


def is_authentication_failure(response: ProviderResponse) -> bool:
    """Check whether a failed resolution points at a rejected token."""
    kinds = response.failure_kinds
    return FailureKind.AUTHENTICATION in kinds and kinds <= _AUTH_COMPATIBLE


def client_error_kind(response: ProviderResponse) -> ProviderErrorKind:
    """
    Map a failed resolver response onto the client error taxonomy.

    ``MULTIPLE_TRANSIENT_ERRORS`` never leaves the client: it becomes
    ``AUTHENTICATION_FAILED`` when the token was rejected, ``UNCLASSIFIED``
    otherwise.
    """
    kind = response.error_kind or ProviderErrorKind.UNCLASSIFIED
    if kind != ProviderErrorKind.MULTIPLE_TRANSIENT_ERRORS:
        return ProviderErrorKind(kind)
    if is_authentication_failure(response):
        return ProviderErrorKind.AUTHENTICATION_FAILED
    return ProviderErrorKind.UNCLASSIFIED


def describe_failures(response: ProviderResponse) -> str:
    """One-line summary of per-hypothesis failures for logs and diagnostics."""
    return "; ".join(
        f"{f.hypothesis}: {f.kind.value}" + (f" ({f.status})" if f.status else "")
        for f in response.failures
    )


def operator_message(kind: ProviderErrorKind | str | None) -> str:
    """Plain language message for an error kind."""
    if kind is None:
        return OPERATOR_MESSAGES[ProviderErrorKind.UNCLASSIFIED]
    return OPERATOR_MESSAGES.get(
        ProviderErrorKind(kind), OPERATOR_MESSAGES[ProviderErrorKind.UNCLASSIFIED]
    )


def log_provider_failure(
    response: ProviderResponse,
    operation: str,
    logger: ContextLogger,
) -> ProviderErrorKind:
    """Log a failed provider operation and return its client error kind.

    Args:
        response: Failed resolver response
        operation: Description of the operation (e.g. "send text message")
        logger: Logger to report to

    Returns:
        The client-level error kind
    """
    kind = client_error_kind(response)
    if kind in (
        ProviderErrorKind.INVALID_CREDENTIALS,
        ProviderErrorKind.AUTHENTICATION_FAILED,
    ):
        logger.error(
            f"🚨 Provider credentials rejected while trying to {operation}: "
            f"{describe_failures(response)}"
        )
    else:
        logger.warning(
            f"Failed to {operation} ({kind.value}): {describe_failures(response)}"
        )
    return kind
