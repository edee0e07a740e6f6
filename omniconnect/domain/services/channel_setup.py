"""
Channel setup orchestration.

Drives the provider client through the connect flow for one channel:

    START → get_status
      error (invalid credentials / API incompatible / auth failed) → ERROR
      connected → set_webhook (best effort) → SUCCESS
      not connected → get_qr_code
          error → ERROR, QR payload → PENDING, neither → ERROR

Operators only ever see plain language messages; raw provider bodies stay in
the optional diagnostics payload.
"""

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from omniconnect.core.logging.logger import get_logger
from omniconnect.messaging.zapi.client import ZapiClient
from omniconnect.messaging.zapi.models import ChannelCredential, ProviderResult
from omniconnect.messaging.zapi.utils.error_helpers import operator_message
from omniconnect.schemas.core.types import ConnectionState, ProviderErrorKind, SetupState

# Status errors that end the flow without trying the QR endpoints
TERMINAL_STATUS_ERRORS = frozenset(
    {
        ProviderErrorKind.MISSING_CREDENTIALS,
        ProviderErrorKind.INVALID_CREDENTIALS,
        ProviderErrorKind.API_INCOMPATIBLE,
        ProviderErrorKind.AUTHENTICATION_FAILED,
    }
)

MESSAGE_CONNECTED = "WhatsApp is connected."
MESSAGE_CONNECTED_NO_WEBHOOK = (
    "WhatsApp is connected, but the webhook could not be configured automatically. "
    "Incoming messages will not arrive until it is set in the provider dashboard."
)
MESSAGE_SCAN_QR = "Scan the QR code with WhatsApp on your phone to connect this channel."
MESSAGE_UNDETERMINED = "Could not determine the connection state of this channel."


class SetupResult(BaseModel):
    """Outcome of a channel setup attempt."""

    state: SetupState
    connection_state: ConnectionState
    message: str
    qr_payload: str | None = None
    error: ProviderErrorKind | None = None
    webhook_configured: bool = False
    diagnostics: dict[str, Any] | None = None

    class Config:
        use_enum_values = True


class ChannelSetupOrchestrator:
    """Runs the connect flow for channels through their provider clients."""

    def __init__(self, client_for: Callable[[ChannelCredential], ZapiClient]):
        """
        Args:
            client_for: Returns the provider client for a credential set
                (usually the channel's entry in the client registry)
        """
        self._client_for = client_for
        self.logger = get_logger(__name__)

    def _error(
        self,
        kind: ProviderErrorKind | str | None,
        client: ZapiClient | None = None,
        result: ProviderResult | None = None,
    ) -> SetupResult:
        kind = ProviderErrorKind(kind) if kind else ProviderErrorKind.UNCLASSIFIED
        diagnostics: dict[str, Any] = {"error": kind.value}
        if result is not None:
            diagnostics["detail"] = result.detail
            diagnostics["failures"] = [f.model_dump(mode="json") for f in result.failures]
        if client is not None:
            diagnostics["client"] = client.diagnostics()

        return SetupResult(
            state=SetupState.ERROR,
            connection_state=ConnectionState.ERROR,
            message=operator_message(kind),
            error=kind,
            diagnostics=diagnostics,
        )

    async def _connected(self, client: ZapiClient, webhook_url: str | None) -> SetupResult:
        webhook_configured = False
        if webhook_url:
            result = await client.set_webhook(webhook_url)
            webhook_configured = result.success
            if not webhook_configured:
                self.logger.warning(
                    f"Channel connected but webhook setup failed: {result.detail}"
                )

        return SetupResult(
            state=SetupState.SUCCESS,
            connection_state=ConnectionState.CONNECTED,
            message=(
                MESSAGE_CONNECTED
                if webhook_configured or not webhook_url
                else MESSAGE_CONNECTED_NO_WEBHOOK
            ),
            webhook_configured=webhook_configured,
        )

    async def setup_channel(
        self, credentials: ChannelCredential, webhook_url: str | None = None
    ) -> SetupResult:
        """
        Connect a channel.

        Args:
            credentials: Stored channel credentials
            webhook_url: Where the provider should deliver inbound events

        Returns:
            SetupResult in one of the terminal states SUCCESS, PENDING or ERROR
        """
        if not credentials.is_complete:
            self.logger.info("Setup refused: incomplete credentials")
            return self._error(ProviderErrorKind.MISSING_CREDENTIALS)

        client = self._client_for(credentials)
        status = await client.get_status()

        if status.success and status.connected:
            return await self._connected(client, webhook_url)

        status_error = ProviderErrorKind(status.error or ProviderErrorKind.UNCLASSIFIED)
        if not status.success and status_error in TERMINAL_STATUS_ERRORS:
            self.logger.info(f"Setup failed on status check: {status.error}")
            return self._error(status.error, client, status)

        qr = await client.get_qr_code()
        if not qr.success:
            return self._error(qr.error, client, qr)
        if qr.connected:
            return await self._connected(client, webhook_url)
        if qr.qr_payload:
            return SetupResult(
                state=SetupState.PENDING,
                connection_state=ConnectionState.PENDING_SCAN,
                message=MESSAGE_SCAN_QR,
                qr_payload=qr.qr_payload,
            )

        self.logger.warning("Setup ended without status or QR code")
        return SetupResult(
            state=SetupState.ERROR,
            connection_state=ConnectionState.UNKNOWN,
            message=MESSAGE_UNDETERMINED,
            error=ProviderErrorKind.UNCLASSIFIED,
        )
