"""
Tests for the channel setup flow driven against a mocked provider client.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from omniconnect.domain.services.channel_setup import (
    MESSAGE_CONNECTED,
    MESSAGE_CONNECTED_NO_WEBHOOK,
    MESSAGE_SCAN_QR,
    ChannelSetupOrchestrator,
)
from omniconnect.messaging.zapi.client import ZapiClient
from omniconnect.messaging.zapi.models import (
    ChannelCredential,
    DataResult,
    QrCodeResult,
    StatusResult,
)
from omniconnect.messaging.zapi.utils.error_helpers import operator_message
from omniconnect.schemas.core.types import ConnectionState, ProviderErrorKind, SetupState

WEBHOOK_URL = "https://hooks.test/webhooks/zapi/ch1"


def mock_client(
    status: StatusResult,
    qr: QrCodeResult | None = None,
    webhook: DataResult | None = None,
) -> MagicMock:
    client = MagicMock(spec=ZapiClient)
    client.get_status = AsyncMock(return_value=status)
    client.get_qr_code = AsyncMock(return_value=qr)
    client.set_webhook = AsyncMock(return_value=webhook or DataResult(success=True))
    client.diagnostics.return_value = {"token_preview": "F1A2B..."}
    return client


@pytest.mark.asyncio
class TestChannelSetupOrchestrator:
    async def test_missing_credentials_make_no_calls(self):
        client_for = MagicMock()
        orchestrator = ChannelSetupOrchestrator(client_for)

        result = await orchestrator.setup_channel(
            ChannelCredential(instance_id="abc", secret_token="  ")
        )

        assert result.state == SetupState.ERROR
        assert result.error == ProviderErrorKind.MISSING_CREDENTIALS
        assert result.message == operator_message(ProviderErrorKind.MISSING_CREDENTIALS)
        client_for.assert_not_called()

    async def test_connected_configures_webhook(self, credential):
        client = mock_client(StatusResult(success=True, connected=True))
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(
            credential, webhook_url=WEBHOOK_URL
        )

        assert result.state == SetupState.SUCCESS
        assert result.connection_state == ConnectionState.CONNECTED
        assert result.webhook_configured
        assert result.message == MESSAGE_CONNECTED
        client.set_webhook.assert_awaited_once_with(WEBHOOK_URL)
        client.get_qr_code.assert_not_awaited()

    async def test_webhook_failure_does_not_fail_setup(self, credential):
        client = mock_client(
            StatusResult(success=True, connected=True),
            webhook=DataResult(success=False, error=ProviderErrorKind.UNCLASSIFIED),
        )
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(
            credential, webhook_url=WEBHOOK_URL
        )

        assert result.state == SetupState.SUCCESS
        assert not result.webhook_configured
        assert result.message == MESSAGE_CONNECTED_NO_WEBHOOK

    async def test_connected_without_webhook_url(self, credential):
        client = mock_client(StatusResult(success=True, connected=True))
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(credential)

        assert result.state == SetupState.SUCCESS
        assert result.message == MESSAGE_CONNECTED
        client.set_webhook.assert_not_awaited()

    @pytest.mark.parametrize(
        "kind",
        [
            ProviderErrorKind.INVALID_CREDENTIALS,
            ProviderErrorKind.API_INCOMPATIBLE,
            ProviderErrorKind.AUTHENTICATION_FAILED,
        ],
    )
    async def test_terminal_status_error_skips_qr(self, credential, kind):
        client = mock_client(StatusResult(success=False, error=kind, detail="boom"))
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(credential)

        assert result.state == SetupState.ERROR
        assert result.connection_state == ConnectionState.ERROR
        assert result.error == kind
        assert result.message == operator_message(kind)
        assert result.diagnostics["detail"] == "boom"
        assert result.diagnostics["client"] == {"token_preview": "F1A2B..."}
        client.get_qr_code.assert_not_awaited()

    async def test_disconnected_instance_returns_qr(self, credential):
        client = mock_client(
            StatusResult(success=True, connected=False),
            qr=QrCodeResult(success=True, qr_payload="data:image/png;base64,AAA"),
        )
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(credential)

        assert result.state == SetupState.PENDING
        assert result.connection_state == ConnectionState.PENDING_SCAN
        assert result.qr_payload == "data:image/png;base64,AAA"
        assert result.message == MESSAGE_SCAN_QR

    async def test_unclassified_status_still_tries_qr(self, credential):
        client = mock_client(
            StatusResult(success=False, error=ProviderErrorKind.UNCLASSIFIED),
            qr=QrCodeResult(success=True, qr_payload="2@qr"),
        )
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(credential)

        assert result.state == SetupState.PENDING
        client.get_qr_code.assert_awaited_once()

    async def test_qr_flow_reporting_connected(self, credential):
        client = mock_client(
            StatusResult(success=True, connected=False),
            qr=QrCodeResult(success=True, connected=True),
        )
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(
            credential, webhook_url=WEBHOOK_URL
        )

        assert result.state == SetupState.SUCCESS
        client.set_webhook.assert_awaited_once()

    async def test_qr_failure_is_an_error(self, credential):
        client = mock_client(
            StatusResult(success=True, connected=False),
            qr=QrCodeResult(success=False, error=ProviderErrorKind.API_INCOMPATIBLE),
        )
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(credential)

        assert result.state == SetupState.ERROR
        assert result.error == ProviderErrorKind.API_INCOMPATIBLE

    async def test_neither_connected_nor_qr(self, credential):
        client = mock_client(
            StatusResult(success=True, connected=False),
            qr=QrCodeResult(success=True),
        )
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(credential)

        assert result.state == SetupState.ERROR
        assert result.connection_state == ConnectionState.UNKNOWN
        assert result.error == ProviderErrorKind.UNCLASSIFIED

    async def test_operator_messages_never_carry_raw_bodies(self, credential):
        client = mock_client(
            StatusResult(
                success=False,
                error=ProviderErrorKind.INVALID_CREDENTIALS,
                raw={"error": "Instance not found"},
            )
        )
        result = await ChannelSetupOrchestrator(lambda c: client).setup_channel(credential)

        assert "Instance not found" not in result.message
