"""
HTTP and websocket tests against the assembled application.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from omniconnect.api.controllers.channel_controller import webhook_url_for
from omniconnect.core.app import create_app
from omniconnect.messaging.zapi.client import ZapiClient
from omniconnect.messaging.zapi.models import (
    DataResult,
    QrCodeResult,
    SendResult,
    StatusResult,
    WebhookStatusResult,
)
from omniconnect.persistence.memory import MemoryMessageRepository
from omniconnect.schemas.core.types import ConnectionState, ProviderErrorKind

TEXT_PAYLOAD = {
    "type": "ReceivedCallback",
    "phone": "5511999990000",
    "messageId": "3EB0ABC",
    "senderName": "Maria",
    "momment": 1_700_000_000_000,
    "text": {"message": "Hello"},
}


@pytest.fixture
def provider_client() -> MagicMock:
    client = MagicMock(spec=ZapiClient)
    client.get_status = AsyncMock(return_value=StatusResult(success=True, connected=False))
    client.get_qr_code = AsyncMock(return_value=QrCodeResult(success=True, qr_payload="2@qr"))
    client.set_webhook = AsyncMock()
    client.send_text = AsyncMock(
        return_value=SendResult(success=True, message_id="OUT1", recipient="5511999990000")
    )
    client.diagnostics.return_value = {}
    return client


@pytest.fixture
def app(channel_repository, message_repository, presence_repository, provider_client):
    return create_app(
        channels=channel_repository,
        messages=message_repository,
        presence=presence_repository,
        client_factory=lambda session, credential: provider_client,
        configure_logging=False,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


class TestWebhookRoute:
    def test_message_is_ingested(self, client, message_repository):
        response = client.post("/webhooks/zapi/ch1", json=TEXT_PAYLOAD)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["conversationId"] == "conv-1"
        [stored] = message_repository.messages
        assert stored.content == "Hello"
        assert stored.contact_phone == "5511999990000"

    def test_receipt_is_recorded(self, client, channel_repository):
        client.post("/webhooks/zapi/ch1", json={"event": "verification"})
        client.post("/webhooks/zapi/ch1", json=TEXT_PAYLOAD)

        channel = asyncio.run(channel_repository.get_channel("ch1"))
        assert channel.webhooks_received == 2
        assert channel.last_webhook_at is not None

    def test_unknown_channel(self, client):
        assert client.post("/webhooks/zapi/nope", json=TEXT_PAYLOAD).status_code == 404

    def test_unsupported_provider(self, client):
        assert client.post("/webhooks/telegram/ch1", json=TEXT_PAYLOAD).status_code == 404

    def test_payload_without_phone(self, client, message_repository):
        response = client.post("/webhooks/zapi/ch1", json={"text": {"message": "hi"}})

        assert response.status_code == 400
        assert message_repository.messages == []

    def test_non_object_payload(self, client):
        assert client.post("/webhooks/zapi/ch1", json=["a"]).status_code == 400

    def test_invalid_json(self, client):
        response = client.post(
            "/webhooks/zapi/ch1",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_non_finite_timestamp_is_ingested_with_clock(self, client, message_repository):
        response = client.post(
            "/webhooks/zapi/ch1",
            content=b'{"phone": "5511999", "momment": Infinity, "text": {"message": "hi"}}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        [stored] = message_repository.messages
        assert stored.content == "hi"
        assert stored.created_at.year >= 2024

    def test_non_ascii_phone_digits_are_ingested(self, client, message_repository):
        response = client.post(
            "/webhooks/zapi/ch1",
            json={"phone": "+55 ١١ 9999", "text": {"message": "hi"}},
        )

        assert response.status_code == 200
        [stored] = message_repository.messages
        assert stored.contact_phone == "559999"

    @pytest.mark.parametrize(
        "payload",
        [
            {"event": "verification"},
            {"type": "MessageStatusCallback", "status": "READ", "ids": ["X"]},
            {**TEXT_PAYLOAD, "fromMe": True},
        ],
    )
    def test_acknowledged_without_ingestion(self, client, message_repository, payload):
        response = client.post("/webhooks/zapi/ch1", json=payload)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert message_repository.messages == []

    def test_persistence_failure_is_a_webhook_error(
        self, channel_repository, presence_repository
    ):
        class BrokenRepository(MemoryMessageRepository):
            async def persist_inbound_message(self, message, context):
                raise RuntimeError("database unavailable")

        app = create_app(
            channels=channel_repository,
            messages=BrokenRepository(),
            presence=presence_repository,
            configure_logging=False,
        )
        with TestClient(app) as test_client:
            response = test_client.post("/webhooks/zapi/ch1", json=TEXT_PAYLOAD)

        assert response.status_code == 500
        assert response.json()["success"] is False


class TestRealtimeSocket:
    def test_authenticated_agent_receives_new_messages(self, client):
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json()["type"] == "welcome"

            ws.send_json({"type": "authenticate", "data": {"userId": 1}})
            assert ws.receive_json()["type"] == "authentication_success"
            assert ws.receive_json()["type"] == "connection_stats"

            assert client.post("/webhooks/zapi/ch1", json=TEXT_PAYLOAD).status_code == 200
            event = ws.receive_json()

        assert event["type"] == "new_message"
        assert event["data"]["channelId"] == "ch1"
        assert event["data"]["message"]["content"] == "Hello"
        assert event["data"]["contact"]["name"] == "Maria"

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

    def test_health_reports_connections(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            health = client.get("/health").json()

        assert health["status"] == "healthy"
        assert health["realtime"]["activeConnections"] == 1


class TestChannelRoutes:
    def test_setup_returns_qr_and_records_state(self, client, channel_repository):
        response = client.post("/channels/ch1/setup")

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "pending"
        assert body["connection_state"] == "pending_scan"
        assert body["qr_payload"] == "2@qr"
        channel = asyncio.run(channel_repository.get_channel("ch1"))
        assert channel.connection_state == ConnectionState.PENDING_SCAN

    def test_setup_unknown_channel(self, client):
        assert client.post("/channels/nope/setup").status_code == 404

    def test_upsert_channel_hides_credentials(self, client):
        response = client.put(
            "/channels/ch2",
            json={"name": "Sales", "instance_id": "abc", "token": "secret-token"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "ch2"
        assert body["webhook_url"].endswith("/webhooks/zapi/ch2")
        assert "secret-token" not in response.text

    def test_status(self, client):
        body = client.get("/channels/ch1/status").json()

        assert body["state"] == "disconnected"
        assert body["connected"] is False
        assert body["message"] is None

    def test_qr_code_provider_error(self, client, provider_client):
        provider_client.get_qr_code.return_value = QrCodeResult(
            success=False, error=ProviderErrorKind.INVALID_CREDENTIALS
        )
        response = client.get("/channels/ch1/qr-code")

        assert response.status_code == 502
        assert "Invalid credentials" in response.json()["detail"]

    def test_send_text_is_stored(self, client, provider_client, message_repository):
        response = client.post(
            "/channels/ch1/messages", json={"phone": "+55 11 99999-0000", "text": "Hi!"}
        )

        assert response.status_code == 200
        assert response.json()["message_id"] == "OUT1"
        provider_client.send_text.assert_awaited_once_with("+55 11 99999-0000", "Hi!")
        [stored] = message_repository.messages
        assert stored.is_from_agent
        assert stored.content == "Hi!"

    def test_send_text_requires_text(self, client):
        response = client.post("/channels/ch1/messages", json={"phone": "5511"})
        assert response.status_code == 400

    def test_send_failure_returns_operator_message_only(self, client, provider_client):
        provider_client.send_text.return_value = SendResult(
            success=False,
            error=ProviderErrorKind.AUTHENTICATION_FAILED,
            recipient="5511",
            raw={"error": "provider internals"},
        )
        response = client.post("/channels/ch1/messages", json={"phone": "5511", "text": "Hi"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "authentication_failed"
        assert body["message"]
        assert "raw" not in body
        assert "failures" not in body
        assert "provider internals" not in response.text

    def test_send_success_hides_provider_body(self, client, provider_client):
        provider_client.send_text.return_value = SendResult(
            success=True, message_id="OUT2", recipient="5511", raw={"zaapId": "Z"}
        )
        body = client.post(
            "/channels/ch1/messages", json={"phone": "5511", "text": "Hi"}
        ).json()

        assert body == {
            "success": True,
            "message_id": "OUT2",
            "recipient": "5511",
            "error": None,
            "message": None,
        }

    def test_webhook_status_matches_channel_url(self, client, provider_client):
        provider_client.get_webhook_status = AsyncMock(
            return_value=WebhookStatusResult(
                success=True,
                configured=True,
                webhook_url=webhook_url_for("ch1"),
                matches=True,
                webhook_features={"messageReceived": True},
            )
        )
        body = client.get("/channels/ch1/webhook").json()

        provider_client.get_webhook_status.assert_awaited_once_with(webhook_url_for("ch1"))
        assert body["configured"] is True
        assert body["matches"] is True
        assert body["webhookFeatures"] == {"messageReceived": True}
        assert body["message"] == "Webhook is configured"

    def test_webhook_status_mismatch(self, client, provider_client):
        provider_client.get_webhook_status = AsyncMock(
            return_value=WebhookStatusResult(
                success=True, configured=True, webhook_url="https://old.test/hook"
            )
        )
        body = client.get("/channels/ch1/webhook").json()

        assert body["matches"] is False
        assert body["expectedWebhookUrl"] in body["message"]

    def test_webhook_status_provider_error(self, client, provider_client):
        provider_client.get_webhook_status = AsyncMock(
            return_value=WebhookStatusResult(
                success=False, error=ProviderErrorKind.INVALID_CREDENTIALS
            )
        )
        response = client.get("/channels/ch1/webhook")

        assert response.status_code == 502
        assert "Invalid credentials" in response.json()["detail"]

    def test_disconnect_records_state(self, client, provider_client, channel_repository):
        provider_client.disconnect_session = AsyncMock(return_value=DataResult(success=True))

        response = client.post("/channels/ch1/disconnect")

        assert response.status_code == 200
        channel = asyncio.run(channel_repository.get_channel("ch1"))
        assert channel.connection_state == ConnectionState.DISCONNECTED

    def test_list_chats(self, client, provider_client):
        provider_client.list_chats = AsyncMock(
            return_value=DataResult(success=True, data=[{"phone": "5511"}])
        )
        body = client.get("/channels/ch1/chats").json()
        assert body["chats"] == [{"phone": "5511"}]

    def test_mark_read(self, client, provider_client):
        provider_client.mark_read = AsyncMock(return_value=DataResult(success=True))

        response = client.post("/channels/ch1/messages/3EB0ABC/read")

        assert response.status_code == 200
        provider_client.mark_read.assert_awaited_once_with("3EB0ABC")
