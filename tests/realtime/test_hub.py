"""
Tests for the realtime fan-out hub: authentication, presence transitions,
liveness sweeps, delivery isolation and frame routing.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from omniconnect.domain.interfaces.presence_repository import IPresenceRepository
from omniconnect.realtime.hub import FanOutHub, parse_user_id
from omniconnect.realtime.models import server_event
from omniconnect.schemas.core.types import ServerFrameType
from tests.conftest import FakeSocket


def frame(frame_type: str, **data) -> str:
    return json.dumps({"type": frame_type, "data": data})


async def join(hub: FanOutHub, user_id: int | None = None, socket: FakeSocket | None = None):
    socket = socket or FakeSocket()
    connection = await hub.connect(socket)
    if user_id is not None:
        await hub.handle_message(connection, frame("authenticate", userId=user_id))
    return connection, socket


@pytest.fixture
def hub(presence_repository) -> FanOutHub:
    return FanOutHub(presence=presence_repository, ping_interval=30, reap_offset=15)


class TestParseUserId:
    @pytest.mark.parametrize(
        "value, expected",
        [(42, 42), ("42", 42), (" 7 ", 7), ("abc", None), (True, None), (None, None), ("٣", None)],
    )
    def test_parse(self, value, expected):
        assert parse_user_id(value) == expected


@pytest.mark.asyncio
class TestConnectionLifecycle:
    async def test_welcome_on_connect(self, hub):
        connection, socket = await join(hub)

        assert hub.active_count() == 1
        assert not connection.is_authenticated
        [welcome] = socket.frames("welcome")
        assert "message" in welcome["data"]
        assert isinstance(welcome["timestamp"], int)

    async def test_authenticate(self, hub):
        connection, socket = await join(hub, user_id="42")

        assert connection.user_id == 42
        assert hub.is_online(42)
        [success] = socket.frames("authentication_success")
        assert success["data"]["userId"] == 42
        [stats] = socket.frames("connection_stats")
        assert stats["data"] == {"activeConnections": 1, "authenticatedUsers": 1}

    async def test_invalid_user_id(self, hub):
        connection, socket = await join(hub, user_id="agent-7")

        assert not connection.is_authenticated
        assert socket.frames("authentication_error")

    async def test_frames_before_authentication_are_refused(self, hub):
        connection, socket = await join(hub)
        await hub.handle_message(connection, frame("typing_status", conversationId=1))

        assert socket.frames("authentication_error")
        assert not socket.frames("typing_status")

    async def test_cannot_switch_user_on_a_connection(self, hub):
        connection, socket = await join(hub, user_id=1)
        await hub.handle_message(connection, frame("authenticate", userId=2))

        assert connection.user_id == 1
        assert socket.frames("authentication_error")
        assert not hub.is_online(2)

    async def test_disconnect_is_idempotent(self, hub):
        connection, _ = await join(hub, user_id=1)
        _, observer = await join(hub, user_id=2)

        await hub.disconnect(connection)
        await hub.disconnect(connection)

        assert hub.active_count() == 1
        offline = [f for f in observer.frames("user_status") if not f["data"]["isOnline"]]
        assert len(offline) == 1

    async def test_unauthenticated_connections_get_no_broadcasts(self, hub):
        _, socket = await join(hub)
        delivered = await hub.broadcast(server_event(ServerFrameType.NEW_MESSAGE, {"x": 1}))

        assert delivered == 0
        assert not socket.frames("new_message")


@pytest.mark.asyncio
class TestPresence:
    async def test_presence_broadcast_once_per_transition(self, hub):
        _, observer = await join(hub, user_id=2)
        first, first_socket = await join(hub, user_id=1)
        second, _ = await join(hub, user_id=1)

        online = observer.frames("user_status")
        assert [f["data"]["isOnline"] for f in online] == [True]
        assert online[0]["data"]["userId"] == 1
        # Never echoed to the user's own connection
        assert not [f for f in first_socket.frames("user_status") if f["data"]["userId"] == 1]

        await hub.disconnect(first)
        assert hub.is_online(1)
        assert len(observer.frames("user_status")) == 1

        await hub.disconnect(second)
        assert not hub.is_online(1)
        statuses = [f["data"]["isOnline"] for f in observer.frames("user_status")]
        assert statuses == [True, False]

    async def test_presence_is_persisted(self, hub, presence_repository):
        connection, _ = await join(hub, user_id=5)
        await hub.flush_background()
        assert await presence_repository.get_presence(5) is True

        await hub.disconnect(connection)
        await hub.flush_background()
        assert await presence_repository.get_presence(5) is False

    async def test_presence_write_failure_is_logged(self, caplog):
        presence = MagicMock(spec=IPresenceRepository)
        presence.set_presence = AsyncMock(side_effect=RuntimeError("redis down"))
        hub = FanOutHub(presence=presence, ping_interval=30, reap_offset=15)

        connection, socket = await join(hub, user_id=9)
        await hub.flush_background()

        presence.set_presence.assert_awaited_once_with(9, True)
        assert connection.is_authenticated
        assert socket.frames("authentication_success")
        assert "Failed to persist presence for user 9" in caplog.text


@pytest.mark.asyncio
class TestLiveness:
    async def test_ping_sweep_marks_and_pings(self, hub):
        connection, socket = await join(hub, user_id=1)
        await hub.ping_sweep()

        assert not connection.is_alive
        assert socket.pings == 1
        assert socket.frames("ping")

    async def test_answering_connection_survives_reap(self, hub):
        connection, socket = await join(hub, user_id=1)
        await hub.ping_sweep()
        await hub.handle_message(connection, frame("pong"))

        assert await hub.reap_sweep() == 0
        assert hub.is_registered(connection)
        assert socket.closed_with is None

    async def test_silent_connection_is_reaped(self, hub):
        watcher, observer = await join(hub, user_id=2)
        silent, silent_socket = await join(hub, user_id=1)
        await hub.ping_sweep()
        await hub.handle_message(watcher, frame("pong"))

        assert await hub.reap_sweep() == 1
        assert not hub.is_registered(silent)
        assert silent_socket.closed_with == 1001
        offline = [f for f in observer.frames("user_status") if not f["data"]["isOnline"]]
        assert len(offline) == 1

    async def test_ping_frame_gets_pong(self, hub):
        connection, socket = await join(hub)
        await hub.handle_message(connection, frame("ping"))

        [pong] = socket.frames("pong")
        assert isinstance(pong["data"]["timestamp"], int)

    async def test_start_and_stop(self, hub):
        connection, socket = await join(hub, user_id=1)
        hub.start()
        await asyncio.sleep(0)
        await hub.stop()

        assert hub.active_count() == 0
        assert socket.closed_with == 1001


@pytest.mark.asyncio
class TestDelivery:
    async def test_failed_send_evicts_only_that_connection(self, hub):
        _, good_a = await join(hub, user_id=1)
        bad, bad_socket = await join(hub, user_id=2)
        _, good_b = await join(hub, user_id=3)
        bad_socket.fail_send = True

        delivered = await hub.broadcast(
            server_event(ServerFrameType.NEW_MESSAGE, {"conversationId": "c1"})
        )

        assert delivered == 2
        assert good_a.frames("new_message") and good_b.frames("new_message")
        assert not hub.is_registered(bad)
        assert bad_socket.closed_with == 1001
        assert hub.active_count() == 2

    async def test_notification_to_target_user(self, hub):
        sender, _ = await join(hub, user_id=1)
        _, target = await join(hub, user_id=2)
        _, bystander = await join(hub, user_id=3)

        await hub.handle_message(sender, frame("notification", targetUserId=2, title="Hi"))

        assert target.frames("notification")[0]["data"]["title"] == "Hi"
        assert not bystander.frames("notification")

    async def test_notification_without_target_is_broadcast(self, hub):
        sender, sender_socket = await join(hub, user_id=1)
        _, other = await join(hub, user_id=2)

        await hub.handle_message(sender, frame("notification", title="All"))

        assert other.frames("notification")
        assert sender_socket.frames("notification")

    async def test_conversation_opened(self, hub):
        agent, _ = await join(hub, user_id=4)
        _, other = await join(hub, user_id=5)

        await hub.handle_message(agent, frame("conversation_opened", conversationId="c9"))

        [status] = other.frames("conversation_status")
        assert status["data"] == {
            "conversationId": "c9",
            "status": "opened",
            "viewingAgentId": 4,
            "agentId": 4,
        }

    async def test_conversation_closed_requires_id(self, hub):
        agent, socket = await join(hub, user_id=4)
        await hub.handle_message(agent, frame("conversation_closed"))

        assert socket.frames("error")
        assert not socket.frames("conversation_status")

    async def test_invalid_frames(self, hub):
        connection, socket = await join(hub, user_id=1)

        await hub.handle_message(connection, "{not json")
        await hub.handle_message(connection, json.dumps({"data": {}}))
        await hub.handle_message(connection, frame("teleport"))

        assert len(socket.frames("error")) == 3
        assert hub.is_registered(connection)


@pytest.mark.asyncio
class TestTypingDebounce:
    async def test_duplicates_within_window_are_dropped(self, presence_repository):
        now = [0.0]
        hub = FanOutHub(
            presence=presence_repository,
            ping_interval=30,
            reap_offset=15,
            typing_debounce=2.0,
            clock=lambda: now[0],
        )
        agent, _ = await join(hub, user_id=1)
        _, observer = await join(hub, user_id=2)

        await hub.handle_message(agent, frame("typing_status", conversationId="c1", isTyping=True))
        now[0] = 1.0
        await hub.handle_message(agent, frame("typing_status", conversationId="c1", isTyping=True))
        now[0] = 1.5
        await hub.handle_message(agent, frame("typing_status", conversationId="c1", isTyping=False))
        now[0] = 5.0
        await hub.handle_message(agent, frame("typing_status", conversationId="c1", isTyping=False))

        states = [f["data"]["isTyping"] for f in observer.frames("typing_status")]
        assert states == [True, False, False]

    async def test_debounce_disabled_by_default(self, hub):
        agent, _ = await join(hub, user_id=1)
        _, observer = await join(hub, user_id=2)

        for _ in range(3):
            await hub.handle_message(
                agent, frame("typing_status", conversationId="c1", isTyping=True)
            )

        assert len(observer.frames("typing_status")) == 3
