"""
Realtime fan-out hub for agent sockets.

Owns the live connection registry and routes inbound frames by ``type``.
Each connection moves one way, from CONNECTED to AUTHENTICATED; only
authenticated connections receive broadcasts.

Liveness:
- A ping sweep marks every connection ``is_alive=False`` and pings it (both
  protocol level and with a JSON ``ping`` frame)
- Any inbound frame marks the connection alive again
- A reap sweep, offset from the ping sweep, force-closes and removes the
  connections that stayed silent

Presence changes are broadcast once per online/offline transition and
persisted fire-and-forget; persistence failures are logged.
"""

import asyncio
import json
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from omniconnect.core.config.settings import settings
from omniconnect.core.logging.context import set_request_context
from omniconnect.core.logging.logger import get_logger
from omniconnect.domain.interfaces.presence_repository import IPresenceRepository
from omniconnect.schemas.core.types import ClientFrameType, ServerFrameType

from .connection import SocketHandle
from .models import LiveConnection, RealtimeEvent, now_ms, server_event

WELCOME_MESSAGE = "Connected to OmniConnect realtime server"

# Frames an unauthenticated connection may send
PRE_AUTH_FRAMES = frozenset(
    {ClientFrameType.AUTHENTICATE.value, ClientFrameType.PING.value, ClientFrameType.PONG.value}
)


def parse_user_id(value: Any) -> int | None:
    """Accept integer user ids or their decimal string form."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if value.isascii() and value.isdigit():
            return int(value)
    return None


class FanOutHub:
    """Registry and router for agent realtime connections."""

    def __init__(
        self,
        presence: IPresenceRepository | None = None,
        ping_interval: float | None = None,
        reap_offset: float | None = None,
        typing_debounce: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            presence: Presence persistence collaborator (optional)
            ping_interval: Seconds between ping sweeps
            reap_offset: Seconds after each ping sweep before the reap sweep
            typing_debounce: Minimum seconds between identical typing frames
                of one agent in one conversation; 0 disables debouncing
            clock: Monotonic clock used for debouncing
        """
        self.presence = presence
        self.ping_interval = ping_interval or settings.realtime_ping_interval_seconds
        self.reap_offset = reap_offset or settings.realtime_reap_offset_seconds
        self.typing_debounce = (
            settings.typing_debounce_seconds if typing_debounce is None else typing_debounce
        )
        self._clock = clock

        self._connections: dict[int, LiveConnection] = {}
        self._by_user: dict[int, LiveConnection] = {}
        self._typing_seen: dict[tuple[str, int], tuple[Any, float]] = {}
        self._background: set[asyncio.Task] = set()
        self._liveness_task: asyncio.Task | None = None
        self.logger = get_logger(__name__)

        self._handlers: dict[str, Callable] = {
            ClientFrameType.AUTHENTICATE.value: self._on_authenticate,
            ClientFrameType.PING.value: self._on_ping,
            ClientFrameType.PONG.value: self._on_pong,
            ClientFrameType.CONVERSATION_OPENED.value: self._on_conversation_opened,
            ClientFrameType.CONVERSATION_CLOSED.value: self._on_conversation_closed,
            ClientFrameType.TYPING_STATUS.value: self._on_typing_status,
            ClientFrameType.NOTIFICATION.value: self._on_notification,
        }

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def active_count(self) -> int:
        """Number of live connections, authenticated or not."""
        return len(self._connections)

    def is_registered(self, connection: LiveConnection) -> bool:
        return connection.id in self._connections

    def is_online(self, user_id: int) -> bool:
        return user_id in self._by_user

    def stats(self) -> dict[str, int]:
        return {
            "activeConnections": len(self._connections),
            "authenticatedUsers": len(self._by_user),
        }

    async def connect(self, handle: SocketHandle) -> LiveConnection:
        """Register a freshly accepted socket and greet it."""
        connection = LiveConnection(handle=handle)
        self._connections[connection.id] = connection
        self.logger.info(
            f"Realtime connection {connection.id} opened "
            f"(active={len(self._connections)})"
        )
        await self._send(
            connection, server_event(ServerFrameType.WELCOME, {"message": WELCOME_MESSAGE})
        )
        return connection

    async def disconnect(self, connection: LiveConnection, reason: str = "closed") -> None:
        """
        Remove a connection. Safe to call more than once for the same connection.
        """
        if self._connections.pop(connection.id, None) is None:
            return

        user_id = connection.user_id
        self.logger.info(
            f"Realtime connection {connection.id} removed ({reason}, user={user_id})"
        )
        if user_id is None:
            return

        if self._by_user.get(user_id) is connection:
            replacement = next(
                (c for c in self._connections.values() if c.user_id == user_id), None
            )
            if replacement is not None:
                self._by_user[user_id] = replacement
            else:
                del self._by_user[user_id]
                await self._presence_changed(connection, is_online=False)

        await self._broadcast_stats()

    async def _evict(self, connection: LiveConnection, reason: str) -> None:
        try:
            await connection.handle.close(code=1001)
        except Exception as e:
            self.logger.debug(f"Closing connection {connection.id} failed: {e}")
        await self.disconnect(connection, reason)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _send(self, connection: LiveConnection, event: RealtimeEvent) -> bool:
        try:
            await connection.handle.send_text(event.to_json())
            return True
        except Exception as e:
            self.logger.warning(
                f"Send of '{event.type}' to connection {connection.id} failed: {e}"
            )
            return False

    async def broadcast(
        self, event: RealtimeEvent, exclude: LiveConnection | None = None
    ) -> int:
        """
        Deliver an event to every authenticated connection.

        Delivery is best-effort per connection over a snapshot of the
        registry; connections whose send fails are evicted afterwards.

        Returns:
            Number of connections the event was delivered to
        """
        recipients = [
            c for c in list(self._connections.values())
            if c.is_authenticated and c is not exclude
        ]
        failed: list[LiveConnection] = []
        delivered = 0
        for connection in recipients:
            if await self._send(connection, event):
                delivered += 1
            else:
                failed.append(connection)

        for connection in failed:
            await self._evict(connection, "send failed")
        return delivered

    async def send_to(self, user_id: int, event: RealtimeEvent) -> bool:
        connection = self._by_user.get(user_id)
        if connection is None:
            self.logger.debug(f"User {user_id} not connected, dropping '{event.type}'")
            return False
        if await self._send(connection, event):
            return True
        await self._evict(connection, "send failed")
        return False

    async def _broadcast_stats(self) -> None:
        await self.broadcast(server_event(ServerFrameType.CONNECTION_STATS, self.stats()))

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    async def _presence_changed(self, connection: LiveConnection, is_online: bool) -> None:
        user_id = connection.user_id
        await self.broadcast(
            server_event(
                ServerFrameType.USER_STATUS,
                {
                    "userId": user_id,
                    "role": connection.role,
                    "isOnline": is_online,
                    "lastSeen": datetime.now(UTC).isoformat(),
                },
            ),
            exclude=connection,
        )
        self._persist_presence(user_id, is_online)

    def _persist_presence(self, user_id: int, is_online: bool) -> None:
        if self.presence is None:
            return
        task = asyncio.create_task(self._write_presence(user_id, is_online))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _write_presence(self, user_id: int, is_online: bool) -> None:
        try:
            await self.presence.set_presence(user_id, is_online)
        except Exception:
            self.logger.exception(
                f"Failed to persist presence for user {user_id} (online={is_online})"
            )

    async def flush_background(self) -> None:
        """Wait for pending presence writes."""
        if self._background:
            await asyncio.gather(*list(self._background))

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------

    async def handle_message(self, connection: LiveConnection, raw: str) -> None:
        """Route one inbound text frame."""
        connection.is_alive = True

        try:
            frame = json.loads(raw)
        except ValueError:
            self.logger.warning(f"Connection {connection.id} sent invalid JSON")
            await self._send(
                connection, server_event(ServerFrameType.ERROR, {"message": "Invalid JSON"})
            )
            return

        frame_type = frame.get("type") if isinstance(frame, dict) else None
        if not isinstance(frame_type, str):
            await self._send(
                connection,
                server_event(ServerFrameType.ERROR, {"message": "Frame type is required"}),
            )
            return

        handler = self._handlers.get(frame_type)
        if handler is None:
            await self._send(
                connection,
                server_event(
                    ServerFrameType.ERROR, {"message": f"Unknown frame type: {frame_type}"}
                ),
            )
            return

        if not connection.is_authenticated and frame_type not in PRE_AUTH_FRAMES:
            await self._send(
                connection,
                server_event(
                    ServerFrameType.AUTHENTICATION_ERROR,
                    {"message": "Authenticate before sending this frame"},
                ),
            )
            return

        if connection.user_id is not None:
            set_request_context(user_id=str(connection.user_id))

        data = frame.get("data")
        await handler(connection, data if isinstance(data, dict) else {})

    async def _on_authenticate(self, connection: LiveConnection, data: dict) -> None:
        user_id = parse_user_id(data.get("userId"))
        if user_id is None:
            await self._send(
                connection,
                server_event(
                    ServerFrameType.AUTHENTICATION_ERROR,
                    {"message": "userId must be a numeric identifier"},
                ),
            )
            return

        if connection.user_id is not None and connection.user_id != user_id:
            await self._send(
                connection,
                server_event(
                    ServerFrameType.AUTHENTICATION_ERROR,
                    {"message": "Connection is already authenticated as another user"},
                ),
            )
            return

        role = data.get("role") if isinstance(data.get("role"), str) else "agent"
        already_authenticated = connection.user_id == user_id
        was_online = self.is_online(user_id)

        connection.user_id = user_id
        connection.role = role
        self._by_user[user_id] = connection
        set_request_context(user_id=str(user_id))

        await self._send(
            connection,
            server_event(
                ServerFrameType.AUTHENTICATION_SUCCESS, {"userId": user_id, "role": role}
            ),
        )
        if already_authenticated:
            return

        self.logger.info(f"User {user_id} authenticated on connection {connection.id}")
        if not was_online:
            await self._presence_changed(connection, is_online=True)
        await self._broadcast_stats()

    async def _on_ping(self, connection: LiveConnection, data: dict) -> None:
        await self._send(
            connection, server_event(ServerFrameType.PONG, {"timestamp": now_ms()})
        )

    async def _on_pong(self, connection: LiveConnection, data: dict) -> None:
        return None

    async def _conversation_status(
        self, connection: LiveConnection, data: dict, status: str
    ) -> None:
        conversation_id = data.get("conversationId")
        if conversation_id is None:
            await self._send(
                connection,
                server_event(ServerFrameType.ERROR, {"message": "conversationId is required"}),
            )
            return

        await self.broadcast(
            server_event(
                ServerFrameType.CONVERSATION_STATUS,
                {
                    "conversationId": conversation_id,
                    "status": status,
                    "viewingAgentId": connection.user_id if status == "opened" else None,
                    "agentId": connection.user_id,
                },
            )
        )

    async def _on_conversation_opened(self, connection: LiveConnection, data: dict) -> None:
        await self._conversation_status(connection, data, "opened")

    async def _on_conversation_closed(self, connection: LiveConnection, data: dict) -> None:
        await self._conversation_status(connection, data, "closed")

    def _typing_is_duplicate(self, connection: LiveConnection, data: dict) -> bool:
        if self.typing_debounce <= 0:
            return False
        key = (str(data.get("conversationId")), connection.user_id)
        state = data.get("isTyping")
        now = self._clock()
        previous = self._typing_seen.get(key)
        self._typing_seen[key] = (state, now)
        return (
            previous is not None
            and previous[0] == state
            and now - previous[1] < self.typing_debounce
        )

    async def _on_typing_status(self, connection: LiveConnection, data: dict) -> None:
        if self._typing_is_duplicate(connection, data):
            return
        await self.broadcast(server_event(ServerFrameType.TYPING_STATUS, data))

    async def _on_notification(self, connection: LiveConnection, data: dict) -> None:
        event = server_event(ServerFrameType.NOTIFICATION, data)
        target = parse_user_id(data.get("targetUserId"))
        if target is not None:
            await self.send_to(target, event)
        else:
            await self.broadcast(event)

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def ping_sweep(self) -> None:
        """Mark every connection not alive and ping it."""
        failed: list[LiveConnection] = []
        for connection in list(self._connections.values()):
            connection.is_alive = False
            try:
                await connection.handle.ping()
            except Exception as e:
                self.logger.debug(f"Protocol ping to {connection.id} failed: {e}")
            if not await self._send(connection, server_event(ServerFrameType.PING)):
                failed.append(connection)

        for connection in failed:
            await self._evict(connection, "ping failed")

    async def reap_sweep(self) -> int:
        """Force-close connections that did not answer since the last ping sweep."""
        stale = [c for c in list(self._connections.values()) if not c.is_alive]
        for connection in stale:
            await self._evict(connection, "liveness timeout")
        if stale:
            self.logger.info(f"Reaped {len(stale)} unresponsive realtime connections")
        return len(stale)

    async def _liveness_loop(self) -> None:
        while True:
            await asyncio.sleep(max(self.ping_interval - self.reap_offset, 0))
            await self.ping_sweep()
            await asyncio.sleep(self.reap_offset)
            await self.reap_sweep()

    def start(self) -> None:
        if self._liveness_task is None or self._liveness_task.done():
            self._liveness_task = asyncio.create_task(self._liveness_loop())
            self.logger.info(
                f"Realtime liveness started (ping every {self.ping_interval}s, "
                f"reap after {self.reap_offset}s)"
            )

    async def stop(self) -> None:
        """Stop liveness sweeps, close every connection and drain presence writes."""
        if self._liveness_task is not None:
            self._liveness_task.cancel()
            try:
                await self._liveness_task
            except asyncio.CancelledError:
                pass
            self._liveness_task = None

        for connection in list(self._connections.values()):
            await self._evict(connection, "server shutdown")
        await self.flush_background()
