"""
Pytest configuration and common fixtures for OmniConnect tests.

Provides an aiohttp session double routed by URL, fake agent sockets and
in-memory repositories.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from omniconnect.domain.models.channel import Channel
from omniconnect.messaging.zapi.models import ChannelCredential
from omniconnect.persistence.memory import (
    MemoryChannelRepository,
    MemoryMessageRepository,
    MemoryPresenceRepository,
)
from omniconnect.realtime.connection import SocketHandle

BASE_URL = "https://zapi.test"
INSTANCE_ID = "3C67AB0123456789ABCDEF0123456789"
TOKEN = "F1A2B3C4D5E6F7"


class FakeResponse:
    """Minimal stand-in for ``aiohttp.ClientResponse``."""

    def __init__(
        self,
        status: int = 200,
        body: Any = None,
        content_type: str = "application/json",
        raw: bytes | None = None,
    ):
        self.status = status
        self.content_type = content_type
        if raw is None:
            raw = json.dumps(body if body is not None else {}).encode("utf-8")
        self._raw = raw

    async def read(self) -> bytes:
        return self._raw

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False


class _RaisingRequest:
    def __init__(self, error: BaseException):
        self.error = error

    async def __aenter__(self):
        raise self.error

    async def __aexit__(self, *exc_info) -> bool:
        return False


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str]
    json: Any

    @property
    def family(self) -> str:
        return hypothesis_family(self.url)

    @property
    def endpoint(self) -> str:
        return endpoint_of(self.url)


Handler = Callable[[RecordedCall], "FakeResponse | BaseException"]


@dataclass
class FakeSession:
    """
    Session double: ``request`` records the call and asks ``handler`` for the
    response (or an exception to raise on enter).
    """

    handler: Handler
    calls: list[RecordedCall] = field(default_factory=list)

    def request(self, method, url, headers=None, json=None, timeout=None):
        call = RecordedCall(method, url, dict(headers or {}), json)
        self.calls.append(call)
        result = self.handler(call)
        if isinstance(result, BaseException):
            return _RaisingRequest(result)
        return result

    def endpoints(self) -> list[str]:
        return [c.endpoint for c in self.calls]


def hypothesis_family(url: str) -> str:
    """
    URL family of a request: ``path``, ``header``, ``v2-path``, ``v2-header``
    or ``api-path``.
    """
    path = "/" + url.split("://", 1)[1].split("/", 1)[1]
    prefix = path.split("/instances/", 1)[0].strip("/")
    mode = "path" if "/token/" in path else "header"
    return f"{prefix}-{mode}" if prefix else mode


def endpoint_of(url: str) -> str:
    rest = url.split(INSTANCE_ID, 1)[1]
    if rest.startswith("/token/"):
        rest = rest[len("/token/") :].split("/", 1)[1]
        rest = "/" + rest
    return rest


def routes(
    table: dict[str, Any],
    default: Any = None,
) -> Handler:
    """
    Handler answering by endpoint, optionally per URL family.

    ``table`` maps an endpoint to a response (or exception), or to a dict of
    family -> response with an optional ``"*"`` fallback.
    """
    fallback = default if default is not None else FakeResponse(404)

    def handler(call: RecordedCall):
        entry = table.get(call.endpoint, fallback)
        if isinstance(entry, dict):
            entry = entry.get(call.family, entry.get("*", fallback))
        return entry

    return handler


class FakeSocket(SocketHandle):
    """Socket handle recording decoded frames."""

    def __init__(self, fail_send: bool = False):
        self.sent: list[dict[str, Any]] = []
        self.pings = 0
        self.closed_with: int | None = None
        self.fail_send = fail_send

    async def send_text(self, data: str) -> None:
        if self.fail_send:
            raise ConnectionError("socket gone")
        self.sent.append(json.loads(data))

    async def ping(self) -> None:
        self.pings += 1

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def frames(self, frame_type: str) -> list[dict[str, Any]]:
        return [f for f in self.sent if f["type"] == frame_type]


@pytest.fixture
def credential() -> ChannelCredential:
    return ChannelCredential(instance_id=INSTANCE_ID, secret_token=TOKEN)


@pytest.fixture
def channel(credential) -> Channel:
    return Channel(id="ch1", name="Support", credential=credential)


@pytest.fixture
def channel_repository(channel) -> MemoryChannelRepository:
    return MemoryChannelRepository([channel])


@pytest.fixture
def message_repository() -> MemoryMessageRepository:
    return MemoryMessageRepository()


@pytest.fixture
def presence_repository() -> MemoryPresenceRepository:
    return MemoryPresenceRepository()
