import asyncio
import logging
from typing import List, Optional, Union

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.close_code: Optional[int] = None
        self.fail_sends = False

    async def send(self, data: str) -> None:
        if self.fail_sends:
            raise ConnectionClosedError(None, None)
        self.sent.append(data)

    async def recv(self) -> Union[str, bytes]:
        item = await self.inbound.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code
        self.inbound.put_nowait(ConnectionClosedOK(None, None))

    # test helpers
    def feed(self, frame: Union[str, bytes]) -> None:
        self.inbound.put_nowait(frame)

    def drop(self) -> None:
        self.inbound.put_nowait(ConnectionClosedError(None, None))


class FakeConnector:
    """Records every connection attempt and hands out FakeWebSockets."""

    def __init__(self) -> None:
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []
        self.fail_next = 0

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.fail_next:
            self.fail_next -= 1
            raise OSError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def current(self) -> FakeWebSocket:
        return self.sockets[-1]


async def settle(rounds: int = 5) -> None:
    """Let background tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def _route_project_logs_to_caplog(monkeypatch):
    """Project loggers do not propagate; let records reach caplog during tests."""
    from common.log import _loggers_configured

    for name in list(_loggers_configured):
        monkeypatch.setattr(logging.getLogger(name), "propagate", True)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


ENDPOINT = "wss://chat.example.test/ws"
