import asyncio
from typing import Set

import pytest
import websockets

from chat.connection import ConnectionManager
from chat.session import MessageSession
from chat.state import ConnectionState


async def wait_for(predicate, timeout=3.0):
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if predicate():
            return True
        await asyncio.sleep(0.02)
    return False


class Relay:
    """Broadcasts every text frame to all other connected clients."""

    def __init__(self) -> None:
        self.clients: Set = set()

    async def handler(self, websocket) -> None:
        self.clients.add(websocket)
        try:
            async for frame in websocket:
                for other in list(self.clients):
                    if other is not websocket:
                        await other.send(frame)
        finally:
            self.clients.discard(websocket)


@pytest.mark.asyncio
async def test_two_sessions_chat_through_relay():
    relay = Relay()
    async with websockets.serve(relay.handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        url = f"ws://127.0.0.1:{port}"

        alice = MessageSession(ConnectionManager(ping_interval=None), username="Alice")
        bob = MessageSession(ConnectionManager(ping_interval=None), username="Bob")
        await alice.start(url)
        await bob.start(url)
        assert await wait_for(lambda: len(relay.clients) == 2)

        sent = await alice.submit("hello")
        assert await wait_for(lambda: len(bob.messages) == 1)
        await bob.submit("hi")
        assert await wait_for(lambda: len(alice.messages) == 2)

        assert [(m.user, m.text) for m in alice.messages] == [("Alice", "hello"), ("Bob", "hi")]
        assert [(m.user, m.text) for m in bob.messages] == [("Alice", "hello"), ("Bob", "hi")]
        assert bob.messages[0] == sent
        assert alice.is_own(alice.messages[0]) and not bob.is_own(bob.messages[0])

        await alice.close()
        await bob.close()


@pytest.mark.asyncio
async def test_reconnects_after_server_drops_connection():
    relay = Relay()
    async with websockets.serve(relay.handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        session = MessageSession(ConnectionManager(reconnect_delay=0.1, ping_interval=None), username="Alice")
        await session.start(f"ws://127.0.0.1:{port}")
        assert await wait_for(lambda: len(relay.clients) == 1)

        for client in list(relay.clients):
            await client.close(code=1011)

        assert await wait_for(lambda: session.last_error == "connection lost")
        assert await wait_for(lambda: session.connection.reconnect_attempts == 1
                              and len(relay.clients) == 1)
        assert session.state is ConnectionState.CONNECTED
        assert session.last_error is None

        await session.close()
