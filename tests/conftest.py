import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosedError

_EOF = object()


class FakeConnection:
    """Stand-in for a websockets connection: inbound frames are fed by the
    test, outbound frames land in an asyncio.Queue."""

    def __init__(self, peer=("127.0.0.1", 50000), fail_send=False):
        self.remote_address = peer
        self.fail_send = fail_send
        self.closed = False
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.sent: asyncio.Queue = asyncio.Queue()

    def feed(self, frame):
        self.inbound.put_nowait(frame)

    def feed_json(self, obj):
        self.feed(json.dumps(obj))

    def disconnect(self):
        self.inbound.put_nowait(_EOF)

    def drop(self):
        self.inbound.put_nowait(ConnectionClosedError(None, None))

    async def next_sent(self, timeout=1.0):
        return json.loads(await asyncio.wait_for(self.sent.get(), timeout))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.inbound.get()
        if item is _EOF:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, frame):
        if self.fail_send or self.closed:
            raise ConnectionClosedError(None, None)
        # text frames go out as UTF-8, as in websockets
        frame.encode("utf-8")
        self.sent.put_nowait(frame)

    async def close(self, code=1000, reason=""):
        if not self.closed:
            self.closed = True
            self.inbound.put_nowait(_EOF)


@pytest.fixture
def fake_connection():
    return FakeConnection
