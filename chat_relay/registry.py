import asyncio
import logging
from typing import Any, Dict, List, Optional

from .protocol import encode_envelope


class ChannelClosed(Exception):
    """Raised when delivering into a channel whose consumer has gone away."""


class DeliveryChannel:
    """Ordered outbound queue for one session.

    put() never waits. With maxsize > 0 the oldest queued frame is
    dropped to make room, so a stalled reader cannot hold up broadcasters.
    """

    def __init__(self, maxsize: int = 0):
        self.maxsize = max(0, maxsize)
        self.closed = False
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue()

    def put(self, frame: str) -> None:
        if self.closed:
            raise ChannelClosed("delivery channel closed")
        if self.maxsize and self._queue.qsize() >= self.maxsize:
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(frame)

    async def get(self) -> str:
        return await self._queue.get()

    def close(self) -> None:
        self.closed = True

    def __len__(self) -> int:
        return self._queue.qsize()


class SessionRegistry:
    def __init__(self):
        # session_id -> display name (registered sessions only)
        self._names: Dict[str, str] = {}

        # session_id -> DeliveryChannel (every live session)
        self._channels: Dict[str, DeliveryChannel] = {}

        self.lock = asyncio.Lock()

    async def add(self, session_id: str, channel: DeliveryChannel) -> None:
        async with self.lock:
            self._channels[session_id] = channel

    async def register(self, session_id: str, name: str) -> bool:
        async with self.lock:
            if session_id not in self._channels:
                return False
            self._names[session_id] = name
        return True

    async def remove(self, session_id: str) -> None:
        async with self.lock:
            self._names.pop(session_id, None)
            self._channels.pop(session_id, None)

    unregister = remove

    async def names(self) -> List[str]:
        async with self.lock:
            return list(self._names.values())

    async def name_of(self, session_id: str) -> Optional[str]:
        async with self.lock:
            return self._names.get(session_id)

    async def broadcast(self, envelope: Dict[str, Any]) -> int:
        raw = encode_envelope(envelope)
        delivered = 0
        async with self.lock:
            for session_id, channel in self._channels.items():
                try:
                    channel.put(raw)
                except ChannelClosed:
                    logging.debug("Skipping closed channel for %s", session_id)
                    continue
                delivered += 1
        return delivered

    async def status(self) -> Dict[str, Any]:
        async with self.lock:
            return {
                "sessions": len(self._channels),
                "users": list(self._names.values()),
            }
