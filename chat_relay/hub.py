import asyncio
import logging
import uuid as _uuid
from enum import Enum
from typing import Any, Dict, Optional

from websockets.exceptions import ConnectionClosed

from .protocol import MessageType, chat_envelope, parse_envelope, users_envelope
from .registry import DeliveryChannel, SessionRegistry

ANONYMOUS = "Anonymous"


class SessionState(str, Enum):
    CONNECTED = "connected"
    REGISTERED = "registered"
    CLOSED = "closed"


class Session:
    def __init__(self, session_id: str, ws: Any, channel: DeliveryChannel):
        self.id = session_id
        self.ws = ws
        self.channel = channel
        self.state = SessionState.CONNECTED
        self.peer = _peer_label(ws)
        self._relay_task: Optional[asyncio.Task] = None

    @property
    def alive(self) -> bool:
        return self.state is not SessionState.CLOSED


def _peer_label(ws: Any) -> str:
    addr = getattr(ws, "remote_address", None)
    if isinstance(addr, (tuple, list)) and len(addr) >= 2:
        return f"{addr[0]}:{addr[1]}"
    return str(addr) if addr else "unknown"


class BroadcastHub:
    """Runs one session per accepted connection and fans events out to all."""

    def __init__(self, registry: Optional[SessionRegistry] = None, queue_size: int = 0):
        self.registry = registry if registry is not None else SessionRegistry()
        self.queue_size = queue_size

    async def handler(self, ws: Any, path: Optional[str] = None):
        session = Session(str(_uuid.uuid4()), ws, DeliveryChannel(self.queue_size))
        logging.info("Incoming connection from %s (session %s)", session.peer, session.id)
        await self.registry.add(session.id, session.channel)

        session._relay_task = asyncio.create_task(self.relay_loop(session))
        try:
            await self.receive_loop(session)
        finally:
            await self.cleanup_session(session)

    async def receive_loop(self, session: Session):
        try:
            async for raw in session.ws:
                if not isinstance(raw, str):
                    logging.debug("Ignoring binary frame from %s", session.peer)
                    continue
                logging.debug("Received message from %s: %s", session.peer, raw)

                envelope = parse_envelope(raw)
                if envelope is None:
                    logging.info("Dropping undecodable frame from %s", session.peer)
                    continue

                await self.handle_envelope(session, envelope)
        except ConnectionClosed as e:
            logging.info("Error receiving message from %s: %s", session.peer, e)
        except Exception:
            logging.exception("Error in receive loop for %s", session.peer)

    async def relay_loop(self, session: Session):
        ws = session.ws
        try:
            while True:
                frame = await session.channel.get()
                await ws.send(frame)
        except Exception as e:
            logging.warning("Error sending message to %s: %s", session.peer, e)
            session.channel.close()
            try:
                await ws.close()
            except Exception:
                pass

    async def handle_envelope(self, session: Session, envelope: Dict[str, Any]):
        typ = envelope["messageType"]

        if typ == MessageType.REGISTER:
            name = envelope.get("data")
            if name is None:
                return
            if await self.registry.register(session.id, name):
                session.state = SessionState.REGISTERED
                logging.info("Session %s registered as %r", session.id, name)
            await self.broadcast_users()
        elif typ == MessageType.MESSAGE:
            text = envelope.get("data")
            if text is None:
                return
            sender = await self.registry.name_of(session.id)
            if sender is None:
                sender = ANONYMOUS
            await self.registry.broadcast(chat_envelope(sender, text))
        elif typ == MessageType.USERS:
            await self.broadcast_users()

    async def broadcast_users(self) -> int:
        names = await self.registry.names()
        return await self.registry.broadcast(users_envelope(names))

    async def cleanup_session(self, session: Session):
        session.state = SessionState.CLOSED
        session.channel.close()
        if session._relay_task:
            session._relay_task.cancel()
            try:
                await session._relay_task
            except asyncio.CancelledError:
                pass
        await self.registry.remove(session.id)
        logging.info("WebSocket connection closed: %s (session %s)", session.peer, session.id)
        await self.broadcast_users()
