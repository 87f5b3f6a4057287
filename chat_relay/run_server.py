import argparse
import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import websockets

from .hub import BroadcastHub

DEFAULT_BIND = "ws://127.0.0.1:8080"
DEFAULT_PORT = 8080


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    queue_size: int = 0
    ping_interval: Optional[float] = 20
    ping_timeout: Optional[float] = 20
    max_size: int = 2**20
    status_interval: float = 0


def _parse_bind(bind_uri: str) -> tuple[str, int]:
    # Accept ws://host:port, host:port, :port or a bare port
    if bind_uri.startswith("ws://") or bind_uri.startswith("wss://"):
        p = urlparse(bind_uri)
        host = p.hostname or "127.0.0.1"
        port = p.port or DEFAULT_PORT
        return host, int(port)
    if ":" in bind_uri:
        host, port = bind_uri.rsplit(":", 1)
        host = host or "0.0.0.0"
        return host, int(port)
    return "0.0.0.0", int(bind_uri)


async def _status_logger(hub: BroadcastHub, interval: float):
    while True:
        await asyncio.sleep(interval)
        st = await hub.registry.status()
        logging.info("Live sessions: %s", st["sessions"])
        logging.info("Online users: %s", st["users"])


async def serve(
    config: ServerConfig,
    stop: Optional[asyncio.Event] = None,
    hub: Optional[BroadcastHub] = None,
) -> None:
    hub = hub or BroadcastHub(queue_size=config.queue_size)
    stop = stop or asyncio.Event()

    async def ws_handler(ws, path=None):
        await hub.handler(ws, path)

    async with websockets.serve(
        ws_handler,
        config.host,
        config.port,
        ping_interval=config.ping_interval,
        ping_timeout=config.ping_timeout,
        max_size=config.max_size,
    ):
        logging.info("WebSocket server listening on: %s:%s", config.host, config.port)

        status_task = None
        if config.status_interval > 0:
            status_task = asyncio.create_task(_status_logger(hub, config.status_interval))
        try:
            await stop.wait()
        finally:
            if status_task:
                status_task.cancel()
                try:
                    await status_task
                except asyncio.CancelledError:
                    pass
    logging.info("Server on %s:%s shutdown complete", config.host, config.port)


async def _run(config: ServerConfig) -> None:
    stop = asyncio.Event()

    def _signal_handler():
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows may not support SIGTERM
            pass

    await serve(config, stop)


def _optional_seconds(value: str) -> Optional[float]:
    seconds = float(value)
    return seconds if seconds > 0 else None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat relay WebSocket server")
    parser.add_argument(
        "--bind",
        default=os.getenv("BIND", DEFAULT_BIND),
        help="Bind address ws://host:port, host:port or port",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG/INFO/...)",
    )
    parser.add_argument(
        "--queue-size",
        type=int,
        default=int(os.getenv("QUEUE_SIZE", "0")),
        help="Per-session outbound queue size; 0 means unbounded, otherwise oldest frames are dropped",
    )
    parser.add_argument(
        "--ping-interval",
        type=_optional_seconds,
        default=_optional_seconds(os.getenv("PING_INTERVAL", "20")),
        help="Seconds between keepalive pings; 0 disables",
    )
    parser.add_argument(
        "--ping-timeout",
        type=_optional_seconds,
        default=_optional_seconds(os.getenv("PING_TIMEOUT", "20")),
        help="Seconds to wait for a pong before dropping the connection; 0 disables",
    )
    parser.add_argument(
        "--max-size",
        type=int,
        default=int(os.getenv("MAX_SIZE", str(2**20))),
        help="Maximum incoming frame size in bytes",
    )
    parser.add_argument(
        "--status-interval",
        type=float,
        default=float(os.getenv("STATUS_INTERVAL", "0")),
        help="Seconds between status log lines; 0 disables",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    host, port = _parse_bind(args.bind)
    return ServerConfig(
        host=host,
        port=port,
        queue_size=args.queue_size,
        ping_interval=args.ping_interval,
        ping_timeout=args.ping_timeout,
        max_size=args.max_size,
        status_interval=args.status_interval,
    )


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        config = config_from_args(args)
    except ValueError:
        parser.error(f"invalid --bind value: {args.bind}")

    try:
        asyncio.run(_run(config))
    except KeyboardInterrupt:
        logging.info("Shutting down")


if __name__ == "__main__":
    main()
