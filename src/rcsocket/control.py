"""Controllable socket service for exercising reconnection.

This module provides a WebSocket echo service that can be started,
stopped and severed on demand, an HTTP control endpoint driving it, and a
handler that records everything a connection dispatches.

Example:
    >>> echo = EchoServer()
    >>> await echo.start()
    >>> sock = RcSocket(echo.url, handler=(log := ReconnectLog()))
    >>> await log.wait_for("on_open")
    >>> echo.sever()                # drop the link without a close frame
    >>> await log.wait_for("on_open", count=2)
    >>> await echo.stop()
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from http import HTTPStatus
from typing import Any, Optional

import websockets

from rcsocket.events import RcSocketHandler

log = logging.getLogger(__name__)


class EchoServer:
    """WebSocket service echoing every message back to its sender.

    Attributes:
        host: Interface to bind.
        port: Port to bind; 0 picks a free port on first start, which is
            then reused by later starts.
        received: Every message received, in arrival order.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0) -> None:
        self.host = host
        self.port = port
        self.received: list[Any] = []
        self._server: Optional[Any] = None
        self._clients: set[Any] = set()

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def start(self) -> None:
        """Start listening. Starting a running server does nothing."""
        if self._server is not None:
            return

        self._server = await websockets.serve(self._handle_client, self.host, self.port)
        if self.port == 0:
            self.port = self._server.sockets[0].getsockname()[1]
        log.info(f"Echo server started on {self.url}")

    async def stop(self) -> None:
        """Stop listening and close every client with a closing handshake."""
        if self._server is None:
            return

        self._server.close()
        await self._server.wait_closed()
        self._server = None
        self._clients.clear()
        log.info("Echo server stopped")

    def sever(self) -> int:
        """Abort every client connection without a closing handshake.

        The listening socket stays up, so clients can reconnect.

        Returns:
            Number of connections dropped.
        """
        clients = list(self._clients)
        for client in clients:
            client.transport.abort()
        self._clients.clear()
        log.info(f"Severed {len(clients)} client connection(s)")
        return len(clients)

    async def _handle_client(self, websocket: Any) -> None:
        self._clients.add(websocket)
        log.debug(f"Client connected: {websocket.remote_address}")

        try:
            async for message in websocket:
                self.received.append(message)
                await websocket.send(message)
        except websockets.ConnectionClosed:
            pass
        finally:
            self._clients.discard(websocket)
            log.debug(f"Client disconnected: {websocket.remote_address}")


class ControlServer:
    """HTTP endpoint driving an ``EchoServer``.

    Routes (GET): ``/start``, ``/stop``, ``/sever`` and ``/status``, each
    answering with a JSON body describing the echo service. Any other path
    answers 404.
    """

    def __init__(self, echo: EchoServer, host: str = "127.0.0.1", port: int = 0) -> None:
        self.echo = echo
        self.host = host
        self.port = port
        self._server: Optional[Any] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def start(self) -> None:
        if self._server is not None:
            return

        self._server = await websockets.serve(
            self._reject,
            self.host,
            self.port,
            process_request=self._process_request,
        )
        if self.port == 0:
            self.port = self._server.sockets[0].getsockname()[1]
        log.info(f"Control endpoint listening on {self.url}")

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

    def status(self) -> dict[str, Any]:
        return {
            "running": self.echo.is_running,
            "url": self.echo.url,
            "clients": self.echo.client_count,
        }

    async def _process_request(self, connection: Any, request: Any) -> Any:
        path = request.path.split("?", 1)[0].rstrip("/") or "/"
        result: dict[str, Any]

        if path == "/start":
            await self.echo.start()
            result = {"action": "start"}
        elif path == "/stop":
            await self.echo.stop()
            result = {"action": "stop"}
        elif path == "/sever":
            result = {"action": "sever", "severed": self.echo.sever()}
        elif path == "/status":
            result = {"action": "status"}
        else:
            return self._json(connection, HTTPStatus.NOT_FOUND, {"error": f"Unknown path: {path}"})

        result.update(self.status())
        return self._json(connection, HTTPStatus.OK, result)

    @staticmethod
    def _json(connection: Any, status: HTTPStatus, body: dict[str, Any]) -> Any:
        response = connection.respond(status, json.dumps(body) + "\n")
        del response.headers["Content-Type"]
        response.headers["Content-Type"] = "application/json"
        return response

    async def _reject(self, websocket: Any) -> None:
        await websocket.close(1008, "control endpoint accepts HTTP requests only")


@dataclass
class RecordedEvent:
    """One dispatched event."""

    name: str
    payload: Any
    at: datetime = field(default_factory=datetime.now)


class ReconnectLog(RcSocketHandler):
    """Handler buffering every event a connection dispatches.

    Attributes:
        events: Recorded events, in dispatch order.
    """

    def __init__(self) -> None:
        self.events: list[RecordedEvent] = []
        self._changed = asyncio.Condition()

    def names(self) -> list[str]:
        return [event.name for event in self.events]

    def payloads(self, name: str) -> list[Any]:
        return [event.payload for event in self.events if event.name == name]

    def count(self, name: str) -> int:
        return sum(1 for event in self.events if event.name == name)

    async def wait_for(self, name: str, count: int = 1, timeout: float = 5.0) -> list[Any]:
        """Wait until ``name`` was recorded ``count`` times.

        Raises:
            asyncio.TimeoutError: If that doesn't happen within ``timeout``.
        """
        async def reached() -> None:
            async with self._changed:
                await self._changed.wait_for(lambda: self.count(name) >= count)

        await asyncio.wait_for(reached(), timeout)
        return self.payloads(name)

    def _record(self, name: str, payload: Any) -> None:
        self.events.append(RecordedEvent(name, payload))
        asyncio.ensure_future(self._notify())

    async def _notify(self) -> None:
        async with self._changed:
            self._changed.notify_all()

    def on_connecting(self, event: Any) -> None:
        self._record("on_connecting", event)

    def on_open(self, event: Any) -> None:
        self._record("on_open", event)

    def on_message(self, event: Any) -> None:
        self._record("on_message", event)

    def on_error(self, event: Any) -> None:
        self._record("on_error", event)

    def on_close(self, event: Any) -> None:
        self._record("on_close", event)

    def on_timeout(self, event: Any) -> None:
        self._record("on_timeout", event)
