# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Visits)
# Description: IRealtimeTransport over STOMP on a websocket.
# ============================================================================
"""STOMP WebSocket Transport.

Settlement events are published by the backend on
``/topic/invoice.{invoiceId}`` as JSON bodies like
``{"event": "PAYMENT_SUCCESS", "message": "...", "invoiceId": 42}``.

One websocket per operator session. A background task reads frames and
routes MESSAGE frames by subscription id; when the socket closes without
``disconnect()`` having been called, ``on_connection_lost`` fires once.
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from clinicflow.core.domain.exceptions import IntegrationException

from ...application.ports import ConnectionLostCallback, Detach, EventListener, IRealtimeTransport, PaymentEvent
from .stomp_frames import StompFrame, StompProtocolError, decode_frames

logger = logging.getLogger(__name__)

TOPIC_TEMPLATE = "/topic/invoice.{invoice_id}"
HEARTBEAT = "\n"


class StompWebSocketTransport(IRealtimeTransport):
    """Payment event channel over STOMP 1.2."""

    service_name = "realtime-transport"

    def __init__(
        self,
        url: str,
        connect_timeout: float = 10.0,
        heartbeat_ms: int = 4000,
        headers: dict[str, str] | None = None,
        connector: Callable[..., Any] | None = None,
    ):
        """Initialize transport.

        Args:
            url: Websocket URL of the STOMP endpoint.
            connect_timeout: Seconds to wait for the socket and CONNECTED frame.
            heartbeat_ms: Outgoing heart-beat interval; 0 disables heart-beats.
            headers: Extra CONNECT headers (e.g. ``Authorization``).
            connector: Replacement for ``websockets.connect`` (tests).
        """
        self.url = url
        self.connect_timeout = connect_timeout
        self.heartbeat_ms = heartbeat_ms
        self._connect_headers = dict(headers or {})
        self._connector = connector or websockets.connect

        self._ws: Any = None
        self._connected = False
        self._closing = False
        self._on_lost: ConnectionLostCallback | None = None
        self._reader: asyncio.Task | None = None
        self._heartbeat: asyncio.Task | None = None
        self._listeners: dict[str, tuple[str, EventListener]] = {}
        self._ids = itertools.count(1)

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self, on_connection_lost: ConnectionLostCallback) -> None:
        if self._connected:
            return
        self._closing = False
        try:
            self._ws = await asyncio.wait_for(
                self._connector(self.url, subprotocols=["v12.stomp"]),
                self.connect_timeout,
            )
            await self._ws.send(
                StompFrame(
                    "CONNECT",
                    {
                        "accept-version": "1.2",
                        "host": "/",
                        "heart-beat": f"{self.heartbeat_ms},{self.heartbeat_ms}",
                        **self._connect_headers,
                    },
                ).encode()
            )
            frame = await asyncio.wait_for(self._first_frame(), self.connect_timeout)
        except (OSError, TimeoutError, ConnectionClosed, StompProtocolError) as e:
            await self._close_socket()
            logger.error(f"[STOMP] Could not connect to {self.url}: {e}")
            raise IntegrationException(self.service_name, f"Could not connect to {self.url}", e) from e

        if frame.command != "CONNECTED":
            await self._close_socket()
            message = frame.headers.get("message") or frame.body or frame.command
            raise IntegrationException(self.service_name, f"STOMP connect refused: {message}")

        self._connected = True
        self._on_lost = on_connection_lost
        self._reader = asyncio.create_task(self._read_loop())
        if self.heartbeat_ms > 0:
            self._heartbeat = asyncio.create_task(self._heartbeat_loop())
        logger.info(f"[STOMP] Connected to {self.url} (server {frame.headers.get('server', 'unknown')})")

    async def disconnect(self) -> None:
        self._closing = True
        if self._connected:
            try:
                await self._ws.send(StompFrame("DISCONNECT").encode())
            except ConnectionClosed as e:
                logger.debug(f"[STOMP] Socket already closed on disconnect: {e}")
        self._connected = False
        self._listeners.clear()
        for task in (self._heartbeat, self._reader):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        self._heartbeat = self._reader = None
        await self._close_socket()

    async def listen(self, invoice_id: str, listener: EventListener) -> Detach:
        if not self._connected:
            raise IntegrationException(self.service_name, "Not connected")
        subscription_id = f"sub-{next(self._ids)}"
        self._listeners[subscription_id] = (invoice_id, listener)
        destination = TOPIC_TEMPLATE.format(invoice_id=invoice_id)
        try:
            await self._ws.send(
                StompFrame("SUBSCRIBE", {"id": subscription_id, "destination": destination, "ack": "auto"}).encode()
            )
        except ConnectionClosed as e:
            self._listeners.pop(subscription_id, None)
            raise IntegrationException(self.service_name, f"Subscribe to {destination} failed", e) from e
        logger.debug(f"[STOMP] Subscribed {subscription_id} to {destination}")

        async def detach() -> None:
            if self._listeners.pop(subscription_id, None) is None or not self._connected:
                return
            await self._ws.send(StompFrame("UNSUBSCRIBE", {"id": subscription_id}).encode())
            logger.debug(f"[STOMP] Unsubscribed {subscription_id} from {destination}")

        return detach

    async def _first_frame(self) -> StompFrame:
        while True:
            frames = decode_frames(await self._ws.recv())
            if frames:
                return frames[0]

    async def _read_loop(self) -> None:
        error: Exception | None = None
        try:
            async for message in self._ws:
                for frame in decode_frames(message):
                    self._handle_frame(frame)
        except ConnectionClosed as e:
            error = e
        except StompProtocolError as e:
            logger.error(f"[STOMP] Protocol error: {e}")
            error = e
        finally:
            self._connected = False
        if not self._closing:
            self._connection_lost(error)

    def _handle_frame(self, frame: StompFrame) -> None:
        if frame.command == "MESSAGE":
            subscription_id = frame.headers.get("subscription", "")
            entry = self._listeners.get(subscription_id)
            if entry is None:
                logger.debug(f"[STOMP] Message for unknown subscription {subscription_id}")
                return
            invoice_id, listener = entry
            try:
                payload = json.loads(frame.body or "{}")
            except json.JSONDecodeError as e:
                logger.error(f"[STOMP] Failed to parse message on {frame.headers.get('destination')}: {e}")
                return
            if not isinstance(payload, dict):
                logger.error(f"[STOMP] Unexpected message body on {frame.headers.get('destination')}")
                return
            listener(PaymentEvent.from_payload(payload, invoice_id))
        elif frame.command == "ERROR":
            logger.error(f"[STOMP] Server error: {frame.headers.get('message', '')} {frame.body}".strip())
        elif frame.command == "RECEIPT":
            logger.debug(f"[STOMP] Receipt {frame.headers.get('receipt-id')}")

    async def _heartbeat_loop(self) -> None:
        interval = self.heartbeat_ms / 1000
        try:
            while self._connected:
                await asyncio.sleep(interval)
                await self._ws.send(HEARTBEAT)
        except ConnectionClosed:
            # The reader sees the close and reports it
            return

    def _connection_lost(self, error: Exception | None) -> None:
        callback, self._on_lost = self._on_lost, None
        if self._heartbeat is not None:
            self._heartbeat.cancel()
        logger.warning(f"[STOMP] Connection lost: {error or 'closed by server'}")
        if callback is not None:
            callback(error)

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
