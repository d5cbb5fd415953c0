"""
Duplex channel capability for EchoBench.

A channel opens against an address, sends payloads, delivers every inbound
message to a registered handler, and closes. The engine is written once
against DuplexChannel; transports differ only in how they move bytes:

- WebSocketChannel: message-framed, over the `websockets` client
- DatagramChannel: datagram-framed, over an asyncio UDP endpoint
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Union
from urllib.parse import urlparse

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import TRANSPORT_WEBSOCKET, TRANSPORT_DATAGRAM
from .exceptions import ChannelClosedError, ConnectError, UnknownTransportError
from .logging_setup import log_debug

Message = Union[bytes, str]
MessageHandler = Callable[[Message], None]

# Seconds allowed for a websocket opening handshake
WS_OPEN_TIMEOUT = 10.0


class DuplexChannel(ABC):
    """Bidirectional message channel used by one Connection."""

    def __init__(self):
        self.address: Optional[str] = None
        self._handler: Optional[MessageHandler] = None

    def on_message(self, handler: Optional[MessageHandler]) -> None:
        """Register the inbound message handler (replaces any previous one)."""
        self._handler = handler

    def _deliver(self, message: Message) -> None:
        if self._handler is not None:
            self._handler(message)

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    async def open(self, address: str) -> None:
        """
        Open the channel.

        Raises:
            ConnectError: If the channel could not be opened
        """

    @abstractmethod
    async def send(self, payload: bytes, text: bool = False) -> None:
        """
        Send one payload without waiting for a reply.

        Raises:
            ChannelClosedError: If the channel is not open
        """

    @abstractmethod
    async def close(self) -> None:
        ...


class WebSocketChannel(DuplexChannel):
    """Message-framed channel over a websocket client connection."""

    def __init__(self, open_timeout: float = WS_OPEN_TIMEOUT):
        super().__init__()
        self.open_timeout = open_timeout
        self._ws = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def open(self, address: str) -> None:
        try:
            self._ws = await websockets.connect(
                address,
                open_timeout=self.open_timeout,
                max_size=None,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise ConnectError(address, str(e) or type(e).__name__) from e

        self.address = address
        self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            async for message in self._ws:
                self._deliver(message)
        except ConnectionClosed as e:
            log_debug(f"[CHANNEL] {self.address} closed: {e}")

    async def send(self, payload: bytes, text: bool = False) -> None:
        if self._ws is None:
            raise ChannelClosedError(f"Websocket to {self.address} is not open")
        try:
            await self._ws.send(payload.decode("utf-8") if text else payload)
        except ConnectionClosed as e:
            raise ChannelClosedError(f"Websocket to {self.address} closed: {e}") from e

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None
        if ws is not None:
            await ws.close()


class _DatagramProtocol(asyncio.DatagramProtocol):
    """Forwards received datagrams to the owning channel."""

    def __init__(self, channel: "DatagramChannel"):
        self._channel = channel

    def datagram_received(self, data: bytes, addr) -> None:
        self._channel._deliver(data)

    def error_received(self, exc: Exception) -> None:
        log_debug(f"[CHANNEL] {self._channel.address} datagram error: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._channel._transport = None


class DatagramChannel(DuplexChannel):
    """Datagram-framed channel over a connected UDP endpoint (udp://host:port)."""

    def __init__(self):
        super().__init__()
        self._transport: Optional[asyncio.DatagramTransport] = None

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    @staticmethod
    def parse_address(address: str):
        """Split udp://host:port into (host, port)."""
        parsed = urlparse(address)
        try:
            port = parsed.port
        except ValueError as e:
            raise ConnectError(address, str(e)) from e
        if not parsed.hostname or port is None:
            raise ConnectError(address, "expected udp://host:port")
        return parsed.hostname, port

    async def open(self, address: str) -> None:
        host, port = self.parse_address(address)
        loop = asyncio.get_running_loop()
        try:
            self._transport, _ = await loop.create_datagram_endpoint(
                lambda: _DatagramProtocol(self),
                remote_addr=(host, port),
            )
        except OSError as e:
            raise ConnectError(address, str(e)) from e
        self.address = address

    async def send(self, payload: bytes, text: bool = False) -> None:
        if self._transport is None:
            raise ChannelClosedError(f"Datagram endpoint {self.address} is not open")
        self._transport.sendto(payload)

    async def close(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()


ChannelFactory = Callable[[], DuplexChannel]

CHANNEL_FACTORIES: Dict[str, ChannelFactory] = {
    TRANSPORT_WEBSOCKET: WebSocketChannel,
    TRANSPORT_DATAGRAM: DatagramChannel,
}


def channel_factory_for(transport: str) -> ChannelFactory:
    """Get the channel class for a transport name."""
    try:
        return CHANNEL_FACTORIES[transport]
    except KeyError:
        raise UnknownTransportError(transport) from None
