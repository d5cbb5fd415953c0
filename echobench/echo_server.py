"""
Local echo target for EchoBench.

Serves both transports so a benchmark can run without an external server:
- websocket: echoes every message; JSON objects get a "ts" field (ms)
- datagram: echoes every UDP datagram unchanged

Run with: python -m echobench.echo_server --port 8080 --udp-port 8081
"""

from __future__ import annotations

import argparse
import asyncio
import json
import time
from typing import Optional, Union

import websockets

from .logging_setup import setup_logging, log, log_debug


def stamp_response(message: Union[str, bytes]) -> Union[str, bytes]:
    """Add a server receive timestamp to JSON object messages."""
    if not isinstance(message, str):
        return message
    try:
        data = json.loads(message)
    except ValueError:
        return message
    if not isinstance(data, dict):
        return message
    data["ts"] = time.time() * 1000.0
    return json.dumps(data, separators=(",", ":"))


async def _ws_echo(websocket) -> None:
    async for message in websocket:
        await websocket.send(stamp_response(message))


class _UdpEcho(asyncio.DatagramProtocol):
    """Sends every datagram back to its sender."""

    def __init__(self):
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr) -> None:
        self.transport.sendto(data, addr)


class EchoServer:
    """
    Websocket and (optionally) UDP echo listeners.

    Port 0 picks a free port; read the bound address back from
    ws_address / udp_address after start().
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0, udp_port: Optional[int] = None):
        self.host = host
        self.port = port
        self.udp_port = udp_port
        self._ws_server = None
        self._udp_transport: Optional[asyncio.DatagramTransport] = None

    async def start(self) -> None:
        self._ws_server = await websockets.serve(_ws_echo, self.host, self.port)
        if self.udp_port is not None:
            loop = asyncio.get_running_loop()
            self._udp_transport, _ = await loop.create_datagram_endpoint(
                _UdpEcho, local_addr=(self.host, self.udp_port)
            )
        log_debug(f"[ECHO] listening on {self.ws_address}" + (
            f" and {self.udp_address}" if self._udp_transport else ""
        ))

    @property
    def ws_address(self) -> str:
        port = self._ws_server.sockets[0].getsockname()[1]
        return f"ws://{self.host}:{port}"

    @property
    def udp_address(self) -> Optional[str]:
        if self._udp_transport is None:
            return None
        port = self._udp_transport.get_extra_info("sockname")[1]
        return f"udp://{self.host}:{port}"

    async def stop(self) -> None:
        if self._udp_transport is not None:
            self._udp_transport.close()
            self._udp_transport = None
        if self._ws_server is not None:
            self._ws_server.close()
            await self._ws_server.wait_closed()
            self._ws_server = None

    async def __aenter__(self) -> "EchoServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


async def serve(host: str, port: int, udp_port: Optional[int]) -> None:
    async with EchoServer(host, port, udp_port) as server:
        log(f"[ECHO] websocket echo on {server.ws_address}")
        if server.udp_address:
            log(f"[ECHO] datagram echo on {server.udp_address}")
        await asyncio.Future()


def main():
    ap = argparse.ArgumentParser(description="EchoBench local echo target")
    ap.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    ap.add_argument("--port", type=int, default=8080, help="Websocket port (default: 8080)")
    ap.add_argument("--udp-port", type=int, help="Also echo UDP datagrams on this port")
    args = ap.parse_args()

    setup_logging(log_to_file=False)
    try:
        asyncio.run(serve(args.host, args.port, args.udp_port))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
