"""
Wire encodings for tagged echo requests.

Each request carries its sequence tag; the far end echoes it back so a
response can be matched to its request regardless of arrival order.

Two encodings exist:
- JSON text: {"c": <tag>}; the response may add "ts" (server receive time)
- Fixed 7-byte binary frame: the bytes of '{"c":N}' where N is one ASCII digit
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional, Union

from .config import TRANSPORT_WEBSOCKET, TRANSPORT_DATAGRAM
from .exceptions import MalformedResponseError, TagRangeError, UnknownTransportError


# Binary frame layout: b'{"c":' + digit + b'}'
BINARY_FRAME_PREFIX = b'{"c":'
BINARY_FRAME_SUFFIX = b"}"
BINARY_FRAME_LEN = 7
BINARY_TAG_OFFSET = 5
BINARY_TAG_BASE = 48  # ord("0")
BINARY_MAX_TAG = 9


@dataclass(frozen=True)
class DecodedResponse:
    """Sequence tag and optional server timestamp carried by a response."""
    tag: int
    server_timestamp: Optional[float] = None


class TagCodec:
    """Base class for request encoders / response decoders."""

    #: Whether payloads are text (sent as text frames where that matters)
    text = False

    def encode(self, tag: int) -> bytes:
        raise NotImplementedError

    def decode(self, payload: Union[bytes, str]) -> DecodedResponse:
        raise NotImplementedError


class JsonTagCodec(TagCodec):
    """Textual encoding: {"c": <tag>}."""

    text = True

    def encode(self, tag: int) -> bytes:
        return json.dumps({"c": tag}, separators=(",", ":")).encode("utf-8")

    def decode(self, payload: Union[bytes, str]) -> DecodedResponse:
        try:
            data = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedResponseError(f"Response is not JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponseError("Response is not a JSON object")

        tag = data.get("c")
        if not isinstance(tag, int) or isinstance(tag, bool):
            raise MalformedResponseError(f"Response tag missing or not an integer: {tag!r}")

        ts = data.get("ts")
        server_ts = float(ts) if isinstance(ts, (int, float)) and not isinstance(ts, bool) else None
        return DecodedResponse(tag=tag, server_timestamp=server_ts)


class BinaryTagCodec(TagCodec):
    """
    Fixed 7-byte frame with a single ASCII digit tag at offset 5.

    Only tags 0-9 are representable; larger tags raise TagRangeError
    instead of silently wrapping into other byte values.
    """

    def encode(self, tag: int) -> bytes:
        if not 0 <= tag <= BINARY_MAX_TAG:
            raise TagRangeError(tag, BINARY_MAX_TAG)
        return BINARY_FRAME_PREFIX + bytes([BINARY_TAG_BASE + tag]) + BINARY_FRAME_SUFFIX

    def decode(self, payload: Union[bytes, str]) -> DecodedResponse:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        if len(payload) <= BINARY_TAG_OFFSET:
            raise MalformedResponseError(f"Frame too short: {len(payload)} bytes")

        tag = payload[BINARY_TAG_OFFSET] - BINARY_TAG_BASE
        if not 0 <= tag <= BINARY_MAX_TAG:
            raise MalformedResponseError(
                f"Byte {payload[BINARY_TAG_OFFSET]:#04x} at offset {BINARY_TAG_OFFSET} is not a digit"
            )
        return DecodedResponse(tag=tag)


CODECS = {
    TRANSPORT_WEBSOCKET: JsonTagCodec,
    TRANSPORT_DATAGRAM: BinaryTagCodec,
}


def codec_for(transport: str) -> TagCodec:
    """Get a codec instance for a transport name."""
    try:
        return CODECS[transport]()
    except KeyError:
        raise UnknownTransportError(transport) from None
