"""Frame codecs for the three transport boundaries.

- LengthPrefixedCodec: 4-byte little-endian length + UTF-8 JSON body
  (Chrome native messaging over stdio)
- NewlineJsonCodec: one JSON document per ``\\n``-terminated line
  (Unix domain socket to the local consumer)
- WebSocketJsonCodec: one JSON document per WebSocket message

Stream codecs are incremental. ``feed()`` accepts arbitrary chunks and
returns the items completed by that chunk. An item is either the decoded
message or a ParseError for a frame that could not be decoded; one bad
frame never prevents the frames after it from being processed.
"""

from __future__ import annotations

import json
import logging
import struct
from abc import ABC, abstractmethod
from typing import Any

from ..config import MAX_FRAME_SIZE, MAX_MESSAGE_SIZE
from ..errors import ParseError, SizeExceeded

logger = logging.getLogger(__name__)

ENCODING = "utf-8"

_LENGTH = struct.Struct("<I")

# Decoded message, or the error for one frame
DecodedItem = Any


def _dumps(message: Any) -> bytes:
    return json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode(ENCODING)


def _loads(body: bytes) -> DecodedItem:
    try:
        return json.loads(body.decode(ENCODING))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return ParseError(f"Malformed frame: {e}")


class StreamCodec(ABC):
    """Incremental codec over a byte stream."""

    def __init__(self, max_size: int = MAX_FRAME_SIZE):
        self.max_size = max_size
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        """Number of bytes waiting for the rest of their frame."""
        return len(self._buffer)

    @abstractmethod
    def encode(self, message: Any) -> bytes:
        """Encode one message into a complete frame."""
        ...

    @abstractmethod
    def feed(self, data: bytes) -> list[DecodedItem]:
        """Consume a chunk and return every item it completed."""
        ...

    def reset(self) -> None:
        self._buffer.clear()


class LengthPrefixedCodec(StreamCodec):
    """4-byte little-endian length prefix followed by a UTF-8 JSON body."""

    def encode(self, message: Any) -> bytes:
        body = _dumps(message)
        if len(body) > self.max_size:
            raise SizeExceeded(
                f"Message too large: {len(body)} bytes (max {self.max_size})",
                details={"size": len(body), "max_size": self.max_size},
            )
        return _LENGTH.pack(len(body)) + body

    def feed(self, data: bytes) -> list[DecodedItem]:
        self._buffer.extend(data)
        items: list[DecodedItem] = []

        while len(self._buffer) >= _LENGTH.size:
            (length,) = _LENGTH.unpack_from(self._buffer, 0)

            if length > self.max_size:
                # Nothing after a bogus length can be trusted
                self._buffer.clear()
                items.append(ParseError(f"Declared frame length {length} exceeds {self.max_size}"))
                break

            end = _LENGTH.size + length
            if len(self._buffer) < end:
                break  # Wait for more data

            body = bytes(self._buffer[_LENGTH.size : end])
            del self._buffer[:end]
            items.append(_loads(body))

        return items


class NewlineJsonCodec(StreamCodec):
    """Newline-delimited JSON. Blank lines are ignored."""

    def __init__(self, max_size: int = MAX_MESSAGE_SIZE):
        super().__init__(max_size)

    def encode(self, message: Any) -> bytes:
        body = _dumps(message)
        if len(body) > self.max_size:
            raise SizeExceeded(
                f"Message too large: {len(body)} bytes (max {self.max_size})",
                details={"size": len(body), "max_size": self.max_size},
            )
        return body + b"\n"

    def feed(self, data: bytes) -> list[DecodedItem]:
        self._buffer.extend(data)
        items: list[DecodedItem] = []

        while True:
            newline = self._buffer.find(b"\n")
            if newline == -1:
                break

            line = bytes(self._buffer[:newline]).strip()
            del self._buffer[: newline + 1]

            if not line:
                continue

            item = _loads(line)
            if isinstance(item, ParseError):
                logger.warning(f"Skipping malformed line: {line[:50]!r}")
            items.append(item)

        if len(self._buffer) > self.max_size:
            self._buffer.clear()
            items.append(ParseError(f"Line exceeds {self.max_size} bytes without a newline"))

        return items


class WebSocketJsonCodec:
    """One JSON document per WebSocket message; the transport does the framing."""

    def __init__(self, max_size: int = MAX_MESSAGE_SIZE):
        self.max_size = max_size

    def encode(self, message: Any) -> str:
        text = json.dumps(message, ensure_ascii=False, separators=(",", ":"))
        size = len(text.encode(ENCODING))
        if size > self.max_size:
            raise SizeExceeded(
                f"Message too large: {size} bytes (max {self.max_size})",
                details={"size": size, "max_size": self.max_size},
            )
        return text

    def decode(self, data: str | bytes) -> DecodedItem:
        if isinstance(data, str):
            data = data.encode(ENCODING)
        return _loads(data)
