"""Content-Length framed JSON-RPC over byte streams.

The transport knows nothing about LSP: it turns frames into JSON objects and
back. Readers are asyncio streams; writers are anything with ``write`` and
an awaitable ``drain``.
"""

from __future__ import annotations

import asyncio
import json
import sys
import threading
from typing import BinaryIO, Protocol

from loguru import logger

from lsfront.exceptions import FramingError, MalformedMessage, TransportClosed
from lsfront.json_types import JSONObject

_HEADER_TERMINATOR = b"\r\n\r\n"
_MAX_HEADER_BYTES = 8192
_READ_CHUNK = 65536


class MessageWriter(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...

    def close(self) -> None: ...


class MessageTransport(Protocol):
    @property
    def closed(self) -> bool: ...

    async def read_message(self) -> JSONObject | None: ...

    async def write_message(self, message: JSONObject) -> None: ...

    def close(self) -> None: ...


def encode_message(message: JSONObject) -> bytes:
    payload = json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii")
    return header + payload


def parse_headers(head: bytes) -> int:
    length: int | None = None
    for line in head.split(b"\r\n"):
        if not line:
            continue
        name, sep, value = line.partition(b":")
        if not sep:
            raise FramingError(f"Malformed header line: {line[:80]!r}")
        if name.strip().lower() == b"content-length":
            try:
                length = int(value.strip())
            except ValueError as exc:
                raise FramingError(f"Invalid Content-Length: {value!r}") from exc
    if length is None or length < 0:
        raise FramingError("Missing Content-Length header")
    return length


def decode_body(body: bytes) -> JSONObject:
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedMessage(f"Invalid JSON body: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedMessage("JSON-RPC message must be an object")
    return message


class StreamTransport:
    def __init__(self, reader: asyncio.StreamReader, writer: MessageWriter):
        self._reader = reader
        self._writer = writer
        self._write_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def read_message(self) -> JSONObject | None:
        """Read one frame; ``None`` means the peer closed the stream cleanly."""
        if self._closed:
            return None
        try:
            head = await self._reader.readuntil(_HEADER_TERMINATOR)
        except asyncio.IncompleteReadError as exc:
            if exc.partial.strip():
                raise FramingError("Stream ended inside a header block") from exc
            return None
        except asyncio.LimitOverrunError as exc:
            raise FramingError("Header block too large") from exc
        if len(head) > _MAX_HEADER_BYTES:
            raise FramingError("Header block too large")
        length = parse_headers(head[: -len(_HEADER_TERMINATOR)])
        try:
            body = await self._reader.readexactly(length)
        except asyncio.IncompleteReadError as exc:
            raise TransportClosed("Stream ended inside a message body") from exc
        return decode_body(body)

    async def write_message(self, message: JSONObject) -> None:
        if self._closed:
            raise TransportClosed("Transport is closed")
        data = encode_message(message)
        async with self._write_lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (OSError, RuntimeError) as exc:
                raise TransportClosed(f"Write failed: {exc}") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.close()
        except OSError as exc:
            logger.debug("transport close failed: {}", exc)


class FileWriter:
    """Adapts a blocking binary file (stdout) to the writer protocol."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    def write(self, data: bytes) -> None:
        self._stream.write(data)

    async def drain(self) -> None:
        self._stream.flush()

    def close(self) -> None:
        self._stream.flush()


def _pump_stream(
    stream: BinaryIO, reader: asyncio.StreamReader, loop: asyncio.AbstractEventLoop
) -> None:
    read = getattr(stream, "read1", stream.read)
    try:
        while True:
            chunk = read(_READ_CHUNK)
            if not chunk:
                break
            loop.call_soon_threadsafe(reader.feed_data, chunk)
    except (OSError, ValueError) as exc:
        logger.debug("stdin pump stopped: {}", exc)
    except RuntimeError:
        # Event loop closed while the pump was blocked in read().
        return
    if not loop.is_closed():
        loop.call_soon_threadsafe(reader.feed_eof)


def open_stdio_transport(
    stdin: BinaryIO | None = None, stdout: BinaryIO | None = None
) -> StreamTransport:
    """Build a transport on the process's stdio; must run inside the event loop."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=_MAX_HEADER_BYTES * 4)
    source = stdin if stdin is not None else sys.stdin.buffer
    threading.Thread(
        target=_pump_stream,
        args=(source, reader, loop),
        name="lsfront-stdin",
        daemon=True,
    ).start()
    sink = stdout if stdout is not None else sys.stdout.buffer
    return StreamTransport(reader, FileWriter(sink))
