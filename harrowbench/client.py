"""Minimal keep-alive HTTP/1.1 client and concurrent load helpers."""

from __future__ import annotations

import asyncio
import contextlib
import re
import socket
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

_HEADER_TERMINATOR = b"\r\n\r\n"
_CHUNKED_TERMINATOR = b"0\r\n\r\n"
_READ_SIZE = 1024
_DECIMAL = re.compile(r"\+?[0-9]+")
_HEX = re.compile(r"\+?[0-9A-Fa-f]+")
_U16_MAX = 0xFFFF


class BodyKind(Enum):
    """How the length of a response body is determined."""

    CONTENT_LENGTH = "content-length"
    CHUNKED = "chunked"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class BodyLength:
    """Body framing of a response; ``length`` is set for CONTENT_LENGTH only."""

    kind: BodyKind
    length: int = 0


def find_header_end(buf: bytes) -> int | None:
    """Return the offset of the first body byte, or None if headers are incomplete."""
    pos = buf.find(_HEADER_TERMINATOR)
    return None if pos < 0 else pos + len(_HEADER_TERMINATOR)


def _lines(text: str) -> Iterable[str]:
    if not text:
        return
    parts = text.split("\n")
    if parts and parts[-1] == "":
        parts.pop()
    for part in parts:
        yield part[:-1] if part.endswith("\r") else part


def parse_status(headers: str) -> int:
    """Extract the status code from the status line; 0 if it cannot be parsed."""
    first = next(iter(_lines(headers)), None)
    if first is None:
        return 0
    fields = first.split()
    if len(fields) < 2 or not _DECIMAL.fullmatch(fields[1]):
        return 0
    value = int(fields[1])
    return value if value <= _U16_MAX else 0


def parse_body_length(headers: str) -> BodyLength:
    """Determine how the response body is framed from its header block."""
    for line in _lines(headers):
        lower = line.lower()
        if lower.startswith("content-length:"):
            value = lower[len("content-length:"):].strip()
            if _DECIMAL.fullmatch(value):
                return BodyLength(BodyKind.CONTENT_LENGTH, int(value))
        if lower.startswith("transfer-encoding:") and "chunked" in lower:
            return BodyLength(BodyKind.CHUNKED)
    return BodyLength(BodyKind.UNKNOWN)


def decode_chunked_len(raw: bytes) -> int:
    """Sum the chunk sizes of a chunked body, stopping at the last chunk."""
    try:
        raw.decode("utf-8")
    except UnicodeDecodeError:
        return 0
    total = 0
    remaining = raw
    while True:
        size_field, sep, rest = remaining.partition(b"\r\n")
        if not sep:
            break
        size_text = size_field.decode("utf-8").strip()
        size = int(size_text, 16) if _HEX.fullmatch(size_text) else 0
        if size == 0:
            break
        total += size
        if len(rest) < size + 2:
            break
        remaining = rest[size + 2:]
    return total


def _tail_has_last_chunk(tail: bytes) -> bool:
    try:
        tail.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return _CHUNKED_TERMINATOR in tail


class BenchClient:
    """A keep-alive HTTP/1.1 client that reuses one TCP connection."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._buf = bytearray()

    @classmethod
    async def connect(cls, host: str, port: int) -> BenchClient:
        """Open a connection with TCP_NODELAY and an abortive close on shutdown."""
        reader, writer = await asyncio.open_connection(host, port)
        sock = writer.get_extra_info("socket")
        if sock is not None:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            # Reset on close instead of the FIN handshake to avoid TIME_WAIT buildup.
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
        return cls(reader, writer)

    async def __aenter__(self) -> BenchClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def get(self, path: str) -> tuple[int, int]:
        """Send a GET request and return (status, body length)."""
        return await self.get_with_headers(path, ())

    async def get_with_headers(
        self, path: str, headers: Iterable[tuple[str, str]]
    ) -> tuple[int, int]:
        """Send a GET request with extra headers and return (status, body length)."""
        lines = [f"GET {path} HTTP/1.1\r\n", "Host: localhost\r\n", "Connection: keep-alive\r\n"]
        lines.extend(f"{name}: {value}\r\n" for name, value in headers)
        lines.append("\r\n")
        self._writer.write("".join(lines).encode())
        await self._writer.drain()

        self._buf.clear()
        header_end = await self._read_until_header_end()
        head = bytes(self._buf[:header_end]).decode("utf-8")
        status = parse_status(head)
        body = parse_body_length(head)

        if body.kind is BodyKind.CONTENT_LENGTH:
            already_read = len(self._buf) - header_end
            if already_read < body.length:
                self._buf += await self._reader.readexactly(body.length - already_read)
            return status, body.length
        if body.kind is BodyKind.CHUNKED:
            while not _tail_has_last_chunk(bytes(self._buf[header_end:])):
                data = await self._reader.read(_READ_SIZE)
                if not data:
                    break
                self._buf += data
            return status, decode_chunked_len(bytes(self._buf[header_end:]))
        return status, 0

    async def close(self) -> None:
        """Close the connection."""
        self._writer.close()
        with contextlib.suppress(ConnectionError, OSError):
            await self._writer.wait_closed()

    async def _read_until_header_end(self) -> int:
        while True:
            data = await self._reader.read(_READ_SIZE)
            self._buf += data
            end = find_header_end(bytes(self._buf))
            if end is not None:
                return end
            if not data:
                return len(self._buf)


async def _drive(
    host: str,
    port: int,
    paths: Sequence[str],
    offset: int,
    reqs_per_conn: int,
    headers: Sequence[tuple[str, str]],
) -> list[tuple[int, int]]:
    async with await BenchClient.connect(host, port) as client:
        return [
            await client.get_with_headers(paths[(offset + i) % len(paths)], headers)
            for i in range(reqs_per_conn)
        ]


async def _run(
    host: str,
    port: int,
    paths: Sequence[str],
    headers: Sequence[tuple[str, str]],
    concurrency: int,
    reqs_per_conn: int,
    rotate: bool,
) -> list[list[tuple[int, int]]]:
    if not paths and reqs_per_conn > 0:
        raise ValueError("at least one path is required")
    async with asyncio.TaskGroup() as group:
        tasks = [
            group.create_task(
                _drive(host, port, paths, conn_id if rotate else 0, reqs_per_conn, headers)
            )
            for conn_id in range(concurrency)
        ]
    return [task.result() for task in tasks]


async def run_concurrent(
    host: str, port: int, path: str, concurrency: int, reqs_per_conn: int
) -> list[list[tuple[int, int]]]:
    """Run keep-alive connections in parallel, each sending reqs_per_conn GETs.

    Returns the (status, body length) results of each connection in order.
    """
    return await _run(host, port, [path], (), concurrency, reqs_per_conn, rotate=False)


async def run_concurrent_mixed(
    host: str, port: int, paths: Sequence[str], concurrency: int, reqs_per_conn: int
) -> list[list[tuple[int, int]]]:
    """Like run_concurrent, but connection n cycles through paths starting at index n."""
    return await _run(host, port, list(paths), (), concurrency, reqs_per_conn, rotate=True)


async def run_concurrent_with_headers(
    host: str,
    port: int,
    path: str,
    headers: Iterable[tuple[str, str]],
    concurrency: int,
    reqs_per_conn: int,
) -> list[list[tuple[int, int]]]:
    """Like run_concurrent, sending the given extra headers on every request."""
    return await _run(
        host, port, [path], list(headers), concurrency, reqs_per_conn, rotate=False
    )