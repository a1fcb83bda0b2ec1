"""Low-level helpers for reading and writing the WebAssembly binary format."""

from __future__ import annotations

import struct
from typing import BinaryIO

from wasmbin import leb128

MAX_INITIAL_CAPACITY = 10 * 1024


class WasmError(Exception):
    """Base class for errors in a WebAssembly module's encoding or contents."""


def initial_capacity(count: int) -> int:
    """Clamp a declared element count to a safe preallocation size."""
    return min(count, MAX_INITIAL_CAPACITY)


def _read_exact(reader: BinaryIO, n: int) -> bytes:
    chunks = []
    remaining = n
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_bytes(reader: BinaryIO, n: int) -> bytes:
    """Read exactly ``n`` bytes."""
    if n == 0:
        return b""
    data = _read_exact(reader, n)
    if len(data) != n:
        raise EOFError("unexpected EOF")
    return data


def read_byte(reader: BinaryIO) -> int:
    """Read a single byte."""
    data = reader.read(1)
    if not data:
        raise EOFError("end of input")
    return data[0]


def write_byte(writer: BinaryIO, value: int) -> None:
    """Write a single byte."""
    writer.write(bytes([value & 0xFF]))


def read_bytes_uint(reader: BinaryIO) -> bytes:
    """Read a byte vector prefixed by its LEB128 length."""
    return read_bytes(reader, leb128.read_var_uint32(reader))


def read_utf8_string(reader: BinaryIO, n: int) -> str:
    """Read ``n`` bytes and decode them as UTF-8."""
    data = read_bytes(reader, n)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise WasmError("wasm: invalid utf-8 string") from exc


def read_utf8_string_uint(reader: BinaryIO) -> str:
    """Read a UTF-8 string prefixed by its LEB128 length."""
    return read_utf8_string(reader, leb128.read_var_uint32(reader))


def _read_fixed(reader: BinaryIO, size: int) -> bytes:
    data = _read_exact(reader, size)
    if not data:
        raise EOFError("end of input")
    if len(data) != size:
        raise EOFError("unexpected EOF")
    return data


def read_u32(reader: BinaryIO) -> int:
    """Read a little-endian unsigned 32-bit integer."""
    return struct.unpack("<I", _read_fixed(reader, 4))[0]


def read_u64(reader: BinaryIO) -> int:
    """Read a little-endian unsigned 64-bit integer."""
    return struct.unpack("<Q", _read_fixed(reader, 8))[0]


def write_u32(writer: BinaryIO, value: int) -> None:
    """Write a little-endian unsigned 32-bit integer."""
    writer.write(struct.pack("<I", value & 0xFFFFFFFF))


def write_u64(writer: BinaryIO, value: int) -> None:
    """Write a little-endian unsigned 64-bit integer."""
    writer.write(struct.pack("<Q", value & 0xFFFFFFFFFFFFFFFF))


def write_bytes_uint(writer: BinaryIO, data: bytes) -> None:
    """Write a byte vector prefixed by its LEB128 length."""
    leb128.write_var_uint32(writer, len(data))
    writer.write(bytes(data))


def write_string_uint(writer: BinaryIO, text: str) -> None:
    """Write a UTF-8 string prefixed by its LEB128 length."""
    write_bytes_uint(writer, text.encode("utf-8"))