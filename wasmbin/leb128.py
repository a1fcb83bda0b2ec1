"""Little Endian Base 128 (LEB128) integer encoding as used by WebAssembly."""

from __future__ import annotations

from typing import BinaryIO

_MASK64 = (1 << 64) - 1


class LEB128Error(ValueError):
    """Raised when an encoded integer is malformed or does not fit its size."""


def _next_byte(reader: BinaryIO) -> int:
    data = reader.read(1)
    if not data:
        raise EOFError("leb128: unexpected end of input")
    return data[0]


def _to_int64(value: int) -> int:
    value &= _MASK64
    return value - (1 << 64) if value >= 1 << 63 else value


def _check_size(n: int) -> None:
    if n > 64:
        raise ValueError("leb128: n must <= 64")
    if n < 1:
        raise ValueError("leb128: n must be >= 1")


def read_var_uint(reader: BinaryIO, n: int) -> int:
    """Read an unsigned integer of at most ``n`` bits."""
    _check_size(n)
    result = 0
    shift = 0
    while True:
        b = _next_byte(reader)
        if b < 0x80 and b < (1 << n):
            return result + (b << shift)
        if b >= 0x80 and n > 7:
            result += (b - 0x80) << shift
            shift += 7
            n -= 7
            continue
        raise LEB128Error("leb128: invalid uint")


def read_var_int(reader: BinaryIO, n: int) -> int:
    """Read a signed integer of at most ``n`` bits."""
    _check_size(n)
    result = 0
    shift = 0
    while True:
        b = _next_byte(reader)
        if b < 0x40 and b < (1 << (n - 1)):
            return _to_int64(result + (b << shift))
        if 0x40 <= b < 0x80 and b + (1 << (n - 1)) >= 0x80:
            return _to_int64(result + ((b - 0x80) << shift))
        if b >= 0x80 and n > 7:
            result += (b - 0x80) << shift
            shift += 7
            n -= 7
            continue
        raise LEB128Error("leb128: invalid int")


def read_var_uint32(reader: BinaryIO) -> int:
    """Read an unsigned 32-bit integer."""
    return read_var_uint(reader, 32)


def read_var_int32(reader: BinaryIO) -> int:
    """Read a signed 32-bit integer."""
    return read_var_int(reader, 32)


def read_var_int64(reader: BinaryIO) -> int:
    """Read a signed 64-bit integer."""
    return read_var_int(reader, 64)


def append_uleb128(buf: bytearray, value: int) -> bytearray:
    """Append ``value`` to ``buf`` as unsigned LEB128 and return ``buf``."""
    value &= _MASK64
    while True:
        c = value & 0x7F
        value >>= 7
        if value:
            c |= 0x80
        buf.append(c)
        if not c & 0x80:
            return buf


def append_sleb128(buf: bytearray, value: int) -> bytearray:
    """Append ``value`` to ``buf`` as signed LEB128 and return ``buf``."""
    value = _to_int64(value)
    while True:
        c = value & 0x7F
        sign = value & 0x40
        value >>= 7
        if (value != -1 or sign == 0) and (value != 0 or sign != 0):
            c |= 0x80
        buf.append(c)
        if not c & 0x80:
            return buf


def write_var_uint32(writer: BinaryIO, value: int) -> int:
    """Write an unsigned 32-bit integer; return the number of bytes written."""
    data = bytes(append_uleb128(bytearray(), value & 0xFFFFFFFF))
    writer.write(data)
    return len(data)


def write_var_int64(writer: BinaryIO, value: int) -> int:
    """Write a signed 64-bit integer; return the number of bytes written."""
    data = bytes(append_sleb128(bytearray(), value))
    writer.write(data)
    return len(data)