"""A reader wrapper that counts the bytes consumed."""

from __future__ import annotations

from typing import BinaryIO


class ReadPos:
    """Wraps a binary reader and tracks how many bytes have been read."""

    def __init__(self, reader: BinaryIO) -> None:
        self.reader = reader
        self.cur_pos = 0

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all remaining if negative)."""
        data = self.reader.read(size)
        self.cur_pos += len(data)
        return data

    def read_byte(self) -> int:
        """Read a single byte, raising EOFError at the end of input."""
        data = self.reader.read(1)
        if not data:
            raise EOFError("end of input")
        self.cur_pos += 1
        return data[0]