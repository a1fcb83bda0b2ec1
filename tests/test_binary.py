import io

import pytest

from wasmbin.binary import (
    WasmError,
    initial_capacity,
    read_byte,
    read_bytes,
    read_bytes_uint,
    read_u32,
    read_u64,
    read_utf8_string,
    read_utf8_string_uint,
    write_byte,
    write_bytes_uint,
    write_string_uint,
    write_u32,
    write_u64,
)


def test_write_u32_magic():
    out = io.BytesIO()
    write_u32(out, 0x6D736100)
    assert out.getvalue() == b"\x00asm"


def test_read_u32_magic():
    assert read_u32(io.BytesIO(b"\x00asm")) == 0x6D736100


@pytest.mark.parametrize("value", [0, 1, 0xFFFFFFFF, 0x12345678])
def test_u32_round_trip(value):
    out = io.BytesIO()
    write_u32(out, value)
    assert read_u32(io.BytesIO(out.getvalue())) == value


@pytest.mark.parametrize("value", [0, 1, 0xFFFFFFFFFFFFFFFF, 0x0123456789ABCDEF])
def test_u64_round_trip(value):
    out = io.BytesIO()
    write_u64(out, value)
    assert read_u64(io.BytesIO(out.getvalue())) == value


def test_read_u32_empty_and_partial():
    with pytest.raises(EOFError):
        read_u32(io.BytesIO(b""))
    with pytest.raises(EOFError):
        read_u32(io.BytesIO(b"\x01\x02"))


def test_read_u64_partial():
    with pytest.raises(EOFError):
        read_u64(io.BytesIO(b"\x01\x02\x03"))


def test_read_bytes_exact_and_short():
    reader = io.BytesIO(b"abcdef")
    assert read_bytes(reader, 4) == b"abcd"
    with pytest.raises(EOFError):
        read_bytes(reader, 4)


def test_read_bytes_zero_reads_nothing():
    reader = io.BytesIO(b"abc")
    assert read_bytes(reader, 0) == b""
    assert reader.tell() == 0


def test_read_and_write_byte():
    out = io.BytesIO()
    write_byte(out, 0x7F)
    reader = io.BytesIO(out.getvalue())
    assert read_byte(reader) == 0x7F
    with pytest.raises(EOFError):
        read_byte(reader)


def test_bytes_uint_round_trip():
    out = io.BytesIO()
    write_bytes_uint(out, b"abc")
    assert out.getvalue() == bytes([3]) + b"abc"
    assert read_bytes_uint(io.BytesIO(out.getvalue())) == b"abc"


def test_string_uint_round_trip():
    out = io.BytesIO()
    write_string_uint(out, "héllo")
    assert read_utf8_string_uint(io.BytesIO(out.getvalue())) == "héllo"


def test_read_utf8_string_invalid():
    with pytest.raises(WasmError, match="invalid utf-8"):
        read_utf8_string(io.BytesIO(b"\xff\xfe"), 2)


def test_read_utf8_string_plain():
    assert read_utf8_string(io.BytesIO(b"name!"), 4) == "name"


def test_initial_capacity_clamps():
    assert initial_capacity(5) == 5
    assert initial_capacity(10 * 1024) == 10 * 1024
    assert initial_capacity(10 * 1024 + 1) == 10 * 1024