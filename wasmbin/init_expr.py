"""Reading and evaluating constant initializer expressions."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Optional, Union

from wasmbin import leb128
from wasmbin.binary import WasmError, read_byte, read_u32, read_u64
from wasmbin.types import ValueType

I32_CONST = 0x41
I64_CONST = 0x42
F32_CONST = 0x43
F64_CONST = 0x44
GET_GLOBAL = 0x23
END = 0x0B

_MASK64 = (1 << 64) - 1


class InvalidInitExprOpError(WasmError):
    """An opcode that may not appear in an initializer expression."""

    def __init__(self, opcode: int) -> None:
        super().__init__(
            f"wasm: Invalid opcode in initializer expression: {opcode:#x}"
        )
        self.opcode = opcode


class InvalidGlobalIndexError(WasmError):
    """An index outside the global index space."""

    def __init__(self, index: int) -> None:
        super().__init__(f"wasm: Invalid index to global index space: {index:#x}")
        self.index = index


class EmptyInitExprError(WasmError):
    """An initializer expression that holds no instructions."""

    def __init__(self) -> None:
        super().__init__("wasm: Initializer expression produces no value")


@dataclass(frozen=True)
class InitValue:
    """The typed result of an initializer expression."""

    type: ValueType
    value: Union[int, float]


class _Recorder:
    """Reader wrapper that keeps a copy of every byte read."""

    def __init__(self, reader: BinaryIO) -> None:
        self._reader = reader
        self.data = bytearray()

    def read(self, size: int = -1) -> bytes:
        chunk = self._reader.read(size)
        self.data += chunk
        return chunk


def read_init_expr(reader: BinaryIO) -> bytes:
    """Read the raw bytes of an initializer expression, up to and including ``end``."""
    recorder = _Recorder(reader)
    while True:
        opcode = read_byte(recorder)
        if opcode == I32_CONST:
            leb128.read_var_int32(recorder)
        elif opcode == I64_CONST:
            leb128.read_var_int64(recorder)
        elif opcode == F32_CONST:
            read_u32(recorder)
        elif opcode == F64_CONST:
            read_u64(recorder)
        elif opcode == GET_GLOBAL:
            leb128.read_var_uint32(recorder)
        elif opcode == END:
            break
        else:
            raise InvalidInitExprOpError(opcode)
    if not recorder.data:
        raise EmptyInitExprError()
    return bytes(recorder.data)


def _signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    return value - (1 << bits) if value >= 1 << (bits - 1) else value


def exec_init_expr(
    expr: bytes, get_global: Callable[[int], Optional[Any]]
) -> Optional[InitValue]:
    """Evaluate an initializer expression.

    ``get_global`` maps a global index to its entry (with ``type.type``) or
    None. Returns None when the expression pushes no value.
    """
    if not expr:
        raise EmptyInitExprError()
    reader = io.BytesIO(bytes(expr))
    stack: list[int] = []
    last_type: Any = None
    while True:
        data = reader.read(1)
        if not data:
            break
        opcode = data[0]
        if opcode == I32_CONST:
            stack.append(leb128.read_var_int32(reader) & _MASK64)
            last_type = ValueType.I32
        elif opcode == I64_CONST:
            stack.append(leb128.read_var_int64(reader) & _MASK64)
            last_type = ValueType.I64
        elif opcode == F32_CONST:
            stack.append(read_u32(reader))
            last_type = ValueType.F32
        elif opcode == F64_CONST:
            stack.append(read_u64(reader))
            last_type = ValueType.F64
        elif opcode == GET_GLOBAL:
            index = leb128.read_var_uint32(reader)
            entry = get_global(index)
            if entry is None:
                raise InvalidGlobalIndexError(index)
            last_type = entry.type.type
        elif opcode == END:
            continue
        else:
            raise InvalidInitExprOpError(opcode)

    if not stack:
        return None

    bits = stack[-1]
    if last_type == ValueType.I32:
        return InitValue(ValueType.I32, _signed(bits, 32))
    if last_type == ValueType.I64:
        return InitValue(ValueType.I64, _signed(bits, 64))
    if last_type == ValueType.F32:
        value = struct.unpack("<f", struct.pack("<I", bits & 0xFFFFFFFF))[0]
        return InitValue(ValueType.F32, value)
    if last_type == ValueType.F64:
        value = struct.unpack("<d", struct.pack("<Q", bits))[0]
        return InitValue(ValueType.F64, value)
    raise WasmError(
        "Invalid value type produced by initializer expression: "
        f"{_signed(int(last_type), 8)}"
    )