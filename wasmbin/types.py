"""Core WebAssembly value, table, memory and signature types."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import BinaryIO, Union

from wasmbin import leb128
from wasmbin.binary import WasmError, read_byte, read_bytes, write_byte

TYPE_FUNC = 0x60
BLOCK_TYPE_EMPTY = 0x40


class ValueType(enum.IntEnum):
    """The type of a WebAssembly value."""

    I32 = 0x7F
    I64 = 0x7E
    F32 = 0x7D
    F64 = 0x7C

    def __str__(self) -> str:
        return self.name.lower()

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


def _int8(value: int) -> int:
    value &= 0xFF
    return value - 0x100 if value >= 0x80 else value


def value_type_name(value: int) -> str:
    """Name of a value type, including unknown codes."""
    try:
        return str(ValueType(value))
    except ValueError:
        return f"<unknown value_type {_int8(value)}>"


def _as_value_type(value: int) -> Union[ValueType, int]:
    try:
        return ValueType(value)
    except ValueError:
        return value


def read_value_type(reader: BinaryIO) -> Union[ValueType, int]:
    """Read a value type byte; unknown codes are returned as plain ints."""
    return _as_value_type(read_byte(reader))


def write_value_type(writer: BinaryIO, value: int) -> None:
    """Write a value type byte."""
    write_byte(writer, int(value))


def block_type_name(value: int) -> str:
    """Name of a block signature type."""
    if value == BLOCK_TYPE_EMPTY:
        return "<empty block>"
    return value_type_name(value)


class ElemType(enum.IntEnum):
    """The type of a table's elements."""

    ANY_FUNC = 0x70

    def __str__(self) -> str:
        return "anyfunc"

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


def read_elem_type(reader: BinaryIO) -> ElemType:
    """Read a table element type; only anyfunc is supported."""
    b = read_byte(reader)
    if b != ElemType.ANY_FUNC:
        raise WasmError(f"wasm: unsupported elem type:{b}")
    return ElemType(b)


class External(enum.IntEnum):
    """The kind of an imported or exported entry."""

    FUNCTION = 0
    TABLE = 1
    MEMORY = 2
    GLOBAL = 3

    def __str__(self) -> str:
        return self.name.lower()

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


def external_name(value: int) -> str:
    """Name of an external kind, including unknown codes."""
    try:
        return str(External(value))
    except ValueError:
        return "<unknown external_kind>"


def read_external(reader: BinaryIO) -> Union[External, int]:
    """Read an external kind byte; unknown codes are returned as plain ints."""
    b = read_bytes(reader, 1)[0]
    try:
        return External(b)
    except ValueError:
        return b


def write_external(writer: BinaryIO, value: int) -> None:
    """Write an external kind byte."""
    write_byte(writer, int(value))


class InvalidTypeConstructorError(WasmError):
    """A type constructor other than the expected one was found."""

    def __init__(self, wanted: int, got: int) -> None:
        super().__init__(f"wasm: invalid type constructor: wanted {wanted}, got {got}")
        self.wanted = wanted
        self.got = got


def _read_value_types(reader: BinaryIO) -> list:
    count = leb128.read_var_uint32(reader)
    return [read_value_type(reader) for _ in range(count)]


def _write_value_types(writer: BinaryIO, types: list) -> None:
    leb128.write_var_uint32(writer, len(types))
    for value in types:
        write_value_type(writer, value)


@dataclass
class FunctionSig:
    """The signature of a function."""

    form: int = TYPE_FUNC
    param_types: list = field(default_factory=list)
    return_types: list = field(default_factory=list)

    @classmethod
    def read(cls, reader: BinaryIO) -> "FunctionSig":
        form = read_byte(reader)
        if form != TYPE_FUNC:
            raise WasmError(f"wasm: unknown function form: {form:x}")
        params = _read_value_types(reader)
        returns = _read_value_types(reader)
        return cls(form=form, param_types=params, return_types=returns)

    def write(self, writer: BinaryIO) -> None:
        write_byte(writer, self.form)
        _write_value_types(writer, self.param_types)
        _write_value_types(writer, self.return_types)

    def __str__(self) -> str:
        params = " ".join(value_type_name(t) for t in self.param_types)
        returns = " ".join(value_type_name(t) for t in self.return_types)
        return f"<func [{params}] -> [{returns}]>"


@dataclass
class GlobalVar:
    """The type and mutability of a global variable."""

    type: int = ValueType.I32
    mutable: bool = False

    @classmethod
    def read(cls, reader: BinaryIO) -> "GlobalVar":
        value_type = read_value_type(reader)
        flag = read_byte(reader)
        if flag not in (0x00, 0x01):
            raise WasmError("wasm: invalid global mutable flag")
        return cls(type=value_type, mutable=flag == 0x01)

    def write(self, writer: BinaryIO) -> None:
        write_value_type(writer, self.type)
        write_byte(writer, 1 if self.mutable else 0)


@dataclass
class ResizableLimits:
    """The limits of a table or linear memory."""

    flags: int = 0
    initial: int = 0
    maximum: int = 0

    @classmethod
    def read(cls, reader: BinaryIO) -> "ResizableLimits":
        flags = read_byte(reader)
        if flags not in (0, 1):
            raise WasmError("wasm: invalid limit flag")
        initial = leb128.read_var_uint32(reader)
        maximum = leb128.read_var_uint32(reader) if flags & 0x1 else 0
        return cls(flags=flags, initial=initial, maximum=maximum)

    def write(self, writer: BinaryIO) -> None:
        if self.flags not in (0, 1):
            raise WasmError("wasm: invalid limit flag")
        write_byte(writer, self.flags)
        leb128.write_var_uint32(writer, self.initial)
        if self.flags & 0x1:
            leb128.write_var_uint32(writer, self.maximum)


@dataclass
class Table:
    """A table declaration."""

    element_type: ElemType = ElemType.ANY_FUNC
    limits: ResizableLimits = field(default_factory=ResizableLimits)

    @classmethod
    def read(cls, reader: BinaryIO) -> "Table":
        element_type = read_elem_type(reader)
        limits = ResizableLimits.read(reader)
        return cls(element_type=element_type, limits=limits)

    def write(self, writer: BinaryIO) -> None:
        write_byte(writer, int(self.element_type))
        self.limits.write(writer)


@dataclass
class Memory:
    """A linear memory declaration."""

    limits: ResizableLimits = field(default_factory=ResizableLimits)

    @classmethod
    def read(cls, reader: BinaryIO) -> "Memory":
        return cls(limits=ResizableLimits.read(reader))

    def write(self, writer: BinaryIO) -> None:
        self.limits.write(writer)