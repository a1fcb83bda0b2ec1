"""The custom ``name`` section holding debug names of modules, functions and locals."""

from __future__ import annotations

import enum
import io
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Union

from wasmbin import leb128
from wasmbin.binary import (
    WasmError,
    read_bytes_uint,
    read_utf8_string_uint,
    write_bytes_uint,
    write_string_uint,
)

CUSTOM_SECTION_NAME = "name"


class NameType(enum.IntEnum):
    """The kind of a name subsection."""

    MODULE = 0
    FUNCTION = 1
    LOCAL = 2


class NameMap(dict):
    """Maps entry indices to names."""

    @classmethod
    def read(cls, reader: BinaryIO) -> "NameMap":
        names = cls()
        for _ in range(leb128.read_var_uint32(reader)):
            index = leb128.read_var_uint32(reader)
            names[index] = read_utf8_string_uint(reader)
        return names

    def write(self, writer: BinaryIO) -> None:
        leb128.write_var_uint32(writer, len(self))
        for index in sorted(self):
            leb128.write_var_uint32(writer, index)
            write_string_uint(writer, self[index])


@dataclass
class ModuleName:
    """The name of a module."""

    name: str = ""

    @classmethod
    def read(cls, reader: BinaryIO) -> "ModuleName":
        return cls(read_utf8_string_uint(reader))

    def write(self, writer: BinaryIO) -> None:
        write_string_uint(writer, self.name)


@dataclass
class FunctionNames:
    """Names of functions."""

    names: NameMap = field(default_factory=NameMap)

    @classmethod
    def read(cls, reader: BinaryIO) -> "FunctionNames":
        return cls(NameMap.read(reader))

    def write(self, writer: BinaryIO) -> None:
        NameMap(self.names).write(writer)


@dataclass
class LocalNames:
    """Names of local variables, keyed by function index."""

    funcs: dict = field(default_factory=dict)

    @classmethod
    def read(cls, reader: BinaryIO) -> "LocalNames":
        funcs = {}
        for _ in range(leb128.read_var_uint32(reader)):
            index = leb128.read_var_uint32(reader)
            funcs[index] = NameMap.read(reader)
        return cls(funcs)

    def write(self, writer: BinaryIO) -> None:
        leb128.write_var_uint32(writer, len(self.funcs))
        for index in sorted(self.funcs):
            leb128.write_var_uint32(writer, index)
            NameMap(self.funcs[index]).write(writer)


NameSubsection = Union[ModuleName, FunctionNames, LocalNames]

_SUBSECTIONS = {
    NameType.MODULE: ModuleName,
    NameType.FUNCTION: FunctionNames,
    NameType.LOCAL: LocalNames,
}


@dataclass
class NameSection:
    """The raw subsections of a name section, keyed by subsection type."""

    types: dict = field(default_factory=dict)

    @classmethod
    def read(cls, reader: BinaryIO) -> "NameSection":
        types = {}
        while True:
            try:
                name_type = leb128.read_var_uint32(reader)
            except EOFError:
                return cls(types)
            types[name_type] = read_bytes_uint(reader)

    def write(self, writer: BinaryIO) -> None:
        for name_type in sorted(self.types):
            leb128.write_var_uint32(writer, int(name_type))
            write_bytes_uint(writer, self.types[name_type])

    def decode(self, name_type: int) -> Optional[NameSubsection]:
        """Decode one subsection; None if the section does not hold it."""
        try:
            sub_cls = _SUBSECTIONS[NameType(name_type)]
        except ValueError:
            raise WasmError(
                f"unsupported name subsection: {int(name_type):x}"
            ) from None
        data = self.types.get(int(name_type))
        if data is None:
            return None
        return sub_cls.read(io.BytesIO(data))