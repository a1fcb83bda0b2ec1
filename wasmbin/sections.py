"""The sections of a WebAssembly module and the entries they hold."""

from __future__ import annotations

import abc
import enum
import io
from dataclasses import dataclass, field
from typing import Any, BinaryIO, ClassVar, Optional

from wasmbin import leb128
from wasmbin.binary import (
    WasmError,
    read_bytes,
    read_bytes_uint,
    read_utf8_string_uint,
    write_bytes_uint,
    write_string_uint,
)
from wasmbin.imports import ImportEntry
from wasmbin.init_expr import END, read_init_expr
from wasmbin.types import (
    FunctionSig,
    GlobalVar,
    Memory,
    Table,
    ValueType,
    read_external,
    read_value_type,
    write_external,
    write_value_type,
)


class SectionID(enum.IntEnum):
    """The one-byte code identifying a section."""

    CUSTOM = 0
    TYPE = 1
    IMPORT = 2
    FUNCTION = 3
    TABLE = 4
    MEMORY = 5
    GLOBAL = 6
    EXPORT = 7
    START = 8
    ELEMENT = 9
    CODE = 10
    DATA = 11

    def __str__(self) -> str:
        return self.name.lower()

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


def _section_name(section_id: int) -> str:
    try:
        return str(SectionID(section_id))
    except ValueError:
        return "unknown"


class InvalidSectionIDError(WasmError):
    """A section ID that names no known section."""

    def __init__(self, section_id: int) -> None:
        super().__init__(f"wasm: invalid section ID {int(section_id)}")
        self.section_id = section_id


class InvalidCodeIndexError(WasmError):
    """An index outside the code section."""

    def __init__(self, index: int) -> None:
        super().__init__(f"wasm: invalid index to code section: {index}")
        self.index = index


class MissingSectionError(WasmError):
    """A section required by another one is absent."""

    def __init__(self, section_id: int) -> None:
        super().__init__(f"wasm: missing section {_section_name(section_id)}")
        self.section_id = section_id


class UnsupportedSectionError(WasmError):
    """A section that cannot be handled."""

    def __init__(self) -> None:
        super().__init__("wasm: unsupported section")


class DuplicateExportError(WasmError):
    """Two exports share the same name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Duplicate export entry: {name}")
        self.name = name


class FunctionNoEndError(WasmError):
    """A function body that does not end with the ``end`` opcode."""

    def __init__(self) -> None:
        super().__init__("Function body does not end with 0x0b (end)")


@dataclass
class RawSection:
    """Where a section lay in the module, and its raw payload bytes."""

    start: int = 0
    end: int = 0
    id: int = 0
    payload: bytes = b""


@dataclass
class Section(abc.ABC):
    """A section of a module."""

    section_id: ClassVar[SectionID]
    raw: RawSection = field(default_factory=RawSection, compare=False, repr=False)

    @abc.abstractmethod
    def read_payload(self, reader: BinaryIO) -> None:
        """Read the section payload; ``reader`` is limited to the payload."""

    @abc.abstractmethod
    def write_payload(self, writer: BinaryIO) -> None:
        """Write the section payload, without its size."""


def _read_vector(reader: BinaryIO, read_item) -> list:
    return [read_item(reader) for _ in range(leb128.read_var_uint32(reader))]


def _write_vector(writer: BinaryIO, items) -> None:
    items = list(items)
    leb128.write_var_uint32(writer, len(items))
    for item in items:
        item.write(writer)


@dataclass
class SectionCustom(Section):
    """A named section holding arbitrary data."""

    section_id: ClassVar[SectionID] = SectionID.CUSTOM
    name: str = ""
    data: bytes = b""

    def read_payload(self, reader: BinaryIO) -> None:
        self.name = read_utf8_string_uint(reader)
        self.data = reader.read()

    def write_payload(self, writer: BinaryIO) -> None:
        write_string_uint(writer, self.name)
        writer.write(bytes(self.data))


@dataclass
class SectionTypes(Section):
    """All function signatures used in a module."""

    section_id: ClassVar[SectionID] = SectionID.TYPE
    entries: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.entries = _read_vector(reader, FunctionSig.read)

    def write_payload(self, writer: BinaryIO) -> None:
        _write_vector(writer, self.entries)


@dataclass
class SectionImports(Section):
    """All imports of a module."""

    section_id: ClassVar[SectionID] = SectionID.IMPORT
    entries: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.entries = _read_vector(reader, ImportEntry.read)

    def write_payload(self, writer: BinaryIO) -> None:
        _write_vector(writer, self.entries)


@dataclass
class SectionFunctions(Section):
    """Signature indices of the functions defined in the module."""

    section_id: ClassVar[SectionID] = SectionID.FUNCTION
    types: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.types = _read_vector(reader, leb128.read_var_uint32)

    def write_payload(self, writer: BinaryIO) -> None:
        leb128.write_var_uint32(writer, len(self.types))
        for type_index in self.types:
            leb128.write_var_uint32(writer, type_index)


@dataclass
class SectionTables(Section):
    """All tables declared by a module."""

    section_id: ClassVar[SectionID] = SectionID.TABLE
    entries: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.entries = _read_vector(reader, Table.read)

    def write_payload(self, writer: BinaryIO) -> None:
        _write_vector(writer, self.entries)


@dataclass
class SectionMemories(Section):
    """All linear memories declared by a module."""

    section_id: ClassVar[SectionID] = SectionID.MEMORY
    entries: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.entries = _read_vector(reader, Memory.read)

    def write_payload(self, writer: BinaryIO) -> None:
        _write_vector(writer, self.entries)


@dataclass
class GlobalEntry:
    """A global variable and the expression computing its initial value."""

    type: GlobalVar = field(default_factory=GlobalVar)
    init: bytes = b""

    @classmethod
    def read(cls, reader: BinaryIO) -> "GlobalEntry":
        global_type = GlobalVar.read(reader)
        return cls(type=global_type, init=read_init_expr(reader))

    def write(self, writer: BinaryIO) -> None:
        self.type.write(writer)
        writer.write(bytes(self.init))


@dataclass
class SectionGlobals(Section):
    """All global variables declared by a module."""

    section_id: ClassVar[SectionID] = SectionID.GLOBAL
    globals: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.globals = _read_vector(reader, GlobalEntry.read)

    def write_payload(self, writer: BinaryIO) -> None:
        _write_vector(writer, self.globals)


@dataclass
class ExportEntry:
    """An entry exported by a module."""

    field_str: str = ""
    kind: int = 0
    index: int = 0

    @classmethod
    def read(cls, reader: BinaryIO) -> "ExportEntry":
        name = read_utf8_string_uint(reader)
        kind = read_external(reader)
        index = leb128.read_var_uint32(reader)
        return cls(field_str=name, kind=kind, index=index)

    def write(self, writer: BinaryIO) -> None:
        write_string_uint(writer, self.field_str)
        write_external(writer, self.kind)
        leb128.write_var_uint32(writer, self.index)


@dataclass
class SectionExports(Section):
    """The exports of a module, by name, with names in declaration order."""

    section_id: ClassVar[SectionID] = SectionID.EXPORT
    entries: dict = field(default_factory=dict)
    names: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.entries = {}
        self.names = []
        for _ in range(leb128.read_var_uint32(reader)):
            entry = ExportEntry.read(reader)
            if entry.field_str in self.entries:
                raise DuplicateExportError(entry.field_str)
            self.entries[entry.field_str] = entry
            self.names.append(entry.field_str)

    def write_payload(self, writer: BinaryIO) -> None:
        ordered = sorted(self.entries.values(), key=lambda e: (e.index, e.field_str))
        _write_vector(writer, ordered)


@dataclass
class SectionStartFunction(Section):
    """The index of the start function."""

    section_id: ClassVar[SectionID] = SectionID.START
    index: int = 0

    def read_payload(self, reader: BinaryIO) -> None:
        self.index = leb128.read_var_uint32(reader)

    def write_payload(self, writer: BinaryIO) -> None:
        leb128.write_var_uint32(writer, self.index)


@dataclass
class ElementSegment:
    """Function indices placed into a table at a computed offset."""

    index: int = 0
    offset: bytes = b""
    elems: list = field(default_factory=list)

    @classmethod
    def read(cls, reader: BinaryIO) -> "ElementSegment":
        index = leb128.read_var_uint32(reader)
        offset = read_init_expr(reader)
        elems = _read_vector(reader, leb128.read_var_uint32)
        return cls(index=index, offset=offset, elems=elems)

    def write(self, writer: BinaryIO) -> None:
        leb128.write_var_uint32(writer, self.index)
        writer.write(bytes(self.offset))
        leb128.write_var_uint32(writer, len(self.elems))
        for elem in self.elems:
            leb128.write_var_uint32(writer, elem)


@dataclass
class SectionElements(Section):
    """The initial contents of tables."""

    section_id: ClassVar[SectionID] = SectionID.ELEMENT
    entries: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.entries = _read_vector(reader, ElementSegment.read)

    def write_payload(self, writer: BinaryIO) -> None:
        _write_vector(writer, self.entries)


@dataclass
class LocalEntry:
    """A run of local variables of one type."""

    count: int = 0
    type: int = ValueType.I32

    @classmethod
    def read(cls, reader: BinaryIO) -> "LocalEntry":
        count = leb128.read_var_uint32(reader)
        return cls(count=count, type=read_value_type(reader))

    def write(self, writer: BinaryIO) -> None:
        leb128.write_var_uint32(writer, self.count)
        write_value_type(writer, self.type)


@dataclass
class FunctionBody:
    """The locals and code of a function; ``code`` excludes the final ``end``."""

    module: Optional[Any] = field(default=None, compare=False, repr=False)
    locals: list = field(default_factory=list)
    code: bytes = b""

    @classmethod
    def read(cls, reader: BinaryIO) -> "FunctionBody":
        body = io.BytesIO(read_bytes(reader, leb128.read_var_uint32(reader)))
        local_entries = _read_vector(body, LocalEntry.read)
        code = body.read()
        if not code or code[-1] != END:
            raise FunctionNoEndError()
        return cls(locals=local_entries, code=code[:-1])

    def write(self, writer: BinaryIO) -> None:
        body = io.BytesIO()
        _write_vector(body, self.locals)
        body.write(bytes(self.code))
        body.write(bytes([END]))
        write_bytes_uint(writer, body.getvalue())


@dataclass
class SectionCode(Section):
    """The bodies of all functions defined in a module."""

    section_id: ClassVar[SectionID] = SectionID.CODE
    bodies: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.bodies = _read_vector(reader, FunctionBody.read)

    def write_payload(self, writer: BinaryIO) -> None:
        _write_vector(writer, self.bodies)


@dataclass
class DataSegment:
    """Bytes placed into linear memory at a computed offset."""

    index: int = 0
    offset: bytes = b""
    data: bytes = b""

    @classmethod
    def read(cls, reader: BinaryIO) -> "DataSegment":
        index = leb128.read_var_uint32(reader)
        offset = read_init_expr(reader)
        return cls(index=index, offset=offset, data=read_bytes_uint(reader))

    def write(self, writer: BinaryIO) -> None:
        leb128.write_var_uint32(writer, self.index)
        writer.write(bytes(self.offset))
        write_bytes_uint(writer, self.data)


@dataclass
class SectionData(Section):
    """The initial contents of linear memory."""

    section_id: ClassVar[SectionID] = SectionID.DATA
    entries: list = field(default_factory=list)

    def read_payload(self, reader: BinaryIO) -> None:
        self.entries = _read_vector(reader, DataSegment.read)

    def write_payload(self, writer: BinaryIO) -> None:
        _write_vector(writer, self.entries)


_SECTION_CLASSES = {
    cls.section_id: cls
    for cls in (
        SectionCustom,
        SectionTypes,
        SectionImports,
        SectionFunctions,
        SectionTables,
        SectionMemories,
        SectionGlobals,
        SectionExports,
        SectionStartFunction,
        SectionElements,
        SectionCode,
        SectionData,
    )
}


def section_for_id(section_id: int) -> Section:
    """Return a new, empty section of the kind named by ``section_id``."""
    try:
        cls = _SECTION_CLASSES[SectionID(section_id)]
    except ValueError:
        raise InvalidSectionIDError(section_id) from None
    return cls()