"""Decoding, encoding and index spaces of a WebAssembly module."""

from __future__ import annotations

import copy
import io
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Optional

from wasmbin import leb128
from wasmbin.binary import WasmError, read_u32, write_u32
from wasmbin.imports import (
    InvalidFunctionIndexError,
    InvalidLinearMemoryIndexError,
    InvalidTableIndexError,
    resolve_imports,
)
from wasmbin.init_expr import InitValue, exec_init_expr
from wasmbin.names import CUSTOM_SECTION_NAME, FunctionNames, NameSection, NameType
from wasmbin.readpos import ReadPos
from wasmbin.sections import (
    FunctionBody,
    FunctionSig,
    InvalidCodeIndexError,
    MissingSectionError,
    Section,
    SectionCode,
    SectionCustom,
    SectionData,
    SectionElements,
    SectionExports,
    SectionFunctions,
    SectionGlobals,
    SectionID,
    SectionImports,
    SectionMemories,
    SectionStartFunction,
    SectionTables,
    SectionTypes,
    section_for_id,
)
from wasmbin.types import External, GlobalVar, ValueType

MAGIC = 0x6D736100
VERSION = 0x1

_logger = logging.getLogger("wasmbin")
_logger.addHandler(logging.NullHandler())
_debug_handler: Optional[logging.Handler] = None


def set_debug_mode(debug: bool) -> None:
    """Turn debug logging of module decoding to stderr on or off."""
    global _debug_handler
    if debug:
        if _debug_handler is None:
            _debug_handler = logging.StreamHandler(sys.stderr)
            _logger.addHandler(_debug_handler)
        _logger.setLevel(logging.DEBUG)
    else:
        if _debug_handler is not None:
            _logger.removeHandler(_debug_handler)
            _debug_handler = None
        _logger.setLevel(logging.WARNING)


set_debug_mode(False)


class InvalidMagicError(WasmError):
    """The input does not start with the WebAssembly magic number."""

    def __init__(self) -> None:
        super().__init__("wasm: Invalid magic number")


class InvalidValueTypeInitExprError(WasmError):
    """An initializer expression produced a value of the wrong kind."""

    def __init__(self, wanted: str, got: str) -> None:
        super().__init__(
            f"wasm: Wanted initializer expression to return {wanted} value, got {got}"
        )
        self.wanted = wanted
        self.got = got


_KIND_NAMES = {
    ValueType.I32: "int32",
    ValueType.I64: "int64",
    ValueType.F32: "float32",
    ValueType.F64: "float64",
}

_SECTION_ATTRS = {
    SectionID.TYPE: "types",
    SectionID.IMPORT: "imports",
    SectionID.FUNCTION: "function",
    SectionID.TABLE: "table",
    SectionID.MEMORY: "memory",
    SectionID.GLOBAL: "global_section",
    SectionID.EXPORT: "export",
    SectionID.START: "start",
    SectionID.ELEMENT: "elements",
    SectionID.CODE: "code",
    SectionID.DATA: "data",
}


@dataclass
class Function:
    """An entry in the function index space."""

    sig: Optional[FunctionSig] = None
    body: Optional[FunctionBody] = None
    host: Optional[Callable[..., Any]] = None
    name: str = ""

    def is_host(self) -> bool:
        """Whether this function is provided by the host rather than by code."""
        return self.host is not None


@dataclass
class Module:
    """A WebAssembly module with its sections and index spaces."""

    version: int = 0
    sections: list = field(default_factory=list)

    types: Optional[SectionTypes] = None
    imports: Optional[SectionImports] = None
    function: Optional[SectionFunctions] = None
    table: Optional[SectionTables] = None
    memory: Optional[SectionMemories] = None
    global_section: Optional[SectionGlobals] = None
    export: Optional[SectionExports] = None
    start: Optional[SectionStartFunction] = None
    elements: Optional[SectionElements] = None
    code: Optional[SectionCode] = None
    data: Optional[SectionData] = None
    customs: list = field(default_factory=list)

    function_index_space: list = field(default_factory=list)
    global_index_space: list = field(default_factory=list)
    table_index_space: list = field(default_factory=list)
    linear_memory_index_space: list = field(default_factory=list)

    imported_funcs: list = field(default_factory=list)
    imported_globals: int = 0
    imported_tables: int = 0
    imported_memories: int = 0

    def custom(self, name: str) -> Optional[SectionCustom]:
        """Return the first custom section called ``name``, if any."""
        return next((s for s in self.customs if s.name == name), None)

    def get_function(self, index: int) -> Optional[Function]:
        """Return the function at ``index`` in the function index space, or None."""
        if 0 <= index < len(self.function_index_space):
            return self.function_index_space[index]
        return None

    def get_function_sig(self, index: int) -> FunctionSig:
        """Return the signature of the function at ``index``."""
        local_types = self.function.types if self.function is not None else []
        if self.imports is not None:
            func_index = 0
            for entry in self.imports.entries:
                if entry.type.kind == External.FUNCTION:
                    if func_index == index:
                        return self.types.entries[entry.type.type]
                    func_index += 1
            index -= func_index - len(self.imported_funcs)
        if not 0 <= index < len(local_types):
            raise WasmError("fsig out of len")
        return self.types.entries[local_types[index]]

    def get_global(self, index: int) -> Optional[Any]:
        """Return the global at ``index`` in the global index space, or None."""
        if 0 <= index < len(self.global_index_space):
            return self.global_index_space[index]
        return None

    def get_global_type(self, index: int) -> GlobalVar:
        """Return the type of the global at ``index``, counting imports first."""
        local = self.global_section.globals if self.global_section is not None else []
        if self.imports is not None:
            global_index = 0
            for entry in self.imports.entries:
                if entry.type.kind == External.GLOBAL:
                    if global_index == index:
                        return copy.copy(entry.type.type)
                    global_index += 1
            index -= global_index - self.imported_globals
        if not 0 <= index < len(local):
            raise WasmError("global index out of len")
        return local[index].type

    def get_table_element(self, index: int) -> int:
        """Return element ``index`` of the first table."""
        if not self.table_index_space or not 0 <= index < len(self.table_index_space[0]):
            raise InvalidTableIndexError(index)
        return self.table_index_space[0][index]

    def get_linear_memory_data(self, index: int) -> int:
        """Return byte ``index`` of the first linear memory."""
        if not self.linear_memory_index_space or not 0 <= index < len(
            self.linear_memory_index_space[0]
        ):
            raise InvalidLinearMemoryIndexError(index)
        return self.linear_memory_index_space[0][index]

    def exec_init_expr(self, expr: bytes) -> Optional[InitValue]:
        """Evaluate an initializer expression against this module's globals."""
        return exec_init_expr(expr, self.get_global)

    def _populate_globals(self) -> None:
        if self.global_section is None:
            return
        self.global_index_space.extend(self.global_section.globals)
        _logger.debug(
            "There are %d entries in the global index spaces.",
            len(self.global_index_space),
        )

    def _function_names(self) -> dict:
        section = self.custom(CUSTOM_SECTION_NAME)
        if section is None:
            return {}
        name_section = NameSection.read(io.BytesIO(section.data))
        if not name_section.types.get(int(NameType.FUNCTION)):
            return {}
        sub = name_section.decode(NameType.FUNCTION)
        return dict(sub.names) if isinstance(sub, FunctionNames) else {}

    def _populate_functions(self) -> None:
        if self.types is None or self.function is None:
            return
        names = self._function_names()
        for index, fn in enumerate(self.function_index_space):
            fn.name = names.get(index, "")

        num_imports = len(self.function_index_space)
        for code_index, type_index in enumerate(self.function.types):
            if type_index >= len(self.types.entries):
                raise InvalidFunctionIndexError(type_index)
            if self.code is None:
                raise MissingSectionError(SectionID.CODE)
            if code_index >= len(self.code.bodies):
                raise InvalidCodeIndexError(code_index)
            self.function_index_space.append(
                Function(
                    sig=self.types.entries[type_index],
                    body=self.code.bodies[code_index],
                    name=names.get(code_index + num_imports, ""),
                )
            )
        self.function.types = list(self.imported_funcs) + list(self.function.types)

    def _offset_of(self, expr: bytes) -> int:
        value = self.exec_init_expr(expr)
        if value is None or value.type != ValueType.I32:
            got = "invalid" if value is None else _KIND_NAMES.get(value.type, "invalid")
            raise InvalidValueTypeInitExprError("int32", got)
        return value.value & 0xFFFFFFFF

    def _populate_tables(self) -> None:
        if (
            self.table is None
            or not self.table.entries
            or self.elements is None
            or not self.elements.entries
        ):
            return
        for elem in self.elements.entries:
            if elem.index >= len(self.table_index_space):
                raise InvalidTableIndexError(elem.index)
            offset = self._offset_of(elem.offset)
            table = self.table_index_space[elem.index]
            end = offset + len(elem.elems)
            if end > len(table):
                grown = [0] * end
                grown[offset:end] = elem.elems
                grown[: len(table)] = table
                self.table_index_space[elem.index] = grown
            else:
                table[offset:end] = elem.elems
        _logger.debug(
            "There are %d entries in the table index space.",
            len(self.table_index_space),
        )

    def _populate_linear_memory(self) -> None:
        if self.data is None or not self.data.entries:
            return
        if not self.linear_memory_index_space:
            self.linear_memory_index_space.append(bytearray())
        for entry in self.data.entries:
            if entry.index != 0:
                raise InvalidLinearMemoryIndexError(entry.index)
            offset = self._offset_of(entry.offset)
            memory = self.linear_memory_index_space[0]
            end = offset + len(entry.data)
            if end > len(memory):
                grown = bytearray(end)
                grown[: len(memory)] = memory
                grown[offset:end] = entry.data
                self.linear_memory_index_space[0] = grown
            else:
                memory[offset:end] = entry.data


def new_module() -> Module:
    """Create an empty module with the commonly needed sections present."""
    return Module(
        types=SectionTypes(),
        imports=SectionImports(),
        table=SectionTables(),
        memory=SectionMemories(),
        global_section=SectionGlobals(),
        export=SectionExports(),
        start=SectionStartFunction(),
        elements=SectionElements(),
        data=SectionData(),
    )


def _read_section(module: Module, reader: ReadPos, section_id: int) -> None:
    payload_len = leb128.read_var_uint32(reader)
    _logger.debug("Section %d payload length: %d", section_id, payload_len)
    start = reader.cur_pos
    section = section_for_id(section_id)
    payload = reader.read(payload_len)
    section.read_payload(io.BytesIO(payload))
    section.raw.start = start
    section.raw.end = reader.cur_pos
    section.raw.id = section_id
    section.raw.payload = payload

    if section.section_id == SectionID.CUSTOM:
        module.customs.append(section)
    else:
        setattr(module, _SECTION_ATTRS[section.section_id], section)

    if section.section_id == SectionID.CODE:
        if module.function is None or not module.function.types:
            raise MissingSectionError(SectionID.FUNCTION)
        if len(module.function.types) != len(section.bodies):
            raise WasmError(
                "wasm: the number of entries in the function and code section are unequal"
            )
        if module.types is None:
            raise MissingSectionError(SectionID.TYPE)
        for body in section.bodies:
            body.module = module

    module.sections.append(section)


def decode_module(reader: BinaryIO) -> Module:
    """Decode a module without populating index spaces or resolving imports."""
    pos = ReadPos(reader)
    module = Module()
    if read_u32(pos) != MAGIC:
        raise InvalidMagicError()
    module.version = read_u32(pos)
    if module.version != VERSION:
        raise WasmError(f"wasm: unknown binary version: {module.version}")

    last_order = 0
    while True:
        try:
            section_id = pos.read_byte()
        except EOFError:
            return module
        if section_id != SectionID.CUSTOM:
            if section_id <= last_order:
                raise WasmError(
                    "wasm: sections must occur at most once and in the prescribed order"
                )
            last_order = section_id
        _read_section(module, pos, section_id)


def read_module(
    reader: BinaryIO, resolve: Optional[Callable[[str], Module]] = None
) -> Module:
    """Decode a module, resolve its imports with ``resolve`` and fill its index spaces."""
    module = decode_module(reader)
    module.linear_memory_index_space = [bytearray()]
    if module.table is not None:
        module.table_index_space = [[] for _ in module.table.entries]

    if module.imports is not None and resolve is not None:
        if module.code is None:
            module.code = SectionCode()
        resolve_imports(module, resolve)

    module._populate_globals()
    module._populate_functions()
    module._populate_tables()
    module._populate_linear_memory()
    _logger.debug(
        "There are %d entries in the function index space.",
        len(module.function_index_space),
    )
    return module


def encode_module(writer: BinaryIO, module: Module) -> None:
    """Write ``module`` to ``writer`` in the binary format."""
    write_u32(writer, MAGIC)
    write_u32(writer, VERSION)
    for section in module.sections:
        section: Section
        payload = io.BytesIO()
        section.write_payload(payload)
        data = payload.getvalue()
        leb128.write_var_uint32(writer, int(section.section_id))
        leb128.write_var_uint32(writer, len(data))
        writer.write(data)