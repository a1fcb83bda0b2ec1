"""Import entries of a module and resolution of imports against other modules."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, ClassVar, Union

from wasmbin import leb128
from wasmbin.binary import WasmError, read_utf8_string_uint, write_string_uint
from wasmbin.init_expr import InvalidGlobalIndexError
from wasmbin.types import (
    External,
    GlobalVar,
    Memory,
    Table,
    external_name,
    read_external,
    write_external,
)


@dataclass(frozen=True)
class FuncImport:
    """An imported function, given by the index of its signature."""

    type: int
    kind: ClassVar[External] = External.FUNCTION

    def write(self, writer: BinaryIO) -> None:
        leb128.write_var_uint32(writer, self.type)


@dataclass(frozen=True)
class TableImport:
    """An imported table."""

    type: Table
    kind: ClassVar[External] = External.TABLE

    def write(self, writer: BinaryIO) -> None:
        self.type.write(writer)


@dataclass(frozen=True)
class MemoryImport:
    """An imported linear memory."""

    type: Memory
    kind: ClassVar[External] = External.MEMORY

    def write(self, writer: BinaryIO) -> None:
        self.type.write(writer)


@dataclass(frozen=True)
class GlobalVarImport:
    """An imported global variable."""

    type: GlobalVar
    kind: ClassVar[External] = External.GLOBAL

    def write(self, writer: BinaryIO) -> None:
        self.type.write(writer)


Import = Union[FuncImport, TableImport, MemoryImport, GlobalVarImport]


class ImportMutGlobalError(WasmError):
    """A mutable global variable was imported."""

    def __init__(self) -> None:
        super().__init__("wasm: cannot import global mutable variable")


class NoExportsInImportedModuleError(WasmError):
    """The module an import refers to exports nothing."""

    def __init__(self) -> None:
        super().__init__("wasm: imported module has no exports")


class InvalidExternalError(WasmError):
    """An unknown external kind value."""

    def __init__(self, kind: int) -> None:
        super().__init__(f"wasm: invalid external_kind value {int(kind)}")
        self.kind = kind


class ExportNotFoundError(WasmError):
    """The imported name is not exported by the imported module."""

    def __init__(self, module_name: str, field_name: str) -> None:
        super().__init__(
            f"wasm: couldn't find export with name {field_name} in module {module_name}"
        )
        self.module_name = module_name
        self.field_name = field_name


class KindMismatchError(WasmError):
    """An import and the export it resolves to are of different kinds."""

    def __init__(
        self, module_name: str, field_name: str, import_kind: int, export_kind: int
    ) -> None:
        super().__init__(
            "wasm: mismatching import and export external kind values for "
            f"{field_name}.{module_name} "
            f"({external_name(import_kind)}, {external_name(export_kind)})"
        )
        self.module_name = module_name
        self.field_name = field_name
        self.import_kind = import_kind
        self.export_kind = export_kind


class InvalidFunctionIndexError(WasmError):
    """An index outside the function index space."""

    def __init__(self, index: int) -> None:
        super().__init__(f"wasm: invalid index to function index space: {index:#x}")
        self.index = index


class InvalidImportError(WasmError):
    """A resolved export does not match the signature of its import."""

    def __init__(self, module_name: str, field_name: str, type_index: int) -> None:
        super().__init__(
            f"wasm: invalid signature for import {type_index:#x} "
            f"with name '{field_name}' in module {module_name}"
        )
        self.module_name = module_name
        self.field_name = field_name
        self.type_index = type_index


class InvalidTableIndexError(WasmError):
    """An index outside the table index space."""

    def __init__(self, index: int) -> None:
        super().__init__(f"wasm: Invalid table to table index space: {index}")
        self.index = index


class InvalidLinearMemoryIndexError(WasmError):
    """An index outside the linear memory index space."""

    def __init__(self, index: int) -> None:
        super().__init__(f"wasm: Invalid linear memory index: {index}")
        self.index = index


@dataclass
class ImportEntry:
    """An import declaration."""

    module_name: str
    field_name: str
    type: Import

    @classmethod
    def read(cls, reader: BinaryIO) -> "ImportEntry":
        module_name = read_utf8_string_uint(reader)
        field_name = read_utf8_string_uint(reader)
        kind = read_external(reader)
        imported: Import
        if kind == External.FUNCTION:
            imported = FuncImport(leb128.read_var_uint32(reader))
        elif kind == External.TABLE:
            imported = TableImport(Table.read(reader))
        elif kind == External.MEMORY:
            imported = MemoryImport(Memory.read(reader))
        elif kind == External.GLOBAL:
            imported = GlobalVarImport(GlobalVar.read(reader))
        else:
            raise InvalidExternalError(kind)
        return cls(module_name=module_name, field_name=field_name, type=imported)

    def write(self, writer: BinaryIO) -> None:
        write_string_uint(writer, self.module_name)
        write_string_uint(writer, self.field_name)
        write_external(writer, self.type.kind)
        self.type.write(writer)


def _set_first(space: list, value: Any) -> None:
    if space:
        space[0] = value
    else:
        space.append(value)


def resolve_imports(module: Any, resolve: Callable[[str], Any]) -> None:
    """Resolve the imports of ``module`` against modules returned by ``resolve``.

    ``module`` provides ``imports``, ``types``, ``code``, the index spaces
    (``function_index_space``, ``global_index_space``, ``table_index_space``,
    ``linear_memory_index_space``) and the counters ``imported_funcs``,
    ``imported_globals``, ``imported_tables`` and ``imported_memories``.
    Each resolved module provides ``export``, ``get_function``,
    ``get_global`` and its index spaces.
    """
    if module.imports is None:
        return

    resolved: dict[str, Any] = {}
    funcs = 0
    for entry in module.imports.entries:
        imported = resolved.get(entry.module_name)
        if imported is None:
            imported = resolve(entry.module_name)
            resolved[entry.module_name] = imported

        if imported.export is None:
            raise NoExportsInImportedModuleError()

        export = imported.export.entries.get(entry.field_name)
        if export is None:
            raise ExportNotFoundError(entry.module_name, entry.field_name)

        if export.kind != entry.type.kind:
            raise KindMismatchError(
                entry.module_name, entry.field_name, entry.type.kind, export.kind
            )

        index = export.index
        if export.kind == External.FUNCTION:
            fn = imported.get_function(index)
            if fn is None:
                raise InvalidFunctionIndexError(index)
            type_index = entry.type.type
            expected = module.types.entries[type_index]
            if list(fn.sig.return_types) != list(expected.return_types) or list(
                fn.sig.param_types
            ) != list(expected.param_types):
                raise InvalidImportError(
                    entry.module_name, entry.field_name, type_index
                )
            module.function_index_space.append(copy.copy(fn))
            module.code.bodies.append(copy.copy(fn.body))
            module.imported_funcs.append(funcs)
            funcs += 1
        elif export.kind == External.GLOBAL:
            glb = imported.get_global(index)
            if glb is None:
                raise InvalidGlobalIndexError(index)
            if glb.type.mutable:
                raise ImportMutGlobalError()
            module.global_index_space.append(copy.copy(glb))
            module.imported_globals += 1
        elif export.kind == External.TABLE:
            if index >= len(imported.table_index_space):
                raise InvalidTableIndexError(index)
            _set_first(module.table_index_space, imported.table_index_space[0])
            module.imported_tables += 1
        elif export.kind == External.MEMORY:
            if index >= len(imported.linear_memory_index_space):
                raise InvalidLinearMemoryIndexError(index)
            _set_first(
                module.linear_memory_index_space,
                imported.linear_memory_index_space[0],
            )
            module.imported_memories += 1
        else:
            raise InvalidExternalError(export.kind)