import io
from types import SimpleNamespace

import pytest

from wasmbin.imports import (
    ExportNotFoundError,
    FuncImport,
    GlobalVarImport,
    ImportEntry,
    ImportMutGlobalError,
    InvalidExternalError,
    InvalidFunctionIndexError,
    InvalidImportError,
    InvalidTableIndexError,
    KindMismatchError,
    MemoryImport,
    NoExportsInImportedModuleError,
    TableImport,
    resolve_imports,
)
from wasmbin.types import (
    External,
    FunctionSig,
    GlobalVar,
    Memory,
    ResizableLimits,
    Table,
    ValueType,
)

I32 = ValueType.I32
I64 = ValueType.I64


class FakeExporter:
    def __init__(self, functions=(), globals_=(), tables=(), memories=(), exports=None):
        self.function_index_space = list(functions)
        self.global_index_space = list(globals_)
        self.table_index_space = list(tables)
        self.linear_memory_index_space = list(memories)
        self.export = None if exports is None else SimpleNamespace(entries=exports)

    def get_function(self, index):
        if 0 <= index < len(self.function_index_space):
            return self.function_index_space[index]
        return None

    def get_global(self, index):
        if 0 <= index < len(self.global_index_space):
            return self.global_index_space[index]
        return None


def make_importer(entries, types=()):
    return SimpleNamespace(
        imports=SimpleNamespace(entries=list(entries)),
        types=SimpleNamespace(entries=list(types)),
        code=SimpleNamespace(bodies=[]),
        function_index_space=[],
        global_index_space=[],
        table_index_space=[[]],
        linear_memory_index_space=[b""],
        imported_funcs=[],
        imported_globals=0,
        imported_tables=0,
        imported_memories=0,
    )


def export(kind, index=0):
    return SimpleNamespace(kind=kind, index=index)


def host_function(params, returns):
    return SimpleNamespace(
        sig=FunctionSig(param_types=list(params), return_types=list(returns)),
        body=SimpleNamespace(code=b""),
    )


def round_trip(entry):
    buf = io.BytesIO()
    entry.write(buf)
    buf.seek(0)
    return ImportEntry.read(buf), buf.getvalue()


def test_func_import_wire_bytes():
    entry = ImportEntry("env", "f", FuncImport(3))
    parsed, raw = round_trip(entry)
    assert raw == b"\x03env\x01f\x00\x03"
    assert parsed == entry


@pytest.mark.parametrize(
    "imported",
    [
        TableImport(Table(limits=ResizableLimits(flags=1, initial=1, maximum=4))),
        MemoryImport(Memory(limits=ResizableLimits(initial=2))),
        GlobalVarImport(GlobalVar(type=I64, mutable=False)),
    ],
)
def test_import_entry_round_trip(imported):
    entry = ImportEntry("mod", "field", imported)
    parsed, _ = round_trip(entry)
    assert parsed == entry
    assert parsed.type.kind == imported.kind


def test_import_entry_invalid_kind():
    with pytest.raises(InvalidExternalError) as info:
        ImportEntry.read(io.BytesIO(b"\x01m\x01f\x04\x00"))
    assert info.value.kind == 4


def test_no_imports_is_noop():
    module = make_importer([])
    module.imports = None
    resolve_imports(module, lambda name: pytest.fail("resolver called"))
    assert module.function_index_space == []


SIGNATURE_MISMATCHES = {
    "length": FakeExporter(
        functions=[host_function([I64], [])],
        exports={"finish": export(External.FUNCTION)},
    ),
    "param_type": FakeExporter(
        functions=[host_function([I64, I64], [])],
        exports={"finish": export(External.FUNCTION)},
    ),
    "return_type": FakeExporter(
        functions=[host_function([I32, I32], [I32])],
        exports={"finish": export(External.FUNCTION)},
    ),
}


@pytest.mark.parametrize("name", sorted(SIGNATURE_MISMATCHES))
def test_signature_check(name):
    module = make_importer(
        [ImportEntry("ethereum", "finish", FuncImport(0))],
        types=[FunctionSig(param_types=[I32, I32], return_types=[])],
    )
    with pytest.raises(InvalidImportError) as info:
        resolve_imports(module, lambda _: SIGNATURE_MISMATCHES[name])
    assert str(info.value) == (
        "wasm: invalid signature for import 0x0 with name 'finish' in module ethereum"
    )


def test_function_import_resolves_and_caches_module():
    exporter = FakeExporter(
        functions=[host_function([I32], [I32])],
        exports={"a": export(External.FUNCTION), "b": export(External.FUNCTION)},
    )
    calls = []

    def resolve(name):
        calls.append(name)
        return exporter

    module = make_importer(
        [ImportEntry("env", "a", FuncImport(0)), ImportEntry("env", "b", FuncImport(0))],
        types=[FunctionSig(param_types=[I32], return_types=[I32])],
    )
    resolve_imports(module, resolve)
    assert calls == ["env"]
    assert len(module.function_index_space) == 2
    assert len(module.code.bodies) == 2
    assert module.imported_funcs == [0, 1]


def test_missing_exports():
    module = make_importer([ImportEntry("env", "a", FuncImport(0))])
    with pytest.raises(NoExportsInImportedModuleError):
        resolve_imports(module, lambda _: FakeExporter())


def test_export_not_found():
    module = make_importer([ImportEntry("env", "a", FuncImport(0))])
    with pytest.raises(ExportNotFoundError) as info:
        resolve_imports(module, lambda _: FakeExporter(exports={}))
    assert (info.value.module_name, info.value.field_name) == ("env", "a")


def test_kind_mismatch():
    module = make_importer([ImportEntry("env", "a", FuncImport(0))])
    exporter = FakeExporter(exports={"a": export(External.GLOBAL)})
    with pytest.raises(KindMismatchError) as info:
        resolve_imports(module, lambda _: exporter)
    assert info.value.import_kind == External.FUNCTION
    assert info.value.export_kind == External.GLOBAL


def test_invalid_function_index():
    module = make_importer(
        [ImportEntry("env", "a", FuncImport(0))], types=[FunctionSig()]
    )
    exporter = FakeExporter(exports={"a": export(External.FUNCTION, 5)})
    with pytest.raises(InvalidFunctionIndexError) as info:
        resolve_imports(module, lambda _: exporter)
    assert info.value.index == 5


def test_global_import():
    glb = SimpleNamespace(type=GlobalVar(type=I32, mutable=False), init=b"\x41\x00\x0b")
    exporter = FakeExporter(globals_=[glb], exports={"g": export(External.GLOBAL)})
    module = make_importer([ImportEntry("env", "g", GlobalVarImport(GlobalVar(I32)))])
    resolve_imports(module, lambda _: exporter)
    assert module.imported_globals == 1
    assert module.global_index_space[0].type == glb.type


def test_mutable_global_import_rejected():
    glb = SimpleNamespace(type=GlobalVar(type=I32, mutable=True))
    exporter = FakeExporter(globals_=[glb], exports={"g": export(External.GLOBAL)})
    module = make_importer([ImportEntry("env", "g", GlobalVarImport(GlobalVar(I32)))])
    with pytest.raises(ImportMutGlobalError):
        resolve_imports(module, lambda _: exporter)


def test_table_and_memory_import():
    exporter = FakeExporter(
        tables=[[7, 8]],
        memories=[b"\x01\x02"],
        exports={"t": export(External.TABLE), "m": export(External.MEMORY)},
    )
    module = make_importer(
        [
            ImportEntry("env", "t", TableImport(Table())),
            ImportEntry("env", "m", MemoryImport(Memory())),
        ]
    )
    resolve_imports(module, lambda _: exporter)
    assert module.table_index_space[0] == [7, 8]
    assert module.linear_memory_index_space[0] == b"\x01\x02"
    assert (module.imported_tables, module.imported_memories) == (1, 1)


def test_invalid_table_index():
    exporter = FakeExporter(tables=[], exports={"t": export(External.TABLE)})
    module = make_importer([ImportEntry("env", "t", TableImport(Table()))])
    with pytest.raises(InvalidTableIndexError):
        resolve_imports(module, lambda _: exporter)