import io

import pytest

from wasmbin.imports import FuncImport, ImportEntry
from wasmbin.init_expr import InvalidInitExprOpError
from wasmbin.sections import (
    DataSegment,
    DuplicateExportError,
    ElementSegment,
    ExportEntry,
    FunctionBody,
    FunctionNoEndError,
    GlobalEntry,
    InvalidSectionIDError,
    LocalEntry,
    MissingSectionError,
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
from wasmbin.types import (
    External,
    FunctionSig,
    GlobalVar,
    Memory,
    ResizableLimits,
    Table,
    ValueType,
)


def payload(section):
    buf = io.BytesIO()
    section.write_payload(buf)
    return buf.getvalue()


def reread(section):
    data = payload(section)
    fresh = section_for_id(section.section_id)
    fresh.read_payload(io.BytesIO(data))
    return fresh


@pytest.mark.parametrize(
    "value,name",
    [(10, "code"), (0, "custom"), (11, "data"), (3, "function")],
)
def test_section_id_names(value, name):
    assert str(SectionID(value)) == name
    assert str(section_for_id(value).section_id) == name


def test_section_for_id_kinds():
    assert isinstance(section_for_id(1), SectionTypes)
    assert isinstance(section_for_id(10), SectionCode)
    assert section_for_id(0).section_id == SectionID.CUSTOM


def test_section_for_unknown_id():
    with pytest.raises(InvalidSectionIDError) as info:
        section_for_id(12)
    assert "12" in str(info.value)


def test_missing_section_message():
    assert str(MissingSectionError(SectionID.FUNCTION)) == "wasm: missing section function"


def test_types_wire_bytes():
    sec = SectionTypes(
        entries=[FunctionSig(param_types=[ValueType.I32, ValueType.I32],
                             return_types=[ValueType.I32])]
    )
    assert payload(sec) == bytes([0x01, 0x60, 0x02, 0x7F, 0x7F, 0x01, 0x7F])
    assert reread(sec) == sec


def test_custom_round_trip():
    sec = SectionCustom(name="name", data=b"\x01\x02\x03")
    again = reread(sec)
    assert again.name == "name"
    assert again.data == b"\x01\x02\x03"


def test_imports_round_trip():
    sec = SectionImports(entries=[ImportEntry("env", "f", FuncImport(0))])
    assert reread(sec) == sec


def test_functions_round_trip():
    sec = SectionFunctions(types=[0, 1, 200])
    assert reread(sec).types == [0, 1, 200]


def test_tables_and_memories_round_trip():
    tables = SectionTables(entries=[Table(limits=ResizableLimits(flags=1, initial=2, maximum=5))])
    memories = SectionMemories(entries=[Memory(limits=ResizableLimits(flags=0, initial=1))])
    assert reread(tables) == tables
    assert reread(memories) == memories


def test_globals_round_trip():
    entry = GlobalEntry(type=GlobalVar(type=ValueType.I32, mutable=True),
                        init=bytes([0x41, 0x05, 0x0B]))
    sec = SectionGlobals(globals=[entry])
    again = reread(sec)
    assert again.globals == [entry]


def test_global_entry_bad_init():
    with pytest.raises(InvalidInitExprOpError):
        GlobalEntry.read(io.BytesIO(bytes([0x7F, 0x00, 0x99])))


def test_export_entry_round_trip():
    entry = ExportEntry(field_str="main", kind=External.FUNCTION, index=3)
    buf = io.BytesIO()
    entry.write(buf)
    assert ExportEntry.read(io.BytesIO(buf.getvalue())) == entry


def test_exports_sorted_on_write():
    sec = SectionExports(entries={
        "b": ExportEntry("b", External.FUNCTION, 1),
        "z": ExportEntry("z", External.FUNCTION, 0),
        "a": ExportEntry("a", External.FUNCTION, 1),
    })
    again = reread(sec)
    assert again.names == ["z", "a", "b"]
    assert again.entries == sec.entries


def test_duplicate_export():
    buf = io.BytesIO()
    buf.write(b"\x02")
    ExportEntry("f", External.FUNCTION, 0).write(buf)
    ExportEntry("f", External.FUNCTION, 1).write(buf)
    sec = SectionExports()
    with pytest.raises(DuplicateExportError) as info:
        sec.read_payload(io.BytesIO(buf.getvalue()))
    assert str(info.value) == "Duplicate export entry: f"


def test_start_round_trip():
    assert reread(SectionStartFunction(index=7)).index == 7


def test_elements_round_trip():
    seg = ElementSegment(index=0, offset=bytes([0x41, 0x00, 0x0B]), elems=[1, 2, 3])
    sec = SectionElements(entries=[seg])
    assert reread(sec).entries == [seg]


def test_function_body_wire_bytes():
    body = FunctionBody(code=bytes([0x41, 0x01]))
    buf = io.BytesIO()
    body.write(buf)
    assert buf.getvalue() == bytes([0x04, 0x00, 0x41, 0x01, 0x0B])
    assert FunctionBody.read(io.BytesIO(buf.getvalue())).code == bytes([0x41, 0x01])


def test_function_body_with_locals_round_trip():
    body = FunctionBody(locals=[LocalEntry(2, ValueType.I64), LocalEntry(1, ValueType.F32)],
                        code=bytes([0x01]))
    sec = SectionCode(bodies=[body])
    again = reread(sec)
    assert again.bodies == [body]


def test_function_body_without_end():
    with pytest.raises(FunctionNoEndError):
        FunctionBody.read(io.BytesIO(bytes([0x02, 0x00, 0x01])))


def test_function_body_empty_code():
    with pytest.raises(FunctionNoEndError):
        FunctionBody.read(io.BytesIO(bytes([0x01, 0x00])))


def test_data_round_trip():
    seg = DataSegment(index=0, offset=bytes([0x41, 0x08, 0x0B]), data=b"hello")
    sec = SectionData(entries=[seg])
    assert reread(sec).entries == [seg]


def test_truncated_payload():
    sec = SectionFunctions()
    with pytest.raises(EOFError):
        sec.read_payload(io.BytesIO(b"\x02\x00"))