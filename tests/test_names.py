import io

import pytest

from wasmbin.binary import WasmError
from wasmbin.names import (
    FunctionNames,
    LocalNames,
    ModuleName,
    NameMap,
    NameSection,
    NameType,
)


def encode(obj):
    buf = io.BytesIO()
    obj.write(buf)
    return buf.getvalue()


def test_name_map_wire_bytes():
    assert encode(NameMap({0: "a"})) == b"\x01\x00\x01a"


def test_name_map_round_trip_sorted():
    names = NameMap({5: "five", 1: "one", 3: "three"})
    raw = encode(names)
    parsed = NameMap.read(io.BytesIO(raw))
    assert parsed == names
    assert list(parsed) == [1, 3, 5]


def test_module_name_round_trip():
    raw = encode(ModuleName("demo"))
    assert raw == b"\x04demo"
    assert ModuleName.read(io.BytesIO(raw)) == ModuleName("demo")


def test_function_names_round_trip():
    names = FunctionNames(NameMap({0: "main", 2: "helper"}))
    assert FunctionNames.read(io.BytesIO(encode(names))) == names


def test_local_names_round_trip():
    locals_ = LocalNames({1: NameMap({0: "x"}), 0: NameMap({0: "a", 1: "b"})})
    parsed = LocalNames.read(io.BytesIO(encode(locals_)))
    assert parsed.funcs == locals_.funcs


def test_name_section_read_until_eof():
    raw = b"\x00\x03\x02ab" + b"\x01\x01\x00"
    section = NameSection.read(io.BytesIO(raw))
    assert section.types == {0: b"\x02ab", 1: b"\x00"}


def test_name_section_round_trip():
    section = NameSection(
        {
            NameType.FUNCTION: encode(FunctionNames(NameMap({0: "f"}))),
            NameType.MODULE: encode(ModuleName("m")),
        }
    )
    raw = encode(section)
    assert raw[0] == NameType.MODULE
    assert NameSection.read(io.BytesIO(raw)).types == section.types


def test_decode_function_names():
    section = NameSection({1: encode(FunctionNames(NameMap({3: "run"})))})
    sub = section.decode(NameType.FUNCTION)
    assert sub == FunctionNames(NameMap({3: "run"}))


def test_decode_module_name():
    section = NameSection({0: encode(ModuleName("m"))})
    assert section.decode(NameType.MODULE) == ModuleName("m")


def test_decode_missing_subsection():
    assert NameSection({}).decode(NameType.LOCAL) is None


def test_decode_unsupported_subsection():
    with pytest.raises(WasmError, match="unsupported name subsection: 7"):
        NameSection({7: b""}).decode(7)


def test_truncated_name_map():
    with pytest.raises(EOFError):
        NameMap.read(io.BytesIO(b"\x02\x00\x01a"))