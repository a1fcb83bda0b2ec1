import pytest

from wasmbin import operators as ops
from wasmbin.binary import WasmError
from wasmbin.checker import (
    InvalidLabelError,
    InvalidTypeError,
    MockVM,
    NoSectionError,
    Operand,
    Frame,
    StackUnderflowError,
    UnmatchedOpError,
    ValidationError,
)
from wasmbin.sections import SectionID
from wasmbin.types import ValueType

I32, I64 = ValueType.I32, ValueType.I64


def test_operand_equal_same_and_different():
    assert Operand(I32).equal(I32)
    assert not Operand(I32).equal(I64)


def test_operand_unknown_matches_anything():
    assert Operand(0).equal(I64)
    assert Operand(I32).equal(0)


def test_matching_label_types_ok():
    assert Frame(label_types=[I32]).matching_label_types(Frame(label_types=[I32])) is None


def test_matching_label_types_length_mismatch():
    with pytest.raises(WasmError, match="label type len mismatch"):
        Frame(label_types=[I32]).matching_label_types(Frame(label_types=[]))


def test_matching_label_types_type_mismatch():
    with pytest.raises(InvalidTypeError) as info:
        Frame(label_types=[I32]).matching_label_types(Frame(label_types=[I64]))
    assert info.value.wanted == I32
    assert info.value.got == I64


def test_fetch_var_uint_advances_pc():
    vm = MockVM(b"\x80\x7f", [])
    assert vm.fetch_var_uint() == 16256
    assert vm.pc() == 2


def test_fetch_var_int_negative():
    vm = MockVM(b"\xff\x7e", [])
    assert vm.fetch_var_int() == -129


def test_fetch_fixed_width():
    vm = MockVM(b"\x01\x00\x00\x00" + b"\x02" + b"\x00" * 7, [])
    assert vm.fetch_uint32() == 1
    assert vm.fetch_uint64() == 2
    assert vm.pc() == 12


def test_fetch_past_end_raises():
    with pytest.raises(EOFError):
        MockVM(b"\x01\x00", []).fetch_uint32()
    with pytest.raises(EOFError):
        MockVM(b"", []).fetch_byte()


def test_push_and_pop_operand():
    vm = MockVM(b"", [])
    vm.push_operand(I64)
    assert vm.pop_operand() == Operand(I64)
    with pytest.raises(StackUnderflowError):
        vm.pop_operand()


def test_unreachable_yields_unknown_operands():
    vm = MockVM(b"", [])
    vm.push_operand(I32)
    vm.set_unreachable()
    assert vm.stack == []
    assert vm.top_frame_unreachable()
    assert vm.pop_operand() == Operand(0)


def test_frames_by_depth():
    vm = MockVM(b"", [I32])
    vm.push_frame(ops.BLOCK, [I64], [I64])
    assert vm.frame_at_depth(0).op == ops.BLOCK
    assert vm.frame_at_depth(1).end_types == [I32]
    assert vm.frame_at_depth(2) is None


def test_pop_frame_checks_results():
    vm = MockVM(b"", [])
    vm.push_frame(ops.BLOCK, [I32], [I32])
    vm.push_operand(I32)
    frame = vm.pop_frame()
    assert frame.op == ops.BLOCK
    assert len(vm.ctrl_frames) == 1
    assert vm.stack == []


def test_pop_frame_unbalanced():
    vm = MockVM(b"", [])
    vm.push_frame(ops.BLOCK, [], [])
    vm.push_operand(I32)
    with pytest.raises(WasmError, match="unbalanced stack"):
        vm.pop_frame()


def test_pop_frame_without_frames():
    vm = MockVM(b"", [])
    vm.pop_frame()
    with pytest.raises(WasmError, match="missing frame"):
        vm.pop_frame()


def test_adjust_stack_applies_operator_types():
    vm = MockVM(b"", [])
    vm.push_operand(I32)
    vm.push_operand(I32)
    vm.adjust_stack(ops.lookup(ops.I32_ADD))
    assert vm.stack == [Operand(I32)]


def test_adjust_stack_rejects_wrong_type():
    vm = MockVM(b"", [])
    vm.push_operand(I64)
    vm.push_operand(I32)
    with pytest.raises(InvalidTypeError):
        vm.adjust_stack(ops.lookup(ops.I32_ADD))


def test_error_messages():
    assert str(UnmatchedOpError(ops.ELSE)) == "encountered unmatched else"
    assert str(InvalidLabelError(3)) == "invalid nesting depth 3"
    assert str(StackUnderflowError()) == "validate: stack underflow"
    assert str(NoSectionError(SectionID.CODE)) == (
        "reference to non existant section (id 10) in module"
    )


def test_validation_error_wraps_cause():
    cause = StackUnderflowError()
    err = ValidationError(5, 2, cause)
    assert err.offset == 5
    assert err.function == 2
    assert err.cause is cause
    assert str(err) == (
        "error while validating function 2 at offset 5: validate: stack underflow"
    )