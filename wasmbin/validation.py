"""Static validation of function bodies and modules."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from wasmbin import leb128
from wasmbin import operators as ops
from wasmbin.binary import WasmError
from wasmbin.checker import (
    InvalidImmediateError,
    InvalidLabelError,
    InvalidLocalIndexError,
    InvalidTypeError,
    MockVM,
    NoSectionError,
    Operand,
    UnmatchedOpError,
    ValidationError,
)
from wasmbin.imports import InvalidFunctionIndexError
from wasmbin.init_expr import InvalidGlobalIndexError
from wasmbin.sections import SectionID
from wasmbin.types import BLOCK_TYPE_EMPTY, ValueType

_logger = logging.getLogger("wasmbin.validate")

_VALUE_TYPES = (ValueType.I32, ValueType.I64, ValueType.F32, ValueType.F64)

_MEMORY_OPS = frozenset({
    ops.I32_LOAD, ops.I64_LOAD, ops.F32_LOAD, ops.F64_LOAD,
    ops.I32_LOAD8_S, ops.I32_LOAD8_U, ops.I32_LOAD16_S, ops.I32_LOAD16_U,
    ops.I64_LOAD8_S, ops.I64_LOAD8_U, ops.I64_LOAD16_S, ops.I64_LOAD16_U,
    ops.I64_LOAD32_S, ops.I64_LOAD32_U,
    ops.I32_STORE, ops.I64_STORE, ops.F32_STORE, ops.F64_STORE,
    ops.I32_STORE8, ops.I32_STORE16, ops.I64_STORE8, ops.I64_STORE16,
    ops.I64_STORE32,
})

_FAILURES = (WasmError, EOFError, leb128.LEB128Error)


def _pop_expected(vm: MockVM, expected: Iterable[int]) -> None:
    """Pop operands matching ``expected`` (given bottom to top)."""
    for value_type in reversed(list(expected)):
        operand = vm.pop_operand()
        if not operand.equal(value_type):
            raise InvalidTypeError(value_type, operand.type)


def _expect(operand: Operand, value_type: int) -> None:
    if not operand.equal(value_type):
        raise InvalidTypeError(value_type, operand.type)


def _label_depth(vm: MockVM) -> int:
    depth = vm.fetch_var_uint()
    if depth >= len(vm.ctrl_frames):
        raise InvalidLabelError(depth)
    return depth


def _block_type(vm: MockVM, op_name: str) -> list:
    sig = vm.fetch_byte()
    if sig == BLOCK_TYPE_EMPTY:
        return []
    if sig in _VALUE_TYPES:
        return [ValueType(sig)]
    raise InvalidImmediateError("block_type", op_name)


def _locals_of(sig: Any, body: Any) -> list:
    local_types = list(sig.param_types)
    for entry in body.locals:
        local_types.extend([entry.type] * entry.count)
    return local_types


def _check(vm: MockVM, sig: Any, body: Any, module: Any) -> None:
    local_types = _locals_of(sig, body)
    while True:
        data = vm.code.read(1)
        if not data:
            return
        op = data[0]
        op_info = ops.lookup(op)
        _logger.debug("PC: %d OP: %s", vm.pc(), op_info.name)

        if not op_info.polymorphic:
            vm.adjust_stack(op_info)

        if op in (ops.BLOCK, ops.IF):
            result = _block_type(vm, op_info.name)
            vm.push_frame(op, result, result)

        elif op == ops.LOOP:
            result = _block_type(vm, op_info.name)
            vm.push_frame(op, [], result)

        elif op == ops.ELSE:
            frame = vm.pop_frame()
            if frame.op != ops.IF:
                raise UnmatchedOpError(op)
            vm.push_frame(op, frame.end_types, frame.end_types)

        elif op == ops.END:
            frame = vm.pop_frame()
            for value_type in frame.end_types:
                if value_type != ops.NO_RETURN:
                    vm.push_operand(value_type)

        elif op == ops.BR:
            frame = vm.frame_at_depth(_label_depth(vm))
            _pop_expected(vm, frame.label_types)
            vm.set_unreachable()

        elif op == ops.BR_IF:
            frame = vm.frame_at_depth(_label_depth(vm))
            _pop_expected(vm, frame.label_types)
            for value_type in frame.label_types:
                vm.push_operand(value_type)

        elif op == ops.BR_TABLE:
            _expect(vm.pop_operand(), ValueType.I32)
            targets = [_label_depth(vm) for _ in range(vm.fetch_var_uint())]
            default = vm.frame_at_depth(_label_depth(vm))
            for target in targets:
                default.matching_label_types(vm.frame_at_depth(target))
            _pop_expected(vm, default.label_types)
            vm.set_unreachable()

        elif op == ops.RETURN:
            returns = list(sig.return_types)
            if len(returns) > 1:
                raise WasmError("validate: multiple return values are not supported")
            if returns:
                _expect(vm.pop_operand(), returns[0])
            vm.set_unreachable()

        elif op == ops.UNREACHABLE:
            vm.set_unreachable()

        elif op == ops.I32_CONST:
            vm.fetch_var_int()
        elif op == ops.I64_CONST:
            vm.fetch_var_int64()
        elif op == ops.F32_CONST:
            vm.fetch_uint32()
        elif op == ops.F64_CONST:
            vm.fetch_uint64()

        elif op in (ops.GET_LOCAL, ops.SET_LOCAL, ops.TEE_LOCAL):
            index = vm.fetch_var_uint()
            if index >= len(local_types):
                raise InvalidLocalIndexError(index)
            local_type = local_types[index]
            if op == ops.GET_LOCAL:
                vm.push_operand(local_type)
            else:
                _expect(vm.pop_operand(), local_type)
                if op == ops.TEE_LOCAL:
                    vm.push_operand(local_type)

        elif op in (ops.GET_GLOBAL, ops.SET_GLOBAL):
            index = vm.fetch_var_uint()
            entry = module.get_global(index)
            if entry is None:
                raise InvalidGlobalIndexError(index)
            if op == ops.GET_GLOBAL:
                vm.push_operand(entry.type.type)
            else:
                _expect(vm.pop_operand(), entry.type.type)

        elif op in _MEMORY_OPS:
            vm.fetch_var_uint()  # alignment flags
            vm.fetch_var_uint()  # offset

        elif op in (ops.CURRENT_MEMORY, ops.GROW_MEMORY):
            if vm.fetch_byte() != 0:
                raise WasmError("validate: memory index must be 0")

        elif op == ops.CALL:
            index = vm.fetch_var_uint()
            fn = module.get_function(index)
            if fn is None:
                raise InvalidFunctionIndexError(index)
            _pop_expected(vm, fn.sig.param_types)
            for value_type in fn.sig.return_types:
                vm.push_operand(value_type)

        elif op == ops.CALL_INDIRECT:
            if module.table is None or not module.table.entries:
                raise NoSectionError(SectionID.TABLE)
            # Only the statically known type index can be checked here.
            index = vm.fetch_var_uint()
            if vm.fetch_byte() != 0:
                raise WasmError("validate: table index in call_indirect must be 0")
            type_entries = module.types.entries if module.types is not None else []
            if index >= len(type_entries):
                raise WasmError("validate: type index out of range in call_indirect")
            expected_sig = type_entries[index]
            _expect(vm.pop_operand(), ValueType.I32)
            _pop_expected(vm, expected_sig.param_types)
            for value_type in expected_sig.return_types:
                vm.push_operand(value_type)

        elif op == ops.DROP:
            vm.pop_operand()

        elif op == ops.SELECT:
            _expect(vm.pop_operand(), ValueType.I32)
            first = vm.pop_operand()
            second = vm.pop_operand()
            if not first.equal(second.type):
                raise InvalidTypeError(second.type, first.type)
            vm.push_operand(second.type)


def verify_body(sig: Any, body: Any, module: Any) -> MockVM:
    """Type-check one function body; return the machine in its final state."""
    vm = MockVM(body.code, sig.return_types)
    _check(vm, sig, body, module)
    return vm


def verify_module(module: Any) -> None:
    """Validate every function in the module's function index space."""
    if module.function is None or module.types is None or not module.types.entries:
        return
    if module.code is None:
        raise NoSectionError(SectionID.CODE)

    for index, fn in enumerate(module.function_index_space):
        _logger.debug("Validating function %d (%r)", index, fn.name)
        vm = MockVM(fn.body.code, fn.sig.return_types)
        try:
            _check(vm, fn.sig, fn.body, module)
        except _FAILURES as exc:
            raise ValidationError(vm.pc(), index, exc) from exc