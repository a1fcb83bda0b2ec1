"""WebAssembly operators with their operand and result types."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from wasmbin.binary import WasmError
from wasmbin.types import BLOCK_TYPE_EMPTY, ValueType

NO_RETURN = BLOCK_TYPE_EMPTY

_CONVERSION_RE = re.compile(r"(.+)\.(?:[a-z]|_)+/(.+)")

_VALUE_TYPES = {
    "i32": ValueType.I32,
    "i64": ValueType.I64,
    "f32": ValueType.F32,
    "f64": ValueType.F64,
}


@dataclass(frozen=True)
class Op:
    """A WebAssembly operator.

    Polymorphic operators have a variable arity; their ``args`` are empty
    and ``returns`` is 0.
    """

    code: int = 0
    name: str = ""
    polymorphic: bool = False
    args: tuple = field(default_factory=tuple)
    returns: int = 0

    def is_valid(self) -> bool:
        """Whether this describes a real operator."""
        return self.name != ""


class InvalidOpcodeError(WasmError):
    """An opcode that names no usable operator."""

    def __init__(self, code: int) -> None:
        super().__init__(f"Invalid opcode: {code:#x}")
        self.code = code


def _value_type(text: str) -> ValueType:
    try:
        return _VALUE_TYPES[text]
    except KeyError:
        raise ValueError(f"Invalid value type string: {text}") from None


class OperatorTable:
    """A registry of operators indexed by opcode."""

    def __init__(self, internal: Iterable[int] = ()) -> None:
        self._ops: dict[int, Op] = {}
        self._internal = frozenset(internal)

    def _register(self, op: Op) -> int:
        if not 0 <= op.code <= 0xFF:
            raise ValueError(f"Opcode {op.code:#x} is out of range")
        existing = self._ops.get(op.code)
        if existing is not None:
            raise ValueError(
                f"Opcode {op.code:#x} is already assigned to {existing.name}"
            )
        self._ops[op.code] = op
        return op.code

    def add(self, code: int, name: str, args: Optional[Iterable[int]], returns: int) -> int:
        """Register an operator with fixed arguments and result; return its code."""
        return self._register(
            Op(code=code, name=name, polymorphic=False,
               args=tuple(args or ()), returns=returns)
        )

    def add_polymorphic(self, code: int, name: str) -> int:
        """Register an operator of variable arity; return its code."""
        return self._register(Op(code=code, name=name, polymorphic=True))

    def add_conversion(self, code: int, name: str) -> int:
        """Register a conversion operator, deriving its types from its name."""
        match = _CONVERSION_RE.search(name)
        if match is None:
            raise ValueError(f"{name} is not a conversion operator")
        returns = _value_type(match.group(1))
        param = _value_type(match.group(2))
        return self.add(code, name, [param], returns)

    def get(self, code: int) -> Op:
        """Return the operator for ``code``, raising InvalidOpcodeError if none."""
        if not 0 <= code <= 0xFF or code in self._internal:
            raise InvalidOpcodeError(code)
        op = self._ops.get(code)
        if op is None or not op.is_valid():
            raise InvalidOpcodeError(code)
        return op


# Opcodes reserved for the interpreter's own use; never valid in modules.
_INTERNAL_OPCODES = {0xFE}

_TABLE = OperatorTable(_INTERNAL_OPCODES)


def lookup(code: int) -> Op:
    """Return the standard operator for ``code``."""
    return _TABLE.get(code)


_I32 = ValueType.I32
_I64 = ValueType.I64
_F32 = ValueType.F32
_F64 = ValueType.F64

_add = _TABLE.add
_poly = _TABLE.add_polymorphic
_conv = _TABLE.add_conversion

# control
UNREACHABLE = _add(0x00, "unreachable", None, NO_RETURN)
NOP = _add(0x01, "nop", None, NO_RETURN)
BLOCK = _add(0x02, "block", None, NO_RETURN)
LOOP = _add(0x03, "loop", None, NO_RETURN)
IF = _add(0x04, "if", [_I32], NO_RETURN)
ELSE = _add(0x05, "else", None, NO_RETURN)
END = _add(0x0B, "end", None, NO_RETURN)
BR = _poly(0x0C, "br")
BR_IF = _add(0x0D, "br_if", [_I32], NO_RETURN)
BR_TABLE = _poly(0x0E, "br_table")
RETURN = _poly(0x0F, "return")

# calls
CALL = _poly(0x10, "call")
CALL_INDIRECT = _poly(0x11, "call_indirect")

# parametric
DROP = _poly(0x1A, "drop")
SELECT = _poly(0x1B, "select")

# variables
GET_LOCAL = _poly(0x20, "get_local")
SET_LOCAL = _poly(0x21, "set_local")
TEE_LOCAL = _poly(0x22, "tee_local")
GET_GLOBAL = _poly(0x23, "get_global")
SET_GLOBAL = _poly(0x24, "set_global")

# memory
I32_LOAD = _add(0x28, "i32.load", [_I32], _I32)
I64_LOAD = _add(0x29, "i64.load", [_I32], _I64)
F32_LOAD = _add(0x2A, "f32.load", [_I32], _F32)
F64_LOAD = _add(0x2B, "f64.load", [_I32], _F64)
I32_LOAD8_S = _add(0x2C, "i32.load8_s", [_I32], _I32)
I32_LOAD8_U = _add(0x2D, "i32.load8_u", [_I32], _I32)
I32_LOAD16_S = _add(0x2E, "i32.load16_s", [_I32], _I32)
I32_LOAD16_U = _add(0x2F, "i32.load16_u", [_I32], _I32)
I64_LOAD8_S = _add(0x30, "i64.load8_s", [_I32], _I64)
I64_LOAD8_U = _add(0x31, "i64.load8_u", [_I32], _I64)
I64_LOAD16_S = _add(0x32, "i64.load16_s", [_I32], _I64)
I64_LOAD16_U = _add(0x33, "i64.load16_u", [_I32], _I64)
I64_LOAD32_S = _add(0x34, "i64.load32_s", [_I32], _I64)
I64_LOAD32_U = _add(0x35, "i64.load32_u", [_I32], _I64)

I32_STORE = _add(0x36, "i32.store", [_I32, _I32], NO_RETURN)
I64_STORE = _add(0x37, "i64.store", [_I64, _I32], NO_RETURN)
F32_STORE = _add(0x38, "f32.store", [_F32, _I32], NO_RETURN)
F64_STORE = _add(0x39, "f64.store", [_F64, _I32], NO_RETURN)
I32_STORE8 = _add(0x3A, "i32.store8", [_I32, _I32], NO_RETURN)
I32_STORE16 = _add(0x3B, "i32.store16", [_I32, _I32], NO_RETURN)
I64_STORE8 = _add(0x3C, "i64.store8", [_I64, _I32], NO_RETURN)
I64_STORE16 = _add(0x3D, "i64.store16", [_I64, _I32], NO_RETURN)
I64_STORE32 = _add(0x3E, "i64.store32", [_I64, _I32], NO_RETURN)

CURRENT_MEMORY = _add(0x3F, "memory.size", None, _I32)
GROW_MEMORY = _add(0x40, "memory.grow", [_I32], _I32)

# constants
I32_CONST = _add(0x41, "i32.const", None, _I32)
I64_CONST = _add(0x42, "i64.const", None, _I64)
F32_CONST = _add(0x43, "f32.const", None, _F32)
F64_CONST = _add(0x44, "f64.const", None, _F64)

# comparison
I32_EQZ = _add(0x45, "i32.eqz", [_I32], _I32)
I32_EQ = _add(0x46, "i32.eq", [_I32, _I32], _I32)
I32_NE = _add(0x47, "i32.ne", [_I32, _I32], _I32)
I32_LT_S = _add(0x48, "i32.lt_s", [_I32, _I32], _I32)
I32_LT_U = _add(0x49, "i32.lt_u", [_I32, _I32], _I32)
I32_GT_S = _add(0x4A, "i32.gt_s", [_I32, _I32], _I32)
I32_GT_U = _add(0x4B, "i32.gt_u", [_I32, _I32], _I32)
I32_LE_S = _add(0x4C, "i32.le_s", [_I32, _I32], _I32)
I32_LE_U = _add(0x4D, "i32.le_u", [_I32, _I32], _I32)
I32_GE_S = _add(0x4E, "i32.ge_s", [_I32, _I32], _I32)
I32_GE_U = _add(0x4F, "i32.ge_u", [_I32, _I32], _I32)
I64_EQZ = _add(0x50, "i64.eqz", [_I64], _I32)
I64_EQ = _add(0x51, "i64.eq", [_I64, _I64], _I32)
I64_NE = _add(0x52, "i64.ne", [_I64, _I64], _I32)
I64_LT_S = _add(0x53, "i64.lt_s", [_I64, _I64], _I32)
I64_LT_U = _add(0x54, "i64.lt_u", [_I64, _I64], _I32)
I64_GT_S = _add(0x55, "i64.gt_s", [_I64, _I64], _I32)
I64_GT_U = _add(0x56, "i64.gt_u", [_I64, _I64], _I32)
I64_LE_S = _add(0x57, "i64.le_s", [_I64, _I64], _I32)
I64_LE_U = _add(0x58, "i64.le_u", [_I64, _I64], _I32)
I64_GE_S = _add(0x59, "i64.ge_s", [_I64, _I64], _I32)
I64_GE_U = _add(0x5A, "i64.ge_u", [_I64, _I64], _I32)
F32_EQ = _add(0x5B, "f32.eq", [_F32, _F32], _I32)
F32_NE = _add(0x5C, "f32.ne", [_F32, _F32], _I32)
F32_LT = _add(0x5D, "f32.lt", [_F32, _F32], _I32)
F32_GT = _add(0x5E, "f32.gt", [_F32, _F32], _I32)
F32_LE = _add(0x5F, "f32.le", [_F32, _F32], _I32)
F32_GE = _add(0x60, "f32.ge", [_F32, _F32], _I32)
F64_EQ = _add(0x61, "f64.eq", [_F64, _F64], _I32)
F64_NE = _add(0x62, "f64.ne", [_F64, _F64], _I32)
F64_LT = _add(0x63, "f64.lt", [_F64, _F64], _I32)
F64_GT = _add(0x64, "f64.gt", [_F64, _F64], _I32)
F64_LE = _add(0x65, "f64.le", [_F64, _F64], _I32)
F64_GE = _add(0x66, "f64.ge", [_F64, _F64], _I32)

# numeric
I32_CLZ = _add(0x67, "i32.clz", [_I32], _I32)
I32_CTZ = _add(0x68, "i32.ctz", [_I32], _I32)
I32_POPCNT = _add(0x69, "i32.popcnt", [_I32], _I32)
I32_ADD = _add(0x6A, "i32.add", [_I32, _I32], _I32)
I32_SUB = _add(0x6B, "i32.sub", [_I32, _I32], _I32)
I32_MUL = _add(0x6C, "i32.mul", [_I32, _I32], _I32)
I32_DIV_S = _add(0x6D, "i32.div_s", [_I32, _I32], _I32)
I32_DIV_U = _add(0x6E, "i32.div_u", [_I32, _I32], _I32)
I32_REM_S = _add(0x6F, "i32.rem_s", [_I32, _I32], _I32)
I32_REM_U = _add(0x70, "i32.rem_u", [_I32, _I32], _I32)
I32_AND = _add(0x71, "i32.and", [_I32, _I32], _I32)
I32_OR = _add(0x72, "i32.or", [_I32, _I32], _I32)
I32_XOR = _add(0x73, "i32.xor", [_I32, _I32], _I32)
I32_SHL = _add(0x74, "i32.shl", [_I32, _I32], _I32)
I32_SHR_S = _add(0x75, "i32.shr_s", [_I32, _I32], _I32)
I32_SHR_U = _add(0x76, "i32.shr_u", [_I32, _I32], _I32)
I32_ROTL = _add(0x77, "i32.rotl", [_I32, _I32], _I32)
I32_ROTR = _add(0x78, "i32.rotr", [_I32, _I32], _I32)
I64_CLZ = _add(0x79, "i64.clz", [_I64], _I64)
I64_CTZ = _add(0x7A, "i64.ctz", [_I64], _I64)
I64_POPCNT = _add(0x7B, "i64.popcnt", [_I64], _I64)
I64_ADD = _add(0x7C, "i64.add", [_I64, _I64], _I64)
I64_SUB = _add(0x7D, "i64.sub", [_I64, _I64], _I64)
I64_MUL = _add(0x7E, "i64.mul", [_I64, _I64], _I64)
I64_DIV_S = _add(0x7F, "i64.div_s", [_I64, _I64], _I64)
I64_DIV_U = _add(0x80, "i64.div_u", [_I64, _I64], _I64)
I64_REM_S = _add(0x81, "i64.rem_s", [_I64, _I64], _I64)
I64_REM_U = _add(0x82, "i64.rem_u", [_I64, _I64], _I64)
I64_AND = _add(0x83, "i64.and", [_I64, _I64], _I64)
I64_OR = _add(0x84, "i64.or", [_I64, _I64], _I64)
I64_XOR = _add(0x85, "i64.xor", [_I64, _I64], _I64)
I64_SHL = _add(0x86, "i64.shl", [_I64, _I64], _I64)
I64_SHR_S = _add(0x87, "i64.shr_s", [_I64, _I64], _I64)
I64_SHR_U = _add(0x88, "i64.shr_u", [_I64, _I64], _I64)
I64_ROTL = _add(0x89, "i64.rotl", [_I64, _I64], _I64)
I64_ROTR = _add(0x8A, "i64.rotr", [_I64, _I64], _I64)
F32_ABS = _add(0x8B, "f32.abs", [_F32], _F32)
F32_NEG = _add(0x8C, "f32.neg", [_F32], _F32)
F32_CEIL = _add(0x8D, "f32.ceil", [_F32], _F32)
F32_FLOOR = _add(0x8E, "f32.floor", [_F32], _F32)
F32_TRUNC = _add(0x8F, "f32.trunc", [_F32], _F32)
F32_NEAREST = _add(0x90, "f32.nearest", [_F32], _F32)
F32_SQRT = _add(0x91, "f32.sqrt", [_F32], _F32)
F32_ADD = _add(0x92, "f32.add", [_F32, _F32], _F32)
F32_SUB = _add(0x93, "f32.sub", [_F32, _F32], _F32)
F32_MUL = _add(0x94, "f32.mul", [_F32, _F32], _F32)
F32_DIV = _add(0x95, "f32.div", [_F32, _F32], _F32)
F32_MIN = _add(0x96, "f32.min", [_F32, _F32], _F32)
F32_MAX = _add(0x97, "f32.max", [_F32, _F32], _F32)
F32_COPYSIGN = _add(0x98, "f32.copysign", [_F32, _F32], _F32)
F64_ABS = _add(0x99, "f64.abs", [_F64], _F64)
F64_NEG = _add(0x9A, "f64.neg", [_F64], _F64)
F64_CEIL = _add(0x9B, "f64.ceil", [_F64], _F64)
F64_FLOOR = _add(0x9C, "f64.floor", [_F64], _F64)
F64_TRUNC = _add(0x9D, "f64.trunc", [_F64], _F64)
F64_NEAREST = _add(0x9E, "f64.nearest", [_F64], _F64)
F64_SQRT = _add(0x9F, "f64.sqrt", [_F64], _F64)
F64_ADD = _add(0xA0, "f64.add", [_F64, _F64], _F64)
F64_SUB = _add(0xA1, "f64.sub", [_F64, _F64], _F64)
F64_MUL = _add(0xA2, "f64.mul", [_F64, _F64], _F64)
F64_DIV = _add(0xA3, "f64.div", [_F64, _F64], _F64)
F64_MIN = _add(0xA4, "f64.min", [_F64, _F64], _F64)
F64_MAX = _add(0xA5, "f64.max", [_F64, _F64], _F64)
F64_COPYSIGN = _add(0xA6, "f64.copysign", [_F64, _F64], _F64)

# conversions
I32_WRAP_I64 = _conv(0xA7, "i32.wrap/i64")
I32_TRUNC_S_F32 = _conv(0xA8, "i32.trunc_s/f32")
I32_TRUNC_U_F32 = _conv(0xA9, "i32.trunc_u/f32")
I32_TRUNC_S_F64 = _conv(0xAA, "i32.trunc_s/f64")
I32_TRUNC_U_F64 = _conv(0xAB, "i32.trunc_u/f64")
I64_EXTEND_S_I32 = _conv(0xAC, "i64.extend_s/i32")
I64_EXTEND_U_I32 = _conv(0xAD, "i64.extend_u/i32")
I64_TRUNC_S_F32 = _conv(0xAE, "i64.trunc_s/f32")
I64_TRUNC_U_F32 = _conv(0xAF, "i64.trunc_u/f32")
I64_TRUNC_S_F64 = _conv(0xB0, "i64.trunc_s/f64")
I64_TRUNC_U_F64 = _conv(0xB1, "i64.trunc_u/f64")
F32_CONVERT_S_I32 = _conv(0xB2, "f32.convert_s/i32")
F32_CONVERT_U_I32 = _conv(0xB3, "f32.convert_u/i32")
F32_CONVERT_S_I64 = _conv(0xB4, "f32.convert_s/i64")
F32_CONVERT_U_I64 = _conv(0xB5, "f32.convert_u/i64")
F32_DEMOTE_F64 = _conv(0xB6, "f32.demote/f64")
F64_CONVERT_S_I32 = _conv(0xB7, "f64.convert_s/i32")
F64_CONVERT_U_I32 = _conv(0xB8, "f64.convert_u/i32")
F64_CONVERT_S_I64 = _conv(0xB9, "f64.convert_s/i64")
F64_CONVERT_U_I64 = _conv(0xBA, "f64.convert_u/i64")
F64_PROMOTE_F32 = _conv(0xBB, "f64.promote/f32")

# reinterpretations
I32_REINTERPRET_F32 = _add(0xBC, "i32.reinterpret/f32", [_F32], _I32)
I64_REINTERPRET_F64 = _add(0xBD, "i64.reinterpret/f64", [_F64], _I64)
F32_REINTERPRET_I32 = _add(0xBE, "f32.reinterpret/i32", [_I32], _F32)
F64_REINTERPRET_I64 = _add(0xBF, "f64.reinterpret/i64", [_I64], _F64)

# interpreter-internal
WAGON_NATIVE_EXEC = _add(0xFE, "wagon.nativeExec", [_I64], NO_RETURN)

del _add, _poly, _conv