"""A type-checking stack machine used to validate function bodies."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from wasmbin import leb128
from wasmbin.binary import WasmError
from wasmbin.operators import NO_RETURN, Op, lookup
from wasmbin.sections import SectionID
from wasmbin.types import value_type_name

UNKNOWN_TYPE = 0

_logger = logging.getLogger("wasmbin.validate")
_logger.addHandler(logging.NullHandler())


class ValidationError(WasmError):
    """A function body failed validation."""

    def __init__(self, offset: int, function: int, cause: BaseException) -> None:
        super().__init__(
            f"error while validating function {function} at offset {offset}: {cause}"
        )
        self.offset = offset
        self.function = function
        self.cause = cause


class StackUnderflowError(WasmError):
    """An operand was needed but the stack of the current block was empty."""

    def __init__(self) -> None:
        super().__init__("validate: stack underflow")


class InvalidImmediateError(WasmError):
    """An immediate operand of an instruction has an invalid value."""

    def __init__(self, imm_type: str, op_name: str) -> None:
        super().__init__(
            f"invalid immediate for op {op_name} at (should be {imm_type})"
        )
        self.imm_type = imm_type
        self.op_name = op_name


class UnmatchedOpError(WasmError):
    """A structured control instruction without its opening counterpart."""

    def __init__(self, opcode: int) -> None:
        super().__init__(f"encountered unmatched {lookup(opcode).name}")
        self.opcode = opcode


class InvalidLabelError(WasmError):
    """A branch refers to a block nesting depth that does not exist."""

    def __init__(self, depth: int) -> None:
        super().__init__(f"invalid nesting depth {depth}")
        self.depth = depth


class InvalidLocalIndexError(WasmError):
    """A reference to a local variable that does not exist."""

    def __init__(self, index: int) -> None:
        super().__init__(f"invalid index for local variable {index}")
        self.index = index


class InvalidTypeError(WasmError):
    """An operand of the wrong type."""

    def __init__(self, wanted: int, got: int) -> None:
        super().__init__(
            f"invalid type, got: {value_type_name(got)}, "
            f"wanted: {value_type_name(wanted)}"
        )
        self.wanted = wanted
        self.got = got


class InvalidElementIndexError(WasmError):
    """A reference to a table element that does not exist."""

    def __init__(self, index: int) -> None:
        super().__init__(f"invalid element index {index}")
        self.index = index


class NoSectionError(WasmError):
    """Code refers to a section the module does not have."""

    def __init__(self, section_id: int) -> None:
        super().__init__(
            f"reference to non existant section (id {int(section_id)}) in module"
        )
        self.section_id = SectionID(section_id)


@dataclass(frozen=True)
class Operand:
    """A value on the checking stack; type 0 stands for an unknown type."""

    type: int

    def equal(self, value_type: int) -> bool:
        """Whether this operand matches ``value_type`` for type checking."""
        if self.type == UNKNOWN_TYPE or value_type == UNKNOWN_TYPE:
            return True
        return self.type == value_type


@dataclass
class Frame:
    """A structured control block being checked."""

    pc: int = 0
    label_types: list = field(default_factory=list)
    end_types: list = field(default_factory=list)
    stack_height: int = 0
    op: int = 0
    unreachable: bool = False

    def matching_label_types(self, other: "Frame") -> None:
        """Raise unless ``other`` has label types compatible with this frame's."""
        if len(self.label_types) != len(other.label_types):
            raise WasmError(
                f"label type len mismatch: {len(self.label_types)} != "
                f"{len(other.label_types)}"
            )
        for mine, theirs in zip(self.label_types, other.label_types):
            if not Operand(mine).equal(theirs):
                raise InvalidTypeError(mine, theirs)


class MockVM:
    """A minimal machine that tracks operand types instead of values."""

    def __init__(self, code: bytes, return_types: Iterable[int]) -> None:
        self.code = io.BytesIO(bytes(code))
        self.stack: list[Operand] = []
        # The outermost frame is the function itself.
        self.ctrl_frames: list[Frame] = [Frame(end_types=list(return_types))]

    def fetch_var_uint(self) -> int:
        return leb128.read_var_uint32(self.code)

    def fetch_var_int(self) -> int:
        return leb128.read_var_int32(self.code)

    def fetch_var_int64(self) -> int:
        return leb128.read_var_int64(self.code)

    def fetch_byte(self) -> int:
        data = self.code.read(1)
        if not data:
            raise EOFError("end of code")
        return data[0]

    def _fetch_fixed(self, size: int) -> int:
        data = self.code.read(size)
        if len(data) < size:
            raise EOFError("unexpected end of code")
        return int.from_bytes(data, "little")

    def fetch_uint32(self) -> int:
        return self._fetch_fixed(4)

    def fetch_uint64(self) -> int:
        return self._fetch_fixed(8)

    def push_frame(self, op: int, label_types: Iterable[int], end_types: Iterable[int]) -> None:
        """Open a new control block."""
        frame = Frame(
            pc=self.pc(),
            label_types=list(label_types or ()),
            end_types=list(end_types or ()),
            stack_height=len(self.stack),
            op=op,
        )
        self.ctrl_frames.append(frame)
        _logger.debug("Pushed frame %r", frame)

    def frame_at_depth(self, depth: int) -> Optional[Frame]:
        """Return the frame ``depth`` levels out from the innermost one, or None."""
        if not 0 <= depth < len(self.ctrl_frames):
            return None
        return self.ctrl_frames[-1 - depth]

    def pop_frame(self) -> Frame:
        """Close the innermost block, checking its results and stack balance."""
        top = self.top_frame()
        if top is None:
            raise WasmError("missing frame")
        for expected in reversed(top.end_types):
            operand = self.pop_operand()
            if not operand.equal(expected):
                raise InvalidTypeError(expected, operand.type)
        if len(self.stack) != top.stack_height:
            raise WasmError("unbalanced stack")
        self.ctrl_frames.pop()
        _logger.debug("Removed frame %r", top)
        return top

    def top_frame(self) -> Optional[Frame]:
        return self.ctrl_frames[-1] if self.ctrl_frames else None

    def top_frame_unreachable(self) -> bool:
        top = self.top_frame()
        if top is None:
            raise WasmError("missing frame")
        return top.unreachable

    def pop_operand(self) -> Operand:
        """Pop an operand; yields an unknown-typed one in unreachable code."""
        top = self.top_frame()
        if top is None:
            raise WasmError("missing frame")
        if len(self.stack) == top.stack_height:
            if top.unreachable:
                return Operand(UNKNOWN_TYPE)
            raise StackUnderflowError()
        return self.stack.pop()

    def push_operand(self, value_type: int) -> None:
        self.stack.append(Operand(value_type))

    def adjust_stack(self, op: Op) -> None:
        """Pop and check the fixed arguments of ``op`` and push its result."""
        for expected in op.args:
            operand = self.pop_operand()
            if not operand.equal(expected):
                raise InvalidTypeError(expected, operand.type)
        if op.returns != NO_RETURN:
            self.push_operand(op.returns)

    def set_unreachable(self) -> None:
        """Mark the rest of the innermost block as unreachable."""
        top = self.top_frame()
        if top is None:
            raise WasmError("missing frame")
        top.unreachable = True
        del self.stack[top.stack_height:]

    def pc(self) -> int:
        """The offset of the next byte to be read from the code."""
        return self.code.tell()