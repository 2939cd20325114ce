"""Operand resolution and instruction decoding for Intcode.

An instruction word packs the opcode into its two lowest decimal digits and
one addressing-mode digit per operand above them::

    1002  ->  opcode 02, modes (0, 1, 0)

Only the standard library may be imported here: the transpiler embeds this
module into resumed programs.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Dict, List, Optional, Sequence, Tuple, Union

from errors import (
    IntcodeError,
    InvalidOpcode,
    InvalidParameterMode,
    MissingParameter,
    NegativePositionalParameter,
)


POSITION_MODE = 0
IMMEDIATE_MODE = 1


@dataclass(frozen=True)
class Position:
    index: int

    def value(self, memory: Sequence[int]) -> int:
        return int(memory[self.index])

    def render(self) -> str:
        return f"[{self.index}]"


@dataclass(frozen=True)
class Immediate:
    literal: int

    def value(self, memory: Sequence[int]) -> int:
        return self.literal

    def render(self) -> str:
        return str(self.literal)


Parameter = Union[Position, Immediate]


def _digit(word: int, divisor: int, modulus: int) -> int:
    # Truncating division with the remainder taking the sign of the word,
    # so a negative word decodes to a negative opcode instead of wrapping.
    digit = abs(word) // divisor % modulus
    return -digit if word < 0 else digit


def resolve(memory: Sequence[int], cursor: int, mode: int, parameter: int, opcode: int) -> Tuple[Parameter, int]:
    if cursor >= len(memory):
        raise MissingParameter(parameter, opcode, cursor)
    word = int(memory[cursor])
    cursor += 1
    if mode == POSITION_MODE:
        if word < 0:
            raise NegativePositionalParameter(word, parameter, opcode, cursor)
        return Position(word), cursor
    if mode == IMMEDIATE_MODE:
        return Immediate(word), cursor
    raise InvalidParameterMode(mode, parameter, opcode, cursor)


def resolve_positional(memory: Sequence[int], cursor: int, mode: int, parameter: int, opcode: int) -> Tuple[Position, int]:
    """Resolve a write-target operand; a literal cannot be written to."""
    param, cursor = resolve(memory, cursor, mode, parameter, opcode)
    if not isinstance(param, Position):
        raise InvalidParameterMode(mode, parameter, opcode, cursor)
    return param, cursor


@dataclass(frozen=True)
class Instruction:
    position: int

    opcode = 0
    mnemonic = "?"

    def operands(self) -> List[Tuple[str, Parameter]]:
        return [(f.name, getattr(self, f.name)) for f in fields(self) if f.name != "position"]


@dataclass(frozen=True)
class Add(Instruction):
    n1: Parameter
    n2: Parameter
    to: Position

    opcode = 1
    mnemonic = "ADD"


@dataclass(frozen=True)
class Multiply(Instruction):
    n1: Parameter
    n2: Parameter
    to: Position

    opcode = 2
    mnemonic = "MUL"


@dataclass(frozen=True)
class Input(Instruction):
    to: Position

    opcode = 3
    mnemonic = "IN"


@dataclass(frozen=True)
class Output(Instruction):
    source: Parameter

    opcode = 4
    mnemonic = "OUT"


@dataclass(frozen=True)
class JumpIfTrue(Instruction):
    test: Parameter
    goto: Parameter

    opcode = 5
    mnemonic = "JNZ"


@dataclass(frozen=True)
class JumpIfFalse(Instruction):
    test: Parameter
    goto: Parameter

    opcode = 6
    mnemonic = "JZ"


@dataclass(frozen=True)
class LessThan(Instruction):
    n1: Parameter
    n2: Parameter
    to: Position

    opcode = 7
    mnemonic = "LT"


@dataclass(frozen=True)
class Equals(Instruction):
    n1: Parameter
    n2: Parameter
    to: Position

    opcode = 8
    mnemonic = "EQ"


@dataclass(frozen=True)
class Halt(Instruction):
    opcode = 99
    mnemonic = "HALT"


@dataclass(frozen=True)
class End(Instruction):
    """No word left at the instruction pointer; behaves like Halt."""

    opcode = 0
    mnemonic = "END"


# opcode -> (instruction class, write-target flag per operand)
SHAPES: Dict[int, Tuple[type, Tuple[bool, ...]]] = {
    1: (Add, (False, False, True)),
    2: (Multiply, (False, False, True)),
    3: (Input, (True,)),
    4: (Output, (False,)),
    5: (JumpIfTrue, (False, False)),
    6: (JumpIfFalse, (False, False)),
    7: (LessThan, (False, False, True)),
    8: (Equals, (False, False, True)),
    99: (Halt, ()),
}


def decode(memory: Sequence[int], pointer: int) -> Tuple[Instruction, int]:
    """Decode the instruction at ``pointer``.

    Returns the instruction and the position just past its last operand.
    """
    if pointer >= len(memory):
        return End(pointer), pointer
    word = int(memory[pointer])
    cursor = pointer + 1
    opcode = _digit(word, 1, 100)
    shape = SHAPES.get(opcode)
    if shape is None:
        raise InvalidOpcode(opcode, cursor)
    cls, roles = shape
    params: List[Parameter] = []
    for k, write_target in enumerate(roles):
        mode = _digit(word, 10 ** (2 + k), 10)
        param: Parameter
        if write_target:
            param, cursor = resolve_positional(memory, cursor, mode, k, opcode)
        else:
            param, cursor = resolve(memory, cursor, mode, k, opcode)
        params.append(param)
    return cls(pointer, *params), cursor


def format_instruction(instruction: Instruction) -> str:
    rendered = ", ".join(param.render() for _name, param in instruction.operands())
    text = f"{instruction.position:>5}: {instruction.mnemonic}"
    return f"{text} {rendered}" if rendered else text


def disassemble(memory: Sequence[int], start: int = 0, stop: Optional[int] = None) -> List[str]:
    """Linear sweep listing; words that do not decode are shown as data."""
    lines: List[str] = []
    end = len(memory) if stop is None else min(stop, len(memory))
    pointer = start
    while pointer < end:
        try:
            instruction, following = decode(memory, pointer)
        except IntcodeError:
            lines.append(f"{pointer:>5}: DATA {int(memory[pointer])}")
            pointer += 1
            continue
        lines.append(format_instruction(instruction))
        pointer = following
    return lines
