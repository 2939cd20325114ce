"""Intcode execute loop shared by the batch evaluator and the interactive runner.

Embedded by the transpiler into resumed programs together with ``errors``
and ``decoder``; keep its imports to the standard library and numpy.
"""

from __future__ import annotations
import re
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from errors import AddressOutOfRange, ArithmeticOverflow, IntcodeError, NegativePositionalParameter
from decoder import (
    Add,
    End,
    Equals,
    Halt,
    Input,
    Instruction,
    JumpIfFalse,
    JumpIfTrue,
    LessThan,
    Multiply,
    Output,
    Parameter,
    Position,
    decode,
)


HALTED = "halted"
SUSPENDED = "suspended"

CELL_MIN = -(1 << 63)
CELL_MAX = (1 << 63) - 1

# Signed decimal, ASCII digits only. int() alone would also accept
# surrounding spaces and digit-group underscores.
INTEGER = re.compile(r"[+-]?[0-9]+")

InputSource = Callable[[], Optional[int]]
OutputSink = Callable[[int], None]
StepHook = Callable[[Instruction, NDArray[np.int64]], None]


@dataclass
class EvalResult:
    output: List[int]
    memory: NDArray[np.int64]
    pointer: int
    used_input: int
    completed: bool


@dataclass
class Machine:
    memory: NDArray[np.int64]
    pointer: int = 0
    used_input: int = 0
    output: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.pointer < 0:
            raise ValueError(f"Instruction pointer must be non-negative, got {self.pointer}")

    @classmethod
    def from_program(cls, program: Sequence[int], pointer: int = 0) -> "Machine":
        # Always copy: the caller's image must survive the run untouched.
        return cls(memory=np.array(program, dtype=np.int64), pointer=pointer)

    def result(self, status: str) -> EvalResult:
        return EvalResult(
            output=list(self.output),
            memory=self.memory.copy(),
            pointer=self.pointer,
            used_input=self.used_input,
            completed=status == HALTED,
        )

    def execute(self, read_input: InputSource, write_output: OutputSink, on_step: Optional[StepHook] = None) -> str:
        """Run until Halt/End or until ``read_input`` has nothing to give.

        The pointer only moves once an instruction has fully executed, so on
        suspension or failure it still addresses the instruction involved.
        """
        memory = self.memory
        while True:
            instruction, following = decode(memory, self.pointer)
            if on_step is not None:
                on_step(instruction, memory)
            if isinstance(instruction, (Halt, End)):
                self.pointer = following
                return HALTED
            if isinstance(instruction, Input):
                value = read_input()
                if value is None:
                    return SUSPENDED
                self._store(instruction.to, value, instruction)
                self.used_input += 1
                self.pointer = following
                continue
            if isinstance(instruction, Output):
                value = self._load(instruction.source, instruction)
                self.output.append(value)
                write_output(value)
                self.pointer = following
                continue
            if isinstance(instruction, (JumpIfTrue, JumpIfFalse)):
                test = self._load(instruction.test, instruction)
                if (test != 0) == isinstance(instruction, JumpIfTrue):
                    target = self._load(instruction.goto, instruction)
                    if target < 0:
                        raise NegativePositionalParameter(target, 1, instruction.opcode, following)
                    self.pointer = target
                else:
                    self.pointer = following
                continue
            n1 = self._load(instruction.n1, instruction)
            n2 = self._load(instruction.n2, instruction)
            if isinstance(instruction, Add):
                value = n1 + n2
            elif isinstance(instruction, Multiply):
                value = n1 * n2
            elif isinstance(instruction, LessThan):
                value = 1 if n1 < n2 else 0
            elif isinstance(instruction, Equals):
                value = 1 if n1 == n2 else 0
            else:
                raise TypeError(f"Unhandled instruction {instruction.__class__.__name__}")
            self._store(instruction.to, value, instruction)
            self.pointer = following

    def _load(self, param: Parameter, instruction: Instruction) -> int:
        if isinstance(param, Position) and param.index >= len(self.memory):
            raise AddressOutOfRange(param.index, instruction.opcode, instruction.position)
        return param.value(self.memory)

    def _store(self, target: Position, value: int, instruction: Instruction) -> None:
        if target.index >= len(self.memory):
            raise AddressOutOfRange(target.index, instruction.opcode, instruction.position)
        if value < CELL_MIN or value > CELL_MAX:
            raise ArithmeticOverflow(value, instruction.opcode, instruction.position)
        self.memory[target.index] = value


def evaluate(
    program: Sequence[int],
    inputs: Sequence[int],
    on_step: Optional[StepHook] = None,
    pointer: int = 0,
) -> EvalResult:
    """Batch evaluation: no I/O, stops on Halt/End or when ``inputs`` run out.

    ``pointer`` lets a suspended evaluation continue from its resume point.
    """
    machine = Machine.from_program(program, pointer)
    supplied = list(inputs)

    def _next_input() -> Optional[int]:
        if machine.used_input < len(supplied):
            return int(supplied[machine.used_input])
        return None

    try:
        status = machine.execute(_next_input, lambda value: None, on_step)
    except IntcodeError as error:
        error.snapshot = machine.result(SUSPENDED)
        raise
    return machine.result(status)


def stdin_provider(prompt: str = "> ") -> Callable[[], str]:
    def _read() -> str:
        sys.stderr.write(prompt)
        sys.stderr.flush()
        line = sys.stdin.readline()
        if not line:
            raise EOFError
        return line

    return _read


def print_sink(value: int) -> None:
    print(value, flush=True)


def read_integer(input_provider: Callable[[], str]) -> Optional[int]:
    """Prompt until a line parses as a 64-bit integer; None on end of stream."""
    while True:
        try:
            line = input_provider()
        except EOFError:
            return None
        text = line.strip()
        if INTEGER.fullmatch(text) is None:
            sys.stderr.write(f"Not an integer: {text!r}\n")
            continue
        value = int(text)
        if value < CELL_MIN or value > CELL_MAX:
            sys.stderr.write(f"Out of range: {text!r}\n")
            continue
        return value


def run_interactive(
    memory: Sequence[int],
    pointer: int = 0,
    input_provider: Optional[Callable[[], str]] = None,
    output_sink: Optional[OutputSink] = None,
    on_step: Optional[StepHook] = None,
) -> EvalResult:
    """Run from ``pointer`` reading input from the terminal as it is needed.

    Output goes to ``output_sink`` as soon as it is produced. The run only
    suspends if the provider reports end of stream.
    """
    machine = Machine.from_program(memory, pointer)
    provider = input_provider or stdin_provider()
    sink = output_sink or print_sink
    try:
        status = machine.execute(lambda: read_integer(provider), sink, on_step)
    except IntcodeError as error:
        error.snapshot = machine.result(SUSPENDED)
        raise
    return machine.result(status)
