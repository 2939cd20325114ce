from __future__ import annotations
import json
import os
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from checkpoint import Checkpoint, resume
from decoder import Instruction, Position, format_instruction
from errors import IntcodeError
from loader import load
from machine import EvalResult, OutputSink, evaluate, print_sink, run_interactive, stdin_provider


DEFAULT_HISTORY = 1000


@dataclass
class StepEntry:
    step_index: int
    state_id: str
    position: int
    mnemonic: str
    statement: str
    operand_snapshot: Optional[Dict[str, Any]]


class StateLogger:
    """Execution trace: one entry per decoded instruction.

    Only the most recent ``history`` entries are retained.
    """

    def __init__(self, verbose: bool, history: int = DEFAULT_HISTORY) -> None:
        self.verbose = verbose
        self.entries: Deque[StepEntry] = deque(maxlen=history)
        self.next_state_index = 0

    def record(self, instruction: Instruction, memory: NDArray[np.int64]) -> StepEntry:
        snapshot: Optional[Dict[str, Any]] = None
        if self.verbose:
            snapshot = {}
            for name, param in instruction.operands():
                if isinstance(param, Position) and param.index >= len(memory):
                    snapshot[name] = "?"
                else:
                    snapshot[name] = param.value(memory)
        step_index = self.next_state_index
        entry = StepEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            position=instruction.position,
            mnemonic=instruction.mnemonic,
            statement=format_instruction(instruction).strip(),
            operand_snapshot=snapshot,
        )
        self.entries.append(entry)
        self.next_state_index += 1
        return entry

    def reset(self) -> None:
        self.entries.clear()
        self.next_state_index = 0


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool = False,
        input_provider: Optional[Callable[[], str]] = None,
        output_sink: Optional[OutputSink] = None,
        history: int = DEFAULT_HISTORY,
    ) -> None:
        self.source = source
        self.filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.verbose = verbose
        self.input_provider = input_provider or stdin_provider()
        self.output_sink = output_sink or print_sink
        self.logger = StateLogger(verbose=verbose, history=history)
        self._program: Optional[List[int]] = None

    @property
    def program(self) -> List[int]:
        if self._program is None:
            self._program = load(self.source)
        return self._program

    def parse(self) -> List[int]:
        return self.program

    def evaluate(self, inputs: Sequence[int], *, memory: Optional[Sequence[int]] = None, pointer: int = 0) -> EvalResult:
        image = self.program if memory is None else memory
        self.logger.reset()
        try:
            return evaluate(image, inputs, self.logger.record, pointer)
        except IntcodeError as error:
            self._mark_failure(error)
            raise

    def run(self, *, memory: Optional[Sequence[int]] = None, pointer: int = 0) -> EvalResult:
        """Interactive run; output is forwarded to the sink as it is produced."""
        image = self.program if memory is None else memory
        self.logger.reset()
        try:
            return run_interactive(image, pointer, self.input_provider, self.output_sink, self.logger.record)
        except IntcodeError as error:
            self._mark_failure(error)
            raise

    def resume(self, checkpoint: Checkpoint, inputs: Sequence[int]) -> EvalResult:
        """Batch continuation of ``checkpoint``; output includes the checkpoint's."""
        self.logger.reset()
        try:
            return resume(checkpoint, inputs, self.logger.record)
        except IntcodeError as error:
            self._mark_failure(error)
            raise

    def _mark_failure(self, error: IntcodeError) -> None:
        if self.logger.entries:
            error.step_index = self.logger.entries[-1].step_index


class FaultFormatter:
    def __init__(self, interpreter: Interpreter, depth: int = 5) -> None:
        self.interpreter = interpreter
        self.depth = depth

    def recent_steps(self) -> List[StepEntry]:
        entries = list(self.interpreter.logger.entries)
        return entries[-self.depth:] if self.depth > 0 else []

    def format_text(self, error: IntcodeError, verbose: bool) -> str:
        lines = ["Traceback (most recent step last):"]
        lines.append(f'  Program "{self.interpreter.filename}"')
        for entry in self.recent_steps():
            lines.append(f"  Step {entry.step_index} ({entry.state_id}) at position {entry.position}")
            lines.append(f"    {entry.statement}")
            if verbose and entry.operand_snapshot:
                snapshot = ", ".join(f"{k}={v}" for k, v in entry.operand_snapshot.items())
                lines.append(f"    Operands: {snapshot}")
        if error.snapshot is not None:
            lines.append(f"  Output before fault: {error.snapshot.output}")
        lines.append(f"{error.__class__.__name__}: {error.message}")
        return "\n".join(lines)

    def to_json(self, error: IntcodeError) -> str:
        steps: List[Dict[str, Any]] = []
        for entry in self.recent_steps():
            step: Dict[str, Any] = {
                "step_index": entry.step_index,
                "state_id": entry.state_id,
                "position": entry.position,
                "instruction": entry.statement,
            }
            if entry.operand_snapshot is not None:
                step["operands"] = entry.operand_snapshot
            steps.append(step)
        data: Dict[str, Any] = {
            "error": error.to_dict(),
            "failing_step_index": error.step_index,
            "program": self.interpreter.filename,
            "trace": steps,
        }
        if error.snapshot is not None:
            data["partial"] = {
                "output": list(error.snapshot.output),
                "pointer": error.snapshot.pointer,
                "used_input": error.snapshot.used_input,
            }
        return json.dumps(data, indent=2)
