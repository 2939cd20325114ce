"""Persisted execution state, the in-process alternative to transpiling.

A checkpoint stores the residual memory, the resume pointer and the input
and output accounting of an evaluation as JSON. Resuming it with more input
continues exactly where the evaluation stopped.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from errors import IntcodeError
from machine import CELL_MAX, CELL_MIN, EvalResult, StepHook, evaluate


CHECKPOINT_VERSION = 1


class CheckpointError(Exception):
    pass


@dataclass
class Checkpoint:
    memory: NDArray[np.int64]
    pointer: int
    used_input: int = 0
    output: List[int] = field(default_factory=list)
    completed: bool = False

    @classmethod
    def initial(cls, program: Sequence[int]) -> "Checkpoint":
        """State of a program that has not executed anything yet."""
        return cls(memory=np.array(program, dtype=np.int64), pointer=0)

    @classmethod
    def from_result(cls, result: EvalResult) -> "Checkpoint":
        return cls(
            memory=result.memory.copy(),
            pointer=result.pointer,
            used_input=result.used_input,
            output=list(result.output),
            completed=result.completed,
        )

    def to_result(self) -> EvalResult:
        return EvalResult(
            output=list(self.output),
            memory=self.memory.copy(),
            pointer=self.pointer,
            used_input=self.used_input,
            completed=self.completed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": CHECKPOINT_VERSION,
            "memory": [int(value) for value in self.memory],
            "pointer": self.pointer,
            "used_input": self.used_input,
            "output": [int(value) for value in self.output],
            "completed": self.completed,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> "Checkpoint":
        if not isinstance(data, dict):
            raise CheckpointError("Checkpoint must be a JSON object")
        version = data.get("version")
        if version != CHECKPOINT_VERSION:
            raise CheckpointError(f"Unsupported checkpoint version: {version!r}")
        memory = _int_list(data, "memory")
        output = _int_list(data, "output")
        pointer = _non_negative(data, "pointer")
        used_input = _non_negative(data, "used_input")
        completed = data.get("completed", False)
        if not isinstance(completed, bool):
            raise CheckpointError("Checkpoint field 'completed' must be a boolean")
        return cls(
            memory=np.array(memory, dtype=np.int64),
            pointer=pointer,
            used_input=used_input,
            output=output,
            completed=completed,
        )

    @classmethod
    def from_json(cls, text: str) -> "Checkpoint":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CheckpointError(f"Checkpoint is not valid JSON: {exc}")
        return cls.from_dict(data)

    def save(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(self.to_json())
            handle.write("\n")

    @classmethod
    def load(cls, path: str) -> "Checkpoint":
        with open(path, "r", encoding="utf-8") as handle:
            return cls.from_json(handle.read())


def _is_int(value: Any) -> bool:
    # bool is an int subclass but never a valid cell.
    return isinstance(value, int) and not isinstance(value, bool)


def _int_list(data: Dict[str, Any], key: str) -> List[int]:
    values = data.get(key)
    if not isinstance(values, list) or not all(_is_int(v) for v in values):
        raise CheckpointError(f"Checkpoint field '{key}' must be a list of integers")
    for value in values:
        if value < CELL_MIN or value > CELL_MAX:
            raise CheckpointError(f"Checkpoint field '{key}' holds {value}, outside the 64-bit range")
    return list(values)


def _non_negative(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if not _is_int(value) or value < 0:
        raise CheckpointError(f"Checkpoint field '{key}' must be a non-negative integer")
    return value


def resume(checkpoint: Checkpoint, inputs: Sequence[int], on_step: Optional[StepHook] = None) -> EvalResult:
    """Continue a checkpoint in batch mode with further input.

    The returned result accounts for the checkpoint's own output and input
    as well as what this continuation produced.
    """
    if checkpoint.completed:
        return checkpoint.to_result()
    try:
        result = evaluate(checkpoint.memory, inputs, on_step, checkpoint.pointer)
    except IntcodeError as error:
        if error.snapshot is not None:
            error.snapshot = merge(checkpoint, error.snapshot)
        raise
    return merge(checkpoint, result)


def merge(checkpoint: Checkpoint, result: EvalResult) -> EvalResult:
    return EvalResult(
        output=list(checkpoint.output) + list(result.output),
        memory=result.memory,
        pointer=result.pointer,
        used_input=checkpoint.used_input + result.used_input,
        completed=result.completed,
    )
