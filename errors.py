"""Intcode error taxonomy.

This module is re-embedded verbatim into resumed programs produced by the
transpiler, so it must only depend on the standard library.
"""

from __future__ import annotations
from typing import Any, Dict, Optional


class IntcodeError(Exception):
    """Base class for loader and machine faults."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        # Filled in by the batch evaluator / interpreter before re-raising.
        self.snapshot: Optional[Any] = None
        self.step_index: Optional[int] = None

    def fields(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.__class__.__name__, "message": self.message}
        data.update(self.fields())
        return data


class InvalidInput(IntcodeError):
    def __init__(self, token: str, position: int) -> None:
        super().__init__(f'Invalid token "{token}" at position {position}')
        self.token = token
        self.position = position

    def fields(self) -> Dict[str, Any]:
        return {"token": self.token, "position": self.position}


class InvalidOpcode(IntcodeError):
    def __init__(self, opcode: int, position: int) -> None:
        super().__init__(f'Invalid opcode "{opcode}" at position {position}')
        self.opcode = opcode
        self.position = position

    def fields(self) -> Dict[str, Any]:
        return {"opcode": self.opcode, "position": self.position}


class MissingParameter(IntcodeError):
    def __init__(self, parameter: int, opcode: int, position: int) -> None:
        super().__init__(
            f'Missing parameter {parameter} for opcode "{opcode}" at position {position}'
        )
        self.parameter = parameter
        self.opcode = opcode
        self.position = position

    def fields(self) -> Dict[str, Any]:
        return {"parameter": self.parameter, "opcode": self.opcode, "position": self.position}


class NegativePositionalParameter(IntcodeError):
    def __init__(self, value: int, parameter: int, opcode: int, position: int) -> None:
        super().__init__(
            f"Negative value {value} for positional parameter {parameter} "
            f'for opcode "{opcode}" at position {position}'
        )
        self.value = value
        self.parameter = parameter
        self.opcode = opcode
        self.position = position

    def fields(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "parameter": self.parameter,
            "opcode": self.opcode,
            "position": self.position,
        }


class InvalidParameterMode(IntcodeError):
    def __init__(self, mode: int, parameter: int, opcode: int, position: int) -> None:
        super().__init__(
            f'Invalid parameter mode "{mode}" for parameter {parameter} '
            f'of opcode "{opcode}" at position {position}'
        )
        self.mode = mode
        self.parameter = parameter
        self.opcode = opcode
        self.position = position

    def fields(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "parameter": self.parameter,
            "opcode": self.opcode,
            "position": self.position,
        }


class AddressOutOfRange(IntcodeError):
    """A position operand referenced a cell past the end of memory."""

    def __init__(self, index: int, opcode: int, position: int) -> None:
        super().__init__(
            f'Address {index} out of range for opcode "{opcode}" at position {position}'
        )
        self.index = index
        self.opcode = opcode
        self.position = position

    def fields(self) -> Dict[str, Any]:
        return {"index": self.index, "opcode": self.opcode, "position": self.position}


class ArithmeticOverflow(IntcodeError):
    """A computed value does not fit a signed 64-bit memory cell."""

    def __init__(self, value: int, opcode: int, position: int) -> None:
        super().__init__(
            f'Value {value} overflows a 64-bit cell for opcode "{opcode}" at position {position}'
        )
        self.value = value
        self.opcode = opcode
        self.position = position

    def fields(self) -> Dict[str, Any]:
        return {"value": self.value, "opcode": self.opcode, "position": self.position}
