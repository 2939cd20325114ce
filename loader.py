from __future__ import annotations
from typing import Iterable, List

from errors import InvalidInput
from machine import CELL_MAX, CELL_MIN, INTEGER


def parse_token(token: str, position: int) -> int:
    cleaned = token.replace("\n", "").replace("\r", "")
    if INTEGER.fullmatch(cleaned) is None:
        raise InvalidInput(token, position)
    value = int(cleaned)
    if value < CELL_MIN or value > CELL_MAX:
        raise InvalidInput(token, position)
    return value


def load(text: str) -> List[int]:
    """Split program text on commas and parse every token as an integer.

    Positions in errors count tokens, not characters.
    """
    program: List[int] = []
    program_append = program.append
    for position, token in enumerate(text.split(",")):
        program_append(parse_token(token, position))
    return program


def load_file(path: str) -> List[int]:
    with open(path, "r", encoding="utf-8") as handle:
        return load(handle.read())


def dump(program: Iterable[int]) -> str:
    return ",".join(str(int(value)) for value in program)
