"""Render an evaluation as a standalone Python program.

A completed evaluation becomes a script that only prints the captured
output. A suspended one becomes a script carrying its own copy of the
runtime (errors, decoder, machine), the residual memory and the resume
pointer, which picks up at the pending Input instruction and continues
interactively.
"""

from __future__ import annotations
import ast
import importlib
import inspect
import textwrap
from string import Template
from typing import Iterable, List, Sequence

from checkpoint import Checkpoint
from machine import EvalResult, evaluate


RUNTIME_MODULES = ("errors", "decoder", "machine")
# Project modules whose import statements must not survive embedding.
LOCAL_MODULES = frozenset({"errors", "decoder", "machine", "loader"})

COMPLETED_TEMPLATE = Template('''\
#!/usr/bin/env python3
"""Replays the output of an Intcode program that ran to completion."""
$output
''')

SUSPENDED_TEMPLATE = Template('''\
#!/usr/bin/env python3
"""Resumes a suspended Intcode program; further input is read interactively."""

from __future__ import annotations
import sys

import numpy as np

$runtime

# ---- resume point ----

CAPTURED_OUTPUT = $output

MEMORY = np.array(
    $memory,
    dtype=np.int64,
)

POINTER = $pointer


def main() -> int:
    for value in CAPTURED_OUTPUT:
        print(value, flush=True)
    try:
        run_interactive(MEMORY, POINTER)
    except IntcodeError as error:
        print(f"{error.__class__.__name__}: {error.message}", file=sys.stderr)
        return 3
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
''')


def strip_local_imports(source: str) -> str:
    """Drop ``__future__`` and intra-project imports from a module's source."""
    tree = ast.parse(source)
    dropped = set()
    for node in tree.body:
        local = False
        if isinstance(node, ast.ImportFrom):
            local = node.module == "__future__" or node.module in LOCAL_MODULES
        elif isinstance(node, ast.Import):
            local = any(alias.name in LOCAL_MODULES for alias in node.names)
        if local:
            end = node.end_lineno if node.end_lineno is not None else node.lineno
            dropped.update(range(node.lineno, end + 1))
    kept = [line for number, line in enumerate(source.splitlines(), start=1) if number not in dropped]
    return "\n".join(kept).strip("\n") + "\n"


def runtime_source(modules: Sequence[str] = RUNTIME_MODULES) -> str:
    chunks: List[str] = []
    for name in modules:
        module = importlib.import_module(name)
        chunks.append(f"# ---- {name} ----\n\n" + strip_local_imports(inspect.getsource(module)))
    return "\n\n".join(chunks)


def _int_list(values: Iterable[int], indent: str) -> str:
    joined = ", ".join(str(int(value)) for value in values)
    if not joined:
        return "[]"
    wrapped = textwrap.wrap(joined, width=76, break_long_words=False, break_on_hyphens=False)
    inner = "\n".join(indent + "    " + line for line in wrapped)
    return f"[\n{inner}\n{indent}]"


def render_completed(output: Sequence[int]) -> str:
    if output:
        text = "\n".join(str(int(value)) for value in output)
        statement = f"print({text!r})"
    else:
        statement = ""
    return COMPLETED_TEMPLATE.substitute(output=statement)


def render_suspended(output: Sequence[int], memory: Sequence[int], pointer: int) -> str:
    return SUSPENDED_TEMPLATE.substitute(
        runtime=runtime_source().rstrip("\n"),
        output=_int_list(output, ""),
        memory=_int_list(memory, "    "),
        pointer=int(pointer),
    )


def render(result: EvalResult) -> str:
    if result.completed:
        return render_completed(result.output)
    return render_suspended(result.output, result.memory, result.pointer)


def transpile(program: Sequence[int], inputs: Sequence[int]) -> str:
    """Evaluate ``program`` on ``inputs`` and render the outcome as source."""
    return render(evaluate(program, inputs))


def transpile_checkpoint(checkpoint: Checkpoint) -> str:
    if checkpoint.completed:
        return render_completed(checkpoint.output)
    return render_suspended(checkpoint.output, checkpoint.memory, checkpoint.pointer)
