"""Package generated source into a standalone executable archive.

The build runs the Python toolchain as an external process:
``python -m zipapp`` turns a directory holding ``__main__.py`` into an
executable archive with a shebang line.
"""

from __future__ import annotations
import os
import shutil
import subprocess
import sys
import tempfile
from typing import Dict, List, Optional


OPT_LEVELS = ("0", "1", "2", "3", "s", "z")

# Interpreter flags baked into the archive's shebang line.
_OPT_FLAGS: Dict[str, List[str]] = {
    "0": [],
    "1": ["-O"],
    "2": ["-OO"],
    "3": ["-OO"],
    "s": ["-OO"],
    "z": ["-OO"],
}


class CompilerError(Exception):
    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.stderr = stderr


def interpreter_line(opt_level: str, python: Optional[str] = None) -> str:
    if opt_level not in _OPT_FLAGS:
        raise CompilerError(f"Unknown optimisation level '{opt_level}' (expected one of {', '.join(OPT_LEVELS)})")
    parts = [python or "/usr/bin/env python3", *_OPT_FLAGS[opt_level]]
    return " ".join(parts)


def build_command(build_dir: str, output_path: str, opt_level: str, python: Optional[str] = None) -> List[str]:
    return [
        sys.executable,
        "-m",
        "zipapp",
        build_dir,
        "-o",
        output_path,
        "-p",
        interpreter_line(opt_level, python),
    ]


def build_executable(source: str, output_path: str, opt_level: str = "0", python: Optional[str] = None) -> str:
    """Write ``source`` as an archive entry point and build it at ``output_path``."""
    build_dir = tempfile.mkdtemp(prefix="intcode-build-")
    try:
        with open(os.path.join(build_dir, "__main__.py"), "w", encoding="utf-8") as handle:
            handle.write(source)
        command = build_command(build_dir, output_path, opt_level, python)
        try:
            completed = subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        except OSError as exc:
            raise CompilerError(f"Failed to start the build toolchain: {exc}")
        if completed.returncode != 0:
            raise CompilerError(
                f"Build toolchain exited with status {completed.returncode}",
                stderr=completed.stderr or "",
            )
    finally:
        shutil.rmtree(build_dir, ignore_errors=True)
    return os.path.abspath(output_path)
