"""Intcode command line: run, compile and resume programs."""

from __future__ import annotations
import argparse
import os
import sys
from typing import List, Optional, Tuple

from checkpoint import Checkpoint, CheckpointError, merge
from compiler import OPT_LEVELS, CompilerError, build_executable
from decoder import disassemble
from errors import IntcodeError, InvalidInput
from interpreter import FaultFormatter, Interpreter
from loader import load_file
from machine import EvalResult
from transpiler import transpile, transpile_checkpoint


EXIT_OK = 0
EXIT_IO = 1
EXIT_INVALID_TEXT = 2
EXIT_RUNTIME = 3
EXIT_COMPILER = 4
EXIT_CHECKPOINT = 5


def _read_text(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return handle.read()
    except OSError as exc:
        print(f"Failed to read {path}: {exc}", file=sys.stderr)
        return None


def _read_inputs(path: Optional[str]) -> List[int]:
    if path is None:
        return []
    return load_file(path)


def _report(interpreter: Interpreter, error: IntcodeError, args: argparse.Namespace) -> None:
    formatter = FaultFormatter(interpreter)
    print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
    if args.traceback_json:
        print(formatter.to_json(error), file=sys.stderr)


def _drive(interpreter: Interpreter, base: Checkpoint, inputs: List[int]) -> EvalResult:
    """Feed fixed input in batch mode first, then continue interactively."""
    if base.completed:
        return base.to_result()
    if inputs:
        try:
            result = interpreter.resume(base, inputs)
        except IntcodeError as error:
            if error.snapshot is not None:
                _forward(interpreter, error.snapshot.output[len(base.output):])
            raise
        _forward(interpreter, result.output[len(base.output):])
        if result.completed:
            return result
        base = Checkpoint.from_result(result)
    try:
        live = interpreter.run(memory=base.memory, pointer=base.pointer)
    except IntcodeError as error:
        if error.snapshot is not None:
            error.snapshot = merge(base, error.snapshot)
        raise
    return merge(base, live)


def _forward(interpreter: Interpreter, values: List[int]) -> None:
    for value in values:
        interpreter.output_sink(value)


def _save_if_suspended(result: EvalResult, path: Optional[str]) -> int:
    if path is None or result.completed:
        return EXIT_OK
    try:
        Checkpoint.from_result(result).save(path)
    except OSError as exc:
        print(f"Failed to write checkpoint {path}: {exc}", file=sys.stderr)
        return EXIT_IO
    print(f"Input exhausted; checkpoint written to {path}", file=sys.stderr)
    return EXIT_OK


def _cmd_run(args: argparse.Namespace) -> int:
    source_text = _read_text(args.program)
    if source_text is None:
        return EXIT_IO
    interpreter = Interpreter(source=source_text, filename=args.program, verbose=args.verbose)
    try:
        program = interpreter.parse()
        inputs = _read_inputs(args.input)
    except InvalidInput as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return EXIT_INVALID_TEXT
    except OSError as exc:
        print(f"Failed to read {args.input}: {exc}", file=sys.stderr)
        return EXIT_IO

    if args.disassemble:
        for line in disassemble(program):
            print(line)
        return EXIT_OK

    base = Checkpoint.initial(program)
    try:
        result = _drive(interpreter, base, inputs)
    except IntcodeError as error:
        _report(interpreter, error, args)
        return EXIT_RUNTIME
    return _save_if_suspended(result, args.checkpoint)


def _generate_from_checkpoint(args: argparse.Namespace) -> Tuple[int, str]:
    try:
        checkpoint = Checkpoint.load(args.program)
        inputs = _read_inputs(args.input)
    except OSError as exc:
        print(f"Failed to read checkpoint or input: {exc}", file=sys.stderr)
        return EXIT_IO, ""
    except CheckpointError as error:
        print(f"CheckpointError: {error}", file=sys.stderr)
        return EXIT_CHECKPOINT, ""
    except InvalidInput as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return EXIT_INVALID_TEXT, ""

    interpreter = Interpreter(source="", filename=args.program, verbose=args.verbose)
    if inputs:
        try:
            checkpoint = Checkpoint.from_result(interpreter.resume(checkpoint, inputs))
        except IntcodeError as error:
            _report(interpreter, error, args)
            return EXIT_RUNTIME, ""
    return EXIT_OK, transpile_checkpoint(checkpoint)


def _generate_from_program(args: argparse.Namespace) -> Tuple[int, str]:
    source_text = _read_text(args.program)
    if source_text is None:
        return EXIT_IO, ""
    interpreter = Interpreter(source=source_text, filename=args.program, verbose=args.verbose)
    try:
        program = interpreter.parse()
        inputs = _read_inputs(args.input)
    except InvalidInput as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return EXIT_INVALID_TEXT, ""
    except OSError as exc:
        print(f"Failed to read {args.input}: {exc}", file=sys.stderr)
        return EXIT_IO, ""

    try:
        generated = transpile(program, inputs)
    except IntcodeError as error:
        _report(interpreter, error, args)
        return EXIT_RUNTIME, ""
    return EXIT_OK, generated


def _cmd_compile(args: argparse.Namespace) -> int:
    generate = _generate_from_checkpoint if args.from_checkpoint else _generate_from_program
    status, generated = generate(args)
    if status != EXIT_OK:
        return status

    if args.transpile_only:
        sys.stdout.write(generated)
        return EXIT_OK

    output_path = args.output or os.path.splitext(os.path.basename(args.program))[0] + ".pyz"
    try:
        built = build_executable(generated, output_path, args.opt_level)
    except CompilerError as error:
        print(f"CompileError: {error.message}", file=sys.stderr)
        if error.stderr:
            print(error.stderr, file=sys.stderr, end="")
        return EXIT_COMPILER
    print(f"Wrote {built}", file=sys.stderr)
    return EXIT_OK


def _cmd_resume(args: argparse.Namespace) -> int:
    try:
        checkpoint = Checkpoint.load(args.checkpoint_file)
        inputs = _read_inputs(args.input)
    except OSError as exc:
        print(f"Failed to read checkpoint or input: {exc}", file=sys.stderr)
        return EXIT_IO
    except CheckpointError as error:
        print(f"CheckpointError: {error}", file=sys.stderr)
        return EXIT_CHECKPOINT
    except InvalidInput as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return EXIT_INVALID_TEXT

    interpreter = Interpreter(source="", filename=args.checkpoint_file, verbose=args.verbose)
    try:
        result = _drive(interpreter, checkpoint, inputs)
    except IntcodeError as error:
        _report(interpreter, error, args)
        return EXIT_RUNTIME
    return _save_if_suspended(result, args.checkpoint)


def _add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", dest="input", help="File of comma-separated integers fed before any interactive input")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Include operand values in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="intcode", description="Intcode interpreter and resume transpiler")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a program interactively")
    run_parser.add_argument("program", help="Program file path")
    _add_common_flags(run_parser)
    run_parser.add_argument("--checkpoint", help="Write a checkpoint here if input runs out")
    run_parser.add_argument("--disassemble", action="store_true", help="Print a listing instead of running")
    run_parser.set_defaults(handler=_cmd_run)

    compile_parser = subparsers.add_parser("compile", help="Compile a program into a standalone executable")
    compile_parser.add_argument("program", help="Program file path")
    _add_common_flags(compile_parser)
    compile_parser.add_argument("-o", "--output", help="Output path (default: <program>.pyz)")
    compile_parser.add_argument("-O", "--opt-level", dest="opt_level", choices=OPT_LEVELS, default="0", help="Optimisation level")
    compile_parser.add_argument("--transpile-only", action="store_true", help="Print generated source instead of building")
    compile_parser.add_argument("--from-checkpoint", action="store_true", help="Treat the input file as a checkpoint instead of a program")
    compile_parser.set_defaults(handler=_cmd_compile)

    resume_parser = subparsers.add_parser("resume", help="Resume a saved checkpoint")
    resume_parser.add_argument("checkpoint_file", help="Checkpoint JSON file")
    _add_common_flags(resume_parser)
    resume_parser.add_argument("--checkpoint", help="Write a new checkpoint here if input runs out")
    resume_parser.set_defaults(handler=_cmd_resume)
    return parser


def run_cli(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.handler(args)


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
