import io
import json

import intcode
from checkpoint import Checkpoint
from compiler import CompilerError
from intcode import (
    EXIT_CHECKPOINT,
    EXIT_COMPILER,
    EXIT_INVALID_TEXT,
    EXIT_IO,
    EXIT_OK,
    EXIT_RUNTIME,
    run_cli,
)
from machine import evaluate


ECHO_THEN_SUM = "3,13,4,13,3,14,1,13,14,15,4,15,99,0,0,0\n"


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_run_with_input_file(tmp_path, capsys):
    program = _write(tmp_path, "echo.intcode", ECHO_THEN_SUM)
    inputs = _write(tmp_path, "input.txt", "5,6\n")
    assert run_cli(["run", program, "--input", inputs]) == EXIT_OK
    assert capsys.readouterr().out == "5\n11\n"


def test_run_reads_terminal_after_input_file(tmp_path, capsys, monkeypatch):
    program = _write(tmp_path, "echo.intcode", ECHO_THEN_SUM)
    inputs = _write(tmp_path, "input.txt", "5")
    monkeypatch.setattr("sys.stdin", io.StringIO("6\n"))
    assert run_cli(["run", program, "--input", inputs]) == EXIT_OK
    captured = capsys.readouterr()
    assert captured.out == "5\n11\n"
    assert "> " in captured.err


def test_run_missing_program(tmp_path, capsys):
    assert run_cli(["run", str(tmp_path / "missing.intcode")]) == EXIT_IO
    assert "Failed to read" in capsys.readouterr().err


def test_run_invalid_program_text(tmp_path, capsys):
    program = _write(tmp_path, "bad.intcode", "1,two,3")
    assert run_cli(["run", program]) == EXIT_INVALID_TEXT
    assert 'Invalid token "two" at position 1' in capsys.readouterr().err


def test_run_invalid_input_file(tmp_path):
    program = _write(tmp_path, "echo.intcode", ECHO_THEN_SUM)
    inputs = _write(tmp_path, "input.txt", "5,x")
    assert run_cli(["run", program, "--input", inputs]) == EXIT_INVALID_TEXT


def test_run_runtime_error(tmp_path, capsys):
    program = _write(tmp_path, "fault.intcode", "104,42,77")
    assert run_cli(["run", program, "--traceback-json"]) == EXIT_RUNTIME
    captured = capsys.readouterr()
    assert captured.out == "42\n"
    assert "Traceback (most recent step last):" in captured.err
    assert '"type": "InvalidOpcode"' in captured.err


def test_run_disassemble(tmp_path, capsys):
    program = _write(tmp_path, "mul.intcode", "1002,4,3,4,33")
    assert run_cli(["run", program, "--disassemble"]) == EXIT_OK
    assert capsys.readouterr().out == "    0: MUL [4], 3, [4]\n    4: DATA 33\n"


def test_checkpoint_then_resume(tmp_path, capsys, monkeypatch):
    program = _write(tmp_path, "echo.intcode", ECHO_THEN_SUM)
    first_input = _write(tmp_path, "first.txt", "5")
    second_input = _write(tmp_path, "second.txt", "6")
    state = str(tmp_path / "state.json")
    monkeypatch.setattr("sys.stdin", io.StringIO(""))

    assert run_cli(["run", program, "--input", first_input, "--checkpoint", state]) == EXIT_OK
    captured = capsys.readouterr()
    assert captured.out == "5\n"
    assert "checkpoint written" in captured.err
    with open(state, encoding="utf-8") as handle:
        data = json.load(handle)
    assert (data["pointer"], data["used_input"], data["output"]) == (4, 1, [5])

    assert run_cli(["resume", state, "--input", second_input]) == EXIT_OK
    assert capsys.readouterr().out == "11\n"


def test_resume_invalid_checkpoint(tmp_path, capsys):
    state = _write(tmp_path, "state.json", '{"version": 9}')
    assert run_cli(["resume", state]) == EXIT_CHECKPOINT
    assert "CheckpointError" in capsys.readouterr().err


def test_resume_missing_checkpoint(tmp_path):
    assert run_cli(["resume", str(tmp_path / "nope.json")]) == EXIT_IO


def test_compile_transpile_only(tmp_path, capsys):
    program = _write(tmp_path, "echo.intcode", ECHO_THEN_SUM)
    inputs = _write(tmp_path, "input.txt", "5")
    assert run_cli(["compile", program, "--input", inputs, "--transpile-only"]) == EXIT_OK
    out = capsys.readouterr().out
    assert out.startswith("#!/usr/bin/env python3")
    assert "POINTER = 4" in out


def test_compile_runtime_error(tmp_path):
    program = _write(tmp_path, "fault.intcode", "42")
    assert run_cli(["compile", program, "--transpile-only"]) == EXIT_RUNTIME


def test_compile_builds_with_opt_level(tmp_path, monkeypatch):
    program = _write(tmp_path, "echo.intcode", ECHO_THEN_SUM)
    calls = []

    def _fake_build(source, output_path, opt_level):
        calls.append((output_path, opt_level))
        return output_path

    monkeypatch.setattr(intcode, "build_executable", _fake_build)
    out = str(tmp_path / "echo.pyz")
    assert run_cli(["compile", program, "-o", out, "-O", "s"]) == EXIT_OK
    assert calls == [(out, "s")]


def test_compile_failure_exit_status(tmp_path, monkeypatch, capsys):
    program = _write(tmp_path, "echo.intcode", ECHO_THEN_SUM)

    def _failing_build(source, output_path, opt_level):
        raise CompilerError("Build toolchain exited with status 1", stderr="boom\n")

    monkeypatch.setattr(intcode, "build_executable", _failing_build)
    assert run_cli(["compile", program]) == EXIT_COMPILER
    err = capsys.readouterr().err
    assert "CompileError: Build toolchain exited with status 1" in err
    assert "boom" in err


def test_batch_fault_still_prints_earlier_output(tmp_path, capsys):
    program = _write(tmp_path, "fault.intcode", "3,0,104,42,77")
    inputs = _write(tmp_path, "input.txt", "5")
    assert run_cli(["run", program, "--input", inputs]) == EXIT_RUNTIME
    captured = capsys.readouterr()
    assert captured.out == "42\n"
    assert "Output before fault: [42]" in captured.err


def test_terminal_fault_reports_output_from_both_legs(tmp_path, capsys, monkeypatch):
    # The terminal value lands in the word the pointer moves to next.
    program = _write(tmp_path, "fault.intcode", "3,0,104,42,3,6,0")
    inputs = _write(tmp_path, "input.txt", "5")
    monkeypatch.setattr("sys.stdin", io.StringIO("77\n"))
    assert run_cli(["run", program, "--input", inputs]) == EXIT_RUNTIME
    captured = capsys.readouterr()
    assert captured.out == "42\n"
    assert "Output before fault: [42]" in captured.err
    assert 'InvalidOpcode: Invalid opcode "77" at position 7' in captured.err


def test_compile_from_checkpoint(tmp_path, capsys):
    state = str(tmp_path / "state.json")
    Checkpoint.from_result(evaluate([3, 13, 4, 13, 3, 14, 1, 13, 14, 15, 4, 15, 99, 0, 0, 0], [5])).save(state)
    assert run_cli(["compile", state, "--from-checkpoint", "--transpile-only"]) == EXIT_OK
    assert "POINTER = 4" in capsys.readouterr().out

    more = _write(tmp_path, "more.txt", "6")
    assert run_cli(["compile", state, "--from-checkpoint", "--input", more, "--transpile-only"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "print('5\\n11')" in out
    assert "POINTER" not in out


def test_compile_from_invalid_checkpoint(tmp_path):
    state = _write(tmp_path, "state.json", "[]")
    assert run_cli(["compile", state, "--from-checkpoint", "--transpile-only"]) == EXIT_CHECKPOINT
