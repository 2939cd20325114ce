import json

import numpy as np
import pytest

from checkpoint import Checkpoint
from decoder import Add, Position
from errors import InvalidInput, InvalidOpcode
from interpreter import FaultFormatter, Interpreter, StateLogger


def _lines(*lines):
    pending = list(lines)

    def _provider():
        if not pending:
            raise EOFError
        return pending.pop(0)

    return _provider


def _interpreter(source, *lines, verbose=False):
    written = []
    interpreter = Interpreter(
        source=source,
        filename="<string>",
        verbose=verbose,
        input_provider=_lines(*lines),
        output_sink=written.append,
    )
    return interpreter, written


def test_parse_caches_program():
    interpreter, _ = _interpreter("1,0,0,0,99")
    assert interpreter.parse() == [1, 0, 0, 0, 99]
    assert interpreter.parse() is interpreter.program


def test_parse_error():
    interpreter, _ = _interpreter("1,x")
    with pytest.raises(InvalidInput) as info:
        interpreter.parse()
    assert info.value.position == 1


def test_filename_is_made_absolute():
    interpreter = Interpreter(source="99", filename="prog.intcode")
    assert interpreter.filename.endswith("prog.intcode")
    assert interpreter.filename != "prog.intcode"


def test_evaluate_records_trace():
    interpreter, written = _interpreter("3,0,4,0,99")
    result = interpreter.evaluate([7])
    assert result.output == [7]
    assert written == []
    entries = list(interpreter.logger.entries)
    assert [entry.mnemonic for entry in entries] == ["IN", "OUT", "HALT"]
    assert [entry.position for entry in entries] == [0, 2, 4]
    assert entries[0].state_id == "s_000000"
    assert entries[0].operand_snapshot is None


def test_verbose_trace_records_operand_values():
    interpreter, _ = _interpreter("1,5,6,7,99,20,22,0", verbose=True)
    interpreter.evaluate([])
    first = interpreter.logger.entries[0]
    assert first.statement == "0: ADD [5], [6], [7]"
    assert first.operand_snapshot == {"n1": 20, "n2": 22, "to": 0}


def test_run_is_interactive():
    interpreter, written = _interpreter("3,0,4,0,99", "oops\n", "41\n")
    result = interpreter.run()
    assert written == [41]
    assert result.completed


def test_run_from_resume_point():
    interpreter, written = _interpreter("3,13,4,13,3,14,1,13,14,15,4,15,99,0,0,0", "6\n")
    first = interpreter.evaluate([5])
    result = interpreter.run(memory=first.memory, pointer=first.pointer)
    assert written == [11]
    assert result.completed


def test_each_call_starts_a_fresh_trace():
    interpreter, _ = _interpreter("99")
    interpreter.evaluate([])
    interpreter.evaluate([])
    assert [entry.step_index for entry in interpreter.logger.entries] == [0]


def test_failure_marks_step_index():
    interpreter, _ = _interpreter("104,42,77")
    with pytest.raises(InvalidOpcode) as info:
        interpreter.evaluate([])
    # The faulting word never decoded, so the last step is the output.
    assert info.value.step_index == 0
    assert info.value.snapshot.output == [42]


def test_fault_text():
    interpreter, _ = _interpreter("104,42,77")
    with pytest.raises(InvalidOpcode) as info:
        interpreter.evaluate([])
    text = FaultFormatter(interpreter).format_text(info.value, verbose=False)
    lines = text.splitlines()
    assert lines[0] == "Traceback (most recent step last):"
    assert "  Step 0 (s_000000) at position 0" in lines
    assert "    0: OUT 42" in lines
    assert "  Output before fault: [42]" in lines
    assert lines[-1] == 'InvalidOpcode: Invalid opcode "77" at position 3'


def test_fault_text_verbose_operands():
    interpreter, _ = _interpreter("1,0,0,0,42", verbose=True)
    with pytest.raises(InvalidOpcode) as info:
        interpreter.evaluate([])
    text = FaultFormatter(interpreter).format_text(info.value, verbose=True)
    assert "    Operands: n1=1, n2=1, to=1" in text


def test_fault_json():
    interpreter, _ = _interpreter("104,42,77")
    with pytest.raises(InvalidOpcode) as info:
        interpreter.evaluate([])
    data = json.loads(FaultFormatter(interpreter).to_json(info.value))
    assert data["error"] == {
        "type": "InvalidOpcode",
        "message": 'Invalid opcode "77" at position 3',
        "opcode": 77,
        "position": 3,
    }
    assert data["failing_step_index"] == 0
    assert data["partial"] == {"output": [42], "pointer": 2, "used_input": 0}
    assert data["trace"][0]["instruction"] == "0: OUT 42"


def test_fault_formatter_depth_limits_steps():
    interpreter, _ = _interpreter("104,1,104,2,104,3,77")
    with pytest.raises(InvalidOpcode) as info:
        interpreter.evaluate([])
    formatter = FaultFormatter(interpreter, depth=2)
    assert [entry.step_index for entry in formatter.recent_steps()] == [1, 2]


def test_state_logger_history_is_bounded():
    logger = StateLogger(verbose=True, history=2)
    memory = np.array([1, 0, 0, 0, 99], dtype=np.int64)
    for _ in range(3):
        logger.record(Add(0, Position(0), Position(0), Position(9)), memory)
    assert [entry.step_index for entry in logger.entries] == [1, 2]
    assert logger.entries[-1].operand_snapshot == {"n1": 1, "n2": 1, "to": "?"}


def test_resume_traces_the_continuation():
    interpreter, written = _interpreter("3,13,4,13,3,14,1,13,14,15,4,15,99,0,0,0")
    checkpoint = Checkpoint.from_result(interpreter.evaluate([5]))
    result = interpreter.resume(checkpoint, [6])
    assert result.output == [5, 11]
    assert result.used_input == 2
    assert written == []
    assert [entry.position for entry in interpreter.logger.entries] == [4, 6, 10, 12]


def test_resume_failure_marks_step_and_merges_output():
    interpreter, _ = _interpreter("104,8,3,4,0")
    checkpoint = Checkpoint.from_result(interpreter.evaluate([]))
    with pytest.raises(InvalidOpcode) as info:
        interpreter.resume(checkpoint, [77])
    assert info.value.step_index == 0
    assert info.value.snapshot.output == [8]
