import pytest

from compiler import compile_expression, compile_source
from errors import MiniPyCompileError, MiniPySyntaxError
from ir import IRProgram
from parser import parse_expression


def opcodes(bc):
    return [op for op, _ in bc.instructions]


def test_layout_starts_with_jump_and_ends_with_halt():
    bc = compile_source("x = 1\ny = x + 2\n")
    assert bc.instructions[0] == ("JUMP", 1)
    assert bc.instructions[-1] == ("HALT", None)
    bc.validate()


def test_function_bodies_come_before_main():
    bc = compile_source("def f(a):\n    return a\nx = f(1)\n")
    meta = bc.functions["f"]
    assert meta["params"] == ["a"]
    assert meta["entry"] == 1
    assert meta["line"] == 1

    main_start = bc.instructions[0][1]
    assert main_start > meta["entry"]
    assert ("CALL_FUNC", ("f", 1)) in bc.instructions[main_start:]


def test_call_before_def_is_bound_to_the_function():
    bc = compile_source("f()\ndef f():\n    pass\n")
    assert ("CALL_FUNC", ("f", 0)) in bc.instructions


def test_unknown_calls_are_resolved_at_run_time():
    bc = compile_source("forward()\nx = len([1])\n")
    assert ("CALL_NATIVE", ("forward", 0)) in bc.instructions
    assert ("CALL_NATIVE", ("len", 1)) in bc.instructions


def test_only_simple_statements_are_step_boundaries():
    bc = compile_source("x = 0\nwhile x < 3:\n    x += 1\nif x:\n    pass\n")
    assert bc.statement_lines() == {1, 3, 5}


def test_every_instruction_of_a_statement_carries_its_line():
    bc = compile_source("x = 1\nprint(x)\n")
    lines = [d["line"] for d in bc.debug[1:-1]]
    assert set(lines) == {1, 2}


def test_implicit_return_none():
    bc = compile_source("def f():\n    pass\n")
    main_start = bc.instructions[0][1]
    tail = bc.instructions[main_start - 2:main_start]
    assert tail[0][0] == "LOAD_CONST"
    assert bc.consts[tail[0][1]] is None
    assert tail[1] == ("RETURN", None)


def test_and_or_short_circuit_shape():
    bc = compile_source("x = a and b\n")
    ops = opcodes(bc)
    i = ops.index("DUP")
    assert ops[i:i + 3] == ["DUP", "JUMP_IF_FALSE", "POP"]

    bc = compile_source("x = a or b\n")
    ops = opcodes(bc)
    i = ops.index("DUP")
    assert ops[i:i + 3] == ["DUP", "JUMP_IF_TRUE", "POP"]


def test_loops_use_hidden_names():
    bc = compile_source("repeat 2 times:\n    pass\nfor i in range(3):\n    pass\nfor v in [1]:\n    pass\n")
    stored = {arg for op, arg in bc.instructions if op == "STORE_NAME"}
    hidden = {name for name in stored if name.startswith("__")}
    assert stored - hidden == {"i", "v"}
    assert any(name.startswith("__repeat") for name in hidden)
    assert any(name.startswith("__range") for name in hidden)
    assert any(name.startswith("__each") for name in hidden)
    assert opcodes(bc).count("RANGE_TEST") == 3


def test_constants_are_shared_but_typed():
    bc = compile_source("a = 1\nb = 1\nc = True\n")
    assert len([c for c in bc.consts if c is True]) == 1
    assert len([c for c in bc.consts if type(c) is float]) == 1


def test_break_outside_loop():
    with pytest.raises(MiniPyCompileError) as info:
        compile_source("x = 1\nbreak\n")
    assert info.value.line == 2
    assert isinstance(info.value, MiniPySyntaxError)


def test_continue_inside_function_does_not_see_outer_loop():
    src = "def f():\n    continue\nwhile True:\n    f()\n"
    with pytest.raises(MiniPyCompileError) as info:
        compile_source(src)
    assert info.value.line == 2


def test_compile_expression_leaves_value_and_halts():
    bc = compile_expression(parse_expression("1 + 2"))
    assert opcodes(bc) == ["LOAD_CONST", "LOAD_CONST", "ADD", "HALT"]


def test_hide_prefix_renumbers_lines():
    bc = compile_source("def helper():\n    pass\nx = 1\ny = 2\n")
    bc.hide_prefix(2)
    assert bc.statement_lines() == {1, 2}
    assert bc.functions["helper"]["hidden"] is True
    assert all(d["hidden"] for d in bc.debug[:bc.instructions[0][1]])


def test_validate_rejects_bad_jumps_and_opcodes():
    bc = IRProgram()
    bc.emit("JUMP", 5)
    with pytest.raises(ValueError):
        bc.validate()

    bc = IRProgram()
    bc.emit("FLY")
    with pytest.raises(ValueError):
        bc.validate()


def test_dump_lists_every_instruction():
    bc = compile_source("x = 1\n")
    text = bc.dump()
    assert len(text.splitlines()) == len(bc.instructions)
    assert "HALT" in text
    assert "STORE_NAME" in text


if __name__ == "__main__":
    test_layout_starts_with_jump_and_ends_with_halt()
    test_only_simple_statements_are_step_boundaries()
    print("ok")
