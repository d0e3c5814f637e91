import pytest

from compiler import compile_source
from errors import MiniPyExpressionError, MiniPyRuntimeError
from vm import VM


def make_vm(code, **kwargs):
    vm = VM(**kwargs)
    vm.load(compile_source(code))
    return vm


def test_evaluate_after_loop_leaves_vm_untouched():
    vm = make_vm("x = 1\nwhile x < 3:\n    x = x + 1")
    for _ in range(3):
        vm.step()
    ip = vm.ip
    history = len(vm.history)
    state = vm.get_state()

    assert vm.evaluate_expression("x > 2") is True
    assert vm.ip == ip
    assert len(vm.history) == history
    assert vm.get_state() == state


def test_evaluate_mid_run_keeps_stepping_intact():
    vm = make_vm("a = 1\nb = a + 1\nc = b + 1")
    vm.step()
    assert vm.evaluate_expression("a * 10") == 10
    vm.run()
    assert vm.get_variables() == {"a": 1, "b": 2, "c": 3}


def test_evaluate_values():
    vm = make_vm('name = "Ada"\nitems = [3, 1, 2]\nbox = {size: 4}')
    vm.run()
    assert vm.evaluate_expression('len(items) + box["size"]') == 7
    assert vm.evaluate_expression('name + "!"') == "Ada!"
    assert vm.evaluate_expression("items[1:]") == [1, 2]
    assert vm.evaluate_expression("2 in items") is True
    assert vm.evaluate_expression("None") is None


def test_mutation_inside_evaluation_does_not_leak():
    vm = make_vm("items = [1]")
    vm.run()
    assert vm.evaluate_expression("append(items, 2)") is None
    assert vm.get_variables() == {"items": [1]}
    assert vm.evaluate_expression('print("hidden")') is None
    assert vm.get_output() == []


def test_result_is_a_copy():
    vm = make_vm("items = [1, 2]")
    vm.run()
    got = vm.evaluate_expression("items")
    got.append(3)
    assert vm.get_variables() == {"items": [1, 2]}


def test_sensors_can_be_queried():
    vm = VM()
    vm.register_sensor("frontClear", lambda args: True)
    vm.load(compile_source("x = 1"))
    vm.run()
    assert vm.evaluate_expression("frontClear() and x == 1") is True


def test_commands_are_refused():
    moves = []
    vm = VM()
    vm.register_command("forward", lambda args: moves.append(args))
    vm.load(compile_source("x = 1"))
    with pytest.raises(MiniPyExpressionError) as info:
        vm.evaluate_expression("forward()")
    assert "command" in info.value.message
    assert moves == []


@pytest.mark.parametrize(
    "source, fragment",
    [
        ("x +", "invalid expression"),
        ("x = 1", "invalid expression"),
        ("missing + 1", "name 'missing' is not defined"),
        ("1 / 0", "division by zero"),
        ("[1][5]", "out of range"),
        ("fly()", "undefined function"),
    ],
)
def test_bad_expressions(source, fragment):
    vm = make_vm("x = 1")
    vm.run()
    with pytest.raises(MiniPyExpressionError) as info:
        vm.evaluate_expression(source)
    assert fragment in info.value.message
    assert vm.get_state()["status"] == "done"


def test_expression_error_is_not_a_runtime_error():
    vm = make_vm("x = 1")
    with pytest.raises(MiniPyExpressionError) as info:
        vm.evaluate_expression("y")
    assert not isinstance(info.value, MiniPyRuntimeError)
    assert info.value.to_dict()["kind"] == "expression"


def test_user_functions_cannot_be_called():
    vm = make_vm("def twice(n):\n    return n * 2\nx = 1")
    vm.run()
    with pytest.raises(MiniPyExpressionError):
        vm.evaluate_expression("twice(2)")


def test_locals_are_visible_inside_a_function():
    vm = make_vm("total = 100\ndef f(n):\n    m = n + 1\n    return m\ny = f(4)")
    vm.step()
    vm.step()
    vm.step()
    assert vm.get_current_line() == 3
    assert vm.evaluate_expression("n + m + total") == 109


def test_evaluation_works_after_an_error():
    vm = make_vm("x = 5\nfly()")
    with pytest.raises(MiniPyRuntimeError):
        vm.run()
    assert vm.evaluate_expression("x * 2") == 10
    assert vm.get_state()["status"] == "error"


def test_random_does_not_advance_the_program_rng():
    vm = make_vm("r = random()", seed=7)
    first = vm.evaluate_expression("random()")
    assert vm.evaluate_expression("random()") == first
    vm.run()
    assert vm.get_variables()["r"] == first


if __name__ == "__main__":
    test_evaluate_after_loop_leaves_vm_untouched()
    test_commands_are_refused()
    print("ok")
