import pytest

from compiler import compile_source
from errors import MiniPyRuntimeError
from vm import VM

PROGRAM = """\
total = 0
items = []
for i in range(4):
    total += i
    append(items, total)
    print(total)
def bump(n):
    return n + 1
total = bump(total)
"""


def make_vm(code, **kwargs):
    vm = VM(**kwargs)
    vm.load(compile_source(code))
    return vm


def observe(vm):
    return (
        vm.ip,
        vm.get_variables(),
        vm.get_output(),
        vm.get_current_line(),
        vm.get_state(),
        vm.get_call_stack_for_visualization(),
    )


def test_step_back_undoes_every_step():
    vm = make_vm(PROGRAM)
    seen = []
    while True:
        seen.append(observe(vm))
        if vm.step().done:
            break

    for expected in reversed(seen):
        assert vm.step_back()
        assert observe(vm) == expected

    assert not vm.step_back()
    assert not vm.can_step_back()


def test_stepping_again_after_step_back_repeats_the_same_result():
    vm = make_vm(PROGRAM)
    for _ in range(5):
        vm.step()
    before = observe(vm)
    result = vm.step()
    after = observe(vm)

    vm.step_back()
    assert observe(vm) == before
    assert vm.step() == result
    assert observe(vm) == after


def test_step_back_leaves_error_state():
    vm = make_vm("x = 1\nfly()")
    vm.step()
    with pytest.raises(MiniPyRuntimeError):
        vm.step()
    assert vm.get_state()["status"] == "error"

    assert vm.step_back()
    state = vm.get_state()
    assert state["status"] == "running"
    assert "error" not in state
    assert vm.get_variables() == {"x": 1}


def test_history_window_is_bounded():
    vm = make_vm("n = 0\nwhile n < 10:\n    n += 1", max_history=3)
    vm.run()
    backs = 0
    while vm.step_back():
        backs += 1
    assert backs == 3


def test_clear_history():
    vm = make_vm("a = 1\nb = 2")
    vm.step()
    assert vm.can_step_back()
    vm.clear_history()
    assert not vm.can_step_back()
    assert not vm.step_back()


def test_same_seed_same_run():
    src = "a = randint(1, 1000)\nb = random()\nc = [randint(1, 6), randint(1, 6)]"
    first = make_vm(src, seed=42)
    second = make_vm(src, seed=42)
    first.run()
    second.run()
    assert first.get_variables() == second.get_variables()


def test_random_state_is_part_of_the_snapshot():
    vm = make_vm("a = random()\nb = random()", seed=3)
    vm.step()
    vm.step()
    b = vm.get_variables()["b"]
    vm.step_back()
    vm.step()
    assert vm.get_variables()["b"] == b


def test_reset_replays_identically():
    vm = make_vm("x = randint(1, 100)\nprint(x)")
    vm.run()
    first = (vm.get_variables(), vm.get_output())
    vm.reset()
    vm.run()
    assert (vm.get_variables(), vm.get_output()) == first


if __name__ == "__main__":
    test_step_back_undoes_every_step()
    test_same_seed_same_run()
    print("ok")
