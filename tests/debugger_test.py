from compiler import compile_source
from vm import VM

LOOP = """\
total = 0
for i in range(3):
    total += i
print(total)
"""


def make_vm(code, **kwargs):
    vm = VM(**kwargs)
    vm.load(compile_source(code))
    return vm


# ---------- breakpoints ----------

def test_run_until_breakpoint_stops_before_the_line():
    vm = make_vm(LOOP)
    vm.add_breakpoint(3)

    result, hit = vm.run_until_breakpoint()
    assert hit
    assert not result.done
    assert vm.next_line() == 3
    assert vm.get_variables() == {"total": 0, "i": 0}


def test_breakpoint_inside_a_loop_hits_every_pass():
    vm = make_vm(LOOP)
    vm.add_breakpoint(3)
    seen = []
    while True:
        _result, hit = vm.run_until_breakpoint()
        if not hit:
            break
        seen.append(vm.get_variables()["i"])
    assert seen == [0, 1, 2]
    assert vm.get_output() == ["3"]


def test_run_until_breakpoint_always_moves_forward():
    vm = make_vm("a = 1\nb = 2\nc = 3")
    vm.add_breakpoint(1)
    vm.add_breakpoint(2)
    _result, hit = vm.run_until_breakpoint()
    assert hit
    assert vm.get_variables() == {"a": 1}
    _result, hit = vm.run_until_breakpoint()
    assert not hit
    assert vm.get_state()["status"] == "done"


def test_no_breakpoints_runs_to_the_end():
    vm = make_vm(LOOP)
    result, hit = vm.run_until_breakpoint()
    assert result.done
    assert not hit
    assert vm.get_variables() == {"total": 3, "i": 2}


def test_breakpoint_on_a_line_that_never_runs():
    vm = make_vm("x = 1\nif x > 5:\n    x = 0\ny = 2")
    vm.add_breakpoint(3)
    _result, hit = vm.run_until_breakpoint()
    assert not hit
    assert vm.get_variables() == {"x": 1, "y": 2}


def test_breakpoint_management():
    vm = VM()
    vm.add_breakpoint(4)
    vm.add_breakpoint(2)
    vm.add_breakpoint(4)
    assert vm.get_breakpoints() == [2, 4]
    assert vm.has_breakpoint(2)

    assert vm.toggle_breakpoint(7) is True
    assert vm.toggle_breakpoint(2) is False
    assert vm.get_breakpoints() == [4, 7]

    vm.remove_breakpoint(4)
    vm.remove_breakpoint(99)
    assert vm.get_breakpoints() == [7]

    vm.clear_breakpoints()
    assert vm.get_breakpoints() == []


def test_breakpoints_survive_reset_and_load():
    vm = make_vm(LOOP)
    vm.add_breakpoint(4)
    vm.run_until_breakpoint()
    vm.reset()
    assert vm.get_breakpoints() == [4]
    vm.load(compile_source(LOOP))
    _result, hit = vm.run_until_breakpoint()
    assert hit
    assert vm.get_variables()["total"] == 3


# ---------- watches ----------

def test_watched_values_follow_the_run():
    vm = make_vm(LOOP)
    vm.add_watch("total")
    vm.add_watch("total * 10")
    vm.add_watch("i")

    assert vm.get_watched_values() == {"total": None, "total * 10": None, "i": None}
    vm.step()
    assert vm.get_watched_values() == {"total": 0, "total * 10": 0, "i": 0}
    vm.run()
    assert vm.get_watched_values() == {"total": 3, "total * 10": 30, "i": 2}


def test_watch_list_management():
    vm = VM()
    vm.add_watch("x")
    vm.add_watch("y")
    vm.add_watch("x")
    assert vm.get_watch_list() == ["x", "y"]

    vm.remove_watch("x")
    vm.remove_watch("nothing")
    assert vm.get_watch_list() == ["y"]

    vm.clear_watches()
    assert vm.get_watch_list() == []
    assert vm.get_watched_values() == {}


def test_bad_watch_reads_as_none():
    vm = make_vm("items = [1]")
    vm.run()
    vm.add_watch("items[4]")
    vm.add_watch("items +")
    vm.add_watch("items[0]")
    assert vm.get_watched_values() == {"items[4]": None, "items +": None, "items[0]": 1}


def test_reading_watches_does_not_change_the_run():
    vm = make_vm(LOOP)
    vm.add_watch("total")
    vm.step()
    before = (vm.ip, vm.get_state(), len(vm.history))
    vm.get_watched_values()
    assert (vm.ip, vm.get_state(), len(vm.history)) == before


def test_returned_list_is_a_copy():
    vm = VM()
    vm.add_watch("x")
    vm.get_watch_list().append("y")
    assert vm.get_watch_list() == ["x"]


if __name__ == "__main__":
    test_run_until_breakpoint_stops_before_the_line()
    test_breakpoint_inside_a_loop_hits_every_pass()
    test_watched_values_follow_the_run()
    print("ok")
