import pytest

from errors import MiniPyRuntimeError, MiniPySyntaxError
from stdlib import CONDITION_SENSORS, GAMES, CustomCommand, build_prefix, get_game, stdlib_source
from vm import VM


def game_vm(game_type, **kwargs):
    vm = VM(game_type=game_type, **kwargs)
    profile = get_game(game_type)
    for name in profile.command_names():
        vm.register_command(name, lambda args: True)
    for name in profile.sensors:
        vm.register_sensor(name, lambda args: False)
    return vm


def actions_of(vm):
    return [action for result in vm.run_all() for action in result.actions]


def test_maze_move_and_turn():
    vm = game_vm("maze")
    vm.load_with_source('move("forward")\nturn("left")\nmove("backward")\nturn("right")')
    assert actions_of(vm) == [("forward", []), ("turnLeft", []), ("backward", []), ("turnRight", [])]


def test_library_code_is_not_stepped_through():
    vm = game_vm("maze")
    vm.load_with_source('move("forward")\nmove("forward")')
    first = vm.step()
    assert first.highlight_line == 1
    assert first.actions == [("forward", [])]
    last = vm.step()
    assert (last.done, last.highlight_line) == (True, 2)
    assert vm.step_count == 2


def test_library_functions_are_not_variables_or_frames():
    vm = game_vm("maze")
    vm.load_with_source('x = 1\nmove("forward")')
    vm.run()
    assert vm.get_variables() == {"x": 1}
    assert [f["name"] for f in vm.get_call_stack_for_visualization()] == ["<main>"]


def test_turtle_move_with_distance():
    vm = game_vm("turtle")
    vm.load_with_source('move("forward", 100)\nturn("right", 45)\nleft(30)')
    assert actions_of(vm) == [("forward", [100]), ("turnRight", [45]), ("turnLeft", [30])]


def test_game_type_argument_overrides_the_default():
    vm = game_vm("maze")
    vm.register_command("forward", lambda args: None)
    vm.load_with_source('move("forward", 10)', game_type="turtle")
    assert actions_of(vm) == [("forward", [10])]


def test_syntax_error_line_is_relative_to_user_code():
    vm = game_vm("maze")
    with pytest.raises(MiniPySyntaxError) as info:
        vm.load_with_source("x = 1\nif x\n    pass")
    assert info.value.line == 2


def test_error_inside_library_reports_the_user_line():
    vm = game_vm("turtle")
    vm.load_with_source("x = 1\nmove(\"forward\")")
    with pytest.raises(MiniPyRuntimeError) as info:
        vm.run()
    err = info.value
    assert "move() takes 2 arguments but 1 was given" in err.message
    assert err.line == 2
    assert [f["name"] for f in err.frames] == ["<main>"]


def test_failing_command_called_from_library():
    vm = game_vm("maze")

    def blocked(args):
        raise ValueError("there is a wall in the way")

    vm.register_command("forward", blocked)
    vm.load_with_source('turn("left")\nmove("forward")')
    with pytest.raises(MiniPyRuntimeError) as info:
        vm.run()
    assert info.value.line == 2
    assert info.value.frames == [{"name": "<main>", "line": 2}]


def test_custom_command_without_argument():
    vm = game_vm("maze")
    vm.define_custom_command("spin", "turnLeft()\nturnLeft()")
    vm.load_with_source("spin()\nforward()")
    assert actions_of(vm) == [("turnLeft", []), ("turnLeft", []), ("forward", [])]


def test_custom_command_with_argument():
    vm = game_vm("maze")
    vm.define_custom_command("walk", "repeat arg times:\n    forward()", arg_type="number")
    vm.load_with_source("walk(3)")
    result = vm.step()
    assert result.done
    assert result.actions == [("forward", [])] * 3


def test_custom_commands_can_be_removed():
    vm = game_vm("maze")
    vm.define_custom_command("spin", "turnLeft()")
    assert vm.remove_custom_command("spin")
    assert not vm.remove_custom_command("spin")
    vm.load_with_source("spin()")
    with pytest.raises(MiniPyRuntimeError):
        vm.run()


def test_no_game_means_no_library():
    vm = VM()
    vm.register_command("forward", lambda args: None)
    program = vm.load_with_source("forward()")
    assert program.prefix_lines == 0
    assert "move" not in program.functions


def test_custom_command_source():
    assert CustomCommand("noop", "").to_source() == "def noop():\n    pass\n"
    assert CustomCommand("noop", "# later\n").to_source() == "def noop():\n    pass\n"
    cmd = CustomCommand("hop", "forward(arg)\r\nforward(arg)\n\n", arg_type="number")
    assert cmd.to_source() == "def hop(arg):\n    forward(arg)\n    forward(arg)\n"


def test_build_prefix():
    assert build_prefix() == ""
    assert build_prefix(None, []) == ""
    prefix = build_prefix("maze", [CustomCommand("spin", "turnLeft()")])
    assert prefix.startswith(stdlib_source("maze"))
    assert prefix.endswith("def spin():\n    turnLeft()\n")


def test_game_profiles():
    assert set(GAMES) == {"maze", "turtle"}
    assert "forward" in get_game("maze").command_names()
    assert get_game("turtle").move_default == 50
    assert CONDITION_SENSORS["turtle"] == ()
    assert set(CONDITION_SENSORS["maze"]) <= set(get_game("maze").sensors)
    with pytest.raises(ValueError):
        get_game("space")


if __name__ == "__main__":
    test_maze_move_and_turn()
    test_custom_command_with_argument()
    test_build_prefix()
    print("ok")
