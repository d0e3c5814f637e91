import json
import os
import subprocess
import sys
import tempfile


def run_cli(args, source, suffix=".py"):
    root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    cli = os.path.join(root, "cli.py")

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "program" + suffix)
        with open(path, "w", encoding="utf-8") as f:
            f.write(source)
        proc = subprocess.run(
            [sys.executable, cli, args[0], path] + args[1:],
            text=True,
            capture_output=True,
            cwd=root,
            timeout=30,
        )
    return proc


def expect_ok(proc):
    if proc.returncode != 0:
        raise AssertionError(f"exited with code {proc.returncode}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}")
    return proc.stdout


def expect_failure(proc):
    if proc.returncode != 1:
        raise AssertionError(f"expected exit code 1, got {proc.returncode}\nSTDOUT:\n{proc.stdout}")
    return proc.stdout


def test_run_shows_output_and_actions():
    out = expect_ok(run_cli(["run"], 'print("hello")\nforward()\nrepeat 2 times:\n    turnLeft()\n'))
    if "hello" not in out:
        raise AssertionError(f"Expected printed text.\nOUT:\n{out}")
    if "> forward()" not in out or out.count("> turnLeft()") != 2:
        raise AssertionError(f"Expected commands to be listed.\nOUT:\n{out}")
    assert "done in" in out


def test_run_uses_the_game_library():
    out = expect_ok(run_cli(["run", "--game", "turtle"], 'move("forward", 30)\nleft(45)\n'))
    assert "> forward(30)" in out
    assert "> turnLeft(45)" in out


def test_run_reports_runtime_errors():
    out = expect_failure(run_cli(["run"], "fly()\n"))
    if "undefined function" not in out or "line 1" not in out:
        raise AssertionError(f"Expected an error for line 1.\nOUT:\n{out}")


def test_output_before_an_error_is_kept():
    out = expect_failure(run_cli(["run"], 'print("before")\nx = 1 / 0\n'))
    assert "before" in out
    assert "division by zero" in out


def test_step_limit():
    out = expect_failure(run_cli(["run", "--max-steps", "20"], "while True:\n    x = 1\n"))
    assert "step limit" in out


def test_sensor_values():
    src = 'if frontClear():\n    print("clear")\nelse:\n    print("blocked")\n'
    assert "blocked" in expect_ok(run_cli(["run"], src))
    out = expect_ok(run_cli(["run", "--sensor", "frontClear=true"], src))
    assert "clear" in out.splitlines()
    assert "blocked" not in out


def test_trace_shows_lines_and_variables():
    out = expect_ok(run_cli(["trace"], "x = 1\nx = x + 1\n"))
    assert "1 | x = 1" in out
    assert "2 | x = x + 1" in out
    assert "x=2" in out


def test_syntax_errors_fail():
    out = expect_failure(run_cli(["run"], "if x\n    pass\n"))
    assert "line 1" in out


def test_bad_options():
    out = expect_failure(run_cli(["run", "--game", "space"], "x = 1\n"))
    assert "unknown game" in out


def test_blocks_prints_json():
    out = expect_ok(run_cli(["blocks"], 'repeat 2 times:\n    move("forward")\n'))
    blocks = json.loads(out)
    assert blocks[0]["type"] == "repeat"
    assert blocks[0]["children"][0]["command"] == "move"


def test_blocks_refuses_unrepresentable_code():
    out = expect_failure(run_cli(["blocks"], "arr = [1]\narr[0] = 5\n"))
    assert "cannot be shown as blocks" in out


def test_gen_prints_code():
    blocks = [{
        "type": "repeat",
        "id": "r",
        "count": 3,
        "children": [{"type": "command", "id": "m", "command": "forward"}],
    }]
    out = expect_ok(run_cli(["gen", "--game", "turtle"], json.dumps(blocks), suffix=".json"))
    assert out.strip() == 'repeat 3 times:\n    move("forward", 50)'


def test_parse_and_build():
    out = expect_ok(run_cli(["parse"], "x = 1 + 2\n"))
    assert "Assignment" in out
    out = expect_ok(run_cli(["build"], "def f():\n    pass\nf()\n"))
    assert "FUNCTIONS:" in out
    assert "HALT" in out


if __name__ == "__main__":
    test_run_shows_output_and_actions()
    test_run_reports_runtime_errors()
    test_blocks_prints_json()
    test_gen_prints_code()
    print("ok")
