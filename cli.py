import json
import logging
import sys
import traceback
from dataclasses import fields, is_dataclass

import colorama

from blocks import blocks_from_list, blocks_to_list
from codegen import generate_code
from codeparser import parse_code_to_blocks
from compiler import compile_source
from errors import MiniPyError
from natives import NativeRegistry
from parser import parse
from stdlib import GAMES, get_game
from values import format_value
from vm import DEFAULT_MAX_STEPS, VM

logger = logging.getLogger("minipy.cli")

ANSI_COLORS = {
    "red": "31",
    "green": "32",
    "yellow": "33",
    "blue": "34",
    "magenta": "35",
    "cyan": "36",
    "dim": "2",
}

USAGE = """\
Usage:
  minipy parse <file.py>
  minipy build <file.py>
  minipy run <file.py> [--game maze|turtle] [--max-steps N] [--sensor name=value ...]
  minipy trace <file.py> [same options as run]
  minipy blocks <file.py> [--game maze|turtle]
  minipy gen <blocks.json> [--game maze|turtle]
  (optional) --debug to show Python traceback, --verbose for debug logging"""


def color(text, name):
    code = ANSI_COLORS.get(name)
    if not code or not sys.stdout.isatty():
        return text
    return f"\x1b[{code}m{text}\x1b[0m"


# Simple AST printer (so you can SEE what the parser built)
def ast_to_dict(node):
    if node is None:
        return None
    if isinstance(node, (list, tuple)):
        return [ast_to_dict(n) for n in node]
    if not is_dataclass(node):
        return node

    d = {"type": node.__class__.__name__}
    if node.line is not None:
        d["line"] = node.line
    for f in fields(node):
        if f.name == "line":
            continue
        d[f.name] = ast_to_dict(getattr(node, f.name))
    return d


def pretty(obj, indent=0):
    sp = "  " * indent
    if isinstance(obj, dict):
        lines = []
        for k, v in obj.items():
            if isinstance(v, (dict, list)) and v:
                lines.append(f"{sp}{k}:")
                lines.append(pretty(v, indent + 1))
            else:
                lines.append(f"{sp}{k}: {v}")
        return "\n".join(lines)
    if isinstance(obj, list):
        lines = []
        for item in obj:
            lines.append(f"{sp}-")
            lines.append(pretty(item, indent + 1))
        return "\n".join(lines)
    return f"{sp}{obj}"


def read_file(path):
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def report(e, debug):
    if debug:
        traceback.print_exc()
    elif isinstance(e, MiniPyError):
        print(color(str(e), "red"))
    else:
        print(color(f"Error: {e}", "red"))


def parse_sensor_value(text):
    if text in ("true", "True"):
        return True
    if text in ("false", "False"):
        return False
    try:
        return float(text)
    except ValueError:
        return text


def make_natives(game_type, sensor_values):
    # commands do nothing here; what they were asked to do is shown per step
    registry = NativeRegistry()
    game = get_game(game_type)
    for cmd in game.commands:
        registry.register_command(cmd.name, lambda args: None)
    for name in game.sensors:
        registry.register_sensor(name, lambda args, name=name: sensor_values.get(name, False))
    return registry


def cmd_parse(path, debug=False):
    try:
        program = parse(read_file(path))
    except Exception as e:
        report(e, debug)
        sys.exit(1)
    print(pretty(ast_to_dict(program)))


def cmd_build(path, debug=False):
    try:
        bc = compile_source(read_file(path))
    except Exception as e:
        report(e, debug)
        sys.exit(1)

    print("CONSTS:")
    for i, c in enumerate(bc.consts):
        print(f"  [{i}] {c!r}")

    if bc.functions:
        print("\nFUNCTIONS:")
        for name, meta in bc.functions.items():
            print(f"  {name}  entry={meta.get('entry')}  params={meta.get('params')}")

    print("\nINSTRUCTIONS:")
    print(bc.dump())


def cmd_run(path, options, debug=False, trace=False):
    vm = VM(
        natives=make_natives(options["game"], options["sensors"]),
        max_steps=options["max_steps"],
        game_type=options["game"],
    )
    printed = 0

    try:
        code = read_file(path)
        source_lines = code.splitlines()
        vm.load_with_source(code)
        done = False
        while not done:
            result = vm.step()
            done = result.done

            if trace and result.highlight_line is not None:
                text = source_lines[result.highlight_line - 1].strip()
                print(color(f"{result.highlight_line:>4} | {text}", "dim"))
            for name, args in result.actions:
                shown = ", ".join(format_value(a, nested=True) for a in args)
                print(color(f"> {name}({shown})", "cyan"))

            output = vm.get_output()
            for text in output[printed:]:
                print(text)
            printed = len(output)

            if trace:
                variables = vm.get_variables()
                if variables:
                    shown = ", ".join(f"{k}={format_value(v, nested=True)}" for k, v in variables.items())
                    print(color(f"       {shown}", "yellow"))
    except Exception as e:
        # anything printed before the error is still shown
        for text in vm.get_output()[printed:]:
            print(text)
        report(e, debug)
        sys.exit(1)

    print(color(f"done in {vm.step_count} steps", "green"))


def cmd_blocks(path, options, debug=False):
    try:
        blocks = parse_code_to_blocks(read_file(path), options["game"])
    except Exception as e:
        report(e, debug)
        sys.exit(1)

    if blocks is None:
        print(color("This code cannot be shown as blocks.", "red"))
        sys.exit(1)
    print(json.dumps(blocks_to_list(blocks), indent=2))


def cmd_gen(path, options, debug=False):
    try:
        blocks = blocks_from_list(json.loads(read_file(path)))
        code = generate_code(blocks, options["game"])
    except Exception as e:
        report(e, debug)
        sys.exit(1)
    print(code)


def parse_options(args):
    options = {"game": "maze", "max_steps": DEFAULT_MAX_STEPS, "sensors": {}}
    rest = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("--game", "--max-steps", "--sensor"):
            if i + 1 >= len(args):
                raise ValueError(f"{arg} needs a value")
            value = args[i + 1]
            i += 2
            if arg == "--game":
                if value not in GAMES:
                    raise ValueError(f"unknown game: {value} (expected one of {', '.join(GAMES)})")
                options["game"] = value
            elif arg == "--max-steps":
                try:
                    options["max_steps"] = int(value)
                except ValueError:
                    raise ValueError(f"--max-steps needs a whole number, got {value!r}") from None
            else:
                name, sep, raw = value.partition("=")
                if not sep or not name:
                    raise ValueError(f"--sensor expects name=value, got {value!r}")
                options["sensors"][name] = parse_sensor_value(raw)
            continue
        rest.append(arg)
        i += 1
    return options, rest


def main():
    argv = sys.argv[1:]

    debug = False
    if "--debug" in argv:
        debug = True
        argv.remove("--debug")

    level = logging.WARNING
    if "--verbose" in argv:
        level = logging.DEBUG
        argv.remove("--verbose")
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    colorama.just_fix_windows_console()

    try:
        options, rest = parse_options(argv)
    except ValueError as e:
        print(str(e))
        sys.exit(1)

    if len(rest) != 2:
        print(USAGE)
        sys.exit(1)

    cmd, path = rest
    logger.debug("command=%s path=%s options=%s", cmd, path, options)

    if cmd == "parse":
        cmd_parse(path, debug=debug)
    elif cmd == "build":
        cmd_build(path, debug=debug)
    elif cmd == "run":
        cmd_run(path, options, debug=debug)
    elif cmd == "trace":
        cmd_run(path, options, debug=debug, trace=True)
    elif cmd == "blocks":
        cmd_blocks(path, options, debug=debug)
    elif cmd == "gen":
        cmd_gen(path, options, debug=debug)
    else:
        print(f"Unknown command: {cmd}")
        sys.exit(1)


if __name__ == "__main__":
    main()
