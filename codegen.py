"""Blocks -> MiniPy source, with a map from generated line to block id."""
import re

from blocks import (
    ArrayAccessExpr, ArrayExpr, ArrayLengthExpr, BinaryExpr, BooleanExpr, ComparisonExpr,
    NumberExpr, ObjectAccessExpr, ObjectExpr, RandIntExpr, RandomExpr, SensorExpr,
    StringExpr, VariableExpr,
)
from lexer import BOOL_WORDS, KEYWORDS
from stdlib import get_game
from values import format_number

EMPTY_PROGRAM = "# Drag blocks here from the left"
INDENT = "    "

EMITTERS = {}  # block type -> fn(block, state)

# old single-purpose verbs and the unified verb + direction they stand for
LEGACY_COMMANDS = {
    "forward": ("move", "forward"),
    "backward": ("move", "backward"),
    "turnLeft": ("turn", "left"),
    "left": ("turn", "left"),
    "turnRight": ("turn", "right"),
    "right": ("turn", "right"),
}

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_RESERVED_KEYS = set(KEYWORDS) | set(BOOL_WORDS) | {"None"}


def register_block_emitter(block_type):
    def register(fn):
        EMITTERS[block_type] = fn
        return fn
    return register


def quote_string(s):
    escaped = (
        s.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def object_key_to_code(key):
    if _IDENT_RE.match(key) and key not in _RESERVED_KEYS:
        return key
    return quote_string(key)


def expression_to_code(expr):
    if expr is None:
        return "0"
    if isinstance(expr, NumberExpr):
        return format_number(expr.value)
    if isinstance(expr, StringExpr):
        return quote_string(expr.value)
    if isinstance(expr, BooleanExpr):
        return "True" if expr.value else "False"
    if isinstance(expr, VariableExpr):
        return expr.name
    if isinstance(expr, (BinaryExpr, ComparisonExpr)):
        return f"({expression_to_code(expr.left)} {expr.op} {expression_to_code(expr.right)})"
    if isinstance(expr, SensorExpr):
        return f"{expr.sensor}()"
    if isinstance(expr, ArrayExpr):
        return "[" + ", ".join(expression_to_code(e) for e in expr.elements) + "]"
    if isinstance(expr, ArrayAccessExpr):
        return f"{expression_to_code(expr.array)}[{expression_to_code(expr.index)}]"
    if isinstance(expr, ArrayLengthExpr):
        return f"len({expression_to_code(expr.array)})"
    if isinstance(expr, RandomExpr):
        return "random()"
    if isinstance(expr, RandIntExpr):
        return f"randint({expression_to_code(expr.low)}, {expression_to_code(expr.high)})"
    if isinstance(expr, ObjectExpr):
        props = ", ".join(
            f"{object_key_to_code(key)}: {expression_to_code(value)}"
            for key, value in expr.properties
        )
        return "{" + props + "}"
    if isinstance(expr, ObjectAccessExpr):
        return f"{expression_to_code(expr.obj)}[{expression_to_code(expr.key)}]"
    raise TypeError(f"Unknown block expression: {expr.__class__.__name__}")


def condition_to_code(expr):
    if expr is None:
        return "True"
    return expression_to_code(expr)


class CodeGenState:
    def __init__(self, game_type):
        self.lines = []
        self.line_map = {}
        self.indent = 0
        self.game_type = game_type

    def add_line(self, code, block_id):
        self.lines.append(INDENT * self.indent + code)
        self.line_map[len(self.lines)] = block_id

    def generate_children(self, children, parent_id):
        self.indent += 1
        if children:
            for child in children:
                generate_block(child, self)
        else:
            # an empty body still has to parse
            self.add_line("pass", parent_id)
        self.indent -= 1


def generate_block(block, state):
    emitter = EMITTERS.get(block.TYPE)
    if emitter is None:
        raise ValueError(f"no code generator for block type {block.TYPE!r}")
    emitter(block, state)


def generate_code_with_line_map(blocks, game_type="maze"):
    if not blocks:
        return EMPTY_PROGRAM, {}

    state = CodeGenState(game_type)
    for block in blocks:
        generate_block(block, state)
    return "\n".join(state.lines), state.line_map


def generate_code(blocks, game_type="maze"):
    code, _ = generate_code_with_line_map(blocks, game_type)
    return code


# ---------- emitters ----------

@register_block_emitter("command")
def emit_command(block, state):
    name, arg, arg2 = block.command, block.arg, block.arg2

    if name in LEGACY_COMMANDS:
        name, direction = LEGACY_COMMANDS[name]
        arg2 = arg if arg is not None else arg2
        arg = StringExpr(direction)

    profile = get_game(state.game_type)
    if name in ("move", "turn") and arg is not None and arg2 is None:
        default = profile.move_default if name == "move" else profile.turn_default
        if default is not None:
            arg2 = NumberExpr(default)
    elif arg is None:
        spec = profile.command_spec(name)
        if spec is not None and spec.arg_type != "none" and spec.default_arg is not None:
            arg = NumberExpr(spec.default_arg) if spec.arg_type == "number" else StringExpr(spec.default_arg)

    if arg is not None and arg2 is not None:
        args = f"{expression_to_code(arg)}, {expression_to_code(arg2)}"
    elif arg is not None:
        args = expression_to_code(arg)
    else:
        args = ""
    state.add_line(f"{name}({args})", block.id)


@register_block_emitter("repeat")
def emit_repeat(block, state):
    state.add_line(f"repeat {format_number(block.count)} times:", block.id)
    state.generate_children(block.children, block.id)


@register_block_emitter("while")
def emit_while(block, state):
    state.add_line(f"while {condition_to_code(block.condition)}:", block.id)
    state.generate_children(block.children, block.id)


@register_block_emitter("if")
def emit_if(block, state):
    state.add_line(f"if {condition_to_code(block.condition)}:", block.id)
    state.generate_children(block.children, block.id)


@register_block_emitter("ifelse")
def emit_ifelse(block, state):
    state.add_line(f"if {condition_to_code(block.condition)}:", block.id)
    state.generate_children(block.children, block.id)
    state.add_line("else:", block.id)
    state.generate_children(block.else_children, block.id)


@register_block_emitter("for")
def emit_for(block, state):
    start = expression_to_code(block.start)
    end = expression_to_code(block.end)
    state.add_line(f"for {block.variable} in range({start}, {end}):", block.id)
    state.generate_children(block.children, block.id)


@register_block_emitter("forEach")
def emit_for_each(block, state):
    state.add_line(f"for {block.variable} in {expression_to_code(block.iterable)}:", block.id)
    state.generate_children(block.children, block.id)


@register_block_emitter("setVariable")
def emit_set_variable(block, state):
    state.add_line(f"{block.name} = {expression_to_code(block.expression)}", block.id)


@register_block_emitter("print")
def emit_print(block, state):
    state.add_line(f"print({expression_to_code(block.expression)})", block.id)


@register_block_emitter("functionDef")
def emit_function_def(block, state):
    state.add_line(f"def {block.name}({', '.join(block.params)}):", block.id)
    state.generate_children(block.children, block.id)


@register_block_emitter("functionCall")
def emit_function_call(block, state):
    args = ", ".join(expression_to_code(a) for a in block.args)
    state.add_line(f"{block.name}({args})", block.id)


@register_block_emitter("listAppend")
def emit_list_append(block, state):
    state.add_line(f"append({expression_to_code(block.array)}, {expression_to_code(block.value)})", block.id)


@register_block_emitter("listPop")
def emit_list_pop(block, state):
    state.add_line(f"pop({expression_to_code(block.array)})", block.id)


@register_block_emitter("listInsert")
def emit_list_insert(block, state):
    array = expression_to_code(block.array)
    index = expression_to_code(block.index)
    value = expression_to_code(block.value)
    state.add_line(f"insert({array}, {index}, {value})", block.id)


@register_block_emitter("break")
def emit_break(block, state):
    state.add_line("break", block.id)


@register_block_emitter("continue")
def emit_continue(block, state):
    state.add_line("continue", block.id)


@register_block_emitter("pass")
def emit_pass(block, state):
    state.add_line("pass", block.id)
