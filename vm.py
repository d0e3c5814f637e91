import copy
import difflib
import logging
import random
from collections import deque
from dataclasses import dataclass, field

from builtin_funcs import BUILTINS, call_builtin, power
from compiler import compile_expression, compile_source
from errors import MiniPyError, MiniPyExpressionError, MiniPyRuntimeError, MiniPySyntaxError
from natives import COMMAND, SENSOR, NativeRegistry
from parser import parse_expression
from stdlib import CustomCommand, build_prefix
from values import copy_value, is_integral, is_number, is_truthy, normalize, type_name, values_equal

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

DEFAULT_MAX_STEPS = 100_000
DEFAULT_MAX_HISTORY = 1000
DEFAULT_MAX_CALL_DEPTH = 200

# guards a single step that never reaches another statement,
# e.g. `while True:` around an `if` whose body never runs
MAX_INSTRUCTIONS_PER_STEP = 100_000


@dataclass
class StepResult:
    done: bool
    highlight_line: int | None
    actions: list = field(default_factory=list)  # [(command name, args), ...] in call order


class VM:
    def __init__(
        self,
        natives: NativeRegistry | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        max_history: int = DEFAULT_MAX_HISTORY,
        max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
        seed: int | None = None,
        game_type: str | None = None,
    ):
        self.natives = natives if natives is not None else NativeRegistry()
        self.max_steps = max_steps
        self.max_history = max_history
        self.MAX_CALL_DEPTH = max_call_depth
        # a VM without an explicit seed still replays identically across reset()
        self.seed = seed if seed is not None else random.randrange(2**32)
        self.game_type = game_type

        self.program = None
        self.custom_commands = {}      # name -> CustomCommand
        self.internal_names = set()    # host-hidden variables
        self.breakpoints = set()
        self.watches = []
        self._evaluating = False

        self._reset_state()

    # ---------- setup ----------
    def _reset_state(self):
        self.ip = 0                 # instruction pointer
        self.stack = []             # operand stack
        self.globals = {}           # global variables
        self.call_stack = []        # list of frames, innermost last
        self.step_count = 0
        self.status = "running" if self.program is not None else "done"
        self.error = None
        self.error_exc = None
        self.output = []
        self.current_line = None
        self.rng = random.Random(self.seed)
        self.history = deque(maxlen=self.max_history)
        self._actions = []

    def load(self, program):
        program.validate()
        self.program = program
        self._reset_state()
        logger.debug("loaded program: %d instructions", len(program.instructions))

    def load_with_source(self, code, game_type=None):
        """Compile library prefix + custom commands + ``code`` as one program and load it.

        Lines are reported relative to ``code``; library code never shows up
        as a highlighted line or as a step.
        """
        game_type = game_type or self.game_type
        prefix = build_prefix(game_type, self.custom_commands.values())
        prefix_lines = prefix.count("\n")

        try:
            program = compile_source(prefix + code)
        except MiniPySyntaxError as e:
            if e.line is not None and e.line > prefix_lines:
                e.line -= prefix_lines
            raise

        program.hide_prefix(prefix_lines)
        self.load(program)
        return program

    def reset(self):
        """Back to the start of the current program; breakpoints and watches stay."""
        self._reset_state()

    def set_natives(self, registry):
        self.natives = registry

    def register_command(self, name, fn):
        self.natives.register_command(name, fn)

    def register_sensor(self, name, fn):
        self.natives.register_sensor(name, fn)

    def define_custom_command(self, name, code, arg_type="none"):
        # takes effect on the next load_with_source()
        cmd = CustomCommand(name=name, code=code, arg_type=arg_type)
        self.custom_commands[name] = cmd
        return cmd

    def remove_custom_command(self, name):
        return self.custom_commands.pop(name, None) is not None

    def mark_internal(self, *names):
        self.internal_names.update(names)

    # ---------- snapshots ----------
    def _snapshot(self):
        state = copy.deepcopy({
            "ip": self.ip,
            "stack": self.stack,
            "globals": self.globals,
            "call_stack": self.call_stack,
            "step_count": self.step_count,
            "status": self.status,
            "error": self.error,
            "output": self.output,
            "current_line": self.current_line,
        })
        state["rng"] = self.rng.getstate()
        state["error_exc"] = self.error_exc
        return state

    def _restore(self, state):
        self.ip = state["ip"]
        self.stack = state["stack"]
        self.globals = state["globals"]
        self.call_stack = state["call_stack"]
        self.step_count = state["step_count"]
        self.status = state["status"]
        self.error = state["error"]
        self.error_exc = state["error_exc"]
        self.output = state["output"]
        self.current_line = state["current_line"]
        self.rng.setstate(state["rng"])

    def step_back(self):
        if not self.history:
            return False
        self._restore(self.history.pop())
        return True

    def can_step_back(self):
        return len(self.history) > 0

    def clear_history(self):
        self.history.clear()

    # ---------- stepping ----------
    def _is_boundary(self, ip):
        dbg = self.program.debug[ip]
        return dbg["stmt"] and not dbg["hidden"]

    def step(self):
        if self.program is None or self.status != "running":
            return StepResult(True, None, [])

        self.history.append(self._snapshot())
        self._actions = []

        try:
            if self.step_count >= self.max_steps:
                raise MiniPyRuntimeError(
                    f"step limit reached ({self.max_steps} steps)",
                    line=self.current_line,
                    suggestion="check for a loop that never ends",
                )
            self.step_count += 1
            highlight, halted = self._run_one_statement()
        except MiniPyRuntimeError as e:
            self._fail(e)
        except MiniPyError:
            raise
        except Exception as e:
            self._fail(MiniPyRuntimeError(str(e)))

        if halted:
            self.status = "done"
        return StepResult(halted, highlight, list(self._actions))

    def _run_one_statement(self):
        """Execute up to (not including) the next statement boundary after the first one."""
        highlight = None
        executed = False
        ops = 0

        while True:
            dbg = self.program.debug[self.ip]
            if dbg["stmt"] and not dbg["hidden"]:
                if executed:
                    return highlight, False
                executed = True
                highlight = dbg["line"]
            if dbg["line"] is not None and not dbg["hidden"]:
                self.current_line = dbg["line"]

            opcode, arg = self.program.instructions[self.ip]
            if self.execute(opcode, arg):
                return highlight, True

            ops += 1
            if ops > MAX_INSTRUCTIONS_PER_STEP:
                raise MiniPyRuntimeError(
                    "this line ran for too long without finishing",
                    suggestion="check for a loop that never ends",
                )

    def _fail(self, err):
        if err.line is None:
            err.line = self.current_line
        if not err.frames:
            err.frames = self.build_stacktrace()
        self.status = "error"
        self.error = err.message
        self.error_exc = err
        logger.debug("runtime error at line %s: %s", err.line, err.message)
        raise err

    def run(self):
        """Step until the program finishes; returns the last StepResult."""
        result = self.step()
        while not result.done:
            result = self.step()
        return result

    def run_all(self):
        results = [self.step()]
        while not results[-1].done:
            results.append(self.step())
        return results

    def run_until_breakpoint(self):
        """Step at least once, then stop before a line that has a breakpoint.

        Returns ``(result, hit)``; ``hit`` is False when the program ended first.
        """
        result = self.step()
        while not result.done:
            if self.next_line() in self.breakpoints:
                return result, True
            result = self.step()
        return result, False

    # ---------- breakpoints / watches ----------
    def add_breakpoint(self, line):
        self.breakpoints.add(line)

    def remove_breakpoint(self, line):
        self.breakpoints.discard(line)

    def toggle_breakpoint(self, line):
        if line in self.breakpoints:
            self.breakpoints.discard(line)
            return False
        self.breakpoints.add(line)
        return True

    def has_breakpoint(self, line):
        return line in self.breakpoints

    def get_breakpoints(self):
        return sorted(self.breakpoints)

    def clear_breakpoints(self):
        self.breakpoints.clear()

    def add_watch(self, expression):
        if expression not in self.watches:
            self.watches.append(expression)

    def remove_watch(self, expression):
        if expression in self.watches:
            self.watches.remove(expression)

    def clear_watches(self):
        self.watches = []

    def get_watch_list(self):
        return list(self.watches)

    def get_watched_values(self):
        values = {}
        for expression in self.watches:
            try:
                values[expression] = self.evaluate_expression(expression)
            except MiniPyExpressionError:
                values[expression] = None
        return values

    # ---------- inspection ----------
    def get_state(self):
        state = {"status": self.status, "line": self.current_line, "step_count": self.step_count}
        if self.error is not None:
            state["error"] = self.error
        return state

    def get_current_line(self):
        return self.current_line

    def next_line(self):
        """Line of the statement the next step() will run, if any."""
        if self.program is None or self.status != "running":
            return None
        if self._is_boundary(self.ip):
            return self.program.debug[self.ip]["line"]
        return None

    def get_output(self):
        return list(self.output)

    def write_output(self, text):
        self.output.append(text)
        logger.debug("print: %s", text)

    def _visible(self, name):
        return not name.startswith("__") and name not in self.internal_names

    def _visible_frames(self):
        return [fr for fr in self.call_stack if not fr.get("hidden")]

    def _visible_vars(self, env):
        return {k: copy.deepcopy(v) for k, v in env.items() if self._visible(k)}

    def get_variables(self):
        merged = self._visible_vars(self.globals)
        frames = self._visible_frames()
        if frames:
            # locals shadow globals
            merged.update(self._visible_vars(frames[-1]["locals"]))
        return merged

    def get_call_stack_for_visualization(self):
        frames = self._visible_frames()
        lines = [fr["call_line"] for fr in frames[1:]] + [self.current_line]
        main_line = frames[0]["call_line"] if frames else self.current_line

        entries = [{"name": "<main>", "line": main_line, "locals": self._visible_vars(self.globals)}]
        for fr, line in zip(frames, lines):
            entries.append({"name": fr["name"], "line": line, "locals": self._visible_vars(fr["locals"])})
        return entries

    def build_stacktrace(self):
        # most recent first
        frames = []
        line = self.current_line
        for fr in reversed(self._visible_frames()):
            frames.append({"name": fr["name"], "line": line})
            line = fr["call_line"]
        frames.append({"name": "<main>", "line": line})
        return frames

    # ---------- expressions ----------
    def evaluate_expression(self, source):
        """Evaluate one expression against the live variables and sensors.

        Nothing observable changes: instruction pointer, history, call stack,
        variables and output are all restored afterwards.
        """
        try:
            program = compile_expression(parse_expression(source))
        except MiniPySyntaxError as e:
            raise MiniPyExpressionError(f"invalid expression: {e.message}", line=e.line, column=e.column) from e

        saved_program = self.program
        saved_state = self._snapshot()
        saved_actions = self._actions
        self.program = program
        self.ip = 0
        self.stack = []
        self._evaluating = True
        try:
            ops = 0
            while True:
                opcode, arg = program.instructions[self.ip]
                if self.execute(opcode, arg):
                    break
                ops += 1
                if ops > MAX_INSTRUCTIONS_PER_STEP:
                    raise MiniPyExpressionError("expression took too long to evaluate")
            return copy_value(self.stack[-1]) if self.stack else None
        except MiniPyExpressionError:
            raise
        except MiniPyRuntimeError as e:
            raise MiniPyExpressionError(e.message, suggestion=e.suggestion) from e
        except Exception as e:
            raise MiniPyExpressionError(str(e)) from e
        finally:
            self._evaluating = False
            self.program = saved_program
            self._actions = saved_actions
            self._restore(saved_state)

    # ---------- execution ----------
    def pop(self):
        if not self.stack:
            raise MiniPyRuntimeError("stack underflow")
        return self.stack.pop()

    def pop_n(self, count):
        if count == 0:
            return []
        if len(self.stack) < count:
            raise MiniPyRuntimeError("stack underflow")
        items = self.stack[-count:]
        del self.stack[-count:]
        return items

    def _env(self):
        if self.call_stack:
            return self.call_stack[-1]["locals"]
        return self.globals

    def execute(self, opcode, arg):
        """Run one instruction. Returns True when the program halts."""
        if opcode == "LOAD_CONST":
            self.stack.append(self.program.consts[arg])
            self.ip += 1
            return False

        if opcode == "LOAD_NAME":
            env = self._env()
            if arg in env:
                self.stack.append(env[arg])
            elif arg in self.globals:
                self.stack.append(self.globals[arg])
            else:
                raise self.undefined_name(arg)
            self.ip += 1
            return False

        if opcode == "STORE_NAME":
            # assignment copies lists/objects so two names never share one
            self._env()[arg] = copy_value(self.pop())
            self.ip += 1
            return False

        if opcode == "POP":
            self.pop()
            self.ip += 1
            return False

        if opcode == "DUP":
            if not self.stack:
                raise MiniPyRuntimeError("stack underflow")
            self.stack.append(self.stack[-1])
            self.ip += 1
            return False

        if opcode == "NOP":
            self.ip += 1
            return False

        if opcode in ARITHMETIC:
            b = self.pop()
            a = self.pop()
            self.stack.append(self.arithmetic(opcode, a, b))
            self.ip += 1
            return False

        if opcode == "NEG":
            a = self.pop()
            if not is_number(a):
                raise MiniPyRuntimeError(f"cannot negate a {type_name(a)}")
            self.stack.append(-float(a))
            self.ip += 1
            return False

        if opcode in ("CMP_EQ", "CMP_NE"):
            b = self.pop()
            a = self.pop()
            same = values_equal(a, b)
            self.stack.append(same if opcode == "CMP_EQ" else not same)
            self.ip += 1
            return False

        if opcode in ORDERING:
            b = self.pop()
            a = self.pop()
            self.stack.append(self.compare(opcode, a, b))
            self.ip += 1
            return False

        if opcode == "CMP_IN":
            container = self.pop()
            item = self.pop()
            self.stack.append(self.contains(container, item))
            self.ip += 1
            return False

        if opcode == "NOT":
            self.stack.append(not is_truthy(self.pop()))
            self.ip += 1
            return False

        if opcode == "JUMP":
            self.ip = arg
            return False

        if opcode == "JUMP_IF_FALSE":
            if is_truthy(self.pop()):
                self.ip += 1
            else:
                self.ip = arg
            return False

        if opcode == "JUMP_IF_TRUE":
            if is_truthy(self.pop()):
                self.ip = arg
            else:
                self.ip += 1
            return False

        if opcode == "BUILD_LIST":
            self.stack.append([copy_value(v) for v in self.pop_n(arg)])
            self.ip += 1
            return False

        if opcode == "BUILD_DICT":
            flat = self.pop_n(arg * 2)
            d = {}
            for i in range(0, len(flat), 2):
                d[flat[i]] = copy_value(flat[i + 1])
            self.stack.append(d)
            self.ip += 1
            return False

        if opcode == "INDEX_GET":
            key = self.pop()
            target = self.pop()
            self.stack.append(self.index_get(target, key))
            self.ip += 1
            return False

        if opcode == "INDEX_SET":
            value = self.pop()
            key = self.pop()
            target = self.pop()
            self.index_set(target, key, value)
            self.ip += 1
            return False

        if opcode == "SLICE":
            end = self.pop()
            start = self.pop()
            target = self.pop()
            self.stack.append(self.slice(target, start, end))
            self.ip += 1
            return False

        if opcode == "GET_ITER":
            value = self.pop()
            if isinstance(value, list):
                items = copy.deepcopy(value)
            elif isinstance(value, str):
                items = list(value)
            elif isinstance(value, dict):
                items = list(value.keys())
            else:
                raise MiniPyRuntimeError(f"cannot loop over a {type_name(value)}")
            self.stack.append(items)
            self.ip += 1
            return False

        if opcode == "LEN":
            self.stack.append(float(len(self.pop())))
            self.ip += 1
            return False

        if opcode == "RANGE_TEST":
            step = self.pop()
            end = self.pop()
            counter = self.pop()
            for value in (counter, end, step):
                if not is_number(value):
                    raise MiniPyRuntimeError(f"loop bounds must be numbers, not {type_name(value)}")
            if step == 0:
                raise MiniPyRuntimeError("range() step cannot be zero")
            keep_going = counter < end if step > 0 else counter > end
            self.ip = self.ip + 1 if keep_going else arg
            return False

        if opcode == "CALL_NATIVE":
            name, argc = arg
            args = self.pop_n(argc)
            self.stack.append(self.call_native(name, args))
            self.ip += 1
            return False

        if opcode == "CALL_FUNC":
            self.call_function(*arg)
            return False

        if opcode == "RETURN":
            ret = self.pop()
            if not self.call_stack:
                raise MiniPyRuntimeError("return used outside of a function")
            frame = self.call_stack.pop()
            self.stack.append(ret)
            self.ip = frame["return_ip"]
            return False

        if opcode == "HALT":
            return True

        raise MiniPyRuntimeError(f"unknown opcode: {opcode}")

    def call_function(self, name, argc):
        meta = self.program.functions.get(name)
        if meta is None or meta.get("entry") is None:
            raise self.undefined_function(name)

        params = meta["params"]
        if argc != len(params):
            raise MiniPyRuntimeError(
                f"{name}() takes {len(params)} argument{'' if len(params) == 1 else 's'} but {argc} {'was' if argc == 1 else 'were'} given"
            )
        args = self.pop_n(argc)

        if len(self.call_stack) >= self.MAX_CALL_DEPTH:
            raise MiniPyRuntimeError(
                f"too many nested calls (more than {self.MAX_CALL_DEPTH})",
                suggestion="a function that calls itself needs a way to stop",
            )

        self.call_stack.append({
            "name": name,
            "return_ip": self.ip + 1,
            "locals": {p: copy_value(a) for p, a in zip(params, args)},
            "call_line": self.current_line,
            "hidden": bool(meta.get("hidden")),
        })
        self.ip = meta["entry"]

    def call_native(self, name, args):
        kind, fn = self.natives.lookup(name)

        if kind == COMMAND:
            if self._evaluating:
                raise MiniPyRuntimeError(f"{name}() is a command and cannot be used here")
            call_args = [copy_value(a) for a in args]
            self._actions.append((name, call_args))
            return normalize(fn(call_args))

        if kind == SENSOR:
            return normalize(fn([copy_value(a) for a in args]))

        if name in BUILTINS:
            return call_builtin(self, name, args)

        raise self.undefined_function(name)

    def undefined_name(self, name):
        known = list(self.globals) + list(self._env())
        return MiniPyRuntimeError(
            f"name '{name}' is not defined",
            suggestion=self._suggest(name, [k for k in known if self._visible(k)]) or "set the variable before using it",
        )

    def undefined_function(self, name):
        known = list(self.natives.names()) + list(BUILTINS)
        if self.program is not None:
            known += list(self.program.functions)
        return MiniPyRuntimeError(f"undefined function: {name}()", suggestion=self._suggest(name, known))

    def _suggest(self, name, candidates):
        close = difflib.get_close_matches(name, candidates, n=1)
        if close:
            return f"did you mean {close[0]}?"
        return None

    # ---------- operators ----------
    def arithmetic(self, opcode, a, b):
        if opcode == "ADD":
            if is_number(a) and is_number(b):
                return float(a) + float(b)
            if isinstance(a, str) and isinstance(b, str):
                return a + b
            if isinstance(a, list) and isinstance(b, list):
                return copy.deepcopy(a + b)
            raise self.operand_error("+", a, b)

        if opcode == "MUL":
            if is_number(a) and is_number(b):
                return float(a) * float(b)
            seq, times = (a, b) if isinstance(a, (str, list)) else (b, a)
            if isinstance(seq, (str, list)) and is_integral(times):
                if times < 0:
                    raise MiniPyRuntimeError("cannot repeat a negative number of times")
                return copy.deepcopy(seq * int(times))
            raise self.operand_error("*", a, b)

        symbol = OPERATOR_SYMBOLS[opcode]
        if not (is_number(a) and is_number(b)):
            raise self.operand_error(symbol, a, b)
        a, b = float(a), float(b)

        if opcode == "SUB":
            return a - b
        if opcode == "POW":
            return power(a, b)
        if b == 0:
            raise MiniPyRuntimeError("division by zero", suggestion="make sure you never divide by 0")
        if opcode == "DIV":
            return a / b
        if opcode == "MOD":
            return a % b
        return float(a // b)

    def compare(self, opcode, a, b):
        if not ((is_number(a) and is_number(b)) or (isinstance(a, str) and isinstance(b, str))):
            raise self.operand_error(OPERATOR_SYMBOLS[opcode], a, b)
        if opcode == "CMP_LT":
            return a < b
        if opcode == "CMP_LE":
            return a <= b
        if opcode == "CMP_GT":
            return a > b
        return a >= b

    def contains(self, container, item):
        if isinstance(container, list):
            return any(values_equal(item, v) for v in container)
        if isinstance(container, str):
            if not isinstance(item, str):
                raise MiniPyRuntimeError(f"'in <string>' needs a string on the left, not {type_name(item)}")
            return item in container
        if isinstance(container, dict):
            return isinstance(item, str) and item in container
        raise MiniPyRuntimeError(f"'in' needs a list, string or object on the right, not {type_name(container)}")

    def operand_error(self, symbol, a, b):
        return MiniPyRuntimeError(f"cannot use '{symbol}' with {type_name(a)} and {type_name(b)}")

    def _list_index(self, target, key):
        if not is_integral(key):
            raise MiniPyRuntimeError(f"list index must be a whole number, not {type_name(key)}")
        index = int(key)
        if not -len(target) <= index < len(target):
            raise MiniPyRuntimeError(
                f"index {index} is out of range (length {len(target)})",
                suggestion="the first item is at index 0",
            )
        return index

    def index_get(self, target, key):
        if isinstance(target, (list, str)):
            return target[self._list_index(target, key)]
        if isinstance(target, dict):
            if not isinstance(key, str):
                raise MiniPyRuntimeError(f"object keys are strings, not {type_name(key)}")
            if key not in target:
                raise MiniPyRuntimeError(f"key not found: {key!r}")
            return target[key]
        raise MiniPyRuntimeError(f"cannot index into a {type_name(target)}")

    def index_set(self, target, key, value):
        if isinstance(target, list):
            target[self._list_index(target, key)] = copy_value(value)
            return
        if isinstance(target, dict):
            if not isinstance(key, str):
                raise MiniPyRuntimeError(f"object keys are strings, not {type_name(key)}")
            target[key] = copy_value(value)
            return
        raise MiniPyRuntimeError(f"cannot change items of a {type_name(target)}")

    def slice(self, target, start, end):
        if not isinstance(target, (list, str)):
            raise MiniPyRuntimeError(f"cannot slice a {type_name(target)}")
        bounds = []
        for bound in (start, end):
            if bound is None:
                bounds.append(None)
            elif is_integral(bound):
                bounds.append(int(bound))
            else:
                raise MiniPyRuntimeError("slice bounds must be whole numbers")
        return copy.deepcopy(target[bounds[0]:bounds[1]])


ARITHMETIC = frozenset({"ADD", "SUB", "MUL", "DIV", "MOD", "FLOOR_DIV", "POW"})
ORDERING = frozenset({"CMP_LT", "CMP_LE", "CMP_GT", "CMP_GE"})

OPERATOR_SYMBOLS = {
    "ADD": "+",
    "SUB": "-",
    "MUL": "*",
    "DIV": "/",
    "MOD": "%",
    "FLOOR_DIV": "//",
    "POW": "**",
    "CMP_LT": "<",
    "CMP_LE": "<=",
    "CMP_GT": ">",
    "CMP_GE": ">=",
}
