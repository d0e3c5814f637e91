"""MiniPy source -> block tree.

Returns ``None`` whenever the code cannot be shown as blocks exactly; the
editor then stays in text mode instead of silently losing statements.
"""
import logging

import ast_nodes as nodes
from blocks import (
    ArrayAccessExpr, ArrayExpr, ArrayLengthExpr, BinaryExpr, BooleanExpr, Break, Command,
    ComparisonExpr, Continue, For, ForEach, FunctionCall, FunctionDef, If, IfElse, ListAppend,
    ListInsert, ListPop, NumberExpr, ObjectAccessExpr, ObjectExpr, Pass, Print, RandIntExpr,
    RandomExpr, Repeat, SensorExpr, SetVariable, StringExpr, VariableExpr, While,
    COMPARISON_OPERATORS, MATH_OPERATORS,
)
from errors import MiniPySyntaxError
from parser import parse
from stdlib import CONDITION_SENSORS
from values import is_integral

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# call name -> command block verb
COMMAND_MAP = {
    "move": "move",
    "turn": "turn",
    "forward": "move",
    "backward": "move",
    "turnLeft": "turn",
    "turnRight": "turn",
    "left": "turn",
    "right": "turn",
    "setColor": "setColor",
}

# legacy verbs carry their direction in the name
LEGACY_DIRECTION_MAP = {
    "forward": "forward",
    "backward": "backward",
    "turnLeft": "left",
    "turnRight": "right",
    "left": "left",
    "right": "right",
}


class Unrepresentable(Exception):
    pass


class BlockBuilder:
    def __init__(self, game_type="maze"):
        self.game_type = game_type
        self.sensors = set(CONDITION_SENSORS.get(game_type, ()))
        self._next_id = 0

    def new_id(self):
        self._next_id += 1
        return f"block_{self._next_id}"

    def reject(self, what, node=None):
        line = getattr(node, "line", None)
        raise Unrepresentable(f"{what} (line {line})" if line else what)

    # ---------- statements ----------
    def statements(self, body):
        return [self.statement(s) for s in body]

    def statement(self, node):
        if isinstance(node, nodes.ExpressionStatement):
            if not isinstance(node.expr, nodes.Call):
                self.reject("expression used as a statement", node)
            return self.call_statement(node.expr)

        if isinstance(node, nodes.Assignment):
            return SetVariable(self.new_id(), name=node.name, expression=self.expr(node.value))

        if isinstance(node, nodes.AugmentedAssignment):
            # x += e  ->  x = (x + e)
            value = BinaryExpr(op=node.op, left=VariableExpr(node.name), right=self.expr(node.value))
            return SetVariable(self.new_id(), name=node.name, expression=value)

        if isinstance(node, nodes.If):
            return self.if_block(node.condition, node.body, node.elifs, node.else_body)

        if isinstance(node, nodes.Repeat):
            count = node.count
            if not (isinstance(count, nodes.Number) and is_integral(count.value) and count.value >= 0):
                self.reject("repeat count must be a whole number", node)
            block_id = self.new_id()
            return Repeat(block_id, count=int(count.value), children=self.statements(node.body))

        if isinstance(node, nodes.While):
            block_id = self.new_id()
            return While(block_id, condition=self.expr(node.condition), children=self.statements(node.body))

        if isinstance(node, nodes.For):
            if node.step is not None:
                self.reject("range() with a step", node)
            block_id = self.new_id()
            return For(
                block_id,
                variable=node.var_name,
                start=self.expr(node.start),
                end=self.expr(node.end),
                children=self.statements(node.body),
            )

        if isinstance(node, nodes.ForEach):
            block_id = self.new_id()
            return ForEach(
                block_id,
                variable=node.var_name,
                iterable=self.expr(node.iterable),
                children=self.statements(node.body),
            )

        if isinstance(node, nodes.FunctionDef):
            block_id = self.new_id()
            return FunctionDef(block_id, name=node.name, params=list(node.params), children=self.statements(node.body))

        if isinstance(node, nodes.Break):
            return Break(self.new_id())

        if isinstance(node, nodes.Continue):
            return Continue(self.new_id())

        if isinstance(node, nodes.Pass):
            return Pass(self.new_id())

        # IndexedAssignment, Return
        self.reject(f"no block for {node.__class__.__name__}", node)

    def if_block(self, condition, body, elifs, else_body):
        block_id = self.new_id()
        cond = self.expr(condition)
        children = self.statements(body)

        if elifs:
            # elif becomes an if nested in the else branch
            next_cond, next_body, _line = elifs[0]
            nested = self.if_block(next_cond, next_body, elifs[1:], else_body)
            return IfElse(block_id, condition=cond, children=children, else_children=[nested])
        if else_body is not None:
            return IfElse(block_id, condition=cond, children=children, else_children=self.statements(else_body))
        return If(block_id, condition=cond, children=children)

    def call_statement(self, call):
        name, args = call.callee, call.args

        if name == "print":
            if len(args) > 1:
                self.reject("print() with more than one value", call)
            value = self.expr(args[0]) if args else StringExpr("")
            return Print(self.new_id(), expression=value)

        if name == "append":
            self.check_arity(call, 2)
            return ListAppend(self.new_id(), array=self.expr(args[0]), value=self.expr(args[1]))

        if name == "pop":
            self.check_arity(call, 1)
            return ListPop(self.new_id(), array=self.expr(args[0]))

        if name == "insert":
            self.check_arity(call, 3)
            return ListInsert(
                self.new_id(),
                array=self.expr(args[0]),
                index=self.expr(args[1]),
                value=self.expr(args[2]),
            )

        if name in COMMAND_MAP:
            return self.command(call)

        return FunctionCall(self.new_id(), name=name, args=[self.expr(a) for a in args])

    def command(self, call):
        verb = COMMAND_MAP[call.callee]
        args = call.args
        direction = LEGACY_DIRECTION_MAP.get(call.callee)

        if direction is not None:
            # forward(3) -> move("forward", 3)
            if len(args) > 1:
                self.reject(f"{call.callee}() with more than one argument", call)
            arg2 = self.expr(args[0]) if args else None
            return Command(self.new_id(), command=verb, arg=StringExpr(direction), arg2=arg2)

        if len(args) > 2:
            self.reject(f"{call.callee}() with more than two arguments", call)
        arg = self.expr(args[0]) if len(args) > 0 else None
        arg2 = self.expr(args[1]) if len(args) > 1 else None
        return Command(self.new_id(), command=verb, arg=arg, arg2=arg2)

    def check_arity(self, call, count):
        if len(call.args) != count:
            self.reject(f"{call.callee}() needs {count} argument{'' if count == 1 else 's'}", call)

    # ---------- expressions ----------
    def expr(self, node):
        if isinstance(node, nodes.Number):
            return NumberExpr(node.value)

        if isinstance(node, nodes.String):
            return StringExpr(node.value)

        if isinstance(node, nodes.Boolean):
            return BooleanExpr(node.value)

        if isinstance(node, nodes.Identifier):
            return VariableExpr(node.name)

        if isinstance(node, nodes.BinaryOp):
            if node.op in COMPARISON_OPERATORS:
                return ComparisonExpr(op=node.op, left=self.expr(node.left), right=self.expr(node.right))
            if node.op in MATH_OPERATORS:
                return BinaryExpr(op=node.op, left=self.expr(node.left), right=self.expr(node.right))
            self.reject(f"operator {node.op!r}", node)

        if isinstance(node, nodes.UnaryOp):
            if node.op == "-" and isinstance(node.operand, nodes.Number):
                return NumberExpr(-node.operand.value)
            self.reject(f"unary {node.op!r}", node)

        if isinstance(node, nodes.Call):
            return self.call_expr(node)

        if isinstance(node, nodes.ArrayLiteral):
            return ArrayExpr([self.expr(e) for e in node.elements])

        if isinstance(node, nodes.IndexAccess):
            index = self.expr(node.index)
            if isinstance(index, StringExpr):
                return ObjectAccessExpr(obj=self.expr(node.obj), key=index)
            return ArrayAccessExpr(array=self.expr(node.obj), index=index)

        if isinstance(node, nodes.ObjectLiteral):
            return ObjectExpr([(key, self.expr(value)) for key, value in node.properties])

        # SliceAccess, NoneLiteral
        self.reject(f"no block for {node.__class__.__name__}", node)

    def call_expr(self, call):
        name, args = call.callee, call.args

        if name == "len":
            self.check_arity(call, 1)
            return ArrayLengthExpr(array=self.expr(args[0]))

        if name == "random":
            self.check_arity(call, 0)
            return RandomExpr()

        if name == "randint":
            self.check_arity(call, 2)
            return RandIntExpr(low=self.expr(args[0]), high=self.expr(args[1]))

        if name in self.sensors:
            self.check_arity(call, 0)
            return SensorExpr(name)

        self.reject(f"call to {name}() inside an expression", call)


def parse_code_to_blocks(code, game_type="maze"):
    """Blocks for ``code``; ``[]`` for empty code, ``None`` if it has no exact block form."""
    if not code.strip():
        return []

    try:
        program = parse(code)
    except MiniPySyntaxError as e:
        logger.debug("code is not valid MiniPy: %s", e)
        return None

    try:
        return BlockBuilder(game_type).statements(program.body)
    except Unrepresentable as e:
        logger.debug("code has no block form: %s", e)
        return None
