"""Block tree used by the visual editor.

One dataclass per block type, each carrying exactly the fields that type
needs. Blocks and block expressions convert to and from plain dicts
(``to_dict`` / ``from_dict``) so a host can store them as JSON.
"""
from dataclasses import dataclass, field, fields
from typing import ClassVar


BLOCK_TYPES = {}        # "repeat" -> Repeat, ...
EXPRESSION_TYPES = {}   # "number" -> NumberExpr, ...

MATH_OPERATORS = ("+", "-", "*", "/", "%", "//", "**", "and", "or")
COMPARISON_OPERATORS = ("==", "!=", "<", ">", "<=", ">=")


def block_type(name):
    def register(cls):
        cls.TYPE = name
        BLOCK_TYPES[name] = cls
        return cls
    return register


def expression_type(name):
    def register(cls):
        cls.TYPE = name
        EXPRESSION_TYPES[name] = cls
        return cls
    return register


# ---------- expressions ----------

class BlockExpression:
    TYPE: ClassVar[str] = ""


@expression_type("number")
@dataclass
class NumberExpr(BlockExpression):
    value: float = 0.0


@expression_type("string")
@dataclass
class StringExpr(BlockExpression):
    value: str = ""


@expression_type("boolean")
@dataclass
class BooleanExpr(BlockExpression):
    value: bool = True


@expression_type("variable")
@dataclass
class VariableExpr(BlockExpression):
    name: str = "x"


@expression_type("binary")
@dataclass
class BinaryExpr(BlockExpression):
    op: str = "+"
    left: BlockExpression | None = None
    right: BlockExpression | None = None


@expression_type("comparison")
@dataclass
class ComparisonExpr(BlockExpression):
    op: str = "=="
    left: BlockExpression | None = None
    right: BlockExpression | None = None


@expression_type("sensor")
@dataclass
class SensorExpr(BlockExpression):
    sensor: str = ""


@expression_type("array")
@dataclass
class ArrayExpr(BlockExpression):
    elements: list = field(default_factory=list)


@expression_type("arrayAccess")
@dataclass
class ArrayAccessExpr(BlockExpression):
    array: BlockExpression | None = None
    index: BlockExpression | None = None


@expression_type("arrayLength")
@dataclass
class ArrayLengthExpr(BlockExpression):
    array: BlockExpression | None = None


@expression_type("random")
@dataclass
class RandomExpr(BlockExpression):
    pass


@expression_type("randint")
@dataclass
class RandIntExpr(BlockExpression):
    low: BlockExpression | None = None
    high: BlockExpression | None = None


@expression_type("object")
@dataclass
class ObjectExpr(BlockExpression):
    properties: list = field(default_factory=list)  # [(key, BlockExpression), ...]


@expression_type("objectAccess")
@dataclass
class ObjectAccessExpr(BlockExpression):
    obj: BlockExpression | None = None
    key: BlockExpression | None = None


# ---------- statements ----------

@dataclass
class Block:
    TYPE: ClassVar[str] = ""
    id: str


@block_type("command")
@dataclass
class Command(Block):
    command: str = "move"
    arg: BlockExpression | None = None
    arg2: BlockExpression | None = None


@block_type("repeat")
@dataclass
class Repeat(Block):
    count: int = 3
    children: list = field(default_factory=list)


@block_type("while")
@dataclass
class While(Block):
    condition: BlockExpression | None = None
    children: list = field(default_factory=list)


@block_type("if")
@dataclass
class If(Block):
    condition: BlockExpression | None = None
    children: list = field(default_factory=list)


@block_type("ifelse")
@dataclass
class IfElse(Block):
    condition: BlockExpression | None = None
    children: list = field(default_factory=list)
    else_children: list = field(default_factory=list)


@block_type("for")
@dataclass
class For(Block):
    variable: str = "i"
    start: BlockExpression | None = None
    end: BlockExpression | None = None
    children: list = field(default_factory=list)


@block_type("forEach")
@dataclass
class ForEach(Block):
    variable: str = "item"
    iterable: BlockExpression | None = None
    children: list = field(default_factory=list)


@block_type("setVariable")
@dataclass
class SetVariable(Block):
    name: str = "x"
    expression: BlockExpression | None = None


@block_type("print")
@dataclass
class Print(Block):
    expression: BlockExpression | None = None


@block_type("functionDef")
@dataclass
class FunctionDef(Block):
    name: str = "myFunction"
    params: list = field(default_factory=list)
    children: list = field(default_factory=list)


@block_type("functionCall")
@dataclass
class FunctionCall(Block):
    name: str = "myFunction"
    args: list = field(default_factory=list)


@block_type("listAppend")
@dataclass
class ListAppend(Block):
    array: BlockExpression | None = None
    value: BlockExpression | None = None


@block_type("listPop")
@dataclass
class ListPop(Block):
    array: BlockExpression | None = None


@block_type("listInsert")
@dataclass
class ListInsert(Block):
    array: BlockExpression | None = None
    index: BlockExpression | None = None
    value: BlockExpression | None = None


@block_type("break")
@dataclass
class Break(Block):
    pass


@block_type("continue")
@dataclass
class Continue(Block):
    pass


@block_type("pass")
@dataclass
class Pass(Block):
    pass


CONTAINER_FIELDS = ("children", "else_children")


def iter_blocks(blocks):
    """Depth-first walk over a block list, parents before children."""
    for block in blocks:
        yield block
        for name in CONTAINER_FIELDS:
            yield from iter_blocks(getattr(block, name, None) or [])


def find_block(blocks, block_id):
    for block in iter_blocks(blocks):
        if block.id == block_id:
            return block
    return None


# ---------- dict conversion ----------

def _encode(value):
    if isinstance(value, (Block, BlockExpression)):
        return to_dict(value)
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def to_dict(node):
    d = {"type": node.TYPE}
    for f in fields(node):
        value = getattr(node, f.name)
        if f.name == "properties":
            d[f.name] = [{"key": k, "value": _encode(v)} for k, v in value]
        else:
            d[f.name] = _encode(value)
    return d


def _decode(value):
    if isinstance(value, dict) and "type" in value:
        return from_dict(value)
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


def from_dict(d):
    kind = d.get("type")
    cls = BLOCK_TYPES.get(kind) or EXPRESSION_TYPES.get(kind)
    if cls is None:
        raise ValueError(f"unknown block type: {kind!r}")

    kwargs = {}
    for f in fields(cls):
        if f.name not in d:
            continue
        if f.name == "properties":
            kwargs[f.name] = [(p["key"], _decode(p["value"])) for p in d[f.name]]
        elif f.name in ("params", "variable", "name", "id", "command", "op", "sensor"):
            kwargs[f.name] = d[f.name]
        else:
            kwargs[f.name] = _decode(d[f.name])
    if issubclass(cls, Block) and "id" not in kwargs:
        raise ValueError(f"{kind} block has no id")
    return cls(**kwargs)


def blocks_to_list(blocks):
    return [to_dict(b) for b in blocks]


def blocks_from_list(items):
    return [from_dict(d) for d in items]
