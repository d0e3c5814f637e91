from dataclasses import dataclass, field


@dataclass(frozen=True)
class ASTNode:
    # 1-based source line; set by the parser
    line: int | None = field(default=None, kw_only=True, compare=False)


@dataclass(frozen=True)
class Program(ASTNode):
    body: tuple


# ---------- statements ----------

@dataclass(frozen=True)
class ExpressionStatement(ASTNode):
    expr: ASTNode


@dataclass(frozen=True)
class Assignment(ASTNode):
    name: str
    value: ASTNode


@dataclass(frozen=True)
class AugmentedAssignment(ASTNode):
    name: str
    op: str        # "+", "-", "*" or "/"
    value: ASTNode


@dataclass(frozen=True)
class IndexedAssignment(ASTNode):
    target: ASTNode
    index: ASTNode
    value: ASTNode


@dataclass(frozen=True)
class If(ASTNode):
    condition: ASTNode
    body: tuple
    elifs: tuple = ()          # ((condition, body, line), ...)
    else_body: tuple | None = None


@dataclass(frozen=True)
class Repeat(ASTNode):
    count: ASTNode
    body: tuple


@dataclass(frozen=True)
class While(ASTNode):
    condition: ASTNode
    body: tuple


@dataclass(frozen=True)
class For(ASTNode):
    var_name: str
    start: ASTNode
    end: ASTNode
    step: ASTNode | None
    body: tuple


@dataclass(frozen=True)
class ForEach(ASTNode):
    var_name: str
    iterable: ASTNode
    body: tuple


@dataclass(frozen=True)
class Break(ASTNode):
    pass


@dataclass(frozen=True)
class Continue(ASTNode):
    pass


@dataclass(frozen=True)
class Pass(ASTNode):
    pass


@dataclass(frozen=True)
class FunctionDef(ASTNode):
    name: str
    params: tuple
    body: tuple


@dataclass(frozen=True)
class Return(ASTNode):
    value: ASTNode | None


# ---------- expressions ----------

@dataclass(frozen=True)
class Number(ASTNode):
    value: float


@dataclass(frozen=True)
class String(ASTNode):
    value: str


@dataclass(frozen=True)
class Boolean(ASTNode):
    value: bool


@dataclass(frozen=True)
class NoneLiteral(ASTNode):
    pass


@dataclass(frozen=True)
class Identifier(ASTNode):
    name: str


@dataclass(frozen=True)
class BinaryOp(ASTNode):
    left: ASTNode
    op: str
    right: ASTNode


@dataclass(frozen=True)
class UnaryOp(ASTNode):
    op: str        # "-" or "not"
    operand: ASTNode


@dataclass(frozen=True)
class Call(ASTNode):
    callee: str
    args: tuple


@dataclass(frozen=True)
class ArrayLiteral(ASTNode):
    elements: tuple


@dataclass(frozen=True)
class IndexAccess(ASTNode):
    obj: ASTNode
    index: ASTNode


@dataclass(frozen=True)
class SliceAccess(ASTNode):
    obj: ASTNode
    start: ASTNode | None
    end: ASTNode | None


@dataclass(frozen=True)
class ObjectLiteral(ASTNode):
    properties: tuple  # ((key, value_expr), ...)
