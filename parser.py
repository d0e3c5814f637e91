from ast_nodes import (
    Program, ExpressionStatement, Assignment, AugmentedAssignment, IndexedAssignment,
    If, Repeat, While, For, ForEach, Break, Continue, Pass, FunctionDef, Return,
    Number, String, Boolean, NoneLiteral, Identifier, BinaryOp, UnaryOp, Call,
    ArrayLiteral, IndexAccess, SliceAccess, ObjectLiteral,
)
from errors import MiniPySyntaxError
from lexer import Lexer


COMPOUND_STARTS = ("IF", "ELIF", "ELSE", "WHILE", "FOR", "REPEAT", "DEF")

AUGMENTED_OPS = {
    "PLUS_ASSIGN": "+",
    "MINUS_ASSIGN": "-",
    "STAR_ASSIGN": "*",
    "SLASH_ASSIGN": "/",
}

TOKEN_NAMES = {
    "NEWLINE": "end of line",
    "INDENT": "indent",
    "DEDENT": "end of block",
    "EOF": "end of code",
    "COLON": "':'",
    "COMMA": "','",
    "LPAREN": "'('",
    "RPAREN": "')'",
    "LBRACKET": "'['",
    "RBRACKET": "']'",
    "LBRACE": "'{'",
    "RBRACE": "'}'",
    "ASSIGN": "'='",
}


def describe(tok):
    if tok.type == "IDENT":
        return f"'{tok.value}'"
    if tok.type in ("NUMBER", "STRING", "BOOL"):
        return repr(tok.value)
    return TOKEN_NAMES.get(tok.type, tok.type.lower())


class Parser:
    def __init__(self, lexer):
        self.lexer = lexer
        self.current_token = self.lexer.get_next_token()
        self.next_token = self.lexer.get_next_token()
        self.function_depth = 0
        self.block_depth = 0

    # move to next token, but only if it matches what we expect
    def eat(self, token_type):
        if self.current_token.type == token_type:
            self.current_token = self.next_token
            self.next_token = self.lexer.get_next_token()
        else:
            tok = self.current_token
            expected = TOKEN_NAMES.get(token_type, token_type.lower())
            suggestion = None
            if token_type == "COLON":
                suggestion = "lines that start a block end with ':'"
            raise MiniPySyntaxError(
                f"expected {expected}, got {describe(tok)}",
                line=tok.line,
                column=tok.column,
                suggestion=suggestion,
            )

    def error_here(self, message, suggestion=None):
        tok = self.current_token
        raise MiniPySyntaxError(message, line=tok.line, column=tok.column, suggestion=suggestion)

    def skip_newlines(self):
        while self.current_token.type == "NEWLINE":
            self.eat("NEWLINE")

    # ---------- TOP LEVEL ----------
    def parse(self):
        statements = []
        self.skip_newlines()

        while self.current_token.type != "EOF":
            statements.append(self.statement())
            self.skip_newlines()

        return Program(tuple(statements), line=1)

    def parse_single_expression(self):
        self.skip_newlines()
        if self.current_token.type == "EOF":
            self.error_here("expected an expression")
        node = self.expr()
        self.skip_newlines()
        if self.current_token.type != "EOF":
            self.error_here(f"unexpected {describe(self.current_token)} after expression")
        return node

    # ---------- STATEMENTS ----------
    def statement(self):
        tok = self.current_token

        if tok.type == "DEF":
            if self.block_depth != 0 or self.function_depth != 0:
                self.error_here("functions can only be defined at the top level")
            return self.function_def()

        if tok.type == "IF":
            return self.if_statement()
        if tok.type == "ELIF":
            self.error_here("elif used without a preceding if")
        if tok.type == "ELSE":
            self.error_here("else used without a preceding if")
        if tok.type == "WHILE":
            return self.while_statement()
        if tok.type == "FOR":
            return self.for_statement()
        if tok.type == "REPEAT":
            return self.repeat_statement()

        if tok.type == "INDENT":
            self.error_here("unexpected indent", suggestion="remove the extra spaces at the start of this line")

        return self.simple_statement()

    def simple_statement(self):
        node = self.small_statement()
        if self.current_token.type not in ("NEWLINE", "EOF", "DEDENT"):
            self.error_here(f"expected end of line, got {describe(self.current_token)}")
        self.skip_newlines()
        return node

    def small_statement(self):
        tok = self.current_token

        if tok.type == "PASS":
            self.eat("PASS")
            return Pass(line=tok.line)

        if tok.type == "BREAK":
            self.eat("BREAK")
            return Break(line=tok.line)

        if tok.type == "CONTINUE":
            self.eat("CONTINUE")
            return Continue(line=tok.line)

        if tok.type == "RETURN":
            if self.function_depth == 0:
                self.error_here("return used outside of a function")
            return self.return_statement()

        if tok.type in COMPOUND_STARTS:
            self.error_here(f"{describe(tok)} must start on its own line")

        target = self.expr()

        if self.current_token.type == "ASSIGN":
            self.eat("ASSIGN")
            value = self.expr()
            if isinstance(target, Identifier):
                return Assignment(target.name, value, line=tok.line)
            if isinstance(target, IndexAccess):
                return IndexedAssignment(target.obj, target.index, value, line=tok.line)
            raise MiniPySyntaxError(
                "can only assign to a variable or a list item",
                line=tok.line,
                column=tok.column,
            )

        if self.current_token.type in AUGMENTED_OPS:
            op = AUGMENTED_OPS[self.current_token.type]
            self.eat(self.current_token.type)
            value = self.expr()
            if not isinstance(target, Identifier):
                raise MiniPySyntaxError(
                    f"'{op}=' needs a variable name on the left",
                    line=tok.line,
                    column=tok.column,
                )
            return AugmentedAssignment(target.name, op, value, line=tok.line)

        return ExpressionStatement(target, line=tok.line)

    def block(self):
        """COLON then either an indented suite or one simple statement on the same line."""
        self.eat("COLON")

        if self.current_token.type != "NEWLINE":
            if self.current_token.type in COMPOUND_STARTS:
                self.error_here(f"{describe(self.current_token)} must start on its own line")
            self.block_depth += 1
            stmt = self.simple_statement()
            self.block_depth -= 1
            return (stmt,)

        self.eat("NEWLINE")
        if self.current_token.type != "INDENT":
            self.error_here(
                "expected an indented block",
                suggestion="indent the lines inside the block, or write pass",
            )
        self.eat("INDENT")

        self.block_depth += 1
        statements = []
        while self.current_token.type not in ("DEDENT", "EOF"):
            statements.append(self.statement())
        self.block_depth -= 1

        if self.current_token.type == "DEDENT":
            self.eat("DEDENT")
        return tuple(statements)

    def function_def(self):
        tok = self.current_token
        self.eat("DEF")

        if self.current_token.type != "IDENT":
            self.error_here("expected a function name after def")
        name = self.current_token.value
        self.eat("IDENT")

        self.eat("LPAREN")
        params = []
        if self.current_token.type != "RPAREN":
            while True:
                if self.current_token.type != "IDENT":
                    self.error_here("expected a parameter name")
                pname = self.current_token.value
                if pname in params:
                    self.error_here(f"duplicate parameter: {pname}")
                params.append(pname)
                self.eat("IDENT")
                if self.current_token.type == "COMMA":
                    self.eat("COMMA")
                    continue
                break
        self.eat("RPAREN")

        self.function_depth += 1
        body = self.block()
        self.function_depth -= 1

        return FunctionDef(name, tuple(params), body, line=tok.line)

    def return_statement(self):
        tok = self.current_token
        self.eat("RETURN")
        value = None
        if self.current_token.type not in ("NEWLINE", "EOF", "DEDENT"):
            value = self.expr()
        return Return(value, line=tok.line)

    def if_statement(self):
        tok = self.current_token
        self.eat("IF")
        condition = self.expr()
        body = self.block()

        elifs = []
        while self.current_token.type == "ELIF":
            elif_tok = self.current_token
            self.eat("ELIF")
            elif_cond = self.expr()
            elif_body = self.block()
            elifs.append((elif_cond, elif_body, elif_tok.line))

        else_body = None
        if self.current_token.type == "ELSE":
            self.eat("ELSE")
            else_body = self.block()

        return If(condition, body, tuple(elifs), else_body, line=tok.line)

    def while_statement(self):
        tok = self.current_token
        self.eat("WHILE")
        condition = self.expr()
        body = self.block()
        return While(condition, body, line=tok.line)

    def repeat_statement(self):
        # repeat <expr> times:
        tok = self.current_token
        self.eat("REPEAT")
        count = self.expr()
        if self.current_token.type != "TIMES":
            self.error_here("expected 'times' after the repeat count", suggestion="write: repeat 3 times:")
        self.eat("TIMES")
        body = self.block()
        return Repeat(count, body, line=tok.line)

    def for_statement(self):
        tok = self.current_token
        self.eat("FOR")

        if self.current_token.type != "IDENT":
            self.error_here("expected loop variable name after for")
        var_name = self.current_token.value
        self.eat("IDENT")
        self.eat("IN")

        is_range = (
            self.current_token.type == "IDENT"
            and self.current_token.value == "range"
            and self.next_token.type == "LPAREN"
        )
        if not is_range:
            iterable = self.expr()
            body = self.block()
            return ForEach(var_name, iterable, body, line=tok.line)

        range_tok = self.current_token
        self.eat("IDENT")
        self.eat("LPAREN")
        args = self.call_args()
        if not 1 <= len(args) <= 3:
            raise MiniPySyntaxError(
                "range() takes 1 to 3 arguments",
                line=range_tok.line,
                column=range_tok.column,
            )

        if len(args) == 1:
            start, end, step = Number(0.0, line=range_tok.line), args[0], None
        elif len(args) == 2:
            start, end, step = args[0], args[1], None
        else:
            start, end, step = args

        body = self.block()
        return For(var_name, start, end, step, body, line=tok.line)

    # ---------- EXPRESSIONS ----------
    # expr -> or_expr
    def expr(self):
        return self.or_expr()

    # or_expr -> and_expr (OR and_expr)*
    def or_expr(self):
        node = self.and_expr()
        while self.current_token.type == "OR":
            op_tok = self.current_token
            self.eat("OR")
            node = BinaryOp(node, "or", self.and_expr(), line=op_tok.line)
        return node

    # and_expr -> not_expr (AND not_expr)*
    def and_expr(self):
        node = self.not_expr()
        while self.current_token.type == "AND":
            op_tok = self.current_token
            self.eat("AND")
            node = BinaryOp(node, "and", self.not_expr(), line=op_tok.line)
        return node

    # not_expr -> NOT not_expr | comparison
    def not_expr(self):
        if self.current_token.type == "NOT":
            tok = self.current_token
            self.eat("NOT")
            return UnaryOp("not", self.not_expr(), line=tok.line)
        return self.comparison()

    # comparison -> arith ((==|!=|<|<=|>|>=|in) arith)*
    def comparison(self):
        node = self.arith()
        while self.current_token.type in ("EQEQ", "NOTEQ", "LT", "LTE", "GT", "GTE", "IN"):
            op_tok = self.current_token
            self.eat(op_tok.type)
            node = BinaryOp(node, self.op_token_to_text(op_tok.type), self.arith(), line=op_tok.line)
        return node

    # arith -> term ((+|-) term)*
    def arith(self):
        node = self.term()
        while self.current_token.type in ("PLUS", "MINUS"):
            op_tok = self.current_token
            self.eat(op_tok.type)
            node = BinaryOp(node, self.op_token_to_text(op_tok.type), self.term(), line=op_tok.line)
        return node

    # term -> unary ((*|/|%|//) unary)*
    def term(self):
        node = self.unary()
        while self.current_token.type in ("STAR", "SLASH", "PERCENT", "DSLASH"):
            op_tok = self.current_token
            self.eat(op_tok.type)
            node = BinaryOp(node, self.op_token_to_text(op_tok.type), self.unary(), line=op_tok.line)
        return node

    # unary -> (- unary) | power
    def unary(self):
        if self.current_token.type == "MINUS":
            tok = self.current_token
            self.eat("MINUS")
            return UnaryOp("-", self.unary(), line=tok.line)
        return self.power()

    # power -> postfix (** unary)?      right-associative
    def power(self):
        node = self.postfix()
        if self.current_token.type == "DSTAR":
            op_tok = self.current_token
            self.eat("DSTAR")
            node = BinaryOp(node, "**", self.unary(), line=op_tok.line)
        return node

    # postfix -> primary ( [expr] | [expr?:expr?] )*
    def postfix(self):
        node = self.primary()
        while self.current_token.type == "LBRACKET":
            tok = self.current_token
            self.eat("LBRACKET")

            start = None
            if self.current_token.type != "COLON":
                start = self.expr()

            if self.current_token.type == "COLON":
                self.eat("COLON")
                end = None
                if self.current_token.type != "RBRACKET":
                    end = self.expr()
                self.eat("RBRACKET")
                node = SliceAccess(node, start, end, line=tok.line)
                continue

            self.eat("RBRACKET")
            node = IndexAccess(node, start, line=tok.line)
        return node

    # primary -> NUMBER | STRING | BOOL | NONE | IDENT | call | [..] | {..} | (expr)
    def primary(self):
        tok = self.current_token

        if tok.type == "NUMBER":
            self.eat("NUMBER")
            return Number(tok.value, line=tok.line)

        if tok.type == "STRING":
            self.eat("STRING")
            return String(tok.value, line=tok.line)

        if tok.type == "BOOL":
            self.eat("BOOL")
            return Boolean(tok.value, line=tok.line)

        if tok.type == "NONE":
            self.eat("NONE")
            return NoneLiteral(line=tok.line)

        if tok.type == "IDENT":
            self.eat("IDENT")
            if self.current_token.type == "LPAREN":
                self.eat("LPAREN")
                args = self.call_args()
                return Call(tok.value, tuple(args), line=tok.line)
            return Identifier(tok.value, line=tok.line)

        if tok.type == "LBRACKET":
            return self.list_literal()

        if tok.type == "LBRACE":
            return self.object_literal()

        if tok.type == "LPAREN":
            self.eat("LPAREN")
            node = self.expr()
            self.eat("RPAREN")
            return node

        self.error_here(f"unexpected {describe(tok)} in expression")

    def call_args(self):
        # Assumes LPAREN has already been consumed; eats the closing RPAREN.
        args = []
        if self.current_token.type != "RPAREN":
            args.append(self.expr())
            while self.current_token.type == "COMMA":
                self.eat("COMMA")
                args.append(self.expr())
        self.eat("RPAREN")
        return args

    def list_literal(self):
        tok = self.current_token
        self.eat("LBRACKET")
        items = []
        if self.current_token.type != "RBRACKET":
            items.append(self.expr())
            while self.current_token.type == "COMMA":
                self.eat("COMMA")
                if self.current_token.type == "RBRACKET":
                    break
                items.append(self.expr())
        self.eat("RBRACKET")
        return ArrayLiteral(tuple(items), line=tok.line)

    def object_literal(self):
        # { key: expr, "key": expr }
        tok = self.current_token
        self.eat("LBRACE")
        props = []

        while self.current_token.type != "RBRACE":
            key_tok = self.current_token
            if key_tok.type not in ("IDENT", "STRING"):
                self.error_here("object keys must be names or strings")
            self.eat(key_tok.type)
            self.eat("COLON")
            props.append((key_tok.value, self.expr()))

            if self.current_token.type == "COMMA":
                self.eat("COMMA")
                continue
            break

        self.eat("RBRACE")
        return ObjectLiteral(tuple(props), line=tok.line)

    # ---------- HELPERS ----------
    def op_token_to_text(self, op_type):
        mapping = {
            "PLUS": "+",
            "MINUS": "-",
            "STAR": "*",
            "SLASH": "/",
            "PERCENT": "%",
            "DSLASH": "//",
            "EQEQ": "==",
            "NOTEQ": "!=",
            "LT": "<",
            "LTE": "<=",
            "GT": ">",
            "GTE": ">=",
            "IN": "in",
        }
        return mapping[op_type]


def parse(source):
    return Parser(Lexer(source)).parse()


def parse_expression(source):
    return Parser(Lexer(source.strip())).parse_single_expression()
