from dataclasses import dataclass
from typing import Any

from errors import MiniPySyntaxError


TAB_WIDTH = 4

KEYWORDS = {
    "if": "IF",
    "elif": "ELIF",
    "else": "ELSE",
    "while": "WHILE",
    "for": "FOR",
    "in": "IN",
    "repeat": "REPEAT",
    "times": "TIMES",
    "break": "BREAK",
    "continue": "CONTINUE",
    "pass": "PASS",
    "def": "DEF",
    "return": "RETURN",
    "and": "AND",
    "or": "OR",
    "not": "NOT",
}

# lowercase spellings are accepted too
BOOL_WORDS = {"True": True, "False": False, "true": True, "false": False}

TWO_CHAR_OPS = {
    "==": "EQEQ",
    "!=": "NOTEQ",
    "<=": "LTE",
    ">=": "GTE",
    "//": "DSLASH",
    "**": "DSTAR",
    "+=": "PLUS_ASSIGN",
    "-=": "MINUS_ASSIGN",
    "*=": "STAR_ASSIGN",
    "/=": "SLASH_ASSIGN",
}

SINGLE_CHAR_OPS = {
    "=": "ASSIGN",
    "<": "LT",
    ">": "GT",
    "+": "PLUS",
    "-": "MINUS",
    "*": "STAR",
    "/": "SLASH",
    "%": "PERCENT",
    ",": "COMMA",
    ":": "COLON",
    "(": "LPAREN",
    ")": "RPAREN",
    "[": "LBRACKET",
    "]": "RBRACKET",
    "{": "LBRACE",
    "}": "RBRACE",
}

OPENERS = ("LPAREN", "LBRACKET", "LBRACE")
CLOSERS = ("RPAREN", "RBRACKET", "RBRACE")


@dataclass(frozen=True)
class Token:
    type: str
    value: Any = None
    line: int = 1
    column: int = 1

    def __repr__(self):
        if self.value is not None:
            return f"{self.type}({self.value!r})"
        return f"{self.type}"


class Lexer:
    def __init__(self, text):
        # normalise line endings and make sure the last line is terminated
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        if not text.endswith("\n"):
            text += "\n"
        self.text = text
        self.pos = 0
        self.current_char = text[0] if text else None
        self.line = 1
        self.column = 1

        self.indent_stack = [0]
        self.pending = []          # queued INDENT/DEDENT tokens
        self.at_line_start = True
        self.paren_depth = 0       # newlines inside brackets are ignored
        self.finished = False

    def error(self, message, line=None, column=None, suggestion=None):
        raise MiniPySyntaxError(
            message,
            line=self.line if line is None else line,
            column=self.column if column is None else column,
            suggestion=suggestion,
        )

    def advance(self):
        # track line/column based on current_char before moving
        if self.current_char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.pos += 1
        if self.pos >= len(self.text):
            self.current_char = None
        else:
            self.current_char = self.text[self.pos]

    def peek(self):
        nxt = self.pos + 1
        if nxt >= len(self.text):
            return None
        return self.text[nxt]

    # spaces/tabs only, never newlines
    def skip_whitespace(self):
        while self.current_char and self.current_char in " \t":
            self.advance()

    def skip_comment(self):
        while self.current_char and self.current_char != "\n":
            self.advance()

    def read_indentation(self):
        """Measure the indentation of a new logical line and queue INDENT/DEDENT.

        Blank lines and comment-only lines are consumed whole and produce no
        tokens, so they never disturb the block structure.
        """
        width = 0
        while self.current_char and self.current_char in " \t":
            width += TAB_WIDTH if self.current_char == "\t" else 1
            self.advance()

        if self.current_char is None:
            return
        if self.current_char in "\n#":
            self.skip_comment()
            if self.current_char == "\n":
                self.advance()
            self.at_line_start = True
            return

        top = self.indent_stack[-1]
        if width > top:
            self.indent_stack.append(width)
            self.pending.append(Token("INDENT", line=self.line, column=1))
            return

        while width < self.indent_stack[-1]:
            self.indent_stack.pop()
            self.pending.append(Token("DEDENT", line=self.line, column=1))

        if width != self.indent_stack[-1]:
            self.error(
                "inconsistent indentation",
                column=1,
                suggestion="line up this line with the block it belongs to",
            )

    def read_identifier(self):
        start_line, start_col = self.line, self.column
        result = ""
        while self.current_char and (self.current_char.isalnum() or self.current_char == "_"):
            result += self.current_char
            self.advance()

        if result in BOOL_WORDS:
            return Token("BOOL", BOOL_WORDS[result], line=start_line, column=start_col)
        if result == "None":
            return Token("NONE", line=start_line, column=start_col)
        if result in KEYWORDS:
            return Token(KEYWORDS[result], line=start_line, column=start_col)
        return Token("IDENT", result, line=start_line, column=start_col)

    def read_number(self):
        start_line, start_col = self.line, self.column
        result = ""
        while self.current_char and self.current_char.isdigit():
            result += self.current_char
            self.advance()

        if self.current_char == "." and self.peek() is not None and self.peek().isdigit():
            result += "."
            self.advance()
            while self.current_char and self.current_char.isdigit():
                result += self.current_char
                self.advance()

        # every number is a float; printing drops a trailing .0
        return Token("NUMBER", float(result), line=start_line, column=start_col)

    def read_string(self):
        start_line, start_col = self.line, self.column
        quote = self.current_char  # ' or "
        self.advance()
        result = ""

        escapes = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", '"': '"', "'": "'"}

        while self.current_char and self.current_char not in (quote, "\n"):
            if self.current_char == "\\":
                self.advance()
                if self.current_char is None or self.current_char == "\n":
                    break
                # unknown escapes are kept literally
                result += escapes.get(self.current_char, "\\" + self.current_char)
                self.advance()
                continue
            result += self.current_char
            self.advance()

        if self.current_char != quote:
            self.error(
                "unterminated string",
                line=start_line,
                column=start_col,
                suggestion=f"add a closing {quote}",
            )

        self.advance()  # closing quote
        return Token("STRING", result, line=start_line, column=start_col)

    def end_of_input(self):
        start_line = self.line
        while len(self.indent_stack) > 1:
            self.indent_stack.pop()
            self.pending.append(Token("DEDENT", line=start_line, column=1))
        self.pending.append(Token("EOF", line=start_line, column=1))
        self.finished = True

    def get_next_token(self):
        while True:
            if self.pending:
                return self.pending.pop(0)
            if self.finished:
                return Token("EOF", line=self.line, column=self.column)

            if self.at_line_start and self.paren_depth == 0:
                self.at_line_start = False
                self.read_indentation()
                continue

            if self.current_char is None:
                if self.paren_depth > 0:
                    self.error("unclosed bracket at end of code")
                self.end_of_input()
                continue

            if self.current_char == "\n":
                start_line, start_col = self.line, self.column
                self.advance()
                if self.paren_depth > 0:
                    continue
                self.at_line_start = True
                return Token("NEWLINE", line=start_line, column=start_col)

            if self.current_char in " \t":
                self.skip_whitespace()
                continue

            if self.current_char == "#":
                self.skip_comment()
                continue

            if self.current_char.isalpha() or self.current_char == "_":
                return self.read_identifier()

            if self.current_char.isdigit():
                return self.read_number()

            if self.current_char in "\"'":
                return self.read_string()

            start_line, start_col = self.line, self.column
            pair = self.current_char + (self.peek() or "")
            if pair in TWO_CHAR_OPS:
                self.advance()
                self.advance()
                return Token(TWO_CHAR_OPS[pair], line=start_line, column=start_col)

            if self.current_char in SINGLE_CHAR_OPS:
                tok_type = SINGLE_CHAR_OPS[self.current_char]
                if tok_type in OPENERS:
                    self.paren_depth += 1
                elif tok_type in CLOSERS and self.paren_depth > 0:
                    self.paren_depth -= 1
                self.advance()
                return Token(tok_type, line=start_line, column=start_col)

            self.error(f"unknown character: {self.current_char!r}")


def tokenize(text):
    lexer = Lexer(text)
    tokens = []
    while True:
        tok = lexer.get_next_token()
        tokens.append(tok)
        if tok.type == "EOF":
            return tokens
