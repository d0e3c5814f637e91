class MiniPyError(Exception):
    """Base class for every error the language core raises to a host."""

    kind = "error"

    def __init__(self, message: str, line: int | None = None, column: int | None = None, suggestion: str | None = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.suggestion = suggestion

    def location(self) -> str:
        if self.line is None:
            return ""
        if self.column is None:
            return f" at line {self.line}"
        return f" at line {self.line}, col {self.column}"

    def to_dict(self):
        d = {"kind": self.kind, "message": self.message, "line": self.line}
        if self.column is not None:
            d["column"] = self.column
        if self.suggestion:
            d["suggestion"] = self.suggestion
        return d

    def __str__(self) -> str:
        text = f"{self.message}{self.location()}"
        if self.suggestion:
            text += f" (hint: {self.suggestion})"
        return text


class MiniPySyntaxError(MiniPyError):
    kind = "syntax"


class MiniPyCompileError(MiniPySyntaxError):
    # break/continue outside a loop; reported before anything runs
    kind = "syntax"


class MiniPyRuntimeError(MiniPyError):
    kind = "runtime"

    def __init__(self, message: str, line: int | None = None, frames=None, suggestion: str | None = None):
        super().__init__(message, line=line, suggestion=suggestion)
        self.frames = frames or []  # most recent first

    def format(self, indent: str = "") -> str:
        lines = [f"{indent}Runtime error: {self.message}"]
        if self.line is not None:
            lines[0] += f" (line {self.line})"
        for fr in self.frames:
            name = fr.get("name", "<unknown>")
            line = fr.get("line")
            loc = "?" if line is None else str(line)
            lines.append(f"{indent}  in {name} (line {loc})")
        if self.suggestion:
            lines.append(f"{indent}  hint: {self.suggestion}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()


class MiniPyExpressionError(MiniPyError):
    """Raised by VM.evaluate_expression; never changes the run state."""

    kind = "expression"
