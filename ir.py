OPCODES = frozenset({
    "LOAD_CONST", "LOAD_NAME", "STORE_NAME", "POP", "DUP",
    "ADD", "SUB", "MUL", "DIV", "MOD", "FLOOR_DIV", "POW", "NEG",
    "CMP_EQ", "CMP_NE", "CMP_LT", "CMP_LE", "CMP_GT", "CMP_GE", "CMP_IN", "NOT",
    "JUMP", "JUMP_IF_FALSE", "JUMP_IF_TRUE",
    "BUILD_LIST", "BUILD_DICT", "INDEX_GET", "INDEX_SET", "SLICE",
    "CALL_NATIVE", "CALL_FUNC", "RETURN",
    "GET_ITER", "LEN", "RANGE_TEST", "NOP", "HALT",
})

# opcodes whose argument is an instruction address
JUMP_OPCODES = frozenset({"JUMP", "JUMP_IF_FALSE", "JUMP_IF_TRUE", "RANGE_TEST"})


class IRProgram:
    def __init__(self):
        self.consts = []         # literal pool
        self.instructions = []   # list of (OPCODE, arg)
        self.debug = []          # {"line": int|None, "stmt": bool, "hidden": bool}, aligned with instructions
        self.functions = {}      # name -> {"entry": int, "params": [str, ...], "line": int}
        self.prefix_lines = 0    # lines of library code compiled ahead of the user's code

    def add_const(self, value):
        # keyed on type too, so 1.0 and True never share a slot
        for i, existing in enumerate(self.consts):
            if type(existing) is type(value) and existing == value:
                return i
        self.consts.append(value)
        return len(self.consts) - 1

    def emit(self, opcode, arg=None, debug=None):
        # returns instruction index (useful for jumps)
        self.instructions.append((opcode, arg))
        self.debug.append(debug or {"line": None, "stmt": False, "hidden": False})
        return len(self.instructions) - 1

    def patch(self, index, arg):
        opcode, _ = self.instructions[index]
        self.instructions[index] = (opcode, arg)

    def __len__(self):
        return len(self.instructions)

    def hide_prefix(self, prefix_lines):
        """Mark everything compiled from the first ``prefix_lines`` lines as hidden
        and renumber the remaining lines so line 1 is the first user line."""
        self.prefix_lines = prefix_lines
        if prefix_lines <= 0:
            return
        for dbg in self.debug:
            line = dbg.get("line")
            if line is None:
                continue
            if line <= prefix_lines:
                dbg["hidden"] = True
                dbg["stmt"] = False
            else:
                dbg["line"] = line - prefix_lines
        for meta in self.functions.values():
            line = meta.get("line")
            if line is None:
                continue
            if line <= prefix_lines:
                meta["hidden"] = True
            else:
                meta["line"] = line - prefix_lines

    def statement_lines(self):
        """User-visible lines on which a step can stop."""
        lines = set()
        for dbg in self.debug:
            if dbg.get("stmt") and not dbg.get("hidden") and dbg.get("line") is not None:
                lines.add(dbg["line"])
        return lines

    def validate(self):
        size = len(self.instructions)
        for i, (opcode, arg) in enumerate(self.instructions):
            if opcode not in OPCODES:
                raise ValueError(f"unknown opcode at {i}: {opcode}")
            if opcode in JUMP_OPCODES:
                if not isinstance(arg, int) or not 0 <= arg < size:
                    raise ValueError(f"invalid jump target at {i}: {arg}")
        for name, meta in self.functions.items():
            entry = meta.get("entry")
            if not isinstance(entry, int) or not 0 <= entry < size:
                raise ValueError(f"invalid entry for function {name}: {entry}")

    def dump(self):
        lines = []
        for i, (opcode, arg) in enumerate(self.instructions):
            dbg = self.debug[i]
            flags = ""
            if dbg.get("stmt"):
                flags += "*"
            if dbg.get("hidden"):
                flags += "h"
            if opcode == "LOAD_CONST":
                shown = repr(self.consts[arg])
            else:
                shown = "" if arg is None else repr(arg)
            lines.append(f"{i:04d} {flags:<2} L{dbg.get('line') or '-':<4} {opcode:<14} {shown}".rstrip())
        return "\n".join(lines)
