import logging

from ir import IRProgram
from ast_nodes import (
    Program, ExpressionStatement, Assignment, AugmentedAssignment, IndexedAssignment,
    If, Repeat, While, For, ForEach, Break, Continue, Pass, FunctionDef, Return,
    Number, String, Boolean, NoneLiteral, Identifier, BinaryOp, UnaryOp, Call,
    ArrayLiteral, IndexAccess, SliceAccess, ObjectLiteral,
)
from errors import MiniPyCompileError
from parser import parse

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# statements that form one step of execution
SIMPLE_STATEMENTS = (
    ExpressionStatement, Assignment, AugmentedAssignment, IndexedAssignment,
    Break, Continue, Pass, Return,
)


class Compiler:
    def __init__(self):
        self.bc = IRProgram()
        self.loop_stack = []
        self.in_function = 0
        self._tmp_id = 0
        self._def_nodes = {}

    def _debug_for(self, node):
        return {"line": getattr(node, "line", None), "stmt": False, "hidden": False}

    def emit(self, opcode, arg=None, node=None):
        return self.bc.emit(opcode, arg, debug=self._debug_for(node))

    def here(self):
        return len(self.bc.instructions)

    def compile(self, node):
        # entry point
        if not isinstance(node, Program):
            raise TypeError("Compiler expects a Program node at the top")

        # execution starts at the top-level code, not inside the first function body
        main_jump_i = self.emit("JUMP", None, node)

        # Pass 1: collect all function signatures so calls may come before the def.
        # A later def of the same name replaces the earlier one.
        for stmt in node.body:
            if not isinstance(stmt, FunctionDef):
                continue
            self._def_nodes[stmt.name] = stmt
            self.bc.functions[stmt.name] = {
                "entry": None,
                "params": list(stmt.params),
                "line": stmt.line,
            }

        # Pass 2: compile the function bodies that survived.
        for stmt in node.body:
            if isinstance(stmt, FunctionDef) and self._def_nodes[stmt.name] is stmt:
                self.compile_funcdef(stmt)

        self.bc.patch(main_jump_i, self.here())

        for stmt in node.body:
            if isinstance(stmt, FunctionDef):
                continue
            self.compile_stmt(stmt)

        self.emit("HALT")
        logger.debug(
            "compiled %d instructions, %d functions",
            len(self.bc.instructions),
            len(self.bc.functions),
        )
        return self.bc

    # -------- statements --------
    def compile_block(self, statements):
        for stmt in statements:
            self.compile_stmt(stmt)

    def compile_stmt(self, node):
        start = self.here()
        self._compile_stmt(node)

        if isinstance(node, SIMPLE_STATEMENTS) and self.here() > start:
            # first instruction of a simple statement is where a step begins
            dbg = self.bc.debug[start]
            dbg["stmt"] = True
            dbg["line"] = node.line

    def _compile_stmt(self, node):
        if isinstance(node, ExpressionStatement):
            self.compile_expr(node.expr)
            # commands and calls used as statements drop their result
            self.emit("POP", node=node)
            return

        if isinstance(node, Assignment):
            self.compile_expr(node.value)
            self.emit("STORE_NAME", node.name, node)
            return

        if isinstance(node, AugmentedAssignment):
            self.emit("LOAD_NAME", node.name, node)
            self.compile_expr(node.value)
            self.emit(self.binary_op_to_opcode(node.op), node=node)
            self.emit("STORE_NAME", node.name, node)
            return

        if isinstance(node, IndexedAssignment):
            self.compile_expr(node.target)
            self.compile_expr(node.index)
            self.compile_expr(node.value)
            self.emit("INDEX_SET", node=node)
            return

        if isinstance(node, If):
            self.compile_if(node)
            return

        if isinstance(node, While):
            self.compile_while(node)
            return

        if isinstance(node, Repeat):
            self.compile_repeat(node)
            return

        if isinstance(node, For):
            self.compile_for_range(node)
            return

        if isinstance(node, ForEach):
            self.compile_for_each(node)
            return

        if isinstance(node, Break):
            self.compile_break(node)
            return

        if isinstance(node, Continue):
            self.compile_continue(node)
            return

        if isinstance(node, Pass):
            self.emit("NOP", node=node)
            return

        if isinstance(node, Return):
            if node.value is None:
                self.emit("LOAD_CONST", self.bc.add_const(None), node)
            else:
                self.compile_expr(node.value)
            self.emit("RETURN", node=node)
            return

        if isinstance(node, FunctionDef):
            # bodies are compiled before the main code
            return

        raise TypeError(f"Unknown statement node: {node.__class__.__name__}")

    def compile_funcdef(self, node):
        self.bc.functions[node.name]["entry"] = self.here()

        self.in_function += 1
        saved_loops = self.loop_stack
        self.loop_stack = []
        self.compile_block(node.body)
        self.loop_stack = saved_loops
        self.in_function -= 1

        # implicit return None if control reaches the end of the body
        self.emit("LOAD_CONST", self.bc.add_const(None), node)
        self.emit("RETURN", node=node)

    def compile_if(self, node):
        branches = [(node.condition, node.body, node)]
        for cond, body, _line in node.elifs:
            branches.append((cond, body, cond))

        end_jumps = []
        for cond, body, where in branches:
            self.compile_expr(cond)
            jmp_next_i = self.emit("JUMP_IF_FALSE", None, where)
            self.compile_block(body)
            end_jumps.append(self.emit("JUMP", None, where))
            self.bc.patch(jmp_next_i, self.here())

        if node.else_body is not None:
            self.compile_block(node.else_body)

        end_pos = self.here()
        for jmp_i in end_jumps:
            self.bc.patch(jmp_i, end_pos)

    def _push_loop(self):
        frame = {
            "break_jumps": [],
            "continue_jumps": [],
        }
        self.loop_stack.append(frame)
        return frame

    def _pop_loop(self, frame, continue_target, loop_end):
        for jmp_i in frame["break_jumps"]:
            self.bc.patch(jmp_i, loop_end)
        for jmp_i in frame["continue_jumps"]:
            self.bc.patch(jmp_i, continue_target)
        self.loop_stack.pop()

    def compile_while(self, node):
        loop_start = self.here()
        frame = self._push_loop()

        self.compile_expr(node.condition)
        jmp_end_i = self.emit("JUMP_IF_FALSE", None, node)

        self.compile_block(node.body)
        self.emit("JUMP", loop_start, node)

        loop_end = self.here()
        self.bc.patch(jmp_end_i, loop_end)
        self._pop_loop(frame, loop_start, loop_end)

    def _counted_loop(self, node, counter, end_name, step_name, before_body=None):
        # shared tail of repeat / for-range / for-each:
        #   loop: RANGE_TEST counter end step -> exit
        #         <before_body> <body>
        #   cont: counter += step; JUMP loop
        loop_start = self.here()
        frame = self._push_loop()

        self.emit("LOAD_NAME", counter, node)
        self.emit("LOAD_NAME", end_name, node)
        self.emit("LOAD_NAME", step_name, node)
        test_i = self.emit("RANGE_TEST", None, node)

        if before_body is not None:
            before_body()
        self.compile_block(node.body)

        continue_target = self.here()
        self.emit("LOAD_NAME", counter, node)
        self.emit("LOAD_NAME", step_name, node)
        self.emit("ADD", node=node)
        self.emit("STORE_NAME", counter, node)
        self.emit("JUMP", loop_start, node)

        loop_end = self.here()
        self.bc.patch(test_i, loop_end)
        self._pop_loop(frame, continue_target, loop_end)

    def compile_repeat(self, node):
        # the count is evaluated once, before the first iteration
        counter = self._new_tmp("__repeat_i")
        limit = self._new_tmp("__repeat_n")
        step = self._new_tmp("__repeat_step")

        self.compile_expr(node.count)
        self.emit("STORE_NAME", limit, node)
        self.emit("LOAD_CONST", self.bc.add_const(0.0), node)
        self.emit("STORE_NAME", counter, node)
        self.emit("LOAD_CONST", self.bc.add_const(1.0), node)
        self.emit("STORE_NAME", step, node)

        self._counted_loop(node, counter, limit, step)

    def compile_for_range(self, node):
        counter = self._new_tmp("__range_i")
        end = self._new_tmp("__range_end")
        step = self._new_tmp("__range_step")

        self.compile_expr(node.start)
        self.emit("STORE_NAME", counter, node)
        self.compile_expr(node.end)
        self.emit("STORE_NAME", end, node)
        if node.step is None:
            self.emit("LOAD_CONST", self.bc.add_const(1.0), node)
        else:
            self.compile_expr(node.step)
        self.emit("STORE_NAME", step, node)

        def bind_loop_var():
            self.emit("LOAD_NAME", counter, node)
            self.emit("STORE_NAME", node.var_name, node)

        self._counted_loop(node, counter, end, step, bind_loop_var)

    def compile_for_each(self, node):
        # iterate over a copy taken once, so changes made in the body do not
        # change which items are visited
        items = self._new_tmp("__each_items")
        length = self._new_tmp("__each_len")
        counter = self._new_tmp("__each_i")
        step = self._new_tmp("__each_step")

        self.compile_expr(node.iterable)
        self.emit("GET_ITER", node=node)
        self.emit("STORE_NAME", items, node)
        self.emit("LOAD_NAME", items, node)
        self.emit("LEN", node=node)
        self.emit("STORE_NAME", length, node)
        self.emit("LOAD_CONST", self.bc.add_const(0.0), node)
        self.emit("STORE_NAME", counter, node)
        self.emit("LOAD_CONST", self.bc.add_const(1.0), node)
        self.emit("STORE_NAME", step, node)

        def bind_loop_var():
            self.emit("LOAD_NAME", items, node)
            self.emit("LOAD_NAME", counter, node)
            self.emit("INDEX_GET", node=node)
            self.emit("STORE_NAME", node.var_name, node)

        self._counted_loop(node, counter, length, step, bind_loop_var)

    def compile_break(self, node):
        if not self.loop_stack:
            raise MiniPyCompileError(
                "break used outside of a loop",
                line=node.line,
                suggestion="break only works inside while, for or repeat",
            )
        jmp_i = self.emit("JUMP", None, node)
        self.loop_stack[-1]["break_jumps"].append(jmp_i)

    def compile_continue(self, node):
        if not self.loop_stack:
            raise MiniPyCompileError(
                "continue used outside of a loop",
                line=node.line,
                suggestion="continue only works inside while, for or repeat",
            )
        jmp_i = self.emit("JUMP", None, node)
        self.loop_stack[-1]["continue_jumps"].append(jmp_i)

    # -------- expressions --------
    def compile_expr(self, node):
        if isinstance(node, (Number, String, Boolean)):
            self.emit("LOAD_CONST", self.bc.add_const(node.value), node)
            return

        if isinstance(node, NoneLiteral):
            self.emit("LOAD_CONST", self.bc.add_const(None), node)
            return

        if isinstance(node, Identifier):
            self.emit("LOAD_NAME", node.name, node)
            return

        if isinstance(node, ArrayLiteral):
            for item in node.elements:
                self.compile_expr(item)
            self.emit("BUILD_LIST", len(node.elements), node)
            return

        if isinstance(node, ObjectLiteral):
            for key, value in node.properties:
                self.emit("LOAD_CONST", self.bc.add_const(key), node)
                self.compile_expr(value)
            self.emit("BUILD_DICT", len(node.properties), node)
            return

        if isinstance(node, IndexAccess):
            self.compile_expr(node.obj)
            self.compile_expr(node.index)
            self.emit("INDEX_GET", node=node)
            return

        if isinstance(node, SliceAccess):
            self.compile_expr(node.obj)
            for bound in (node.start, node.end):
                if bound is None:
                    self.emit("LOAD_CONST", self.bc.add_const(None), node)
                else:
                    self.compile_expr(bound)
            self.emit("SLICE", node=node)
            return

        if isinstance(node, BinaryOp):
            if node.op == "and":
                # Short-circuit AND:
                #   eval left; DUP; JUMP_IF_FALSE end (pops dup, keeps left)
                #   POP; eval right
                # end:
                self.compile_expr(node.left)
                self.emit("DUP", node=node)
                jmp_end_i = self.emit("JUMP_IF_FALSE", None, node)
                self.emit("POP", node=node)
                self.compile_expr(node.right)
                self.bc.patch(jmp_end_i, self.here())
                return

            if node.op == "or":
                # Short-circuit OR:
                #   eval left; DUP; JUMP_IF_TRUE end (pops dup, keeps left)
                #   POP; eval right
                # end:
                self.compile_expr(node.left)
                self.emit("DUP", node=node)
                jmp_end_i = self.emit("JUMP_IF_TRUE", None, node)
                self.emit("POP", node=node)
                self.compile_expr(node.right)
                self.bc.patch(jmp_end_i, self.here())
                return

            self.compile_expr(node.left)
            self.compile_expr(node.right)
            self.emit(self.binary_op_to_opcode(node.op), node=node)
            return

        if isinstance(node, UnaryOp):
            self.compile_expr(node.operand)
            self.emit("NEG" if node.op == "-" else "NOT", node=node)
            return

        if isinstance(node, Call):
            self.compile_call(node)
            return

        raise TypeError(f"Unknown expression node: {node.__class__.__name__}")

    def compile_call(self, node):
        for arg in node.args:
            self.compile_expr(arg)

        # user-defined functions are bound now; everything else (commands,
        # sensors, builtins) is looked up by name when the call runs
        if node.callee in self.bc.functions:
            self.emit("CALL_FUNC", (node.callee, len(node.args)), node)
        else:
            self.emit("CALL_NATIVE", (node.callee, len(node.args)), node)

    def _new_tmp(self, prefix):
        name = f"{prefix}_{self._tmp_id}"
        self._tmp_id += 1
        return name

    def binary_op_to_opcode(self, op):
        mapping = {
            "+": "ADD",
            "-": "SUB",
            "*": "MUL",
            "/": "DIV",
            "%": "MOD",
            "//": "FLOOR_DIV",
            "**": "POW",
            "==": "CMP_EQ",
            "!=": "CMP_NE",
            "<": "CMP_LT",
            "<=": "CMP_LE",
            ">": "CMP_GT",
            ">=": "CMP_GE",
            "in": "CMP_IN",
        }
        if op not in mapping:
            raise ValueError(f"Unknown operator: {op}")
        return mapping[op]


def compile_to_ir(program):
    return Compiler().compile(program)


def compile_source(source):
    return compile_to_ir(parse(source))


def compile_expression(expr_node):
    """Compile a lone expression into a program that leaves its value on the stack."""
    compiler = Compiler()
    compiler.compile_expr(expr_node)
    compiler.emit("HALT")
    return compiler.bc
