"""Tree-walking interpreter for compiled Pascal programs.

Every run starts from a fresh :class:`VariableStore`.  A step counter is
charged once per simple statement and once per loop iteration, so a
non-terminating loop stops at ``step_limit`` even when its body is empty.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import AbstractSet, Callable, Dict, List, Optional

from retroemu.pascal.nodes import (
    Assign,
    BinaryOp,
    Case,
    Compound,
    Empty,
    Expr,
    For,
    FuncCall,
    If,
    Literal,
    PascalProgram,
    Read,
    Repeat,
    Statement,
    UnaryOp,
    Value,
    VarRef,
    While,
    Write,
)
from retroemu.pascal.values import (
    DIVISION_BY_ZERO,
    INVALID_FLOAT_OP,
    MAX_STRING_LENGTH,
    RANGE_CHECK,
    STACK_OVERFLOW,
    TYPE_MISMATCH,
    PascalRuntimeError,
    VariableStore,
    check_numeric,
    format_value,
    is_integer,
    is_number,
    type_of,
)


logger = logging.getLogger(__name__)

DEFAULT_STEP_LIMIT = 10000


@dataclass
class PascalExecutionResult:
    success: bool
    output: List[str]
    variables: Dict[str, Value] = field(default_factory=dict)
    statements_executed: int = 0
    step_limit_reached: bool = False
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    breakpoint_line: Optional[int] = None


class StepLimitReached(Exception):
    pass


class BreakpointReached(Exception):
    def __init__(self, line_no: int) -> None:
        super().__init__(line_no)
        self.line_no = line_no


def _mismatch(op: str, left: Value, right: Value, line_no: int) -> PascalRuntimeError:
    return PascalRuntimeError(
        TYPE_MISMATCH, f"Type mismatch: {type_of(left)} {op} {type_of(right)}", line_no
    )


def _same_kind(left: Value, right: Value) -> bool:
    if is_number(left) and is_number(right):
        return True
    if isinstance(left, bool) and isinstance(right, bool):
        return True
    return isinstance(left, str) and isinstance(right, str)


def _trunc_div(left: int, right: int) -> int:
    quotient = abs(left) // abs(right)
    return quotient if (left < 0) == (right < 0) else -quotient


def _round_half_away(value: float) -> int:
    rounded = math.floor(abs(value) + 0.5)
    return int(rounded if value >= 0 else -rounded)


class Interpreter:
    def __init__(
        self,
        program: PascalProgram,
        step_limit: int = DEFAULT_STEP_LIMIT,
        breakpoints: AbstractSet[int] = frozenset(),
    ) -> None:
        self.program = program
        self.step_limit = step_limit
        self.breakpoints = breakpoints
        self.store = VariableStore()
        for decl in program.variables.values():
            self.store.declare(decl)
        self.output: List[str] = []
        self.warnings: List[str] = []
        self.steps = 0
        self.current_line = 0
        self._line = ""
        self._line_open = False
        self._exec: Dict[type, Callable[[Statement], None]] = {
            Assign: self._exec_assign,
            Write: self._exec_write,
            Read: self._exec_read,
            If: self._exec_if,
            While: self._exec_while,
            Repeat: self._exec_repeat,
            For: self._exec_for,
            Case: self._exec_case,
            Compound: self._exec_compound,
            Empty: self._exec_empty,
        }

    def run(self) -> PascalExecutionResult:
        error = None
        limit_hit = False
        paused_at = None
        try:
            for stmt in self.program.statements:
                self.execute(stmt)
        except PascalRuntimeError as exc:
            error = str(exc)
        except RecursionError:
            error = str(PascalRuntimeError(STACK_OVERFLOW, "Stack overflow error", self.current_line))
        except StepLimitReached:
            limit_hit = True
            error = f"Execution halted: step limit of {self.step_limit} statements reached"
            logger.warning("Pascal program %r stopped after %d steps", self.program.name, self.steps)
        except BreakpointReached as exc:
            paused_at = exc.line_no
            logger.info("Pascal program %r paused at line %d", self.program.name, paused_at)
        self._flush()
        if error:
            self.output.append(error)
        if paused_at is not None:
            self.output.append(f"Breakpoint at line {paused_at}")
        logger.debug("Executed %d statements, %d output lines", self.steps, len(self.output))
        return PascalExecutionResult(
            success=error is None,
            output=self.output,
            variables=self.store.snapshot(),
            statements_executed=self.steps,
            step_limit_reached=limit_hit,
            error=error,
            warnings=self.warnings,
            breakpoint_line=paused_at,
        )

    # output buffering

    def _emit(self, text: str, newline: bool) -> None:
        self._line += text
        self._line_open = True
        if newline:
            self.output.append(self._line)
            self._line = ""
            self._line_open = False

    def _flush(self) -> None:
        if self._line_open:
            self.output.append(self._line)
            self._line = ""
            self._line_open = False

    def _tick(self) -> None:
        if self.steps >= self.step_limit:
            raise StepLimitReached()
        self.steps += 1

    # statements

    def execute(self, stmt: Statement) -> None:
        if not isinstance(stmt, (Compound, Empty)):
            self.current_line = stmt.line
            if stmt.line in self.breakpoints:
                raise BreakpointReached(stmt.line)
        self._exec[type(stmt)](stmt)

    def _exec_empty(self, stmt: Empty) -> None:
        pass

    def _exec_compound(self, stmt: Compound) -> None:
        for inner in stmt.statements:
            self.execute(inner)

    def _exec_assign(self, stmt: Assign) -> None:
        self._tick()
        self.store.set(stmt.target, self.evaluate(stmt.expr), stmt.line)

    def _exec_write(self, stmt: Write) -> None:
        self._tick()
        parts = []
        for arg in stmt.args:
            value = self.evaluate(arg.expr)
            width = self._int_arg(arg.width, stmt.line)
            decimals = self._int_arg(arg.decimals, stmt.line)
            parts.append(format_value(value, width, decimals))
        self._emit("".join(parts), stmt.newline)

    def _int_arg(self, expr: Optional[Expr], line_no: int) -> Optional[int]:
        if expr is None:
            return None
        value = self.evaluate(expr)
        if not is_integer(value):
            raise PascalRuntimeError(TYPE_MISMATCH, "Field width must be an integer", line_no)
        return value

    def _exec_read(self, stmt: Read) -> None:
        self._tick()
        keyword = "readln" if stmt.newline else "read"
        for name in stmt.targets:
            shown = format_value(self.store.reset(name)).strip() or "''"
            self.warnings.append(f"Line {stmt.line}: {keyword} has no input, '{name}' set to {shown}")

    def _condition(self, expr: Expr, line_no: int) -> bool:
        value = self.evaluate(expr)
        if not isinstance(value, bool):
            raise PascalRuntimeError(TYPE_MISMATCH, f"Boolean expected but {type_of(value)} found", line_no)
        return value

    def _exec_if(self, stmt: If) -> None:
        self._tick()
        if self._condition(stmt.condition, stmt.line):
            self.execute(stmt.then_branch)
        elif stmt.else_branch is not None:
            self.execute(stmt.else_branch)

    def _exec_while(self, stmt: While) -> None:
        self._tick()
        while self._condition(stmt.condition, stmt.line):
            self.execute(stmt.body)
            self._tick()

    def _exec_repeat(self, stmt: Repeat) -> None:
        while True:
            self._tick()
            for inner in stmt.body:
                self.execute(inner)
            if self._condition(stmt.condition, stmt.line):
                return

    def _exec_for(self, stmt: For) -> None:
        self._tick()
        start = self.evaluate(stmt.start)
        stop = self.evaluate(stmt.stop)
        if not is_integer(start) or not is_integer(stop):
            raise PascalRuntimeError(TYPE_MISMATCH, "For loop bounds must be integers", stmt.line)
        step = -1 if stmt.downto else 1
        for value in range(start, stop + step, step):
            self.store.set(stmt.variable, value, stmt.line)
            self.execute(stmt.body)
            self._tick()

    def _exec_case(self, stmt: Case) -> None:
        self._tick()
        selector = self.evaluate(stmt.selector)
        for branch in stmt.branches:
            if any(_same_kind(selector, value) and selector == value for value in branch.values):
                self.execute(branch.body)
                return
        for inner in stmt.else_body:
            self.execute(inner)

    # expressions

    def evaluate(self, expr: Expr) -> Value:
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, VarRef):
            return self.store.get(expr.name, expr.line)
        try:
            if isinstance(expr, UnaryOp):
                return self._unary(expr)
            if isinstance(expr, BinaryOp):
                return self._binary(expr)
            if isinstance(expr, FuncCall):
                return self._call(expr)
        except (OverflowError, ValueError) as exc:
            raise PascalRuntimeError(INVALID_FLOAT_OP, "Invalid floating point operation", expr.line) from exc
        raise TypeError(f"Unsupported expression node: {expr!r}")

    def _unary(self, expr: UnaryOp) -> Value:
        value = self.evaluate(expr.operand)
        if expr.op == "-":
            if not is_number(value):
                raise PascalRuntimeError(TYPE_MISMATCH, f"Type mismatch: -{type_of(value)}", expr.line)
            return check_numeric(-value, expr.line)
        if isinstance(value, bool):
            return not value
        if is_integer(value):
            return ~value
        raise PascalRuntimeError(TYPE_MISMATCH, f"Type mismatch: not {type_of(value)}", expr.line)

    def _binary(self, expr: BinaryOp) -> Value:
        op = expr.op
        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)

        if op in ("=", "<>", "<", ">", "<=", ">="):
            if not _same_kind(left, right):
                raise _mismatch(op, left, right, expr.line)
            return {
                "=": left == right,
                "<>": left != right,
                "<": left < right,
                ">": left > right,
                "<=": left <= right,
                ">=": left >= right,
            }[op]

        if op in ("and", "or"):
            if isinstance(left, bool) and isinstance(right, bool):
                return (left and right) if op == "and" else (left or right)
            if is_integer(left) and is_integer(right):
                return (left & right) if op == "and" else (left | right)
            raise _mismatch(op, left, right, expr.line)

        if op == "+" and isinstance(left, str) and isinstance(right, str):
            return (left + right)[:MAX_STRING_LENGTH]

        if op in ("div", "mod"):
            if not is_integer(left) or not is_integer(right):
                raise _mismatch(op, left, right, expr.line)
            if right == 0:
                raise PascalRuntimeError(DIVISION_BY_ZERO, "Division by zero", expr.line)
            quotient = _trunc_div(left, right)
            return check_numeric(quotient if op == "div" else left - right * quotient, expr.line)

        if not is_number(left) or not is_number(right):
            raise _mismatch(op, left, right, expr.line)
        if op == "+":
            return check_numeric(left + right, expr.line)
        if op == "-":
            return check_numeric(left - right, expr.line)
        if op == "*":
            return check_numeric(left * right, expr.line)
        if op == "/":
            if right == 0:
                raise PascalRuntimeError(DIVISION_BY_ZERO, "Division by zero", expr.line)
            return check_numeric(float(left) / float(right), expr.line)
        raise PascalRuntimeError(TYPE_MISMATCH, f"Unknown operator '{op}'", expr.line)

    def _call(self, expr: FuncCall) -> Value:
        name = expr.name
        arg = self.evaluate(expr.args[0])

        def bad_arg() -> PascalRuntimeError:
            return PascalRuntimeError(
                TYPE_MISMATCH, f"Invalid argument for {name}: {type_of(arg)}", expr.line
            )

        if name in ("abs", "sqr", "sqrt", "trunc", "round"):
            if not is_number(arg):
                raise bad_arg()
            if name == "abs":
                return check_numeric(abs(arg), expr.line)
            if name == "sqr":
                return check_numeric(arg * arg, expr.line)
            if name == "sqrt":
                if arg < 0:
                    raise PascalRuntimeError(INVALID_FLOAT_OP, "Invalid floating point operation", expr.line)
                return math.sqrt(arg)
            if not math.isfinite(arg):
                raise PascalRuntimeError(INVALID_FLOAT_OP, "Invalid floating point operation", expr.line)
            if name == "trunc":
                return check_numeric(int(arg), expr.line)
            return check_numeric(_round_half_away(arg), expr.line)
        if name == "ord":
            if isinstance(arg, bool):
                return int(arg)
            if is_integer(arg):
                return arg
            if isinstance(arg, str) and len(arg) == 1:
                return ord(arg)
            raise bad_arg()
        if name == "chr":
            if not is_integer(arg):
                raise bad_arg()
            if not 0 <= arg <= 255:
                raise PascalRuntimeError(RANGE_CHECK, "Range check error", expr.line)
            return chr(arg)
        if name == "length":
            if not isinstance(arg, str):
                raise bad_arg()
            return len(arg)
        if name == "odd":
            if not is_integer(arg):
                raise bad_arg()
            return arg % 2 != 0
        if name == "upcase":
            if not isinstance(arg, str):
                raise bad_arg()
            return arg.upper()
        raise PascalRuntimeError(TYPE_MISMATCH, f"Unknown function '{name}'", expr.line)


def run_program(
    program: PascalProgram,
    step_limit: int = DEFAULT_STEP_LIMIT,
    breakpoints: AbstractSet[int] = frozenset(),
) -> PascalExecutionResult:
    return Interpreter(program, step_limit, breakpoints).run()
