from __future__ import annotations

import math
from typing import Dict, Optional

from retroemu.pascal.nodes import TYPE_NAMES, Value, VarDecl


# Turbo Pascal runtime error codes
DIVISION_BY_ZERO = 200
RANGE_CHECK = 201
STACK_OVERFLOW = 202
FLOAT_OVERFLOW = 205
INVALID_FLOAT_OP = 207
ARITHMETIC_OVERFLOW = 215
TYPE_MISMATCH = 225

# longint range
INT_MIN = -(2 ** 31)
INT_MAX = 2 ** 31 - 1
MAX_STRING_LENGTH = 255
MAX_FIELD_WIDTH = 255

DEFAULTS: Dict[str, Value] = {
    "integer": 0,
    "real": 0.0,
    "boolean": False,
    "char": "",
    "string": "",
}


class PascalRuntimeError(Exception):
    def __init__(self, code: int, message: str, line_no: int) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.line_no = line_no

    def __str__(self) -> str:
        return f"Runtime error {self.code} at line {self.line_no}: {self.message}"


def is_number(value: Value) -> bool:
    # bool is an int subclass
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_integer(value: Value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def type_of(value: Value) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "real"
    return "char" if len(value) == 1 else "string"


def check_numeric(value: Value, line_no: int) -> Value:
    """Reject results that leave the longint range or the finite reals."""
    if is_integer(value) and not INT_MIN <= value <= INT_MAX:
        raise PascalRuntimeError(ARITHMETIC_OVERFLOW, "Arithmetic overflow", line_no)
    if isinstance(value, float) and not math.isfinite(value):
        raise PascalRuntimeError(FLOAT_OVERFLOW, "Floating point overflow", line_no)
    return value


def format_real(value: float) -> str:
    text = f"{value:.10E}"
    return text if value < 0 else " " + text


def format_value(value: Value, width: Optional[int] = None, decimals: Optional[int] = None) -> str:
    """Render a value the way ``write`` prints it.

    Reals without a ``:d`` part use scientific notation; ``decimals`` only
    applies to reals. The text is right-aligned to ``width`` and never cut.
    Both specifiers are capped at 255.
    """
    if width is not None:
        width = min(width, MAX_FIELD_WIDTH)
    if decimals is not None:
        decimals = min(decimals, MAX_FIELD_WIDTH)
    if isinstance(value, bool):
        text = "TRUE" if value else "FALSE"
    elif isinstance(value, float):
        if decimals is not None:
            text = f"{value:.{max(decimals, 0)}f}"
        else:
            text = format_real(value)
            if width is not None:
                text = text.strip()
    else:
        text = str(value)
    if width is not None and width > len(text):
        text = text.rjust(width)
    return text


def coerce(value: Value, type_name: str, name: str, line_no: int) -> Value:
    """Check ``value`` against a declared type, widening where Pascal does."""
    if type_name == "integer" and is_integer(value):
        return check_numeric(value, line_no)
    if type_name == "real" and is_number(value):
        return check_numeric(float(value), line_no)
    if type_name == "boolean" and isinstance(value, bool):
        return value
    if type_name == "char" and isinstance(value, str) and len(value) <= 1:
        return value
    if type_name == "string" and isinstance(value, str):
        return value[:MAX_STRING_LENGTH]
    raise PascalRuntimeError(
        TYPE_MISMATCH,
        f"Type mismatch: cannot assign {type_of(value)} to {type_name} variable '{name}'",
        line_no,
    )


class VariableStore:
    def __init__(self) -> None:
        self.types: Dict[str, str] = {}
        self.values: Dict[str, Value] = {}

    def declare(self, decl: VarDecl) -> None:
        if decl.type_name not in TYPE_NAMES:
            raise ValueError(f"Unknown type: {decl.type_name}")
        self.types[decl.name] = decl.type_name
        self.values[decl.name] = DEFAULTS[decl.type_name]

    def get(self, name: str, line_no: int = 0) -> Value:
        if name not in self.values:
            raise PascalRuntimeError(TYPE_MISMATCH, f"Unknown identifier '{name}'", line_no)
        return self.values[name]

    def set(self, name: str, value: Value, line_no: int = 0) -> None:
        if name not in self.types:
            raise PascalRuntimeError(TYPE_MISMATCH, f"Unknown identifier '{name}'", line_no)
        self.values[name] = coerce(value, self.types[name], name, line_no)

    def reset(self, name: str) -> Value:
        self.values[name] = DEFAULTS[self.types[name]]
        return self.values[name]

    def snapshot(self) -> Dict[str, Value]:
        return dict(self.values)
