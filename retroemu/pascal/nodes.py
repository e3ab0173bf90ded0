from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union


Value = Union[int, float, bool, str]

TYPE_NAMES = ("integer", "real", "boolean", "char", "string")


# Expressions


@dataclass(frozen=True)
class Literal:
    value: Value
    line: int


@dataclass(frozen=True)
class VarRef:
    name: str
    line: int


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Expr"
    line: int


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Expr"
    right: "Expr"
    line: int


@dataclass(frozen=True)
class FuncCall:
    name: str
    args: List["Expr"]
    line: int


Expr = Union[Literal, VarRef, UnaryOp, BinaryOp, FuncCall]


# Statements


@dataclass
class Assign:
    target: str
    expr: Expr
    line: int


@dataclass
class WriteArg:
    expr: Expr
    width: Optional[Expr] = None
    decimals: Optional[Expr] = None


@dataclass
class Write:
    args: List[WriteArg]
    newline: bool
    line: int


@dataclass
class Read:
    targets: List[str]
    newline: bool
    line: int


@dataclass
class If:
    condition: Expr
    then_branch: "Statement"
    else_branch: Optional["Statement"]
    line: int


@dataclass
class While:
    condition: Expr
    body: "Statement"
    line: int


@dataclass
class Repeat:
    body: List["Statement"]
    condition: Expr
    line: int


@dataclass
class For:
    variable: str
    start: Expr
    stop: Expr
    downto: bool
    body: "Statement"
    line: int


@dataclass
class CaseBranch:
    values: List[Value]
    body: "Statement"


@dataclass
class Case:
    selector: Expr
    branches: List[CaseBranch]
    else_body: List["Statement"]
    line: int


@dataclass
class Compound:
    statements: List["Statement"]
    line: int


@dataclass
class Empty:
    line: int


Statement = Union[Assign, Write, Read, If, While, Repeat, For, Case, Compound, Empty]


@dataclass(frozen=True)
class VarDecl:
    name: str
    type_name: str
    line: int


@dataclass
class PascalProgram:
    name: str
    variables: Dict[str, VarDecl] = field(default_factory=dict)
    constants: Dict[str, Value] = field(default_factory=dict)
    statements: List[Statement] = field(default_factory=list)

    def statement_count(self) -> int:
        return sum(_count(stmt) for stmt in self.statements)


def _count(stmt: Statement) -> int:
    if isinstance(stmt, Compound):
        return sum(_count(inner) for inner in stmt.statements)
    if isinstance(stmt, If):
        total = 1 + _count(stmt.then_branch)
        if stmt.else_branch is not None:
            total += _count(stmt.else_branch)
        return total
    if isinstance(stmt, (While, For)):
        return 1 + _count(stmt.body)
    if isinstance(stmt, Repeat):
        return 1 + sum(_count(inner) for inner in stmt.body)
    if isinstance(stmt, Case):
        return (
            1
            + sum(_count(branch.body) for branch in stmt.branches)
            + sum(_count(inner) for inner in stmt.else_body)
        )
    if isinstance(stmt, Empty):
        return 0
    return 1
