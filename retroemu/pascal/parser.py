"""
Recursive-descent compiler for the Turbo Pascal subset.

Accepted program shape::

    program <name>;
    [const <name> = <literal>; ...]
    [var <name> {, <name>} : <type>; ...]
    begin
        <statement> {; <statement>}
    end.

Syntax errors raise :class:`ParseError` internally; the statement-list
parser records the message and resynchronises at the next ``;`` so that a
single compile reports every diagnostic it can find.  Name errors (unknown
identifier or type) are recorded without interrupting the parse.
"""
from __future__ import annotations

import math
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from retroemu.pascal.nodes import (
    TYPE_NAMES,
    Assign,
    BinaryOp,
    Case,
    CaseBranch,
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
    VarDecl,
    VarRef,
    While,
    Write,
    WriteArg,
)
from retroemu.pascal.values import INT_MAX
from retroemu.tokens import Token


BUILTIN_FUNCTIONS = {"abs", "sqr", "sqrt", "trunc", "round", "ord", "chr", "length", "odd", "upcase"}

RELATIONAL_OPS = {"=", "<>", "<", ">", "<=", ">="}

# Tokens that close a statement list
BLOCK_END = {"end", "until", "else"}

# statements, expressions and factors open inside each other at most this deep
MAX_NESTING = 128


class ParseError(Exception):
    def __init__(self, message: str, line_no: int, text: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.line_no = line_no
        self.text = text


class Parser:
    def __init__(self, tokens: List[Token]) -> None:
        self.tokens = tokens
        self.pos = 0
        self.errors: List[str] = []
        self.variables: Dict[str, VarDecl] = {}
        self.constants: Dict[str, Value] = {}
        self.depth = 0

    # token helpers

    @property
    def current(self) -> Token:
        return self.tokens[min(self.pos, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        tok = self.current
        if tok.kind != "eof":
            self.pos += 1
        return tok

    def _at(self, kind: str, text: Optional[str] = None) -> bool:
        return self.current.matches(kind, text)

    def _at_keyword(self, *words: str) -> bool:
        return self.current.kind == "keyword" and self.current.text in words

    def _at_op(self, *ops: str) -> bool:
        return self.current.kind == "operator" and self.current.text in ops

    def _describe(self, tok: Token) -> str:
        if tok.kind == "eof":
            return "end of file"
        return f"'{tok.text}'"

    def _expect(self, kind: str, text: str) -> Token:
        if not self._at(kind, text):
            tok = self.current
            raise ParseError(f"'{text}' expected but {self._describe(tok)} found", tok.line, tok.text)
        return self._advance()

    def _expect_identifier(self) -> Token:
        if self.current.kind != "identifier":
            tok = self.current
            raise ParseError(f"Identifier expected but {self._describe(tok)} found", tok.line, tok.text)
        return self._advance()

    def _error(self, message: str, line: int) -> None:
        self.errors.append(f"Line {line}: {message}")

    def _report(self, exc: ParseError) -> None:
        self._error(exc.message, exc.line_no)

    @contextmanager
    def _nested(self) -> Iterator[None]:
        if self.depth >= MAX_NESTING:
            raise ParseError("Program too deeply nested", self.current.line, self.current.text)
        self.depth += 1
        try:
            yield
        finally:
            self.depth -= 1

    def _integer(self, tok: Token) -> int:
        digits = tok.text.lstrip("0")
        if len(digits) > len(str(INT_MAX)) or int(digits or "0") > INT_MAX:
            raise ParseError("Constant out of range", tok.line, tok.text)
        return int(digits or "0")

    def _real(self, tok: Token) -> float:
        value = float(tok.text)
        if not math.isfinite(value):
            raise ParseError("Constant out of range", tok.line, tok.text)
        return value

    def _synchronize(self) -> None:
        while not self._at("eof") and not self._at_op(";") and not self._at_keyword(*BLOCK_END):
            self._advance()

    # program structure

    def parse_program(self) -> Tuple[Optional[PascalProgram], List[str]]:
        for tok in self.tokens:
            if tok.kind == "error":
                self._error(f"Illegal character {tok.text!r}", tok.line)
        name = ""
        try:
            self._expect("keyword", "program")
            name = self._expect_identifier().text
            self._expect("operator", ";")
        except ParseError as exc:
            self._report(exc)
            while not self._at("eof") and not self._at_keyword("const", "var", "begin"):
                if self._advance().matches("operator", ";"):
                    break

        while self._at_keyword("const", "var"):
            if self._at_keyword("const"):
                self._parse_const_section()
            else:
                self._parse_var_section()

        statements: List[Statement] = []
        try:
            self._expect("keyword", "begin")
            statements = self._parse_statement_list()
            self._expect_program_end()
        except ParseError as exc:
            self._report(exc)

        if self.errors:
            return None, self.errors
        program = PascalProgram(
            name=name,
            variables=dict(self.variables),
            constants=dict(self.constants),
            statements=statements,
        )
        return program, []

    def _expect_program_end(self) -> None:
        if not self._at_keyword("end"):
            tok = self.current
            if tok.kind == "eof":
                raise ParseError("Unexpected end of file: 'end.' expected", tok.line)
            raise ParseError(f"'end.' expected but {self._describe(tok)} found", tok.line, tok.text)
        end_tok = self._advance()
        if not self._at_op("."):
            raise ParseError("'.' expected after final 'end'", end_tok.line, end_tok.text)
        self._advance()
        if not self._at("eof"):
            tok = self.current
            raise ParseError(f"Text after 'end.' is not allowed: {self._describe(tok)}", tok.line, tok.text)

    def _parse_const_section(self) -> None:
        self._advance()
        while self._at("identifier"):
            try:
                name_tok = self._advance()
                self._expect("operator", "=")
                value = self._parse_constant_value()
                self._expect("operator", ";")
                self._declare(name_tok)
                self.constants[name_tok.text.lower()] = value
            except ParseError as exc:
                self._report(exc)
                self._synchronize()
                if self._at_op(";"):
                    self._advance()

    def _parse_var_section(self) -> None:
        self._advance()
        while self._at("identifier"):
            try:
                names = [self._advance()]
                while self._at_op(","):
                    self._advance()
                    names.append(self._expect_identifier())
                self._expect("operator", ":")
                type_name = self._parse_type()
                self._expect("operator", ";")
                for name_tok in names:
                    if self._declare(name_tok):
                        key = name_tok.text.lower()
                        self.variables[key] = VarDecl(key, type_name, name_tok.line)
            except ParseError as exc:
                self._report(exc)
                self._synchronize()
                if self._at_op(";"):
                    self._advance()

    def _declare(self, name_tok: Token) -> bool:
        key = name_tok.text.lower()
        if key in self.variables or key in self.constants:
            self._error(f"Duplicate identifier '{name_tok.text}'", name_tok.line)
            return False
        return True

    def _parse_type(self) -> str:
        tok = self.current
        if tok.kind == "keyword" and tok.text in TYPE_NAMES:
            self._advance()
            if tok.text == "string" and self._at_op("["):
                # string[N]: the length bound is accepted and ignored
                self._advance()
                self._expect_integer()
                self._expect("operator", "]")
            return tok.text
        if tok.kind == "identifier":
            self._advance()
            self._error(f"Unknown type '{tok.text}'", tok.line)
            return "integer"
        raise ParseError(f"Type expected but {self._describe(tok)} found", tok.line, tok.text)

    def _expect_integer(self) -> int:
        if not self._at("integer"):
            tok = self.current
            raise ParseError(f"Integer constant expected but {self._describe(tok)} found", tok.line, tok.text)
        return self._integer(self._advance())

    def _parse_constant_value(self) -> Value:
        negative = False
        if self._at_op("-", "+"):
            negative = self._advance().text == "-"
        tok = self.current
        if tok.kind == "integer":
            self._advance()
            return -self._integer(tok) if negative else self._integer(tok)
        if tok.kind == "real":
            self._advance()
            return -self._real(tok) if negative else self._real(tok)
        if negative:
            raise ParseError(f"Numeric constant expected but {self._describe(tok)} found", tok.line, tok.text)
        if tok.kind == "string":
            self._advance()
            return tok.text
        if self._at_keyword("true", "false"):
            self._advance()
            return tok.text == "true"
        if tok.kind == "identifier" and tok.text.lower() in self.constants:
            self._advance()
            return self.constants[tok.text.lower()]
        raise ParseError(f"Constant expected but {self._describe(tok)} found", tok.line, tok.text)

    # statements

    def _parse_statement_list(self) -> List[Statement]:
        statements: List[Statement] = []
        while True:
            try:
                statements.append(self._parse_statement())
            except ParseError as exc:
                self._report(exc)
                self._synchronize()
            if self._at_op(";"):
                self._advance()
                continue
            if self._at("eof") or self._at_keyword("end", "until"):
                return statements
            tok = self.current
            self._error(f"';' expected but {self._describe(tok)} found", tok.line)
            self._synchronize()
            if self._at_keyword("else"):
                self._advance()

    def _parse_statement(self) -> Statement:
        with self._nested():
            return self._parse_statement_at()

    def _parse_statement_at(self) -> Statement:
        tok = self.current
        if self._at_op(";") or self._at_keyword(*BLOCK_END) or self._at("eof"):
            return Empty(tok.line)
        if tok.kind == "keyword":
            handler = {
                "begin": self._parse_compound,
                "if": self._parse_if,
                "while": self._parse_while,
                "repeat": self._parse_repeat,
                "for": self._parse_for,
                "case": self._parse_case,
                "write": self._parse_write,
                "writeln": self._parse_write,
                "read": self._parse_read,
                "readln": self._parse_read,
            }.get(tok.text)
            if handler is None:
                self._advance()
                raise ParseError(f"Unknown statement '{tok.text}'", tok.line, tok.text)
            return handler()
        if tok.kind == "identifier":
            return self._parse_assignment()
        self._advance()
        raise ParseError(f"Unknown statement {self._describe(tok)}", tok.line, tok.text)

    def _parse_compound(self) -> Compound:
        begin_tok = self._advance()
        statements = self._parse_statement_list()
        if not self._at_keyword("end"):
            raise ParseError(
                f"'end' expected to close 'begin' on line {begin_tok.line}", self.current.line, self.current.text
            )
        self._advance()
        return Compound(statements, begin_tok.line)

    def _parse_if(self) -> If:
        if_tok = self._advance()
        condition = self._parse_expression()
        self._expect("keyword", "then")
        then_branch = self._parse_statement()
        else_branch = None
        if self._at_keyword("else"):
            self._advance()
            else_branch = self._parse_statement()
        return If(condition, then_branch, else_branch, if_tok.line)

    def _parse_while(self) -> While:
        while_tok = self._advance()
        condition = self._parse_expression()
        self._expect("keyword", "do")
        return While(condition, self._parse_statement(), while_tok.line)

    def _parse_repeat(self) -> Repeat:
        repeat_tok = self._advance()
        body = self._parse_statement_list()
        self._expect("keyword", "until")
        return Repeat(body, self._parse_expression(), repeat_tok.line)

    def _parse_for(self) -> For:
        for_tok = self._advance()
        var_tok = self._expect_identifier()
        variable = self._resolve_variable(var_tok)
        self._expect("operator", ":=")
        start = self._parse_expression()
        if not self._at_keyword("to", "downto"):
            tok = self.current
            raise ParseError(f"'to' or 'downto' expected but {self._describe(tok)} found", tok.line, tok.text)
        downto = self._advance().text == "downto"
        stop = self._parse_expression()
        self._expect("keyword", "do")
        return For(variable, start, stop, downto, self._parse_statement(), for_tok.line)

    def _parse_case(self) -> Case:
        case_tok = self._advance()
        selector = self._parse_expression()
        self._expect("keyword", "of")
        branches: List[CaseBranch] = []
        else_body: List[Statement] = []
        while not self._at_keyword("end", "else") and not self._at("eof"):
            values = [self._parse_constant_value()]
            while self._at_op(","):
                self._advance()
                values.append(self._parse_constant_value())
            self._expect("operator", ":")
            branches.append(CaseBranch(values, self._parse_statement()))
            if self._at_op(";"):
                self._advance()
            elif not self._at_keyword("end", "else"):
                tok = self.current
                raise ParseError(f"';' expected but {self._describe(tok)} found", tok.line, tok.text)
        if self._at_keyword("else"):
            self._advance()
            else_body = self._parse_statement_list()
        if not self._at_keyword("end"):
            raise ParseError(
                f"'end' expected to close 'case' on line {case_tok.line}", self.current.line, self.current.text
            )
        self._advance()
        return Case(selector, branches, else_body, case_tok.line)

    def _parse_write(self) -> Write:
        write_tok = self._advance()
        args: List[WriteArg] = []
        if self._at_op("("):
            self._advance()
            if not self._at_op(")"):
                args.append(self._parse_write_arg())
                while self._at_op(","):
                    self._advance()
                    args.append(self._parse_write_arg())
            self._expect("operator", ")")
        return Write(args, write_tok.text == "writeln", write_tok.line)

    def _parse_write_arg(self) -> WriteArg:
        arg = WriteArg(self._parse_expression())
        if self._at_op(":"):
            self._advance()
            arg.width = self._parse_expression()
            if self._at_op(":"):
                self._advance()
                arg.decimals = self._parse_expression()
        return arg

    def _parse_read(self) -> Read:
        read_tok = self._advance()
        targets: List[str] = []
        if self._at_op("("):
            self._advance()
            if not self._at_op(")"):
                targets.append(self._resolve_variable(self._expect_identifier()))
                while self._at_op(","):
                    self._advance()
                    targets.append(self._resolve_variable(self._expect_identifier()))
            self._expect("operator", ")")
        return Read(targets, read_tok.text == "readln", read_tok.line)

    def _parse_assignment(self) -> Assign:
        name_tok = self._advance()
        if not self._at_op(":="):
            tok = self.current
            if name_tok.text.lower() not in self.variables and name_tok.text.lower() not in self.constants:
                raise ParseError(f"Unknown statement '{name_tok.text}'", name_tok.line, name_tok.text)
            raise ParseError(f"':=' expected but {self._describe(tok)} found", tok.line, tok.text)
        self._advance()
        target = self._resolve_variable(name_tok)
        return Assign(target, self._parse_expression(), name_tok.line)

    def _resolve_variable(self, name_tok: Token) -> str:
        key = name_tok.text.lower()
        if key in self.constants:
            self._error(f"Cannot assign to constant '{name_tok.text}'", name_tok.line)
        elif key not in self.variables:
            self._error(f"Unknown identifier '{name_tok.text}'", name_tok.line)
        return key

    # expressions

    def _parse_expression(self) -> Expr:
        with self._nested():
            left = self._parse_simple()
            if self._at_op(*RELATIONAL_OPS):
                op_tok = self._advance()
                right = self._parse_simple()
                left = BinaryOp(op_tok.text, left, right, op_tok.line)
            return left

    def _parse_simple(self) -> Expr:
        if self._at_op("+", "-"):
            sign_tok = self._advance()
            term = self._parse_term()
            left: Expr = UnaryOp(sign_tok.text, term, sign_tok.line) if sign_tok.text == "-" else term
        else:
            left = self._parse_term()
        while self._at_op("+", "-") or self._at_keyword("or"):
            op_tok = self._advance()
            left = BinaryOp(op_tok.text, left, self._parse_term(), op_tok.line)
        return left

    def _parse_term(self) -> Expr:
        left = self._parse_factor()
        while self._at_op("*", "/") or self._at_keyword("div", "mod", "and"):
            op_tok = self._advance()
            left = BinaryOp(op_tok.text, left, self._parse_factor(), op_tok.line)
        return left

    def _parse_factor(self) -> Expr:
        with self._nested():
            return self._parse_factor_at()

    def _parse_factor_at(self) -> Expr:
        tok = self.current
        if tok.kind == "integer":
            self._advance()
            return Literal(self._integer(tok), tok.line)
        if tok.kind == "real":
            self._advance()
            return Literal(self._real(tok), tok.line)
        if tok.kind == "string":
            self._advance()
            return Literal(tok.text, tok.line)
        if self._at_keyword("true", "false"):
            self._advance()
            return Literal(tok.text == "true", tok.line)
        if self._at_keyword("not"):
            self._advance()
            return UnaryOp("not", self._parse_factor(), tok.line)
        if self._at_op("-"):
            self._advance()
            return UnaryOp("-", self._parse_factor(), tok.line)
        if self._at_op("("):
            self._advance()
            inner = self._parse_expression()
            self._expect("operator", ")")
            return inner
        if tok.kind == "identifier":
            self._advance()
            key = tok.text.lower()
            if key in BUILTIN_FUNCTIONS and self._at_op("("):
                self._advance()
                args = [self._parse_expression()]
                while self._at_op(","):
                    self._advance()
                    args.append(self._parse_expression())
                self._expect("operator", ")")
                if len(args) != 1:
                    self._error(f"Wrong number of parameters for '{tok.text}'", tok.line)
                return FuncCall(key, args, tok.line)
            if key in self.constants:
                return Literal(self.constants[key], tok.line)
            if key not in self.variables:
                self._error(f"Unknown identifier '{tok.text}'", tok.line)
            return VarRef(key, tok.line)
        raise ParseError(f"Expression expected but {self._describe(tok)} found", tok.line, tok.text)


def compile_tokens(tokens: List[Token]) -> Tuple[Optional[PascalProgram], List[str]]:
    parser = Parser(tokens)
    try:
        return parser.parse_program()
    except RecursionError:
        return None, parser.errors + [f"Line {parser.current.line}: Program too deeply nested"]
