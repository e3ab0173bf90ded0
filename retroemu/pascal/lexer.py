"""
Lexer for the Turbo Pascal subset.

Produces :class:`~retroemu.tokens.Token` objects with one of these kinds:

* ``keyword``    reserved word, text lower-cased
* ``identifier`` user name, text as written
* ``integer`` / ``real``  numeric literal
* ``string``     quoted literal, content verbatim with ``''`` unescaped
* ``operator``   punctuation and operators
* ``error``      a character the language does not use
* ``eof``        end of input

Comments in ``{ }``, ``(* *)`` and ``//`` form are skipped.
"""
from __future__ import annotations

import string
from typing import List

from retroemu.tokens import Token


KEYWORDS = {
    "program",
    "const",
    "var",
    "begin",
    "end",
    "if",
    "then",
    "else",
    "while",
    "do",
    "for",
    "to",
    "downto",
    "repeat",
    "until",
    "case",
    "of",
    "write",
    "writeln",
    "read",
    "readln",
    "div",
    "mod",
    "and",
    "or",
    "not",
    "true",
    "false",
    "integer",
    "real",
    "boolean",
    "char",
    "string",
}

TWO_CHAR_OPERATORS = {":=", "<=", ">=", "<>"}
ONE_CHAR_OPERATORS = set("+-*/=<>()[],;:.")


# ASCII only
DIGITS = frozenset(string.digits)
LETTERS = frozenset(string.ascii_letters + "_")


def _is_digit(ch: str) -> bool:
    return ch in DIGITS


def _is_letter(ch: str) -> bool:
    return ch in LETTERS


class Lexer:
    def __init__(self, source: str) -> None:
        self.source = source
        self.pos = 0
        self.line = 1
        self.tokens: List[Token] = []

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.source[index] if index < len(self.source) else ""

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
        return ch

    def _emit(self, kind: str, text: str, line: int | None = None) -> None:
        self.tokens.append(Token(kind, text, self.line if line is None else line))

    def tokenize(self) -> List[Token]:
        while self.pos < len(self.source):
            ch = self._peek()
            if ch.isspace():
                self._advance()
            elif ch == "{":
                self._skip_until("}")
            elif ch == "(" and self._peek(1) == "*":
                self._skip_until("*)")
            elif ch == "/" and self._peek(1) == "/":
                while self.pos < len(self.source) and self._peek() != "\n":
                    self._advance()
            elif _is_letter(ch):
                self._read_word()
            elif _is_digit(ch):
                self._read_number()
            elif ch == "'" or ch == "#":
                self._read_string()
            elif ch + self._peek(1) in TWO_CHAR_OPERATORS:
                self._emit("operator", self._advance() + self._advance())
            elif ch in ONE_CHAR_OPERATORS:
                self._emit("operator", self._advance())
            else:
                self._emit("error", self._advance())
        self._emit("eof", "")
        return self.tokens

    def _skip_until(self, terminator: str) -> None:
        start_line = self.line
        while self.pos < len(self.source):
            if self.source.startswith(terminator, self.pos):
                for _ in terminator:
                    self._advance()
                return
            self._advance()
        self._emit("error", "unterminated comment", start_line)

    def _read_word(self) -> None:
        start = self.pos
        while self.pos < len(self.source) and (_is_letter(self._peek()) or _is_digit(self._peek())):
            self._advance()
        word = self.source[start:self.pos]
        if word.lower() in KEYWORDS:
            self._emit("keyword", word.lower())
        else:
            self._emit("identifier", word)

    def _read_number(self) -> None:
        start = self.pos
        kind = "integer"
        while _is_digit(self._peek()):
            self._advance()
        if self._peek() == "." and _is_digit(self._peek(1)):
            kind = "real"
            self._advance()
            while _is_digit(self._peek()):
                self._advance()
        if self._peek() in ("e", "E") and (
            _is_digit(self._peek(1)) or (self._peek(1) in ("+", "-") and _is_digit(self._peek(2)))
        ):
            kind = "real"
            self._advance()
            if self._peek() in ("+", "-"):
                self._advance()
            while _is_digit(self._peek()):
                self._advance()
        self._emit(kind, self.source[start:self.pos])

    def _read_string(self) -> None:
        """Read a run of quoted pieces and ``#nn`` character codes."""
        line = self.line
        chars: List[str] = []
        while self._peek() in ("'", "#"):
            if self._peek() == "#":
                self._advance()
                digits = ""
                while _is_digit(self._peek()):
                    digits += self._advance()
                code = digits.lstrip("0") or "0"
                if not digits or len(code) > 3 or int(code) > 255:
                    self._emit("error", "#", line)
                    return
                chars.append(chr(int(code)))
                continue
            self._advance()
            while True:
                if self.pos >= len(self.source) or self._peek() == "\n":
                    self._emit("error", "unterminated string", line)
                    return
                ch = self._advance()
                if ch == "'":
                    if self._peek() == "'":
                        chars.append(self._advance())
                        continue
                    break
                chars.append(ch)
        self._emit("string", "".join(chars), line)


def tokenize(source: str) -> List[Token]:
    return Lexer(source).tokenize()
