from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from retroemu.display import borland_banner, execution_banner, indented
from retroemu.pascal.interpreter import DEFAULT_STEP_LIMIT, PascalExecutionResult, run_program
from retroemu.pascal.lexer import tokenize
from retroemu.pascal.nodes import PascalProgram
from retroemu.pascal.parser import compile_tokens
from retroemu.pascal.values import format_value
from retroemu.tokens import Token


logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    success: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    program: Optional[PascalProgram] = None
    statement_count: int = 0


class PascalEngine:
    """Compile and run Turbo Pascal subset programs.

    The engine holds no per-run state; ``compile`` returns a fresh
    :class:`CompileResult` and ``execute`` interprets it on a new store.
    Breakpoints persist across runs but only pause execution while debug
    mode is enabled.
    """

    def __init__(self, step_limit: int = DEFAULT_STEP_LIMIT) -> None:
        self.step_limit = step_limit
        self.breakpoints: Set[int] = set()
        self.debug = False

    def set_breakpoint(self, line_no: int) -> str:
        self.breakpoints.add(line_no)
        return f"Breakpoint set at line {line_no}"

    def clear_breakpoint(self, line_no: int) -> str:
        self.breakpoints.discard(line_no)
        return f"Breakpoint cleared at line {line_no}"

    def enable_debug(self) -> str:
        self.debug = True
        return "Debug mode enabled"

    def disable_debug(self) -> str:
        self.debug = False
        return "Debug mode disabled"

    def display_header(self) -> str:
        return borland_banner("Turbo Pascal 7.0", "1983-1992", "Compiling...")

    def tokenize(self, source: str) -> List[Token]:
        return tokenize(source)

    def compile(self, source: str) -> CompileResult:
        tokens = self.tokenize(source)
        program, errors = compile_tokens(tokens)
        if program is None:
            logger.debug("Compilation failed with %d errors", len(errors))
            return CompileResult(success=False, errors=errors)
        warnings = []
        count = program.statement_count()
        if count == 0:
            warnings.append("Program has no executable statements")
        logger.debug("Compiled program %r: %d statements, %d variables", program.name, count, len(program.variables))
        return CompileResult(success=True, warnings=warnings, program=program, statement_count=count)

    def execute(self, compiled: Optional[CompileResult]) -> PascalExecutionResult:
        if compiled is None or not compiled.success or compiled.program is None:
            return PascalExecutionResult(success=False, output=["Program was not compiled successfully"])
        breakpoints = frozenset(self.breakpoints) if self.debug else frozenset()
        return run_program(compiled.program, self.step_limit, breakpoints)

    def display_results(self, result: CompileResult) -> str:
        out = [self.display_header()]
        if not result.success:
            out.append("Compilation failed with errors:")
            out.extend(indented(result.errors))
            return "\n".join(out)
        program = result.program
        out.append("Compilation successful.")
        out.append(f"Program: {program.name}")
        out.append(f"Statements: {result.statement_count}")
        if program.variables:
            out.append("")
            out.append("Variables:")
            for decl in program.variables.values():
                out.append(f"  {decl.name}: {decl.type_name}")
        if result.warnings:
            out.append("")
            out.append("Warnings:")
            out.extend(indented(result.warnings))
        return "\n".join(out)

    def display_execution_results(self, result: PascalExecutionResult) -> str:
        out = execution_banner()
        out.append("Program output:")
        out.extend(indented(result.output))
        out.append("")
        if result.warnings:
            out.append("Warnings:")
            out.extend(indented(result.warnings))
            out.append("")
        out.append(f"Statements executed: {result.statements_executed}")
        if result.variables:
            out.append("")
            out.append("Final variables:")
            for name, value in result.variables.items():
                out.append(f"  {name} = {format_value(value).strip() or repr(value)}")
        return "\n".join(out)
