"""Two-pass assembler and bounded executor for the Turbo Assembler simulation.

Pass 1 walks the source assigning addresses from the ``.COM`` load address
(0x100), records every ``label:`` and gives each named ``db``/``dw``/``dd``
definition an offset counted from the start of the data area.  Pass 2 walks it again and emits one
:class:`ObjectCodeRecord` per recognized instruction, resolving label
operands against the symbol table built in pass 1.

The assembler keeps no state between calls: :meth:`Assembler.assemble`
returns an immutable :class:`AssemblyResult` and :meth:`Assembler.execute`
runs that result on a freshly reset :class:`CPUState`.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from retroemu.asm.cpu import LOAD_ADDRESS, REGISTER_ORDER, STACK_TOP, CPUState
from retroemu.asm.instructions import EmulationError, get_instruction_handler
from retroemu.asm.model import (
    AsmExecutionResult,
    AssemblyResult,
    Immediate,
    Instruction,
    InstructionKind,
    LabelRef,
    ObjectCodeRecord,
    Operand,
    Register,
)
from retroemu.asm.parser import data_size, parse_directive, parse_instruction, split_label, strip_comment
from retroemu.display import borland_banner, execution_banner, hex_word, indented


logger = logging.getLogger(__name__)

DEFAULT_STEP_LIMIT = 1000
DEFAULT_MEMORY_DUMP = 256

BRANCH_KINDS = {InstructionKind.JMP, InstructionKind.JE, InstructionKind.JNE, InstructionKind.CALL}


def encode_operand(op: Operand, labels: Dict[str, int]) -> List[int]:
    if isinstance(op, Register):
        return [0x00]
    if isinstance(op, Immediate) and op.radix == 10:
        encoded = [op.value & 0xFF]
        if op.value > 0xFF:
            encoded.append((op.value >> 8) & 0xFF)
        return encoded
    if isinstance(op, LabelRef) and op.name in labels:
        address = labels[op.name]
        return [address & 0xFF, (address >> 8) & 0xFF]
    return [0x00]


def encode_instruction(instr: Instruction, labels: Dict[str, int]) -> Tuple[int, ...]:
    code = [instr.opcode]
    if instr.size > 1:
        for op in instr.operands:
            code.extend(encode_operand(op, labels))
    return tuple(code)


class Assembler:
    def __init__(self, step_limit: int = DEFAULT_STEP_LIMIT, memory_dump_size: int = DEFAULT_MEMORY_DUMP) -> None:
        self.step_limit = step_limit
        self.memory_dump_size = memory_dump_size

    def display_header(self) -> str:
        return borland_banner("Turbo Assembler 3.0", "1989-1992", "Assembling file...")

    def assemble(self, source: str) -> AssemblyResult:
        errors: List[str] = []
        warnings: List[str] = []
        lines = source.splitlines()

        labels, data_symbols = self._collect_symbols(lines, errors)

        object_code: List[ObjectCodeRecord] = []
        address = LOAD_ADDRESS
        saw_end = False
        for line_no, raw_line in enumerate(lines, start=1):
            line = strip_comment(raw_line).strip()
            if not line:
                continue
            label, rest = split_label(line)
            if not rest:
                continue
            directive = parse_directive(rest, line_no)
            if directive:
                saw_end = saw_end or directive.name == "end"
                continue
            instr = parse_instruction(line, line_no)
            if instr is None:
                errors.append(f"Line {line_no}: Unknown instruction or directive")
                continue
            if instr.kind in BRANCH_KINDS:
                for op in instr.operands:
                    if isinstance(op, LabelRef) and op.name not in labels:
                        warnings.append(f"Line {line_no}: Undefined symbol '{op.name}'")
            object_code.append(
                ObjectCodeRecord(
                    address=address,
                    bytes=encode_instruction(instr, labels),
                    source=line,
                    line=line_no,
                    size=instr.size,
                    instruction=instr,
                )
            )
            address += instr.size

        if object_code and not saw_end:
            warnings.append("No END directive found")

        logger.debug(
            "Assembled %d records, %d labels, %d errors", len(object_code), len(labels), len(errors)
        )
        return AssemblyResult(
            success=not errors,
            object_code=tuple(object_code),
            errors=tuple(errors),
            warnings=tuple(warnings),
            labels=labels,
            data_symbols=data_symbols,
        )

    def _collect_symbols(self, lines: List[str], errors: List[str]) -> Tuple[Dict[str, int], Dict[str, int]]:
        labels: Dict[str, int] = {}
        data_symbols: Dict[str, int] = {}
        address = LOAD_ADDRESS
        data_offset = 0
        segment = None
        for line_no, raw_line in enumerate(lines, start=1):
            line = strip_comment(raw_line).strip()
            if not line:
                continue
            label, rest = split_label(line)
            if label:
                if label in labels or label in data_symbols:
                    errors.append(f"Line {line_no}: Duplicate label '{label}'")
                else:
                    labels[label] = address
            if not rest:
                continue
            directive = parse_directive(rest, line_no)
            if directive:
                # Segment tracking only; emission does not depend on it.
                if directive.name in ("code", "data"):
                    segment = directive.name
                if directive.name == "define":
                    if directive.symbol in labels or directive.symbol in data_symbols:
                        errors.append(f"Line {line_no}: Duplicate symbol '{directive.symbol}'")
                    elif directive.symbol:
                        data_symbols[directive.symbol] = data_offset
                    data_offset += data_size(directive)
                continue
            instr = parse_instruction(line, line_no)
            if instr:
                address += instr.size
        logger.debug("Pass 1 finished in %s segment at 0x%04X", segment or "no", address)
        return labels, data_symbols

    def execute(self, result: AssemblyResult) -> AsmExecutionResult:
        cpu = CPUState()
        cpu.set_reg("ip", LOAD_ADDRESS)
        cpu.set_reg("sp", STACK_TOP)
        if not result.success:
            return AsmExecutionResult(
                success=False,
                registers=dict(cpu.registers),
                memory=cpu.dump_memory(self.memory_dump_size),
                output=["Program was not assembled successfully"],
                instructions_executed=0,
            )

        by_address = {record.address: record for record in result.object_code}
        symbols = result.symbols
        output: List[str] = []
        executed = 0
        while cpu.get_reg("ip") in by_address and executed < self.step_limit:
            record = by_address[cpu.get_reg("ip")]
            executed += 1
            handler = get_instruction_handler(record.instruction.kind)
            if handler is None:
                output.append(f"Unknown instruction: {record.source}")
                cpu.set_reg("ip", record.address + record.size)
                continue
            try:
                outcome = handler(cpu, record, symbols)
            except EmulationError as exc:
                output.append(f"Error at line {exc.line_no}: {exc.message}")
                cpu.set_reg("ip", record.address + record.size)
                continue
            output.append(outcome.output)
            if outcome.next_ip is None:
                cpu.set_reg("ip", record.address + record.size)
            else:
                cpu.set_reg("ip", outcome.next_ip)
            if outcome.halt:
                break

        limit_hit = executed >= self.step_limit and cpu.get_reg("ip") in by_address
        if limit_hit:
            logger.warning("Execution stopped after %d instructions (step limit)", executed)
            output.append(f"Execution halted: step limit of {self.step_limit} instructions reached")
        return AsmExecutionResult(
            success=True,
            registers=dict(cpu.registers),
            memory=cpu.dump_memory(self.memory_dump_size),
            output=output,
            instructions_executed=executed,
            step_limit_reached=limit_hit,
        )

    def display_results(self, result: AssemblyResult) -> str:
        out = [self.display_header()]
        if result.success:
            out.append("Assembly completed successfully.")
            out.append(f"Object code size: {result.code_size} bytes")
            out.append("")
            if result.warnings:
                out.append("Warnings:")
                out.extend(indented(result.warnings))
                out.append("")
            out.append("Object code:")
            for record in sorted(result.object_code, key=lambda rec: rec.address):
                out.append(f"  {record.address:04X}: {record.hex_bytes()}  ; {record.source}")
            if result.labels:
                out.append("")
                out.append("Symbols:")
                for name, address in sorted(result.labels.items(), key=lambda item: item[1]):
                    out.append(f"  {name:<16} {address:04X}")
            if result.data_symbols:
                out.append("")
                out.append("Data:")
                for name, offset in sorted(result.data_symbols.items(), key=lambda item: item[1]):
                    out.append(f"  {name:<16} {offset:04X}")
        else:
            out.append("Assembly failed with errors:")
            out.extend(indented(result.errors))
            if result.warnings:
                out.append("")
                out.append("Warnings:")
                out.extend(indented(result.warnings))
        return "\n".join(out)

    def display_execution_results(self, result: AsmExecutionResult) -> str:
        out = execution_banner()
        out.append("Registers:")
        for name in REGISTER_ORDER:
            out.append(f"  {name.upper()}: {hex_word(result.registers.get(name, 0))}")
        out.append("")
        out.append("Program output:")
        out.extend(indented(result.output))
        out.append("")
        out.append(f"Instructions executed: {result.instructions_executed}")
        return "\n".join(out)
