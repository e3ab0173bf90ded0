from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Tuple

from retroemu.asm.cpu import DEFAULT_SEGMENT, CPUState
from retroemu.asm.model import (
    Immediate,
    InstructionKind,
    LabelRef,
    ObjectCodeRecord,
    Operand,
    Register,
    Unsupported,
)


DOS_INTERRUPT = 0x21
DOS_TERMINATE = 0x4C


@dataclass
class ExecResult:
    output: str
    next_ip: int | None = None
    halt: bool = False


class EmulationError(Exception):
    def __init__(self, message: str, line_no: int, text: str) -> None:
        super().__init__(message)
        self.message = message
        self.line_no = line_no
        self.text = text


Handler = Callable[[CPUState, ObjectCodeRecord, Mapping[str, int]], ExecResult]

INSTRUCTION_HANDLERS: Dict[InstructionKind, Handler] = {}


def register_instruction_impl(kind: InstructionKind, handler: Handler) -> None:
    INSTRUCTION_HANDLERS[kind] = handler


def get_instruction_handler(kind: InstructionKind) -> Handler | None:
    return INSTRUCTION_HANDLERS.get(kind)


def _expect_operands(record: ObjectCodeRecord, count: int) -> None:
    instr = record.instruction
    if len(instr.operands) != count:
        raise EmulationError(
            f"Expected {count} operands for {instr.mnemonic.upper()}",
            instr.line_no,
            instr.text,
        )


def _require_reg(op: Operand, record: ObjectCodeRecord) -> str:
    if not isinstance(op, Register):
        raise EmulationError(
            f"Unsupported operand for {record.instruction.mnemonic.upper()}: {_describe(op)}",
            record.line,
            record.source,
        )
    return op.name


def _describe(op: Operand) -> str:
    if isinstance(op, Register):
        return op.name
    if isinstance(op, Immediate):
        return str(op.value)
    if isinstance(op, LabelRef):
        return op.name
    return op.text


def _value_of(op: Operand, cpu: CPUState, labels: Mapping[str, int]) -> int:
    """Read an operand value; unsupported forms degrade to zero."""
    if isinstance(op, Register):
        return cpu.get_reg(op.name)
    if isinstance(op, Immediate):
        return op.value
    if isinstance(op, LabelRef):
        return labels.get(op.name, 0)
    text = op.text.lower()
    if text == "@data":
        return DEFAULT_SEGMENT
    if text.startswith("offset "):
        return labels.get(text[len("offset "):].strip(), 0)
    return 0


def _jump_target(record: ObjectCodeRecord, labels: Mapping[str, int]) -> int:
    _expect_operands(record, 1)
    op = record.instruction.operands[0]
    if isinstance(op, LabelRef) and op.name in labels:
        return labels[op.name]
    if isinstance(op, Unsupported):
        raise EmulationError(
            f"Unsupported operand for {record.instruction.mnemonic.upper()}: {op.text}",
            record.line,
            record.source,
        )
    raise EmulationError(f"Unknown label: {_describe(op)}", record.line, record.source)


def _arith_flags(cpu: CPUState, left: int, right: int, result: int, bits: int, subtract: bool) -> int:
    mask = (1 << bits) - 1
    sign_bit = 1 << (bits - 1)
    masked = result & mask
    cpu.set_flag("ZF", masked == 0)
    cpu.set_flag("SF", bool(masked & sign_bit))
    cpu.set_flag("CF", result < 0 or result > mask)
    if subtract:
        overflow = (left ^ right) & (left ^ masked) & sign_bit
    else:
        overflow = ~(left ^ right) & (left ^ masked) & sign_bit
    cpu.set_flag("OF", bool(overflow))
    return masked


def exec_mov(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    _expect_operands(record, 2)
    dest_op, src_op = record.instruction.operands
    dest = _require_reg(dest_op, record)
    cpu.set_reg(dest, _value_of(src_op, cpu, labels))
    return ExecResult(f"MOV executed: {record.source}")


def _binary_op(
    cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int], subtract: bool
) -> Tuple[str, int]:
    _expect_operands(record, 2)
    dest_op, src_op = record.instruction.operands
    dest = _require_reg(dest_op, record)
    bits = cpu.register_width(dest)
    mask = (1 << bits) - 1
    left = cpu.get_reg(dest)
    right = _value_of(src_op, cpu, labels) & mask
    raw = left - right if subtract else left + right
    return dest, _arith_flags(cpu, left, right, raw, bits, subtract)


def exec_add(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    dest, result = _binary_op(cpu, record, labels, subtract=False)
    cpu.set_reg(dest, result)
    return ExecResult(f"ADD executed: {record.source}")


def exec_sub(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    dest, result = _binary_op(cpu, record, labels, subtract=True)
    cpu.set_reg(dest, result)
    return ExecResult(f"SUB executed: {record.source}")


def exec_cmp(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    _binary_op(cpu, record, labels, subtract=True)
    return ExecResult(f"CMP executed: {record.source}")


def exec_jmp(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    target = _jump_target(record, labels)
    return ExecResult(f"JMP executed: {record.source}", next_ip=target)


def _exec_jcc(record: ObjectCodeRecord, labels: Mapping[str, int], taken: bool) -> ExecResult:
    target = _jump_target(record, labels)
    mnemonic = record.instruction.mnemonic.upper()
    if taken:
        return ExecResult(f"{mnemonic} taken: {record.source}", next_ip=target)
    return ExecResult(f"{mnemonic} not taken: {record.source}")


def exec_je(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    return _exec_jcc(record, labels, taken=cpu.get_flag("ZF") == 1)


def exec_jne(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    return _exec_jcc(record, labels, taken=cpu.get_flag("ZF") == 0)


def exec_call(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    target = _jump_target(record, labels)
    cpu.push(record.address + record.size)
    return ExecResult(f"CALL executed: {record.source}", next_ip=target)


def exec_ret(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    return_address = cpu.pop()
    return ExecResult("RET executed", next_ip=return_address)


def exec_push(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    _expect_operands(record, 1)
    cpu.push(_value_of(record.instruction.operands[0], cpu, labels))
    return ExecResult(f"PUSH executed: {record.source}")


def exec_pop(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    _expect_operands(record, 1)
    dest = _require_reg(record.instruction.operands[0], record)
    cpu.set_reg(dest, cpu.pop())
    return ExecResult(f"POP executed: {record.source}")


def exec_int(cpu: CPUState, record: ObjectCodeRecord, labels: Mapping[str, int]) -> ExecResult:
    vector = record.instruction.vector
    if vector is None:
        vector = record.bytes[1] if len(record.bytes) > 1 else 0
    if vector == DOS_INTERRUPT:
        # AH=4Ch terminates the program
        halt = cpu.get_reg("ah") == DOS_TERMINATE
        return ExecResult("INT 21h - DOS interrupt executed", halt=halt)
    return ExecResult(f"INT {vector:X}h executed")


register_instruction_impl(InstructionKind.MOV, exec_mov)
register_instruction_impl(InstructionKind.ADD, exec_add)
register_instruction_impl(InstructionKind.SUB, exec_sub)
register_instruction_impl(InstructionKind.CMP, exec_cmp)
register_instruction_impl(InstructionKind.JMP, exec_jmp)
register_instruction_impl(InstructionKind.JE, exec_je)
register_instruction_impl(InstructionKind.JNE, exec_jne)
register_instruction_impl(InstructionKind.CALL, exec_call)
register_instruction_impl(InstructionKind.RET, exec_ret)
register_instruction_impl(InstructionKind.INT, exec_int)
register_instruction_impl(InstructionKind.PUSH, exec_push)
register_instruction_impl(InstructionKind.POP, exec_pop)
