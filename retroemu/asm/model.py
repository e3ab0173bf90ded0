from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


class InstructionKind(enum.Enum):
    MOV = "mov"
    ADD = "add"
    SUB = "sub"
    CMP = "cmp"
    JMP = "jmp"
    JE = "je"
    JNE = "jne"
    CALL = "call"
    RET = "ret"
    INT = "int"
    PUSH = "push"
    POP = "pop"


@dataclass(frozen=True)
class Register:
    name: str


@dataclass(frozen=True)
class Immediate:
    value: int
    radix: int = 10


@dataclass(frozen=True)
class LabelRef:
    name: str


@dataclass(frozen=True)
class Unsupported:
    text: str


Operand = Register | Immediate | LabelRef | Unsupported


@dataclass(frozen=True)
class Directive:
    name: str  # model, code, data, stack, define, end
    value: str = ""
    line_no: int = 0
    symbol: Optional[str] = None
    unit: int = 0  # bytes per item for define


@dataclass(frozen=True)
class Instruction:
    line_no: int
    text: str
    kind: InstructionKind
    operands: Tuple[Operand, ...]
    opcode: int
    size: int
    vector: Optional[int] = None

    @property
    def mnemonic(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class ObjectCodeRecord:
    address: int
    bytes: Tuple[int, ...]
    source: str
    line: int
    size: int
    instruction: Instruction

    def hex_bytes(self) -> str:
        return " ".join(f"{byte:02X}" for byte in self.bytes)


@dataclass(frozen=True)
class AssemblyResult:
    success: bool
    object_code: Tuple[ObjectCodeRecord, ...]
    errors: Tuple[str, ...]
    warnings: Tuple[str, ...]
    labels: Dict[str, int] = field(default_factory=dict)
    data_symbols: Dict[str, int] = field(default_factory=dict)

    @property
    def symbols(self) -> Dict[str, int]:
        """Code labels and data offsets in one table."""
        return {**self.data_symbols, **self.labels}

    def record_at(self, address: int) -> Optional[ObjectCodeRecord]:
        for record in self.object_code:
            if record.address == address:
                return record
        return None

    @property
    def code_size(self) -> int:
        return sum(record.size for record in self.object_code)


@dataclass(frozen=True)
class AsmExecutionResult:
    success: bool
    registers: Dict[str, int]
    memory: List[int]
    output: List[str]
    instructions_executed: int
    step_limit_reached: bool = False
