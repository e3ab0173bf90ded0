from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List


REGISTER_ORDER = [
    "ax",
    "bx",
    "cx",
    "dx",
    "si",
    "di",
    "sp",
    "bp",
    "cs",
    "ds",
    "es",
    "ss",
    "ip",
    "flags",
]

# 8-bit halves: name -> (word register, shift)
BYTE_REGISTERS = {
    "al": ("ax", 0),
    "ah": ("ax", 8),
    "bl": ("bx", 0),
    "bh": ("bx", 8),
    "cl": ("cx", 0),
    "ch": ("cx", 8),
    "dl": ("dx", 0),
    "dh": ("dx", 8),
}

FLAG_BITS = {"CF": 0, "ZF": 6, "SF": 7, "OF": 11}

LOAD_ADDRESS = 0x100
STACK_TOP = 0xFFFE
MEMORY_SIZE = 0x10000
DEFAULT_SEGMENT = 0x1000


def clamp_u16(value: int) -> int:
    return value & 0xFFFF


@dataclass
class CPUState:
    registers: Dict[str, int] = field(default_factory=dict)
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))

    def __post_init__(self) -> None:
        if not self.registers:
            self.reset()

    def reset(self) -> None:
        self.registers = {name: 0 for name in REGISTER_ORDER}
        for segment in ("cs", "ds", "es", "ss"):
            self.registers[segment] = DEFAULT_SEGMENT
        self.registers["sp"] = STACK_TOP
        self.registers["ip"] = LOAD_ADDRESS
        self.memory = bytearray(MEMORY_SIZE)

    def get_reg(self, name: str) -> int:
        name = name.lower()
        if name in BYTE_REGISTERS:
            word, shift = BYTE_REGISTERS[name]
            return (self.registers[word] >> shift) & 0xFF
        return self.registers[name]

    def set_reg(self, name: str, value: int) -> None:
        name = name.lower()
        if name in BYTE_REGISTERS:
            word, shift = BYTE_REGISTERS[name]
            keep = self.registers[word] & ~(0xFF << shift) & 0xFFFF
            self.registers[word] = keep | ((value & 0xFF) << shift)
            return
        self.registers[name] = clamp_u16(value)

    def register_width(self, name: str) -> int:
        return 8 if name.lower() in BYTE_REGISTERS else 16

    def get_flag(self, flag: str) -> int:
        return (self.registers["flags"] >> FLAG_BITS[flag]) & 1

    def set_flag(self, flag: str, value: bool) -> None:
        bit = 1 << FLAG_BITS[flag]
        if value:
            self.registers["flags"] |= bit
        else:
            self.registers["flags"] &= ~bit & 0xFFFF

    def read_word(self, addr: int) -> int:
        addr = clamp_u16(addr)
        return self.memory[addr] | (self.memory[clamp_u16(addr + 1)] << 8)

    def write_word(self, addr: int, value: int) -> None:
        addr = clamp_u16(addr)
        self.memory[addr] = value & 0xFF
        self.memory[clamp_u16(addr + 1)] = (value >> 8) & 0xFF

    def push(self, value: int) -> None:
        sp = clamp_u16(self.registers["sp"] - 2)
        self.registers["sp"] = sp
        self.write_word(sp, value)

    def pop(self) -> int:
        sp = self.registers["sp"]
        value = self.read_word(sp)
        self.registers["sp"] = clamp_u16(sp + 2)
        return value

    def dump_memory(self, length: int) -> List[int]:
        return list(self.memory[:length])
