from __future__ import annotations

import re
from typing import Callable, Dict, List, Optional, Tuple

from retroemu.asm.model import (
    Directive,
    Immediate,
    Instruction,
    InstructionKind,
    LabelRef,
    Operand,
    Register,
    Unsupported,
)
from retroemu.tokens import Token


WORD_REGISTERS = {"ax", "bx", "cx", "dx", "si", "di", "sp", "bp"}
SEGMENT_REGISTERS = {"cs", "ds", "es", "ss"}
BYTE_REGISTERS = {"ah", "al", "bh", "bl", "ch", "cl", "dh", "dl"}
REGISTER_NAMES = WORD_REGISTERS | SEGMENT_REGISTERS | BYTE_REGISTERS

# mnemonic -> (opcode, declared size)
MNEMONIC_TABLE: Dict[str, Tuple[int, int]] = {
    "mov": (0x88, 2),
    "add": (0x00, 2),
    "sub": (0x28, 2),
    "cmp": (0x38, 2),
    "jmp": (0xE9, 3),
    "je": (0x74, 2),
    "jne": (0x75, 2),
    "call": (0xE8, 3),
    "ret": (0xC3, 1),
    "int": (0xCD, 2),
    "push": (0x50, 1),
    "pop": (0x58, 1),
}

# data directive -> bytes per item
DATA_DIRECTIVES = {"db": 1, "dw": 2, "dd": 4}

LABEL_RE = re.compile(r"^([A-Za-z_.$@?][A-Za-z0-9_.$@?]*)\s*:")
IDENT_RE = re.compile(r"[A-Za-z_?][A-Za-z0-9_?]*")
HEX_SUFFIX_RE = re.compile(r"[0-9][0-9A-Fa-f]*[hH]")
HEX_PREFIX_RE = re.compile(r"0[xX][0-9A-Fa-f]+")
# prefix and suffix included
MAX_IMMEDIATE_DIGITS = 32
DUP_RE = re.compile(r"^(\w+)\s+dup\s*\((.*)\)$", re.IGNORECASE)


def strip_comment(line: str) -> str:
    quote: str | None = None
    for index, ch in enumerate(line):
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == ";":
            return line[:index]
    return line


def split_label(line: str) -> Tuple[Optional[str], str]:
    """Split a leading ``name:`` prefix off a line."""
    working = line.strip()
    match = LABEL_RE.match(working)
    if not match:
        return None, working
    return match.group(1).lower(), working[match.end():].strip()


def _split_args(text: str) -> List[str]:
    items: List[str] = []
    current: List[str] = []
    quote: str | None = None
    depth = 0
    for ch in text:
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
            current.append(ch)
            continue
        if ch in "()":
            depth += 1 if ch == "(" else -1
        if ch == "," and depth <= 0:
            item = "".join(current).strip()
            if item:
                items.append(item)
            current = []
            continue
        current.append(ch)
    item = "".join(current).strip()
    if item:
        items.append(item)
    return items


def tokenize_line(line: str, line_no: int) -> List[Token]:
    """Split one source line into label, mnemonic and operand tokens."""
    tokens: List[Token] = []
    label, rest = split_label(strip_comment(line))
    if label:
        tokens.append(Token("label", label, line_no))
    if not rest:
        return tokens
    parts = rest.split(None, 1)
    tokens.append(Token("mnemonic", parts[0].lower(), line_no))
    if len(parts) > 1:
        for item in _split_args(parts[1]):
            tokens.append(Token("operand", item, line_no))
    return tokens


def parse_immediate(raw: str) -> Optional[Immediate]:
    text = raw.strip()
    if len(text) > MAX_IMMEDIATE_DIGITS:
        return None
    if re.fullmatch(r"[0-9]+", text):
        return Immediate(int(text, 10))
    if HEX_SUFFIX_RE.fullmatch(text):
        return Immediate(int(text[:-1], 16), radix=16)
    if HEX_PREFIX_RE.fullmatch(text):
        return Immediate(int(text, 16), radix=16)
    return None


def parse_operand(raw: str) -> Operand:
    text = raw.strip()
    lowered = text.lower()
    if lowered in REGISTER_NAMES:
        return Register(lowered)
    immediate = parse_immediate(text)
    if immediate is not None:
        return immediate
    if IDENT_RE.fullmatch(text):
        return LabelRef(lowered)
    return Unsupported(text)


def parse_directive(line: str, line_no: int = 0) -> Optional[Directive]:
    trimmed = strip_comment(line).strip().lower()
    if not trimmed:
        return None
    parts = trimmed.split()
    head = parts[0]
    value = " ".join(parts[1:])
    if head in (".model", ".stack"):
        return Directive(head[1:], value, line_no)
    if head in (".code", ".data"):
        return Directive(head[1:], "", line_no)
    if head in DATA_DIRECTIVES:
        return Directive("define", value, line_no, unit=DATA_DIRECTIVES[head])
    if len(parts) >= 2 and parts[1] in DATA_DIRECTIVES:
        return Directive("define", " ".join(parts[2:]), line_no, symbol=head, unit=DATA_DIRECTIVES[parts[1]])
    if head == "end":
        return Directive("end", value, line_no)
    return None


def data_size(directive: Directive) -> int:
    """Bytes reserved by a ``db``/``dw``/``dd`` definition."""
    return sum(_item_size(item, directive.unit) for item in _split_args(directive.value))


def _item_size(item: str, unit: int) -> int:
    if len(item) >= 2 and item[0] in "'\"" and item[-1] == item[0]:
        # each character of a byte string takes one byte
        return max(len(item) - 2, 1) if unit == 1 else unit
    match = DUP_RE.match(item)
    if match:
        count = parse_immediate(match.group(1))
        inner = sum(_item_size(part, unit) for part in _split_args(match.group(2)))
        return (count.value if count else 0) * inner
    return unit


def _mov_to(register: str) -> Callable[[Tuple[Operand, ...]], bool]:
    def predicate(operands: Tuple[Operand, ...]) -> bool:
        return bool(operands) and operands[0] == Register(register)

    return predicate


def _mov_ax_data(operands: Tuple[Operand, ...]) -> bool:
    return (
        len(operands) == 2
        and operands[0] == Register("ax")
        and isinstance(operands[1], Unsupported)
        and operands[1].text.lower() == "@data"
    )


def _mov_ds_ax(operands: Tuple[Operand, ...]) -> bool:
    return len(operands) == 2 and operands[0] == Register("ds") and operands[1] == Register("ax")


def _int_dos(operands: Tuple[Operand, ...]) -> bool:
    return len(operands) == 1 and operands[0] == Immediate(0x21, radix=16)


# First match wins: (kind, predicate, opcode, size)
OPERAND_OVERRIDES = [
    (InstructionKind.MOV, _mov_ax_data, 0xB8, 3),
    (InstructionKind.MOV, _mov_ds_ax, 0x8E, 2),
    (InstructionKind.MOV, _mov_to("ah"), 0xB4, 2),
    (InstructionKind.MOV, _mov_to("dx"), 0xBA, 3),
    (InstructionKind.INT, _int_dos, 0xCD, 2),
]


def parse_instruction(line: str, line_no: int = 0) -> Optional[Instruction]:
    tokens = [tok for tok in tokenize_line(line, line_no) if tok.kind != "label"]
    if not tokens or tokens[0].kind != "mnemonic":
        return None
    mnemonic = tokens[0].text
    if mnemonic not in MNEMONIC_TABLE:
        return None
    kind = InstructionKind(mnemonic)
    operands = tuple(parse_operand(tok.text) for tok in tokens[1:])
    opcode, size = MNEMONIC_TABLE[mnemonic]
    for override_kind, predicate, override_opcode, override_size in OPERAND_OVERRIDES:
        if override_kind is kind and predicate(operands):
            opcode, size = override_opcode, override_size
            break
    vector = None
    if kind is InstructionKind.INT and operands and isinstance(operands[0], Immediate):
        vector = operands[0].value & 0xFF
    return Instruction(
        line_no=line_no,
        text=line.strip(),
        kind=kind,
        operands=operands,
        opcode=opcode,
        size=size,
        vector=vector,
    )
