import pytest

from retroemu.asm.model import Immediate, InstructionKind, LabelRef, Register, Unsupported
from retroemu.asm.parser import (
    data_size,
    parse_directive,
    parse_immediate,
    parse_instruction,
    parse_operand,
    split_label,
    strip_comment,
    tokenize_line,
)


def test_strip_comment_respects_quotes():
    assert strip_comment("mov ax, 1 ; load").strip() == "mov ax, 1"
    assert strip_comment("msg db 'a;b', '$' ; text").strip() == "msg db 'a;b', '$'"


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("start:", ("start", "")),
        ("Loop: jmp loop", ("loop", "jmp loop")),
        ("mov ax, bx", (None, "mov ax, bx")),
    ],
)
def test_split_label(line, expected):
    assert split_label(line) == expected


def test_tokenize_line_kinds():
    tokens = tokenize_line("again: ADD ax, 5 ; bump", 7)
    assert [(tok.kind, tok.text) for tok in tokens] == [
        ("label", "again"),
        ("mnemonic", "add"),
        ("operand", "ax"),
        ("operand", "5"),
    ]
    assert all(tok.line == 7 for tok in tokens)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("42", Immediate(42)),
        ("21h", Immediate(0x21, radix=16)),
        ("0x4C", Immediate(0x4C, radix=16)),
        ("0dh", Immediate(0x0D, radix=16)),
        ("label", None),
        ("٣", None),
        ("9" * 5000, None),
    ],
)
def test_parse_immediate(text, expected):
    assert parse_immediate(text) == expected


def test_parse_operand_variants():
    assert parse_operand("AX") == Register("ax")
    assert parse_operand("ah") == Register("ah")
    assert parse_operand("10") == Immediate(10)
    assert parse_operand("Done") == LabelRef("done")
    assert parse_operand("@data") == Unsupported("@data")
    assert parse_operand("offset msg") == Unsupported("offset msg")
    assert parse_operand("[bx]") == Unsupported("[bx]")


@pytest.mark.parametrize(
    ("line", "name", "symbol"),
    [
        (".model small", "model", None),
        (".stack 100h", "stack", None),
        (".code", "code", None),
        (".DATA", "data", None),
        ("message db 'Hi', '$'", "define", "message"),
        ("dw 10", "define", None),
        ("end", "end", None),
    ],
)
def test_parse_directive(line, name, symbol):
    directive = parse_directive(line, 3)
    assert directive is not None
    assert directive.name == name
    assert directive.symbol == symbol
    assert directive.line_no == 3


def test_parse_directive_rejects_instructions():
    assert parse_directive("mov ax, bx") is None
    assert parse_directive("   ") is None


@pytest.mark.parametrize(
    ("line", "opcode", "size"),
    [
        ("mov ax, @data", 0xB8, 3),
        ("mov ds, ax", 0x8E, 2),
        ("mov ah, 09h", 0xB4, 2),
        ("mov dx, offset msg", 0xBA, 3),
        ("int 21h", 0xCD, 2),
        ("mov bx, cx", 0x88, 2),
        ("add ax, 1", 0x00, 2),
        ("jmp done", 0xE9, 3),
        ("je done", 0x74, 2),
        ("jne done", 0x75, 2),
        ("call proc1", 0xE8, 3),
        ("ret", 0xC3, 1),
        ("push ax", 0x50, 1),
        ("pop bx", 0x58, 1),
    ],
)
def test_parse_instruction_opcode_and_size(line, opcode, size):
    instr = parse_instruction(line, 1)
    assert instr is not None
    assert instr.opcode == opcode
    assert instr.size == size


def test_parse_instruction_sets_interrupt_vector():
    instr = parse_instruction("int 10h", 4)
    assert instr.kind is InstructionKind.INT
    assert instr.vector == 0x10
    assert instr.line_no == 4


def test_parse_instruction_skips_leading_label():
    instr = parse_instruction("top: sub cx, 1")
    assert instr.kind is InstructionKind.SUB
    assert instr.operands == (Register("cx"), Immediate(1))


@pytest.mark.parametrize("line", ["mul cx", "foo bar", ".model small", "message db 1"])
def test_parse_instruction_unknown(line):
    assert parse_instruction(line) is None


@pytest.mark.parametrize(
    ("line", "size"),
    [
        ("msg db 'Hello, World!', 0dh, 0ah, '$'", 16),
        ("db 1, 2, 3", 3),
        ("table dw 1, 2, 3", 6),
        ("big dd 0", 4),
        ("word dw 'ab'", 2),
        ("buf db 10 dup(0)", 10),
        ("grid dw 3 dup(1, 2)", 12),
    ],
)
def test_data_size(line, size):
    assert data_size(parse_directive(line)) == size
