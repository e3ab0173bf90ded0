import pytest

from retroemu.asm.assembler import Assembler, encode_instruction
from retroemu.asm.cpu import LOAD_ADDRESS, STACK_TOP
from retroemu.asm.instructions import INSTRUCTION_HANDLERS
from retroemu.asm.model import InstructionKind
from retroemu.asm.parser import parse_instruction


HELLO = """\
.model small
.stack 100h
.data
msg db 'Hi',0dh,0ah,'$'
.code
mov ax, @data
mov ds, ax
mov ah, 09h
mov dx, offset msg
int 21h
mov ah, 4ch
int 21h
end
"""


def _run(source, **kwargs):
    asm = Assembler(**kwargs)
    result = asm.assemble(source)
    return result, asm.execute(result)


def test_hello_program_emits_one_record_per_instruction(assembler):
    result = assembler.assemble(HELLO)

    assert result.success
    assert result.errors == ()
    assert len(result.object_code) == 7
    assert [rec.address for rec in result.object_code] == [0x100, 0x103, 0x105, 0x107, 0x10A, 0x10C, 0x10E]
    assert [rec.line for rec in result.object_code] == list(range(6, 13))
    assert result.code_size == 16


def test_addresses_strictly_increase_from_load_address(assembler):
    result = assembler.assemble(HELLO)
    addresses = [rec.address for rec in result.object_code]
    assert addresses[0] == LOAD_ADDRESS
    assert all(a < b for a, b in zip(addresses, addresses[1:]))
    for prev, rec in zip(result.object_code, result.object_code[1:]):
        assert rec.address == prev.address + prev.size


def test_assemble_is_deterministic(assembler):
    assert assembler.assemble(HELLO) == assembler.assemble(HELLO)
    assert Assembler().assemble(HELLO) == assembler.assemble(HELLO)


def test_label_addresses_match_records(assembler):
    source = """\
start: mov ax, 1
    jmp finish
middle:
    add ax, 2
finish: ret
"""
    result = assembler.assemble(source)
    assert result.labels == {"start": 0x100, "middle": 0x105, "finish": 0x107}
    for name, address in result.labels.items():
        record = result.record_at(address)
        assert record is not None, name
        assert record.address == address


def test_forward_label_is_encoded_little_endian(assembler):
    result = assembler.assemble("jmp target\nmov ax, 1\ntarget: ret\n")
    jump = result.object_code[0]
    assert jump.bytes == (0xE9, 0x05, 0x01)
    assert result.labels["target"] == 0x105


def test_encoding_rules():
    labels = {}
    assert encode_instruction(parse_instruction("mov ax, @data"), labels) == (0xB8, 0x00, 0x00)
    assert encode_instruction(parse_instruction("mov ah, 09h"), labels) == (0xB4, 0x00, 0x00)
    assert encode_instruction(parse_instruction("add ax, 300"), labels) == (0x00, 0x00, 0x2C, 0x01)
    assert encode_instruction(parse_instruction("ret"), labels) == (0xC3,)
    assert encode_instruction(parse_instruction("push ax"), labels) == (0x50,)


def test_unknown_line_is_collected_error(assembler):
    result = assembler.assemble("mov ax, 1\nfrobnicate ax\nmul cx\n")
    assert not result.success
    assert result.errors == (
        "Line 2: Unknown instruction or directive",
        "Line 3: Unknown instruction or directive",
    )
    assert len(result.object_code) == 1


def test_duplicate_label_is_an_error(assembler):
    result = assembler.assemble("here: mov ax, 1\nHERE: ret\n")
    assert not result.success
    assert result.errors == ("Line 2: Duplicate label 'here'",)
    assert result.labels["here"] == 0x100


def test_warnings_for_undefined_symbol_and_missing_end(assembler):
    result = assembler.assemble("jmp nowhere\n")
    assert result.success
    assert result.warnings == ("Line 1: Undefined symbol 'nowhere'", "No END directive found")


def test_execute_hello_program():
    result, run = _run(HELLO)

    assert run.success
    assert run.instructions_executed == 7
    assert not run.step_limit_reached
    assert run.output == [
        "MOV executed: mov ax, @data",
        "MOV executed: mov ds, ax",
        "MOV executed: mov ah, 09h",
        "MOV executed: mov dx, offset msg",
        "INT 21h - DOS interrupt executed",
        "MOV executed: mov ah, 4ch",
        "INT 21h - DOS interrupt executed",
    ]
    assert run.registers["ds"] == 0x1000
    assert run.registers["ax"] == 0x4C00


def test_mov_add_sub_effects():
    _, run = _run("mov ax, 5\nmov bx, 3\nadd ax, bx\nsub ax, 1\nmov cl, 200\nend\n")
    assert run.registers["ax"] == 7
    assert run.registers["bx"] == 3
    assert run.registers["cx"] == 200
    assert run.output[2] == "ADD executed: add ax, bx"


def test_sub_wraps_and_sets_flags():
    _, run = _run("mov ax, 0\nsub ax, 1\n")
    assert run.registers["ax"] == 0xFFFF
    assert run.registers["flags"] & 0x1  # CF
    assert run.registers["flags"] & 0x80  # SF


def test_infinite_loop_hits_step_limit():
    _, run = _run("loop: jmp loop\n")
    assert run.success
    assert run.step_limit_reached
    assert run.instructions_executed == 1000
    assert run.output[-1] == "Execution halted: step limit of 1000 instructions reached"


def test_step_limit_is_configurable():
    _, run = _run("spin: jmp spin\n", step_limit=25)
    assert run.instructions_executed == 25
    assert run.step_limit_reached


def test_ret_pops_stack():
    _, run = _run("ret\n")
    assert run.output == ["RET executed"]
    assert run.registers["sp"] == (STACK_TOP + 2) & 0xFFFF
    assert run.instructions_executed == 1


def test_call_and_ret_round_trip():
    source = """\
    call helper
    mov bx, 2
    jmp done
helper:
    mov ax, 1
    ret
done:
"""
    _, run = _run(source)
    assert run.registers["ax"] == 1
    assert run.registers["bx"] == 2
    assert run.registers["sp"] == STACK_TOP
    assert run.instructions_executed == 5


@pytest.mark.parametrize(("value", "expected_bx"), [(3, 0), (4, 1)])
def test_cmp_and_je(value, expected_bx):
    source = f"mov ax, {value}\ncmp ax, 3\nje equal\nmov bx, 1\nequal: mov cx, 9\n"
    _, run = _run(source)
    assert run.registers["bx"] == expected_bx
    assert run.registers["cx"] == 9


def test_jne_loop_counts_down():
    source = "mov cx, 3\nagain: add ax, 2\nsub cx, 1\ncmp cx, 0\njne again\n"
    _, run = _run(source)
    assert run.registers["ax"] == 6
    assert run.registers["cx"] == 0
    assert run.output.count("JNE taken: jne again") == 2
    assert run.output[-1] == "JNE not taken: jne again"


def test_push_pop():
    _, run = _run("mov ax, 7\npush ax\npop bx\n")
    assert run.registers["bx"] == 7
    assert run.registers["sp"] == STACK_TOP


def test_handler_error_becomes_trace_line():
    _, run = _run("mov 5, ax\nmov bx, 1\n")
    assert run.success
    assert run.output[0] == "Error at line 1: Unsupported operand for MOV: 5"
    assert run.registers["bx"] == 1


def test_missing_handler_reports_unknown_instruction():
    INSTRUCTION_HANDLERS.pop(InstructionKind.RET)
    _, run = _run("ret\nmov ax, 1\n")
    assert run.output[0] == "Unknown instruction: ret"
    assert run.registers["ax"] == 1


def test_execute_failed_assembly_reports_failure(assembler):
    result = assembler.assemble("bogus\n")
    run = assembler.execute(result)
    assert not run.success
    assert run.output == ["Program was not assembled successfully"]
    assert run.instructions_executed == 0


def test_execute_uses_fresh_cpu(assembler):
    result = assembler.assemble("add ax, 1\n")
    first = assembler.execute(result)
    second = assembler.execute(result)
    assert first.registers["ax"] == second.registers["ax"] == 1


def test_display_results_listing(assembler):
    text = assembler.display_results(assembler.assemble(HELLO))
    assert "Turbo Assembler 3.0" in text
    assert "Assembly completed successfully." in text
    assert "Object code size: 16 bytes" in text
    assert "  0100: B8 00 00  ; mov ax, @data" in text
    assert "  010A: CD 00  ; int 21h" in text


def test_display_results_errors(assembler):
    text = assembler.display_results(assembler.assemble("nope\n"))
    assert "Assembly failed with errors:" in text
    assert "  Line 1: Unknown instruction or directive" in text


def test_display_execution_results(assembler):
    run = assembler.execute(assembler.assemble(HELLO))
    text = assembler.display_execution_results(run)
    assert "Program Execution Results" in text
    assert "  AX: 4C00h" in text
    assert "  IP: 0110h" in text
    assert "  INT 21h - DOS interrupt executed" in text
    assert "Instructions executed: 7" in text


def test_data_definitions_get_offsets_in_declaration_order(assembler):
    source = """\
.data
greeting db 'Hi, there$'
count dw 1, 2, 3
buffer db 4 dup(0)
last dd 0
.code
mov dx, offset count
mov bx, offset last
end
"""
    result = assembler.assemble(source)
    assert result.success
    assert result.data_symbols == {"greeting": 0, "count": 10, "buffer": 16, "last": 20}
    assert result.labels == {}
    assert result.code_size == 5


def test_offset_resolves_data_symbol():
    source = ".data\nfirst db 'abc'\nsecond db 'de$'\n.code\nmov dx, offset second\nmov ax, offset first\n"
    _, run = _run(source)
    assert run.registers["dx"] == 3
    assert run.registers["ax"] == 0


def test_data_symbol_clashing_with_label_is_an_error(assembler):
    result = assembler.assemble("msg: mov ax, 1\nmsg db 'x'\n")
    assert not result.success
    assert result.errors == ("Line 2: Duplicate symbol 'msg'",)


def test_display_results_lists_data_symbols(assembler):
    text = assembler.display_results(assembler.assemble(HELLO))
    assert "Data:" in text
    assert "  msg              0000" in text
