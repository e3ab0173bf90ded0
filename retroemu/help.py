from __future__ import annotations

from typing import Dict, Optional


ASM_HELP = "\n".join(
    [
        "Available commands:",
        "  retroemu run asm <filename>      - Assemble and execute a file",
        "  retroemu compile asm <filename>  - Assemble only",
        "  retroemu sample asm <type>       - Create a sample program",
        "",
        "Sample types:",
        "  hello - Hello World program",
        "  add - Simple addition program",
        "  factorial - Factorial by repeated addition",
        "",
        "Supported directives:",
        "  .model, .stack, .data, .code, db/dw/dd, end",
        "",
        "Supported instructions:",
        "  mov, add, sub, cmp, jmp, je, jne, call, ret, int, push, pop",
    ]
)

PASCAL_HELP = "\n".join(
    [
        "Available commands:",
        "  retroemu run pascal <filename>      - Compile and execute a file",
        "  retroemu compile pascal <filename>  - Compile only",
        "  retroemu sample pascal <type>       - Create a sample program",
        "",
        "Sample types:",
        "  hello - Hello World program",
        "  factorial - Factorial calculation",
        "  calculator - Simple calculator",
        "",
        "Supported statements:",
        "  write, writeln, read, readln, if, while, for, repeat, case, assignment",
        "",
        "Supported types:",
        "  integer, real, boolean, char, string",
    ]
)

GENERAL_HELP = "\n".join(
    [
        "Available emulators:",
        "  asm - Turbo Assembler 3.0 (x86)",
        "  pascal - Turbo Pascal 7.0",
        "",
        "General commands:",
        "  retroemu run <emulator> <filename>      - Load, compile and execute a file",
        "  retroemu compile <emulator> <filename>  - Compile only",
        "  retroemu sample <emulator> <type>       - Create a sample program",
        "  retroemu help [emulator]                - Show emulator help",
        "  retroemu list                           - List workspace files",
    ]
)

HELP_TOPICS: Dict[str, Dict[str, str]] = {
    "asm": {"message": "Turbo Assembler 3.0 Help", "help": ASM_HELP},
    "pascal": {"message": "Turbo Pascal 7.0 Help", "help": PASCAL_HELP},
}


def help_for(engine: Optional[str]) -> Dict[str, str]:
    return HELP_TOPICS.get(engine or "", {"message": "Emulation Manager Help", "help": GENERAL_HELP})
