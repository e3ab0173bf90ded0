from __future__ import annotations

from typing import Iterable, List


BANNER_WIDTH = 62


def boxed(lines: Iterable[str]) -> List[str]:
    """Frame title lines in the double-line box used by the Borland banners."""
    rows = ["╔" + "═" * BANNER_WIDTH + "╗"]
    for line in lines:
        rows.append("║" + line.center(BANNER_WIDTH) + "║")
    rows.append("╚" + "═" * BANNER_WIDTH + "╝")
    return rows


def borland_banner(product: str, years: str, status: str) -> str:
    rows = boxed([product, f"Copyright (C) {years}", "Borland International"])
    rows.extend(["", status, ""])
    return "\n".join(rows)


def execution_banner() -> List[str]:
    return boxed(["Program Execution Results"]) + [""]


def indented(items: Iterable[str], prefix: str = "  ") -> List[str]:
    return [f"{prefix}{item}" for item in items]


def hex_word(value: int) -> str:
    return f"{value & 0xFFFF:04X}h"
