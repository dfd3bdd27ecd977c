"""Pieces shared by every output target."""

from __future__ import annotations
import logging
import re

from ..ir import HWStruct, HWStructField

logger = logging.getLogger("ctrlgen.codegen")

# widths an accessor can read or write in one piece
LANES = (8, 16, 32, 64)

_INT_LITERAL = re.compile(r"\b(0[xX][0-9A-Fa-f]+|\d+)([uUlL]+)\b")


class GenerationError(RuntimeError):
    pass


def parse_literal(text: str) -> tuple[int, str]:
    """
    Strip the integer suffixes from a constant value, which may be a single
    literal or a shift expression such as "0x1U<<3". Returns (bits, text);
    an LL / ULL suffix on any operand selects 64 bits, otherwise 32.
    """
    wide = False

    def strip(m):
        nonlocal wide
        if "ll" in m.group(2).lower():
            wide = True
        return m.group(1)

    stripped = _INT_LITERAL.sub(strip, text)
    return (64 if wide else 32), stripped


def constant_items(name: str, vals: list[str]) -> list[tuple[str, str]]:
    """
    One constant for a single value or an equal pair, NAME_A / NAME_B for
    an unequal pair.
    """
    if len(vals) == 1:
        return [(name, vals[0])]
    if len(vals) == 2:
        if vals[0] == vals[1]:
            return [(name, vals[0])]
        return [(f"{name}_A", vals[0]), (f"{name}_B", vals[1])]
    raise GenerationError(f"{name}: constant with {len(vals)} values")


def accessor_name(name: str, reserved=()) -> str:
    if name == "type" or name in reserved:
        return "r" + name
    return name


def generatable_fields(struct_name: str, hw: HWStruct) -> list[HWStructField]:
    """
    Fields an accessor can be generated for. Unsupported fields (width 0)
    are dropped silently; widths outside the byte lanes, unaligned starts
    and fields past the end of the struct are dropped with a warning.
    """
    out = []
    for fld in hw.fields:
        if fld.size == 0:
            continue
        if fld.start % 8:
            logger.warning("%s.%s: starts at bit %d, not byte aligned; skipped",
                           struct_name, fld.name, fld.start)
            continue
        if fld.is_struct:
            if fld.size % 8:
                logger.warning("%s.%s: struct of %d bits; skipped",
                               struct_name, fld.name, fld.size)
                continue
        elif fld.size not in LANES:
            logger.warning("%s.%s: %d-bit field not supported; skipped",
                           struct_name, fld.name, fld.size)
            continue
        if fld.start + fld.extent_bits > hw.total_size:
            logger.warning("%s.%s: ends past the struct (%d > %d bits); skipped",
                           struct_name, fld.name, fld.start + fld.extent_bits, hw.total_size)
            continue
        out.append(fld)
    return out


class Emitter:
    """
    Collects generated lines. Each top-level name is emitted once; a name
    selected a second time is skipped.
    """

    def __init__(self):
        self.lines: list[str] = []
        self._emitted: set[str] = set()

    def line(self, text: str = "") -> None:
        self.lines.append(text)

    def claim(self, name: str) -> bool:
        if name in self._emitted:
            logger.debug("%s already emitted", name)
            return False
        self._emitted.add(name)
        return True

    def text(self) -> str:
        return "\n".join(self.lines) + "\n"
