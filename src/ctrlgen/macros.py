"""
ctrlgen.macros

Classify the token sequence of an object-like macro definition. Only the
handful of shapes that appear in control headers are recognised; anything
else is dropped.

    NAME v                      -> v
    NAME ( v )                  -> v
    NAME a : b                  -> (a, b)
    NAME ( x << y )             -> "x<<y"
    NAME ( ( x << y ) * z )     -> "(x<<y)*z"
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MacroValue:
    vals: tuple[str, ...]

    @property
    def is_range(self) -> bool:
        return len(self.vals) == 2


def is_reserved_name(name: str) -> bool:
    return name.startswith("__")


def _match(tokens: Sequence[str], pattern: Sequence[Optional[str]]) -> bool:
    """None in the pattern matches any token."""
    return len(tokens) == len(pattern) and all(
        p is None or t == p for t, p in zip(tokens, pattern)
    )


def classify_macro(tokens: Sequence[str]) -> Optional[MacroValue]:
    """Classify macro tokens (token 0 is the macro name)."""
    n = len(tokens)
    if n == 2:
        return MacroValue((tokens[1],))
    if n == 4:
        if tokens[1] == "(" and tokens[3] == ")":
            return MacroValue((tokens[2],))
        if tokens[2] == ":":
            return MacroValue((tokens[1], tokens[3]))
    elif n == 6:
        if _match(tokens, (None, "(", None, "<<", None, ")")):
            return MacroValue((f"{tokens[2]}<<{tokens[4]}",))
    elif n == 10:
        if _match(tokens, (None, "(", "(", None, "<<", None, ")", "*", None, ")")):
            return MacroValue((f"({tokens[3]}<<{tokens[5]})*{tokens[8]}",))

    if tokens:
        logger.debug("dropping macro %s (%d tokens)", tokens[0], n)
    return None
