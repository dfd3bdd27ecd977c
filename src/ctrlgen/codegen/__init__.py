"""
Output targets.

    c       declaration header from the definitions document
    rust    byte accessors from the layout document
    python  byte accessors from the layout document
"""

from __future__ import annotations
from typing import Optional, Union

from ..ir import DefinitionsIR, LayoutIR
from ..selection import WantedSelection, select_definitions, select_layout
from .c import generate_c
from .common import GenerationError
from .python import generate_python
from .rust import generate_rust

# which IR document each target reads
TARGET_DOCUMENT = {
    "c": "definitions",
    "rust": "layout",
    "python": "layout",
}


def generate(target: str, ir: Union[DefinitionsIR, LayoutIR], wanted: WantedSelection,
             cmd_prefix: str = "NV", closure_depth: Optional[int] = 1) -> str:
    if target not in TARGET_DOCUMENT:
        raise GenerationError(f"unknown target {target!r}")
    if TARGET_DOCUMENT[target] == "definitions":
        if not isinstance(ir, DefinitionsIR):
            raise GenerationError(f"target {target} needs the definitions document")
        return generate_c(ir, select_definitions(ir, wanted, cmd_prefix, closure_depth))
    if not isinstance(ir, LayoutIR):
        raise GenerationError(f"target {target} needs the layout document")
    items = select_layout(ir, wanted, cmd_prefix, closure_depth)
    if target == "rust":
        return generate_rust(ir, items)
    return generate_python(ir, items)


__all__ = [
    "GenerationError",
    "TARGET_DOCUMENT",
    "generate",
    "generate_c",
    "generate_python",
    "generate_rust",
]
