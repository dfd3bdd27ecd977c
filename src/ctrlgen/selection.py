"""
ctrlgen.selection

Narrow a full IR down to the identifiers one generation run asks for.

A selection names structs and defines directly, plain symbols (matched
against either kind), and command groups:

    {
      "structs": ["NV0073_CTRL_DP_LINK_CONFIG"],
      "defines": ["NV0073_CTRL_DP_MAX_LANES"],
      "cmds": {"0073": ["DP_AUXCH_CTRL", "SYSTEM_GET_NUM_HEADS"]}
    }

For group G and command S every definition whose name starts with
NV<G>_CTRL_CMD_<S> or NV<G>_CTRL_<S> is selected, along with the
NV<G>_CTRL_<S>_PARAMS struct and the structs its fields embed.

Requested names that are absent from the IR are skipped silently.
"""

from __future__ import annotations
import json
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from .ir import CType, Definition, DefinitionsIR, FieldKind, HWDefine, HWStruct, LayoutIR


class SelectionError(ValueError):
    pass


@dataclass
class WantedSelection:
    structs: list[str] = field(default_factory=list)
    cmds: dict[str, list[str]] = field(default_factory=dict)
    defines: list[str] = field(default_factory=list)
    symbols: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict) -> "WantedSelection":
        if not isinstance(d, dict):
            raise SelectionError("selection must be a table")

        def names(key):
            val = d.get(key, [])
            if not isinstance(val, list) or not all(isinstance(v, str) for v in val):
                raise SelectionError(f"{key}: expected a list of names")
            return list(val)

        cmds = d.get("cmds", {})
        if not isinstance(cmds, dict):
            raise SelectionError("cmds: expected a table of group -> commands")
        for group, suffixes in cmds.items():
            if not isinstance(suffixes, list) or not all(isinstance(s, str) for s in suffixes):
                raise SelectionError(f"cmds.{group}: expected a list of commands")
        return cls(
            structs=names("structs"),
            cmds={g: list(s) for g, s in cmds.items()},
            defines=names("defines"),
            symbols=names("symbols"),
        )


def load_selection(path: Path) -> WantedSelection:
    """Load a .json or .toml selection, or a text file with one name per line."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        try:
            return WantedSelection.from_dict(json.loads(text))
        except json.JSONDecodeError as e:
            raise SelectionError(f"{path}: {e}") from e
    if path.suffix == ".toml":
        try:
            return WantedSelection.from_dict(tomllib.loads(text))
        except tomllib.TOMLDecodeError as e:
            raise SelectionError(f"{path}: {e}") from e
    symbols = []
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            symbols.append(line)
    return WantedSelection(symbols=symbols)


@dataclass(frozen=True)
class Selected:
    name: str
    item: Union[Definition, HWDefine, HWStruct]


def cmd_candidates(prefix: str, group: str, suffix: str) -> tuple[str, str]:
    base = f"{prefix}{group}"
    return f"{base}_CTRL_CMD_{suffix}", f"{base}_CTRL_{suffix}"


def params_name(prefix: str, group: str, suffix: str) -> str:
    return f"{cmd_candidates(prefix, group, suffix)[1]}_PARAMS"


def expand_refs(root: str, refs: Callable[[str], Iterable[str]],
                depth: Optional[int] = 1) -> list[str]:
    """
    Structs reachable from `root` through struct-valued fields, level by
    level. With a finite depth names are repeated as often as they are
    referenced; depth None walks the full closure, each name once.
    """
    out: list[str] = []
    seen = {root}
    frontier = [root]
    level = 0
    while frontier and (depth is None or level < depth):
        nxt = []
        for name in frontier:
            for ref in refs(name):
                if depth is None:
                    if ref in seen:
                        continue
                    seen.add(ref)
                out.append(ref)
                nxt.append(ref)
        frontier = nxt
        level += 1
    return out


# ---------------------------------------------------------------------------
# layout IR

def select_layout(ir: LayoutIR, wanted: WantedSelection, cmd_prefix: str = "NV",
                  closure_depth: Optional[int] = 1) -> list[Selected]:
    def refs(name: str) -> list[str]:
        return [r for r in ir.structs[name].struct_refs() if r in ir.structs]

    out: list[Selected] = []
    for name in wanted.symbols:
        if name in ir.defines:
            out.append(Selected(name, ir.defines[name]))
        if name in ir.structs:
            out.append(Selected(name, ir.structs[name]))
    out.extend(Selected(n, ir.defines[n]) for n in wanted.defines if n in ir.defines)
    out.extend(Selected(n, ir.structs[n]) for n in wanted.structs if n in ir.structs)

    for group, suffixes in wanted.cmds.items():
        for suffix in suffixes:
            cands = cmd_candidates(cmd_prefix, group, suffix)
            for name in sorted(ir.defines):
                if name.startswith(cands):
                    out.append(Selected(name, ir.defines[name]))
            params = params_name(cmd_prefix, group, suffix)
            if params in ir.structs:
                out.append(Selected(params, ir.structs[params]))
                for ref in expand_refs(params, refs, closure_depth):
                    out.append(Selected(ref, ir.structs[ref]))
    return out


# ---------------------------------------------------------------------------
# definitions IR

_IDENT = re.compile(r"[A-Za-z_]\w*$")


def _definition_refs(ir: DefinitionsIR, name: str) -> list[str]:
    d = ir.types.get(name)
    if d is None or d.ctype != CType.STRUCT:
        return []
    out = []
    for f in d.fields:
        if f.fldtype != FieldKind.MEMBER:
            continue
        m = _IDENT.search(f.ftype.split("[")[0].strip())
        if m and m.group(0) != name:
            ref = ir.types.get(m.group(0))
            if ref is not None and ref.ctype == CType.STRUCT:
                out.append(m.group(0))
    return out


def select_definitions(ir: DefinitionsIR, wanted: WantedSelection, cmd_prefix: str = "NV",
                       closure_depth: Optional[int] = 1) -> list[Selected]:
    out: list[Selected] = []
    for name in [*wanted.symbols, *wanted.defines, *wanted.structs]:
        if name in ir.types:
            out.append(Selected(name, ir.types[name]))

    for group, suffixes in wanted.cmds.items():
        for suffix in suffixes:
            cands = cmd_candidates(cmd_prefix, group, suffix)
            for name in sorted(ir.types):
                if name.startswith(cands):
                    out.append(Selected(name, ir.types[name]))
            params = params_name(cmd_prefix, group, suffix)
            if params in ir.types:
                for ref in expand_refs(params, lambda n: _definition_refs(ir, n), closure_depth):
                    out.append(Selected(ref, ir.types[ref]))
    return out


def selected_names(items: Iterable[Selected]) -> list[str]:
    return [s.name for s in items]
