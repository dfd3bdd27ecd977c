"""
ctrlgen.codegen.c

Declaration-oriented C header. Every emitted name carries the IR version
as a suffix so headers for several versions can be included side by side.
"""

from __future__ import annotations
import re

from ..config import SPECIAL_TYPES
from ..ir import CType, Definition, DefinitionsIR, FieldKind, StructField, version_suffix
from ..selection import Selected
from .common import Emitter, GenerationError, constant_items

C_BUILTIN_WORDS = {
    "void", "char", "short", "int", "long", "float", "double",
    "signed", "unsigned", "_Bool",
}

_LAST_IDENT = re.compile(r"([A-Za-z_]\w*)[\s*]*$")

INDENT = "    "


def versioned_type(ctype: str, ver: str) -> str:
    """
    Append the version suffix to the type name in a C type spelling.
    Builtin spellings ("short", "unsigned int") are left alone, except a
    lone special type such as "int" which the header aliases.
    """
    ctype = ctype.strip()
    m = _LAST_IDENT.search(ctype)
    if m is None:
        return ctype
    word = m.group(1)
    if word in C_BUILTIN_WORDS and (word not in SPECIAL_TYPES or " " in ctype):
        return ctype
    return f"{ctype[:m.start(1)]}{m.group(1)}_{ver}{ctype[m.end(1):]}"


def _emit_define(em: Emitter, ver: str, name: str, d: Definition) -> None:
    for cname, val in constant_items(name, d.vals):
        em.line(f"#define {cname}_{ver} {val}")


def _field_line(f: StructField, ver: str) -> str:
    ftype = versioned_type(f.ftype.split("[")[0], ver)
    decl = f"{f.name}[{f.size}]" if f.is_array else f.name
    if f.is_aligned:
        decl += f" __attribute__((aligned({f.alignment})))"
    return f"{ftype}    {decl};"


def _emit_struct(em: Emitter, ver: str, name: str, d: Definition) -> None:
    em.line(f"typedef struct {name}_{ver} {{")
    open_blocks: list[FieldKind] = []
    for f in d.fields:
        indent = INDENT * (len(open_blocks) + 1)
        if f.fldtype == FieldKind.MEMBER:
            em.line(indent + _field_line(f, ver))
        elif f.fldtype in (FieldKind.UNION_START, FieldKind.STRUCT_START):
            em.line(indent + ("union {" if f.fldtype == FieldKind.UNION_START else "struct {"))
            open_blocks.append(f.fldtype)
        else:
            want = FieldKind.UNION_START if f.fldtype == FieldKind.UNION_END else FieldKind.STRUCT_START
            if not open_blocks or open_blocks.pop() != want:
                raise GenerationError(f"{name}: unbalanced {f.fldtype.value} marker")
            indent = INDENT * (len(open_blocks) + 1)
            em.line(indent + (f"}} {f.name};" if f.name else "};"))
    if open_blocks:
        raise GenerationError(f"{name}: {len(open_blocks)} nested block(s) left open")
    em.line(f"}} {name}_{ver};")


def _emit_typedef(em: Emitter, ver: str, name: str, d: Definition) -> None:
    if not d.vals:
        raise GenerationError(f"{name}: typedef without an aliased type")
    em.line(f"typedef {versioned_type(d.vals[0], ver)} {name}_{ver};")


def generate_c(ir: DefinitionsIR, items: list[Selected]) -> str:
    ver = version_suffix(ir.version)
    guard = f"__NV_HEADER_{ver}__"
    em = Emitter()
    em.line("/* This file is autogenerated */")
    em.line(f"#ifndef {guard}")
    em.line(f"#define {guard} 1")
    em.line(f'#define __NV_VERSION__ "{ir.version}"')
    em.line()
    for base_type in SPECIAL_TYPES:
        em.line(f"#define {base_type}_{ver} {base_type}")
    em.line()

    for sel in items:
        d = sel.item
        if not isinstance(d, Definition):
            raise GenerationError(f"{sel.name}: not a definitions-map entry")
        if not em.claim(sel.name):
            continue
        if d.ctype == CType.VALUE:
            _emit_define(em, ver, sel.name, d)
        elif d.ctype == CType.STRUCT:
            _emit_struct(em, ver, sel.name, d)
        elif d.ctype == CType.TYPEDEF:
            _emit_typedef(em, ver, sel.name, d)
        else:
            raise GenerationError(f"{sel.name}: no generation rule for {d.ctype.value}")
        em.line()

    em.line("#endif")
    return em.text()
