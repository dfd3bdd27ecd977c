"""
ctrlgen.flatten

Walk struct/union declarations from libclang and turn them into IR fields.

Two views are produced from the same cursor:

  * flatten_layout: a flat, bit-addressed field list for the layout map.
    Nested records are resolved down to their leaf fields; arrays of
    records stay as one struct-valued field so generators can index them.
  * flatten_declaration: the declaration-level field list for the
    definitions map. Anonymous union/struct members are kept as
    start/end markers so the declaration can be re-emitted as written.

libclang exposes anonymous members in two shapes depending on version:
an unnamed FIELD_DECL whose type is the anonymous record, or only the
record declaration itself with no field. Both are handled.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, Optional
import logging
import math
import re

from clang.cindex import Cursor, CursorKind, Type, TypeKind

from .config import SPECIAL_TYPES
from .ir import FieldKind, HWStruct, HWStructField, NOT_AN_ARRAY, StructField

logger = logging.getLogger(__name__)

RECORD_DECLS = (CursorKind.STRUCT_DECL, CursorKind.UNION_DECL)

ARRAY_KINDS = (TypeKind.CONSTANTARRAY, TypeKind.INCOMPLETEARRAY)

INTEGER_KINDS = {
    TypeKind.BOOL,
    TypeKind.CHAR_U, TypeKind.UCHAR, TypeKind.CHAR16, TypeKind.CHAR32,
    TypeKind.USHORT, TypeKind.UINT, TypeKind.ULONG, TypeKind.ULONGLONG,
    TypeKind.UINT128,
    TypeKind.CHAR_S, TypeKind.SCHAR, TypeKind.WCHAR,
    TypeKind.SHORT, TypeKind.INT, TypeKind.LONG, TypeKind.LONGLONG,
    TypeKind.INT128,
    TypeKind.ENUM,
}

_QUALIFIERS = re.compile(r"\b(const|volatile|struct|union|enum)\s+")


@dataclass(frozen=True)
class FlattenOptions:
    special_types: tuple[str, ...] = SPECIAL_TYPES
    flatten_nested: bool = True


DEFAULT_OPTIONS = FlattenOptions()


# ---------------------------------------------------------------------------
# type helpers

def strip_elaborated(t: Type) -> Type:
    while t.kind == TypeKind.ELABORATED:
        t = t.get_named_type()
    return t


def bare_spelling(t: Type) -> str:
    """Type spelling without qualifiers or struct/union/enum keywords."""
    return _QUALIFIERS.sub("", t.spelling).strip()


def array_shape(t: Type) -> tuple[Optional[list[int]], Type]:
    """
    Return (dims, element type). dims is None for non-arrays; an
    incomplete array contributes a dimension of -1.
    """
    t = strip_elaborated(t)
    if t.kind not in ARRAY_KINDS:
        canon = t.get_canonical()
        if canon.kind not in ARRAY_KINDS:
            return None, t
        # array hidden behind a typedef
        t = canon
    dims = []
    while t.kind in ARRAY_KINDS:
        dims.append(t.element_count if t.kind == TypeKind.CONSTANTARRAY else -1)
        t = strip_elaborated(t.element_type)
    return dims, t


def is_record(t: Type) -> bool:
    return t.get_canonical().kind == TypeKind.RECORD


def record_decl(t: Type) -> Cursor:
    return t.get_canonical().get_declaration()


def has_tag(decl: Cursor) -> bool:
    """True for `struct NAME {...}`, False for `struct {...}`."""
    toks = decl.get_tokens()
    first = next(toks, None)
    second = next(toks, None)
    return (
        first is not None and first.spelling in ("struct", "union")
        and second is not None and second.spelling != "{"
    )


def record_name(t: Type) -> str:
    """
    Name under which a record type is registered in the IR: the typedef
    name when it is spelled through one, else its tag. Empty when unnamed.
    """
    t = strip_elaborated(t)
    if t.kind == TypeKind.TYPEDEF:
        return t.get_declaration().spelling
    decl = record_decl(t)
    if decl.kind in RECORD_DECLS and has_tag(decl):
        return decl.spelling
    return ""


def field_width_bits(t: Type, special_types=SPECIAL_TYPES) -> int:
    """Bit width of an integer-like type, 0 when it cannot be resolved."""
    canon = t.get_canonical()
    if canon.kind in INTEGER_KINDS or bare_spelling(strip_elaborated(t)) in special_types:
        size = canon.get_size()
        if size > 0:
            return size * 8
    return 0


def _alignment(member: Cursor) -> int:
    for child in member.get_children():
        if child.kind == CursorKind.ALIGNED_ATTR:
            for tok in child.get_tokens():
                if tok.spelling.isdigit():
                    return int(tok.spelling)
            # expanded through a macro; fall back to the type's alignment
            return max(member.type.get_align(), 0)
    return 0


def _referenced_record(t: Type) -> Optional[int]:
    _, elem = array_shape(t)
    if is_record(elem):
        return record_decl(elem).hash
    return None


def members(cursor: Cursor) -> Iterator[Cursor]:
    """
    Yield the members of a record in declaration order: FIELD_DECLs and
    anonymous record declarations that no field refers to.
    """
    children = list(cursor.get_children())
    referenced = {
        _referenced_record(c.type) for c in children if c.kind == CursorKind.FIELD_DECL
    }
    for c in children:
        if c.kind == CursorKind.FIELD_DECL:
            yield c
        elif (c.kind in RECORD_DECLS and c.is_definition()
              and c.hash not in referenced and not has_tag(c)):
            yield c


def _first_leaf_name(cursor: Cursor) -> Optional[str]:
    for m in members(cursor):
        if m.kind == CursorKind.FIELD_DECL and m.spelling:
            return m.spelling
        if m.kind in RECORD_DECLS or is_record(m.type):
            decl = m if m.kind in RECORD_DECLS else record_decl(m.type)
            name = _first_leaf_name(decl)
            if name:
                return name
    return None


def anon_member_offset(parent: Type, anon: Cursor) -> Optional[int]:
    """Bit offset of an anonymous record member inside its parent record."""
    name = _first_leaf_name(anon)
    if name is None:
        return None
    outer = parent.get_offset(name)
    inner = anon.type.get_offset(name)
    if outer < 0 or inner < 0:
        return None
    return outer - inner


# ---------------------------------------------------------------------------
# layout map

def flatten_layout(cursor: Cursor, base_bits: int = 0, prefix: str = "",
                   out: Optional[list[HWStructField]] = None,
                   options: FlattenOptions = DEFAULT_OPTIONS,
                   owner: str = "",
                   anon_records: Optional[dict[str, HWStruct]] = None) -> int:
    """
    Append the leaf fields of a struct/union cursor to `out` with absolute
    bit offsets. Returns the highest end offset reached.

    An array of an unnamed record needs a named element type. When
    `anon_records` is given, the element is registered there as
    `<owner>_<field>` with its own layout; without it the array is recorded
    with width 0.
    """
    if out is None:
        out = []
    end = base_bits
    for m in members(cursor):
        if m.kind == CursorKind.FIELD_DECL:
            end = max(end, _flatten_field(m, base_bits, prefix, out, options,
                                          owner, anon_records))
            continue
        off = anon_member_offset(cursor.type, m)
        if off is None:
            logger.debug("%s: skipping empty anonymous member", cursor.spelling)
            continue
        end = max(end, flatten_layout(m, base_bits + off, prefix, out, options,
                                      owner, anon_records))
    return end


def _anon_element(decl: Cursor, rname: str, size_bits: int, options: FlattenOptions,
                  anon_records: dict[str, HWStruct]) -> None:
    fields: list[HWStructField] = []
    flatten_layout(decl, 0, "", fields, options, rname, anon_records)
    anon_records[rname] = HWStruct(size_bits, fields)


def _flatten_field(fld: Cursor, base_bits: int, prefix: str,
                   out: list[HWStructField], options: FlattenOptions,
                   owner: str = "",
                   anon_records: Optional[dict[str, HWStruct]] = None) -> int:
    offset = fld.get_field_offsetof()
    if offset < 0:
        logger.debug("%s: no offset from clang (%d)", fld.spelling, offset)
        offset = 0
    start = base_bits + offset
    name = prefix + fld.spelling
    dims, elem = array_shape(fld.type)

    if dims is None:
        if is_record(elem):
            size = elem.get_canonical().get_size()
            decl = record_decl(elem)
            if size < 0 or not decl.is_definition():
                out.append(HWStructField(name, start, 0))
                return start
            if not fld.spelling:
                return flatten_layout(decl, start, prefix, out, options, owner, anon_records)
            rname = record_name(elem)
            if options.flatten_nested or not rname:
                return flatten_layout(decl, start, name + "_", out, options, owner, anon_records)
            out.append(HWStructField(name, start, size * 8, NOT_AN_ARRAY, 0, rname))
            return start + size * 8
        if fld.is_bitfield():
            width = fld.get_bitfield_width()
        else:
            width = field_width_bits(elem, options.special_types)
        out.append(HWStructField(name, start, width))
        return start + width

    if -1 in dims:
        # flexible array member: no storage of its own
        out.append(HWStructField(name, start, 0))
        return start

    count = math.prod(dims)
    if is_record(elem):
        size = elem.get_canonical().get_size()
        width = size * 8 if size > 0 else 0
        rname = record_name(elem)
        if not rname and width:
            if anon_records is None or not owner:
                logger.debug("%s: array of unnamed record without an owner", name)
                width = 0
            else:
                rname = f"{owner}_{name}"
                _anon_element(record_decl(elem), rname, width, options, anon_records)
        out.append(HWStructField(name, start, width, count, 0, rname))
    else:
        width = field_width_bits(elem, options.special_types)
        out.append(HWStructField(name, start, width, count))
    return start + width * count


# ---------------------------------------------------------------------------
# definitions map

def _block_kinds(decl: Cursor) -> tuple[FieldKind, FieldKind]:
    if decl.kind == CursorKind.UNION_DECL:
        return FieldKind.UNION_START, FieldKind.UNION_END
    return FieldKind.STRUCT_START, FieldKind.STRUCT_END


def _emit_block(decl: Cursor, name: str, out: list[StructField]) -> None:
    start, end = _block_kinds(decl)
    out.append(StructField.marker(start))
    _walk_declaration(decl, out)
    closing = StructField.marker(end)
    # a named member of an unnamed record type: `struct { ... } name;`
    closing.name = name
    out.append(closing)


def _walk_declaration(cursor: Cursor, out: list[StructField]) -> None:
    for m in members(cursor):
        if m.kind != CursorKind.FIELD_DECL:
            _emit_block(m, "", out)
            continue
        dims, elem = array_shape(m.type)
        if is_record(elem) and not record_name(elem):
            # `struct { ... } name[n];` closes as "name[n]"
            suffix = "".join(f"[{d}]" if d >= 0 else "[]" for d in dims or ())
            _emit_block(record_decl(elem), m.spelling + suffix, out)
            continue
        align = _alignment(m)
        if dims is None:
            out.append(StructField(
                ftype=m.type.spelling, name=m.spelling,
                is_aligned=align > 0, alignment=align,
            ))
        else:
            size = 0 if -1 in dims else math.prod(dims)
            out.append(StructField(
                ftype=elem.spelling, name=m.spelling, is_array=True, size=size,
                is_aligned=align > 0, alignment=align,
            ))


def flatten_declaration(cursor: Cursor) -> list[StructField]:
    """Declaration-level field list of a struct/union, nesting kept as markers."""
    out: list[StructField] = []
    _walk_declaration(cursor, out)
    return out
