"""
ctrlgen.codegen.rust

Accessor-oriented Rust module. Each layout struct becomes `s_<NAME>`, a
view over a borrowed byte slice with builder, setter and getter methods
per field. All multi-byte values are little endian.
"""

from __future__ import annotations

from ..ir import HWDefine, HWDefineType, HWStruct, HWStructField, LayoutIR
from ..selection import Selected
from .common import Emitter, GenerationError, accessor_name, constant_items, generatable_fields, parse_literal

RUST_KEYWORDS = {
    "as", "break", "const", "continue", "crate", "else", "enum", "extern",
    "false", "fn", "for", "if", "impl", "in", "let", "loop", "match", "mod",
    "move", "mut", "pub", "ref", "return", "self", "static", "struct",
    "super", "trait", "true", "unsafe", "use", "where", "while", "async",
    "await", "dyn", "abstract", "become", "box", "do", "final", "macro",
    "override", "priv", "typeof", "unsized", "virtual", "yield", "try",
}


def rust_literal(text: str) -> tuple[int, str]:
    bits, lit = parse_literal(text)
    # a lone 64-bit literal keeps its width; expressions take the const's type
    if bits == 64 and lit != text and lit.isalnum():
        lit += "_u64"
    return bits, lit


def _emit_define(em: Emitter, name: str, define: HWDefine) -> None:
    for cname, val in constant_items(name, define.vals):
        bits, lit = rust_literal(val)
        em.line(f"pub(crate) const {cname}: u{bits} = {lit};")


def _emit_struct_ctor(em: Emitter, fld: HWStructField) -> None:
    start, size = fld.start // 8, fld.size // 8
    em.line()
    if fld.is_array:
        em.line(f"    pub(crate) fn new_S_{fld.name}(&mut self, idx: isize) -> s_{fld.val_type}<'s> {{")
        em.line(f"        s_{fld.val_type}::new(unsafe {{ self.ptr.offset(idx * {size} + {start}) }})")
    else:
        em.line(f"    pub(crate) fn new_S_{fld.name}(&mut self) -> s_{fld.val_type}<'s> {{")
        em.line(f"        s_{fld.val_type}::new(unsafe {{ self.ptr.offset({start}) }})")
    em.line("    }")
    em.line()


def _emit_array(em: Emitter, name: str, fld: HWStructField) -> None:
    ty = f"u{fld.size}"
    width = fld.size // 8
    n = fld.group_len
    lo, hi = fld.start // 8, (fld.start + fld.size * n) // 8

    def pack():
        em.line(f"        let mut byte_data = [0u8; {n * width}];")
        em.line(f"        for i in 0..{n} {{")
        em.line("            let bytes = fld[i].to_le_bytes();")
        em.line(f"            byte_data[(i * {width})..((i + 1) * {width})].copy_from_slice(&bytes);")
        em.line("        }")
        em.line(f"        self.store[{lo}..{hi}].copy_from_slice(&byte_data);")

    em.line(f"    pub(crate) fn {name}(mut self, fld: [{ty}; {n}]) -> Self {{")
    pack()
    em.line("        self")
    em.line("    }")
    em.line(f"    pub(crate) fn set_{name}(&mut self, fld: [{ty}; {n}]) {{")
    pack()
    em.line("    }")
    em.line(f"    pub(crate) fn get_{name}(&self) -> [{ty}; {n}] {{")
    em.line(f"        let mut array = [0{ty}; {n}];")
    em.line(f"        for (i, chunk) in self.store[{lo}..{hi}].chunks_exact({width}).enumerate() {{")
    em.line(f"            array[i] = {ty}::from_le_bytes(chunk.try_into().unwrap());")
    em.line("        }")
    em.line("        array")
    em.line("    }")


def _emit_scalar(em: Emitter, name: str, fld: HWStructField) -> None:
    ty = f"u{fld.size}"
    lo, hi = fld.start // 8, (fld.start + fld.size) // 8
    em.line(f"    pub(crate) fn {name}(mut self, fld: {ty}) -> Self {{")
    em.line(f"        self.store[{lo}..{hi}].copy_from_slice(&{ty}::to_le_bytes(fld));")
    em.line("        self")
    em.line("    }")
    em.line()
    em.line(f"    pub(crate) fn get_{name}(&self) -> {ty} {{")
    em.line(f"        {ty}::from_le_bytes(self.store[{lo}..{hi}].try_into().unwrap())")
    em.line("    }")
    em.line(f"    pub(crate) fn set_{name}(&mut self, fld: {ty}) {{")
    em.line(f"        self.store[{lo}..{hi}].copy_from_slice(&{ty}::to_le_bytes(fld));")
    em.line("    }")


def _emit_hw_struct(em: Emitter, name: str, hw: HWStruct) -> None:
    size = hw.byte_size
    em.line(f"pub(crate) struct s_{name}<'s> {{")
    em.line("    ptr: *mut u8,")
    em.line("    store: &'s mut [u8],")
    em.line("}")
    em.line()
    em.line(f"impl<'s> s_{name}<'s> {{")
    em.line("    pub(crate) const fn str_size() -> usize {")
    em.line(f"        {size}")
    em.line("    }")
    em.line("    pub(crate) fn new(ptr: *mut u8) -> Self {")
    em.line("        Self {")
    em.line("            ptr,")
    em.line(f"            store: unsafe {{ core::slice::from_raw_parts_mut(ptr, {size}) }},")
    em.line("        }")
    em.line("    }")
    em.line()
    for fld in generatable_fields(name, hw):
        if fld.is_struct:
            _emit_struct_ctor(em, fld)
            continue
        fname = accessor_name(fld.name, RUST_KEYWORDS)
        if fld.is_array:
            _emit_array(em, fname, fld)
        else:
            _emit_scalar(em, fname, fld)
    em.line("}")


def generate_rust(ir: LayoutIR, items: list[Selected]) -> str:
    em = Emitter()
    em.line("// AUTO GENERATED")
    em.line("#![allow(non_snake_case)]")
    em.line("#![allow(dead_code)]")
    em.line("#![allow(non_camel_case_types)]")
    em.line()
    em.line(f'pub(crate) const NV_VERSION: &str = "{ir.version}";')
    em.line()

    for sel in items:
        item = sel.item
        symbol = f"s_{sel.name}" if isinstance(item, HWStruct) else sel.name
        if not em.claim(symbol):
            continue
        if isinstance(item, HWDefine):
            if item.hwtype != HWDefineType.VALUE:
                raise GenerationError(f"{sel.name}: no generation rule for {item.hwtype.value}")
            _emit_define(em, sel.name, item)
        elif isinstance(item, HWStruct):
            _emit_hw_struct(em, sel.name, item)
        else:
            raise GenerationError(f"{sel.name}: not a layout-map entry")
        em.line()
    return em.text()
