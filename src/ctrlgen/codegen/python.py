"""
ctrlgen.codegen.python

Accessor-oriented Python module. Each layout struct becomes a class
`s_<NAME>` wrapping a memoryview of exactly SIZE bytes:

    p = s_NV0073_CTRL_CMD_FOO_PARAMS.new().subDeviceInstance(0).displayId(4)
    p.set_flags(1)
    p.get_displayId()            # 4
    bytes(p.raw)                 # the little-endian wire image
"""

from __future__ import annotations
import keyword
import re

from ..ir import HWDefine, HWDefineType, HWStruct, HWStructField, LayoutIR
from ..selection import Selected
from .common import Emitter, GenerationError, accessor_name, constant_items, generatable_fields, parse_literal

# names the generated class already uses
PY_RESERVED = set(keyword.kwlist) | {"new", "raw", "SIZE"}

_OCTAL = re.compile(r"(?<![\w.])0([0-7]+)\b")
_CHAR = re.compile(r"^'(.)'$")


def python_literal(text: str) -> str:
    _, lit = parse_literal(text)
    m = _CHAR.match(lit)
    if m:
        return str(ord(m.group(1)))
    return _OCTAL.sub(r"0o\1", lit)


def _emit_define(em: Emitter, name: str, define: HWDefine) -> None:
    for cname, val in constant_items(name, define.vals):
        em.line(f"{cname} = {python_literal(val)}")


def _emit_struct_ctor(em: Emitter, fld: HWStructField) -> None:
    start, size = fld.start // 8, fld.size // 8
    cls = f"s_{fld.val_type}"
    em.line()
    if fld.is_array:
        em.line(f"    def new_S_{fld.name}(self, idx):")
        em.line(f"        if not 0 <= idx < {fld.group_len}:")
        em.line(f'            raise IndexError("{fld.name}: index %d out of range" % idx)')
        em.line(f"        start = {start} + idx * {size}")
        em.line(f"        return {cls}(self._store[start:start + {size}])")
    else:
        em.line(f"    def new_S_{fld.name}(self):")
        em.line(f"        return {cls}(self._store[{start}:{start + size}])")


def _emit_array(em: Emitter, name: str, fld: HWStructField) -> None:
    width = fld.size // 8
    n = fld.group_len
    lo, hi = fld.start // 8, (fld.start + fld.size * n) // 8
    em.line()
    em.line(f"    def {name}(self, fld):")
    em.line(f"        self.set_{name}(fld)")
    em.line("        return self")
    em.line()
    em.line(f"    def set_{name}(self, fld):")
    em.line(f"        if len(fld) != {n}:")
    em.line(f'            raise ValueError("{name}: expected {n} values, got %d" % len(fld))')
    em.line(f'        self._store[{lo}:{hi}] = b"".join(v.to_bytes({width}, "little") for v in fld)')
    em.line()
    em.line(f"    def get_{name}(self):")
    em.line(f'        return tuple(int.from_bytes(self._store[i:i + {width}], "little")')
    em.line(f"                     for i in range({lo}, {hi}, {width}))")


def _emit_scalar(em: Emitter, name: str, fld: HWStructField) -> None:
    width = fld.size // 8
    lo, hi = fld.start // 8, (fld.start + fld.size) // 8
    em.line()
    em.line(f"    def {name}(self, fld):")
    em.line(f'        self._store[{lo}:{hi}] = fld.to_bytes({width}, "little")')
    em.line("        return self")
    em.line()
    em.line(f"    def set_{name}(self, fld):")
    em.line(f'        self._store[{lo}:{hi}] = fld.to_bytes({width}, "little")')
    em.line()
    em.line(f"    def get_{name}(self):")
    em.line(f'        return int.from_bytes(self._store[{lo}:{hi}], "little")')


def _emit_hw_struct(em: Emitter, name: str, hw: HWStruct) -> None:
    em.line(f"class s_{name}:")
    em.line(f"    SIZE = {hw.byte_size}")
    em.line()
    em.line("    def __init__(self, buf):")
    em.line("        view = memoryview(buf).cast(\"B\")")
    em.line("        if len(view) < self.SIZE:")
    em.line(f'            raise ValueError("s_{name}: need %d bytes, got %d" % (self.SIZE, len(view)))')
    em.line("        self._store = view[:self.SIZE]")
    em.line()
    em.line("    @classmethod")
    em.line("    def new(cls):")
    em.line("        return cls(bytearray(cls.SIZE))")
    em.line()
    em.line("    @property")
    em.line("    def raw(self):")
    em.line("        return self._store")
    for fld in generatable_fields(name, hw):
        if fld.is_struct:
            _emit_struct_ctor(em, fld)
            continue
        fname = accessor_name(fld.name, PY_RESERVED)
        if fld.is_array:
            _emit_array(em, fname, fld)
        else:
            _emit_scalar(em, fname, fld)


def generate_python(ir: LayoutIR, items: list[Selected]) -> str:
    em = Emitter()
    em.line("# AUTO GENERATED")
    em.line("# flake8: noqa")
    em.line()
    em.line(f'NV_VERSION = "{ir.version}"')
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
            em.line()
            _emit_hw_struct(em, sel.name, item)
            em.line()
        else:
            raise GenerationError(f"{sel.name}: not a layout-map entry")
        em.line()
    return em.text()
