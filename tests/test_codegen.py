"""Tests for the C, Rust and Python generators."""

import logging

import pytest

from ctrlgen.codegen import GenerationError, generate, generate_c, generate_python, generate_rust
from ctrlgen.codegen.c import versioned_type
from ctrlgen.codegen.common import accessor_name, constant_items, generatable_fields, parse_literal
from ctrlgen.codegen.python import python_literal
from ctrlgen.codegen.rust import rust_literal
from ctrlgen.ir import (
    CType,
    Definition,
    DefinitionsIR,
    FieldKind,
    HWDefine,
    HWStruct,
    HWStructField,
    LayoutIR,
    StructField,
)
from ctrlgen.macros import classify_macro
from ctrlgen.selection import Selected, WantedSelection


def _layout() -> LayoutIR:
    ir = LayoutIR("535.113.01")
    ir.merge_define("NV_ONE", HWDefine.value("5"))
    ir.merge_define("NV_PAIR", HWDefine.value("5", "5"))
    ir.merge_define("NV_RANGE", HWDefine.value("2", "7"))
    ir.merge_define("NV_BIG", HWDefine.value("0x100000000ULL"))
    ir.merge_struct("NV_INNER", HWStruct(32, [HWStructField("lo", 0, 16), HWStructField("hi", 16, 16)]))
    ir.merge_struct("NV_OUTER", HWStruct(256, [
        HWStructField("a", 0, 32),
        HWStructField("b", 32, 8, 4),
        HWStructField("type", 64, 16),
        HWStructField("pad", 80, 16),
        HWStructField("one", 96, 32, isint=0, val_type="NV_INNER"),
        HWStructField("many", 128, 32, 2, 0, "NV_INNER"),
        HWStructField("wide", 192, 64),
    ]))
    return ir


def _items(ir: LayoutIR, *names):
    out = []
    for n in names:
        out.append(Selected(n, ir.defines[n] if n in ir.defines else ir.structs[n]))
    return out


class TestLiterals:
    def test_parse_literal(self):
        assert parse_literal("5") == (32, "5")
        assert parse_literal("0x20U") == (32, "0x20")
        assert parse_literal("0xFFFFFFFFFFULL") == (64, "0xFFFFFFFFFF")
        assert parse_literal("1LL") == (64, "1")
        assert parse_literal("1<<4") == (32, "1<<4")

    def test_rust_literal(self):
        assert rust_literal("0x10ULL") == (64, "0x10_u64")
        assert rust_literal("7U") == (32, "7")

    def test_python_literal(self):
        assert python_literal("017") == "0o17"
        assert python_literal("0") == "0"
        assert python_literal("'A'") == "65"
        assert python_literal("0x10ULL") == "0x10"
        assert python_literal("(010<<2)*3") == "(0o10<<2)*3"

    def test_suffixes_inside_expressions(self):
        assert parse_literal("0x1U<<3") == (32, "0x1<<3")
        assert parse_literal("(1UL<<4)*3U") == (32, "(1<<4)*3")
        assert parse_literal("(1ULL<<40)*2") == (64, "(1<<40)*2")
        assert parse_literal("0xFFu<<0x8U") == (32, "0xFF<<0x8")
        assert rust_literal("(1ULL<<40)*2") == (64, "(1<<40)*2")

    def test_constant_items(self):
        assert constant_items("N", ["1"]) == [("N", "1")]
        assert constant_items("N", ["5", "5"]) == [("N", "5")]
        assert constant_items("N", ["2", "7"]) == [("N_A", "2"), ("N_B", "7")]
        with pytest.raises(GenerationError):
            constant_items("N", [])

    def test_accessor_name(self):
        assert accessor_name("type") == "rtype"
        assert accessor_name("fn", {"fn"}) == "rfn"
        assert accessor_name("flags") == "flags"


class TestShiftConstants:
    """Values of the shift-shaped macros carry their operands' suffixes."""

    def _layout(self):
        ir = LayoutIR("1.0")
        shift = classify_macro(["NVFOO_CTRL_BAR_FLAG", "(", "0x1U", "<<", "3", ")"])
        times = classify_macro(["NVFOO_CTRL_BAR_WIDE", "(", "(", "1ULL", "<<", "40", ")", "*", "2U", ")"])
        ir.merge_define("NVFOO_CTRL_BAR_FLAG", HWDefine.value(*shift.vals))
        ir.merge_define("NVFOO_CTRL_BAR_WIDE", HWDefine.value(*times.vals))
        return ir

    def test_python_module_loads(self, load_generated):
        ir = self._layout()
        ns = load_generated(generate_python(ir, _items(ir, "NVFOO_CTRL_BAR_FLAG", "NVFOO_CTRL_BAR_WIDE")))
        assert ns["NVFOO_CTRL_BAR_FLAG"] == 8
        assert ns["NVFOO_CTRL_BAR_WIDE"] == (1 << 40) * 2

    def test_rust_constants(self):
        ir = self._layout()
        text = generate_rust(ir, _items(ir, "NVFOO_CTRL_BAR_FLAG", "NVFOO_CTRL_BAR_WIDE"))
        assert "pub(crate) const NVFOO_CTRL_BAR_FLAG: u32 = 0x1<<3;" in text
        assert "pub(crate) const NVFOO_CTRL_BAR_WIDE: u64 = (1<<40)*2;" in text


class TestGeneratableFields:
    def test_unsupported_width_warns(self, caplog):
        hw = HWStruct(64, [HWStructField("odd", 0, 24), HWStructField("ok", 32, 32)])
        with caplog.at_level(logging.WARNING, logger="ctrlgen.codegen"):
            kept = generatable_fields("S", hw)
        assert [f.name for f in kept] == ["ok"]
        assert "S.odd" in caplog.text

    def test_zero_width_is_silent(self, caplog):
        hw = HWStruct(32, [HWStructField("ptr", 0, 0), HWStructField("ok", 0, 32)])
        with caplog.at_level(logging.WARNING, logger="ctrlgen.codegen"):
            kept = generatable_fields("S", hw)
        assert [f.name for f in kept] == ["ok"]
        assert caplog.records == []

    def test_unaligned_and_overrun_dropped(self, caplog):
        hw = HWStruct(32, [HWStructField("bit", 3, 8), HWStructField("tail", 16, 32)])
        with caplog.at_level(logging.WARNING, logger="ctrlgen.codegen"):
            assert generatable_fields("S", hw) == []
        assert len(caplog.records) == 2


class TestPython:
    def test_scalar_round_trip(self, load_generated):
        ir = _layout()
        ns = load_generated(generate_python(ir, _items(ir, "NV_INNER", "NV_OUTER")))
        p = ns["s_NV_OUTER"].new().a(0x01020304).wide(0x1122334455667788)
        assert bytes(p.raw[0:4]) == bytes([4, 3, 2, 1])
        assert p.get_a() == 0x01020304
        assert p.get_wide() == 0x1122334455667788
        assert bytes(p.raw[24:32]) == bytes.fromhex("8877665544332211")

    def test_setter(self, load_generated):
        ir = _layout()
        ns = load_generated(generate_python(ir, _items(ir, "NV_INNER", "NV_OUTER")))
        p = ns["s_NV_OUTER"].new()
        p.set_pad(0xBEEF)
        assert bytes(p.raw[10:12]) == b"\xef\xbe"
        assert p.get_pad() == 0xBEEF

    def test_array(self, load_generated):
        ir = _layout()
        ns = load_generated(generate_python(ir, _items(ir, "NV_INNER", "NV_OUTER")))
        p = ns["s_NV_OUTER"].new().b([1, 2, 3, 4])
        assert bytes(p.raw[4:8]) == b"\x01\x02\x03\x04"
        assert p.get_b() == (1, 2, 3, 4)
        with pytest.raises(ValueError):
            p.set_b([1, 2])

    def test_reserved_field_renamed(self, load_generated):
        ir = _layout()
        ns = load_generated(generate_python(ir, _items(ir, "NV_INNER", "NV_OUTER")))
        p = ns["s_NV_OUTER"].new().rtype(7)
        assert p.get_rtype() == 7
        assert not hasattr(p, "get_type")

    def test_sub_struct_views_share_storage(self, load_generated):
        ir = _layout()
        ns = load_generated(generate_python(ir, _items(ir, "NV_INNER", "NV_OUTER")))
        outer = ns["s_NV_OUTER"].new()
        outer.new_S_one().lo(0xAAAA).hi(0xBBBB)
        assert bytes(outer.raw[12:16]) == b"\xaa\xaa\xbb\xbb"
        outer.new_S_many(1).set_hi(0x1234)
        assert bytes(outer.raw[22:24]) == b"\x34\x12"
        with pytest.raises(IndexError):
            outer.new_S_many(2)

    def test_wraps_existing_buffer(self, load_generated):
        ir = _layout()
        ns = load_generated(generate_python(ir, _items(ir, "NV_INNER")))
        buf = bytearray(b"\x01\x00\x02\x00")
        inner = ns["s_NV_INNER"](buf)
        assert (inner.get_lo(), inner.get_hi()) == (1, 2)
        inner.set_lo(9)
        assert buf[0] == 9
        with pytest.raises(ValueError):
            ns["s_NV_INNER"](bytearray(2))

    def test_constants(self, load_generated):
        ir = _layout()
        ns = load_generated(generate_python(ir, _items(ir, "NV_ONE", "NV_PAIR", "NV_RANGE", "NV_BIG")))
        assert ns["NV_VERSION"] == "535.113.01"
        assert ns["NV_ONE"] == 5
        assert ns["NV_PAIR"] == 5
        assert (ns["NV_RANGE_A"], ns["NV_RANGE_B"]) == (2, 7)
        assert ns["NV_BIG"] == 0x100000000

    def test_duplicates_emitted_once(self):
        ir = _layout()
        text = generate_python(ir, _items(ir, "NV_INNER", "NV_ONE", "NV_INNER", "NV_ONE"))
        assert text.count("class s_NV_INNER:") == 1
        assert text.count("NV_ONE = 5") == 1

    def test_bad_item(self):
        ir = _layout()
        with pytest.raises(GenerationError):
            generate_python(ir, [Selected("X", Definition.value("1"))])


class TestRust:
    def test_constants(self):
        ir = _layout()
        text = generate_rust(ir, _items(ir, "NV_ONE", "NV_PAIR", "NV_RANGE", "NV_BIG"))
        assert 'pub(crate) const NV_VERSION: &str = "535.113.01";' in text
        assert "pub(crate) const NV_ONE: u32 = 5;" in text
        assert "pub(crate) const NV_PAIR: u32 = 5;" in text
        assert "pub(crate) const NV_RANGE_A: u32 = 2;" in text
        assert "pub(crate) const NV_RANGE_B: u32 = 7;" in text
        assert "pub(crate) const NV_BIG: u64 = 0x100000000_u64;" in text

    def test_struct(self):
        ir = _layout()
        text = generate_rust(ir, _items(ir, "NV_OUTER"))
        assert "pub(crate) struct s_NV_OUTER<'s> {" in text
        assert "        32\n" in text
        assert "pub(crate) fn a(mut self, fld: u32) -> Self {" in text
        assert "self.store[0..4].copy_from_slice(&u32::to_le_bytes(fld));" in text
        assert "pub(crate) fn get_wide(&self) -> u64 {" in text
        assert "pub(crate) fn b(mut self, fld: [u8; 4]) -> Self {" in text
        assert "pub(crate) fn get_b(&self) -> [u8; 4] {" in text
        assert "pub(crate) fn rtype(mut self, fld: u16) -> Self {" in text
        assert "pub(crate) fn new_S_one(&mut self) -> s_NV_INNER<'s> {" in text
        assert "self.ptr.offset(12)" in text
        assert "self.ptr.offset(idx * 4 + 16)" in text

    def test_duplicates_emitted_once(self):
        ir = _layout()
        text = generate_rust(ir, _items(ir, "NV_INNER", "NV_INNER"))
        assert text.count("pub(crate) struct s_NV_INNER<'s>") == 1


def _definitions() -> DefinitionsIR:
    ir = DefinitionsIR("535.113.01")
    ir.merge("NV_ONE", Definition.value("5"))
    ir.merge("NV_PAIR", Definition.value("5", "5"))
    ir.merge("NV_RANGE", Definition.value("2", "7"))
    ir.merge("NvHandleAlias", Definition.typedef("NvHandle"))
    ir.merge("NV_S", Definition.struct([
        StructField("NvU32", "a"),
        StructField.marker(FieldKind.UNION_START),
        StructField("NvU32", "u32"),
        StructField("NvU8", "bytes", is_array=True, size=4),
        StructField.marker(FieldKind.UNION_END),
        StructField.marker(FieldKind.STRUCT_START),
        StructField("NvU16", "lo"),
        StructField("NvU16", "hi"),
        StructField("", "inner", fldtype=FieldKind.STRUCT_END),
        StructField("NvU64", "wide", is_aligned=True, alignment=8),
    ]))
    return ir


def _def_items(ir, *names):
    return [Selected(n, ir.types[n]) for n in names]


class TestC:
    def test_versioned_type(self):
        assert versioned_type("NvU32", "1_0") == "NvU32_1_0"
        assert versioned_type("unsigned int", "1_0") == "unsigned int"
        assert versioned_type("NV_S *", "1_0") == "NV_S_1_0 *"
        assert versioned_type("void *", "1_0") == "void *"
        assert versioned_type("const NvU8", "1_0") == "const NvU8_1_0"

    def test_builtin_types_keep_their_spelling(self):
        assert versioned_type("short", "1_0") == "short"
        assert versioned_type("float", "1_0") == "float"
        assert versioned_type("long long", "1_0") == "long long"
        assert versioned_type("double *", "1_0") == "double *"
        # aliased by the header's special-type defines
        assert versioned_type("int", "1_0") == "int_1_0"
        assert versioned_type("char", "1_0") == "char_1_0"

    def test_builtin_fields(self):
        ir = DefinitionsIR("1.2.3")
        ir.merge("S", Definition.struct([
            StructField("short", "a"),
            StructField("long long", "b"),
            StructField("float", "f"),
        ]))
        text = generate_c(ir, _def_items(ir, "S"))
        assert "    short    a;" in text
        assert "    long long    b;" in text
        assert "    float    f;" in text

    def test_preamble(self):
        text = generate_c(_definitions(), [])
        lines = text.splitlines()
        assert lines[1] == "#ifndef __NV_HEADER_535_113_01__"
        assert lines[2] == "#define __NV_HEADER_535_113_01__ 1"
        assert lines[3] == '#define __NV_VERSION__ "535.113.01"'
        assert "#define NvU32_535_113_01 NvU32" in lines
        assert "#define NvHandle_535_113_01 NvHandle" in lines
        assert lines[-1] == "#endif"

    def test_constants(self):
        ir = _definitions()
        text = generate_c(ir, _def_items(ir, "NV_ONE", "NV_PAIR", "NV_RANGE"))
        assert "#define NV_ONE_535_113_01 5" in text
        assert "#define NV_PAIR_535_113_01 5" in text
        assert "NV_PAIR_A" not in text
        assert "#define NV_RANGE_A_535_113_01 2" in text
        assert "#define NV_RANGE_B_535_113_01 7" in text

    def test_struct(self):
        ir = _definitions()
        text = generate_c(ir, _def_items(ir, "NV_S"))
        expected = "\n".join([
            "typedef struct NV_S_535_113_01 {",
            "    NvU32_535_113_01    a;",
            "    union {",
            "        NvU32_535_113_01    u32;",
            "        NvU8_535_113_01    bytes[4];",
            "    };",
            "    struct {",
            "        NvU16_535_113_01    lo;",
            "        NvU16_535_113_01    hi;",
            "    } inner;",
            "    NvU64_535_113_01    wide __attribute__((aligned(8)));",
            "} NV_S_535_113_01;",
        ])
        assert expected in text

    def test_typedef(self):
        ir = _definitions()
        text = generate_c(ir, _def_items(ir, "NvHandleAlias"))
        assert "typedef NvHandle_535_113_01 NvHandleAlias_535_113_01;" in text

    def test_duplicates_emitted_once(self):
        ir = _definitions()
        text = generate_c(ir, _def_items(ir, "NV_ONE", "NV_S", "NV_ONE", "NV_S"))
        assert text.count("#define NV_ONE_535_113_01 5") == 1
        assert text.count("typedef struct NV_S_535_113_01 {") == 1

    def test_unknown_kind(self):
        ir = _definitions()
        ir.merge("NV_WHAT", Definition())
        assert ir.types["NV_WHAT"].ctype == CType.UNKNOWN
        with pytest.raises(GenerationError, match="NV_WHAT"):
            generate_c(ir, _def_items(ir, "NV_WHAT"))

    def test_unbalanced_markers(self):
        ir = DefinitionsIR("1")
        ir.merge("NV_BAD", Definition.struct([StructField.marker(FieldKind.UNION_START)]))
        with pytest.raises(GenerationError):
            generate_c(ir, _def_items(ir, "NV_BAD"))


class TestDispatch:
    def test_document_mismatch(self):
        with pytest.raises(GenerationError):
            generate("c", _layout(), WantedSelection())
        with pytest.raises(GenerationError):
            generate("python", _definitions(), WantedSelection())

    def test_unknown_target(self):
        with pytest.raises(GenerationError):
            generate("go", _layout(), WantedSelection())

    def test_selection_applied(self):
        text = generate("python", _layout(), WantedSelection(defines=["NV_ONE"]))
        assert "NV_ONE = 5" in text
        assert "class s_" not in text
