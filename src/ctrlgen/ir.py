"""
ctrlgen.ir

In-memory form of the two IR documents handed from extraction to generation:

  * the definitions document (name -> Definition), used to re-emit C
    declarations;
  * the layout document (name -> HWDefine / HWStruct), bit-level struct
    layouts used to generate byte accessors.

Both maps are keyed by the original C identifier and merged with
last-write-wins semantics.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator
import logging

logger = logging.getLogger(__name__)

# group_len value meaning "not an array"
NOT_AN_ARRAY = 0xFFFFFFFF


class IRFormatError(ValueError):
    pass


def version_suffix(version: str) -> str:
    return version.replace(".", "_")


class CType(Enum):
    UNKNOWN = "Unknown"
    VALUE = "Value"
    STRUCT = "Struct"
    TYPEDEF = "Typedef"


class FieldKind(Enum):
    MEMBER = "Member"
    UNION_START = "UnionStart"
    UNION_END = "UnionEnd"
    STRUCT_START = "StructStart"
    STRUCT_END = "StructEnd"


class HWDefineType(Enum):
    UNKNOWN = "Unknown"
    VALUE = "Value"


# ---------------------------------------------------------------------------
# validation helpers

def _get(d: dict, key: str, typ, where: str):
    if not isinstance(d, dict):
        raise IRFormatError(f"{where}: expected a table, got {type(d).__name__}")
    if key not in d:
        raise IRFormatError(f"{where}: missing key {key!r}")
    val = d[key]
    # bool is an int subclass; never accept it for numeric fields
    if typ is int and isinstance(val, bool):
        raise IRFormatError(f"{where}.{key}: expected int, got bool")
    if not isinstance(val, typ):
        raise IRFormatError(f"{where}.{key}: expected {typ.__name__}, got {type(val).__name__}")
    return val


def _enum(cls, raw: Any, where: str):
    try:
        return cls(raw)
    except ValueError:
        raise IRFormatError(f"{where}: unknown {cls.__name__} tag {raw!r}") from None


def _str_list(d: dict, key: str, where: str) -> list[str]:
    vals = _get(d, key, list, where)
    if not all(isinstance(v, str) for v in vals):
        raise IRFormatError(f"{where}.{key}: expected a list of strings")
    return list(vals)


# ---------------------------------------------------------------------------
# definitions document

@dataclass
class StructField:
    ftype: str
    name: str
    is_array: bool = False
    size: int = 0
    fldtype: FieldKind = FieldKind.MEMBER
    is_aligned: bool = False
    alignment: int = 0

    @classmethod
    def marker(cls, kind: FieldKind) -> "StructField":
        return cls(ftype="", name="", fldtype=kind)

    def to_dict(self) -> dict:
        return {
            "ftype": self.ftype,
            "name": self.name,
            "is_array": self.is_array,
            "size": self.size,
            "fldtype": self.fldtype.value,
            "is_aligned": self.is_aligned,
            "alignment": self.alignment,
        }

    @classmethod
    def from_dict(cls, d: dict, where: str = "field") -> "StructField":
        # the plain variant has no fldtype / alignment keys
        return cls(
            ftype=_get(d, "ftype", str, where),
            name=_get(d, "name", str, where),
            is_array=_get(d, "is_array", bool, where),
            size=_get(d, "size", int, where),
            fldtype=_enum(FieldKind, d.get("fldtype", "Member"), f"{where}.fldtype"),
            is_aligned=bool(d.get("is_aligned", False)),
            alignment=int(d.get("alignment", 0)),
        )


@dataclass
class Definition:
    ctype: CType = CType.UNKNOWN
    vals: list[str] = field(default_factory=list)
    is_anon_struct: bool = False
    fields: list[StructField] = field(default_factory=list)

    @classmethod
    def value(cls, *vals: str) -> "Definition":
        return cls(ctype=CType.VALUE, vals=list(vals))

    @classmethod
    def struct(cls, fields: list[StructField], anon: bool = False) -> "Definition":
        return cls(ctype=CType.STRUCT, fields=list(fields), is_anon_struct=anon)

    @classmethod
    def typedef(cls, aliased: str) -> "Definition":
        return cls(ctype=CType.TYPEDEF, vals=[aliased])

    def to_dict(self) -> dict:
        return {
            "ctype": self.ctype.value,
            "vals": list(self.vals),
            "is_anon_struct": self.is_anon_struct,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, d: dict, where: str = "type") -> "Definition":
        raw_fields = _get(d, "fields", list, where)
        return cls(
            ctype=_enum(CType, _get(d, "ctype", str, where), f"{where}.ctype"),
            vals=_str_list(d, "vals", where),
            is_anon_struct=_get(d, "is_anon_struct", bool, where),
            fields=[StructField.from_dict(f, f"{where}.fields[{i}]")
                    for i, f in enumerate(raw_fields)],
        )


@dataclass
class DefinitionsIR:
    version: str
    types: dict[str, Definition] = field(default_factory=dict)

    def merge(self, name: str, definition: Definition) -> None:
        if name in self.types:
            logger.debug("definition %s overwritten", name)
        self.types[name] = definition

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "types": {k: self.types[k].to_dict() for k in sorted(self.types)},
        }

    @classmethod
    def from_dict(cls, d: dict) -> "DefinitionsIR":
        types = _get(d, "types", dict, "definitions")
        return cls(
            version=_get(d, "version", str, "definitions"),
            types={k: Definition.from_dict(v, f"types.{k}") for k, v in types.items()},
        )


# ---------------------------------------------------------------------------
# layout document

@dataclass
class HWDefine:
    hwtype: HWDefineType = HWDefineType.UNKNOWN
    vals: list[str] = field(default_factory=list)

    @classmethod
    def value(cls, *vals: str) -> "HWDefine":
        return cls(hwtype=HWDefineType.VALUE, vals=list(vals))

    def to_dict(self) -> dict:
        return {"hwtype": self.hwtype.value, "vals": list(self.vals)}

    @classmethod
    def from_dict(cls, d: dict, where: str = "define") -> "HWDefine":
        return cls(
            hwtype=_enum(HWDefineType, _get(d, "hwtype", str, where), f"{where}.hwtype"),
            vals=_str_list(d, "vals", where),
        )


@dataclass
class HWStructField:
    """One field of a layout struct; start and size are in bits."""
    name: str
    start: int
    size: int
    group_len: int = NOT_AN_ARRAY
    isint: int = 1
    val_type: str = ""

    @property
    def is_array(self) -> bool:
        return self.group_len != NOT_AN_ARRAY

    @property
    def is_struct(self) -> bool:
        return self.isint == 0

    @property
    def extent_bits(self) -> int:
        return self.size * (self.group_len if self.is_array else 1)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "start": self.start,
            "size": self.size,
            "group_len": self.group_len,
            "isint": self.isint,
            "val_type": self.val_type,
        }

    @classmethod
    def from_dict(cls, d: dict, where: str = "field") -> "HWStructField":
        group_len = _get(d, "group_len", int, where)
        if group_len == 0:
            group_len = NOT_AN_ARRAY
        return cls(
            name=_get(d, "name", str, where),
            start=_get(d, "start", int, where),
            size=_get(d, "size", int, where),
            group_len=group_len,
            isint=_get(d, "isint", int, where),
            val_type=_get(d, "val_type", str, where),
        )


@dataclass
class HWStruct:
    total_size: int
    fields: list[HWStructField] = field(default_factory=list)

    @property
    def byte_size(self) -> int:
        return self.total_size // 8

    def struct_refs(self) -> Iterator[str]:
        """Names of the layout structs this one embeds, in field order."""
        for fld in self.fields:
            if fld.is_struct and fld.val_type:
                yield fld.val_type

    def to_dict(self) -> dict:
        return {"total_size": self.total_size, "fields": [f.to_dict() for f in self.fields]}

    @classmethod
    def from_dict(cls, d: dict, where: str = "struct") -> "HWStruct":
        raw_fields = _get(d, "fields", list, where)
        return cls(
            total_size=_get(d, "total_size", int, where),
            fields=[HWStructField.from_dict(f, f"{where}.fields[{i}]")
                    for i, f in enumerate(raw_fields)],
        )


@dataclass
class LayoutIR:
    version: str
    defines: dict[str, HWDefine] = field(default_factory=dict)
    structs: dict[str, HWStruct] = field(default_factory=dict)

    def merge_define(self, name: str, define: HWDefine) -> None:
        if name in self.defines:
            logger.debug("layout define %s overwritten", name)
        self.defines[name] = define

    def merge_struct(self, name: str, struct: HWStruct) -> None:
        if name in self.structs:
            logger.debug("layout struct %s overwritten", name)
        self.structs[name] = struct

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "defines": {k: self.defines[k].to_dict() for k in sorted(self.defines)},
            "structs": {k: self.structs[k].to_dict() for k in sorted(self.structs)},
        }

    @classmethod
    def from_dict(cls, d: dict) -> "LayoutIR":
        defines = _get(d, "defines", dict, "layout")
        structs = _get(d, "structs", dict, "layout")
        return cls(
            version=_get(d, "version", str, "layout"),
            defines={k: HWDefine.from_dict(v, f"defines.{k}") for k, v in defines.items()},
            structs={k: HWStruct.from_dict(v, f"structs.{k}") for k, v in structs.items()},
        )
