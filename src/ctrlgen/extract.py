"""
ctrlgen.extract

Parse control headers with libclang and accumulate the definitions and
layout maps. Headers are processed one at a time, in sorted path order;
a later header overwrites identifiers defined by an earlier one.
"""

from __future__ import annotations
import logging
import os
from collections import Counter
from fnmatch import fnmatch
from pathlib import Path
from typing import Optional

from clang.cindex import (
    Cursor,
    CursorKind,
    Diagnostic,
    Index,
    TranslationUnit,
    TranslationUnitLoadError,
    TypeKind,
)

from . import _auto_set_libclang
from .config import ExtractConfig
from .flatten import (
    FlattenOptions,
    RECORD_DECLS,
    bare_spelling,
    flatten_declaration,
    flatten_layout,
    has_tag,
    strip_elaborated,
)
from .ir import Definition, DefinitionsIR, FieldKind, HWDefine, HWStruct, LayoutIR, StructField
from .macros import classify_macro, is_reserved_name

logger = logging.getLogger(__name__)

PARSE_OPTIONS = (
    TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD
    | TranslationUnit.PARSE_SKIP_FUNCTION_BODIES
)


class ExtractError(RuntimeError):
    pass


def _in_file(c: Cursor, path: str) -> bool:
    f = c.location.file
    return f is not None and os.path.abspath(f.name) == path


def _is_function_like(tokens) -> bool:
    # FOO(x) has no space between the name and the parenthesis
    return (
        len(tokens) > 1
        and tokens[1].spelling == "("
        and tokens[1].extent.start.offset == tokens[0].extent.end.offset
    )


class IRBuilder:
    """
    Owns the running definitions and layout maps for one extraction run.
    """

    def __init__(self, version: str, config: Optional[ExtractConfig] = None,
                 root: Optional[Path] = None):
        self.config = config or ExtractConfig()
        self.root = root
        self.definitions = DefinitionsIR(version)
        self.layout = LayoutIR(version)
        self.options = FlattenOptions(
            special_types=tuple(self.config.special_types),
            flatten_nested=self.config.flatten_nested,
        )
        self._index: Optional[Index] = None
        self._counts: Counter = Counter()

    @property
    def index(self) -> Index:
        if self._index is None:
            _auto_set_libclang()
            self._index = Index.create()
        return self._index

    # -- parsing ----------------------------------------------------------

    def _parse(self, path: str, unsaved=None) -> TranslationUnit:
        args = ["-x", "c", *self.config.clang_args(self.root)]
        try:
            tu = self.index.parse(path, args=args, unsaved_files=unsaved,
                                  options=PARSE_OPTIONS)
        except TranslationUnitLoadError as e:
            raise ExtractError(f"{path}: {e}") from e
        errors = [d for d in tu.diagnostics if d.severity >= Diagnostic.Error]
        if errors:
            raise ExtractError(f"{path}: " + "; ".join(str(d) for d in errors))
        return tu

    def add_header(self, path: Path) -> None:
        path = str(path)
        self._walk(self._parse(path), path)

    def add_source(self, name: str, text: str) -> None:
        """Parse header text that does not exist on disk."""
        self._walk(self._parse(name, unsaved=[(name, text)]), name)

    # -- declaration walk -------------------------------------------------

    def _walk(self, tu: TranslationUnit, path: str) -> None:
        main = os.path.abspath(path)
        self._counts.clear()
        for c in tu.cursor.get_children():
            if c.location.file is None:
                continue  # builtins
            if self.config.main_file_only and not _in_file(c, main):
                continue
            if c.kind == CursorKind.MACRO_DEFINITION:
                self._add_macro(c)
            elif c.kind == CursorKind.ENUM_DECL:
                self._add_enum(c)
            elif c.kind in RECORD_DECLS:
                if c.is_definition() and has_tag(c):
                    self._add_record(c.spelling, c, anon=False)
            elif c.kind == CursorKind.TYPEDEF_DECL:
                self._add_typedef(c)
        logger.info(
            "%s: %d macros, %d enum values, %d records, %d typedefs (%d macros dropped)",
            path, self._counts["macro"], self._counts["enum"], self._counts["record"],
            self._counts["typedef"], self._counts["dropped"],
        )

    def _add_macro(self, c: Cursor) -> None:
        name = c.spelling
        if is_reserved_name(name):
            return
        tokens = list(c.get_tokens())
        if _is_function_like(tokens):
            return
        value = classify_macro([t.spelling for t in tokens])
        if value is None:
            self._counts["dropped"] += 1
            return
        self._counts["macro"] += 1
        self.definitions.merge(name, Definition.value(*value.vals))
        self.layout.merge_define(name, HWDefine.value(*value.vals))

    def _add_enum(self, c: Cursor) -> None:
        for const in c.get_children():
            if const.kind != CursorKind.ENUM_CONSTANT_DECL:
                continue
            val = str(const.enum_value)
            self._counts["enum"] += 1
            self.definitions.merge(const.spelling, Definition.value(val))
            self.layout.merge_define(const.spelling, HWDefine.value(val))

    def _add_record(self, name: str, decl: Cursor, anon: bool) -> None:
        self._counts["record"] += 1
        fields = flatten_declaration(decl)
        if decl.kind == CursorKind.UNION_DECL:
            # re-emitted as a struct wrapping one anonymous union
            fields = [StructField.marker(FieldKind.UNION_START), *fields,
                      StructField.marker(FieldKind.UNION_END)]
        self.definitions.merge(name, Definition.struct(fields, anon))
        self._add_layout(name, decl)

    def _add_layout(self, name: str, decl: Cursor) -> None:
        size = decl.type.get_size()
        if size < 0:
            logger.debug("%s: incomplete record, no layout", name)
            return
        fields = []
        elements: dict[str, HWStruct] = {}
        end = flatten_layout(decl, 0, "", fields, self.options, name, elements)
        if end > size * 8:
            logger.debug("%s: fields end at bit %d past size %d", name, end, size * 8)
        self.layout.merge_struct(name, HWStruct(size * 8, fields))
        for ename, hw in elements.items():
            self.layout.merge_struct(ename, hw)

    def _add_typedef(self, c: Cursor) -> None:
        name = c.spelling
        under = c.underlying_typedef_type
        t = strip_elaborated(under)
        self._counts["typedef"] += 1
        if t.kind == TypeKind.RECORD:
            decl = t.get_declaration()
            inline = any(ch.kind in RECORD_DECLS for ch in c.get_children())
            if inline and decl.is_definition():
                self._add_record(name, decl, anon=not has_tag(decl))
                return
            self.definitions.merge(name, Definition.typedef(bare_spelling(t)))
            if decl.is_definition():
                self._add_layout(name, decl)
            return
        if t.kind == TypeKind.ENUM:
            # enum tags are often unnamed; alias the integer type instead
            self.definitions.merge(name, Definition.typedef(t.get_declaration().enum_type.spelling))
            return
        self.definitions.merge(name, Definition.typedef(under.spelling))

    def result(self) -> tuple[DefinitionsIR, LayoutIR]:
        return self.definitions, self.layout


def discover_headers(root: Path, config: ExtractConfig) -> list[Path]:
    root = Path(root)
    found = []
    for p in root.glob(config.header_glob):
        if not p.is_file():
            continue
        rel = p.relative_to(root).as_posix()
        if any(fnmatch(rel, pat) for pat in config.exclude):
            continue
        found.append(p)
    return sorted(found, key=lambda p: p.relative_to(root).as_posix())


def extract_tree(root: Path, version: str,
                 config: Optional[ExtractConfig] = None) -> tuple[DefinitionsIR, LayoutIR]:
    config = config or ExtractConfig()
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"source root not found: {root}")
    headers = discover_headers(root, config)
    if not headers:
        logger.warning("no headers matching %s under %s", config.header_glob, root)
    builder = IRBuilder(version, config, root)
    for header in headers:
        builder.add_header(header)
    return builder.result()
