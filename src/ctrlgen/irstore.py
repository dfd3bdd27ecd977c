"""
ctrlgen.irstore

Read and write the IR documents. The format follows the file suffix:
.json (canonical) or .toml.
"""

from __future__ import annotations
import json
import tomllib
from pathlib import Path

import tomli_w

from .ir import DefinitionsIR, IRFormatError, LayoutIR


def _render(doc: dict, path: Path) -> str:
    if path.suffix == ".toml":
        return tomli_w.dumps(doc)
    return json.dumps(doc, indent=2, sort_keys=True) + "\n"


def _parse(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix == ".toml":
            return tomllib.loads(text)
        doc = json.loads(text)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise IRFormatError(f"{path}: {e}") from e
    if not isinstance(doc, dict):
        raise IRFormatError(f"{path}: top level must be an object")
    return doc


def _write(doc: dict, path: Path) -> None:
    # render before touching the file so a failure leaves nothing behind
    text = _render(doc, path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def save_definitions(ir: DefinitionsIR, path: Path) -> None:
    _write(ir.to_dict(), Path(path))


def save_layout(ir: LayoutIR, path: Path) -> None:
    _write(ir.to_dict(), Path(path))


def load_definitions(path: Path) -> DefinitionsIR:
    path = Path(path)
    doc = _parse(path)
    try:
        return DefinitionsIR.from_dict(doc)
    except IRFormatError as e:
        raise IRFormatError(f"{path}: {e}") from e


def load_layout(path: Path) -> LayoutIR:
    path = Path(path)
    doc = _parse(path)
    try:
        return LayoutIR.from_dict(doc)
    except IRFormatError as e:
        raise IRFormatError(f"{path}: {e}") from e
