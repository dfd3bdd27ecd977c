"""
ctrlgen.config

Extraction settings, loaded from the [extract] table of a TOML file:

    [extract]
    include_dirs = ["src/common/sdk/nvidia/inc"]
    header_glob = "**/ctrl*.h"
    exclude = ["**/deprecated/**"]
    flatten_nested = true

    [extract.defines]
    NV_VERSION_STRING = "\"1.0\""
    MAKE_NV64TYPES_8BYTES_ALIGNED = 1
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional
import tomllib

# typedef names treated as integers even when clang cannot prove it
SPECIAL_TYPES = ("NvU32", "NvU64", "NvU16", "NvU8", "NvBool", "char", "NvHandle", "int")


class ConfigError(ValueError):
    pass


@dataclass
class ExtractConfig:
    include_dirs: list[str] = field(default_factory=list)
    defines: dict[str, Optional[str]] = field(default_factory=dict)
    header_glob: str = "**/*.h"
    exclude: list[str] = field(default_factory=list)
    main_file_only: bool = True
    flatten_nested: bool = True
    special_types: tuple[str, ...] = SPECIAL_TYPES
    extra_args: list[str] = field(default_factory=list)

    def clang_args(self, root: Optional[Path] = None) -> list[str]:
        args = []
        for inc in self.include_dirs:
            p = Path(inc)
            if root is not None and not p.is_absolute():
                p = Path(root) / p
            args.append(f"-I{p}")
        for name, val in self.defines.items():
            args.append(f"-D{name}" if val is None else f"-D{name}={val}")
        args.extend(self.extra_args)
        return args


def _coerce(name: str, val):
    if name == "defines":
        if not isinstance(val, dict):
            raise ConfigError("extract.defines must be a table")
        # TOML has no null; true means "defined without a value"
        return {k: (None if v is True else str(v)) for k, v in val.items()}
    if name == "special_types":
        return tuple(val)
    return val


def config_from_dict(d: dict) -> ExtractConfig:
    table = d.get("extract", {})
    known = {f.name for f in fields(ExtractConfig)}
    unknown = sorted(set(table) - known)
    if unknown:
        raise ConfigError(f"unknown extract keys: {', '.join(unknown)}")
    return ExtractConfig(**{k: _coerce(k, v) for k, v in table.items()})


def load_config(path: Path) -> ExtractConfig:
    with open(path, "rb") as f:
        try:
            d = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"{path}: {e}") from e
    return config_from_dict(d)
