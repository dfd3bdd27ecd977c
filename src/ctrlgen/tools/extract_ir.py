#!/usr/bin/env python3
"""
extract_ir.py

Parse every control header under a source tree with libclang and write the
definitions and layout IR documents.

    ctrlgen-extract $CTRLGEN_SRCDIR 535.113.01 defs.json layout.json \
        --config extract.toml -I src/common/sdk/nvidia/inc
"""

import argparse
import logging
import os
from pathlib import Path

from ctrlgen.config import ExtractConfig, load_config
from ctrlgen.extract import extract_tree
from ctrlgen.irstore import save_definitions, save_layout


def _define(text: str):
    name, sep, val = text.partition("=")
    return name, (val if sep else None)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description=__doc__.split("\n\n")[1])
    ap.add_argument("root", type=Path, nargs="?",
                    default=os.environ.get("CTRLGEN_SRCDIR"),
                    help="Source tree root (default: $CTRLGEN_SRCDIR)")
    ap.add_argument("version", help="Version string recorded in the IR, e.g. 535.113.01")
    ap.add_argument("defs_out", type=Path, help="Definitions document (.json or .toml)")
    ap.add_argument("layout_out", type=Path, help="Layout document (.json or .toml)")
    ap.add_argument("--config", type=Path, help="TOML file with an [extract] table")
    ap.add_argument("-I", dest="include", action="append", default=[],
                    help="Extra include directory (repeatable)")
    ap.add_argument("-D", dest="define", action="append", default=[],
                    help="Extra macro NAME[=VALUE] (repeatable)")
    ap.add_argument("--glob", help="Header glob relative to the root")
    ap.add_argument("-v", "--verbose", action="count", default=0)
    return ap


def main(argv=None):
    ap = build_parser()
    args = ap.parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING - 10 * min(args.verbose, 2),
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.root is None:
        ap.error("no source root given and CTRLGEN_SRCDIR is not set")

    config = load_config(args.config) if args.config else ExtractConfig()
    config.include_dirs.extend(args.include)
    config.defines.update(_define(d) for d in args.define)
    if args.glob:
        config.header_glob = args.glob

    defs, layout = extract_tree(Path(args.root), args.version, config)

    save_definitions(defs, args.defs_out)
    print(f"Wrote {args.defs_out} ({len(defs.types)} definitions)")
    save_layout(layout, args.layout_out)
    print(f"Wrote {args.layout_out} ({len(layout.defines)} defines, {len(layout.structs)} structs)")


if __name__ == "__main__":
    main()
