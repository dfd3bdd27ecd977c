#!/usr/bin/env python3
"""
generate.py

Render the selected part of an IR document as source code.

    ctrlgen-generate layout.json wanted.json nv_ctrl.rs --target rust
    ctrlgen-generate defs.json symbols.txt nv_ctrl.h --target c
"""

import argparse
import logging
from pathlib import Path

from ctrlgen.codegen import TARGET_DOCUMENT, generate
from ctrlgen.irstore import load_definitions, load_layout
from ctrlgen.selection import load_selection


def _depth(text: str):
    if text == "full":
        return None
    depth = int(text)
    if depth < 0:
        raise argparse.ArgumentTypeError("closure depth must be >= 0")
    return depth


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description=__doc__.split("\n\n")[1])
    ap.add_argument("ir", type=Path, help="IR document (.json or .toml)")
    ap.add_argument("selection", type=Path, help="Selection list (.json, .toml or one name per line)")
    ap.add_argument("out", type=Path, help="Output source file")
    ap.add_argument("--target", choices=sorted(TARGET_DOCUMENT), default="rust")
    ap.add_argument("--cmd-prefix", default="NV", help="Prefix of command group names (default: NV)")
    ap.add_argument("--closure-depth", type=_depth, default=1,
                    help="Levels of embedded structs pulled in with a command's params, or 'full'")
    ap.add_argument("-v", "--verbose", action="count", default=0)
    return ap


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING - 10 * min(args.verbose, 2),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if TARGET_DOCUMENT[args.target] == "definitions":
        ir = load_definitions(args.ir)
    else:
        ir = load_layout(args.ir)
    wanted = load_selection(args.selection)

    # render fully before opening the output so a failure writes nothing
    text = generate(args.target, ir, wanted, args.cmd_prefix, args.closure_depth)
    args.out.parent.mkdir(parents=True, exist_ok=True)
    args.out.write_text(text, encoding="utf-8")
    print(f"Wrote {args.out}")


if __name__ == "__main__":
    main()
