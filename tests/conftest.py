"""Shared fixtures: in-memory header extraction and generated-module loading."""

import pytest
from clang.cindex import Index, LibclangError

from ctrlgen import _auto_set_libclang
from ctrlgen.extract import IRBuilder

NV_TYPES = """
typedef unsigned char      NvU8;
typedef unsigned short     NvU16;
typedef unsigned int       NvU32;
typedef unsigned long long NvU64;
typedef NvU8               NvBool;
typedef NvU32              NvHandle;
"""


@pytest.fixture(scope="session")
def clang_index():
    _auto_set_libclang()
    try:
        return Index.create()
    except LibclangError as e:
        pytest.skip(f"libclang shared library not available: {e}")


@pytest.fixture
def extract(clang_index):
    """Run the IR builder over header text; returns the builder."""
    def _extract(text, name="ctrl_test.h", version="1.2.3", config=None, prelude=True):
        builder = IRBuilder(version, config)
        builder.add_source(name, (NV_TYPES if prelude else "") + text)
        return builder
    return _extract


@pytest.fixture
def load_generated():
    """Execute a generated Python module and return its namespace."""
    def _load(text: str) -> dict:
        ns: dict = {}
        exec(compile(text, "<generated>", "exec"), ns)
        return ns
    return _load
