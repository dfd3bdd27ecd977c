import logging
import os
import sys
from clang.cindex import Config

__version__ = "0.4.0"

logger = logging.getLogger(__name__)

_LIBRARY_NAMES = ("libclang.so", "libclang.dylib")


def _auto_set_libclang():
    """Point clang.cindex at a libclang before the first Index is created."""
    if Config.loaded:
        return
    libclang_path = os.environ.get("LIBCLANG_PATH")
    if not libclang_path:
        for name in _LIBRARY_NAMES:
            candidate = os.path.join(sys.prefix, "lib", name)
            if os.path.exists(candidate):
                libclang_path = candidate
                break
    if not libclang_path:
        # the libclang wheel ships its own library; let cindex find it
        return
    logger.debug("using libclang at %s", libclang_path)
    Config.set_library_file(libclang_path)

# Do NOT call here unconditionally; generation runs without libclang
