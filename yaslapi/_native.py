"""
YASL C API - ctypes Bindings
============================

Loads the YASL shared library and declares the signatures of the C functions
the binding uses. Nothing here knows about Python-side values; the `State`
classes are the only callers.

Usage:
    from yaslapi._native import load_library

    lib = load_library()
    handle = lib.YASL_newstate_bb(b"echo 1;", 7)
"""

import ctypes
import ctypes.util
import logging
import os
import platform
import threading
from ctypes import (
    CFUNCTYPE, POINTER, Structure,
    c_bool, c_char_p, c_double, c_int, c_int64, c_size_t, c_uint, c_void_p,
)
from pathlib import Path
from typing import Dict, List, Optional

from .config import Config
from .errors import LibraryNotFoundError

logger = logging.getLogger(__name__)


# =============================================================================
# CALLBACK TYPES AND STRUCTURES (match yasl.h / yasl_aux.h)
# =============================================================================

# int (*YASL_cfn)(struct YASL_State *)
CFN = CFUNCTYPE(c_int, c_void_p)

# void (*destructor)(struct YASL_State *, void *)
USERDATA_DESTRUCTOR = CFUNCTYPE(None, c_void_p, c_void_p)


class YASLXFunction(Structure):
    """Entry of a YASLX_tablesetfunctions array; a zeroed entry ends the array."""
    _fields_ = [
        ("name", c_char_p),
        ("fn", CFN),
        ("args", c_int),
    ]


# =============================================================================
# LIBRARY LOADING
# =============================================================================

def _library_names() -> List[str]:
    system = platform.system()
    if system == "Darwin":
        return ["libyasl.dylib"]
    elif system == "Windows":
        return ["yasl.dll", "libyasl.dll"]
    return ["libyasl.so"]


def find_library(config: Optional[Config] = None) -> Optional[Path]:
    """Find the YASL shared library.

    Args:
        config: Settings holding an optional explicit library path.

    Returns:
        Path to the library, or None if it cannot be found.
    """
    config = config or Config.from_env()
    if config.library_path is not None:
        return config.library_path if config.library_path.exists() else None

    this_dir = Path(__file__).parent
    search_paths = [
        this_dir,
        this_dir.parent / "yasl" / "build",
        this_dir.parent.parent / "yasl" / "build",
        Path.cwd() / "build",
        Path.cwd(),
        Path("/usr/local/lib"),
    ]

    for var in ("LD_LIBRARY_PATH", "DYLD_LIBRARY_PATH"):
        for p in os.environ.get(var, "").split(os.pathsep):
            if p:
                search_paths.insert(0, Path(p))

    for search_path in search_paths:
        for lib_name in _library_names():
            lib_path = search_path / lib_name
            if lib_path.exists():
                return lib_path

    found = ctypes.util.find_library("yasl")
    return Path(found) if found else None


_libs: Dict[str, ctypes.CDLL] = {}
_libs_lock = threading.Lock()


def load_library(path: Optional[Path] = None) -> ctypes.CDLL:
    """Get or load the YASL library, with signatures declared.

    Raises:
        LibraryNotFoundError: If no library can be located.
    """
    if path is None:
        path = find_library()
        if path is None:
            raise LibraryNotFoundError(
                "Could not find libyasl. Build YASL and set YASLAPI_LIBRARY "
                "to the shared library path."
            )

    key = str(path)
    with _libs_lock:
        lib = _libs.get(key)
        if lib is None:
            logger.debug(f"Loading YASL library from {key}")
            lib = ctypes.CDLL(key)
            _setup_bindings(lib)
            _libs[key] = lib
        return lib


def is_available() -> bool:
    """Check if the YASL library can be loaded."""
    try:
        load_library()
        return True
    except (LibraryNotFoundError, OSError, AttributeError):
        return False


def _libc():
    name = ctypes.util.find_library("c") or ("msvcrt" if platform.system() == "Windows" else None)
    return ctypes.CDLL(name)


def _setup_bindings(lib):
    """Set up ctypes function signatures."""
    S = c_void_p

    # State lifecycle
    lib.YASL_newstate.argtypes = [c_char_p]
    lib.YASL_newstate.restype = c_void_p

    lib.YASL_newstate_bb.argtypes = [c_char_p, c_size_t]
    lib.YASL_newstate_bb.restype = c_void_p

    lib.YASL_resetstate.argtypes = [S, c_char_p]
    lib.YASL_resetstate.restype = c_int

    lib.YASL_resetstate_bb.argtypes = [S, c_char_p, c_size_t]
    lib.YASL_resetstate_bb.restype = c_int

    lib.YASL_delstate.argtypes = [S]
    lib.YASL_delstate.restype = c_int

    # Compilation / execution
    for fn in ("YASL_compile", "YASL_execute", "YASL_execute_REPL", "YASLX_decllibs"):
        getattr(lib, fn).argtypes = [S]
        getattr(lib, fn).restype = c_int

    # Globals and metatables
    for fn in ("YASL_declglobal", "YASL_loadglobal", "YASL_setglobal",
               "YASL_registermt", "YASL_loadmt"):
        getattr(lib, fn).argtypes = [S, c_char_p]
        getattr(lib, fn).restype = c_int

    lib.YASL_setmt.argtypes = [S]
    lib.YASL_setmt.restype = c_int

    # Stack manipulation
    lib.YASL_duptop.argtypes = [S]
    lib.YASL_duptop.restype = c_int

    lib.YASL_pop.argtypes = [S]
    lib.YASL_pop.restype = None

    lib.YASL_len.argtypes = [S]
    lib.YASL_len.restype = c_int

    lib.YASL_peektype.argtypes = [S]
    lib.YASL_peektype.restype = c_int

    lib.YASL_peekntype.argtypes = [S, c_uint]
    lib.YASL_peekntype.restype = c_int

    lib.YASL_peektypename.argtypes = [S]
    lib.YASL_peektypename.restype = c_char_p

    # Type probes
    for name in ("undef", "bool", "float", "int", "str", "list", "table", "userptr"):
        probe = getattr(lib, f"YASL_is{name}")
        probe.argtypes = [S]
        probe.restype = c_bool

        probe_n = getattr(lib, f"YASL_isn{name}")
        probe_n.argtypes = [S, c_uint]
        probe_n.restype = c_bool

    lib.YASL_isuserdata.argtypes = [S, c_char_p]
    lib.YASL_isuserdata.restype = c_bool

    lib.YASL_isnuserdata.argtypes = [S, c_char_p, c_uint]
    lib.YASL_isnuserdata.restype = c_bool

    # Push
    lib.YASL_pushundef.argtypes = [S]
    lib.YASL_pushbool.argtypes = [S, c_bool]
    lib.YASL_pushint.argtypes = [S, c_int64]
    lib.YASL_pushfloat.argtypes = [S, c_double]
    lib.YASL_pushlstr.argtypes = [S, c_char_p, c_size_t]
    lib.YASL_pushlist.argtypes = [S]
    lib.YASL_pushtable.argtypes = [S]
    lib.YASL_pushuserptr.argtypes = [S, c_void_p]
    lib.YASL_pushuserdata.argtypes = [S, c_void_p, c_char_p, USERDATA_DESTRUCTOR]
    lib.YASL_pushcfunction.argtypes = [S, CFN, c_int]
    for fn in ("YASL_pushundef", "YASL_pushbool", "YASL_pushint", "YASL_pushfloat",
               "YASL_pushlstr", "YASL_pushlist", "YASL_pushtable", "YASL_pushuserptr",
               "YASL_pushuserdata", "YASL_pushcfunction"):
        getattr(lib, fn).restype = None

    # Peek / pop
    for prefix in ("peek", "pop"):
        getattr(lib, f"YASL_{prefix}bool").restype = c_bool
        getattr(lib, f"YASL_{prefix}int").restype = c_int64
        getattr(lib, f"YASL_{prefix}float").restype = c_double
        # Strings are malloc'd copies owned by the caller.
        getattr(lib, f"YASL_{prefix}cstr").restype = c_void_p
        getattr(lib, f"YASL_{prefix}userdata").restype = c_void_p
        getattr(lib, f"YASL_{prefix}userptr").restype = c_void_p
        for kind in ("bool", "int", "float", "cstr", "userdata", "userptr"):
            getattr(lib, f"YASL_{prefix}{kind}").argtypes = [S]

    # Lists and tables
    lib.YASL_listget.argtypes = [S, c_int64]
    lib.YASL_listget.restype = c_int

    lib.YASL_listpush.argtypes = [S]
    lib.YASL_listpush.restype = c_int

    lib.YASL_tablenext.argtypes = [S]
    lib.YASL_tablenext.restype = c_bool

    lib.YASL_tableset.argtypes = [S]
    lib.YASL_tableset.restype = c_int

    lib.YASLX_tablesetfunctions.argtypes = [S, POINTER(YASLXFunction)]
    lib.YASLX_tablesetfunctions.restype = None

    # Not exported by older runtimes.
    if hasattr(lib, "YASL_functioncall"):
        lib.YASL_functioncall.argtypes = [S, c_int]
        lib.YASL_functioncall.restype = c_int

    # Releases strings returned by peekcstr / popcstr.
    free = _libc().free
    free.argtypes = [c_void_p]
    free.restype = None
    lib.free = free
