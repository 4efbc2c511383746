"""
YASL State
==========

`State` owns exactly one runtime instance (`YASL_State *`). The handle is
never null once constructed and is released exactly once: by `close()`,
on leaving a `with` block, or when the object is collected.

`StateView` wraps a raw handle handed to a foreign function by the runtime.
It offers the same stack operations but never releases the handle.

A state is single-threaded: callers must serialize every operation on one
state. Different states may be driven from different threads.

Usage:
    from yaslapi import State

    with State.from_source("echo answer;") as state:
        state.declare_libs()
        state.push_int(42)
        state.declare_global("answer")
        state.execute()
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

from . import bridge
from ._native import load_library
from .errors import ErrorKind, InitError, StateClosedError, check
from .marshal import Marshaler
from .stack import StackProtocol

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def _encode_source(source: Union[str, bytes]) -> bytes:
    return source.encode("utf-8") if isinstance(source, str) else bytes(source)


def _check_readable(path: PathLike) -> bytes:
    """Raise OSError if the script cannot be read; return the encoded path."""
    with open(path, "rb"):
        pass
    return os.fsencode(path)


class StateView(StackProtocol, Marshaler):
    """Non-owning view of a runtime handle (used inside foreign functions)."""

    def __init__(self, lib, raw: int):
        if not raw:
            raise StateClosedError("null YASL_State handle")
        self._lib = lib
        self._raw = raw

    @property
    def _handle(self):
        return self._raw

    @property
    def raw(self) -> int:
        return self._raw

    def __repr__(self):
        return f"StateView(0x{self._raw:x})"


class State(StackProtocol, Marshaler):
    """
    Owning wrapper around one YASL runtime instance.

    Construct with `State.from_source()` or `State.from_path()`; `State()`
    starts from empty source.
    """

    def __init__(self, source: Union[str, bytes] = "", lib=None):
        """
        Create a state bound to in-memory program text.

        Args:
            source: Program text.
            lib: Loaded C function table. Defaults to `load_library()`.

        Raises:
            InitError: The runtime failed to allocate the state.
        """
        self._raw = None
        self._lib = lib if lib is not None else load_library()
        data = _encode_source(source)
        raw = self._lib.YASL_newstate_bb(data, len(data))
        self._adopt(raw, data)

    @classmethod
    def from_source(cls, source: Union[str, bytes], lib=None) -> "State":
        return cls(source, lib=lib)

    @classmethod
    def from_path(cls, path: PathLike, lib=None) -> "State":
        """
        Create a state bound to a script file.

        Raises:
            OSError: The file cannot be read.
            InitError: The runtime failed to allocate the state.
        """
        encoded = _check_readable(path)
        state = cls.__new__(cls)
        state._raw = None
        state._lib = lib if lib is not None else load_library()
        state._adopt(state._lib.YASL_newstate(encoded), encoded)
        return state

    def _adopt(self, raw: Optional[int], source: bytes):
        if not raw:
            raise InitError("runtime failed to allocate a YASL_State")
        self._raw = raw
        # The runtime may read from the buffer until the next reset.
        self._source = source
        bridge.attach(raw, self._lib)
        logger.debug(f"Created YASL state 0x{raw:x}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def _handle(self):
        if not self._raw:
            raise StateClosedError("YASL state has been closed")
        return self._raw

    @property
    def raw(self) -> int:
        return self._handle

    @property
    def closed(self) -> bool:
        return not self._raw

    def close(self):
        """Release the runtime instance. Later calls do nothing."""
        raw, self._raw = self._raw, None
        if not raw:
            return
        try:
            # Userdata destructors run inside delstate and still need the
            # handle -> library mapping.
            code = self._lib.YASL_delstate(raw)
        finally:
            bridge.detach(raw)
            self._source = None
        logger.debug(f"Closed YASL state 0x{raw:x}")
        check(code, "close")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        if getattr(self, "_raw", None):
            try:
                self.close()
            except Exception as e:
                logger.warning(f"Error closing YASL state during collection: {e}")

    def view(self) -> StateView:
        """Borrowed view of this state's handle."""
        return StateView(self._lib, self._handle)

    # =========================================================================
    # PROGRAM TEXT
    # =========================================================================

    def reset_from_source(self, source: Union[str, bytes]) -> ErrorKind:
        """Discard compiled state and bind new program text; globals are kept."""
        data = _encode_source(source)
        kind = check(self._lib.YASL_resetstate_bb(self._handle, data, len(data)), "reset")
        self._source = data
        return kind

    def reset_from_path(self, path: PathLike) -> ErrorKind:
        encoded = _check_readable(path)
        kind = check(self._lib.YASL_resetstate(self._handle, encoded), "reset")
        self._source = encoded
        return kind

    # =========================================================================
    # COMPILE / EXECUTE
    # =========================================================================

    def compile(self) -> ErrorKind:
        """Compile the bound program without running it."""
        return check(self._lib.YASL_compile(self._handle), "compile")

    def execute(self) -> ErrorKind:
        """Compile if needed and run the program to completion."""
        return check(self._lib.YASL_execute(self._handle), "execute")

    def execute_interactive(self) -> ErrorKind:
        """Like `execute`, but also prints the value of a trailing expression."""
        return check(self._lib.YASL_execute_REPL(self._handle), "execute")

    def __repr__(self):
        if self.closed:
            return "State(closed)"
        return f"State(0x{self._raw:x})"


def open_state(source: Union[str, bytes] = "", lib: Any = None, libs: bool = True) -> State:
    """Create a state from source with the standard library declared."""
    state = State(source, lib=lib)
    if libs:
        try:
            state.declare_libs()
        except Exception:
            state.close()
            raise
    return state
