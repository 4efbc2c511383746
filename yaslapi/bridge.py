"""
Foreign Function Bridge
=======================

Lets Python callables be called by the runtime as C functions, and lets the
runtime own Python objects as userdata.

A foreign function receives a `StateView`: a non-owning wrapper around the
raw `YASL_State *` the runtime passes in. Arguments sit on the stack with the
left-most argument lowest and the right-most on top. The function pushes its
results and returns how many it pushed.

    @cfunction(args=2)
    def add(state):
        b = state.pop_int()
        a = state.pop_int()
        state.push_int(a + b)
        return 1

Exceptions never cross into C. A `YaslError` is returned to the runtime as
the negated error kind; any other exception is logged with its traceback and
returned as `-ErrorKind.ERROR`.

ctypes callbacks are collected if nothing references them while the runtime
still holds the pointer, so every callback made here is retained for the life
of the process, once per Python callable. `owned_cfunction` is the exception:
its callback lives only as long as the caller keeps it.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from ._native import CFN, USERDATA_DESTRUCTOR, YASLXFunction
from .errors import ErrorKind, YaslError
from .names import get_registry

logger = logging.getLogger(__name__)

VARIADIC = -1


# =============================================================================
# HANDLE -> LIBRARY
# =============================================================================

_libraries: Dict[int, Any] = {}
_libraries_lock = threading.Lock()


def attach(raw: int, lib):
    """Record which loaded library a live handle belongs to."""
    with _libraries_lock:
        _libraries[raw] = lib


def detach(raw: int):
    with _libraries_lock:
        _libraries.pop(raw, None)


def library_for(raw: int):
    with _libraries_lock:
        lib = _libraries.get(raw)
    if lib is None:
        from ._native import load_library
        lib = load_library()
    return lib


def _view(raw: int):
    from .state import StateView
    return StateView(library_for(raw), raw)


# =============================================================================
# FOREIGN FUNCTIONS
# =============================================================================

@dataclass(frozen=True)
class CFunction:
    """A C-callable function plus its declared arity."""
    cfn: Any
    args: int = VARIADIC
    name: Optional[str] = None
    function: Optional[Callable] = None

    def __repr__(self):
        return f"CFunction({self.name or '<anonymous>'}, args={self.args})"


_trampolines: Dict[Callable, Any] = {}
_trampolines_lock = threading.Lock()


def _make_trampoline(function: Callable):
    name = getattr(function, "__name__", repr(function))

    def call(raw):
        try:
            count = function(_view(raw))
        except YaslError as e:
            logger.warning(f"Foreign function {name} failed with {e.kind.name}: {e}")
            return -int(e.kind)
        except Exception:
            logger.exception(f"Unhandled error in foreign function {name}")
            return -int(ErrorKind.ERROR)
        return 0 if count is None else int(count)

    return CFN(call)


def trampoline_for(function: Callable):
    """Get the C callback wrapping a Python callable (created once)."""
    if isinstance(function, CFN):
        return function
    with _trampolines_lock:
        cfn = _trampolines.get(function)
        if cfn is None:
            cfn = _make_trampoline(function)
            _trampolines[function] = cfn
        return cfn


def cfunction(args: int = VARIADIC, name: Optional[str] = None):
    """Decorator turning `function(state) -> int` into a CFunction."""
    def decorate(function: Callable) -> CFunction:
        return CFunction(
            cfn=trampoline_for(function),
            args=args,
            name=name or function.__name__,
            function=function,
        )
    return decorate


def owned_cfunction(function: Callable, args: int = VARIADIC, name: Optional[str] = None) -> CFunction:
    """
    Like `cfunction`, but the callback is not retained by this module.

    The caller must keep the returned CFunction alive for as long as any
    state can call it.
    """
    return CFunction(
        cfn=_make_trampoline(function),
        args=args,
        name=name or getattr(function, "__name__", None),
        function=function,
    )


# =============================================================================
# METATABLE FUNCTION BATCHES
# =============================================================================

@dataclass
class MetatableFunction:
    """
    A named function to install into a table.

    The arity is signed: negative means variadic. When omitted it is taken
    from a CFunction, or variadic otherwise.
    """
    name: str
    function: Any
    args: Optional[int] = None

    def resolve(self):
        """Return (C callback, arity)."""
        if isinstance(self.function, CFunction):
            args = self.function.args if self.args is None else self.args
            return self.function.cfn, args
        args = VARIADIC if self.args is None else self.args
        return trampoline_for(self.function), args


def function_array(functions: Iterable[MetatableFunction]):
    """Build a sentinel-terminated YASLX_function array, interning each name."""
    functions = list(functions)
    registry = get_registry()
    entries = (YASLXFunction * (len(functions) + 1))()
    for i, f in enumerate(functions):
        cfn, args = f.resolve()
        entries[i].name = registry.intern(f.name).pointer
        entries[i].fn = cfn
        entries[i].args = args
    # entries[len(functions)] stays zeroed: the sentinel.
    return entries


# =============================================================================
# USERDATA
# =============================================================================

_destructors: Dict[Callable, Any] = {}


def destructor_for(destructor: Callable):
    """Get the C destructor wrapping `destructor(state, address)`."""
    if isinstance(destructor, USERDATA_DESTRUCTOR):
        return destructor
    with _trampolines_lock:
        dtor = _destructors.get(destructor)
        if dtor is None:
            name = getattr(destructor, "__name__", repr(destructor))

            def release(raw, address):
                try:
                    destructor(_view(raw), address)
                except Exception:
                    logger.exception(f"Unhandled error in userdata destructor {name}")

            dtor = USERDATA_DESTRUCTOR(release)
            _destructors[destructor] = dtor
        return dtor


# Python objects owned by the runtime, keyed by id(obj): [obj, references].
_boxes: Dict[int, List[Any]] = {}
_boxes_lock = threading.Lock()


def box(obj: Any) -> int:
    """Keep `obj` alive for one more runtime reference and return its address."""
    address = id(obj)
    with _boxes_lock:
        entry = _boxes.get(address)
        if entry is None:
            _boxes[address] = [obj, 1]
        else:
            entry[1] += 1
    return address


def unbox(address: int) -> Any:
    """Return the Python object boxed at `address`."""
    with _boxes_lock:
        entry = _boxes.get(address)
    if entry is None:
        raise ValueError(f"no boxed object at 0x{address:x}")
    return entry[0]


def boxed_count() -> int:
    with _boxes_lock:
        return len(_boxes)


def _release_box(raw, address):
    with _boxes_lock:
        entry = _boxes.get(address)
        if entry is None:
            logger.warning(f"Release of unknown boxed object 0x{address:x}")
            return
        entry[1] -= 1
        if entry[1] == 0:
            del _boxes[address]


_unbox_destructor = USERDATA_DESTRUCTOR(_release_box)


def unbox_destructor():
    return _unbox_destructor
