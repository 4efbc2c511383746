"""
YASL Stack Protocol
===================

Typed push / probe / peek / pop operations on the implicit value stack of one
state, plus list, table, global and metatable operations.

Stack effects are noted as [-popped, +pushed]. Offsets count from the top
(0 is the top).

`peek_*` and `pop_*` are permissive on purpose: when the top is not of the
requested type they return the zero value of that type (False, 0, 0.0, or
None for strings and pointers) instead of failing, and `pop_*` still removes
the top. Probe with `is_*` first when the type is not known.

Classes mixing this in must provide `_lib` (the loaded C function table) and
`_handle` (the raw `YASL_State *`).
"""

import ctypes
import logging
from typing import Any, Callable, Optional, Union

from . import bridge
from .errors import (
    AlreadyDeclaredError, ErrorKind, PlatformNotSupportedError, UnknownGlobalError,
    UnknownMetatableError, check,
)
from .names import InternedName, get_registry
from .types import Type

logger = logging.getLogger(__name__)

Name = Union[str, InternedName]

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def _name(name: Name) -> InternedName:
    if isinstance(name, InternedName):
        return name
    return get_registry().intern(name)


def _tag(tag: Name) -> InternedName:
    if isinstance(tag, InternedName):
        return tag
    return get_registry().intern_tag(tag)


class StackProtocol:
    """Stack operations shared by owning states and borrowed views."""

    _lib: Any

    @property
    def _handle(self):
        raise NotImplementedError

    # =========================================================================
    # TYPE PROBES [-0, +0]
    # =========================================================================

    def peek_type(self) -> Type:
        """Tag of the top value (weak variants normalized)."""
        return Type.from_code(self._lib.YASL_peektype(self._handle))

    def peek_type_at(self, offset: int) -> Type:
        return Type.from_code(self._lib.YASL_peekntype(self._handle, offset))

    def peek_type_name(self) -> str:
        name = self._lib.YASL_peektypename(self._handle)
        return name.decode("utf-8") if name else ""

    def is_undef(self) -> bool:
        return bool(self._lib.YASL_isundef(self._handle))

    def is_bool(self) -> bool:
        return bool(self._lib.YASL_isbool(self._handle))

    def is_int(self) -> bool:
        return bool(self._lib.YASL_isint(self._handle))

    def is_float(self) -> bool:
        return bool(self._lib.YASL_isfloat(self._handle))

    def is_str(self) -> bool:
        return bool(self._lib.YASL_isstr(self._handle))

    def is_list(self) -> bool:
        return bool(self._lib.YASL_islist(self._handle))

    def is_table(self) -> bool:
        return bool(self._lib.YASL_istable(self._handle))

    def is_userptr(self) -> bool:
        return bool(self._lib.YASL_isuserptr(self._handle))

    def is_userdata(self, tag: Name) -> bool:
        """True if the top is userdata pushed with exactly this tag."""
        return bool(self._lib.YASL_isuserdata(self._handle, _tag(tag).pointer))

    def is_undef_at(self, offset: int) -> bool:
        return bool(self._lib.YASL_isnundef(self._handle, offset))

    def is_bool_at(self, offset: int) -> bool:
        return bool(self._lib.YASL_isnbool(self._handle, offset))

    def is_int_at(self, offset: int) -> bool:
        return bool(self._lib.YASL_isnint(self._handle, offset))

    def is_float_at(self, offset: int) -> bool:
        return bool(self._lib.YASL_isnfloat(self._handle, offset))

    def is_str_at(self, offset: int) -> bool:
        return bool(self._lib.YASL_isnstr(self._handle, offset))

    def is_list_at(self, offset: int) -> bool:
        return bool(self._lib.YASL_isnlist(self._handle, offset))

    def is_table_at(self, offset: int) -> bool:
        return bool(self._lib.YASL_isntable(self._handle, offset))

    def is_userptr_at(self, offset: int) -> bool:
        return bool(self._lib.YASL_isnuserptr(self._handle, offset))

    def is_userdata_at(self, tag: Name, offset: int) -> bool:
        return bool(self._lib.YASL_isnuserdata(self._handle, _tag(tag).pointer, offset))

    # =========================================================================
    # PUSH [-0, +1]
    # =========================================================================

    def push_undef(self):
        self._lib.YASL_pushundef(self._handle)

    def push_bool(self, value: bool):
        self._lib.YASL_pushbool(self._handle, bool(value))

    def push_int(self, value: int):
        """
        Push a 64-bit signed integer.

        Raises:
            OverflowError: `value` does not fit in 64 bits.
        """
        if not INT64_MIN <= value <= INT64_MAX:
            raise OverflowError(f"{value} does not fit in a 64-bit YASL int")
        self._lib.YASL_pushint(self._handle, value)

    def push_float(self, value: float):
        self._lib.YASL_pushfloat(self._handle, float(value))

    def push_str(self, value: Union[str, bytes]):
        """Push a string; the runtime copies the bytes."""
        data = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        self._lib.YASL_pushlstr(self._handle, data, len(data))

    def push_list(self):
        """Push a new empty list."""
        self._lib.YASL_pushlist(self._handle)

    def push_table(self):
        """Push a new empty table."""
        self._lib.YASL_pushtable(self._handle)

    def push_userptr(self, address: Optional[int]):
        """Push a raw pointer. No ownership is implied."""
        self._lib.YASL_pushuserptr(self._handle, address)

    def push_userdata(
        self,
        address: int,
        tag: Name,
        destructor: Optional[Callable[[Any, int], None]] = None,
    ):
        """
        Push a pointer owned by the runtime from now on.

        Args:
            address: Pointer to the data.
            tag: Type tag; interned so later `is_userdata(tag)` probes match.
            destructor: Called exactly once as `destructor(view, address)`
                when the runtime releases the value. Either a Python callable
                or a raw `USERDATA_DESTRUCTOR` callback.
        """
        dtor = bridge.destructor_for(destructor) if destructor is not None else None
        self._lib.YASL_pushuserdata(self._handle, address, _tag(tag).pointer, dtor)

    def push_pyobject(self, obj: Any, tag: Name):
        """Push a Python object as userdata; it stays alive until the runtime drops it."""
        address = bridge.box(obj)
        self._lib.YASL_pushuserdata(
            self._handle, address, _tag(tag).pointer, bridge.unbox_destructor()
        )

    def push_cfunction(self, cfn, args: int):
        """
        Push a C-callable function.

        Args:
            cfn: A `CFN` ctypes callback or a `CFunction`.
            args: Declared arity; negative means variadic.
        """
        if isinstance(cfn, bridge.CFunction):
            cfn = cfn.cfn
        self._lib.YASL_pushcfunction(self._handle, cfn, args)

    def push_function(self, function, args: Optional[int] = None):
        """Push a Python callable `function(view) -> int` as a C function."""
        if isinstance(function, bridge.CFunction):
            self.push_cfunction(function.cfn, function.args if args is None else args)
            return
        wrapped = bridge.trampoline_for(function)
        self.push_cfunction(wrapped, bridge.VARIADIC if args is None else args)

    # =========================================================================
    # PEEK [-0, +0] / POP [-1, +0]
    # =========================================================================

    def peek_bool(self) -> bool:
        return bool(self._lib.YASL_peekbool(self._handle))

    def pop_bool(self) -> bool:
        return bool(self._lib.YASL_popbool(self._handle))

    def peek_int(self) -> int:
        return int(self._lib.YASL_peekint(self._handle))

    def pop_int(self) -> int:
        return int(self._lib.YASL_popint(self._handle))

    def peek_float(self) -> float:
        return float(self._lib.YASL_peekfloat(self._handle))

    def pop_float(self) -> float:
        return float(self._lib.YASL_popfloat(self._handle))

    def peek_str(self) -> Optional[str]:
        return self._take_cstr(self._lib.YASL_peekcstr(self._handle))

    def pop_str(self) -> Optional[str]:
        return self._take_cstr(self._lib.YASL_popcstr(self._handle))

    def peek_userdata(self) -> Optional[int]:
        return self._lib.YASL_peekuserdata(self._handle) or None

    def pop_userdata(self) -> Optional[int]:
        return self._lib.YASL_popuserdata(self._handle) or None

    def peek_userptr(self) -> Optional[int]:
        return self._lib.YASL_peekuserptr(self._handle) or None

    def pop_userptr(self) -> Optional[int]:
        return self._lib.YASL_popuserptr(self._handle) or None

    def _take_cstr(self, address: Optional[int]) -> Optional[str]:
        if not address:
            return None
        try:
            return ctypes.string_at(address).decode("utf-8", errors="replace")
        finally:
            self._lib.free(address)

    # =========================================================================
    # STACK SHAPE
    # =========================================================================

    def duplicate_top(self):
        """Push a copy of the top value. [-0, +1]"""
        check(self._lib.YASL_duptop(self._handle), "duplicate_top")

    def drop_top(self):
        """Remove the top value without reading it. [-1, +0]"""
        self._lib.YASL_pop(self._handle)

    def length(self):
        """Replace the top value by its length. [-1, +1]"""
        check(self._lib.YASL_len(self._handle), "length")

    # =========================================================================
    # LISTS AND TABLES
    # =========================================================================

    def list_get(self, index: int):
        """
        Push `list[index]` for the list on top; negative indices count from
        the end. [-0, +1]

        Raises:
            YaslTypeError: The top is not a list.
            YaslValueError: The index is out of range.
        """
        check(self._lib.YASL_listget(self._handle, index), "list_get")

    def list_append(self):
        """Pop a value and append it to the list below it. [-1, +0]"""
        check(self._lib.YASL_listpush(self._handle), "list_append")

    def table_iterate_next(self) -> bool:
        """
        Advance a table iteration.

        With a key on top and the table below it, pops the key and, if the
        table has a following entry, pushes its key then its value. Start
        from an undef key to get the first entry.

        Returns:
            True if an entry was pushed. [-1, +2] or [-1, +0]
        """
        return bool(self._lib.YASL_tablenext(self._handle))

    def table_insert(self):
        """Pop a value and a key and store them in the table below. [-2, +0]"""
        check(self._lib.YASL_tableset(self._handle), "table_insert")

    def table_set_functions(self, functions):
        """Install MetatableFunction entries into the table on top. [-0, +0]"""
        entries = bridge.function_array(functions)
        self._lib.YASLX_tablesetfunctions(self._handle, entries)

    # =========================================================================
    # GLOBALS
    # =========================================================================

    def declare_global(self, name: Name):
        """
        Declare a new global initialized from the top of the stack. [-1, +0]

        Raises:
            MalformedIdentifierError: `name` is not an identifier.
            AlreadyDeclaredError: A global with this name exists; the stack
                is left unchanged.
        """
        interned = _name(name)
        if self._lib.YASL_loadglobal(self._handle, interned.pointer) == ErrorKind.SUCCESS:
            self.drop_top()
            raise AlreadyDeclaredError(f"global {interned.text!r} is already declared")

        check(self._lib.YASL_declglobal(self._handle, interned.pointer), "declare_global")
        check(self._lib.YASL_setglobal(self._handle, interned.pointer), "declare_global")
        logger.debug(f"Declared global {interned.text}")

    def load_global(self, name: Name):
        """Push the current value of a global. [-0, +1]"""
        interned = _name(name)
        code = self._lib.YASL_loadglobal(self._handle, interned.pointer)
        if code == ErrorKind.ERROR:
            raise UnknownGlobalError(f"no global named {interned.text!r}")
        check(code, "load_global")

    def store_global(self, name: Name):
        """Pop the top into an existing global. [-1, +0]"""
        interned = _name(name)
        code = self._lib.YASL_setglobal(self._handle, interned.pointer)
        if code == ErrorKind.ERROR:
            raise UnknownGlobalError(f"no global named {interned.text!r}")
        check(code, "store_global")

    # =========================================================================
    # METATABLES
    # =========================================================================

    def register_metatable(self, name: Name):
        """Pop a table and register it as a metatable under `name`. [-1, +0]"""
        check(self._lib.YASL_registermt(self._handle, _name(name).pointer), "register_metatable")

    def load_metatable(self, name: Name):
        """Push the metatable registered under `name`. [-0, +1]"""
        interned = _name(name)
        code = self._lib.YASL_loadmt(self._handle, interned.pointer)
        if code == ErrorKind.ERROR:
            raise UnknownMetatableError(f"no metatable named {interned.text!r}")
        check(code, "load_metatable")

    def set_metatable(self):
        """Pop a metatable and attach it to the value below it. [-1, +0]"""
        check(self._lib.YASL_setmt(self._handle), "set_metatable")

    def new_metatable(self, name: Name, functions):
        """Register a metatable built from MetatableFunction entries. [-0, +0]"""
        self.push_table()
        self.duplicate_top()
        self.register_metatable(name)
        self.table_set_functions(functions)
        self.drop_top()

    # =========================================================================
    # CALLS INTO THE RUNTIME
    # =========================================================================

    def call_function(self, nargs: int) -> ErrorKind:
        """
        Call the function sitting below `nargs` arguments.

        The function and its arguments are popped and its results pushed.

        Raises:
            PlatformNotSupportedError: The loaded runtime has no YASL_functioncall.
        """
        call = getattr(self._lib, "YASL_functioncall", None)
        if call is None:
            raise PlatformNotSupportedError("runtime does not export YASL_functioncall")
        return check(call(self._handle, nargs), "call_function")

    # =========================================================================
    # STANDARD LIBRARY
    # =========================================================================

    def declare_libs(self) -> ErrorKind:
        """Load all standard libraries under their default names."""
        return check(self._lib.YASLX_decllibs(self._handle), "declare_libs")
