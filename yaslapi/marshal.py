"""
Value Marshaling
================

Recursive conversion between stack values and owned `Object`s.

`materialize()` consumes exactly the top value, descending into lists and
tables. If an expected type is given and does not match, it raises before
touching the stack.

`push_object()` is the inverse: it leaves exactly one new value on top.
"""

import logging
from typing import Any, Dict, List, Optional

from . import bridge
from .errors import TypeMismatchError
from .names import get_registry
from .objects import Foreign, Key, Kind, Object
from .types import Type

logger = logging.getLogger(__name__)

# Tags that do not map onto an Object kind and are materialized as undef.
_OPAQUE = (Type.FN, Type.CLOSURE, Type.CFN)

# Tag for userdata pushed from a Foreign without a tag; read back as None.
UNTAGGED = "yaslapi.untagged"


class Marshaler:
    """Materialize / push mixin; requires StackProtocol."""

    def materialize(self, expected: Optional[Type] = None) -> Object:
        """
        Pop the top value into an owned Object.

        Args:
            expected: If given, the top must have this (normalized) type.

        Raises:
            TypeMismatchError: The top is not of the expected type; nothing
                has been popped.
            InternalConsistencyError: A table handed back an unhashable key.
        """
        tag = self.peek_type()
        if expected is not None and tag != expected.normalized():
            raise TypeMismatchError(expected.normalized(), tag)

        if tag == Type.BOOL:
            return Object.bool(self.pop_bool())
        elif tag == Type.INT:
            return Object.int(self.pop_int())
        elif tag == Type.FLOAT:
            return Object.float(self.pop_float())
        elif tag == Type.STR:
            return Object.str(self.pop_str() or "")
        elif tag == Type.LIST:
            return Object(Kind.LIST, self._materialize_list())
        elif tag == Type.TABLE:
            return Object(Kind.TABLE, self._materialize_table())
        elif tag == Type.USERDATA:
            foreign_tag = self._userdata_tag()
            return Object(Kind.USERDATA, Foreign(self.pop_userdata() or 0, foreign_tag))
        elif tag == Type.USERPTR:
            return Object.userptr(self.pop_userptr() or 0)

        if tag in _OPAQUE:
            logger.debug(f"Materializing {tag.name.lower()} as undef")
        self.drop_top()
        return Object.undef()

    def _materialize_list(self) -> List[Object]:
        # Copy the list so `length()` does not consume the original.
        self.duplicate_top()
        self.length()
        n = self.pop_int()

        items = []
        for i in range(n):
            self.list_get(i)
            items.append(self.materialize())

        self.drop_top()
        return items

    def _materialize_table(self) -> Dict[Key, Object]:
        entries = {}
        self.push_undef()
        while self.table_iterate_next():
            value = self.materialize()
            # Keep the key on the stack as the cursor for the next step.
            self.duplicate_top()
            key = Key.from_object(self.materialize())
            entries[key] = value

        self.drop_top()
        return entries

    def _userdata_tag(self) -> Optional[str]:
        # The runtime compares tags by pointer, so probe every interned tag.
        for tag in get_registry().tags():
            if self.is_userdata(tag):
                return None if tag.text == UNTAGGED else tag.text
        return None

    def push_object(self, obj: Any):
        """Push an Object (or plain Python value) as one new stack value."""
        obj = Object.from_python(obj)
        kind = obj.kind

        if kind is Kind.UNDEF:
            self.push_undef()
        elif kind is Kind.BOOL:
            self.push_bool(obj.value)
        elif kind is Kind.INT:
            self.push_int(obj.value)
        elif kind is Kind.FLOAT:
            self.push_float(obj.value)
        elif kind is Kind.STR:
            self.push_str(obj.value)
        elif kind is Kind.LIST:
            self.push_list()
            for item in obj.value:
                self.push_object(item)
                self.list_append()
        elif kind is Kind.TABLE:
            self.push_table()
            for key, item in obj.value.items():
                self.push_object(key.to_object())
                self.push_object(item)
                self.table_insert()
        elif kind is Kind.USERDATA:
            # No destructor: the address stays owned by whoever produced it.
            self.push_userdata(obj.value.address, obj.value.tag or UNTAGGED)
        elif kind is Kind.USERPTR:
            self.push_userptr(obj.value)

    def pop_global(self, name, expected: Optional[Type] = None) -> Object:
        """Load a global and materialize it."""
        self.load_global(name)
        try:
            return self.materialize(expected)
        except TypeMismatchError:
            self.drop_top()
            raise

    def call_global(self, name, *args) -> Object:
        """
        Call a global function with host values and materialize its result.

        The function must leave exactly one result.
        """
        self.load_global(name)
        for arg in args:
            self.push_object(arg)
        self.call_function(len(args))
        return self.materialize()

    def peek_pyobject(self) -> Any:
        """Return the Python object boxed in the userdata on top."""
        address = self.peek_userdata()
        if address is None:
            return None
        return bridge.unbox(address)

    def pop_pyobject(self) -> Any:
        address = self.pop_userdata()
        if address is None:
            return None
        return bridge.unbox(address)
