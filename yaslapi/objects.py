"""
Host-side YASL Values
=====================

Owned copies of values taken off the stack. Lists and tables are copied out
by value, so an `Object` never aliases anything still living in the runtime.

`Key` is the hashable subset usable as table keys. Floats are compared and
hashed by their IEEE-754 bit pattern so NaN keys and -0.0 behave consistently
(Python's `float.__eq__` would make two NaN keys distinct and 0.0 == -0.0).
Booleans, integers and floats keep distinct kinds, so `true`, `1` and `1.0`
are three different keys just as they are in the runtime.
"""

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InternalConsistencyError
from .types import Type


class Kind(Enum):
    """Kinds of materialized values."""
    UNDEF = "undef"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STR = "str"
    LIST = "list"
    TABLE = "table"
    USERDATA = "userdata"
    USERPTR = "userptr"

    @property
    def hashable(self) -> bool:
        return self not in (Kind.LIST, Kind.TABLE, Kind.USERDATA)

    @classmethod
    def from_type(cls, tag: Type) -> "Kind":
        return _KIND_FOR_TYPE.get(tag.normalized(), cls.UNDEF)


_KIND_FOR_TYPE = {
    Type.UNDEF: Kind.UNDEF,
    Type.BOOL: Kind.BOOL,
    Type.INT: Kind.INT,
    Type.FLOAT: Kind.FLOAT,
    Type.STR: Kind.STR,
    Type.LIST: Kind.LIST,
    Type.TABLE: Kind.TABLE,
    Type.USERDATA: Kind.USERDATA,
    Type.USERPTR: Kind.USERPTR,
}


def float_bits(value: float) -> int:
    """IEEE-754 bit pattern of a double."""
    return struct.unpack("<q", struct.pack("<d", value))[0]


@dataclass(frozen=True)
class Foreign:
    """Opaque runtime-owned pointer plus the type tag it was pushed with."""
    address: int
    tag: Optional[str] = None

    def __repr__(self):
        tag = f", tag={self.tag!r}" if self.tag else ""
        return f"Foreign(0x{self.address:x}{tag})"


def _canonical(kind: "Kind", value: Any) -> Any:
    if kind is Kind.FLOAT:
        return float_bits(value)
    return value


@dataclass(frozen=True, eq=False)
class Object:
    """A materialized YASL value.

    Payloads by kind:
        UNDEF     None
        BOOL      bool
        INT       int (64-bit signed)
        FLOAT     float
        STR       str
        LIST      list of Object
        TABLE     dict of Key -> Object
        USERDATA  Foreign (address + tag)
        USERPTR   int address
    """
    kind: Kind
    value: Any = None

    # Constructors
    @classmethod
    def undef(cls) -> "Object":
        return cls(Kind.UNDEF)

    @classmethod
    def bool(cls, value: bool) -> "Object":
        return cls(Kind.BOOL, bool(value))

    @classmethod
    def int(cls, value: int) -> "Object":
        return cls(Kind.INT, int(value))

    @classmethod
    def float(cls, value: float) -> "Object":
        return cls(Kind.FLOAT, float(value))

    @classmethod
    def str(cls, value: str) -> "Object":
        return cls(Kind.STR, value)

    @classmethod
    def list(cls, items) -> "Object":
        return cls(Kind.LIST, list(items))

    @classmethod
    def table(cls, entries) -> "Object":
        return cls(Kind.TABLE, dict(entries))

    @classmethod
    def userdata(cls, address, tag=None) -> "Object":
        return cls(Kind.USERDATA, Foreign(address, tag))

    @classmethod
    def userptr(cls, address) -> "Object":
        return cls(Kind.USERPTR, address)

    @classmethod
    def from_python(cls, value: Any) -> "Object":
        """Convert a plain Python value (None/bool/int/float/str/list/tuple/dict)."""
        if isinstance(value, Object):
            return value
        if value is None:
            return cls.undef()
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return cls.bool(value)
        if isinstance(value, int):
            return cls.int(value)
        if isinstance(value, float):
            return cls.float(value)
        if isinstance(value, str):
            return cls.str(value)
        if isinstance(value, (list, tuple)):
            return cls.list(cls.from_python(v) for v in value)
        if isinstance(value, dict):
            return cls.table(
                (Key.from_python(k), cls.from_python(v)) for k, v in value.items()
            )
        if isinstance(value, Foreign):
            return cls(Kind.USERDATA, value)
        raise TypeError(f"cannot convert {type(value).__name__} to a YASL value")

    def to_python(self) -> Any:
        """Convert to plain Python values (tables become dicts)."""
        if self.kind is Kind.LIST:
            return [item.to_python() for item in self.value]
        if self.kind is Kind.TABLE:
            return {key.to_python(): item.to_python() for key, item in self.value.items()}
        return self.value

    @property
    def hashable(self) -> bool:
        return self.kind.hashable

    def __eq__(self, other):
        if not isinstance(other, Object):
            return NotImplemented
        return self.kind is other.kind and (
            _canonical(self.kind, self.value) == _canonical(other.kind, other.value)
        )

    __hash__ = None

    def __repr__(self):
        if self.kind is Kind.UNDEF:
            return "Object.undef()"
        return f"Object.{self.kind.value}({self.value!r})"


@dataclass(frozen=True, eq=False)
class Key:
    """Hashable YASL value used as a table key."""
    kind: Kind
    value: Any = None

    def __post_init__(self):
        if not self.kind.hashable:
            raise TypeError(f"{self.kind.value} values cannot be table keys")

    @classmethod
    def from_object(cls, obj: Object) -> "Key":
        """
        Restrict an Object to a key.

        Raises:
            InternalConsistencyError: If the object's kind is not hashable.
        """
        if not obj.kind.hashable:
            raise InternalConsistencyError(
                f"runtime produced a {obj.kind.value} table key"
            )
        return cls(obj.kind, obj.value)

    @classmethod
    def from_python(cls, value: Any) -> "Key":
        if isinstance(value, Key):
            return value
        obj = Object.from_python(value)
        if not obj.kind.hashable:
            raise TypeError(f"{obj.kind.value} values cannot be table keys")
        return cls(obj.kind, obj.value)

    def to_object(self) -> Object:
        return Object(self.kind, self.value)

    def to_python(self) -> Any:
        return self.value

    def __eq__(self, other):
        if not isinstance(other, Key):
            return NotImplemented
        return self.kind is other.kind and (
            _canonical(self.kind, self.value) == _canonical(other.kind, other.value)
        )

    def __hash__(self):
        return hash((self.kind, _canonical(self.kind, self.value)))

    def __repr__(self):
        return f"Key.{self.kind.value}({self.value!r})"


Table = Dict[Key, Object]
Items = List[Object]
