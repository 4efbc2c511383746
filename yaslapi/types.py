"""
Runtime value tags as they appear on the YASL stack.
"""

from enum import IntEnum


class Type(IntEnum):
    """Stack value tags (matches yasl_types.h)."""
    END = -1
    UNDEF = 0
    FLOAT = 1
    INT = 2
    BOOL = 3
    STR = 4
    STR_W = 5
    LIST = 6
    LIST_W = 7
    TABLE = 8
    TABLE_W = 9
    FN = 10
    CLOSURE = 11
    CFN = 12
    USERPTR = 13
    USERDATA = 14
    USERDATA_W = 15

    def normalized(self) -> "Type":
        """Map weak-reference variants onto their strong kind."""
        return _STRONG.get(self, self)

    @classmethod
    def from_code(cls, code: int) -> "Type":
        """Convert a raw tag, treating unknown tags as UNDEF."""
        try:
            return cls(code).normalized()
        except ValueError:
            return cls.UNDEF


_STRONG = {
    Type.STR_W: Type.STR,
    Type.LIST_W: Type.LIST,
    Type.TABLE_W: Type.TABLE,
    Type.USERDATA_W: Type.USERDATA,
}
