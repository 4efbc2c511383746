"""
yaslapi Error Types
===================

Failure taxonomy of the YASL runtime and the errors raised by the binding.

Every status code returned by the runtime goes through `check()`, which
returns the success kind or raises the matching `YaslError` subclass. The
kinds are the runtime's own and are never collapsed into one another.
"""

from enum import IntEnum
from typing import Dict, Optional, Type


class ErrorKind(IntEnum):
    """Status codes returned by the runtime (matches yasl_error.h)."""
    SUCCESS = 0
    MODULE_SUCCESS = 1
    ERROR = 2
    INIT_ERROR = 3
    SYNTAX_ERROR = 4
    TYPE_ERROR = 5
    DIVIDE_BY_ZERO_ERROR = 6
    VALUE_ERROR = 7
    TOO_MANY_VAR_ERROR = 8
    PLATFORM_NOT_SUPPORTED = 9
    ASSERT_ERROR = 10
    STACK_OVERFLOW_ERROR = 11

    @property
    def is_success(self) -> bool:
        return self in (ErrorKind.SUCCESS, ErrorKind.MODULE_SUCCESS)


# =============================================================================
# RUNTIME ERRORS
# =============================================================================

class YaslError(Exception):
    """Base error for everything reported by the runtime or the binding."""
    kind = ErrorKind.ERROR

    def __init__(self, message: str = "", kind: Optional[ErrorKind] = None):
        if kind is not None:
            self.kind = kind
        super().__init__(message or self.kind.name.lower().replace("_", " "))


class GenericError(YaslError):
    kind = ErrorKind.ERROR


class InitError(YaslError):
    """The runtime could not allocate or initialize a state."""
    kind = ErrorKind.INIT_ERROR


class YaslSyntaxError(YaslError):
    kind = ErrorKind.SYNTAX_ERROR


class YaslTypeError(YaslError):
    kind = ErrorKind.TYPE_ERROR


class DivideByZeroError(YaslError):
    kind = ErrorKind.DIVIDE_BY_ZERO_ERROR


class YaslValueError(YaslError):
    kind = ErrorKind.VALUE_ERROR


class TooManyVariablesError(YaslError):
    kind = ErrorKind.TOO_MANY_VAR_ERROR


class PlatformNotSupportedError(YaslError):
    kind = ErrorKind.PLATFORM_NOT_SUPPORTED


class YaslAssertionError(YaslError):
    """A script-level `assert` failed."""
    kind = ErrorKind.ASSERT_ERROR


class StackOverflowError(YaslError):
    kind = ErrorKind.STACK_OVERFLOW_ERROR


_ERRORS: Dict[ErrorKind, Type[YaslError]] = {
    ErrorKind.ERROR: GenericError,
    ErrorKind.INIT_ERROR: InitError,
    ErrorKind.SYNTAX_ERROR: YaslSyntaxError,
    ErrorKind.TYPE_ERROR: YaslTypeError,
    ErrorKind.DIVIDE_BY_ZERO_ERROR: DivideByZeroError,
    ErrorKind.VALUE_ERROR: YaslValueError,
    ErrorKind.TOO_MANY_VAR_ERROR: TooManyVariablesError,
    ErrorKind.PLATFORM_NOT_SUPPORTED: PlatformNotSupportedError,
    ErrorKind.ASSERT_ERROR: YaslAssertionError,
    ErrorKind.STACK_OVERFLOW_ERROR: StackOverflowError,
}


# =============================================================================
# BINDING ERRORS
# =============================================================================

class MalformedIdentifierError(YaslError):
    """A global or metatable name does not match the identifier grammar."""
    kind = ErrorKind.ERROR


class AlreadyDeclaredError(YaslError):
    """A global with this name already exists."""
    kind = ErrorKind.ERROR


class UnknownGlobalError(YaslError):
    """No global binding exists under this name."""
    kind = ErrorKind.ERROR


class UnknownMetatableError(YaslError):
    kind = ErrorKind.ERROR


class TypeMismatchError(YaslTypeError):
    """The top of the stack is not of the requested type."""

    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected {expected.name.lower()}, found {actual.name.lower()}")


class InternalConsistencyError(YaslError):
    """The runtime handed back something a well-formed value cannot contain."""
    kind = ErrorKind.ERROR


class StateClosedError(ValueError):
    """Operation on a state whose handle has already been released."""


class LibraryNotFoundError(RuntimeError):
    """The YASL shared library could not be located."""


def error_for(kind: ErrorKind, message: str = "") -> YaslError:
    """Build the exception matching a failure kind."""
    return _ERRORS.get(kind, GenericError)(message, kind)


def check(code: int, context: str = "") -> ErrorKind:
    """
    Interpret a runtime status code.

    Args:
        code: Integer returned by a YASL function.
        context: Name of the operation, used in the error message.

    Returns:
        ErrorKind.SUCCESS or ErrorKind.MODULE_SUCCESS.

    Raises:
        YaslError: The subclass matching the code.
    """
    try:
        kind = ErrorKind(code)
    except ValueError:
        raise GenericError(f"{context or 'runtime'}: unknown status code {code}")

    if kind.is_success:
        return kind

    message = f"{context}: {kind.name.lower()}" if context else ""
    raise error_for(kind, message)
