"""
yaslapi - Python Interface to YASL
==================================

Safe ctypes binding over the C API of YASL (Yet Another Scripting Language).

Architecture:
    Host code
         |
    State / StateView   (state.py)   - lifecycle, compile / execute
         |
    StackProtocol       (stack.py)   - typed push / peek / pop, globals
    Marshaler           (marshal.py) - stack values <-> Object
    Bridge              (bridge.py)  - Python callables as C functions
    NameRegistry        (names.py)   - stable C strings for names
         |
    libyasl             (_native.py)

Example:
    from yaslapi import State, cfunction

    @cfunction(args=0)
    def hello(state):
        state.push_str("hello from Python")
        return 1

    with State.from_source("echo hello();") as state:
        state.declare_libs()
        state.push_function(hello)
        state.declare_global("hello")
        state.execute()
"""

__version__ = "0.4.0"

from ._native import CFN, USERDATA_DESTRUCTOR, find_library, is_available, load_library
from .bridge import VARIADIC, CFunction, MetatableFunction, cfunction, owned_cfunction
from .config import Config
from .errors import (
    AlreadyDeclaredError, DivideByZeroError, ErrorKind, GenericError, InitError,
    InternalConsistencyError, LibraryNotFoundError, MalformedIdentifierError,
    PlatformNotSupportedError, StackOverflowError, StateClosedError,
    TooManyVariablesError, TypeMismatchError, UnknownGlobalError,
    UnknownMetatableError, YaslAssertionError, YaslError, YaslSyntaxError,
    YaslTypeError, YaslValueError,
)
from .names import InternedName, NameRegistry, get_registry, is_identifier
from .objects import Foreign, Key, Kind, Object
from .state import State, StateView, open_state
from .types import Type

__all__ = [
    # State
    'State', 'StateView', 'open_state',
    # Values
    'Object', 'Key', 'Kind', 'Foreign', 'Type',
    # Bridge
    'CFunction', 'MetatableFunction', 'cfunction', 'owned_cfunction', 'VARIADIC',
    'CFN', 'USERDATA_DESTRUCTOR',
    # Names
    'NameRegistry', 'InternedName', 'get_registry', 'is_identifier',
    # Library
    'load_library', 'find_library', 'is_available', 'Config',
    # Errors
    'ErrorKind', 'YaslError', 'GenericError', 'InitError', 'YaslSyntaxError',
    'YaslTypeError', 'DivideByZeroError', 'YaslValueError',
    'TooManyVariablesError', 'PlatformNotSupportedError', 'YaslAssertionError',
    'StackOverflowError', 'MalformedIdentifierError', 'AlreadyDeclaredError',
    'UnknownGlobalError', 'UnknownMetatableError', 'TypeMismatchError',
    'InternalConsistencyError', 'StateClosedError', 'LibraryNotFoundError',
]
