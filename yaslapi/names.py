"""
Identifier Interning
====================

The runtime keeps the raw `const char *` it is given for global names,
metatable names and userdata tags, possibly for the life of the process.
The registry hands out C strings whose storage is never moved or freed, and
returns the very same storage every time the same text is interned.

Userdata tags are compared by pointer inside the runtime, so a tag must
always be passed through the registry to be recognized again.

Entries are never evicted: a program that declares a bounded set of names
retains a bounded set of strings.

Usage:
    from yaslapi.names import get_registry

    name = get_registry().intern("answer")
    lib.YASL_loadglobal(handle, name.pointer)
"""

import ctypes
import re
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import MalformedIdentifierError

_IDENTIFIER = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")


def is_identifier(text: str) -> bool:
    """Check text against the runtime's identifier grammar."""
    return _IDENTIFIER.fullmatch(text) is not None


@dataclass(frozen=True)
class InternedName:
    """A NUL-terminated copy of `text` at a stable address."""
    text: str
    buffer: ctypes.Array = field(repr=False, compare=False)
    pointer: ctypes.c_char_p = field(repr=False, compare=False)

    @property
    def address(self) -> int:
        return ctypes.addressof(self.buffer)

    def __str__(self) -> str:
        return self.text


def _encode(text: str) -> bytes:
    data = text.encode("utf-8")
    if b"\0" in data:
        # The runtime would silently truncate the name; this is a caller bug.
        raise ValueError(f"name contains an embedded NUL byte: {text!r}")
    return data


class NameRegistry:
    """Deduplicating pool of C strings shared by every state in the process."""

    def __init__(self):
        self._names: Dict[str, InternedName] = {}
        self._tags: Dict[str, InternedName] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._names) + len(self._tags)

    def __contains__(self, text: str) -> bool:
        with self._lock:
            return text in self._names

    def intern(self, name: str) -> InternedName:
        """
        Return the stable C string for an identifier.

        Args:
            name: Global or metatable name.

        Raises:
            MalformedIdentifierError: If `name` is not a valid identifier.
            ValueError: If `name` contains a NUL byte.
        """
        data = _encode(name)
        if not is_identifier(name):
            raise MalformedIdentifierError(f"malformed identifier: {name!r}")
        return self._insert(self._names, name, data)

    def intern_tag(self, tag: str) -> InternedName:
        """Return the stable C string for a userdata type tag."""
        data = _encode(tag)
        if not tag:
            raise ValueError("userdata tag must not be empty")
        return self._insert(self._tags, tag, data)

    def lookup_tag(self, tag: str) -> Optional[InternedName]:
        with self._lock:
            return self._tags.get(tag)

    def tags(self) -> List[InternedName]:
        """Snapshot of all interned userdata tags."""
        with self._lock:
            return list(self._tags.values())

    def _insert(self, pool: Dict[str, InternedName], text: str, data: bytes) -> InternedName:
        with self._lock:
            existing = pool.get(text)
            if existing is not None:
                return existing
            buffer = ctypes.create_string_buffer(data)
            entry = InternedName(text, buffer, ctypes.cast(buffer, ctypes.c_char_p))
            pool[text] = entry
            return entry


_registry: Optional[NameRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> NameRegistry:
    """Get the process-wide registry, creating it on first use."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = NameRegistry()
    return _registry


def intern(name: str) -> InternedName:
    return get_registry().intern(name)


def intern_tag(tag: str) -> InternedName:
    return get_registry().intern_tag(tag)
