"""
Tests for typed stack operations.
"""

import pytest

from yaslapi import MetatableFunction, cfunction
from yaslapi.errors import (
    AlreadyDeclaredError, ErrorKind, MalformedIdentifierError, UnknownGlobalError,
    UnknownMetatableError, YaslTypeError, YaslValueError,
)
from yaslapi.types import Type


class TestPushPeekPop:
    """Scalar round trips through the stack."""

    def test_int(self, state, vm):
        state.push_int(-(2 ** 63))
        assert state.is_int()
        assert state.peek_int() == -(2 ** 63)
        assert state.pop_int() == -(2 ** 63)
        assert vm.stack == []

    def test_int_out_of_range(self, state, vm):
        for value in (2 ** 63, -(2 ** 63) - 1):
            with pytest.raises(OverflowError):
                state.push_int(value)
        assert vm.stack == []

    def test_int_out_of_range_in_object(self, state, vm):
        with pytest.raises(OverflowError):
            state.push_object(2 ** 64)
        assert vm.stack == []

    def test_float(self, state):
        state.push_float(1.5)
        assert state.peek_type() is Type.FLOAT
        assert state.pop_float() == 1.5

    def test_bool(self, state):
        state.push_bool(False)
        assert state.is_bool()
        assert state.pop_bool() is False

    def test_str_frees_copy(self, state, lib):
        state.push_str("héllo")
        assert state.peek_str() == "héllo"
        assert state.pop_str() == "héllo"
        assert lib.strings == {}

    def test_str_with_length(self, state, vm):
        state.push_str(b"abc")
        assert vm.stack[-1] == (Type.STR, b"abc")

    def test_undef(self, state):
        state.push_undef()
        assert state.is_undef()
        assert state.peek_type_name() == "undef"

    def test_userptr(self, state):
        state.push_userptr(0xBEEF)
        assert state.is_userptr()
        assert state.pop_userptr() == 0xBEEF

    def test_permissive_mismatch(self, state, vm):
        state.push_str("x")
        assert state.peek_int() == 0
        assert state.peek_float() == 0.0
        assert state.peek_bool() is False
        assert state.pop_int() == 0
        # pop still consumes the top
        assert vm.stack == []

    def test_peek_str_on_non_string(self, state):
        state.push_int(1)
        assert state.peek_str() is None

    def test_offset_probes(self, state):
        state.push_int(1)
        state.push_str("s")
        assert state.is_str_at(0)
        assert state.is_int_at(1)
        assert state.peek_type_at(1) is Type.INT
        assert not state.is_int_at(0)


class TestStackShape:
    """Duplicate, drop and length."""

    def test_duplicate_and_drop(self, state, vm):
        state.push_int(7)
        state.duplicate_top()
        assert len(vm.stack) == 2
        state.drop_top()
        assert state.pop_int() == 7

    def test_length(self, state):
        state.push_str("four")
        state.length()
        assert state.pop_int() == 4

    def test_length_of_int(self, state):
        state.push_int(1)
        with pytest.raises(YaslTypeError):
            state.length()


class TestLists:
    """List building and indexing."""

    def test_append_and_get(self, state):
        state.push_list()
        for i in (10, 20, 30):
            state.push_int(i)
            state.list_append()
        state.list_get(-1)
        assert state.pop_int() == 30
        state.list_get(0)
        assert state.pop_int() == 10

    def test_out_of_range(self, state):
        state.push_list()
        with pytest.raises(YaslValueError):
            state.list_get(0)

    def test_not_a_list(self, state):
        state.push_int(1)
        with pytest.raises(YaslTypeError):
            state.list_get(0)


class TestTables:
    """Table insertion and iteration."""

    def test_iteration_visits_each_entry(self, state, vm):
        state.push_table()
        for i in range(3):
            state.push_str(f"k{i}")
            state.push_int(i)
            state.table_insert()

        calls = 0
        seen = {}
        state.push_undef()
        while True:
            calls += 1
            if not state.table_iterate_next():
                break
            value = state.pop_int()
            state.duplicate_top()
            seen[state.pop_str()] = value

        assert calls == 4
        assert seen == {"k0": 0, "k1": 1, "k2": 2}
        assert [t for t, _ in vm.stack] == [Type.TABLE]

    def test_list_key_rejected(self, state):
        state.push_table()
        state.push_list()
        state.push_int(1)
        with pytest.raises(YaslTypeError):
            state.table_insert()


class TestGlobals:
    """Global declaration and access."""

    def test_declare_load_store(self, state, vm):
        state.push_int(1)
        state.declare_global("x")
        assert vm.globals["x"] == (Type.INT, 1)

        state.push_int(2)
        state.store_global("x")
        state.load_global("x")
        assert state.pop_int() == 2

    def test_duplicate_declare(self, state, vm):
        state.push_int(1)
        state.declare_global("x")
        state.push_int(2)
        with pytest.raises(AlreadyDeclaredError):
            state.declare_global("x")
        # stack unchanged, value not overwritten
        assert vm.stack == [(Type.INT, 2)]
        assert vm.globals["x"] == (Type.INT, 1)

    def test_malformed_name(self, state, vm):
        state.push_int(1)
        with pytest.raises(MalformedIdentifierError):
            state.declare_global("1x")
        assert vm.globals == {}

    def test_unknown_global(self, state):
        with pytest.raises(UnknownGlobalError):
            state.load_global("missing")
        state.push_int(1)
        with pytest.raises(UnknownGlobalError):
            state.store_global("missing")

    def test_other_failures_keep_their_kind(self, state, lib, monkeypatch):
        monkeypatch.setattr(lib, "YASL_loadglobal", lambda S, name: int(ErrorKind.TYPE_ERROR))
        monkeypatch.setattr(lib, "YASL_setglobal", lambda S, name: int(ErrorKind.VALUE_ERROR))
        with pytest.raises(YaslTypeError) as info:
            state.load_global("x")
        assert not isinstance(info.value, UnknownGlobalError)
        with pytest.raises(YaslValueError) as info:
            state.store_global("x")
        assert not isinstance(info.value, UnknownGlobalError)


class TestMetatables:
    """Metatable registration."""

    def test_new_metatable(self, state, vm):
        @cfunction(args=1)
        def size(s):
            s.drop_top()
            s.push_int(3)
            return 1

        state.new_metatable("Vec", [MetatableFunction("size", size)])
        assert vm.stack == []
        table = vm.metatables["Vec"]
        key = (Type.STR, b"size")
        assert key in table.entries
        _, (tag, (cfn, nargs)) = table.entries[key]
        assert tag is Type.CFN
        assert nargs == 1

    def test_set_metatable(self, state, vm):
        state.new_metatable("Point", [])
        state.push_table()
        state.load_metatable("Point")
        state.set_metatable()
        assert vm.stack[-1][1].metatable is vm.metatables["Point"]

    def test_unknown_metatable(self, state):
        with pytest.raises(UnknownMetatableError):
            state.load_metatable("Nope")

    def test_other_failure_keeps_its_kind(self, state, lib, monkeypatch):
        monkeypatch.setattr(lib, "YASL_loadmt", lambda S, name: int(ErrorKind.TYPE_ERROR))
        with pytest.raises(YaslTypeError) as info:
            state.load_metatable("Vec")
        assert not isinstance(info.value, UnknownMetatableError)


class TestUserdata:
    """Tagged userdata."""

    def test_tag_probe(self, state):
        state.push_userdata(0x100, "geo.Point")
        assert state.is_userdata("geo.Point")
        assert not state.is_userdata("geo.Line")
        assert state.is_userdata_at("geo.Point", 0)
        assert state.pop_userdata() == 0x100

    def test_pyobject(self, state):
        payload = {"answer": 42}
        state.push_pyobject(payload, "py.object")
        assert state.peek_pyobject() is payload
        assert state.pop_pyobject() is payload
