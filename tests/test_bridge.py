"""
Tests for Python callables exposed to the runtime.
"""

import pytest

from yaslapi import State, bridge
from yaslapi.bridge import (
    VARIADIC, CFunction, MetatableFunction, cfunction, function_array, owned_cfunction,
    trampoline_for,
)
from yaslapi.errors import ErrorKind, PlatformNotSupportedError, YaslValueError
from yaslapi.objects import Object

from fake_yasl import FakeRuntimeError, FakeYasl


@cfunction(args=2)
def subtract(state):
    b = state.pop_int()
    a = state.pop_int()
    state.push_int(a - b)
    return 1


@cfunction(args=1, name="split")
def split_pair(state):
    text = state.pop_str()
    head, _, tail = text.partition(",")
    state.push_str(head)
    state.push_str(tail)
    return 2


class TestForeignCalls:
    """Calls made by the runtime into Python."""

    def test_argument_order(self, state, vm):
        state.push_function(subtract)
        state.declare_global("subtract")
        assert vm.call("subtract", 10, 3) == [7]

    def test_multiple_results(self, state, vm):
        state.push_function(split_pair)
        state.declare_global("split")
        assert vm.call("split", "a,b") == ["a", "b"]

    def test_declared_arity_passed(self, state, vm):
        state.push_function(subtract)
        _, (_, nargs) = vm.stack[-1]
        assert nargs == 2

    def test_none_means_no_results(self, state, vm):
        calls = []

        def record(s):
            calls.append(s.pop_int())

        state.push_function(record, 1)
        state.declare_global("record")
        assert vm.call("record", 5) == []
        assert calls == [5]

    def test_yasl_error_becomes_kind(self, state, vm):
        def fail(s):
            raise YaslValueError("bad value")

        state.push_function(fail, 0)
        state.declare_global("fail")
        with pytest.raises(FakeRuntimeError) as info:
            vm.call("fail")
        assert info.value.kind is ErrorKind.VALUE_ERROR

    def test_python_error_is_contained(self, state, vm, caplog):
        def broken(s):
            raise KeyError("boom")

        state.push_function(broken, 0)
        state.declare_global("broken")
        with pytest.raises(FakeRuntimeError) as info:
            vm.call("broken")
        assert info.value.kind is ErrorKind.ERROR
        assert "broken" in caplog.text

    def test_view_operates_on_caller_state(self, state, vm):
        def read_global(s):
            s.load_global("g")
            return 1

        state.push_int(11)
        state.declare_global("g")
        state.push_function(read_global, 0)
        state.declare_global("read_global")
        assert vm.call("read_global") == [11]


class TestTrampolines:
    """Callback creation and retention."""

    def test_cached_per_callable(self):
        def f(s):
            return 0

        assert trampoline_for(f) is trampoline_for(f)

    def test_raw_cfn_passthrough(self):
        cfn = subtract.cfn
        assert trampoline_for(cfn) is cfn

    def test_decorator(self):
        assert isinstance(subtract, CFunction)
        assert subtract.args == 2
        assert subtract.name == "subtract"
        assert split_pair.name == "split"

    def test_default_variadic(self, state, vm):
        state.push_function(lambda s: 0)
        _, (_, nargs) = vm.stack[-1]
        assert nargs == VARIADIC

    def test_owned_not_retained(self):
        def f(s):
            return 0

        owned = owned_cfunction(f, args=1)
        assert owned.args == 1
        assert owned.name == "f"
        assert f not in bridge._trampolines

    def test_view_failure_is_contained(self, monkeypatch, caplog):
        called = []

        def f(s):
            called.append(s)
            return 0

        def no_library(raw):
            raise RuntimeError("no library")

        monkeypatch.setattr(bridge, "library_for", no_library)
        assert trampoline_for(f)(0x1234) == -int(ErrorKind.ERROR)
        assert called == []
        assert "Unhandled error in foreign function f" in caplog.text


class TestFunctionArray:
    """Sentinel-terminated YASLX_function arrays."""

    def test_sentinel(self):
        entries = function_array([
            MetatableFunction("first", subtract),
            MetatableFunction("second", lambda s: 0, 3),
        ])
        assert len(entries) == 3
        assert entries[0].name == b"first"
        assert entries[0].args == 2
        assert entries[1].args == 3
        assert entries[2].name is None
        assert entries[2].args == 0

    def test_resolve_variadic(self):
        _, args = MetatableFunction("f", lambda s: 0).resolve()
        assert args == VARIADIC


class TestBoxes:
    """Python objects owned by the runtime."""

    def test_box_refcount(self):
        obj = object()
        address = bridge.box(obj)
        bridge.box(obj)
        bridge._release_box(None, address)
        assert bridge.unbox(address) is obj
        bridge._release_box(None, address)
        with pytest.raises(ValueError):
            bridge.unbox(address)


class TestHostCalls:
    """Host code calling functions held by the runtime."""

    def test_call_function(self, state, vm):
        state.push_function(subtract)
        state.push_int(9)
        state.push_int(4)
        state.call_function(2)
        assert state.pop_int() == 5
        assert vm.stack == []

    def test_call_global(self, state):
        state.push_function(subtract)
        state.declare_global("sub")
        assert state.call_global("sub", 20, 5) == Object.int(15)

    def test_call_failure_kind(self, state):
        def fail(s):
            raise YaslValueError("nope")

        state.push_function(fail, 0)
        with pytest.raises(YaslValueError):
            state.call_function(0)

    def test_runtime_without_call(self, lib):
        class OldRuntime(FakeYasl):
            YASL_functioncall = None

        with State(lib=OldRuntime()) as state:
            state.push_function(subtract)
            with pytest.raises(PlatformNotSupportedError):
                state.call_function(0)
