"""
Tests for the State lifecycle and program execution.
"""

import pytest

from yaslapi import State, StateView, bridge, open_state
from yaslapi.errors import (
    DivideByZeroError, ErrorKind, InitError, StateClosedError, YaslSyntaxError,
)

from fake_yasl import FakeYasl


def increment_x(vm):
    vm.set_global("x", vm.global_value("x") + 1)


def divide_by_zero(vm):
    return ErrorKind.DIVIDE_BY_ZERO_ERROR


class TestLifecycle:
    """Creation and release."""

    def test_create_and_close(self, lib):
        state = State(lib=lib)
        raw = state.raw
        assert not state.closed
        state.close()
        assert state.closed
        assert lib.deleted == [raw]

    def test_close_twice(self, lib):
        state = State(lib=lib)
        state.close()
        state.close()
        assert len(lib.deleted) == 1

    def test_context_manager(self, lib):
        with State.from_source("x", lib=lib) as state:
            raw = state.raw
        assert state.closed
        assert lib.deleted == [raw]

    def test_use_after_close(self, lib):
        state = State(lib=lib)
        state.close()
        with pytest.raises(StateClosedError):
            state.push_int(1)
        with pytest.raises(StateClosedError):
            state.execute()

    def test_allocation_failure(self, lib, monkeypatch):
        monkeypatch.setattr(lib, "YASL_newstate_bb", lambda data, length: None)
        with pytest.raises(InitError):
            State(lib=lib)

    def test_from_path(self, lib, tmp_path):
        script = tmp_path / "prog.yasl"
        script.write_text("echo 1;")
        with State.from_path(script, lib=lib) as state:
            assert lib.vm(state.raw).source == b"echo 1;"

    def test_from_missing_path(self, lib, tmp_path):
        with pytest.raises(OSError):
            State.from_path(tmp_path / "missing.yasl", lib=lib)
        assert lib.vms == {}

    def test_view_does_not_own(self, lib, state):
        view = state.view()
        assert isinstance(view, StateView)
        assert view.raw == state.raw
        del view
        assert not state.closed

    def test_open_state_declares_libs(self, lib):
        with open_state("x", lib=lib) as state:
            assert lib.vm(state.raw).libs_declared == 1


class TestExecution:
    """Compile, execute and reset."""

    def test_repeated_execute_with_reset(self):
        lib = FakeYasl({"x = x + 1;": increment_x})

        with State(lib=lib) as state:
            state.push_int(0)
            state.declare_global("x")
            for _ in range(4):
                state.reset_from_source("x = x + 1;")
                state.execute()
            state.load_global("x")
            assert state.pop_int() == 4

    def test_repeated_execute_without_reset(self):
        lib = FakeYasl({"x += 1;": increment_x})

        with State.from_source("x += 1;", lib=lib) as state:
            state.push_int(0)
            state.declare_global("x")
            for _ in range(4):
                state.execute()
            state.load_global("x")
            assert state.pop_int() == 4

    def test_syntax_error(self, state):
        state.reset_from_source("this is not yasl")
        with pytest.raises(YaslSyntaxError):
            state.compile()
        with pytest.raises(YaslSyntaxError):
            state.execute()

    def test_runtime_error_kind(self):
        lib = FakeYasl({"1 // 0;": divide_by_zero})
        with State.from_source("1 // 0;", lib=lib) as state:
            assert state.compile() is ErrorKind.SUCCESS
            with pytest.raises(DivideByZeroError) as info:
                state.execute()
            assert info.value.kind is ErrorKind.DIVIDE_BY_ZERO_ERROR

    def test_execute_interactive(self):
        def show(vm):
            vm.echo("3")

        lib = FakeYasl({"1 + 2": show})
        with State.from_source("1 + 2", lib=lib) as state:
            state.execute()
            assert lib.vm(state.raw).output == []
            state.execute_interactive()
            assert lib.vm(state.raw).output == ["3"]

    def test_reset_from_path(self, lib, state, tmp_path):
        script = tmp_path / "next.yasl"
        script.write_text("second")
        state.reset_from_path(script)
        assert lib.vm(state.raw).source == b"second"

    def test_reset_keeps_globals(self, state, vm):
        state.push_int(5)
        state.declare_global("kept")
        state.reset_from_source("other")
        state.load_global("kept")
        assert state.pop_int() == 5


class TestUserdataRelease:
    """Destructors run exactly once, when the state is destroyed."""

    def test_destructor_once(self, lib):
        released = []

        def release(view, address):
            released.append(address)

        state = State(lib=lib)
        state.push_userdata(0x500, "res.Handle", release)
        state.declare_global("h")
        state.reset_from_source("anything")
        assert released == []

        state.close()
        assert released == [0x500]
        state.close()
        assert released == [0x500]

    def test_destructor_receives_view(self, lib):
        views = []
        state = State(lib=lib)
        raw = state.raw
        state.push_userdata(0x600, "res.Handle", lambda view, address: views.append(view.raw))
        state.close()
        assert views == [raw]

    def test_boxed_object_released(self, lib):
        before = bridge.boxed_count()
        payload = object()
        with State(lib=lib) as state:
            state.push_pyobject(payload, "py.object")
            assert bridge.boxed_count() == before + 1
        assert bridge.boxed_count() == before
