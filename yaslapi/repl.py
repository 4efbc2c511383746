"""
YASL Interactive REPL
=====================

Read-Eval-Print Loop driving a single State. Every input is bound with
`reset_from_source` and run with `execute_interactive`, so globals persist
across lines while the allocation is reused.

A line that fails with a syntax error while brackets are still open is kept
and the next line is appended to it.
"""

import readline
import sys
import weakref
from typing import Callable, List, Optional

from .bridge import CFunction, owned_cfunction
from .config import Config
from .errors import YaslError, YaslSyntaxError
from .state import State

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = set(_OPENERS.values())


def needs_continuation(source: str) -> bool:
    """True if `source` has unclosed brackets or an unterminated string."""
    depth = 0
    quote = None
    escaped = False
    for ch in source:
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
        elif ch in ("'", '"', "`"):
            quote = ch
        elif ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
    return depth > 0 or quote is not None


def _quit_function(repl: "REPL") -> CFunction:
    """
    Build the `quit()` global for one REPL.

    The callback is owned by the REPL rather than the process-wide trampoline
    cache, and reaches the REPL through a weak reference, so a finished REPL
    and its State can be collected.
    """
    ref = weakref.ref(repl)

    def quit_(state) -> int:
        target = ref()
        if target is not None:
            target.running = False
        return 0

    return owned_cfunction(quit_, args=0, name="quit")


class REPL:
    """Interactive REPL for YASL."""

    def __init__(
        self,
        lib=None,
        config: Optional[Config] = None,
        compile_only: bool = False,
        input_fn: Callable[[str], str] = input,
        output=None,
    ):
        self.config = config or Config.from_env()
        self.compile_only = compile_only
        self.input_fn = input_fn
        self.output = output or sys.stdout
        self.running = True
        self.buffer: List[str] = []

        self.state = State(lib=lib)
        self.state.declare_libs()
        self._quit = _quit_function(self)
        self.state.push_function(self._quit)
        self.state.declare_global("quit")

    def print(self, *args):
        print(*args, file=self.output)

    def print_welcome(self):
        self.print("YASL REPL. Type quit() or press Ctrl-D to exit, :help for commands.")

    def print_help(self):
        self.print("Commands:")
        self.print("  :help     - Show this help")
        self.print("  :compile  - Toggle compile-only mode")
        self.print("  :reset    - Discard a pending multi-line input")
        self.print("  quit()    - Exit REPL")

    def handle_command(self, line: str):
        cmd = line[1:].strip().lower()
        if cmd == "help":
            self.print_help()
        elif cmd == "compile":
            self.compile_only = not self.compile_only
            self.print(f"Compile-only mode {'on' if self.compile_only else 'off'}.")
        elif cmd == "reset":
            self.buffer = []
        else:
            self.print(f"Unknown command: {cmd}")

    def evaluate(self, source: str) -> bool:
        """
        Run one complete input.

        Returns:
            False if the input is incomplete and more lines are needed.
        """
        self.state.reset_from_source(source + "\n")
        try:
            if self.compile_only:
                self.state.compile()
            else:
                self.state.execute_interactive()
        except YaslSyntaxError as e:
            if needs_continuation(source):
                return False
            self.print(f"{e.kind.name}: {e}")
        except YaslError as e:
            self.print(f"{e.kind.name}: {e}")
        return True

    def _load_history(self):
        try:
            readline.read_history_file(str(self.config.history_file))
        except OSError:
            pass

    def _save_history(self):
        try:
            readline.write_history_file(str(self.config.history_file))
        except OSError:
            pass

    def run(self) -> int:
        """Run the REPL until quit() or end of input."""
        self._load_history()
        self.print_welcome()
        try:
            while self.running:
                prompt = self.config.continuation_prompt if self.buffer else self.config.prompt
                try:
                    line = self.input_fn(prompt)
                except (EOFError, KeyboardInterrupt):
                    self.print("\nQuit signal received.")
                    break

                # Commands are honoured mid-input so :reset can clear a pending buffer.
                if line.startswith(":"):
                    self.handle_command(line)
                    continue

                self.buffer.append(line)
                if self.evaluate("\n".join(self.buffer)):
                    self.buffer = []
        finally:
            self._save_history()
            self.state.close()
        return 0
