#!/usr/bin/env python3
"""
YASL - Command Line Interface
=============================

Reference command-line front end: runs a script, runs source given on the
command line, or starts the REPL.
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import Config
from .errors import LibraryNotFoundError, YaslError
from .repl import REPL
from .state import State

logger = logging.getLogger(__name__)


def run_state(state: State, compile_only: bool = False, print_result: bool = False) -> int:
    """Declare the standard library and compile or run a state."""
    try:
        state.declare_libs()
        if compile_only:
            state.compile()
        elif print_result:
            state.execute_interactive()
        else:
            state.execute()
    except YaslError as e:
        print(f"{e.kind.name}: {e}", file=sys.stderr)
        return 1
    finally:
        state.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yasl",
        description="Command line interface for Yet Another Scripting Language (YASL).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  yasl                        # Start the REPL
  yasl script.yasl            # Run a script
  yasl -c script.yasl         # Only compile a script
  yasl -e "1 + 2"             # Run source and print the last expression
        """
    )

    parser.add_argument(
        "--compile", "-c",
        action="store_true",
        help="Compile the input instead of executing it"
    )

    parser.add_argument(
        "--execute-print", "-e",
        action="store_true",
        help="Execute input as source and print the result of the last statement"
    )

    parser.add_argument(
        "--execute", "-E",
        action="store_true",
        help="Execute input as source"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    parser.add_argument(
        "input",
        nargs="?",
        help="Script path, or literal source with -e / -E"
    )

    return parser


def main(argv: Optional[List[str]] = None, lib=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = Config.from_env()

    if args.verbose:
        level = logging.DEBUG if args.verbose > 1 else logging.INFO
    else:
        level = getattr(logging, config.log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.execute_print or args.execute:
            if args.input is None:
                return 0
            state = State.from_source(args.input, lib=lib)
            return run_state(state, args.compile, args.execute_print)

        if args.input is not None:
            try:
                state = State.from_path(args.input, lib=lib)
            except OSError as e:
                print(f"Could not read file: {e}", file=sys.stderr)
                return 1
            return run_state(state, args.compile)

        return REPL(lib=lib, config=config, compile_only=args.compile).run()
    except LibraryNotFoundError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
