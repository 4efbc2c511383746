"""
yaslapi Configuration
=====================

Runtime settings for library discovery, logging and the REPL.

Environment variables:
    YASLAPI_LIBRARY     Explicit path to the YASL shared library.
    YASLAPI_LOG_LEVEL   Logging level name for the CLI (default: WARNING).
    YASLAPI_HISTORY     REPL history file (default: ~/.yasl_history).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class Config:
    """Binding and front-end settings."""
    library_path: Optional[Path] = None
    log_level: str = "WARNING"
    prompt: str = "yasl> "
    continuation_prompt: str = "  ... "
    history_file: Path = field(default_factory=lambda: Path.home() / ".yasl_history")

    @classmethod
    def from_env(cls, environ=None) -> "Config":
        """Build a config from environment variables."""
        env = os.environ if environ is None else environ
        config = cls()

        library = env.get("YASLAPI_LIBRARY")
        if library:
            config.library_path = Path(library)

        level = env.get("YASLAPI_LOG_LEVEL")
        if level:
            config.log_level = level.upper()

        history = env.get("YASLAPI_HISTORY")
        if history:
            config.history_file = Path(history)

        return config
