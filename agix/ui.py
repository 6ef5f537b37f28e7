"""Terminal output helpers and interactivity detection."""

from __future__ import annotations

import os
import sys
from pathlib import Path

NO_INTERACTIVE_ENV_VAR = "AGIX_NO_INTERACTIVE"


def success(msg: str) -> None:
    """Print a success line to stdout."""
    print(f"  \u2713 {msg}")


def warn(msg: str) -> None:
    """Print a warning line to stderr."""
    print(f"  \u26a0 {msg}", file=sys.stderr)


def info(msg: str) -> None:
    """Print an informational line to stdout."""
    print(f"  {msg}")


def stderr_is_tty() -> bool:
    """Whether stderr is attached to a terminal."""
    stream = sys.stderr
    return stream is not None and stream.isatty()


def scope_header(agentfile: Path | str, is_global: bool = False) -> None:
    """Print the resolved scope as a dim header to stderr, only on a terminal."""
    if not stderr_is_tty():
        return
    label = "global" if is_global else "project"
    print(f"  \x1b[2mUsing {agentfile}   ({label})\x1b[0m", file=sys.stderr)


def is_non_interactive(non_interactive: bool = False) -> bool:
    """Decide whether prompting must be avoided.

    The explicit flag wins, then a non-empty ``AGIX_NO_INTERACTIVE``, then
    stderr not being a terminal.
    """
    if non_interactive:
        return True
    if os.environ.get(NO_INTERACTIVE_ENV_VAR):
        return True
    return not stderr_is_tty()