"""Centralized Rich Console management.

This module provides a singleton Rich Console instance so the CLI and the
output helpers share one terminal writer.
"""

from rich.console import Console

_console: Console | None = None


def get_console() -> Console:
    """Get or create the global Rich Console instance.

    Returns:
        Console: The global Rich Console instance
    """
    global _console
    if _console is None:
        _console = Console()
    return _console
