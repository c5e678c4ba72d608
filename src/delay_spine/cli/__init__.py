"""
CLI layer for delay-spine.

Typer application delegating to ``DelayedScheduler``; this package only
handles argument parsing and terminal output.

Entry point::

    delay-spine --help
"""

from delay_spine.cli.app import app

__all__ = ["app"]
