"""UI utilities for terminal output.

This module provides shared utilities for terminal interaction, including:
- TTY detection for adaptive output formatting
- ANSI color support with graceful degradation

These utilities are used by the verification report and the CLI summaries.
"""

from iisdeploy.lib.ui.colors import ANSIColors, colorize
from iisdeploy.lib.ui.terminal import is_tty

__all__ = [
    "ANSIColors",
    "colorize",
    "is_tty",
]
