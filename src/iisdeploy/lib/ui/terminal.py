"""Terminal detection utilities.

Provides functions for detecting terminal capabilities and output modes.
"""

import sys


def is_tty() -> bool:
    """Check if stdout is connected to a terminal.

    Deploy runs usually execute inside a CI runner where stdout is a pipe;
    in that case reports are printed without ANSI colors.

    Returns:
        True if stdout is a TTY (interactive terminal), False otherwise.
    """
    return sys.stdout.isatty()
