"""Operator confirmation strategies.

Steps that mutate system-wide state or remove an existing registration take
a ``Confirm`` callable. Which one is used is always the operator's explicit
choice: interactive prompting, ``--yes``, or declining when no terminal is
attached.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import click

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]


def interactive_confirm(prompt: str) -> bool:
    """Ask the operator on the terminal; the default answer is no."""
    return click.confirm(prompt, default=False)


def approve_all(prompt: str) -> bool:
    """Approve every prompt. Only used when the operator passed ``--yes``."""
    logger.info(f"Auto-approved (--yes): {prompt}")
    return True


def decline_all(prompt: str) -> bool:
    """Decline every prompt. Used for non-interactive runs without ``--yes``."""
    logger.warning(f"Declined (non-interactive, no --yes): {prompt}")
    return False


def select_confirm(assume_yes: bool, interactive: bool) -> Confirm:
    """Pick the confirmation strategy from the operator's flags."""
    if assume_yes:
        return approve_all
    if interactive:
        return interactive_confirm
    return decline_all
