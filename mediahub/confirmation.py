"""
Module: confirmation
Purpose: Gate mutating operations behind --yes or an interactive answer.
"""

import sys
from typing import Callable, Optional, TextIO

from .exceptions import ConfirmationRequired
from .utils import log_info, log_warning

AFFIRMATIVE_ANSWERS = {"yes", "y"}
NON_INTERACTIVE_MESSAGE = (
    "Non-interactive mode requires --yes flag. Use --yes to skip confirmation in scripts."
)


def is_interactive(stream: Optional[TextIO] = None) -> bool:
    """True when standard input is attached to a terminal."""
    target = stream if stream is not None else sys.stdin
    try:
        return bool(target.isatty())
    except (AttributeError, ValueError, OSError):
        return False


def is_affirmative(answer: str) -> bool:
    return answer.strip().lower() in AFFIRMATIVE_ANSWERS


def confirm(
    message: str,
    *,
    yes: bool = False,
    interactive: Optional[bool] = None,
    prompt: Optional[Callable[[str], str]] = None,
) -> bool:
    """
    Decide whether a mutation may proceed.

    Args:
        message: Question shown to the user.
        yes: Explicit bypass; proceeds without prompting.
        interactive: Override for terminal detection.
        prompt: Blocking reader used to collect the answer.

    Returns:
        True to proceed, False when the user declined (including end of input).

    Raises:
        ConfirmationRequired: When not interactive and `yes` is not set.
    """
    if yes:
        log_info("Confirmation bypassed with --yes")
        return True
    if interactive is None:
        interactive = is_interactive()
    if not interactive:
        log_warning("Mutation refused: non-interactive run without --yes")
        raise ConfirmationRequired(NON_INTERACTIVE_MESSAGE)
    try:
        answer = (prompt or input)(message)
    except (EOFError, OSError):
        return False
    return is_affirmative(answer)
