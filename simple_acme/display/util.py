"""Operator interaction for simple-acme.

Status messages and questions meant for the operator go through these
functions, everything else is logged. Questions asked in non-interactive
mode return their default or fail, naming the flag that answers them.

"""
from typing import Optional
from typing import Tuple

from simple_acme._internal.display import obj

OK = obj.OK
"""Display exit code indicating user acceptance."""

CANCEL = obj.CANCEL
"""Display exit code for a user canceling the display."""


def notify(msg: str) -> None:
    """Print a one line status message, without pausing."""
    obj.get_display().notification(msg, pause=False, decorate=False, wrap=False)


def notification(message: str, pause: bool = True, wrap: bool = True,
                 decorate: bool = True) -> None:
    """Show a framed message and wait for the operator to acknowledge it."""
    obj.get_display().notification(message, pause=pause, wrap=wrap, decorate=decorate)


def input_text(message: str, default: Optional[str] = None,
               cli_flag: Optional[str] = None) -> Tuple[str, str]:
    """Ask for free text.

    :param str message: question to display
    :param default: answer used in non-interactive mode
    :param str cli_flag: option that answers this question

    :returns: tuple of (`code`, `input`)
    :rtype: tuple

    """
    return obj.get_display().input(message, default=default, cli_flag=cli_flag)


def yesno(message: str, yes_label: str = "Yes", no_label: str = "No",
          default: Optional[bool] = None, cli_flag: Optional[str] = None) -> bool:
    """Ask a yes/no question.

    :returns: True for `yes_label`, False for `no_label`
    :rtype: bool

    """
    return obj.get_display().yesno(message, yes_label=yes_label, no_label=no_label,
                                   default=default, cli_flag=cli_flag)
