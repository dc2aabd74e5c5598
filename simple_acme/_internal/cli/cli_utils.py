"""Argument types, actions and formatting for the simple-acme parser."""
import argparse
import copy
from typing import Any
from typing import Optional
from typing import Sequence
from typing import Union

from simple_acme._internal import constants


def flag_default(name: str) -> Any:
    """Copy of the default of flag name, safe to mutate."""
    return copy.deepcopy(constants.CLI_DEFAULTS[name])


def nonnegative_int(value: str) -> int:
    """argparse type accepting integers >= 0.

    :raises argparse.ArgumentTypeError: for anything else

    """
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError("value must be an integer")
    if number < 0:
        raise argparse.ArgumentTypeError("value must be non-negative")
    return number


def positive_int(value: str) -> int:
    """argparse type accepting integers >= 1."""
    number = nonnegative_int(value)
    if not number:
        raise argparse.ArgumentTypeError("value must be positive")
    return number


class _ManualHostAction(argparse.Action):
    """Collects every --manualhost occurrence, one comma list each."""

    def __call__(self, parser: argparse.ArgumentParser, namespace: argparse.Namespace,
                 values: Union[str, Sequence[Any], None],
                 option_string: Optional[str] = None) -> None:
        hosts = list(getattr(namespace, self.dest, None) or [])
        if isinstance(values, str) and values.strip():
            hosts.append(values.strip())
        setattr(namespace, self.dest, hosts)


class CustomHelpFormatter(argparse.HelpFormatter):
    """Help formatter appending ``(default: ...)`` to option help.

    Unlike `argparse.ArgumentDefaultsHelpFormatter`, help text that
    already documents its default is left alone.

    """

    def _get_help_string(self, action: argparse.Action) -> Optional[str]:
        text = action.help
        if not text or "%(default)" in text or "(default:" in text:
            return text
        if action.default is argparse.SUPPRESS:
            return text
        if action.option_strings or action.nargs in (argparse.OPTIONAL, argparse.ZERO_OR_MORE):
            text += " (default: %(default)s)"
        return text
