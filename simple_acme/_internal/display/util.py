"""Text helpers shared by the terminal display and error reporting."""
import sys
import textwrap
from typing import Optional

from acme import messages as acme_messages

WIDTH = 80
"""Terminal width messages are wrapped to."""


def wrap_lines(msg: str) -> str:
    """Wrap every line of msg to `WIDTH`, keeping its own line breaks."""
    return "\n".join(
        textwrap.fill(line, WIDTH, break_long_words=False, break_on_hyphens=False)
        for line in msg.splitlines())


def parens_around_char(label: str) -> str:
    """Mark the shortcut of a prompt answer, ``Agree`` becomes ``(A)gree``."""
    return "({0}){1}".format(label[:1], label[1:])


def read_line(prompt: Optional[str] = None) -> str:
    """Prompt on stdout and read one answer from stdin.

    :raises EOFError: once stdin is exhausted

    """
    if prompt:
        sys.stdout.write(prompt)
        sys.stdout.flush()
    answer = sys.stdin.readline()
    if not answer:
        raise EOFError
    return answer.rstrip("\n")


def describe_acme_error(error: acme_messages.Error) -> str:
    """One line description of an authority problem document.

    Title and detail are joined when present, otherwise the generic
    description of the problem type is used, then the type itself.

    """
    parts = [part for part in (error.title, error.detail) if part]
    if parts:
        return " :: ".join(parts)
    return error.description or error.typ
