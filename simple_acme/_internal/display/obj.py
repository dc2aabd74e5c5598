"""Terminal display used by simple-acme to talk to the operator."""
import logging
import os
import sys
from typing import Optional
from typing import TextIO
from typing import Tuple
from typing import TypeVar

from simple_acme import errors
from simple_acme._internal.display import util

logger = logging.getLogger(__name__)

# Display exit codes
OK = "ok"
"""Display exit code indicating user acceptance."""

CANCEL = "cancel"
"""Display exit code for a user canceling the display."""

SIDE_FRAME = "- " * 39 + "-"
"""Frame drawn around decorated messages."""

T = TypeVar("T")

_display: Optional["FileDisplay"] = None


class FileDisplay:
    """Display writing to a text stream and reading answers from stdin.

    With `noninteractive` set, every question returns its default, or
    raises `errors.Error` naming the flag that answers it.

    """

    def __init__(self, outfile: TextIO, noninteractive: bool = False) -> None:
        self.outfile = outfile
        self.noninteractive = noninteractive

    def _write(self, text: str) -> None:
        self.outfile.write(text)
        self.outfile.flush()

    def notification(self, message: str, pause: bool = True, wrap: bool = True,
                     decorate: bool = True) -> None:
        """Show message, then wait for Enter when `pause` is set.

        :param bool wrap: wrap the message to the terminal width
        :param bool decorate: surround the message with `SIDE_FRAME`

        """
        if wrap:
            message = util.wrap_lines(message)
        logger.debug("Notifying user: %s", message)

        if decorate:
            message = os.linesep.join(("", SIDE_FRAME, message, SIDE_FRAME))
        self._write(message + os.linesep)

        if not pause:
            return
        if self.noninteractive:
            logger.debug("Not pausing for user confirmation")
        else:
            util.read_line("Press Enter to Continue")

    def input(self, message: str, default: Optional[str] = None,
              cli_flag: Optional[str] = None) -> Tuple[str, str]:
        """Ask for free text.

        :returns: (`OK`, answer), or (`CANCEL`, ``"-1"``) when the user
            enters ``c``
        :rtype: tuple

        """
        if self._use_default(message, default, cli_flag):
            return OK, default  # type: ignore[return-value]

        answer = util.read_line(util.wrap_lines(
            "{0} (Enter 'c' to cancel):".format(message)) + " ")
        if answer.lower() == "c":
            return CANCEL, "-1"
        return OK, answer

    def yesno(self, message: str, yes_label: str = "Yes", no_label: str = "No",
              default: Optional[bool] = None, cli_flag: Optional[str] = None) -> bool:
        """Ask a yes/no question, answered by the first letter of a label."""
        if self._use_default(message, default, cli_flag):
            return bool(default)

        self._write(os.linesep.join(("", SIDE_FRAME, util.wrap_lines(message), SIDE_FRAME, "")))
        prompt = "{0}/{1}: ".format(util.parens_around_char(yes_label),
                                    util.parens_around_char(no_label))
        while True:
            shortcut = util.read_line(prompt)[:1].lower()
            if shortcut == yes_label[:1].lower():
                return True
            if shortcut == no_label[:1].lower():
                return False

    def _use_default(self, prompt: str, default: Optional[T],
                     cli_flag: Optional[str]) -> bool:
        """Answer with default instead of prompting?

        :raises errors.Error: in non-interactive mode without a default

        """
        if not self.noninteractive:
            return False
        if default is None:
            msg = "Unable to get an answer for the question:\n{0}".format(prompt)
            if cli_flag:
                msg += ("\nYou can provide an answer on the command line with "
                        "the {0} flag.".format(cli_flag))
            raise errors.Error(msg)
        logger.debug("Falling back to default %s for the prompt:\n%s", default, prompt)
        return True


def set_display(display: FileDisplay) -> None:
    """Set the display used by `simple_acme.display.util`."""
    global _display  # pylint: disable=global-statement
    _display = display


def get_display() -> FileDisplay:
    """Return the display, a stdout display if none was set."""
    global _display  # pylint: disable=global-statement
    if _display is None:
        _display = FileDisplay(sys.stdout)
    return _display
