"""Logging setup for simple-acme.

Logging is configured in two steps around command line parsing:

1. `pre_arg_parse_setup` installs a terminal handler showing errors only,
   and buffers every record in memory. If the process dies before the
   second step, the buffer ends up in a private temporary file.
2. `post_arg_parse_setup` opens the rotating log file under ``--logs-dir``,
   replays the buffer into it and sets the terminal level from ``-v`` and
   ``-q``.

The terminal shows WARNING and above by default. Status information
meant for the operator goes through `simple_acme.display.util`.

"""
import functools
import logging
import logging.handlers
import os
import shutil
import sys
import tempfile
import traceback
from types import TracebackType
from typing import Any
from typing import cast
from typing import IO
from typing import Optional
from typing import Tuple
from typing import Type

from acme import messages
from simple_acme import configuration
from simple_acme import errors
from simple_acme import util
from simple_acme._internal import constants
from simple_acme._internal.display import util as display_util

CLI_FMT = "%(message)s"
FILE_FMT = "%(asctime)s:%(levelname)s:%(name)s:%(message)s"

LOG_FILE = "simple-acme.log"

LOG_FILE_MAX_BYTES = 2 ** 20

logger = logging.getLogger(__name__)


def pre_arg_parse_setup() -> None:
    """Log errors to the terminal and buffer everything else.

    Also registers `logging.shutdown` at exit and installs an except hook
    that reports fatal exceptions and writes the buffer out.

    """
    temp_handler = TempHandler()
    temp_handler.setFormatter(logging.Formatter(FILE_FMT))
    temp_handler.setLevel(logging.DEBUG)
    memory_handler = MemoryHandler(temp_handler)

    stream_handler = ColoredStreamHandler()
    stream_handler.setFormatter(logging.Formatter(CLI_FMT))
    stream_handler.setLevel(constants.QUIET_LOGGING_LEVEL)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(memory_handler)
    root_logger.addHandler(stream_handler)

    util.atexit_register(logging.shutdown)
    argv = sys.argv
    sys.excepthook = functools.partial(
        pre_arg_parse_except_hook, memory_handler,
        debug="--debug" in argv, quiet="--quiet" in argv or "-q" in argv,
        log_path=temp_handler.path)


def terminal_level(config: configuration.NamespaceConfig) -> int:
    """Level of the terminal handler for the parsed command line.

    ``-q`` wins, then ``--verbose-level``, then each ``-v`` lowers the
    default level by one step.

    """
    if config.quiet:
        return constants.QUIET_LOGGING_LEVEL
    steps = config.verbose_count
    if config.verbose_level is not None:
        steps = int(config.verbose_level)
    return constants.DEFAULT_LOGGING_LEVEL - steps * 10


def _installed_handlers(root_logger: logging.Logger
                        ) -> Tuple["MemoryHandler", "ColoredStreamHandler"]:
    memory_handler = stream_handler = None
    for handler in root_logger.handlers:
        if isinstance(handler, MemoryHandler):
            memory_handler = handler
        elif isinstance(handler, ColoredStreamHandler):
            stream_handler = handler
    if memory_handler is None or stream_handler is None:
        raise errors.Error("Logging was not set up before parsing the command line.")
    return memory_handler, stream_handler


def post_arg_parse_setup(config: configuration.NamespaceConfig) -> None:
    """Switch from the memory buffer to the rotating log file.

    :param config: parsed configuration
    :type config: simple_acme.configuration.NamespaceConfig

    """
    file_handler, file_path = setup_log_file_handler(config, LOG_FILE, FILE_FMT)

    root_logger = logging.getLogger()
    memory_handler, stream_handler = _installed_handlers(root_logger)
    root_logger.addHandler(file_handler)
    root_logger.removeHandler(memory_handler)

    temp_handler = memory_handler.target
    memory_handler.setTarget(file_handler)
    memory_handler.flush(force=True)
    memory_handler.close()
    if temp_handler is not None:
        temp_handler.close()

    level = terminal_level(config)
    stream_handler.setLevel(level)
    logger.debug("Terminal logging level set at %d", level)
    if not config.quiet:
        print("Saving debug log to {0}".format(file_path), file=sys.stderr)

    sys.excepthook = functools.partial(
        post_arg_parse_except_hook,
        debug=config.debug, quiet=config.quiet, log_path=file_path)


def setup_log_file_handler(config: configuration.NamespaceConfig, logfile: str,
                           fmt: str) -> Tuple[logging.Handler, str]:
    """Open logfile under ``--logs-dir``, rotated once per invocation.

    ``--max-log-backups 0`` keeps appending to the same file.

    :returns: the DEBUG level handler and the path of the log file
    :rtype: tuple

    :raises .errors.Error: if the log file cannot be opened

    """
    util.set_up_core_dir(config.logs_dir, 0o700, config.strict_permissions)
    path = os.path.join(config.logs_dir, logfile)
    try:
        handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=config.max_log_backups)
    except IOError as error:
        raise errors.Error(util.PERM_ERR_FMT.format(error))
    handler.doRollover()
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt=fmt))
    return handler, path


class ColoredStreamHandler(logging.StreamHandler):
    """Stream handler printing records of `red_level` and above in red.

    Colors are only used when the stream is a terminal.

    """
    def __init__(self, stream: Optional[IO] = None) -> None:
        super().__init__(stream)
        self.colored = (stream or sys.stderr).isatty()
        self.red_level = logging.WARNING

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if not self.colored or record.levelno < self.red_level:
            return text
        return util.ANSI_SGR_RED + text + util.ANSI_SGR_RESET


class MemoryHandler(logging.handlers.MemoryHandler):
    """Buffer flushed only on ``flush(force=True)``.

    `logging.shutdown` and full buffers never write the records out, and
    closing keeps the target so the buffer can still be replayed.

    """
    def __init__(self, target: Optional[logging.Handler] = None,
                 capacity: int = 10000) -> None:
        super().__init__(capacity, target=target)

    def close(self) -> None:
        target = self.target
        super().close()
        self.target = target

    def flush(self, force: bool = False) -> None:  # pylint: disable=arguments-differ
        if force:
            super().flush()

    def shouldFlush(self, record: logging.LogRecord) -> bool:
        return False


class TempHandler(logging.StreamHandler):
    """Handler writing to a private (0600) temporary file.

    The file and its directory are removed on close unless a record was
    written.

    :ivar str path: path of the temporary log file

    """
    def __init__(self) -> None:
        self._workdir = tempfile.mkdtemp(prefix="simple_acme_log")
        self.path = os.path.join(self._workdir, "log")
        super().__init__(util.safe_open(self.path, mode="w", chmod=0o600))
        self.stream: IO[str]
        self._used = False

    def emit(self, record: logging.LogRecord) -> None:
        self._used = True
        super().emit(record)

    def close(self) -> None:
        self.acquire()
        try:
            self.stream.close()
            if not self._used and os.path.isdir(self._workdir):
                shutil.rmtree(self._workdir)
            super().close()
        finally:
            self.release()


def pre_arg_parse_except_hook(memory_handler: MemoryHandler,
                              *args: Any, **kwargs: Any) -> None:
    """`post_arg_parse_except_hook`, then write the buffered records out.

    Not called on SystemExit, so ``--help`` and usage errors leave no
    temporary log behind.

    """
    try:
        post_arg_parse_except_hook(*args, **kwargs)
    finally:
        memory_handler.flush(force=True)


def _describe_exception(exc_type: Type[BaseException], exc_value: BaseException) -> str:
    if messages.is_acme_error(exc_value):
        return display_util.describe_acme_error(cast(messages.Error, exc_value))
    return "".join(traceback.format_exception_only(exc_type, exc_value)).rstrip()


def post_arg_parse_except_hook(exc_type: Type[BaseException], exc_value: BaseException,
                               trace: TracebackType, debug: bool, quiet: bool,
                               log_path: str) -> None:
    """Report a fatal exception and exit with a nonzero status.

    The traceback always goes to the debug log. It is shown on the
    terminal with `debug` and for exceptions that are not `Exception`
    subclasses. `errors.Error` is shown as its message only, anything
    else is announced as unexpected.

    :param bool quiet: exit without pointing at the log file
    :param str log_path: log file or directory to point the user at

    """
    exc_info = (exc_type, exc_value, trace)
    if exc_type is KeyboardInterrupt:
        logger.error("Exiting due to user request.")
        sys.exit(1)

    if debug or not issubclass(exc_type, Exception):
        logger.error("Exiting abnormally:", exc_info=exc_info)
    else:
        logger.debug("Exiting abnormally:", exc_info=exc_info)
        if issubclass(exc_type, errors.Error):
            logger.error(str(exc_value))
        else:
            logger.error("An unexpected error occurred:")
            logger.error(_describe_exception(exc_type, exc_value))

    if quiet:
        sys.exit(1)
    exit_with_advice(log_path)


def exit_with_advice(log_path: str) -> None:
    """Exit, pointing at the log file or directory log_path."""
    where = "logfiles in" if os.path.isdir(log_path) else "logfile"
    sys.exit("See the {0} {1} or re-run simple-acme with -v for more details.".format(
        where, log_path))
