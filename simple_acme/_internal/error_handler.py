"""Cleanup that survives exceptions and termination signals."""
import functools
import logging
import os
import signal
import traceback
from types import TracebackType
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from typing import Type
from typing import Union

from simple_acme import errors
from simple_acme import util

logger = logging.getLogger(__name__)

_SignalHandler = Union[int, None, Callable[..., Any]]


def _catchable_signals() -> List[int]:
    """Terminating signals turned into `errors.SignalExit`.

    Signals the process already ignores are left alone. Windows only
    delivers CTRL+C, which surfaces as KeyboardInterrupt anyway.

    """
    if os.name == "nt":
        return []
    return [signal.SIGTERM] + [
        signum for signum in (signal.SIGHUP, signal.SIGQUIT, signal.SIGXCPU, signal.SIGXFSZ)
        if signal.getsignal(signum) != signal.SIG_IGN]


_SIGNALS = _catchable_signals()


class ErrorHandler:
    """Context manager calling cleanup functions when its body fails.

    Functions run last registered first, each exactly once, when the
    body raises (SystemExit excepted) or receives a terminating signal::

        with ErrorHandler(retract, target, proof) as handler:
            handler.register(close, store)
            submit_and_poll()

    A failing cleanup function is logged and the next one still runs.
    Signals arriving while cleanup runs are delivered again once the
    previous handlers are restored. A signal also cancels `cancellation`,
    so waits on that token return early.

    """

    call_on_regular_exit = False

    def __init__(self, func: Optional[Callable[..., Any]] = None, *args: Any,
                 cancellation: Optional[util.CancellationToken] = None,
                 **kwargs: Any) -> None:
        self.cancellation = cancellation
        self.funcs: List[Callable[[], Any]] = []
        self.received_signals: List[int] = []
        self._previous: Dict[int, _SignalHandler] = {}
        self._in_body = False
        if func is not None:
            self.register(func, *args, **kwargs)

    def register(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Run func(*args, **kwargs) during cleanup."""
        self.funcs.append(functools.partial(func, *args, **kwargs))

    def __enter__(self) -> 'ErrorHandler':
        self._in_body = True
        for signum in _SIGNALS:
            previous = signal.getsignal(signum)
            # None means the handler was not installed from Python
            if previous is not None:
                self._previous[signum] = previous
                signal.signal(signum, self._on_signal)
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 trace: Optional[TracebackType]) -> bool:
        self._in_body = False
        # forks that don't exec leave through SystemExit
        if exc_type is SystemExit:
            return False
        if exc_type is None and not self.call_on_regular_exit:
            self._restore_signal_handlers()
            return False

        if exc_type is errors.SignalExit:
            logger.debug("Encountered signals: %s", self.received_signals)
        elif exc_type is not None:
            logger.debug("Encountered exception:\n%s", "".join(
                traceback.format_exception(exc_type, exc_value, trace)))
        self._cleanup()
        self._restore_signal_handlers()
        for signum in self.received_signals:
            logger.debug("Delivering deferred signal %s", signum)
            os.kill(os.getpid(), signum)
        return exc_type is errors.SignalExit

    def _cleanup(self) -> None:
        logger.debug("Calling registered functions")
        while self.funcs:
            func = self.funcs.pop()
            try:
                func()
            except Exception as exc:  # pylint: disable=broad-except
                logger.error("Encountered exception during recovery: %s", "".join(
                    traceback.format_exception_only(type(exc), exc)).rstrip())

    def _restore_signal_handlers(self) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()

    def _on_signal(self, signum: int, unused_frame: Any) -> None:
        self.received_signals.append(signum)
        if self.cancellation is not None:
            self.cancellation.cancel()
        if self._in_body:
            raise errors.SignalExit


class ExitHandler(ErrorHandler):
    """`ErrorHandler` that also cleans up when the body completes normally."""

    call_on_regular_exit = True
