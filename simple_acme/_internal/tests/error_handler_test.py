"""Tests for simple_acme._internal.error_handler."""
import contextlib
import os
import signal
import sys
import unittest
from unittest import mock

import pytest

from simple_acme import util
from simple_acme._internal import error_handler

SIGNALS = error_handler._SIGNALS  # pylint: disable=protected-access


@contextlib.contextmanager
def recorded_signals():
    """Record the catchable signals delivered to the process."""
    received = []
    previous = {signum: signal.getsignal(signum) for signum in SIGNALS}
    for signum in SIGNALS:
        signal.signal(signum, lambda signum, _: received.append(signum))
    try:
        yield received
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def send_signal(signum):
    os.kill(os.getpid(), signum)


class ErrorHandlerTest(unittest.TestCase):
    """Tests for simple_acme._internal.error_handler.ErrorHandler."""

    handler_cls = error_handler.ErrorHandler
    cleans_up_on_success = False

    def setUp(self):
        self.retract = mock.MagicMock()
        self.handler = self.handler_cls(self.retract, "example.com", proof="token")

    def _assert_retracted_once(self):
        self.retract.assert_called_once_with("example.com", proof="token")

    def test_exception(self):
        with pytest.raises(ValueError):
            with self.handler:
                raise ValueError
        self._assert_retracted_once()

    def test_last_registered_runs_first(self):
        order = []
        self.handler.register(order.append, "proof")
        self.handler.register(order.append, "store")
        with pytest.raises(ValueError):
            with self.handler:
                raise ValueError
        assert order == ["store", "proof"]

    def test_failing_cleanup_is_logged(self):
        broken = mock.MagicMock(side_effect=ValueError("broken"))
        self.handler.register(broken)
        with mock.patch("simple_acme._internal.error_handler.logger") as mock_logger:
            with pytest.raises(KeyError):
                with self.handler:
                    raise KeyError
        assert "broken" in mock_logger.error.call_args[0][1]
        broken.assert_called_once_with()
        self._assert_retracted_once()

    def test_system_exit_ignored(self):
        with pytest.raises(SystemExit):
            with self.handler:
                sys.exit(0)
        self.retract.assert_not_called()

    def test_regular_exit(self):
        with self.handler:
            pass
        assert self.retract.called == self.cleans_up_on_success

    @unittest.skipIf(not SIGNALS, "Signals cannot be handled on Windows.")
    def test_signal(self):
        previous = {signum: signal.getsignal(signum) for signum in SIGNALS}
        reached = False
        with recorded_signals() as received:
            installed = {signum: signal.getsignal(signum) for signum in SIGNALS}
            with self.handler:
                send_signal(SIGNALS[0])
                reached = True
            restored = {signum: signal.getsignal(signum) for signum in SIGNALS}

        assert not reached
        assert received == [SIGNALS[0]]
        self._assert_retracted_once()
        assert restored == installed
        assert {signum: signal.getsignal(signum) for signum in SIGNALS} == previous

    @unittest.skipIf(not SIGNALS, "Signals cannot be handled on Windows.")
    def test_signal_cancels_token(self):
        token = util.CancellationToken()
        handler = self.handler_cls(self.retract, "example.com", proof="token",
                                   cancellation=token)
        with recorded_signals():
            with handler:
                send_signal(SIGNALS[0])
        assert token.cancelled
        self._assert_retracted_once()

    @unittest.skipIf(not SIGNALS, "Signals cannot be handled on Windows.")
    def test_signal_during_cleanup_is_deferred(self):
        first, last = SIGNALS[0], SIGNALS[-1]
        self.handler.register(send_signal, first)
        with recorded_signals() as received:
            with self.handler:
                send_signal(last)
        assert received == [last, first]
        self._assert_retracted_once()


class ExitHandlerTest(ErrorHandlerTest):
    """Tests for simple_acme._internal.error_handler.ExitHandler."""

    handler_cls = error_handler.ExitHandler
    cleans_up_on_success = True
