"""simple-acme client errors."""
from typing import Optional
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from acme import messages


class Error(Exception):
    """Generic simple-acme client error."""


class AccountStorageError(Error):
    """Generic `.AccountFileStorage` error."""


class AccountNotFound(AccountStorageError):
    """Account not found error."""


class SubprocessError(Error):
    """Subprocess handling error."""


class SignalExit(Error):
    """A Unix signal was received while in the ErrorHandler context manager."""


class LockError(Error):
    """File locking error."""


class Cancelled(Error):
    """The operation was aborted through its cancellation token."""


class ConfigurationError(Error):
    """Configuration sanity error.

    Raised for unknown plugin names, missing plugin parameters and host
    sets outside of the allowed size, always before the authority is
    contacted.

    """


# Auth Handler Errors
class AuthorizationError(Error):
    """Authorization error."""


class AuthorizationTimeout(AuthorizationError):
    """The authority did not reach a terminal status in time."""


class AcquisitionError(Error):
    """The authority refused or failed to issue the certificate.

    :ivar int status_code: HTTP status code returned by the authority
    :ivar acme.messages.Error problem: structured error payload, if any

    """
    def __init__(self, message: str, status_code: Optional[int] = None,
                 problem: Optional['messages.Error'] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.problem = problem

    def __str__(self) -> str:
        msg = super().__str__()
        if self.status_code is not None:
            msg += " (status {0})".format(self.status_code)
        if self.problem is not None:
            msg += ": {0}".format(self.problem)
        return msg


# Plugin Errors
class PluginError(Error):
    """simple-acme Plugin error."""


class NotSupportedError(PluginError):
    """Plugin function not supported error."""


class StoreError(Error):
    """Certificate store open or write error."""
