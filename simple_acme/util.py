"""Utilities for all simple-acme."""
import atexit
import errno
import logging
import os
import re
import shlex
import socket
import subprocess
import threading
from typing import Any
from typing import Callable
from typing import IO
from typing import List
from typing import Optional
from typing import Tuple
from typing import Union

from simple_acme import errors

logger = logging.getLogger(__name__)

# ANSI SGR escape codes
ANSI_SGR_RED = "\033[31m"
ANSI_SGR_RESET = "\033[0m"

PERM_ERR_FMT = os.linesep.join((
    "The following error was encountered:", "{0}",
    "Either run as root, or set --config-dir and --logs-dir to writeable paths."))

# Characters that are not allowed in file names on any supported platform
_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

EMAIL_REGEX = re.compile("[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+$")

_URL_SCHEMES = ("http", "https", "ftp", "ftps")

# Process that imported this module, the only one running atexit functions
_INITIAL_PID = os.getpid()


class CancellationToken:
    """Cooperative cancellation flag for blocking waits.

    Waits performed through :meth:`sleep` return early as soon as
    :meth:`cancel` is called, from a signal handler or another thread.

    """
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation of the current operation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Was cancellation requested?"""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise `.errors.Cancelled` if cancellation was requested."""
        if self._event.is_set():
            raise errors.Cancelled("Operation cancelled.")

    def sleep(self, seconds: float) -> None:
        """Block for up to `seconds`, stopping early on cancellation.

        :raises .errors.Cancelled: if cancelled before or during the wait

        """
        self.raise_if_cancelled()
        if self._event.wait(seconds):
            self.raise_if_cancelled()


def run_script(params: List[str]) -> Tuple[str, str]:
    """Run params[0] with the remaining arguments, no shell involved.

    :returns: standard output and standard error
    :rtype: tuple

    :raises .errors.SubprocessError: if the command cannot be started or
        exits with a nonzero status

    """
    command = " ".join(params)
    try:
        proc = subprocess.run(params, check=False, stdout=subprocess.PIPE,
                              stderr=subprocess.PIPE, universal_newlines=True)
    except (OSError, ValueError):
        msg = "Unable to run the command: {0}".format(command)
        logger.error(msg)
        raise errors.SubprocessError(msg)

    if proc.returncode != 0:
        msg = "Error while running {0}.\n{1}\n{2}".format(command, proc.stdout, proc.stderr)
        logger.error(msg)
        raise errors.SubprocessError(msg)
    return proc.stdout, proc.stderr


def split_command_line(script: str, parameters: str) -> List[str]:
    """Build an argument list from a script path and its parameter string.

    :param str script: path of the executable
    :param str parameters: shell-like argument string, may be empty

    :rtype: list

    """
    return [script] + shlex.split(parameters or "")


def set_up_core_dir(directory: str, mode: int, strict: bool) -> None:
    """Create or check directory, reporting failures as `.errors.Error`."""
    try:
        make_or_verify_dir(directory, mode, strict)
    except OSError as error:
        logger.debug("Exception was:", exc_info=True)
        raise errors.Error(PERM_ERR_FMT.format(error))


def make_or_verify_dir(directory: str, mode: int = 0o755, strict: bool = False) -> None:
    """Create directory and its parents with mode.

    :param bool strict: an existing directory must also be owned by the
        current user and have exactly mode (ignored on Windows)

    :raises .errors.Error: if strict and the existing directory differs
    :raises OSError: if the directory cannot be created

    """
    try:
        os.makedirs(directory, mode)
    except OSError as exception:
        if exception.errno != errno.EEXIST:
            raise
        if strict and os.name != "nt" and not _owned_with_mode(directory, mode):
            raise errors.Error(
                "{0} exists, but it should be owned by current user with "
                "permissions {1}".format(directory, oct(mode)))


def _owned_with_mode(path: str, mode: int) -> bool:
    status = os.stat(path)
    return status.st_uid == os.getuid() and (status.st_mode & 0o777) == mode


def safe_open(path: str, mode: str = "w", chmod: Optional[int] = None) -> IO:
    """Open a file that must not exist yet.

    :param int chmod: mode of the created file, Python's default if None

    """
    flags = os.O_CREAT | os.O_EXCL | os.O_RDWR
    if chmod is None:
        fd = os.open(path, flags)
    else:
        fd = os.open(path, flags, chmod)
    return os.fdopen(fd, mode)


def atomic_write(path: str, data: Union[str, bytes], chmod: int = 0o644) -> None:
    """Replace the file at path with data without exposing a partial file.

    The content goes to ``path + ".new"`` first, which is then renamed
    over `path`.

    :param str path: destination path
    :param data: file contents
    :type data: `str` or `bytes`
    :param int chmod: mode of the new file

    """
    temp_path = path + ".new"
    safely_remove(temp_path)
    mode = "wb" if isinstance(data, bytes) else "w"
    with safe_open(temp_path, mode=mode, chmod=chmod) as temp_file:
        temp_file.write(data)
    os.replace(temp_path, path)


def safely_remove(path: str) -> None:
    """Remove a file that may not exist."""
    try:
        os.remove(path)
    except OSError as err:
        if err.errno != errno.ENOENT:
            raise


def clean_file_name(name: str) -> str:
    """Turn name into something usable as a single path component.

    ``https://acme-v02.api.letsencrypt.org/directory`` becomes
    ``https_acme-v02.api.letsencrypt.org_directory``.

    :param str name: arbitrary string

    :rtype: str

    """
    name = name.replace("://", "_").replace("/", "_")
    name = _INVALID_FILENAME_CHARS.sub("", name.replace("*", "_"))
    return name.lstrip(". ").rstrip("._ ")


def safe_email(email: str) -> bool:
    """Is email usable as an account contact?"""
    if EMAIL_REGEX.match(email) is not None:
        return not email.startswith(".") and ".." not in email
    logger.error("Invalid email address: %s.", email)
    return False


def enforce_domain_sanity(domain: Union[str, bytes]) -> str:
    """Normalize a host name the authority can issue for.

    The name is lowercased and loses its trailing dot. Wildcard names
    are accepted.

    :raises .errors.ConfigurationError: for non-ASCII names, URLs, IP
        addresses and names that are not fully qualified

    :returns: the normalized name
    :rtype: str

    """
    try:
        if isinstance(domain, bytes):
            domain = domain.decode("utf-8")
        domain.encode("ascii")
    except UnicodeError:
        raise errors.ConfigurationError(
            "Non-ASCII domain names not supported. To issue for an "
            "Internationalized Domain Name, use Punycode.")

    domain = domain.strip().lower()
    if domain.endswith("."):
        domain = domain[:-1]

    for scheme in _URL_SCHEMES:
        if domain.startswith(scheme + "://"):
            raise errors.ConfigurationError(
                "Requested name {0} appears to be a URL, not a FQDN. Try again "
                "without the leading \"{1}://\".".format(domain, scheme))

    if is_ipaddress(domain):
        raise errors.ConfigurationError(
            "Requested name {0} is an IP address. The certificate authority "
            "will not issue certificates for a bare IP address.".format(domain))

    # RFC 2181 section 11: at most 255 octets, labels of 1 to 63 octets
    prefix = "Requested domain {0} is not a FQDN because".format(domain)
    if len(domain) > 255:
        raise errors.ConfigurationError("{0} it is too long.".format(prefix))
    for label in domain.split("."):
        if not label:
            raise errors.ConfigurationError("{0} it contains an empty label.".format(prefix))
        if len(label) > 63:
            raise errors.ConfigurationError(
                "{0} label {1} is too long.".format(prefix, label))
    return domain


def is_ipaddress(address: str) -> bool:
    """Is address an IPv4 or IPv6 address?"""
    for family in (socket.AF_INET, socket.AF_INET6):
        try:
            socket.inet_pton(family, address)
        except OSError:
            continue
        return True
    return False


def atexit_register(func: Callable, *args: Any, **kwargs: Any) -> None:
    """Call func at exit of the process that imported this module.

    Child processes forked afterwards do not call it.

    """
    atexit.register(_atexit_call, func, *args, **kwargs)


def _atexit_call(func: Callable, *args: Any, **kwargs: Any) -> None:
    if _INITIAL_PID == os.getpid():
        func(*args, **kwargs)
