"""Advisory file locks compatible with Linux and Windows."""
import errno
import logging
import os
import time
from types import TracebackType
from typing import Optional
from typing import Type

from simple_acme import errors

try:
    import fcntl
except ImportError:
    import msvcrt
    POSIX_MODE = False
else:
    POSIX_MODE = True


logger = logging.getLogger(__name__)

# Seconds between attempts while waiting for a held lock
_RETRY_INTERVAL = 0.1


def lock_for(path: str, timeout: float = 0.0) -> 'LockFile':
    """Lock the file that guards path.

    The lock file is placed next to `path`, named ``.<basename>.lock``.

    :param str path: path of the file to protect
    :param float timeout: seconds to wait for a concurrent holder

    :returns: the locked LockFile object
    :rtype: LockFile

    :raises errors.LockError: if unable to acquire the lock

    """
    directory, name = os.path.split(path)
    return LockFile(os.path.join(directory, '.{0}.lock'.format(name)), timeout)


class LockFile:
    """Platform independent advisory file lock.

    The lock is acquired on construction and held until `release` is
    called or the process exits. Another process trying to acquire the
    same path waits up to `timeout` seconds, then gets
    `errors.LockError`. Instances are context managers releasing the
    lock on exit.

    """
    def __init__(self, path: str, timeout: float = 0.0) -> None:
        """Create a LockFile on the given path and acquire the lock.

        :param str path: the path to the file that will hold a lock
        :param float timeout: seconds to wait while another process holds it

        """
        self._path = path
        mechanism = _UnixLockMechanism if POSIX_MODE else _WindowsLockMechanism
        self._lock_mechanism = mechanism(path)

        self.acquire(timeout)

    def __repr__(self) -> str:
        repr_str = '{0}({1}) <'.format(self.__class__.__name__, self._path)
        if self.is_locked():
            repr_str += 'acquired>'
        else:
            repr_str += 'released>'
        return repr_str

    def __enter__(self) -> 'LockFile':
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 trace: Optional[TracebackType]) -> None:
        if self.is_locked():
            self.release()

    def acquire(self, timeout: float = 0.0) -> None:
        """Acquire the lock, waiting up to timeout seconds.

        :raises errors.LockError: if the lock is still held by another
            process once the timeout expired

        """
        deadline = time.monotonic() + timeout
        while True:
            try:
                self._lock_mechanism.acquire()
                return
            except errors.LockError:
                if time.monotonic() >= deadline:
                    raise
                time.sleep(_RETRY_INTERVAL)

    def release(self) -> None:
        """Release the lock on the file."""
        self._lock_mechanism.release()

    def is_locked(self) -> bool:
        """Check if the file is currently locked by this instance."""
        return self._lock_mechanism.is_locked()


class _BaseLockMechanism:
    def __init__(self, path: str) -> None:
        self._path = path
        self._fd: Optional[int] = None

    def is_locked(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:  # pylint: disable=missing-function-docstring
        pass  # pragma: no cover

    def release(self) -> None:  # pylint: disable=missing-function-docstring
        pass  # pragma: no cover

    def _held_elsewhere(self) -> errors.LockError:
        logger.debug('A lock on %s is held by another process.', self._path)
        return errors.LockError(
            'Another instance of simple-acme holds the lock on {0}.'.format(self._path))


class _UnixLockMechanism(_BaseLockMechanism):
    """fcntl based lock.

    The lock file is deleted on release, so after locking, the locked
    descriptor is compared with the file on disk to detect a concurrent
    delete and recreate.

    """
    def acquire(self) -> None:
        while self._fd is None:
            fd = os.open(self._path, os.O_CREAT | os.O_WRONLY, 0o600)
            try:
                self._try_lock(fd)
                if self._lock_success(fd):
                    self._fd = fd
            finally:
                if self._fd is None:
                    os.close(fd)

    def _try_lock(self, fd: int) -> None:
        try:
            fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except IOError as err:
            if err.errno in (errno.EACCES, errno.EAGAIN):
                raise self._held_elsewhere()
            raise

    def _lock_success(self, fd: int) -> bool:
        try:
            stat1 = os.stat(self._path)
        except OSError as err:
            if err.errno == errno.ENOENT:
                return False
            raise

        stat2 = os.fstat(fd)
        return stat1.st_dev == stat2.st_dev and stat1.st_ino == stat2.st_ino

    def release(self) -> None:
        # The file must be removed before the descriptor is closed, or a
        # waiting process could lock a path another one is about to delete.
        try:
            os.remove(self._path)
        finally:
            if self._fd is None:  # pragma: no cover
                raise TypeError('Error, self._fd is None.')
            try:
                os.close(self._fd)
            finally:
                self._fd = None


class _WindowsLockMechanism(_BaseLockMechanism):
    """msvcrt based lock on the first byte of the lock file."""
    def acquire(self) -> None:
        open_mode = os.O_RDWR | os.O_CREAT | os.O_TRUNC

        fd = None
        try:
            fd = os.open(self._path, open_mode, 0o600)
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
        except OSError as err:
            if fd:
                os.close(fd)
            if err.errno != errno.EACCES:
                raise
            raise self._held_elsewhere()

        self._fd = fd

    def release(self) -> None:
        try:
            msvcrt.locking(self._fd, msvcrt.LK_UNLCK, 1)
            os.close(self._fd)

            try:
                os.remove(self._path)
            except OSError as e:
                logger.debug(str(e))
        finally:
            self._fd = None
