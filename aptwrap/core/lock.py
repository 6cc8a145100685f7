"""
Package database lock detection and waiting.

apt and dpkg guard their state with POSIX record locks (fcntl F_SETLK) on a
handful of well-known files. LockProbe asks the kernel who holds those locks
with F_GETLK, which never takes the lock itself; wait_for_lock polls the probe
until every lock is free, then runs the caller's operation.

Between "observed free" and "operation started" another process may grab the
lock again. Nothing here can reserve it; the operation then fails on its own
and that failure is reported as-is.
"""

import errno
import fcntl
import logging
import os
import struct
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional, TypeVar

from .config import DEFAULT_POLL_INTERVAL, LOCK_PATHS, LockPolicy
from .errors import Cancelled, LockTimeout
from .observers import notify

logger = logging.getLogger(__name__)

T = TypeVar('T')

# struct flock on Linux: l_type, l_whence, l_start, l_len, l_pid (+ padding)
_FLOCK_FORMAT = '@hhqqi4x'

# errno values meaning "someone else holds it"
_BUSY_ERRNOS = (errno.EAGAIN, errno.EWOULDBLOCK, errno.EACCES)


class LockState(Enum):
    """Result of one probe."""
    FREE = "free"
    LOCKED = "locked"


class LockProbe:
    """Check whether the package database is locked by another process.

    Each probe() is an independent query: no file is created, removed or
    locked.
    """

    def __init__(self, paths: Iterable[Path] = None,
                 policy: LockPolicy = LockPolicy.FAIL_OPEN):
        """Initialize probe.

        Args:
            paths: Lock files to check (default: apt/dpkg locks)
            policy: What an unexpected probe error means
        """
        self.paths = [Path(p) for p in (paths if paths is not None else LOCK_PATHS)]
        self.policy = policy

    def probe(self) -> LockState:
        """Return LOCKED if any lock file is held by another process."""
        for path in self.paths:
            if self._probe_path(path) is LockState.LOCKED:
                return LockState.LOCKED
        return LockState.FREE

    def _on_error(self, path: Path, error: OSError) -> LockState:
        """Resolve an unexpected error according to the policy."""
        state = LockState.FREE if self.policy is LockPolicy.FAIL_OPEN else LockState.LOCKED
        logger.warning(f"Cannot probe {path} ({error}), treating as {state.value}")
        return state

    def _probe_path(self, path: Path) -> LockState:
        try:
            fd = os.open(path, os.O_RDONLY | os.O_CLOEXEC)
        except FileNotFoundError:
            return LockState.FREE
        except OSError as e:
            return self._on_error(path, e)

        try:
            query = struct.pack(_FLOCK_FORMAT, fcntl.F_WRLCK, os.SEEK_SET, 0, 0, 0)
            reply = fcntl.fcntl(fd, fcntl.F_GETLK, query)
        except OSError as e:
            if e.errno in _BUSY_ERRNOS:
                return LockState.LOCKED
            return self._on_error(path, e)
        finally:
            os.close(fd)

        l_type, _whence, _start, _len, holder = struct.unpack(_FLOCK_FORMAT, reply)
        if l_type == fcntl.F_UNLCK:
            return LockState.FREE

        logger.debug(f"{path} is locked by PID {holder}")
        return LockState.LOCKED


def wait_for_lock(
    max_attempts: int,
    readiness: Optional[Callable[[bool], object]],
    operation: Callable[[], T],
    probe: LockProbe = None,
    interval: float = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    cancel: threading.Event = None,
) -> T:
    """Run operation once the package database lock is free.

    readiness is called on every poll with False while locked and with True
    once free, right before operation runs.

    Args:
        max_attempts: Number of locked polls tolerated before giving up
        readiness: Observer called with the lock status on each poll
        operation: Called at most once, after the lock was observed free
        probe: LockProbe to use (default: apt/dpkg locks, fail-open)
        interval: Seconds between polls
        sleep: Sleep function (injectable for tests)
        cancel: Optional event; setting it aborts the wait

    Returns:
        Whatever operation returns (its exceptions propagate unchanged)

    Raises:
        LockTimeout: Lock still held after max_attempts polls
        Cancelled: readiness returned STOP or cancel was set
    """
    if max_attempts <= 0:
        raise LockTimeout(0, interval)

    if probe is None:
        probe = LockProbe()

    attempts = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise Cancelled("Cancelled while waiting for package manager lock")

        if probe.probe() is LockState.FREE:
            if notify(readiness, True):
                raise Cancelled("Cancelled before running operation")
            if attempts:
                logger.debug(f"Lock released after {attempts} attempts")
            return operation()

        if notify(readiness, False):
            raise Cancelled("Cancelled while waiting for package manager lock")

        attempts += 1
        if attempts >= max_attempts:
            logger.warning(f"Package manager lock still held after {attempts} attempts")
            raise LockTimeout(attempts, interval)

        if attempts == 1:
            logger.info("Package manager is locked by another process, waiting...")
        sleep(interval)
