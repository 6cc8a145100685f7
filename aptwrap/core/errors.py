"""Exceptions raised by aptwrap.

Lock timeouts, spawn failures and command failures are distinct types so a
caller can tell "package manager busy too long" from "command itself failed".
"""


class AptWrapError(Exception):
    """Base class for aptwrap errors."""


class LockTimeout(AptWrapError):
    """The package database stayed locked for the whole retry budget."""

    def __init__(self, attempts: int, interval: float):
        self.attempts = attempts
        self.interval = interval
        super().__init__(
            f"Package manager lock still held after {attempts} attempts "
            f"(~{attempts * interval:.1f}s)"
        )


class SpawnError(AptWrapError):
    """The child process could not be launched."""

    def __init__(self, program: str, cause: OSError):
        self.program = program
        self.cause = cause
        super().__init__(f"Cannot run {program}: {cause.strerror or cause}")


class OutputReadError(AptWrapError):
    """Reading the child's output failed.

    The child may still be running; it is available as ``process`` and
    cleaning it up is the caller's job.
    """

    def __init__(self, process, cause: OSError):
        self.process = process
        self.cause = cause
        super().__init__(f"Error reading output of pid {process.pid}: {cause}")


class CommandFailed(AptWrapError):
    """The command exited non-zero or was killed by a signal."""

    def __init__(self, result):
        self.result = result
        super().__init__(f"{result.program} failed: {result.describe()}")


class Cancelled(AptWrapError):
    """The caller asked for the operation to stop."""
