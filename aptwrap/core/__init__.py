"""Core modules for aptwrap"""

from .errors import AptWrapError, Cancelled, CommandFailed, LockTimeout, SpawnError
from .events import ProgressEvent, WaitingOnLock, decode
from .lock import LockProbe, LockState, wait_for_lock
from .operations import AptOperations
from .supervisor import Command, CommandResult, CommandSupervisor

__all__ = [
    'AptWrapError', 'Cancelled', 'CommandFailed', 'LockTimeout', 'SpawnError',
    'ProgressEvent', 'WaitingOnLock', 'decode',
    'LockProbe', 'LockState', 'wait_for_lock',
    'AptOperations',
    'Command', 'CommandResult', 'CommandSupervisor',
]
