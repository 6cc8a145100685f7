"""
Child process supervision with streamed progress.

Architecture:
    caller                              child (apt-get ...)
        |                                   |
        |-- spawn, stdout piped ----------->|
        |                                   |
        | every interval:                   | writes progress lines
        |   read stdout (bounded, no wait)  |
        |   decode lines -> on_event        |
        |   poll() for exit                 |
        |                                   | exit(status)
        | final drain, classify status      |
        |<----------------------------------|

A single thread interleaves output draining and liveness checks. Each tick
reads a bounded amount, so a child flooding stdout cannot starve the
cancel and exit checks.
"""

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .config import AptConfig, DEFAULT_POLL_INTERVAL
from .errors import Cancelled, CommandFailed, OutputReadError, SpawnError
from .events import ProgressDecoder, ProgressEvent
from .observers import STOP, notify
from .reader import NonBlockingLineReader

logger = logging.getLogger(__name__)

# Seconds to wait after SIGTERM before SIGKILL on cancellation
TERMINATE_GRACE = 5.0


class Command:
    """Argument list and environment of a command to run.

    Builder methods return self for chaining:
        cmd.arg("install").args(["vim", "git"]).env("LANG", "C")
    """

    def __init__(self, program: str, args: Iterable[str] = None,
                 env: Dict[str, str] = None):
        self.program = program
        self._args: List[str] = list(args or [])
        self._env: Dict[str, str] = dict(env or {})
        self.stderr = None  # None inherits the caller's stderr

    def arg(self, value: str) -> 'Command':
        self._args.append(str(value))
        return self

    def args(self, values: Iterable[str]) -> 'Command':
        self._args.extend(str(v) for v in values)
        return self

    def env(self, key: str, value: str) -> 'Command':
        self._env[key] = value
        return self

    def discard_stderr(self) -> 'Command':
        self.stderr = subprocess.DEVNULL
        return self

    @property
    def argv(self) -> List[str]:
        return [self.program] + self._args

    @property
    def env_overrides(self) -> Dict[str, str]:
        return dict(self._env)

    def environment(self, base: Dict[str, str] = None) -> Dict[str, str]:
        """Full environment for the child: base (os.environ) plus overrides."""
        env = dict(os.environ if base is None else base)
        env.update(self._env)
        return env

    def __repr__(self):
        return f"Command({' '.join(self.argv)!r})"


class CommandStatus(Enum):
    """Terminal state of a supervised command."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Termination(Enum):
    """How the child ended."""
    EXITED = "exited"
    SIGNALED = "signaled"


@dataclass
class CommandResult:
    """Result of a command."""
    argv: List[str]
    status: CommandStatus
    termination: Termination = Termination.EXITED
    returncode: Optional[int] = None
    signal: Optional[int] = None

    @classmethod
    def from_returncode(cls, argv: List[str], returncode: int) -> 'CommandResult':
        """Classify a Popen-style returncode (negative means killed by signal)."""
        if returncode == 0:
            return cls(argv, CommandStatus.SUCCEEDED, Termination.EXITED, returncode=0)
        if returncode < 0:
            return cls(argv, CommandStatus.FAILED, Termination.SIGNALED,
                       returncode=returncode, signal=-returncode)
        return cls(argv, CommandStatus.FAILED, Termination.EXITED, returncode=returncode)

    @property
    def success(self) -> bool:
        return self.status is CommandStatus.SUCCEEDED

    @property
    def program(self) -> str:
        return self.argv[0] if self.argv else "?"

    def describe(self) -> str:
        """Human-readable exit detail."""
        if self.termination is Termination.SIGNALED:
            try:
                name = signal.Signals(self.signal).name
            except ValueError:
                name = str(self.signal)
            return f"killed by signal {name}"
        return f"exit code {self.returncode}"

    def check(self) -> 'CommandResult':
        """Return self, or raise CommandFailed if the command failed."""
        if not self.success:
            raise CommandFailed(self)
        return self


class CommandSupervisor:
    """Spawn a command and follow it to completion.

    Every command starts from program + base_args + env; build_command
    callbacks add the operation-specific arguments.
    """

    def __init__(
        self,
        program: str,
        base_args: Iterable[str] = None,
        env: Dict[str, str] = None,
        interval: float = DEFAULT_POLL_INTERVAL,
        launcher: Callable[..., subprocess.Popen] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
        decoder: ProgressDecoder = None,
    ):
        """Initialize supervisor.

        Args:
            program: Executable to run
            base_args: Arguments placed before the per-call ones
            env: Environment overrides for every call
            interval: Polling interval in seconds
            launcher: Popen-compatible factory (injectable for tests)
            sleep: Sleep function used between polls
            decoder: Line decoder for run() (default grammars)
        """
        self.program = program
        self.base_args = list(base_args or [])
        self.env = dict(env or {})
        self.interval = interval
        self.launcher = launcher
        self.sleep = sleep
        self.decoder = decoder or ProgressDecoder()

    @classmethod
    def from_config(cls, config: AptConfig, **kwargs) -> 'CommandSupervisor':
        """Supervisor for `apt-get -y --allow-downgrades` in non-interactive mode."""
        return cls(config.apt_get, config.apt_get_args, config.env,
                   interval=config.poll_interval, **kwargs)

    def command(self, program: str = None, base_args: Iterable[str] = None) -> Command:
        """New Command carrying the fixed environment.

        program/base_args default to the supervisor's own.
        """
        if program is None:
            program = self.program
            base_args = self.base_args if base_args is None else base_args
        return Command(program, base_args, self.env)

    def _build(self, build_command: Callable[[Command], Command], program: str = None) -> Command:
        cmd = self.command(program)
        built = build_command(cmd)
        return built if built is not None else cmd

    def _spawn(self, cmd: Command, **popen_kwargs) -> subprocess.Popen:
        logger.debug(f"Running: {' '.join(cmd.argv)}")
        try:
            return self.launcher(cmd.argv, env=cmd.environment(), **popen_kwargs)
        except OSError as e:
            raise SpawnError(cmd.program, e) from e

    # =========================================================================
    # Streaming
    # =========================================================================

    def run(
        self,
        build_command: Callable[[Command], Command],
        on_event: Callable[[ProgressEvent], object],
        cancel: threading.Event = None,
        program: str = None,
    ) -> CommandResult:
        """Run a command, delivering decoded progress events as they appear.

        Lines that decode to nothing are dropped. on_event returning STOP
        cancels the command.
        """
        decoder = self.decoder

        def on_line(line: str):
            event = decoder.decode(line)
            if event is not None and notify(on_event, event):
                return STOP
            return None

        return self.run_lines(build_command, on_line, cancel=cancel, program=program)

    def run_lines(
        self,
        build_command: Callable[[Command], Command],
        on_line: Callable[[str], object],
        cancel: threading.Event = None,
        program: str = None,
    ) -> CommandResult:
        """Run a command, delivering each raw output line in order.

        Args:
            build_command: Adds arguments/environment to the base Command
            on_line: Called with each complete stdout line; returning STOP
                requests cancellation and no further lines are delivered
            cancel: Optional event; setting it terminates the child
            program: Run this executable instead of the supervisor's

        Returns:
            CommandResult (success or failure with exit detail)

        Raises:
            SpawnError: The child could not be started
            OutputReadError: Reading stdout failed (child left running)
            Cancelled: Cancellation requested (child terminated)
        """
        cmd = self._build(build_command, program)
        proc = self._spawn(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=cmd.stderr,
        )

        stop_requested = False

        def deliver(line: str):
            nonlocal stop_requested
            if stop_requested:
                return
            if notify(on_line, line):
                stop_requested = True

        reader = NonBlockingLineReader(proc.stdout, deliver)

        try:
            while True:
                self.sleep(self.interval)

                try:
                    reader.read_available()
                except OSError as e:
                    raise OutputReadError(proc, e) from e

                if stop_requested or (cancel is not None and cancel.is_set()):
                    self._terminate(proc)
                    raise Cancelled(f"{cmd.program} cancelled")

                returncode = proc.poll()
                if returncode is None:
                    continue

                try:
                    reader.drain()
                except OSError as e:
                    raise OutputReadError(proc, e) from e
                reader.flush()

                result = CommandResult.from_returncode(cmd.argv, returncode)
                logger.debug(f"{cmd.program} finished: {result.describe()}")
                return result
        finally:
            if proc.returncode is not None and proc.stdout is not None:
                proc.stdout.close()

    def _terminate(self, proc: subprocess.Popen):
        """Stop a child we were asked to cancel."""
        if proc.poll() is not None:
            return
        logger.info(f"Terminating pid {proc.pid}")
        proc.terminate()
        try:
            proc.wait(timeout=TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            logger.warning(f"pid {proc.pid} ignored SIGTERM, killing")
            proc.kill()
            proc.wait()

    # =========================================================================
    # One-shot
    # =========================================================================

    def call(self, build_command: Callable[[Command], Command],
             program: str = None) -> CommandResult:
        """Run a command with inherited stdout and wait for it."""
        cmd = self._build(build_command, program)
        proc = self._spawn(cmd, stdin=subprocess.DEVNULL, stderr=cmd.stderr)
        returncode = proc.wait()
        return CommandResult.from_returncode(cmd.argv, returncode)

    def output(self, build_command: Callable[[Command], Command],
               program: str = None, check: bool = True) -> str:
        """Run a command and return its stdout as text.

        Raises:
            CommandFailed: Non-zero exit (only if check is True)
        """
        cmd = self._build(build_command, program)
        proc = self._spawn(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=cmd.stderr,
        )
        stdout, _ = proc.communicate()
        result = CommandResult.from_returncode(cmd.argv, proc.returncode)
        if check:
            result.check()
        return stdout.decode('utf-8', errors='replace')
