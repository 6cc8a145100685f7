"""
apt/dpkg operations for aptwrap.

Every operation that touches the package database first waits for the
dpkg/apt locks (see lock.wait_for_lock), then runs the command through the
CommandSupervisor. The CLI and other callers only deal with:

- a readiness observer, called with False while another process holds the
  lock and True once it is free;
- an optional event observer receiving decoded ProgressEvents;
- exceptions: LockTimeout (busy too long), CommandFailed (command failed),
  SpawnError (tool missing), Cancelled.
"""

import logging
from typing import Callable, Iterable, List, Optional

from .config import AptConfig, get_config
from .events import ProgressEvent, WaitingOnLock
from .lock import LockProbe, wait_for_lock
from .observers import STOP, notify
from .supervisor import Command, CommandResult, CommandSupervisor

logger = logging.getLogger(__name__)

Readiness = Optional[Callable[[bool], object]]
EventObserver = Optional[Callable[[ProgressEvent], object]]

# Makes apt-get print status-fd lines (pmstatus, dlstatus, ...) on stdout
STATUS_FD_ARGS = ["-o", "APT::Status-Fd=1"]


def waiting_events(on_event: EventObserver) -> Callable[[bool], object]:
    """Readiness observer forwarding lock waits as WaitingOnLock events."""
    def readiness(ready: bool):
        if not ready and notify(on_event, WaitingOnLock()):
            return STOP
        return None
    return readiness


class AptOperations:
    """Lock-aware apt-get/dpkg operations.

    Usage:
        ops = AptOperations()
        ops.install(["vim"], readiness=lambda ready: ...)
        ops.upgrade(on_event=print)
    """

    def __init__(self, config: AptConfig = None, supervisor: CommandSupervisor = None,
                 probe: LockProbe = None):
        """Initialize operations.

        Args:
            config: Settings (default: get_config())
            supervisor: apt-get supervisor (default: built from config)
            probe: Lock probe (default: config lock paths and policy)
        """
        self.config = config or get_config()
        self.supervisor = supervisor or CommandSupervisor.from_config(self.config)
        self.probe = probe or LockProbe(self.config.lock_paths, self.config.lock_policy)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _locked(self, readiness: Readiness, operation: Callable[[], object]):
        """Run operation once the package database lock is free."""
        return wait_for_lock(
            self.config.lock_attempts,
            readiness,
            operation,
            probe=self.probe,
            interval=self.config.poll_interval,
        )

    def noninteractive(self, build_command: Callable[[Command], Command]) -> CommandResult:
        """Run apt-get non-interactively with inherited output.

        Raises:
            CommandFailed: apt-get failed
        """
        return self.supervisor.call(build_command).check()

    def noninteractive_events(self, build_command: Callable[[Command], Command],
                              on_event: EventObserver) -> CommandResult:
        """Run apt-get non-interactively, streaming progress events."""
        def build(cmd: Command) -> Command:
            return build_command(cmd.args(STATUS_FD_ARGS))
        return self.supervisor.run(build, on_event).check()

    def _apt_get(self, args: List[str], readiness: Readiness = None,
                 on_event: EventObserver = None) -> CommandResult:
        """apt-get <args>, lock-gated, with optional progress events."""
        if on_event is not None:
            if readiness is None:
                readiness = waiting_events(on_event)
            operation = lambda: self.noninteractive_events(lambda cmd: cmd.args(args), on_event)
        else:
            operation = lambda: self.noninteractive(lambda cmd: cmd.args(args))

        logger.info(f"apt-get {' '.join(args)}")
        return self._locked(readiness, operation)

    # =========================================================================
    # Package operations
    # =========================================================================

    def install(self, packages: Iterable[str], readiness: Readiness = None,
                on_event: EventObserver = None) -> CommandResult:
        """apt-get -y --allow-downgrades install <packages>"""
        return self._apt_get(["install"] + list(packages), readiness, on_event)

    def install_fix_broken(self, readiness: Readiness = None,
                           on_event: EventObserver = None) -> CommandResult:
        """apt-get -y --allow-downgrades install -f"""
        return self._apt_get(["install", "-f"], readiness, on_event)

    def reinstall(self, packages: Iterable[str], readiness: Readiness = None,
                  on_event: EventObserver = None) -> CommandResult:
        """apt-get -y --allow-downgrades install --reinstall <packages>"""
        return self._apt_get(["install", "--reinstall"] + list(packages), readiness, on_event)

    def remove(self, packages: Iterable[str], readiness: Readiness = None,
               on_event: EventObserver = None) -> CommandResult:
        """apt-get -y --allow-downgrades remove --autoremove <packages>"""
        return self._apt_get(["remove", "--autoremove"] + list(packages), readiness, on_event)

    def purge(self, packages: Iterable[str], readiness: Readiness = None,
              on_event: EventObserver = None) -> CommandResult:
        """apt-get -y --allow-downgrades purge <packages>"""
        return self._apt_get(["purge"] + list(packages), readiness, on_event)

    def autoremove(self, readiness: Readiness = None,
                   on_event: EventObserver = None) -> CommandResult:
        return self._apt_get(["autoremove"], readiness, on_event)

    def update(self, readiness: Readiness = None,
               on_event: EventObserver = None) -> CommandResult:
        return self._apt_get(["update"], readiness, on_event)

    def upgrade(self, on_event: EventObserver = None) -> CommandResult:
        """apt-get full-upgrade with progress.

        Lock waits are reported to on_event as WaitingOnLock.
        """
        if on_event is None:
            on_event = lambda event: None
        return self._apt_get(["--show-progress", "full-upgrade"], on_event=on_event)

    def configure_all(self, readiness: Readiness = None) -> CommandResult:
        """dpkg --configure -a"""
        # TODO: stream dpkg --status-fd output as progress events
        operation = lambda: self.supervisor.call(
            lambda cmd: cmd.args(["--configure", "-a"]),
            program=self.config.dpkg,
        ).check()
        return self._locked(readiness, operation)

    def hold(self, package: str) -> CommandResult:
        """apt-mark hold <package> (no lock wait)"""
        return self.supervisor.call(
            lambda cmd: cmd.args(["hold", package]), program=self.config.apt_mark
        ).check()

    def unhold(self, package: str) -> CommandResult:
        """apt-mark unhold <package> (no lock wait)"""
        return self.supervisor.call(
            lambda cmd: cmd.args(["unhold", package]), program=self.config.apt_mark
        ).check()

    # =========================================================================
    # Queries
    # =========================================================================

    def cache(self, subcommand: str, packages: Iterable[str],
              readiness: Readiness = None) -> str:
        """apt-cache <subcommand> <packages>, returning its output."""
        packages = list(packages)
        return self._locked(readiness, lambda: self.supervisor.output(
            lambda cmd: cmd.arg(subcommand).args(packages),
            program=self.config.apt_cache,
        ))

    def installed(self, packages: Iterable[str]) -> List[str]:
        """Return which of packages are currently installed.

        dpkg-query exits non-zero when some names are unknown but still
        reports the known ones, so its exit status is ignored.
        """
        output = self.supervisor.output(
            lambda cmd: cmd.args(["--show", "--showformat=${Package} ${db:Status-Status}\n"])
                           .args(packages)
                           .discard_stderr(),
            program=self.config.dpkg_query,
            check=False,
        )
        return parse_installed(output)

    def predepends_of(self, package: str, readiness: Readiness = None) -> List[str]:
        """Packages listed as PreDepends of package."""
        return parse_predepends(self.cache("depends", [package], readiness))


def parse_installed(output: str) -> List[str]:
    """Names from `${Package} ${db:Status-Status}` lines whose status is installed."""
    names = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[1] == "installed":
            names.append(fields[0])
    return names


def parse_predepends(output: str) -> List[str]:
    """PreDepends entries from `apt-cache depends` output, in order, unique."""
    found = []
    for line in output.splitlines():
        line = line.strip().lstrip('|')
        if not line.startswith("PreDepends:"):
            continue
        name = line.split(":", 1)[1].strip().strip('<>')
        if name and name not in found:
            found.append(name)
    return found
