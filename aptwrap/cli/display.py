"""Display utilities for the aptwrap CLI.

Turns ProgressEvents into terminal lines:

    [████████░░░░░░░░░░░░]  42% Installing vim
    Get:3 vim (1,234 kB)
    Setting up vim 2:9.0-1
    Waiting for another package manager to finish...
"""

import shutil
import sys
from typing import Optional

from ..core import events
from . import colors


def get_terminal_width() -> int:
    """Get terminal width, with fallback to 80 columns."""
    try:
        return shutil.get_terminal_size().columns
    except Exception:
        return 80


def render_bar(percent: float, width: int = 20) -> str:
    """Render a progress bar like [████░░░░]."""
    filled = min(width, max(0, int(percent * width // 100)))
    return '[' + '█' * filled + '░' * (width - filled) + ']'


def format_event(event: events.ProgressEvent, bar_width: int = 20) -> Optional[str]:
    """Format one event as a line of text (None for nothing to show)."""
    if isinstance(event, (events.PercentComplete, events.PackageStatus)):
        bar = colors.info(render_bar(event.percent, bar_width))
        return f"{bar} {event.percent:3.0f}% {event.message}".rstrip()

    if isinstance(event, events.PackageCount):
        return f"({event.current}/{event.total}) {event.action} {colors.bold(event.package)}"

    if isinstance(event, events.FetchedFile):
        size = f" ({event.size})" if event.size else ""
        return f"Get:{event.index} {event.description}{size}"

    if isinstance(event, events.PackageAction):
        if event.action in (events.Action.REMOVING, events.Action.PURGING):
            name = colors.error(event.package)
        else:
            name = colors.success(event.package)
        version = f" {colors.dim(event.version)}" if event.version else ""
        return f"{event.action.value} {name}{version}"

    if isinstance(event, events.PackageError):
        return colors.error(f"Error: {event.package}: {event.message}")

    if isinstance(event, events.ConffilePrompt):
        return colors.warning(f"Configuration file {event.path} was modified (pending decision)")

    if isinstance(event, events.TransactionSummary):
        return (f"{colors.bold(str(event.upgraded))} upgraded, "
                f"{colors.bold(str(event.newly_installed))} newly installed, "
                f"{colors.bold(str(event.to_remove))} to remove, "
                f"{event.not_upgraded} not upgraded")

    if isinstance(event, events.WaitingOnLock):
        return colors.warning("Waiting for another package manager to finish...")

    return None


class EventPrinter:
    """Print progress events, one line each.

    Percentage lines overwrite each other on a terminal; repeated
    WaitingOnLock events are shown once per wait.
    """

    def __init__(self, stream=None, quiet: bool = False):
        self.stream = stream or sys.stdout
        self.quiet = quiet
        self._waiting = False
        self._progress_line = False

    def _is_progress(self, event) -> bool:
        return isinstance(event, (events.PercentComplete, events.PackageStatus))

    def __call__(self, event: events.ProgressEvent):
        if isinstance(event, events.WaitingOnLock):
            if self._waiting:
                return
            self._waiting = True
        else:
            self._waiting = False

        if self.quiet and not isinstance(event, (events.PackageError, events.WaitingOnLock)):
            return

        line = format_event(event)
        if line is None:
            return

        tty = self.stream.isatty()
        if tty and self._is_progress(event):
            width = get_terminal_width()
            self.stream.write(f"\r\033[K{line[:width - 1]}")
            self._progress_line = True
        else:
            if self._progress_line:
                self.stream.write("\r\033[K")
                self._progress_line = False
            self.stream.write(line + "\n")
        self.stream.flush()

    def readiness(self, ready: bool):
        """Readiness observer for operations without progress events."""
        if not ready:
            self(events.WaitingOnLock())
        else:
            self._waiting = False

    def finish(self):
        """Terminate an in-place progress line."""
        if self._progress_line:
            self.stream.write("\n")
            self.stream.flush()
            self._progress_line = False
