"""
Progress events decoded from apt/dpkg output.

Each output line is matched against an ordered list of grammars; the first
match produces one immutable event, anything else produces nothing.

Recognized lines:
    Progress: [ 42%]                          -> PercentComplete
    75% [Working]                             -> PercentComplete
    (3/10) Installing vim                     -> PackageCount
    Get:3 http://host/ubuntu jammy/main amd64 vim amd64 2:9.0 [1,234 kB]
                                              -> FetchedFile
    Setting up vim (2:9.0-1) ...              -> PackageAction
    pmstatus:vim:42.8571:Installing vim       -> PackageStatus
    dlstatus:1:12.5000:Retrieving file 1 of 8 -> PackageStatus
    pmerror:vim:50.0000:subprocess failed     -> PackageError
    pmconffile:/etc/x:60.0:'/etc/x' '/etc/x.dpkg-new' 1 1
                                              -> ConffilePrompt
    3 upgraded, 1 newly installed, 0 to remove and 2 not upgraded.
                                              -> TransactionSummary

The pm*/dlstatus lines come from apt's status-fd (-o APT::Status-Fd=1).
Output format drifts between apt releases, so a line that almost matches
(bad number, percentage over 100, ...) is ignored rather than reported.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, NamedTuple, Optional, Tuple


class ProgressEvent:
    """Base class for all progress events."""
    __slots__ = ()


@dataclass(frozen=True)
class PercentComplete(ProgressEvent):
    """Overall completion of the running operation."""
    percent: float
    message: str = ""


@dataclass(frozen=True)
class PackageCount(ProgressEvent):
    """Package `current` of `total` being processed."""
    current: int
    total: int
    package: str
    action: str = ""


@dataclass(frozen=True)
class FetchedFile(ProgressEvent):
    """An archive or index file being downloaded."""
    index: int
    uri: str
    description: str
    size: str = ""


class Action(Enum):
    """dpkg step reported for a package."""
    SETTING_UP = "Setting up"
    UNPACKING = "Unpacking"
    REMOVING = "Removing"
    PURGING = "Purging configuration files for"
    PROCESSING = "Processing triggers for"


@dataclass(frozen=True)
class PackageAction(ProgressEvent):
    """dpkg started a step on a package."""
    action: Action
    package: str
    version: str = ""
    old_version: str = ""


@dataclass(frozen=True)
class PackageStatus(ProgressEvent):
    """status-fd progress line (kind is 'pmstatus' or 'dlstatus')."""
    kind: str
    package: str
    percent: float
    message: str


@dataclass(frozen=True)
class PackageError(ProgressEvent):
    """status-fd error for one package."""
    package: str
    percent: float
    message: str


@dataclass(frozen=True)
class ConffilePrompt(ProgressEvent):
    """dpkg wants a decision about a modified configuration file."""
    path: str
    percent: float
    current: str
    new: str


@dataclass(frozen=True)
class TransactionSummary(ProgressEvent):
    """apt's plan summary line."""
    upgraded: int
    newly_installed: int
    to_remove: int
    not_upgraded: int


@dataclass(frozen=True)
class WaitingOnLock(ProgressEvent):
    """Another process holds the package manager lock.

    Never decoded from output; emitted from the lock waiter's readiness
    notifications.
    """


class Grammar(NamedTuple):
    """One recognized line format."""
    name: str
    pattern: re.Pattern
    build: Callable[['re.Match'], ProgressEvent]


_NUMBER = r'(\d+(?:\.\d+)?)'


def _percent(text: str) -> float:
    value = float(text)
    if not 0.0 <= value <= 100.0:
        raise ValueError(f"percentage out of range: {value}")
    return value


def _count(m) -> PackageCount:
    current, total = int(m.group(1)), int(m.group(2))
    if current > total:
        raise ValueError(f"{current} > {total}")
    return PackageCount(current=current, total=total, package=m.group(4), action=m.group(3))


DEFAULT_GRAMMARS: Tuple[Grammar, ...] = (
    Grammar(
        'dpkg-progress',
        re.compile(r'^Progress: \[\s*' + _NUMBER + r'%\]\s*(.*)$'),
        lambda m: PercentComplete(percent=_percent(m.group(1)), message=m.group(2).strip()),
    ),
    Grammar(
        'percent',
        re.compile(r'^\s*' + _NUMBER + r'%\s*(.*)$'),
        lambda m: PercentComplete(percent=_percent(m.group(1)), message=m.group(2).strip()),
    ),
    Grammar(
        'count',
        re.compile(r'^\((\d+)/(\d+)\)\s+(\S+)\s+(\S+)'),
        _count,
    ),
    Grammar(
        'fetch',
        re.compile(r'^Get:(\d+)\s+(\S+)\s+(.*?)(?:\s+\[([^\]]+)\])?$'),
        lambda m: FetchedFile(
            index=int(m.group(1)), uri=m.group(2),
            description=m.group(3), size=m.group(4) or "",
        ),
    ),
    Grammar(
        'dpkg-action',
        re.compile(
            r'^(' + '|'.join(re.escape(a.value) for a in Action) + r')\s+(\S+)'
            r'(?:\s+\(([^)]*)\))?(?:\s+over\s+\(([^)]*)\))?\s*\.\.\.$'
        ),
        lambda m: PackageAction(
            action=Action(m.group(1)), package=m.group(2),
            version=m.group(3) or "", old_version=m.group(4) or "",
        ),
    ),
    Grammar(
        'status-fd',
        re.compile(r'^(pmstatus|dlstatus):(.+?):' + _NUMBER + r':(.*)$'),
        lambda m: PackageStatus(
            kind=m.group(1), package=m.group(2),
            percent=_percent(m.group(3)), message=m.group(4),
        ),
    ),
    Grammar(
        'status-fd-error',
        re.compile(r'^pmerror:(.+?):' + _NUMBER + r':(.*)$'),
        lambda m: PackageError(package=m.group(1), percent=_percent(m.group(2)), message=m.group(3)),
    ),
    Grammar(
        'status-fd-conffile',
        re.compile(r"^pmconffile:([^:]+):" + _NUMBER + r":'([^']*)'\s+'([^']*)'"),
        lambda m: ConffilePrompt(
            path=m.group(1), percent=_percent(m.group(2)),
            current=m.group(3), new=m.group(4),
        ),
    ),
    Grammar(
        'summary',
        re.compile(
            r'^(\d+) upgraded, (\d+) newly installed, (\d+) to remove '
            r'and (\d+) not upgraded\.$'
        ),
        lambda m: TransactionSummary(*(int(g) for g in m.groups())),
    ),
)


class ProgressDecoder:
    """Classify output lines into progress events.

    Stateless: decoding the same line always yields an equal event.
    """

    def __init__(self, grammars: Tuple[Grammar, ...] = DEFAULT_GRAMMARS):
        self.grammars = tuple(grammars)

    def extended(self, *grammars: Grammar) -> 'ProgressDecoder':
        """Return a decoder trying grammars before the current ones."""
        return ProgressDecoder(tuple(grammars) + self.grammars)

    def decode(self, line: str) -> Optional[ProgressEvent]:
        """Decode one line (without terminator).

        Returns:
            The event for the first matching grammar, or None
        """
        line = line.rstrip('\r\n')
        for grammar in self.grammars:
            m = grammar.pattern.match(line)
            if m is None:
                continue
            try:
                return grammar.build(m)
            except ValueError:
                return None
        return None


_default_decoder = ProgressDecoder()


def decode(line: str) -> Optional[ProgressEvent]:
    """Decode line with the default grammars."""
    return _default_decoder.decode(line)
