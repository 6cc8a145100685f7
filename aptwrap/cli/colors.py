"""Color output support for the aptwrap CLI.

Color palette:
  - Red: errors, removals
  - Orange: warnings, lock waits
  - Green: success, installs
  - Blue: progress information
"""

import os
import sys

# ANSI color codes
_COLORS = {
    'reset': '\033[0m',
    'bold': '\033[1m',
    'dim': '\033[2m',
    'red': '\033[91m',
    'orange': '\033[93m',   # No true orange in ANSI
    'green': '\033[92m',
    'blue': '\033[94m',
}

_colors_enabled = True


def init(nocolor: bool = False, stream=None):
    """Initialize color support.

    Args:
        nocolor: If True, disable colors unconditionally
        stream: Stream whose tty-ness decides (default: stdout)
    """
    global _colors_enabled
    stream = stream or sys.stdout

    if nocolor or os.environ.get('NO_COLOR'):
        # https://no-color.org/
        _colors_enabled = False
    else:
        _colors_enabled = stream.isatty()


def _wrap(text: str, color: str) -> str:
    """Wrap text with color codes if colors are enabled."""
    if not _colors_enabled:
        return text
    return f"{_COLORS[color]}{text}{_COLORS['reset']}"


# Semantic color functions
def error(text: str) -> str:
    """Format text as error (red)."""
    return _wrap(text, 'red')


def warning(text: str) -> str:
    """Format text as warning (orange/yellow)."""
    return _wrap(text, 'orange')


def success(text: str) -> str:
    """Format text as success (green)."""
    return _wrap(text, 'green')


def info(text: str) -> str:
    """Format text as progress information (blue)."""
    return _wrap(text, 'blue')


def dim(text: str) -> str:
    return _wrap(text, 'dim')


def bold(text: str) -> str:
    return _wrap(text, 'bold')
