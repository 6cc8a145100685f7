"""
Central configuration for aptwrap.

Resolution order:
    1. Built-in defaults (constants below)
    2. Config file, /etc/aptwrap.conf by default (optional)
    3. APTWRAP_* environment variables

Config file format (one setting per line):
    lock_attempts=3000
    poll_interval=0.016
    lock_policy=fail-open
    # Comments start with #

The resulting AptConfig is passed explicitly to the supervisor and the
operations layer; nothing reads the environment behind their back.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# Config file (system-wide, optional)
CONFIG_FILE = Path("/etc/aptwrap.conf")

# Locks taken by apt/dpkg, most specific first
LOCK_PATHS = [
    Path("/var/lib/dpkg/lock-frontend"),
    Path("/var/lib/dpkg/lock"),
    Path("/var/lib/apt/lists/lock"),
    Path("/var/cache/apt/archives/lock"),
]

# 3000 attempts at 16ms is roughly 48 seconds
DEFAULT_LOCK_ATTEMPTS = 3000
DEFAULT_POLL_INTERVAL = 0.016

APT_GET = "apt-get"
APT_CACHE = "apt-cache"
APT_MARK = "apt-mark"
DPKG = "dpkg"
DPKG_QUERY = "dpkg-query"

# Arguments passed to every apt-get invocation
APT_GET_ARGS = ["-y", "--allow-downgrades"]

# Non-interactive mode and a fixed locale so output parsing stays stable
NONINTERACTIVE_ENV = {
    "DEBIAN_FRONTEND": "noninteractive",
    "LANG": "C",
}

# Cache for loaded config (avoid re-reading the file)
_cached_config: Optional['AptConfig'] = None


class LockPolicy(Enum):
    """How to treat a lock probe that fails for an unexpected reason."""
    FAIL_OPEN = "fail-open"      # Treat as free (never deadlock the caller)
    FAIL_CLOSED = "fail-closed"  # Treat as locked (wait, then time out)


@dataclass
class AptConfig:
    """Settings shared by the lock waiter, supervisor and operations."""
    lock_paths: List[Path] = field(default_factory=lambda: list(LOCK_PATHS))
    lock_policy: LockPolicy = LockPolicy.FAIL_OPEN
    lock_attempts: int = DEFAULT_LOCK_ATTEMPTS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    apt_get: str = APT_GET
    apt_get_args: List[str] = field(default_factory=lambda: list(APT_GET_ARGS))
    apt_cache: str = APT_CACHE
    apt_mark: str = APT_MARK
    dpkg: str = DPKG
    dpkg_query: str = DPKG_QUERY
    env: Dict[str, str] = field(default_factory=lambda: dict(NONINTERACTIVE_ENV))


def _read_config_file(path: Path) -> Dict[str, str]:
    """Read key=value settings from path.

    Returns:
        Dict with config values (empty if the file doesn't exist)
    """
    if not path.exists():
        return {}

    values = {}
    try:
        with open(path) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                if '=' in line:
                    key, value = line.split('=', 1)
                    values[key.strip()] = value.strip()
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return {}

    return values


def _apply(config: AptConfig, key: str, value: str, source: str):
    """Apply one raw setting to config, ignoring invalid values."""
    try:
        if key == 'lock_attempts':
            config.lock_attempts = int(value)
        elif key == 'poll_interval':
            interval = float(value)
            if interval < 0:
                raise ValueError("negative interval")
            config.poll_interval = interval
        elif key == 'lock_policy':
            config.lock_policy = LockPolicy(value.lower())
        elif key == 'lock_paths':
            config.lock_paths = [Path(p) for p in value.split(':') if p]
        else:
            logger.debug(f"Unknown setting '{key}' in {source}")
    except ValueError:
        logger.warning(f"Ignoring invalid {key}={value!r} from {source}")


def load_config(path: Path = None, environ: Dict[str, str] = None) -> AptConfig:
    """Build an AptConfig from defaults, a config file and the environment.

    Args:
        path: Config file (default: /etc/aptwrap.conf)
        environ: Environment mapping (default: os.environ)

    Returns:
        AptConfig
    """
    if path is None:
        path = CONFIG_FILE
    if environ is None:
        environ = os.environ

    config = AptConfig()
    for key, value in _read_config_file(Path(path)).items():
        _apply(config, key, value, str(path))

    for key in ('lock_attempts', 'poll_interval', 'lock_policy', 'lock_paths'):
        env_key = f"APTWRAP_{key.upper()}"
        if env_key in environ:
            _apply(config, key, environ[env_key], env_key)

    return config


def get_config() -> AptConfig:
    """Get the process-wide config, loading it on first use."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_config()
    return _cached_config


def reset_config():
    """Drop the cached config (next get_config() reloads)."""
    global _cached_config
    _cached_config = None
