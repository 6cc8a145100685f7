"""Helpers for caller-supplied observers (readiness and event callbacks).

Observers are fire-and-forget: whatever they raise is logged, never
propagated. Returning STOP from an observer asks for cancellation.
"""

import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class _Stop:
    """Sentinel type for STOP."""

    def __repr__(self):
        return 'STOP'


STOP = _Stop()


def notify(callback: Optional[Callable[[Any], Any]], value: Any) -> bool:
    """Deliver value to callback.

    Returns:
        True if the callback returned STOP
    """
    if callback is None:
        return False
    try:
        return callback(value) is STOP
    except Exception:
        logger.exception(f"Observer {callback!r} failed on {value!r}")
        return False
