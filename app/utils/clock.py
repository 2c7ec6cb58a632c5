# app/utils/clock.py
"""
Time source for every expiry and admission-window comparison.
Services take a `clock` argument defaulting to utcnow so tests can pin the time.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def fixed_clock(instant: datetime) -> Clock:
    return lambda: instant


def get_clock() -> Clock:
    """FastAPI dependency; overridden in tests to pin the time."""
    return utcnow
