"""Monitoring utilities for tracking engine counters."""

from datetime import date
from threading import Lock
from typing import Callable, Dict

from importance_engine.utils.datetime import utc_now


class DailyCounter:
    """Named counters that reset when the UTC day changes.

    The day boundary is checked on every access, so no timer is needed to
    roll the window over.
    """

    def __init__(self, today: Callable[[], date] | None = None):
        self._today = today or (lambda: utc_now().date())
        self._day = self._today()
        self._counts: Dict[str, int] = {}
        self._lock = Lock()

    def _roll(self) -> None:
        day = self._today()
        if day != self._day:
            self._day = day
            self._counts.clear()

    def increment(self, name: str, amount: int = 1) -> int:
        """Add ``amount`` to ``name`` and return the new value."""
        with self._lock:
            self._roll()
            self._counts[name] = self._counts.get(name, 0) + amount
            return self._counts[name]

    def get(self, name: str) -> int:
        """Return today's value for ``name``."""
        with self._lock:
            self._roll()
            return self._counts.get(name, 0)
