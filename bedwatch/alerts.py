"""Critical-weight alerting.

``derive_alert`` is a pure function over a batch of readings and is re-run on
every poll. Debouncing lives in ``AlertMonitor``, one per viewer session.
"""
from __future__ import annotations

import enum
import threading
import time
from typing import Callable, Iterable, Optional

from cachetools import TTLCache

from bedwatch.config import settings
from bedwatch.schemas import Reading


def derive_alert(readings: Iterable[Reading], threshold: float | None = None) -> Optional[Reading]:
    """Latest reading strictly below ``threshold``; ties go to the highest id."""
    threshold = settings.critical_weight if threshold is None else threshold
    matches = [r for r in readings if r.weight < threshold]
    if not matches:
        return None
    return max(matches, key=lambda r: (r.timestamp, r.id))

def status_band(weight: float) -> str:
    if weight < settings.critical_weight:
        return "critical"
    if weight < settings.warning_weight:
        return "warning"
    return "normal"


class AlertState(str, enum.Enum):
    IDLE = "idle"
    ALERTING = "alerting"
    COOLDOWN = "cooldown"


class AlertMonitor:
    def __init__(self, cooldown_seconds: float | None = None):
        self.cooldown = settings.alert_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        self.state = AlertState.IDLE
        self.last_raised_at: float | None = None

    def observe(self, alert: Optional[Reading], now: float) -> Optional[Reading]:
        """Feed one poll result; returns the alert if it should be raised now."""
        if self.state is AlertState.IDLE:
            if alert is None:
                return None
            return self._raise(alert, now)

        # ALERTING or COOLDOWN: a raise already happened at last_raised_at.
        if now - self.last_raised_at < self.cooldown:
            self.state = AlertState.COOLDOWN
            return None
        if alert is None:
            self.state = AlertState.IDLE
            self.last_raised_at = None
            return None
        return self._raise(alert, now)

    def _raise(self, alert: Reading, now: float) -> Reading:
        self.state = AlertState.ALERTING
        self.last_raised_at = now
        return alert


class AlertSessions:
    """Monitors keyed by viewer session id; idle sessions expire."""

    def __init__(self, maxsize: int | None = None, ttl: float | None = None,
                 clock: Callable[[], float] = time.monotonic):
        self._cache: TTLCache[str, AlertMonitor] = TTLCache(
            maxsize=settings.alert_max_sessions if maxsize is None else maxsize,
            ttl=settings.alert_session_ttl_seconds if ttl is None else ttl,
            timer=clock,
        )
        self._lock = threading.Lock()
        self.clock = clock

    def observe(self, session_id: str, alert: Optional[Reading]) -> tuple[Optional[Reading], AlertState]:
        with self._lock:
            mon = self._cache.get(session_id)
            if mon is None:
                mon = AlertMonitor()
            raised = mon.observe(alert, self.clock())
            # Re-insert to refresh the entry's TTL.
            self._cache[session_id] = mon
            return raised, mon.state

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
