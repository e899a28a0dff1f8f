"""Countdown gate — remaining time and the window-closed signal.

The submission window is a single fixed deadline. The gate turns
(now, deadline) into a CountdownState:

- remaining time is the millisecond delta decomposed into whole
  hours/minutes/seconds by floor division (hours are not wrapped at 24);
- ``closed`` becomes true the first time the delta is negative and
  stays true for that deadline, even if a later tick sees an earlier
  clock reading.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

_MS_PER_SECOND = 1000
_MS_PER_MINUTE = 60 * _MS_PER_SECOND
_MS_PER_HOUR = 60 * _MS_PER_MINUTE


@dataclass(frozen=True)
class CountdownState:
    """Derived window state. Not persisted."""
    hours: int
    minutes: int
    seconds: int
    closed: bool

    @property
    def remaining(self) -> timedelta:
        return timedelta(hours=self.hours, minutes=self.minutes, seconds=self.seconds)

    def display(self) -> str:
        if self.closed:
            return "CLOSED"
        return f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}"


CLOSED_STATE = CountdownState(hours=0, minutes=0, seconds=0, closed=True)


class CountdownGate:
    """Computes window state from two instants.

    The only retained state is the last ``closed`` flag, which is
    monotone (false → true) for a given deadline. Ticking against a
    different deadline starts a fresh window.

    Thread-safe: a CountdownTimer thread and callers may tick the same
    gate concurrently.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._deadline: Optional[datetime] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def tick(self, now: datetime, deadline: datetime) -> CountdownState:
        with self._lock:
            return self._tick(now, deadline)

    def _tick(self, now: datetime, deadline: datetime) -> CountdownState:
        if deadline != self._deadline:
            self._deadline = deadline
            self._closed = False

        if self._closed:
            return CLOSED_STATE

        delta_ms = (deadline - now) // timedelta(milliseconds=1)
        if delta_ms < 0:
            self._closed = True
            return CLOSED_STATE

        return CountdownState(
            hours=delta_ms // _MS_PER_HOUR,
            minutes=(delta_ms % _MS_PER_HOUR) // _MS_PER_MINUTE,
            seconds=(delta_ms % _MS_PER_MINUTE) // _MS_PER_SECOND,
            closed=False,
        )
