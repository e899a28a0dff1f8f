"""Countdown timer — drives a CountdownGate on a fixed period.

The timer runs on its own daemon thread, independent of all other
activity. It delivers every computed state to ``on_tick`` and stops by
itself after delivering the first closed state. ``stop()`` joins the
worker so no timer outlives its owner.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from presale.countdown.gate import CountdownGate, CountdownState

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CountdownTimer:
    """Periodic scheduler for a countdown gate.

    Usage:
        with CountdownTimer(gate, deadline, on_tick=render):
            ...  # timer runs until the block exits or the window closes
    """

    def __init__(
        self,
        gate: CountdownGate,
        deadline: datetime,
        on_tick: Callable[[CountdownState], None],
        period_seconds: float = 1.0,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if period_seconds <= 0:
            raise ValueError(f"Timer period must be positive, got {period_seconds}")
        self._gate = gate
        self._deadline = deadline
        self._on_tick = on_tick
        self._period = period_seconds
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_state: Optional[CountdownState] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_state(self) -> Optional[CountdownState]:
        return self._last_state

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Countdown timer already started")
        self._thread = threading.Thread(
            target=self._run, name="countdown-timer", daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            state = self._gate.tick(self._clock(), self._deadline)
            self._last_state = state
            try:
                self._on_tick(state)
            except Exception:
                logger.exception("Countdown tick handler failed; timer stopped")
                return
            if state.closed:
                logger.info("Submission window closed at deadline %s", self._deadline.isoformat())
                return
            self._stop_event.wait(self._period)

    def __enter__(self) -> CountdownTimer:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
