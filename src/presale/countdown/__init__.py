"""Submission window countdown."""

from presale.countdown.gate import CLOSED_STATE, CountdownGate, CountdownState
from presale.countdown.timer import CountdownTimer

__all__ = [
    "CLOSED_STATE",
    "CountdownGate",
    "CountdownState",
    "CountdownTimer",
]
