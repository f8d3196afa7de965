"""Progress observer plumbing for the transcription orchestrator."""

from __future__ import annotations

from typing import Callable

from chunkscribe.contracts.artifacts import ProgressEvent, ProgressPhase


type ProgressCallback = Callable[[ProgressEvent], None]


def build_event(phase: ProgressPhase, current: int, total: int) -> ProgressEvent:
    if current < 0 or total < 0:
        raise ValueError("progress counters must be >= 0")
    percent = 0 if total == 0 else min(100, round(100 * current / total))
    return ProgressEvent(phase=ProgressPhase(phase), current=current, total=total, percent=percent)


class ProgressReporter:
    """Forwards progress events to an optional observer, synchronously.

    Exceptions raised by the observer are not caught here.
    """

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._callback = callback

    def emit(self, phase: ProgressPhase, current: int, total: int) -> ProgressEvent:
        event = build_event(phase, current, total)
        if self._callback is not None:
            self._callback(event)
        return event


__all__ = ["ProgressCallback", "ProgressReporter", "build_event"]
