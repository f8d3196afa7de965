from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass(slots=True)
class Timer:
    """Monotonic stopwatch for reporting how long a transcription took."""

    start_s: float

    @classmethod
    def start(cls) -> "Timer":
        return cls(start_s=time.monotonic())

    def elapsed_s(self) -> float:
        return max(0.0, time.monotonic() - self.start_s)

    def format_elapsed(self) -> str:
        minutes, seconds = divmod(self.elapsed_s(), 60)
        if minutes:
            return f"{int(minutes)}m{seconds:04.1f}s"
        return f"{seconds:.1f}s"


__all__ = ["Timer"]
