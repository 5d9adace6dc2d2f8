"""Phase timing for load runs.

Provides the timers used to measure pre-statement, write and post-statement
durations in milliseconds.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Generator, List, Optional

__all__ = ["PhaseTimer", "LoadMetrics"]


@dataclass
class PhaseTimer:
    """Timer for tracking duration of a load phase."""

    name: str
    start_time: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return round((end - self.start_time) * 1000, 3)

    @property
    def running(self) -> bool:
        return self.end_time is None


class LoadMetrics:
    """Phase timings for a single load run.

    Example:
        metrics = LoadMetrics()
        with metrics.time_phase("write") as timer:
            writer.insert(dataset)
        print(timer.elapsed_ms)
    """

    def __init__(self) -> None:
        self._phases: List[PhaseTimer] = []

    @contextmanager
    def time_phase(self, name: str) -> Generator[PhaseTimer, None, None]:
        """Context manager to time a load phase.

        The timer is stopped even when the phase raises, so partial run
        records still carry how long the failing phase took.
        """
        timer = PhaseTimer(name=name)
        self._phases.append(timer)
        try:
            yield timer
        finally:
            timer.stop()

    def phase_durations(self) -> Dict[str, float]:
        return {p.name: p.elapsed_ms for p in self._phases}
