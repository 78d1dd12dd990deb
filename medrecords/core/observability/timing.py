from __future__ import annotations

import time


def perf_now() -> float:
    """Monotonic timer for latency measurements."""

    return time.perf_counter()


def elapsed_ms(start: float) -> float:
    """Milliseconds elapsed since `start` (from perf_now())."""

    return round((time.perf_counter() - start) * 1000, 2)


class StepTimer:
    """Accumulates per-step latencies for one submission."""

    def __init__(self) -> None:
        self._started = perf_now()
        self.steps: dict[str, float] = {}

    def record(self, step: str, start: float) -> float:
        took = elapsed_ms(start)
        self.steps[step] = round(self.steps.get(step, 0.0) + took, 2)
        return took

    @property
    def total_ms(self) -> float:
        return elapsed_ms(self._started)
