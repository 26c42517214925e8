"""
BizModelAI — Progress estimation for the generation pipeline.

Progress is the larger of two estimates:

- discrete: completed stages plus partial credit for the active stage,
  the partial credit growing with time spent against the stage's
  estimate and capped below a full stage
- time-based: elapsed wall time over the total budget, capped

The reported percent never decreases and stays below 100 until
``finish()`` is called.

Example Usage:
    tracker = ProgressTracker(STAGE_NAMES, STAGE_ESTIMATES, total_budget=25.0)
    tracker.start()
    tracker.begin_stage(0)
    event = tracker.snapshot()      # ProgressEvent(stage_index=0, ...)
    tracker.complete_stage(0)
    tracker.finish()                # percent == 100
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Sequence

from app.schemas.report import ProgressEvent

PARTIAL_STAGE_CAP = 0.9
TIME_FLOOR_CAP = 0.95
MAX_UNFINISHED_PERCENT = 99


class ProgressTracker:
    """Blended, monotonic progress over a fixed list of stages."""

    def __init__(
        self,
        stage_names: Sequence[str],
        stage_estimates: Sequence[float],
        total_budget: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if len(stage_names) != len(stage_estimates):
            raise ValueError("stage_names and stage_estimates must have equal length")
        if not stage_names:
            raise ValueError("At least one stage is required")

        self.stage_names = list(stage_names)
        self.stage_estimates = list(stage_estimates)
        self.total_budget = total_budget
        self._clock = clock

        self._started_at: Optional[float] = None
        self._stage_started_at: Optional[float] = None
        self._active_index = 0
        self._completed = 0
        self._last_percent = 0
        self._done = False

    @property
    def total_stages(self) -> int:
        return len(self.stage_names)

    @property
    def active_index(self) -> int:
        return self._active_index

    @property
    def done(self) -> bool:
        return self._done

    def start(self) -> None:
        now = self._clock()
        self._started_at = now
        self._stage_started_at = now
        self._active_index = 0
        self._completed = 0
        self._last_percent = 0
        self._done = False

    def begin_stage(self, index: int) -> None:
        self._active_index = index
        self._stage_started_at = self._clock()

    def complete_stage(self, index: int) -> None:
        self._completed = max(self._completed, index + 1)
        self._stage_started_at = self._clock()

    def _discrete_fraction(self, now: float) -> float:
        fraction = self._completed / self.total_stages
        if self._completed < self.total_stages and self._stage_started_at is not None:
            estimate = self.stage_estimates[self._active_index]
            in_stage = max(0.0, now - self._stage_started_at)
            partial = min(in_stage / estimate, PARTIAL_STAGE_CAP) if estimate > 0 else 0.0
            fraction += partial / self.total_stages
        return fraction

    def _time_fraction(self, now: float) -> float:
        if self._started_at is None or self.total_budget <= 0:
            return 0.0
        return min((now - self._started_at) / self.total_budget, TIME_FLOOR_CAP)

    def percent(self) -> int:
        if self._done:
            return 100
        if self._started_at is None:
            return 0
        now = self._clock()
        blended = max(self._discrete_fraction(now), self._time_fraction(now))
        value = min(int(blended * 100 + 1e-9), MAX_UNFINISHED_PERCENT)
        self._last_percent = max(self._last_percent, value)
        return self._last_percent

    def snapshot(self) -> ProgressEvent:
        percent = self.percent()
        return ProgressEvent(
            stage_index=self._active_index,
            stage=self.stage_names[self._active_index],
            percent=percent,
        )

    def finish(self) -> ProgressEvent:
        self._completed = self.total_stages
        self._active_index = self.total_stages - 1
        self._done = True
        self._last_percent = 100
        return self.snapshot()
