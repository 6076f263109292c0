import time
from pathlib import Path
from threading import Lock
from typing import Deque, Dict, Optional
from collections import deque

import numpy as np

from importance_engine.config.config import SCORING_LATENCY_TARGET_MS, SLO_P95_MS
from importance_engine.config.schemas import LatencySummary, StageMs

STAGES = ("extract", "forward", "postprocess")


def ensure_dir(path: str | Path) -> Path:
    """Ensure the directory exists and return the Path."""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


class LatencyTimer:
    """Context manager for timing operations with per-stage tracking."""

    def __init__(self):
        self.start_time: Optional[float] = None
        self.stage_times: Dict[str, float] = {}
        self.stage_durations: Dict[str, int] = {}
        self.total_duration_ms: Optional[int] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.total_duration_ms = self.elapsed_ms()

    def elapsed_ms(self) -> int:
        """Milliseconds since the timer was entered."""
        if self.start_time is None:
            return 0
        return int((time.perf_counter() - self.start_time) * 1000)

    def start_stage(self, stage_name: str):
        """Start timing a specific stage."""
        self.stage_times[stage_name] = time.perf_counter()

    def end_stage(self, stage_name: str):
        """End timing a specific stage."""
        if stage_name in self.stage_times:
            duration_ms = int((time.perf_counter() - self.stage_times[stage_name]) * 1000)
            self.stage_durations[stage_name] = duration_ms

    def get_stage_ms(self) -> StageMs:
        """Get stage durations in the expected format."""
        return StageMs(
            extract=self.stage_durations.get("extract", 0),
            forward=self.stage_durations.get("forward", 0),
            postprocess=self.stage_durations.get("postprocess", 0),
        )


class LatencyAggregator:
    """Rolling latency window compared against the scoring targets.

    Safe to feed from concurrent scoring callers.
    """

    def __init__(self, window: int = 1000):
        self.measurements: Deque[int] = deque(maxlen=window)
        self.stage_measurements: Dict[str, Deque[int]] = {
            stage: deque(maxlen=window) for stage in STAGES
        }
        self._lock = Lock()

    def add_measurement(self, total_ms: int, stage_ms: StageMs):
        """Add a latency measurement."""
        with self._lock:
            self.measurements.append(int(total_ms))
            for stage in STAGES:
                self.stage_measurements[stage].append(int(stage_ms[stage]))

    def get_summary(self) -> LatencySummary:
        """Calculate latency summary over the window."""
        with self._lock:
            totals = list(self.measurements)
            stages = {k: list(v) for k, v in self.stage_measurements.items()}

        if not totals:
            return LatencySummary(
                count=0,
                median_ms=0,
                p95_ms=0,
                per_stage_ms=StageMs(extract=0, forward=0, postprocess=0),
            )

        per_stage = {k: int(np.mean(v)) if v else 0 for k, v in stages.items()}
        return LatencySummary(
            count=len(totals),
            median_ms=int(np.percentile(totals, 50)),
            p95_ms=int(np.percentile(totals, 95)),
            per_stage_ms=StageMs(**per_stage),
        )

    def meets_slo(self) -> Dict[str, bool]:
        """Check if current measurements meet the latency targets."""
        summary = self.get_summary()
        return {
            "median_slo": summary["median_ms"] < SCORING_LATENCY_TARGET_MS,
            "p95_slo": summary["p95_ms"] < SLO_P95_MS,
        }

    def clear(self):
        """Clear all measurements."""
        with self._lock:
            self.measurements.clear()
            for stage_list in self.stage_measurements.values():
                stage_list.clear()
