"""Schema definitions for structured data reported by the engine."""

from typing import Optional, TypedDict


class StageMs(TypedDict):
    extract: int
    forward: int
    postprocess: int


class LatencySummary(TypedDict):
    count: int
    median_ms: int
    p95_ms: int
    per_stage_ms: StageMs


class ResourceSnapshot(TypedDict):
    cpu_usage: float
    memory_mb: float
    accelerator_active: bool
    accelerator_memory_pct: float
    available: bool


class OnlineStats(TypedDict):
    examples_trained: int
    examples_failed: int
    examples_dropped: int
    queue_size: int
    paused: bool
    running: bool


class SchedulerStatus(TypedDict):
    running: bool
    batch_in_progress: bool
    last_batch_at: Optional[str]
    last_batch_status: Optional[str]
    jobs: list[dict[str, Optional[str]]]


class EngineStats(TypedDict):
    model_version: str
    ready: bool
    messages_scored_today: int
    feedback_today: int
    latency: LatencySummary
    online: OnlineStats
    resources: ResourceSnapshot
