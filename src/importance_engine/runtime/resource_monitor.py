"""CPU / memory / accelerator sampling and the ceilings background learning obeys.

Two gates are derived from one snapshot:

* ``is_within_limits`` - hard ceilings, used as the entry gate for batch passes.
* ``should_pause_training`` - looser thresholds (1.5x CPU, 90% memory) used by
  the online trainer to decide whether to suspend.

A snapshot that could not be read is reported as unknown (zeros,
``available=False``) and both gates take the conservative branch for it.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Callable, Optional

import psutil
import torch

from importance_engine.config.config import (
    MAX_ACCELERATOR_MEMORY_PCT,
    MAX_CPU_WITH_ACCELERATOR,
    MAX_CPU_WITHOUT_ACCELERATOR,
    MAX_MEMORY_MB,
    PAUSE_CPU_FACTOR,
    PAUSE_MEMORY_FACTOR,
)
from importance_engine.config.schemas import ResourceSnapshot
from importance_engine.utils.logging import get_logger

logger = get_logger(__name__)

_MB = 1024 * 1024


@dataclass(frozen=True)
class ResourceUsage:
    """One read-only resource sample. ``cpu_usage`` is a fraction in [0, 1]."""

    cpu_usage: float
    memory_mb: float
    accelerator_active: bool = False
    accelerator_memory_pct: float = 0.0
    available: bool = True

    @classmethod
    def unknown(cls) -> "ResourceUsage":
        return cls(0.0, 0.0, False, 0.0, available=False)

    @property
    def is_healthy(self) -> bool:
        """Loose sanity check for reporting: readable, CPU < 90%, memory under the ceiling."""
        return self.available and self.cpu_usage < 0.9 and self.memory_mb < MAX_MEMORY_MB

    def to_dict(self) -> ResourceSnapshot:
        return ResourceSnapshot(**asdict(self))


@dataclass(frozen=True)
class ResourceLimits:
    max_cpu_with_accelerator: float = MAX_CPU_WITH_ACCELERATOR
    max_cpu_without_accelerator: float = MAX_CPU_WITHOUT_ACCELERATOR
    max_memory_mb: float = MAX_MEMORY_MB
    max_accelerator_memory_pct: float = MAX_ACCELERATOR_MEMORY_PCT
    pause_cpu_factor: float = PAUSE_CPU_FACTOR
    pause_memory_factor: float = PAUSE_MEMORY_FACTOR

    def cpu_ceiling(self, accelerator_active: bool) -> float:
        return self.max_cpu_with_accelerator if accelerator_active else self.max_cpu_without_accelerator


class AcceleratorProbe:
    """Report whether a CUDA device is in use and how full its memory is."""

    def __init__(self, device_index: int = 0):
        self.device_index = device_index

    def is_active(self) -> bool:
        try:
            return bool(torch.cuda.is_available())
        except Exception:
            logger.debug("CUDA availability check failed", exc_info=True)
            return False

    def memory_pct(self) -> float:
        if not self.is_active():
            return 0.0
        free, total = torch.cuda.mem_get_info(self.device_index)
        if total <= 0:
            return 0.0
        return 100.0 * (total - free) / total


def cpu_load_fraction() -> float:
    """System load average divided by logical CPUs, clamped to [0, 1]; 0 if unavailable."""
    try:
        load = os.getloadavg()[0]
    except (AttributeError, OSError):
        return 0.0
    cpus = psutil.cpu_count(logical=True) or 0
    if load < 0 or cpus <= 0:
        return 0.0
    return max(0.0, min(1.0, load / cpus))


def process_memory_mb(process: psutil.Process | None = None) -> float:
    return (process or psutil.Process()).memory_info().rss / _MB


class SystemSampler:
    """Default sampler: load average, process RSS and the accelerator probe."""

    def __init__(self, probe: AcceleratorProbe | None = None):
        self.probe = probe or AcceleratorProbe()
        self._process = psutil.Process()

    def __call__(self) -> ResourceUsage:
        active = self.probe.is_active()
        return ResourceUsage(
            cpu_usage=cpu_load_fraction(),
            memory_mb=process_memory_mb(self._process),
            accelerator_active=active,
            accelerator_memory_pct=self.probe.memory_pct() if active else 0.0,
        )


Sampler = Callable[[], ResourceUsage]


class ResourceMonitor:
    """Resource gates for background learning. Safe to call from any thread.

    Usage:
        monitor = ResourceMonitor()
        if monitor.is_within_limits():
            ...
    """

    def __init__(self, sampler: Optional[Sampler] = None, limits: ResourceLimits | None = None):
        self.sampler = sampler or SystemSampler()
        self.limits = limits or ResourceLimits()

    def current_usage(self) -> ResourceUsage:
        try:
            usage = self.sampler()
        except Exception as e:
            logger.warning("Failed to read resource usage: %s", e)
            return ResourceUsage.unknown()
        if usage is None:
            return ResourceUsage.unknown()
        return usage

    def is_within_limits(self, usage: ResourceUsage | None = None) -> bool:
        usage = usage or self.current_usage()
        if not usage.available:
            return False

        limits = self.limits
        cpu_ceiling = limits.cpu_ceiling(usage.accelerator_active)
        if usage.cpu_usage > cpu_ceiling:
            logger.debug("CPU usage %.1f%% exceeds limit %.1f%%",
                         usage.cpu_usage * 100, cpu_ceiling * 100)
            return False
        if usage.memory_mb > limits.max_memory_mb:
            logger.debug("Memory usage %.0f MB exceeds limit %.0f MB",
                         usage.memory_mb, limits.max_memory_mb)
            return False
        if usage.accelerator_active and usage.accelerator_memory_pct > limits.max_accelerator_memory_pct:
            logger.debug("Accelerator memory %.1f%% exceeds limit %.1f%%",
                         usage.accelerator_memory_pct, limits.max_accelerator_memory_pct)
            return False
        return True

    def should_pause_training(self, usage: ResourceUsage | None = None) -> bool:
        usage = usage or self.current_usage()
        if not usage.available:
            return True

        limits = self.limits
        cpu_threshold = limits.cpu_ceiling(usage.accelerator_active) * limits.pause_cpu_factor
        memory_threshold = limits.max_memory_mb * limits.pause_memory_factor
        return usage.cpu_usage > cpu_threshold or usage.memory_mb > memory_threshold

    def log_resource_usage(self) -> ResourceUsage:
        usage = self.current_usage()
        if not usage.available:
            logger.info("Resource usage unavailable")
        else:
            logger.info(
                "Resource usage - CPU: %.1f%%, Memory: %.0f MB, Accelerator: %s (%.1f%% memory)",
                usage.cpu_usage * 100,
                usage.memory_mb,
                "active" if usage.accelerator_active else "inactive",
                usage.accelerator_memory_pct,
            )
        return usage
