"""Full multi-epoch batch retraining with resource gating."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from importance_engine.config.config import BATCH_EPOCHS, MIN_BATCH_SIZE
from importance_engine.model.core.predictor import Predictor
from importance_engine.model.types import TrainingExample
from importance_engine.runtime.resource_monitor import ResourceMonitor
from importance_engine.utils.logging import get_logger

logger = get_logger(__name__)


class TrainingStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    DEFERRED = "DEFERRED"


@dataclass(frozen=True)
class TrainingResult:
    """Outcome of one batch pass. ``DEFERRED`` means retry later."""

    status: TrainingStatus
    examples_processed: int = 0
    duration_ms: int = 0
    checkpoint_id: Optional[str] = None
    message: str = ""

    @classmethod
    def success(cls, count: int, duration_ms: int, checkpoint_id: Optional[str]) -> "TrainingResult":
        return cls(TrainingStatus.SUCCESS, count, duration_ms, checkpoint_id, "Training completed successfully")

    @classmethod
    def failed(cls, message: str) -> "TrainingResult":
        return cls(TrainingStatus.FAILED, message=message)

    @classmethod
    def deferred(cls, message: str) -> "TrainingResult":
        return cls(TrainingStatus.DEFERRED, message=message)

    @property
    def is_success(self) -> bool:
        return self.status is TrainingStatus.SUCCESS


class BatchTrainer:
    """Serialised batch passes over the predictor.

    A call made while another pass is running returns ``FAILED`` at once
    instead of waiting.
    """

    def __init__(
        self,
        predictor: Predictor,
        monitor: ResourceMonitor,
        *,
        min_batch_size: int = MIN_BATCH_SIZE,
        default_epochs: int = BATCH_EPOCHS,
    ):
        self.predictor = predictor
        self.monitor = monitor
        self.min_batch_size = int(min_batch_size)
        self.default_epochs = int(default_epochs)
        self._lock = threading.Lock()

    @property
    def is_training(self) -> bool:
        return self._lock.locked()

    def train_batch(
        self, examples: Sequence[TrainingExample], epochs: Optional[int] = None
    ) -> TrainingResult:
        epochs = self.default_epochs if epochs is None else int(epochs)
        if not self._lock.acquire(blocking=False):
            return TrainingResult.failed("Training already in progress")
        try:
            return self._train(list(examples or ()), epochs)
        finally:
            self._lock.release()

    def _train(self, examples: list[TrainingExample], epochs: int) -> TrainingResult:
        if not examples:
            return TrainingResult.failed("No training examples provided")
        if len(examples) < self.min_batch_size:
            return TrainingResult.failed(
                f"Insufficient training examples: {len(examples)} < {self.min_batch_size}"
            )
        if epochs <= 0:
            return TrainingResult.failed(f"Invalid epoch count: {epochs}")
        if not self.monitor.is_within_limits():
            logger.warning("Resource limits exceeded; deferring batch training")
            return TrainingResult.deferred("Resource limits exceeded, training deferred")
        if not self.predictor.is_ready:
            return TrainingResult.failed("Predictor not ready")

        logger.info("Starting batch training with %d examples, %d epochs", len(examples), epochs)
        start = time.perf_counter()
        if not self.predictor.train_batch(examples, epochs):
            return TrainingResult.failed("Batch training failed")

        checkpoint = self.predictor.save_checkpoint()
        duration_ms = int((time.perf_counter() - start) * 1000)
        if checkpoint is None:
            logger.error("Batch training finished but checkpoint save failed")
        logger.info("Batch training completed in %d ms, checkpoint: %s", duration_ms, checkpoint)
        return TrainingResult.success(len(examples), duration_ms, checkpoint)
