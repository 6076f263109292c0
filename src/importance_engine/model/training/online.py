"""Online (incremental) training on a single background consumer thread."""

from __future__ import annotations

import queue
import threading
from enum import Enum
from typing import Optional

from importance_engine.config.config import (
    CHECKPOINT_EVERY,
    ONLINE_POLL_SECS,
    ONLINE_QUEUE_CAPACITY,
    PAUSE_WAIT_SECS,
    STOP_JOIN_SECS,
)
from importance_engine.config.schemas import OnlineStats
from importance_engine.model.core.predictor import Predictor
from importance_engine.model.types import TrainingExample
from importance_engine.runtime.resource_monitor import ResourceMonitor
from importance_engine.utils.logging import get_logger

logger = get_logger(__name__)


class EnqueueResult(str, Enum):
    ACCEPTED = "ACCEPTED"
    DROPPED_FULL = "DROPPED_FULL"
    REJECTED_STOPPED = "REJECTED_STOPPED"
    REJECTED_INVALID = "REJECTED_INVALID"

    @property
    def accepted(self) -> bool:
        return self is EnqueueResult.ACCEPTED


class OnlineTrainer:
    """Drain a bounded FIFO of training examples into ``Predictor.train_online``.

    Producers never block: a full queue drops the example. Examples enqueued
    before ``start`` are buffered; after ``stop`` they are rejected until the
    trainer is started again. Examples still queued at ``stop`` are discarded.

    The consumer pauses itself whenever the resource monitor asks for it and
    can also be paused by hand; a manual pause is only lifted by ``resume``.
    """

    def __init__(
        self,
        predictor: Predictor,
        monitor: ResourceMonitor,
        *,
        capacity: int = ONLINE_QUEUE_CAPACITY,
        checkpoint_every: int = CHECKPOINT_EVERY,
        poll_secs: float = ONLINE_POLL_SECS,
        pause_wait_secs: float = PAUSE_WAIT_SECS,
        stop_join_secs: float = STOP_JOIN_SECS,
    ):
        self.predictor = predictor
        self.monitor = monitor
        self.capacity = int(capacity)
        self.checkpoint_every = int(checkpoint_every)
        self.poll_secs = poll_secs
        self.pause_wait_secs = pause_wait_secs
        self.stop_join_secs = stop_join_secs

        self._queue: "queue.Queue[TrainingExample]" = queue.Queue(maxsize=self.capacity)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stopped = False
        self._running = False
        self._resource_paused = False
        self._manual_paused = False

        self._lock = threading.Lock()
        self._trained = 0
        self._failed = 0
        self._dropped = 0

    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._resource_paused or self._manual_paused

    @property
    def examples_trained(self) -> int:
        return self._trained

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    def start(self) -> bool:
        """Spawn the consumer; ``False`` if one is running or still winding down."""
        if self._running:
            logger.warning("Online trainer is already running")
            return False
        previous = self._thread
        if previous is not None and previous.is_alive():
            previous.join(timeout=self.stop_join_secs)
            if previous.is_alive():
                logger.warning("Previous online trainer thread is still busy; not starting a second consumer")
                return False

        # each run gets its own event so an abandoned consumer stays stopped
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._stopped = False
        self._running = True
        self._thread = threading.Thread(
            target=self._run, args=(stop_event,), name="online-trainer", daemon=True
        )
        self._thread.start()
        logger.info("Online trainer started")
        return True

    def stop(self) -> None:
        """Ask the consumer to exit, wait a bounded time, discard the backlog."""
        self._stopped = True
        self._stop_event.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout=self.stop_join_secs)
            if thread.is_alive():
                logger.warning(
                    "Online trainer did not stop within %.1fs; abandoning daemon thread",
                    self.stop_join_secs,
                )
            else:
                self._thread = None
        self._running = False

        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            discarded += 1
        if discarded:
            logger.info("Discarded %d queued training examples on stop", discarded)
        logger.info("Online trainer stopped")

    def pause(self) -> None:
        if not self._manual_paused:
            self._manual_paused = True
            logger.info("Online training paused")

    def resume(self) -> None:
        if self._manual_paused:
            self._manual_paused = False
            logger.info("Online training resumed")

    # ------------------------------------------------------------------
    def enqueue(self, example: TrainingExample) -> EnqueueResult:
        if self._stopped:
            logger.debug("Online trainer stopped; rejecting training example")
            return EnqueueResult.REJECTED_STOPPED
        try:
            self._queue.put_nowait(example)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            logger.warning("Training queue full (%d); dropping example", self.capacity)
            return EnqueueResult.DROPPED_FULL
        return EnqueueResult.ACCEPTED

    # ------------------------------------------------------------------
    def _update_pause_state(self) -> None:
        should_pause = self.monitor.should_pause_training()
        if should_pause and not self._resource_paused:
            self._resource_paused = True
            logger.info("Pausing online training due to resource constraints")
        elif not should_pause and self._resource_paused:
            self._resource_paused = False
            logger.info("Resuming online training")

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                self._update_pause_state()
                if self.is_paused:
                    stop_event.wait(self.pause_wait_secs)
                    continue

                try:
                    example = self._queue.get(timeout=self.poll_secs)
                except queue.Empty:
                    continue
                if stop_event.is_set():
                    break
                self._train(example)
            except Exception:
                logger.exception("Error in online training loop")

        if self._thread is threading.current_thread():
            self._running = False

    def _train(self, example: TrainingExample) -> None:
        if not self.predictor.train_online(example):
            with self._lock:
                self._failed += 1
            return

        with self._lock:
            self._trained += 1
            trained = self._trained
        if self.checkpoint_every > 0 and trained % self.checkpoint_every == 0:
            logger.info("Trained %d examples; saving checkpoint in background", trained)
            threading.Thread(
                target=self.predictor.save_checkpoint, name="online-checkpoint", daemon=True
            ).start()

    def stats(self) -> OnlineStats:
        with self._lock:
            return OnlineStats(
                examples_trained=self._trained,
                examples_failed=self._failed,
                examples_dropped=self._dropped,
                queue_size=self._queue.qsize(),
                paused=self.is_paused,
                running=self._running,
            )
