"""Periodic batch retraining and the online trainer's lifecycle."""

from __future__ import annotations

import threading
from typing import Callable, Optional, Sequence

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from importance_engine.config.config import (
    BATCH_EXAMPLE_LIMIT,
    BATCH_INTERVAL_HOURS,
    BATCH_VOLUME_THRESHOLD,
    MONITOR_INTERVAL_SECS,
)
from importance_engine.config.schemas import SchedulerStatus
from importance_engine.model.training.batch import BatchTrainer, TrainingResult, TrainingStatus
from importance_engine.model.training.online import OnlineTrainer
from importance_engine.model.types import TrainingExample
from importance_engine.utils.datetime import utc_now
from importance_engine.utils.logging import get_logger

logger = get_logger(__name__)

# Collaborator returning up to ``limit`` recent unused examples.
ExampleSource = Callable[[int], Sequence[TrainingExample]]

BATCH_JOB_ID = "batch_training"
MONITOR_JOB_ID = "training_monitor"
IMMEDIATE_JOB_ID = "batch_training_now"


class TrainingScheduler:
    """Run batch training every ``batch_interval_hours`` and watch online volume.

    The monitor tick triggers an extra batch pass once the online trainer has
    trained ``volume_threshold`` examples since the last pass. Example data
    comes from ``example_source``; when it yields fewer examples than the
    batch trainer's minimum the pass is skipped until the next trigger.
    """

    def __init__(
        self,
        online_trainer: OnlineTrainer,
        batch_trainer: BatchTrainer,
        example_source: Optional[ExampleSource] = None,
        *,
        batch_interval_hours: float = BATCH_INTERVAL_HOURS,
        monitor_interval_secs: float = MONITOR_INTERVAL_SECS,
        volume_threshold: int = BATCH_VOLUME_THRESHOLD,
        example_limit: int = BATCH_EXAMPLE_LIMIT,
        on_batch_result: Optional[Callable[[TrainingResult], None]] = None,
    ):
        self.online_trainer = online_trainer
        self.batch_trainer = batch_trainer
        self.example_source = example_source
        self.batch_interval_hours = batch_interval_hours
        self.monitor_interval_secs = monitor_interval_secs
        self.volume_threshold = int(volume_threshold)
        self.example_limit = int(example_limit)
        self.on_batch_result = on_batch_result

        self.scheduler = self._new_scheduler()

        self._trained_at_last_batch = 0
        self._last_batch_at: Optional[str] = None
        self._last_batch_status: Optional[str] = None

        logger.info(
            "Training scheduler initialized (interval: %sh, monitor: %ss, volume threshold: %d)",
            batch_interval_hours, monitor_interval_secs, self.volume_threshold,
        )

    def _new_scheduler(self) -> BackgroundScheduler:
        scheduler = BackgroundScheduler()
        scheduler.add_listener(self._job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        return scheduler

    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        if self.scheduler.running:
            logger.warning("Training scheduler is already running")
            return

        # a shut-down scheduler cannot be restarted cleanly
        self.scheduler = self._new_scheduler()
        self.online_trainer.start()
        self.scheduler.add_job(
            func=self.run_batch_training,
            trigger=IntervalTrigger(hours=self.batch_interval_hours),
            id=BATCH_JOB_ID,
            name="Periodic batch training",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.add_job(
            func=self._monitor_tick,
            trigger=IntervalTrigger(seconds=self.monitor_interval_secs),
            id=MONITOR_JOB_ID,
            name="Training monitor",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Training scheduler started")

    def stop(self) -> None:
        logger.info("Stopping training scheduler")
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
        self.online_trainer.stop()
        logger.info("Training scheduler stopped")

    # ------------------------------------------------------------------
    def trigger_batch_training(self) -> bool:
        """Request a batch pass off the caller's thread.

        Returns ``False`` when a pass is already running.
        """
        if self.batch_trainer.is_training:
            logger.info("Batch training already in progress; trigger ignored")
            return False
        if self.scheduler.running:
            self.scheduler.add_job(
                func=self.run_batch_training,
                id=IMMEDIATE_JOB_ID,
                name="Triggered batch training",
                max_instances=1,
                replace_existing=True,
            )
        else:
            threading.Thread(
                target=self.run_batch_training, name="batch-training", daemon=True
            ).start()
        return True

    def run_batch_training(self) -> Optional[TrainingResult]:
        """Fetch examples and run one batch pass synchronously.

        Returns ``None`` when the pass was skipped for lack of data.
        """
        if self.batch_trainer.is_training:
            logger.info("Batch training already in progress; skipping")
            return None
        if self.example_source is None:
            logger.debug("No example source configured; skipping batch training")
            return None

        trained_now = self.online_trainer.examples_trained
        try:
            examples = list(self.example_source(self.example_limit))
        except Exception:
            logger.exception("Example source failed; skipping batch training")
            return None

        if len(examples) < self.batch_trainer.min_batch_size:
            logger.info(
                "Not enough examples for batch training: %d < %d",
                len(examples), self.batch_trainer.min_batch_size,
            )
            self._record(trained_now, "SKIPPED")
            return None

        result = self.batch_trainer.train_batch(examples)
        if result.status is TrainingStatus.DEFERRED:
            # keep the volume baseline so the next tick retries
            self._last_batch_status = result.status.value
        else:
            self._record(trained_now, result.status.value)
        logger.info("Batch training result: %s (%s)", result.status.value, result.message)

        if self.on_batch_result is not None:
            try:
                self.on_batch_result(result)
            except Exception:
                logger.exception("on_batch_result callback failed")
        return result

    def _record(self, trained_count: int, status: str) -> None:
        self._trained_at_last_batch = trained_count
        self._last_batch_at = utc_now().isoformat()
        self._last_batch_status = status

    def _monitor_tick(self) -> None:
        self.batch_trainer.monitor.log_resource_usage()
        stats = self.online_trainer.stats()
        logger.info(
            "Online training stats - trained: %d, queue: %d, paused: %s",
            stats["examples_trained"], stats["queue_size"], stats["paused"],
        )

        since_last = stats["examples_trained"] - self._trained_at_last_batch
        if since_last >= self.volume_threshold and not self.batch_trainer.is_training:
            logger.info("%d examples trained online since last batch; triggering batch training", since_last)
            self.run_batch_training()

    def _job_listener(self, event) -> None:
        if event.exception:
            logger.error("Scheduled job %s failed: %s", event.job_id, event.exception)
        else:
            logger.debug("Scheduled job %s completed", event.job_id)

    # ------------------------------------------------------------------
    def status(self) -> SchedulerStatus:
        jobs = []
        if self.scheduler.running:
            jobs = [
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                }
                for job in self.scheduler.get_jobs()
            ]
        return SchedulerStatus(
            running=self.scheduler.running,
            batch_in_progress=self.batch_trainer.is_training,
            last_batch_at=self._last_batch_at,
            last_batch_status=self._last_batch_status,
            jobs=jobs,
        )
