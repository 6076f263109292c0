"""Tests for the online trainer's queue, consumer loop and lifecycle."""

import threading

import pytest

from importance_engine.features.vector import FeatureVector
from importance_engine.model.training.online import EnqueueResult, OnlineTrainer
from importance_engine.model.types import TrainingExample
from importance_engine.runtime.resource_monitor import ResourceMonitor, ResourceUsage


class RecordingPredictor:
    """Stands in for Predictor; remembers what it was trained on."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.trained = []
        self.checkpoints = 0
        self._lock = threading.Lock()

    @property
    def is_ready(self):
        return True

    def train_online(self, example):
        with self._lock:
            self.trained.append(example.target_score)
        return self.succeed

    def save_checkpoint(self):
        with self._lock:
            self.checkpoints += 1
        return "checkpoint"


class SwitchableMonitor(ResourceMonitor):
    def __init__(self, busy=False):
        self.busy = busy
        super().__init__(sampler=self._sample)

    def _sample(self):
        return ResourceUsage(cpu_usage=0.95 if self.busy else 0.01, memory_mb=100.0)


def example(target):
    return TrainingExample.from_target(FeatureVector.neutral(), target)


def make_trainer(predictor=None, monitor=None, **kwargs):
    kwargs.setdefault("poll_secs", 0.02)
    kwargs.setdefault("pause_wait_secs", 0.02)
    kwargs.setdefault("stop_join_secs", 2.0)
    return OnlineTrainer(predictor or RecordingPredictor(), monitor or SwitchableMonitor(), **kwargs)


def test_backpressure_drops_exactly_overflow():
    trainer = make_trainer()
    results = [trainer.enqueue(example(0.5)) for _ in range(1001)]

    assert results.count(EnqueueResult.ACCEPTED) == 1000
    assert results[-1] is EnqueueResult.DROPPED_FULL
    assert trainer.queue_size == 1000
    assert trainer.stats()["examples_dropped"] == 1


def test_examples_applied_in_fifo_order(wait_until):
    predictor = RecordingPredictor()
    trainer = make_trainer(predictor)
    targets = [i / 20 for i in range(20)]
    for t in targets:
        assert trainer.enqueue(example(t)).accepted

    trainer.start()
    try:
        assert wait_until(lambda: trainer.examples_trained == 20)
    finally:
        trainer.stop()
    assert predictor.trained == pytest.approx(targets)


def test_pauses_under_resource_pressure(wait_until):
    predictor = RecordingPredictor()
    monitor = SwitchableMonitor(busy=True)
    trainer = make_trainer(predictor, monitor)
    trainer.start()
    try:
        for _ in range(3):
            trainer.enqueue(example(0.5))
        assert wait_until(lambda: trainer.is_paused)
        assert predictor.trained == []
        assert trainer.queue_size == 3

        monitor.busy = False
        assert wait_until(lambda: trainer.examples_trained == 3)
        assert not trainer.is_paused
    finally:
        trainer.stop()


def test_manual_pause_and_resume(wait_until):
    predictor = RecordingPredictor()
    trainer = make_trainer(predictor)
    trainer.pause()
    trainer.start()
    try:
        trainer.enqueue(example(0.5))
        assert trainer.stats()["paused"] is True
        assert not wait_until(lambda: predictor.trained, timeout=0.2)

        trainer.resume()
        assert wait_until(lambda: trainer.examples_trained == 1)
    finally:
        trainer.stop()


def test_periodic_checkpoint(wait_until):
    predictor = RecordingPredictor()
    trainer = make_trainer(predictor, checkpoint_every=5)
    for _ in range(10):
        trainer.enqueue(example(0.5))
    trainer.start()
    try:
        assert wait_until(lambda: predictor.checkpoints == 2)
    finally:
        trainer.stop()


def test_failed_steps_are_counted_and_loop_continues(wait_until):
    predictor = RecordingPredictor(succeed=False)
    trainer = make_trainer(predictor)
    for _ in range(4):
        trainer.enqueue(example(0.5))
    trainer.start()
    try:
        assert wait_until(lambda: trainer.stats()["examples_failed"] == 4)
        assert trainer.is_running
        assert trainer.examples_trained == 0
    finally:
        trainer.stop()


def test_stop_discards_backlog_and_rejects(wait_until):
    trainer = make_trainer(monitor=SwitchableMonitor(busy=True))
    trainer.start()
    for _ in range(5):
        trainer.enqueue(example(0.5))
    trainer.stop()

    stats = trainer.stats()
    assert stats["queue_size"] == 0
    assert stats["running"] is False
    assert trainer.enqueue(example(0.5)) is EnqueueResult.REJECTED_STOPPED

    # restartable
    trainer.start()
    try:
        assert trainer.enqueue(example(0.5)) is EnqueueResult.ACCEPTED
    finally:
        trainer.stop()


def test_start_twice_keeps_single_consumer():
    trainer = make_trainer()
    trainer.start()
    thread = trainer._thread
    try:
        trainer.start()
        assert trainer._thread is thread
    finally:
        trainer.stop()


class BlockingPredictor(RecordingPredictor):
    """Holds the first training step until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()
        self.threads = []

    def train_online(self, example):
        with self._lock:
            self.threads.append(threading.get_ident())
        self.entered.set()
        self.release.wait(timeout=5.0)
        return super().train_online(example)


def test_restart_after_timed_out_stop_keeps_single_consumer(wait_until, caplog):
    predictor = BlockingPredictor()
    trainer = make_trainer(predictor, stop_join_secs=0.1)
    trainer.start()
    trainer.enqueue(example(0.1))
    assert predictor.entered.wait(timeout=5.0)
    old_thread = trainer._thread

    with caplog.at_level("WARNING", logger="importance_engine.model.training.online"):
        trainer.stop()
        assert "did not stop within" in caplog.text
        assert not trainer.is_running

        # the abandoned consumer is still inside a training step
        assert trainer.start() is False
        assert "still busy" in caplog.text
    assert not trainer.is_running

    predictor.release.set()
    old_thread.join(timeout=5.0)
    assert not old_thread.is_alive()

    assert trainer.start() is True
    try:
        targets = [0.2, 0.4, 0.6]
        for t in targets:
            assert trainer.enqueue(example(t)).accepted
        assert wait_until(lambda: trainer.examples_trained == 4)
        assert trainer.is_running
        assert predictor.trained == pytest.approx([0.1] + targets)
        # everything after the restart ran on one consumer
        assert len(set(predictor.threads[1:])) == 1
        assert trainer._thread is not old_thread
    finally:
        trainer.stop()
    assert not trainer.is_running
