"""Tests for batch training outcomes and gating."""

from pathlib import Path

import pytest

from importance_engine.model.core.predictor import Predictor, list_checkpoints
from importance_engine.model.training.batch import BatchTrainer, TrainingResult, TrainingStatus


def test_rejects_empty_and_small_batches(ready_predictor, idle_monitor, make_examples):
    trainer = BatchTrainer(ready_predictor, idle_monitor)

    empty = trainer.train_batch([])
    assert empty.status is TrainingStatus.FAILED
    assert "No training examples" in empty.message

    small = trainer.train_batch(make_examples(31))
    assert small.status is TrainingStatus.FAILED
    assert "Insufficient" in small.message


def test_deferred_under_resource_pressure(ready_predictor, busy_monitor, make_examples, temp_models_dir):
    trainer = BatchTrainer(ready_predictor, busy_monitor)
    digest = ready_predictor.weights_digest()

    result = trainer.train_batch(make_examples(40))

    assert result.status is TrainingStatus.DEFERRED
    assert result.checkpoint_id is None
    assert ready_predictor.weights_digest() == digest
    assert list_checkpoints(temp_models_dir) == []


def test_success_saves_exactly_one_checkpoint(ready_predictor, idle_monitor, make_examples, temp_models_dir):
    trainer = BatchTrainer(ready_predictor, idle_monitor)
    digest = ready_predictor.weights_digest()

    result = trainer.train_batch(make_examples(40), epochs=2)

    assert result.is_success
    assert result.examples_processed == 40
    assert result.duration_ms >= 0
    assert Path(result.checkpoint_id).is_file()
    assert len(list_checkpoints(temp_models_dir)) == 1
    assert ready_predictor.weights_digest() != digest
    assert not trainer.is_training


def test_concurrent_call_reports_in_progress(ready_predictor, idle_monitor, make_examples):
    trainer = BatchTrainer(ready_predictor, idle_monitor)
    trainer._lock.acquire()
    try:
        assert trainer.is_training
        result = trainer.train_batch(make_examples(40))
    finally:
        trainer._lock.release()
    assert result.status is TrainingStatus.FAILED
    assert "already in progress" in result.message


def test_not_ready_predictor_fails(temp_models_dir, idle_monitor, make_examples):
    trainer = BatchTrainer(Predictor(models_dir=temp_models_dir), idle_monitor)
    assert trainer.train_batch(make_examples(40)).status is TrainingStatus.FAILED


@pytest.mark.parametrize(
    "result, status",
    [
        (TrainingResult.success(10, 5, "x"), TrainingStatus.SUCCESS),
        (TrainingResult.failed("nope"), TrainingStatus.FAILED),
        (TrainingResult.deferred("later"), TrainingStatus.DEFERRED),
    ],
)
def test_result_constructors(result, status):
    assert result.status is status
    assert result.is_success is (status is TrainingStatus.SUCCESS)
