"""End-to-end behaviour of the assembled engine."""

import pytest

from importance_engine.model.core.predictor import Predictor, list_checkpoints
from importance_engine.model.training.batch import TrainingStatus
from importance_engine.model.training.online import EnqueueResult
from importance_engine.model.types import ImportanceLevel, ImportanceScore, TrainingExample
from importance_engine.runtime.resource_monitor import ResourceUsage
from importance_engine.service.engine import EngineStartupError, build_engine


def idle_sampler():
    return ResourceUsage(cpu_usage=0.01, memory_mb=200.0)


@pytest.fixture
def engine(temp_models_dir):
    engine = build_engine(
        temp_models_dir,
        sampler=idle_sampler,
        env_file=temp_models_dir / "missing.env",
    )
    yield engine
    if engine.scheduler.is_running:
        engine.stop()


def test_build_and_score(engine, sample_message, fixed_context):
    result = engine.score(sample_message, fixed_context)

    assert isinstance(result, ImportanceScore)
    assert result.model_version == engine.predictor.model_version
    assert result.model_version != "default"

    stats = engine.stats()
    assert stats["ready"] is True
    assert stats["messages_scored_today"] == 1
    assert stats["latency"]["count"] == 1
    assert stats["resources"]["available"] is True


def test_urgent_message_learned_as_high(engine, sample_message, calm_message, fixed_context):
    """Batch training on urgent vs. calm messages biases the model toward urgency cues."""
    urgent = engine.extractor.extract(sample_message, fixed_context)
    calm = engine.extractor.extract(calm_message, fixed_context)

    assert urgent.get("urgent_keyword_match") == 1.0
    assert urgent.get("exclamation_count") > 0.0
    assert urgent.get("uppercase_ratio") == pytest.approx(10 / 33, rel=1e-6)

    examples = [TrainingExample.from_target(urgent, 1.0) for _ in range(32)]
    examples += [TrainingExample.from_target(calm, 0.0) for _ in range(32)]
    result = engine.batch_trainer.train_batch(examples, epochs=100)
    assert result.status is TrainingStatus.SUCCESS

    high = engine.score(sample_message, fixed_context)
    assert high.level is ImportanceLevel.HIGH
    assert high.confidence >= 0.5
    assert high.model_version == engine.predictor.model_version

    low = engine.score(calm_message, fixed_context)
    assert low.score < high.score


def test_feedback_flows_through_online_training(engine, sample_message, fixed_context, wait_until):
    prior = engine.score(sample_message, fixed_context)
    engine.start()

    assert engine.record_feedback(sample_message, prior, "too low", fixed_context) is EnqueueResult.ACCEPTED
    assert engine.record_interaction(sample_message, True, 15000, fixed_context) is EnqueueResult.ACCEPTED
    assert engine.record_feedback(sample_message, 0.4, "GOOD", fixed_context).accepted

    assert wait_until(lambda: engine.stats()["online"]["examples_trained"] == 3)
    assert engine.stats()["feedback_today"] == 2


def test_stop_persists_and_restart_resumes(temp_models_dir, sample_message, fixed_context):
    first = build_engine(temp_models_dir, sampler=idle_sampler)
    first.start()
    before = first.score(sample_message, fixed_context)
    first.stop()

    assert len(list_checkpoints(temp_models_dir)) == 1
    assert first.record_interaction(sample_message, False, 0) is EnqueueResult.REJECTED_STOPPED

    second = build_engine(temp_models_dir, sampler=idle_sampler)
    after = second.score(sample_message, fixed_context)
    assert after.model_version == first.predictor.model_version
    assert after.score == before.score


def test_models_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("IMPORTANCE_MODELS_DIR", str(tmp_path / "from-env"))
    engine = build_engine(sampler=idle_sampler, env_file=tmp_path / "missing.env")
    assert engine.predictor.models_dir == tmp_path / "from-env"


def test_startup_failure_is_fatal(temp_models_dir, monkeypatch):
    monkeypatch.setattr(Predictor, "initialize", lambda self: False)
    with pytest.raises(EngineStartupError):
        build_engine(temp_models_dir, sampler=idle_sampler)


def test_engine_restarts_after_stop(engine, sample_message, fixed_context, wait_until):
    engine.start()
    engine.stop()
    saved_version = engine.predictor.model_version
    assert engine.stats()["ready"] is False

    engine.start()
    assert engine.stats()["ready"] is True
    assert engine.scheduler.is_running

    result = engine.score(sample_message, fixed_context)
    assert result.model_version == saved_version
    assert result.model_version != "default"

    assert engine.record_feedback(sample_message, result, "too low", fixed_context) is EnqueueResult.ACCEPTED
    assert wait_until(lambda: engine.stats()["online"]["examples_trained"] == 1)


def test_restart_failure_is_fatal(engine, monkeypatch):
    engine.start()
    engine.stop()
    monkeypatch.setattr(Predictor, "initialize", lambda self: False)
    with pytest.raises(EngineStartupError):
        engine.start()
    assert not engine.scheduler.is_running


def test_malformed_feedback_is_rejected(engine, sample_message, fixed_context):
    before = engine.online_trainer.queue_size

    assert engine.record_feedback(sample_message, 0.5, "bogus", fixed_context) is EnqueueResult.REJECTED_INVALID
    assert engine.record_feedback(sample_message, "abc", "too low", fixed_context) is EnqueueResult.REJECTED_INVALID
    assert engine.record_feedback(sample_message, 0.5, 42, fixed_context) is EnqueueResult.REJECTED_INVALID
    assert engine.record_interaction(sample_message, True, "long", fixed_context) is EnqueueResult.REJECTED_INVALID

    assert engine.online_trainer.queue_size == before
    assert engine.stats()["feedback_today"] == 0
