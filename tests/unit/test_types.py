"""Tests for importance levels, scores, contexts and training examples."""

import pytest

from importance_engine.features.text import TextFeatureExtractor
from importance_engine.features.vector import FeatureVector
from importance_engine.model.types import (
    FeedbackType,
    ImportanceLevel,
    ImportanceScore,
    Message,
    ScoringContext,
    TrainingExample,
)

FEATURES = FeatureVector.neutral()


@pytest.mark.parametrize(
    "score, level",
    [
        (0.0, ImportanceLevel.LOW),
        (0.3299, ImportanceLevel.LOW),
        (0.33, ImportanceLevel.MEDIUM),
        (0.5, ImportanceLevel.MEDIUM),
        (0.6699, ImportanceLevel.MEDIUM),
        (0.67, ImportanceLevel.HIGH),
        (1.0, ImportanceLevel.HIGH),
    ],
)
def test_level_from_score(score, level):
    assert ImportanceLevel.from_score(score) is level


def test_level_from_score_is_monotonic():
    order = {ImportanceLevel.LOW: 0, ImportanceLevel.MEDIUM: 1, ImportanceLevel.HIGH: 2}
    ranks = [order[ImportanceLevel.from_score(i / 1000)] for i in range(1001)]
    assert ranks == sorted(ranks)


def test_default_score():
    score = ImportanceScore.default()
    assert score.level is ImportanceLevel.MEDIUM
    assert score.score == 0.5
    assert score.confidence == 0.0
    assert score.probabilities == (0.33, 0.34, 0.33)
    assert score.model_version == "default"
    assert not score.is_high_confidence
    assert score.meets_latency_target


def test_score_from_network_output():
    score = ImportanceScore.from_network_output(0.8, (0.8, 0.2, 0.0), 1500, "v1")
    assert score.level is ImportanceLevel.HIGH
    assert score.confidence == pytest.approx(0.8)
    assert score.is_high_confidence
    assert not score.meets_latency_target


@pytest.mark.parametrize(
    "original, feedback, expected",
    [
        (0.5, FeedbackType.TOO_LOW, 0.8),
        (0.9, FeedbackType.TOO_LOW, 1.0),
        (0.2, FeedbackType.TOO_HIGH, 0.0),
        (0.6, FeedbackType.TOO_HIGH, 0.3),
        (0.6, FeedbackType.GOOD, 0.6),
    ],
)
def test_feedback_targets(original, feedback, expected):
    example = TrainingExample.from_feedback(FEATURES, feedback, original)
    assert example.target_score == pytest.approx(expected)
    assert example.target_level is ImportanceLevel.from_score(example.target_score)


@pytest.mark.parametrize(
    "interacted, dwell_ms, expected",
    [
        (False, 60000, 0.2),
        (True, 15000, 0.9),
        (True, 5000, 0.6),
        (True, 500, 0.4),
    ],
)
def test_interaction_targets(interacted, dwell_ms, expected):
    example = TrainingExample.from_interaction(FEATURES, interacted, dwell_ms)
    assert example.target_score == pytest.approx(expected)


def test_feedback_type_parsing():
    assert FeedbackType.from_string("too low") is FeedbackType.TOO_LOW
    assert FeedbackType.from_string("Too-High") is FeedbackType.TOO_HIGH
    assert FeedbackType.from_string(" good ") is FeedbackType.GOOD
    with pytest.raises(ValueError):
        FeedbackType.from_string("meh")


def test_example_freshness():
    example = TrainingExample.from_target(FEATURES, 0.5)
    assert example.is_fresh(60.0, now=example.created_at + 30)
    assert not example.is_fresh(60.0, now=example.created_at + 61)


def test_context_is_a_snapshot():
    importance = {"U1": 0.9}
    context = ScoringContext(sender_importance=importance)
    importance["U1"] = 0.1
    assert context.get_sender_importance("U1") == 0.9
    assert context.get_sender_importance("U2") == 0.5
    assert context.get_channel_importance("C1") == 0.5

    updated = context.with_channel_importance("C1", 0.7).at(123.0)
    assert updated.get_channel_importance("C1") == 0.7
    assert updated.current_time == 123.0
    assert context.get_channel_importance("C1") == 0.5


def test_message_thread_flag():
    assert Message("1", "C", "U", "x", 0.0, thread_id="0.5").in_thread
    assert not Message("1", "C", "U", "x", 0.0).in_thread


def test_level_midpoints_round_trip():
    for level in ImportanceLevel:
        assert ImportanceLevel.from_score(level.midpoint_score) is level


def test_context_keywords_feed_urgency_feature():
    context = ScoringContext.default().with_urgent_keywords(["outage"])
    features = TextFeatureExtractor().extract("there is an outage", context.urgent_keywords)
    assert context.urgent_keywords == ("outage",)
    assert features[9] == 1.0
