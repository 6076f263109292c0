"""Test configuration and shared fixtures."""

import tempfile
import time
from pathlib import Path

import pytest

from importance_engine.features.vector import FeatureVector
from importance_engine.model.core.predictor import Predictor
from importance_engine.model.types import Message, ScoringContext, TrainingExample
from importance_engine.runtime.resource_monitor import ResourceMonitor, ResourceUsage

# 2024-01-01T10:30:00Z, a Monday
MONDAY_MORNING = 1704105000.0


@pytest.fixture
def temp_models_dir():
    """Create a temporary directory for checkpoints."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_message():
    """An urgent-looking message posted on a Monday morning."""
    return Message(
        id="1704105000.000100",
        channel_id="C100",
        sender_id="U123",
        text="URGENT: server down, please respond ASAP!!",
        timestamp=MONDAY_MORNING,
    )


@pytest.fixture
def calm_message():
    return Message(
        id="1704105000.000200",
        channel_id="C200",
        sender_id="U456",
        text="see you at lunch tomorrow",
        timestamp=MONDAY_MORNING,
    )


@pytest.fixture
def fixed_context():
    """Default context pinned to one minute after ``MONDAY_MORNING``."""
    return ScoringContext.default().at(MONDAY_MORNING + 60)


@pytest.fixture
def idle_monitor():
    """Monitor reporting a quiet machine."""
    return ResourceMonitor(sampler=lambda: ResourceUsage(cpu_usage=0.01, memory_mb=200.0))


@pytest.fixture
def busy_monitor():
    """Monitor reporting CPU far above every ceiling."""
    return ResourceMonitor(sampler=lambda: ResourceUsage(cpu_usage=0.95, memory_mb=200.0))


@pytest.fixture
def ready_predictor(temp_models_dir):
    predictor = Predictor(models_dir=temp_models_dir)
    assert predictor.initialize()
    return predictor


@pytest.fixture
def make_examples():
    """Factory for ``n`` examples sharing one constant feature value."""

    def _make(n, target=0.8, fill=0.5):
        features = FeatureVector([fill] * 25)
        return [TrainingExample.from_target(features, target) for _ in range(n)]

    return _make


@pytest.fixture
def wait_until():
    """Poll ``predicate`` until it holds or ``timeout`` seconds pass."""

    def _wait(predicate, timeout=5.0, interval=0.02):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait
