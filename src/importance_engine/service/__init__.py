"""Engine assembly and training schedule."""

from .engine import EngineStartupError, ImportanceEngine, build_engine
from .training_scheduler import TrainingScheduler

__all__ = ["EngineStartupError", "ImportanceEngine", "TrainingScheduler", "build_engine"]
