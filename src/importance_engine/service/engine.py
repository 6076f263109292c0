"""Engine assembly and the facade collaborators talk to.

``build_engine`` constructs every component in dependency order and hands
references down explicitly:

    extractor -> predictor -> scorer -> monitor -> online/batch trainers -> scheduler

The only exception this layer raises is :class:`EngineStartupError`, when
the predictor cannot be brought up.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Sequence, Union

from dotenv import load_dotenv

from importance_engine.config.config import (
    LOG_LEVEL_ENV,
    MODELS_DIR,
    MODELS_DIR_ENV,
    PROJECT_ROOT,
)
from importance_engine.config.schemas import EngineStats
from importance_engine.features.extractor import FeatureExtractor
from importance_engine.features.vector import FeatureVector
from importance_engine.model.core.predictor import Predictor
from importance_engine.model.inference.scorer import Scorer
from importance_engine.model.training.batch import BatchTrainer
from importance_engine.model.training.online import EnqueueResult, OnlineTrainer
from importance_engine.model.types import (
    FeedbackType,
    ImportanceScore,
    Message,
    ScoringContext,
    TrainingExample,
)
from importance_engine.runtime.resource_monitor import ResourceMonitor, Sampler
from importance_engine.service.training_scheduler import ExampleSource, TrainingScheduler
from importance_engine.utils.logging import get_logger
from importance_engine.utils.monitoring import DailyCounter

logger = get_logger(__name__)

MESSAGES_SCORED = "messages_scored"
FEEDBACK_RECEIVED = "feedback"


class EngineStartupError(RuntimeError):
    """The predictor could not be loaded or created."""


class ImportanceEngine:
    """Scoring plus the two learning paths behind one object."""

    def __init__(
        self,
        extractor: FeatureExtractor,
        predictor: Predictor,
        scorer: Scorer,
        monitor: ResourceMonitor,
        online_trainer: OnlineTrainer,
        batch_trainer: BatchTrainer,
        scheduler: TrainingScheduler,
        counters: DailyCounter | None = None,
    ):
        self.extractor = extractor
        self.predictor = predictor
        self.scorer = scorer
        self.monitor = monitor
        self.online_trainer = online_trainer
        self.batch_trainer = batch_trainer
        self.scheduler = scheduler
        self.counters = counters or DailyCounter()

    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start background learning, reloading the model if a previous ``stop`` shut it down.

        Raises:
            EngineStartupError: if the predictor cannot be initialised.
        """
        if not self.predictor.is_ready and not self.predictor.initialize():
            raise EngineStartupError(f"Could not initialise importance model in {self.predictor.models_dir}")
        self.scheduler.start()
        logger.info("Importance engine started (model %s)", self.predictor.model_version)

    def stop(self) -> None:
        """Stop background training, then persist a final checkpoint."""
        self.scheduler.stop()
        self.predictor.shutdown()
        logger.info("Importance engine stopped")

    def __enter__(self) -> "ImportanceEngine":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    def score(self, message: Message, context: Optional[ScoringContext] = None) -> ImportanceScore:
        result = self.scorer.score(message, context)
        self.counters.increment(MESSAGES_SCORED)
        return result

    def batch_score(
        self, messages: Sequence[Message], context: Optional[ScoringContext] = None
    ) -> list[ImportanceScore]:
        results = self.scorer.batch_score(messages, context)
        self.counters.increment(MESSAGES_SCORED, len(results))
        return results

    def _features(
        self, source: Union[Message, FeatureVector], context: Optional[ScoringContext]
    ) -> FeatureVector:
        if isinstance(source, FeatureVector):
            return source
        return self.extractor.extract(source, context)

    def record_feedback(
        self,
        source: Union[Message, FeatureVector],
        prior: Union[ImportanceScore, float],
        feedback: Union[FeedbackType, str],
        context: Optional[ScoringContext] = None,
    ) -> EnqueueResult:
        """Turn explicit user feedback on a prior score into an online example.

        ``prior`` is either the :class:`ImportanceScore` that was shown or the
        raw score; ``feedback`` may be given as a string such as ``"too low"``.
        Unparseable feedback or a non-numeric prior is rejected, not raised.
        """
        try:
            if isinstance(feedback, str) and not isinstance(feedback, FeedbackType):
                feedback = FeedbackType.from_string(feedback)
            elif not isinstance(feedback, FeedbackType):
                raise TypeError(f"unsupported feedback {feedback!r}")
            original = prior.score if isinstance(prior, ImportanceScore) else float(prior)
        except (TypeError, ValueError) as e:
            logger.warning("Rejecting feedback: %s", e)
            return EnqueueResult.REJECTED_INVALID
        example = TrainingExample.from_feedback(self._features(source, context), feedback, original)
        self.counters.increment(FEEDBACK_RECEIVED)
        result = self.online_trainer.enqueue(example)
        logger.debug("Feedback %s on score %.2f -> target %.2f: %s",
                     feedback.value, original, example.target_score, result.value)
        return result

    def record_interaction(
        self,
        source: Union[Message, FeatureVector],
        interacted: bool,
        dwell_time_ms: float,
        context: Optional[ScoringContext] = None,
    ) -> EnqueueResult:
        try:
            dwell_time_ms = float(dwell_time_ms)
        except (TypeError, ValueError) as e:
            logger.warning("Rejecting interaction signal: %s", e)
            return EnqueueResult.REJECTED_INVALID
        example = TrainingExample.from_interaction(
            self._features(source, context), bool(interacted), dwell_time_ms
        )
        return self.online_trainer.enqueue(example)

    # ------------------------------------------------------------------
    def stats(self) -> EngineStats:
        return EngineStats(
            model_version=self.predictor.model_version,
            ready=self.predictor.is_ready,
            messages_scored_today=self.counters.get(MESSAGES_SCORED),
            feedback_today=self.counters.get(FEEDBACK_RECEIVED),
            latency=self.scorer.latency_summary(),
            online=self.online_trainer.stats(),
            resources=self.monitor.current_usage().to_dict(),
        )


def resolve_models_dir(models_dir: str | Path | None = None) -> Path:
    """Explicit argument, then ``IMPORTANCE_MODELS_DIR``, then the default."""
    if models_dir is not None:
        return Path(models_dir)
    env_dir = os.getenv(MODELS_DIR_ENV)
    return Path(env_dir) if env_dir else MODELS_DIR


def build_engine(
    models_dir: str | Path | None = None,
    *,
    example_source: Optional[ExampleSource] = None,
    sampler: Optional[Sampler] = None,
    monitor: Optional[ResourceMonitor] = None,
    extractor: Optional[FeatureExtractor] = None,
    env_file: str | Path | None = None,
    **scheduler_kwargs,
) -> ImportanceEngine:
    """Assemble an engine; call ``start()`` on the result to begin background learning.

    Args:
        models_dir: Checkpoint directory (falls back to ``IMPORTANCE_MODELS_DIR``).
        example_source: Collaborator returning recent examples for batch passes.
        sampler: Resource sampler for a default :class:`ResourceMonitor`.
        monitor: Pre-built monitor; takes precedence over ``sampler``.
        extractor: Pre-built feature extractor (e.g. custom ID predicates).
        env_file: ``.env`` file to load; defaults to ``<repo>/.env``.
        **scheduler_kwargs: Passed through to :class:`TrainingScheduler`.

    Raises:
        EngineStartupError: if the predictor cannot be initialised.
    """
    load_dotenv(env_file or PROJECT_ROOT / ".env")
    level = os.getenv(LOG_LEVEL_ENV)
    if level:
        logging.getLogger("importance_engine").setLevel(getattr(logging, level.upper(), logging.INFO))

    models_path = resolve_models_dir(models_dir)
    logger.info("Building importance engine (models dir: %s)", models_path)

    extractor = extractor or FeatureExtractor()
    predictor = Predictor(models_dir=models_path)
    if not predictor.initialize():
        raise EngineStartupError(f"Could not initialise importance model in {models_path}")

    scorer = Scorer(extractor, predictor)
    monitor = monitor or ResourceMonitor(sampler)
    online_trainer = OnlineTrainer(predictor, monitor)
    batch_trainer = BatchTrainer(predictor, monitor)
    scheduler = TrainingScheduler(online_trainer, batch_trainer, example_source, **scheduler_kwargs)

    return ImportanceEngine(
        extractor=extractor,
        predictor=predictor,
        scorer=scorer,
        monitor=monitor,
        online_trainer=online_trainer,
        batch_trainer=batch_trainer,
        scheduler=scheduler,
    )
