"""Turn messages into :class:`ImportanceScore` results.

The scorer has no failure mode visible to callers: anything that goes wrong
yields :meth:`ImportanceScore.default`.
"""

from __future__ import annotations

from typing import Optional, Sequence

from importance_engine.config.config import HIGH_THRESHOLD, MEDIUM_THRESHOLD
from importance_engine.config.schemas import LatencySummary
from importance_engine.features.extractor import FeatureExtractor
from importance_engine.model.core.predictor import Predictor
from importance_engine.model.types import ImportanceScore, Message, ScoringContext
from importance_engine.utils.io import LatencyAggregator, LatencyTimer
from importance_engine.utils.logging import get_logger

logger = get_logger(__name__)


def class_probabilities(score: float) -> tuple[float, float, float]:
    """Return ``(P(high), P(medium), P(low))`` for a continuous score.

    Each score band produces an un-normalised triple which is then scaled to
    sum to one.
    """
    if score >= HIGH_THRESHOLD:
        probs = [score, 1.0 - score, 0.0]
    elif score >= MEDIUM_THRESHOLD:
        band = HIGH_THRESHOLD - MEDIUM_THRESHOLD
        probs = [
            (score - MEDIUM_THRESHOLD) / band,
            1.0 - abs(score - 0.5) * 2,
            (HIGH_THRESHOLD - score) / band,
        ]
    else:
        probs = [0.0, score, 1.0 - score]

    total = sum(probs)
    if total > 0:
        probs = [p / total for p in probs]
    return probs[0], probs[1], probs[2]


class Scorer:
    """Feature extraction + predictor forward pass with a latency budget.

    Usage:
        scorer = Scorer(extractor, predictor)
        result = scorer.score(message, context)
    """

    def __init__(
        self,
        extractor: FeatureExtractor,
        predictor: Predictor,
        *,
        latency: LatencyAggregator | None = None,
    ) -> None:
        self.extractor = extractor
        self.predictor = predictor
        self.latency = latency or LatencyAggregator()
        self._not_ready_logged = False

    @property
    def is_ready(self) -> bool:
        return self.predictor.is_ready

    def _not_ready(self) -> None:
        if not self._not_ready_logged:
            self._not_ready_logged = True
            logger.warning("Importance model not ready, returning default scores")

    # ------------------------------------------------------------------
    def score(self, message: Message, context: Optional[ScoringContext] = None) -> ImportanceScore:
        try:
            if not self.predictor.is_ready:
                self._not_ready()
                return ImportanceScore.default()

            context = context or ScoringContext.default()
            with LatencyTimer() as timer:
                timer.start_stage("extract")
                features = self.extractor.extract(message, context)
                timer.end_stage("extract")

                timer.start_stage("forward")
                raw = self.predictor.score(features)
                timer.end_stage("forward")

                timer.start_stage("postprocess")
                probabilities = class_probabilities(raw)
                timer.end_stage("postprocess")
                elapsed_ms = timer.elapsed_ms()

            result = ImportanceScore.from_network_output(
                raw, probabilities, elapsed_ms, self.predictor.model_version
            )
            self.latency.add_measurement(elapsed_ms, timer.get_stage_ms())
            if not result.meets_latency_target:
                logger.warning("Slow inference: %d ms for message %s", elapsed_ms, message.id)
            return result
        except Exception:
            logger.exception("Failed to score message %r", getattr(message, "id", None))
            return ImportanceScore.default()

    def batch_score(
        self, messages: Sequence[Message], context: Optional[ScoringContext] = None
    ) -> list[ImportanceScore]:
        """Score ``messages`` together; wall time is amortised evenly across results."""
        n = len(messages)
        if n == 0:
            return []
        try:
            if not self.predictor.is_ready:
                self._not_ready()
                return [ImportanceScore.default() for _ in range(n)]

            context = context or ScoringContext.default()
            with LatencyTimer() as timer:
                timer.start_stage("extract")
                features = [self.extractor.extract(m, context) for m in messages]
                timer.end_stage("extract")

                timer.start_stage("forward")
                raw_scores = self.predictor.batch_score(features)
                timer.end_stage("forward")

                timer.start_stage("postprocess")
                probabilities = [class_probabilities(s) for s in raw_scores]
                timer.end_stage("postprocess")
                elapsed_ms = timer.elapsed_ms()

            per_message_ms = elapsed_ms // n
            version = self.predictor.model_version
            results = [
                ImportanceScore.from_network_output(s, p, per_message_ms, version)
                for s, p in zip(raw_scores, probabilities)
            ]
            self.latency.add_measurement(per_message_ms, timer.get_stage_ms())
            logger.info("Batch scored %d messages in %d ms", n, elapsed_ms)
            return results
        except Exception:
            logger.exception("Failed to batch score %d messages", n)
            return [ImportanceScore.default() for _ in range(n)]

    def latency_summary(self) -> LatencySummary:
        return self.latency.get_summary()
