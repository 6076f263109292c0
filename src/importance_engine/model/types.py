"""Value types shared by the scorer and the trainers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from importance_engine.config.config import (
    DEFAULT_CHANNEL_IMPORTANCE,
    DEFAULT_SENDER_IMPORTANCE,
    DWELL_LONG_MS,
    DWELL_MEDIUM_MS,
    FEEDBACK_ADJUSTMENT,
    HIGH_CONFIDENCE,
    HIGH_THRESHOLD,
    MEDIUM_THRESHOLD,
    SCORING_LATENCY_TARGET_MS,
    TARGET_LONG_DWELL,
    TARGET_MEDIUM_DWELL,
    TARGET_NO_INTERACTION,
    TARGET_SHORT_DWELL,
)
from importance_engine.features.vector import FeatureVector
from importance_engine.utils.datetime import Timestamp


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class Message:
    """Inbound message as handed over by the acquisition layer."""

    id: str
    channel_id: str
    sender_id: str
    text: Optional[str]
    timestamp: Timestamp
    thread_id: Optional[str] = None
    has_attachments: bool = False
    has_reactions: bool = False

    @property
    def in_thread(self) -> bool:
        return bool(self.thread_id)


@dataclass(frozen=True)
class ScoringContext:
    """Read-only historical signals used while extracting features.

    ``current_time`` is seconds since the epoch.
    """

    sender_importance: Mapping[str, float] = field(default_factory=dict)
    channel_importance: Mapping[str, float] = field(default_factory=dict)
    urgent_keywords: tuple[str, ...] = ()
    current_time: float = field(default_factory=time.time)

    def __post_init__(self):
        object.__setattr__(self, "sender_importance", MappingProxyType(dict(self.sender_importance)))
        object.__setattr__(self, "channel_importance", MappingProxyType(dict(self.channel_importance)))
        object.__setattr__(self, "urgent_keywords", tuple(self.urgent_keywords))

    @classmethod
    def default(cls) -> "ScoringContext":
        """Context with no history, stamped with the current time."""
        return cls()

    def get_sender_importance(self, sender_id: str) -> float:
        return self.sender_importance.get(sender_id, DEFAULT_SENDER_IMPORTANCE)

    def get_channel_importance(self, channel_id: str) -> float:
        return self.channel_importance.get(channel_id, DEFAULT_CHANNEL_IMPORTANCE)

    def with_sender_importance(self, sender_id: str, importance: float) -> "ScoringContext":
        return replace(self, sender_importance={**self.sender_importance, sender_id: importance})

    def with_channel_importance(self, channel_id: str, importance: float) -> "ScoringContext":
        return replace(self, channel_importance={**self.channel_importance, channel_id: importance})

    def with_urgent_keywords(self, keywords: Iterable[str]) -> "ScoringContext":
        return replace(self, urgent_keywords=tuple(keywords))

    def at(self, current_time: float) -> "ScoringContext":
        return replace(self, current_time=float(current_time))


class ImportanceLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @classmethod
    def from_score(cls, score: float) -> "ImportanceLevel":
        """Map a continuous score onto a level.

        ``[0, 0.33)`` is LOW, ``[0.33, 0.67)`` MEDIUM and ``[0.67, 1]`` HIGH.
        """
        if score >= HIGH_THRESHOLD:
            return cls.HIGH
        if score >= MEDIUM_THRESHOLD:
            return cls.MEDIUM
        return cls.LOW

    @property
    def midpoint_score(self) -> float:
        return {ImportanceLevel.HIGH: 0.85, ImportanceLevel.MEDIUM: 0.50, ImportanceLevel.LOW: 0.15}[self]


DEFAULT_PROBABILITIES: tuple[float, float, float] = (0.33, 0.34, 0.33)


@dataclass(frozen=True)
class ImportanceScore:
    """Result of scoring one message.

    ``probabilities`` is ``(P(high), P(medium), P(low))``.
    """

    level: ImportanceLevel
    score: float
    confidence: float
    probabilities: tuple[float, float, float]
    inference_ms: int
    model_version: str

    @classmethod
    def from_network_output(
        cls,
        score: float,
        probabilities: tuple[float, float, float],
        inference_ms: int,
        model_version: str,
    ) -> "ImportanceScore":
        return cls(
            level=ImportanceLevel.from_score(score),
            score=float(score),
            confidence=float(max(probabilities)),
            probabilities=tuple(float(p) for p in probabilities),
            inference_ms=int(inference_ms),
            model_version=model_version,
        )

    @classmethod
    def default(cls) -> "ImportanceScore":
        """Neutral result returned whenever scoring cannot run."""
        return cls(
            level=ImportanceLevel.MEDIUM,
            score=0.5,
            confidence=0.0,
            probabilities=DEFAULT_PROBABILITIES,
            inference_ms=0,
            model_version="default",
        )

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= HIGH_CONFIDENCE

    @property
    def meets_latency_target(self) -> bool:
        return self.inference_ms < SCORING_LATENCY_TARGET_MS


class FeedbackType(str, Enum):
    TOO_LOW = "TOO_LOW"
    GOOD = "GOOD"
    TOO_HIGH = "TOO_HIGH"

    @classmethod
    def from_string(cls, value: str) -> "FeedbackType":
        """Parse ``"too low"``, ``"Too_High"`` and similar spellings."""
        return cls(value.strip().upper().replace(" ", "_").replace("-", "_"))


@dataclass(frozen=True)
class TrainingExample:
    features: FeatureVector
    target_score: float
    target_level: ImportanceLevel
    created_at: float = field(default_factory=time.time)

    @classmethod
    def from_target(cls, features: FeatureVector, target_score: float) -> "TrainingExample":
        target = clamp01(target_score)
        return cls(features, target, ImportanceLevel.from_score(target))

    @classmethod
    def from_feedback(
        cls, features: FeatureVector, feedback: FeedbackType, original_score: float
    ) -> "TrainingExample":
        """Shift the prior score by the feedback direction, clamped to [0, 1]."""
        if feedback is FeedbackType.TOO_LOW:
            target = original_score + FEEDBACK_ADJUSTMENT
        elif feedback is FeedbackType.TOO_HIGH:
            target = original_score - FEEDBACK_ADJUSTMENT
        else:
            target = original_score
        return cls.from_target(features, target)

    @classmethod
    def from_interaction(
        cls, features: FeatureVector, interacted: bool, dwell_time_ms: float
    ) -> "TrainingExample":
        """Derive a target from passive behaviour (dwell time in ms)."""
        if not interacted:
            target = TARGET_NO_INTERACTION
        elif dwell_time_ms > DWELL_LONG_MS:
            target = TARGET_LONG_DWELL
        elif dwell_time_ms > DWELL_MEDIUM_MS:
            target = TARGET_MEDIUM_DWELL
        else:
            target = TARGET_SHORT_DWELL
        return cls.from_target(features, target)

    def is_fresh(self, max_age_secs: float, now: float | None = None) -> bool:
        return ((time.time() if now is None else now) - self.created_at) < max_age_secs
