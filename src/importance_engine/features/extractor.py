"""Combine the sub-extractors into the fixed 25-slot feature vector."""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

from importance_engine.config.config import (
    CHANNEL_FEATURE_DIM,
    MEDIA_FEATURE_DIM,
    NEUTRAL_FEATURE_VALUE,
    SENDER_FEATURE_DIM,
    TEMPORAL_FEATURE_DIM,
    TEXT_FEATURE_DIM,
)
from importance_engine.features.media import MediaFeatureExtractor
from importance_engine.features.sender import (
    ChannelFeatureExtractor,
    IdPredicate,
    SenderFeatureExtractor,
)
from importance_engine.features.temporal import TemporalFeatureExtractor
from importance_engine.features.text import TextFeatureExtractor
from importance_engine.features.vector import FeatureVector
from importance_engine.model.types import Message, ScoringContext
from importance_engine.utils.datetime import to_epoch_seconds
from importance_engine.utils.logging import get_logger

logger = get_logger(__name__)


class FeatureExtractor:
    """Turn a :class:`Message` plus :class:`ScoringContext` into features.

    Layout: text (10), sender (5), media (3), temporal (5), channel (2).
    ``extract`` never raises. A failing group contributes neutral values for
    its own slots; if the message cannot be read at all the whole vector is
    neutral.
    """

    def __init__(
        self,
        *,
        text: TextFeatureExtractor | None = None,
        sender: SenderFeatureExtractor | None = None,
        media: MediaFeatureExtractor | None = None,
        temporal: TemporalFeatureExtractor | None = None,
        channel: ChannelFeatureExtractor | None = None,
        is_bot: IdPredicate | None = None,
        is_direct_channel: IdPredicate | None = None,
    ) -> None:
        self.text = text or TextFeatureExtractor()
        self.sender = sender or SenderFeatureExtractor(is_bot=is_bot)
        self.media = media or MediaFeatureExtractor()
        self.temporal = temporal or TemporalFeatureExtractor()
        self.channel = channel or ChannelFeatureExtractor(is_direct=is_direct_channel)

    # ------------------------------------------------------------------
    def extract(self, message: Message, context: Optional[ScoringContext] = None) -> FeatureVector:
        try:
            context = context or ScoringContext.default()
            now = context.current_time
            groups = (
                ("text", TEXT_FEATURE_DIM,
                 lambda: self.text.extract(message.text, context.urgent_keywords)),
                ("sender", SENDER_FEATURE_DIM,
                 lambda: self.sender.extract(message.sender_id, context)),
                ("media", MEDIA_FEATURE_DIM,
                 lambda: self.media.extract(message)),
                ("temporal", TEMPORAL_FEATURE_DIM,
                 lambda: self.temporal.extract(to_epoch_seconds(message.timestamp, now), now)),
                ("channel", CHANNEL_FEATURE_DIM,
                 lambda: self.channel.extract(message.channel_id, context)),
            )
            parts = [self._run_group(name, dim, fn, message) for name, dim, fn in groups]
            return FeatureVector(np.concatenate(parts))
        except Exception:
            logger.exception("Feature extraction failed for message %r; using neutral vector",
                             getattr(message, "id", None))
            return FeatureVector.neutral()

    def _run_group(
        self, name: str, dim: int, fn: Callable[[], np.ndarray], message: Message
    ) -> np.ndarray:
        try:
            values = np.asarray(fn(), dtype=np.float32)
            if values.shape != (dim,) or not np.all(np.isfinite(values)):
                raise ValueError(f"{name} features malformed: {values!r}")
            return np.clip(values, 0.0, 1.0)
        except Exception as e:
            logger.warning("%s features failed for message %r (%s); using neutral values",
                           name, getattr(message, "id", None), e)
            return np.full(dim, NEUTRAL_FEATURE_VALUE, dtype=np.float32)
