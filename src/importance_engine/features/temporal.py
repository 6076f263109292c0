"""Time-of-day, weekday and recency features."""

from __future__ import annotations

from datetime import datetime, tzinfo

import numpy as np

from importance_engine.config.config import (
    BUSINESS_HOUR_END,
    BUSINESS_HOUR_START,
    FEATURE_TZ,
    MAX_RECENCY_SECS,
    TEMPORAL_FEATURE_DIM,
)
from importance_engine.utils.datetime import resolve_tz


class TemporalFeatureExtractor:
    """Extract the 5 temporal features.

    Calendar features are computed in ``tz`` (host local time when ``None``).
    Recency decays linearly to zero over ``max_recency_secs``; timestamps in
    the future count as age zero.
    """

    def __init__(
        self,
        tz: tzinfo | str | None = FEATURE_TZ,
        max_recency_secs: float = MAX_RECENCY_SECS,
    ) -> None:
        self.tz = tz if isinstance(tz, tzinfo) else resolve_tz(tz)
        self.max_recency_secs = float(max_recency_secs)

    def extract(self, message_ts: float, current_ts: float) -> np.ndarray:
        moment = datetime.fromtimestamp(message_ts, tz=self.tz)
        hour = moment.hour
        weekday = moment.isoweekday()  # Monday=1 .. Sunday=7
        is_weekend = weekday >= 6

        age = max(0.0, current_ts - message_ts)

        features = np.zeros(TEMPORAL_FEATURE_DIM, dtype=np.float32)
        features[0] = hour / 24.0
        features[1] = (weekday - 1) / 6.0
        features[2] = 1.0 if (not is_weekend and BUSINESS_HOUR_START <= hour < BUSINESS_HOUR_END) else 0.0
        features[3] = 1.0 - min(1.0, age / self.max_recency_secs)
        features[4] = 1.0 if is_weekend else 0.0
        return features
