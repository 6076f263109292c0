"""Fixed-length feature vector consumed by the importance network."""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

import numpy as np

from importance_engine.config.config import FEATURE_DIM, NEUTRAL_FEATURE_VALUE

FEATURE_NAMES: tuple[str, ...] = (
    # text (0-9)
    "text_length",
    "word_count",
    "has_question",
    "has_url",
    "has_mention",
    "has_emoji",
    "uppercase_ratio",
    "exclamation_count",
    "avg_word_length",
    "urgent_keyword_match",
    # sender (10-14)
    "sender_importance",
    "sender_frequency",
    "user_interaction_rate",
    "sender_avg_importance",
    "is_bot",
    # media (15-17)
    "has_attachments",
    "attachment_count",
    "in_thread",
    # temporal (18-22)
    "hour_of_day",
    "day_of_week",
    "is_business_hours",
    "recency",
    "is_weekend",
    # channel (23-24)
    "channel_importance",
    "is_private_channel",
)

FEATURE_INDEX: Mapping[str, int] = MappingProxyType(
    {name: idx for idx, name in enumerate(FEATURE_NAMES)}
)

assert len(FEATURE_NAMES) == FEATURE_DIM


class FeatureVector:
    """Immutable 25-slot feature vector with name lookup.

    Values are stored as a read-only ``float32`` array. Lookups by unknown
    name or out-of-range index return ``0.0`` rather than raising.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[float]):
        arr = np.array(list(values), dtype=np.float32)
        if arr.shape != (FEATURE_DIM,):
            raise ValueError(f"expected {FEATURE_DIM} features, got {arr.size}")
        arr.setflags(write=False)
        self._values = arr

    @classmethod
    def neutral(cls) -> "FeatureVector":
        """Vector with every slot at the neutral default."""
        return cls([NEUTRAL_FEATURE_VALUE] * FEATURE_DIM)

    # ------------------------------------------------------------------
    def get(self, name: str) -> float:
        idx = FEATURE_INDEX.get(name)
        return float(self._values[idx]) if idx is not None else 0.0

    def __getitem__(self, index: int) -> float:
        if not 0 <= index < FEATURE_DIM:
            return 0.0
        return float(self._values[index])

    def __len__(self) -> int:
        return FEATURE_DIM

    def __iter__(self):
        return iter(self._values.tolist())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FeatureVector):
            return NotImplemented
        return bool(np.array_equal(self._values, other._values))

    def __hash__(self) -> int:
        return hash(self._values.tobytes())

    def __repr__(self) -> str:
        return f"FeatureVector(dim={FEATURE_DIM})"

    # ------------------------------------------------------------------
    @property
    def values(self) -> np.ndarray:
        """Read-only view of the underlying array."""
        return self._values

    def to_numpy(self) -> np.ndarray:
        """Writable copy, shape ``(25,)``."""
        return self._values.copy()

    def as_dict(self) -> dict[str, float]:
        return {name: float(v) for name, v in zip(FEATURE_NAMES, self._values)}
