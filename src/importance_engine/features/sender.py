"""Sender and channel features derived from context and ID conventions."""

from __future__ import annotations

import hashlib
import math
from typing import Callable, Iterable

import numpy as np

from importance_engine.config.config import (
    BOT_ID_PREFIXES,
    DEFAULT_INTERACTION_RATE,
    DIRECT_CHANNEL_PREFIXES,
    NEUTRAL_FEATURE_VALUE,
)

IdPredicate = Callable[[str], bool]


def prefix_predicate(prefixes: Iterable[str]) -> IdPredicate:
    """Return a predicate matching IDs that start with any of ``prefixes``."""
    prefixes = tuple(prefixes)
    return lambda value: bool(value) and value.startswith(prefixes)


def unit_importance(value: float) -> float:
    """Clamp a context-supplied importance into [0, 1]; NaN becomes neutral."""
    value = float(value)
    if math.isnan(value):
        return NEUTRAL_FEATURE_VALUE
    return max(0.0, min(1.0, value))


def stable_frequency(sender_id: str) -> float:
    """Hash-derived frequency estimate in [0, 1), stable across processes."""
    digest = hashlib.md5((sender_id or "").encode("utf-8")).digest()
    return (int.from_bytes(digest[:4], "big") % 100) / 100.0


class SenderFeatureExtractor:
    """Extract the 5 sender features."""

    def __init__(self, is_bot: IdPredicate | None = None) -> None:
        self.is_bot = is_bot or prefix_predicate(BOT_ID_PREFIXES)

    def extract(self, sender_id: str, context) -> np.ndarray:
        importance = unit_importance(context.get_sender_importance(sender_id))
        return np.array(
            [
                importance,
                stable_frequency(sender_id),
                DEFAULT_INTERACTION_RATE,
                importance,  # historical average not tracked yet
                1.0 if self.is_bot(sender_id or "") else 0.0,
            ],
            dtype=np.float32,
        )


class ChannelFeatureExtractor:
    """Extract the 2 channel features."""

    def __init__(self, is_direct: IdPredicate | None = None) -> None:
        self.is_direct = is_direct or prefix_predicate(DIRECT_CHANNEL_PREFIXES)

    def extract(self, channel_id: str, context) -> np.ndarray:
        return np.array(
            [
                unit_importance(context.get_channel_importance(channel_id)),
                1.0 if self.is_direct(channel_id or "") else 0.0,
            ],
            dtype=np.float32,
        )


