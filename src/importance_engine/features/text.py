"""Text features: length, punctuation, markup and urgency cues."""

from __future__ import annotations

import re
from typing import Iterable

import numpy as np

from importance_engine.config.config import (
    DEFAULT_URGENT_KEYWORDS,
    TEXT_FEATURE_DIM,
    TEXT_MAX_AVG_WORD_LENGTH,
    TEXT_MAX_EXCLAMATIONS,
    TEXT_MAX_LENGTH,
    TEXT_MAX_WORDS,
)

URL_PATTERN = re.compile(r"https?://\S+")
MENTION_PATTERN = re.compile(r"<@[A-Z0-9]+>")
EMOJI_PATTERN = re.compile(r":[a-z_]+:")


class TextFeatureExtractor:
    """Extract the 10 text features.

    Empty or missing text yields an all-zero vector.
    """

    def __init__(self, default_keywords: Iterable[str] = DEFAULT_URGENT_KEYWORDS) -> None:
        self.default_keywords = tuple(k.lower() for k in default_keywords)

    def extract(self, text: str | None, urgent_keywords: Iterable[str] = ()) -> np.ndarray:
        features = np.zeros(TEXT_FEATURE_DIM, dtype=np.float32)
        if not text:
            return features

        words = text.split()
        n_words = len(words)

        features[0] = min(1.0, len(text) / TEXT_MAX_LENGTH)
        features[1] = min(1.0, n_words / TEXT_MAX_WORDS)
        features[2] = 1.0 if "?" in text else 0.0
        features[3] = 1.0 if URL_PATTERN.search(text) else 0.0
        features[4] = 1.0 if MENTION_PATTERN.search(text) else 0.0
        features[5] = 1.0 if EMOJI_PATTERN.search(text) else 0.0

        letters = [c for c in text if c.isalpha()]
        if letters:
            features[6] = sum(1 for c in letters if c.isupper()) / len(letters)

        features[7] = min(1.0, text.count("!") / TEXT_MAX_EXCLAMATIONS)
        if n_words:
            features[8] = min(1.0, (len(text) / n_words) / TEXT_MAX_AVG_WORD_LENGTH)
        features[9] = 1.0 if self.has_urgent_keyword(text, urgent_keywords) else 0.0
        return features

    def has_urgent_keyword(self, text: str, extra_keywords: Iterable[str] = ()) -> bool:
        """Case-insensitive substring match against default and extra keywords."""
        lowered = text.lower()
        if any(k in lowered for k in self.default_keywords):
            return True
        return any(k and k.lower() in lowered for k in extra_keywords)
