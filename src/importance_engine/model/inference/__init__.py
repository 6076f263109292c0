"""Model inference components."""

from .scorer import Scorer, class_probabilities

__all__ = ["Scorer", "class_probabilities"]
