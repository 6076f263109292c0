"""Feature extraction for message importance scoring."""

from .vector import FEATURE_INDEX, FEATURE_NAMES, FeatureVector

__all__ = ["FEATURE_INDEX", "FEATURE_NAMES", "FeatureVector"]
