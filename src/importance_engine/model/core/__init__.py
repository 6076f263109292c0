"""Core network and predictor."""

from .importance_net import ImportanceNet
from .predictor import Predictor, latest_checkpoint, parse_version

__all__ = ["ImportanceNet", "Predictor", "latest_checkpoint", "parse_version"]
