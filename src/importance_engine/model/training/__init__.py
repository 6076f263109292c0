"""Online and batch training."""

from .batch import BatchTrainer, TrainingResult, TrainingStatus
from .online import EnqueueResult, OnlineTrainer

__all__ = ["BatchTrainer", "EnqueueResult", "OnlineTrainer", "TrainingResult", "TrainingStatus"]
