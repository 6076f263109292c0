import torch
import torch.nn as nn
import torch.nn.functional as F

from importance_engine.config.config import (
    DROPOUT_RATE,
    FEATURE_DIM,
    HIDDEN_1_DIM,
    HIDDEN_2_DIM,
)


class ImportanceNet(nn.Module):
    """25 -> 64 (ReLU, dropout) -> 32 (ReLU, dropout) -> 1 (sigmoid)."""

    def __init__(
        self,
        input_dim: int = FEATURE_DIM,
        hidden_1: int = HIDDEN_1_DIM,
        hidden_2: int = HIDDEN_2_DIM,
        dropout: float = DROPOUT_RATE,
    ):
        super().__init__()
        self.dropout = float(dropout)
        self.fc1 = nn.Linear(input_dim, hidden_1)
        self.fc2 = nn.Linear(hidden_1, hidden_2)
        self.out = nn.Linear(hidden_2, 1)

    def reset_parameters(self) -> None:
        """Xavier-uniform weights and zero biases."""
        for layer in (self.fc1, self.fc2, self.out):
            nn.init.xavier_uniform_(layer.weight)
            nn.init.zeros_(layer.bias)

    def forward(self, x, *, train: bool = False):
        # dropout follows ``train``, never module mode; scoring threads share this module
        h = F.dropout(F.relu(self.fc1(x)), p=self.dropout, training=train)
        h = F.dropout(F.relu(self.fc2(h)), p=self.dropout, training=train)
        return torch.sigmoid(self.out(h))  # (N, 1)
