"""PyTorch GRU classifier over multi-symbol price windows."""

import torch
import torch.nn as nn

from . import config


class GRUClassifier(nn.Module):
    """Stacked GRU: (B, L, S*F) -> (B, S*H) probabilities.

    Architecture:
        GRU(in, 48, sequences) -> Dropout(0.1)
        GRU(48, 24, last state) -> Dropout(0.1)
        Linear(24, 32) -> ReLU
        Linear(32, S*H) -> Sigmoid
    """

    def __init__(self, input_size, output_size,
                 units_1=config.GRU_UNITS_1,
                 units_2=config.GRU_UNITS_2,
                 dense_units=config.GRU_DENSE_UNITS,
                 dropout=config.GRU_DROPOUT):
        super().__init__()
        self.input_size = input_size
        self.output_size = output_size
        self.gru1 = nn.GRU(input_size, units_1, batch_first=True)
        self.drop1 = nn.Dropout(dropout)
        self.gru2 = nn.GRU(units_1, units_2, batch_first=True)
        self.drop2 = nn.Dropout(dropout)
        self.fc = nn.Linear(units_2, dense_units)
        self.head = nn.Linear(dense_units, output_size)
        self.relu = nn.ReLU()

    def forward(self, x):
        """
        Args:
            x: (B, L, S*F) window tensor

        Returns:
            (B, S*H) probabilities in [0, 1]
        """
        x, _ = self.gru1(x)              # (B, L, 48)
        x = self.drop1(x)
        _, h = self.gru2(x)              # h: (1, B, 24)
        x = self.drop2(h.squeeze(0))     # (B, 24)
        x = self.relu(self.fc(x))        # (B, 32)
        return torch.sigmoid(self.head(x))
