"""Stateful pipeline: load -> normalize -> sequences -> calibrate -> evaluate."""

import numpy as np

from . import config
from .data_loader import load_csv, parse_csv
from .errors import StateError
from .metrics import calibrate_thresholds, evaluate_per_symbol
from .normalization import NormalizationPolicy, normalize
from .sequences import build_sequences


class DirectionPipeline:
    """Holds the artifacts of one uploaded dataset.

    Panel and normalized panel are rebuilt only on load/normalize; the
    thresholds vector is the one piece of state updated in place, by
    calibrate().
    """

    def __init__(self, policy=None):
        self.policy = policy or NormalizationPolicy()
        self.panel = None
        self.normalized = None
        self.sequences = None
        self.thresholds = None

    def _reset(self):
        self.normalized = None
        self.sequences = None
        self.thresholds = None

    def load_csv(self, path=None):
        self.panel = load_csv(path)
        self._reset()
        return self.panel

    def load_text(self, text):
        self.panel = parse_csv(text)
        self._reset()
        return self.panel

    @property
    def symbols(self):
        return self.panel.symbols if self.panel is not None else []

    @property
    def num_features_per_symbol(self):
        return self.policy.num_features

    def normalize(self, policy=None):
        if self.panel is None:
            raise StateError("No data loaded: call load_csv() or load_text() first")
        if policy is not None:
            self.policy = policy
        self.normalized = normalize(self.panel, self.policy)
        self.sequences = None
        self.thresholds = None
        return self.normalized

    def build_sequences(self, sequence_length=config.SEQUENCE_LENGTH,
                        prediction_horizon=config.PREDICTION_HORIZON,
                        train_fraction=config.TRAIN_FRACTION):
        if self.panel is None:
            raise StateError("No data loaded: call load_csv() or load_text() first")
        if self.normalized is None:
            self.normalize()
        self.sequences = build_sequences(self.normalized, self.panel,
                                         sequence_length, prediction_horizon,
                                         train_fraction)
        n_outputs = self.panel.num_symbols * prediction_horizon
        self.thresholds = np.full(n_outputs, config.DEFAULT_THRESHOLD)
        return self.sequences

    def _require_sequences(self):
        if self.sequences is None:
            raise StateError("Sequences not built: call build_sequences() first")

    def calibrate(self, y_true, y_prob, grid=None):
        """Recompute thresholds from validation predictions (in place)."""
        self._require_sequences()
        self.thresholds[:] = calibrate_thresholds(y_true, y_prob, grid)
        return self.thresholds

    def evaluate(self, y_true, y_prob):
        self._require_sequences()
        return evaluate_per_symbol(y_true, y_prob, self.sequences["symbols"],
                                   self.thresholds,
                                   self.sequences["prediction_horizon"])
