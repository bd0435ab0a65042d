"""Per-symbol feature scaling: min-max or z-score, with derived return features."""

import numpy as np

from . import config
from .errors import DataError, StateError


class NormalizationPolicy:
    """Feature selection plus scaling method.

    Args:
        feature_set: key of config.FEATURE_SETS
        method: "minmax" or "zscore"
        features: explicit ordered feature list, overrides feature_set
    """

    def __init__(self, feature_set=config.DEFAULT_FEATURE_SET,
                 method=config.DEFAULT_SCALING, features=None):
        if method not in config.SCALING_METHODS:
            raise DataError(f"Unknown scaling method: {method}")
        if features is None:
            if feature_set not in config.FEATURE_SETS:
                raise DataError(f"Unknown feature set: {feature_set}")
            features = config.FEATURE_SETS[feature_set]
        features = tuple(features)
        unknown = [f for f in features if f not in config.ALL_FEATURES]
        if unknown:
            raise DataError(f"Unknown features: {unknown}")
        if len(set(features)) != len(features):
            raise DataError(f"Duplicate features in {features}")
        if not features:
            raise DataError("Feature list is empty")
        self.features = features
        self.method = method

    @property
    def num_features(self):
        return len(self.features)

    def __repr__(self):
        return f"NormalizationPolicy(features={self.features}, method={self.method!r})"


class NormalizedPanel:
    """Normalized feature arena, same (symbol, date) axes as the source Panel.

    values[s, d] is the feature vector of symbol s on date d in policy order;
    valid[s, d] is False where the observation is absent or non-finite.
    """

    def __init__(self, symbols, dates, features, method, values, valid, stats):
        self.symbols = list(symbols)
        self.dates = list(dates)
        self.features = tuple(features)
        self.method = method
        self.values = values
        self.valid = valid
        self.stats = stats
        self.symbol_index = {s: i for i, s in enumerate(self.symbols)}
        self.date_index = {d: i for i, d in enumerate(self.dates)}

    @property
    def num_features_per_symbol(self):
        return len(self.features)

    def get(self, symbol, date):
        """Normalized vector for (symbol, date), or None when not usable."""
        s = self.symbol_index.get(symbol)
        d = self.date_index.get(date)
        if s is None or d is None or not self.valid[s, d]:
            return None
        return self.values[s, d].copy()


def num_features_for(policy=None):
    """Per-symbol feature width a policy produces (before normalizing)."""
    return (policy or NormalizationPolicy()).num_features


def _close_returns(close, present):
    """Close-to-close return against each symbol's previous available date."""
    out = np.full(close.shape, np.nan)
    for s in range(close.shape[0]):
        prev = None
        for d in range(close.shape[1]):
            if not present[s, d] or not np.isfinite(close[s, d]):
                continue
            c = close[s, d]
            if prev is None or prev == 0:
                out[s, d] = 0.0
            else:
                out[s, d] = (c - prev) / prev
            prev = c
    return out


def compute_raw_features(panel, features):
    """Stack raw and derived features into an (S, D, F) array.

    Raises:
        DataError: a requested raw column was not in the CSV.
    """
    out = np.full((panel.num_symbols, panel.num_dates, len(features)), np.nan)
    for k, name in enumerate(features):
        if name == "Return":
            open_ = panel.field("Open")
            close = panel.field("Close")
            with np.errstate(divide="ignore", invalid="ignore"):
                out[:, :, k] = np.where((open_ == 0) & np.isfinite(close), 0.0,
                                        (close - open_) / open_)
        elif name == "CloseReturn":
            out[:, :, k] = _close_returns(panel.field("Close"), panel.present)
        else:
            out[:, :, k] = panel.field(name)
    return out


def compute_stats(raw, present, method):
    """Per-symbol, per-feature scaling statistics over available values.

    Each symbol is reduced independently over its own present, finite
    observations. A feature with no usable values, or a constant one, gets a
    zero range / zero std.

    Returns:
        dict with "method" and two (S, F) arrays: "min"/"max" or "mean"/"std"
    """
    n_symbols, _, n_features = raw.shape
    a = np.zeros((n_symbols, n_features))
    b = np.zeros((n_symbols, n_features))

    for s in range(n_symbols):
        rows = raw[s, present[s]]  # (n_obs, F)
        for f in range(n_features):
            col = rows[:, f]
            col = col[np.isfinite(col)]
            if col.size == 0:
                continue
            lo, hi = col.min(), col.max()
            if method == "minmax":
                a[s, f], b[s, f] = lo, hi
            else:
                a[s, f] = col.mean()
                b[s, f] = 0.0 if hi == lo else col.std()

    if method == "minmax":
        return {"method": method, "min": a, "max": b}
    return {"method": method, "mean": a, "std": b}


def _scale(raw, stats):
    if stats["method"] == "minmax":
        offset = stats["min"][:, None, :]
        spread = (stats["max"] - stats["min"])[:, None, :]
    else:
        offset = stats["mean"][:, None, :]
        spread = stats["std"][:, None, :]

    with np.errstate(divide="ignore", invalid="ignore"):
        scaled = np.where(spread > 0, (raw - offset) / spread, 0.0)
    # Missing inputs stay missing; degenerate features collapse to 0
    return np.where(np.isfinite(raw), scaled, np.nan)


def normalize(panel, policy=None):
    """Normalize a Panel per symbol according to the policy.

    Raises:
        StateError: no panel has been loaded.
        DataError: the policy needs a column the panel does not have.
    """
    if panel is None:
        raise StateError("No data loaded: parse a CSV before normalizing")
    policy = policy or NormalizationPolicy()

    raw = compute_raw_features(panel, policy.features)
    stats = compute_stats(raw, panel.present, policy.method)
    values = _scale(raw, stats)
    valid = panel.present & np.isfinite(values).all(axis=-1)

    return NormalizedPanel(panel.symbols, panel.dates, policy.features,
                           policy.method, values, valid, stats)


def denormalize(value, stats, symbol_idx, feature_idx):
    """Map a normalized scalar back to the raw scale of (symbol, feature)."""
    if stats["method"] == "minmax":
        lo = stats["min"][symbol_idx, feature_idx]
        hi = stats["max"][symbol_idx, feature_idx]
        return value * (hi - lo) + lo
    mean = stats["mean"][symbol_idx, feature_idx]
    std = stats["std"][symbol_idx, feature_idx]
    return value * std + mean
