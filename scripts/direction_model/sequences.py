"""Sliding-window sequence construction and chronological train/test split.

Layout contracts (fixed; the model and the evaluator index by them):

  Input timestep vector: symbol-major, feature-minor
      position = symbol_idx * num_features + feature_idx

  Label / output column: offset-major, symbol-minor
      column = (offset - 1) * num_symbols + symbol_idx,  offset in 1..H
"""

import math

import numpy as np

from . import config


def feature_index(symbol_idx, feature_idx, num_features):
    """Position of (symbol, feature) inside one timestep vector."""
    return symbol_idx * num_features + feature_idx


def output_index(symbol_idx, offset, num_symbols):
    """Label/output column of (symbol, 1-based forecast offset)."""
    return (offset - 1) * num_symbols + symbol_idx


def output_column_names(symbols, horizon):
    """Human-readable names of the output columns, e.g. 'AAA+1'."""
    names = [None] * (len(symbols) * horizon)
    for offset in range(1, horizon + 1):
        for s, sym in enumerate(symbols):
            names[output_index(s, offset, len(symbols))] = f"{sym}+{offset}"
    return names


def chronological_split(count, train_fraction=config.TRAIN_FRACTION):
    """Number of leading windows that go to training."""
    return int(math.floor(count * train_fraction))


def build_window(normalized, anchor_idx, sequence_length):
    """Input window ending at anchor_idx, or None if any pair is unusable.

    Returns:
        (L, S*F) array over dates[anchor-L+1 .. anchor], oldest first
    """
    start = anchor_idx - sequence_length + 1
    if start < 0:
        return None
    window = normalized.values[:, start:anchor_idx + 1, :]  # (S, L, F)
    if not normalized.valid[:, start:anchor_idx + 1].all():
        return None
    # (S, L, F) -> (L, S, F) -> (L, S*F): symbol-major within a timestep
    n_symbols, length, n_features = window.shape
    return window.transpose(1, 0, 2).reshape(length, n_symbols * n_features)


def build_labels(panel, anchor_idx, prediction_horizon):
    """Up/down labels for every (offset, symbol), or None on missing Close.

    Label is 1 iff Close(anchor + offset) > Close(anchor), strictly.
    """
    close = panel.field("Close")
    present = panel.present
    if anchor_idx + prediction_horizon >= panel.num_dates:
        return None

    base = close[:, anchor_idx]
    if not present[:, anchor_idx].all() or not np.isfinite(base).all():
        return None

    n_symbols = panel.num_symbols
    labels = np.zeros(n_symbols * prediction_horizon, dtype=np.float32)
    for offset in range(1, prediction_horizon + 1):
        d = anchor_idx + offset
        future = close[:, d]
        if not present[:, d].all() or not np.isfinite(future).all():
            return None
        for s in range(n_symbols):
            labels[output_index(s, offset, n_symbols)] = 1.0 if future[s] > base[s] else 0.0
    return labels


def build_sequences(normalized, panel,
                    sequence_length=config.SEQUENCE_LENGTH,
                    prediction_horizon=config.PREDICTION_HORIZON,
                    train_fraction=config.TRAIN_FRACTION):
    """Build (window, label, anchor date) examples and split them in time order.

    Anchors run over i in [sequence_length, D - prediction_horizon). A
    candidate is dropped, without error, when any (symbol, date) in its
    lookback window lacks a normalized vector or any base/future Close is
    missing.

    Args:
        normalized: NormalizedPanel
        panel: Panel the normalized panel was derived from (raw Close)
        sequence_length: timesteps per window (L)
        prediction_horizon: future offsets per symbol (H)
        train_fraction: leading share of windows used for training

    Returns:
        dict with X_train (N_tr, L, S*F), y_train (N_tr, S*H), X_test, y_test,
        symbols, train_dates, test_dates, num_features_per_symbol,
        num_windows, sequence_length, prediction_horizon
    """
    if sequence_length < 1 or prediction_horizon < 1:
        raise ValueError("sequence_length and prediction_horizon must be >= 1")

    dates = panel.dates
    n_inputs = panel.num_symbols * normalized.num_features_per_symbol
    n_outputs = panel.num_symbols * prediction_horizon

    sequences, targets, anchors = [], [], []
    for i in range(sequence_length, len(dates) - prediction_horizon):
        window = build_window(normalized, i, sequence_length)
        if window is None:
            continue
        labels = build_labels(panel, i, prediction_horizon)
        if labels is None:
            continue
        sequences.append(window)
        targets.append(labels)
        anchors.append(dates[i])

    if sequences:
        X = np.stack(sequences).astype(np.float32)
        y = np.stack(targets).astype(np.float32)
    else:
        X = np.zeros((0, sequence_length, n_inputs), dtype=np.float32)
        y = np.zeros((0, n_outputs), dtype=np.float32)

    split = chronological_split(len(sequences), train_fraction)
    return {
        "X_train": X[:split],
        "y_train": y[:split],
        "X_test": X[split:],
        "y_test": y[split:],
        "symbols": list(panel.symbols),
        "train_dates": anchors[:split],
        "test_dates": anchors[split:],
        "num_features_per_symbol": normalized.num_features_per_symbol,
        "num_windows": len(sequences),
        "sequence_length": sequence_length,
        "prediction_horizon": prediction_horizon,
    }
