"""Threshold calibration and per-symbol accuracy evaluation."""

import numpy as np
from sklearn.metrics import accuracy_score, f1_score

from . import config
from .sequences import output_index


def _check_shapes(y_true, y_prob):
    y_true = np.asarray(y_true)
    y_prob = np.asarray(y_prob, dtype=np.float64)
    if y_true.ndim != 2 or y_true.shape != y_prob.shape:
        raise ValueError(f"Label shape {y_true.shape} does not match "
                         f"prediction shape {y_prob.shape}")
    return np.rint(y_true).astype(int), y_prob


def apply_thresholds(y_prob, thresholds):
    """Binary predictions: 1 where probability > column threshold."""
    y_prob = np.asarray(y_prob, dtype=np.float64)
    return (y_prob > np.asarray(thresholds)[None, :]).astype(int)


def column_accuracy(y_true, y_prob, threshold):
    """Accuracy of one output column at a given threshold (0 for no rows)."""
    y_true = np.rint(np.asarray(y_true)).astype(int)
    if y_true.size == 0:
        return 0.0
    preds = (np.asarray(y_prob) > threshold).astype(int)
    return float((preds == y_true).mean())


def calibrate_thresholds(y_true, y_prob, grid=None):
    """Per-column decision threshold maximizing validation accuracy.

    Exhaustive scan over the grid in its given order; the first threshold
    reaching the best accuracy wins, so an ascending grid resolves ties to
    the lowest value.

    Args:
        y_true: (N, C) binary labels
        y_prob: (N, C) predicted probabilities
        grid: candidate thresholds, default config.threshold_grid()

    Returns:
        (C,) array of thresholds. With no validation rows every column keeps
        config.DEFAULT_THRESHOLD.
    """
    y_true, y_prob = _check_shapes(y_true, y_prob)
    grid = config.threshold_grid() if grid is None else np.asarray(grid, dtype=np.float64)
    if grid.size == 0:
        raise ValueError("Threshold grid is empty")

    n_rows, n_cols = y_true.shape
    thresholds = np.full(n_cols, config.DEFAULT_THRESHOLD)
    if n_rows == 0:
        return thresholds

    for k in range(n_cols):
        preds = (y_prob[:, k][:, None] > grid[None, :]).astype(int)  # (N, G)
        acc = (preds == y_true[:, k][:, None]).mean(axis=0)         # (G,)
        thresholds[k] = grid[int(np.argmax(acc))]
    return thresholds


def classification_metrics(y_true, y_pred):
    """Compute classification accuracy and macro F1."""
    y_true = np.asarray(y_true).ravel()
    y_pred = np.asarray(y_pred).ravel()
    if y_true.size == 0:
        return {"accuracy": 0.0, "f1_macro": 0.0}
    acc = accuracy_score(y_true, y_pred)
    f1 = f1_score(y_true, y_pred, average="macro", zero_division=0)
    return {"accuracy": float(acc), "f1_macro": float(f1)}


def evaluate_per_symbol(y_true, y_prob, symbols, thresholds=None,
                        horizon=config.PREDICTION_HORIZON):
    """Apply thresholds and score every symbol across all forecast offsets.

    Columns are located with the same (symbol, offset) mapping the labels
    were built with.

    Returns:
        dict with
          symbol_accuracies: {symbol: correct / total, 0.0 when total is 0}
          symbol_predictions: {symbol: [{"row", "offset", "true", "pred",
                               "correct"}, ...]} in row order, then offset
          overall: accuracy and macro F1 over every output cell
    """
    y_true, y_prob = _check_shapes(y_true, y_prob)
    n_symbols = len(symbols)
    n_cols = n_symbols * horizon
    if y_true.shape[1] != n_cols:
        raise ValueError(f"Expected {n_cols} output columns "
                         f"({n_symbols} symbols x {horizon} offsets), "
                         f"got {y_true.shape[1]}")
    if thresholds is None:
        thresholds = np.full(n_cols, config.DEFAULT_THRESHOLD)
    thresholds = np.asarray(thresholds, dtype=np.float64)
    if thresholds.shape != (n_cols,):
        raise ValueError(f"Expected {n_cols} thresholds, got {thresholds.shape}")

    y_pred = apply_thresholds(y_prob, thresholds)

    symbol_accuracies = {}
    symbol_predictions = {}
    for s, symbol in enumerate(symbols):
        correct = 0
        records = []
        for i in range(y_true.shape[0]):
            for offset in range(1, horizon + 1):
                k = output_index(s, offset, n_symbols)
                truth = int(y_true[i, k])
                pred = int(y_pred[i, k])
                hit = pred == truth
                correct += hit
                records.append({"row": i, "offset": offset, "true": truth,
                                "pred": pred, "correct": hit})
        total = len(records)
        symbol_accuracies[symbol] = correct / total if total else 0.0
        symbol_predictions[symbol] = records

    return {
        "symbol_accuracies": symbol_accuracies,
        "symbol_predictions": symbol_predictions,
        "overall": classification_metrics(y_true, y_pred),
    }
