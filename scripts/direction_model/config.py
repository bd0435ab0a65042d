"""Shared configuration for the multi-symbol GRU direction pipeline."""

from pathlib import Path

import numpy as np

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_CSV = PROJECT_ROOT / "data" / "stocks.csv"
RESULTS_DIR = PROJECT_ROOT / "results" / "direction-model"

# ---------------------------------------------------------------------------
# CSV contract: one row per (symbol, date) observation
# ---------------------------------------------------------------------------
SYMBOL_COL = "Symbol"
DATE_COL = "Date"
REQUIRED_COLUMNS = [SYMBOL_COL, DATE_COL, "Open", "Close"]
# Numeric columns parsed when present in the header (canonical order)
PRICE_FIELDS = ["Open", "Close", "High", "Low", "Volume"]

# ---------------------------------------------------------------------------
# Per-symbol feature sets (order is the contract consumed by the model)
# ---------------------------------------------------------------------------
# Return      = (Close - Open) / Open on the same date
# CloseReturn = Close_t / Close_prev - 1 against the previous available date
DERIVED_FEATURES = ["Return", "CloseReturn"]
ALL_FEATURES = PRICE_FIELDS + DERIVED_FEATURES

FEATURE_SETS = {
    "open_close":   ("Open", "Close"),
    "ohlc":         ("Open", "High", "Low", "Close"),
    "ohlcv":        ("Open", "High", "Low", "Close", "Volume"),
    "returns":      ("Open", "Close", "Return", "CloseReturn"),
    "ohlc_return":  ("Open", "High", "Low", "Close", "Return"),
    "full":         ("Open", "High", "Low", "Close", "Volume", "Return"),
}
assert all(2 <= len(f) <= 6 for f in FEATURE_SETS.values())

SCALING_METHODS = ("minmax", "zscore")
DEFAULT_FEATURE_SET = "open_close"
DEFAULT_SCALING = "minmax"

# ---------------------------------------------------------------------------
# Windowing / split
# ---------------------------------------------------------------------------
SEQUENCE_LENGTH = 12
PREDICTION_HORIZON = 3
TRAIN_FRACTION = 0.8

# ---------------------------------------------------------------------------
# Threshold calibration grid
# ---------------------------------------------------------------------------
THRESHOLD_GRID_START = 0.2
THRESHOLD_GRID_STOP = 0.8
THRESHOLD_GRID_STEP = 0.01
DEFAULT_THRESHOLD = 0.5

# ---------------------------------------------------------------------------
# GRU hyperparameters (model collaborator)
# ---------------------------------------------------------------------------
GRU_UNITS_1 = 48
GRU_UNITS_2 = 24
GRU_DENSE_UNITS = 32
GRU_DROPOUT = 0.1
GRU_LR = 1e-3
GRU_EPOCHS = 28
GRU_BATCH_SIZE = 64
GRU_MIN_BATCH_SIZE = 4
GRU_PATIENCE = 6
GRU_VAL_FRACTION = 0.1
GRU_SEED = 42


def threshold_grid(start=THRESHOLD_GRID_START, stop=THRESHOLD_GRID_STOP,
                   step=THRESHOLD_GRID_STEP) -> np.ndarray:
    """Ascending, inclusive candidate grid rounded to 10 decimals."""
    n_steps = int(round((stop - start) / step))
    return np.round(start + step * np.arange(n_steps + 1), 10)
