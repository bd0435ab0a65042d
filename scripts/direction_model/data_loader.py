"""Parse the multi-symbol daily CSV into a dense (symbol, date) panel."""

import numpy as np
import pandas as pd
import torch
from torch.utils.data import Dataset

from . import config
from .errors import DataError


class Panel:
    """Observation arena indexed by (symbol_idx, date_idx).

    Attributes:
        symbols: sorted list of symbol strings
        dates: sorted list of date strings (ISO-like, lexicographic order)
        fields: numeric columns parsed from the CSV, in PRICE_FIELDS order
        values: (S, D, F) float64 array, NaN where a field is missing
        present: (S, D) bool array, True where a row existed for the pair
    """

    def __init__(self, symbols, dates, fields, values, present):
        self.symbols = list(symbols)
        self.dates = list(dates)
        self.fields = list(fields)
        self.values = values
        self.present = present
        self.symbol_index = {s: i for i, s in enumerate(self.symbols)}
        self.date_index = {d: i for i, d in enumerate(self.dates)}

    @property
    def num_symbols(self):
        return len(self.symbols)

    @property
    def num_dates(self):
        return len(self.dates)

    def has_field(self, name):
        return name in self.fields

    def field(self, name):
        """Return the (S, D) array for one numeric column."""
        if name not in self.fields:
            raise DataError(f"Column '{name}' not present in loaded data "
                            f"(available: {self.fields})")
        return self.values[:, :, self.fields.index(name)]

    def get(self, symbol, date):
        """Observation for (symbol, date) as {field: float}, or None if absent."""
        s = self.symbol_index.get(symbol)
        d = self.date_index.get(date)
        if s is None or d is None or not self.present[s, d]:
            return None
        return {f: float(self.values[s, d, k]) for k, f in enumerate(self.fields)}

    def __repr__(self):
        return (f"Panel(symbols={self.num_symbols}, dates={self.num_dates}, "
                f"fields={self.fields}, observations={int(self.present.sum())})")


def parse_csv(text):
    """Parse CSV text into a Panel.

    The format is a bare comma split: no quoting, header names and values are
    trimmed. Rows whose field count differs from the header are skipped.
    Unparseable numbers become NaN. Duplicate (symbol, date) rows: the last
    one wins.

    Raises:
        DataError: required columns missing, or no valid rows.
    """
    lines = text.strip().split("\n")
    headers = [h.strip() for h in lines[0].split(",")]

    missing = [c for c in config.REQUIRED_COLUMNS if c not in headers]
    if missing:
        raise DataError(f"Missing required columns: {missing}")

    rows = []
    for line in lines[1:]:
        values = line.split(",")
        if len(values) != len(headers):
            continue
        rows.append([v.strip() for v in values])

    if not rows:
        raise DataError("No valid data rows found in CSV")

    df = pd.DataFrame(rows, columns=headers)
    # Duplicate header names: keep the last column, mirroring dict assignment
    df = df.loc[:, ~df.columns.duplicated(keep="last")]

    fields = [f for f in config.PRICE_FIELDS if f in df.columns]
    for f in fields:
        df[f] = pd.to_numeric(df[f], errors="coerce")

    df = df.drop_duplicates(subset=[config.SYMBOL_COL, config.DATE_COL], keep="last")

    symbols = sorted(df[config.SYMBOL_COL].unique())
    dates = sorted(df[config.DATE_COL].unique())

    sym_idx = pd.Categorical(df[config.SYMBOL_COL], categories=symbols).codes
    date_idx = pd.Categorical(df[config.DATE_COL], categories=dates).codes

    values = np.full((len(symbols), len(dates), len(fields)), np.nan)
    present = np.zeros((len(symbols), len(dates)), dtype=bool)
    values[sym_idx, date_idx, :] = df[fields].to_numpy(dtype=np.float64)
    present[sym_idx, date_idx] = True

    return Panel(symbols, dates, fields, values, present)


def load_csv(path=None):
    """Read a CSV file completely and parse it into a Panel."""
    csv_path = path or config.DATA_CSV
    with open(csv_path, "r", encoding="utf-8") as fp:
        text = fp.read()
    return parse_csv(text)


class SequenceDataset(Dataset):
    """PyTorch dataset over windowed inputs and multi-horizon labels."""

    def __init__(self, X, y):
        """
        Args:
            X: (N, L, S*F) float array of input windows
            y: (N, S*H) binary label array
        """
        self.X = torch.tensor(X, dtype=torch.float32)
        self.y = torch.tensor(y, dtype=torch.float32)

    def __len__(self):
        return len(self.y)

    def __getitem__(self, idx):
        return self.X[idx], self.y[idx]
