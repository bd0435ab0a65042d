"""GRU training on windowed sequences, plus batched probability inference."""

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader

from . import config
from .data_loader import SequenceDataset
from .gru_model import GRUClassifier


def set_seed(seed=config.GRU_SEED):
    torch.manual_seed(seed)
    np.random.seed(seed)


def _default_device():
    return torch.device("cuda" if torch.cuda.is_available() else "cpu")


def _is_oom(exc):
    if hasattr(torch.cuda, "OutOfMemoryError") and isinstance(exc, torch.cuda.OutOfMemoryError):
        return True
    return isinstance(exc, RuntimeError) and "out of memory" in str(exc).lower()


def _fit(train_ds, val_ds, input_size, output_size, lr, batch_size,
         epochs, patience, seed, device, verbose):
    set_seed(seed)

    train_loader = DataLoader(train_ds, batch_size=batch_size, shuffle=True,
                              drop_last=False)
    val_loader = None
    if val_ds is not None and len(val_ds) > 0:
        val_loader = DataLoader(val_ds, batch_size=batch_size, shuffle=False)

    model = GRUClassifier(input_size, output_size).to(device)
    optimizer = torch.optim.Adam(model.parameters(), lr=lr)
    criterion = nn.BCELoss()

    history = {"train_loss": [], "val_loss": [], "val_accuracy": []}
    best_val_loss = float("inf")
    best_state = None
    patience_counter = 0

    for epoch in range(epochs):
        # Train
        model.train()
        train_losses = []
        for x_batch, y_batch in train_loader:
            x_batch, y_batch = x_batch.to(device), y_batch.to(device)
            optimizer.zero_grad()
            prob = model(x_batch)
            loss = criterion(prob, y_batch)
            loss.backward()
            optimizer.step()
            train_losses.append(loss.item())
        avg_train = float(np.mean(train_losses))
        history["train_loss"].append(avg_train)

        if val_loader is None:
            if verbose:
                print(f"  epoch {epoch + 1}/{epochs} loss={avg_train:.4f}", flush=True)
            continue

        # Validate
        model.eval()
        val_losses = []
        correct, total = 0, 0
        with torch.no_grad():
            for x_batch, y_batch in val_loader:
                x_batch, y_batch = x_batch.to(device), y_batch.to(device)
                prob = model(x_batch)
                val_losses.append(criterion(prob, y_batch).item())
                correct += ((prob > 0.5).float() == y_batch).sum().item()
                total += y_batch.numel()

        avg_val = float(np.mean(val_losses))
        val_acc = correct / total if total else 0.0
        history["val_loss"].append(avg_val)
        history["val_accuracy"].append(val_acc)
        if verbose:
            print(f"  epoch {epoch + 1}/{epochs} loss={avg_train:.4f} "
                  f"val_loss={avg_val:.4f} val_acc={val_acc:.4f}", flush=True)

        # Early stopping
        if avg_val < best_val_loss:
            best_val_loss = avg_val
            best_state = {k: v.clone() for k, v in model.state_dict().items()}
            patience_counter = 0
        else:
            patience_counter += 1
            if patience_counter >= patience:
                break

    # Restore best model
    if best_state is not None:
        model.load_state_dict(best_state)

    return model, history


def train_gru(X_train, y_train, X_val=None, y_val=None,
              lr=config.GRU_LR,
              batch_size=config.GRU_BATCH_SIZE,
              epochs=config.GRU_EPOCHS,
              patience=config.GRU_PATIENCE,
              min_batch_size=config.GRU_MIN_BATCH_SIZE,
              seed=config.GRU_SEED,
              device=None,
              verbose=True):
    """Train a GRUClassifier on binary multi-output labels.

    On out-of-memory failures the whole fit is retried with half the batch
    size until min_batch_size is reached.

    Args:
        X_train: (N_train, L, S*F) windows
        y_train: (N_train, S*H) binary labels
        X_val, y_val: optional validation split for early stopping

    Returns:
        model: trained GRUClassifier (eval mode, on CPU)
        history: dict with train_loss, val_loss, val_accuracy, batch_size

    Raises:
        ValueError: empty training data.
    """
    X_train = np.asarray(X_train, dtype=np.float32)
    y_train = np.asarray(y_train, dtype=np.float32)
    if X_train.ndim != 3 or len(X_train) == 0:
        raise ValueError("Training data is empty: no valid windows to train on")
    if len(X_train) != len(y_train):
        raise ValueError(f"X_train has {len(X_train)} rows, y_train has {len(y_train)}")

    device = device or _default_device()
    train_ds = SequenceDataset(X_train, y_train)
    val_ds = None
    if X_val is not None and y_val is not None and len(X_val) > 0:
        val_ds = SequenceDataset(X_val, y_val)

    input_size = X_train.shape[2]
    output_size = y_train.shape[1]

    while True:
        try:
            model, history = _fit(train_ds, val_ds, input_size, output_size, lr,
                                  batch_size, epochs, patience, seed, device, verbose)
            break
        except RuntimeError as exc:
            if not _is_oom(exc) or batch_size // 2 < min_batch_size:
                raise
            if torch.cuda.is_available():
                torch.cuda.empty_cache()
            batch_size //= 2
            print(f"Out of memory, retrying with batch_size={batch_size}", flush=True)

    history["batch_size"] = batch_size
    model = model.cpu()
    model.eval()
    return model, history


def predict_proba(model, X, batch_size=512):
    """Predict (N, S*H) probabilities with a trained model."""
    X = np.asarray(X, dtype=np.float32)
    if len(X) == 0:
        return np.zeros((0, model.output_size), dtype=np.float32)

    model.eval()
    device = next(model.parameters()).device
    loader = DataLoader(torch.tensor(X), batch_size=batch_size, shuffle=False)

    probs = []
    with torch.no_grad():
        for batch in loader:
            probs.append(model(batch.to(device)).cpu().numpy())
    return np.concatenate(probs, axis=0)
