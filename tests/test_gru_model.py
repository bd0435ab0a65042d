"""
test_gru_model.py -- GRU classifier and training loop

Tests the model collaborator contract:
  1. Output shape: (B, L, S*F) -> (B, S*H)
  2. Outputs are probabilities in [0, 1], finite
  3. Training loss decreases on a learnable synthetic signal
  4. Deterministic: two runs with the same seed give identical history
  5. Empty training data is rejected
  6. Out-of-memory retry halves the batch size
  7. predict_proba shapes, including empty input
"""

import sys
import os

import pytest
import torch
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from scripts.direction_model import train_gru as train_module
from scripts.direction_model.gru_model import GRUClassifier
from scripts.direction_model.train_gru import predict_proba, train_gru


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def model():
    torch.manual_seed(42)
    return GRUClassifier(input_size=4, output_size=6)


@pytest.fixture
def synthetic_dataset():
    """X: (160, 5, 4) windows; y: (160, 6) labels driven by the last timestep."""
    rng = np.random.default_rng(42)
    X = rng.normal(size=(160, 5, 4)).astype(np.float32)
    signal = X[:, -1, :].sum(axis=1)
    y = np.repeat((signal > 0).astype(np.float32)[:, None], 6, axis=1)
    return X, y


# ===========================================================================
# Test 1-2: Forward pass
# ===========================================================================

class TestGRUForward:
    @pytest.mark.parametrize("batch", [1, 4, 64])
    def test_output_shape(self, model, batch):
        x = torch.randn(batch, 5, 4)
        out = model(x)
        assert out.shape == (batch, 6), f"Expected ({batch}, 6), got {out.shape}"

    def test_any_sequence_length(self, model):
        out = model(torch.randn(3, 12, 4))
        assert out.shape == (3, 6)

    def test_probabilities(self, model):
        out = model(torch.randn(8, 5, 4) * 100)
        assert torch.isfinite(out).all()
        assert (out >= 0).all() and (out <= 1).all()

    def test_wrong_input_width_fails(self, model):
        with pytest.raises(Exception):
            model(torch.randn(2, 5, 3))


# ===========================================================================
# Test 3-4: Training
# ===========================================================================

class TestTraining:
    def test_loss_decreases(self, synthetic_dataset):
        X, y = synthetic_dataset
        _, history = train_gru(X, y, epochs=10, batch_size=32, verbose=False)
        losses = history["train_loss"]
        assert len(losses) == 10
        assert losses[-1] < losses[0], f"Loss did not decrease: {losses}"

    def test_early_stopping_history(self, synthetic_dataset):
        X, y = synthetic_dataset
        _, history = train_gru(X[:128], y[:128], X[128:], y[128:],
                               epochs=5, batch_size=32, patience=2, verbose=False)
        assert 1 <= len(history["val_loss"]) <= 5
        assert len(history["val_loss"]) == len(history["train_loss"])
        assert all(0.0 <= a <= 1.0 for a in history["val_accuracy"])

    def test_deterministic(self, synthetic_dataset):
        X, y = synthetic_dataset
        _, h1 = train_gru(X, y, epochs=3, batch_size=32, seed=42, device="cpu", verbose=False)
        _, h2 = train_gru(X, y, epochs=3, batch_size=32, seed=42, device="cpu", verbose=False)
        assert h1["train_loss"] == pytest.approx(h2["train_loss"], abs=1e-6)

    def test_model_returned_in_eval_mode(self, synthetic_dataset):
        X, y = synthetic_dataset
        trained, _ = train_gru(X, y, epochs=1, verbose=False)
        assert not trained.training


# ===========================================================================
# Test 5-6: Failure handling
# ===========================================================================

class TestTrainingFailures:
    def test_empty_training_data(self):
        with pytest.raises(ValueError, match="empty"):
            train_gru(np.zeros((0, 5, 4)), np.zeros((0, 6)), verbose=False)

    def test_row_count_mismatch(self):
        with pytest.raises(ValueError):
            train_gru(np.zeros((4, 5, 4)), np.zeros((3, 6)), verbose=False)

    def test_oom_retry_halves_batch(self, monkeypatch, synthetic_dataset):
        X, y = synthetic_dataset
        seen = []

        def fake_fit(train_ds, val_ds, input_size, output_size, lr, batch_size,
                     epochs, patience, seed, device, verbose):
            seen.append(batch_size)
            if batch_size > 16:
                raise RuntimeError("CUDA out of memory. Tried to allocate 2.00 GiB")
            return GRUClassifier(input_size, output_size), {"train_loss": [0.5]}

        monkeypatch.setattr(train_module, "_fit", fake_fit)
        _, history = train_gru(X, y, batch_size=64, verbose=False)
        assert seen == [64, 32, 16]
        assert history["batch_size"] == 16

    def test_oom_gives_up_at_min_batch(self, monkeypatch, synthetic_dataset):
        X, y = synthetic_dataset

        def always_oom(*args, **kwargs):
            raise RuntimeError("out of memory")

        monkeypatch.setattr(train_module, "_fit", always_oom)
        with pytest.raises(RuntimeError, match="out of memory"):
            train_gru(X, y, batch_size=8, min_batch_size=4, verbose=False)

    def test_other_runtime_errors_propagate(self, monkeypatch, synthetic_dataset):
        X, y = synthetic_dataset
        calls = []

        def broken(*args, **kwargs):
            calls.append(1)
            raise RuntimeError("shape mismatch")

        monkeypatch.setattr(train_module, "_fit", broken)
        with pytest.raises(RuntimeError, match="shape mismatch"):
            train_gru(X, y, verbose=False)
        assert len(calls) == 1


# ===========================================================================
# Test 7: Inference
# ===========================================================================

class TestPredictProba:
    def test_shape_and_range(self, model):
        X = np.random.rand(10, 5, 4).astype(np.float32)
        probs = predict_proba(model, X, batch_size=3)
        assert probs.shape == (10, 6)
        assert ((probs >= 0) & (probs <= 1)).all()

    def test_batching_consistent(self, model):
        X = np.random.rand(10, 5, 4).astype(np.float32)
        np.testing.assert_allclose(predict_proba(model, X, batch_size=3),
                                   predict_proba(model, X, batch_size=10), atol=1e-6)

    def test_empty_input(self, model):
        probs = predict_proba(model, np.zeros((0, 5, 4)))
        assert probs.shape == (0, 6)
