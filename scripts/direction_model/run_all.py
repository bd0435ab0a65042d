"""End-to-end: load CSV -> sequences -> train GRU -> calibrate -> evaluate.

Usage:
    python -m scripts.direction_model.run_all [--csv PATH] [--feature-set NAME]
        [--scaling minmax|zscore] [--sequence-length L] [--horizon H]
        [--epochs N] [--batch-size B] [--output DIR]
"""

import argparse
import json
from pathlib import Path

from . import config
from .normalization import NormalizationPolicy
from .pipeline import DirectionPipeline
from .sequences import output_column_names
from .train_gru import predict_proba, train_gru


def run_pipeline(csv_path, feature_set=config.DEFAULT_FEATURE_SET,
                 scaling=config.DEFAULT_SCALING,
                 sequence_length=config.SEQUENCE_LENGTH,
                 horizon=config.PREDICTION_HORIZON,
                 epochs=config.GRU_EPOCHS,
                 batch_size=config.GRU_BATCH_SIZE,
                 verbose=True):
    """Run the full pipeline on one CSV and return the results dict."""
    pipeline = DirectionPipeline(NormalizationPolicy(feature_set, scaling))

    print(f"Loading {csv_path}...", flush=True)
    panel = pipeline.load_csv(csv_path)
    print(f"  {panel.num_symbols} symbols, {panel.num_dates} dates", flush=True)

    print(f"Preprocessing ({scaling}, features={list(pipeline.policy.features)})...",
          flush=True)
    seqs = pipeline.build_sequences(sequence_length, horizon)
    X_train, y_train = seqs["X_train"], seqs["y_train"]
    X_test, y_test = seqs["X_test"], seqs["y_test"]
    print(f"  {seqs['num_windows']} valid windows: "
          f"train={X_train.shape}, test={X_test.shape}", flush=True)

    # Chronological tail of the training windows calibrates the thresholds
    n_train = len(X_train)
    val_size = int(n_train * config.GRU_VAL_FRACTION)
    if val_size == 0 and n_train >= 2:
        val_size = 1
    fit_end = n_train - val_size
    X_fit, y_fit = X_train[:fit_end], y_train[:fit_end]
    X_val, y_val = X_train[fit_end:], y_train[fit_end:]

    print("Training GRU...", flush=True)
    model, history = train_gru(X_fit, y_fit, X_val, y_val,
                               epochs=epochs, batch_size=batch_size,
                               verbose=verbose)

    print("Calibrating thresholds...", flush=True)
    val_prob = predict_proba(model, X_val)
    thresholds = pipeline.calibrate(y_val, val_prob)

    print("Evaluating on test windows...", flush=True)
    test_prob = predict_proba(model, X_test)
    evaluation = pipeline.evaluate(y_test, test_prob)

    columns = output_column_names(seqs["symbols"], horizon)
    return {
        "csv": str(csv_path),
        "features": list(pipeline.policy.features),
        "scaling": scaling,
        "sequence_length": sequence_length,
        "horizon": horizon,
        "symbols": seqs["symbols"],
        "num_windows": seqs["num_windows"],
        "n_train": int(len(X_fit)),
        "n_val": int(len(X_val)),
        "n_test": int(len(X_test)),
        "history": history,
        "thresholds": {c: float(t) for c, t in zip(columns, thresholds)},
        "symbol_accuracies": evaluation["symbol_accuracies"],
        "overall": evaluation["overall"],
        "symbol_predictions": evaluation["symbol_predictions"],
        "test_dates": seqs["test_dates"],
    }


def _write_results(results, out_dir):
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    json_path = out_dir / "results.json"
    with open(json_path, "w") as fp:
        json.dump(results, fp, indent=2)

    lines = ["# GRU Direction Model: Analysis\n"]
    lines.append(f"- Features: {', '.join(results['features'])} ({results['scaling']})")
    lines.append(f"- Windows: {results['num_windows']} "
                 f"(train {results['n_train']}, val {results['n_val']}, "
                 f"test {results['n_test']})")
    lines.append(f"- Overall accuracy: {results['overall']['accuracy']:.4f}, "
                 f"macro F1: {results['overall']['f1_macro']:.4f}\n")

    lines.append("## Per-Symbol Accuracy\n")
    lines.append("| Symbol | Accuracy |")
    lines.append("|--------|----------|")
    ranked = sorted(results["symbol_accuracies"].items(), key=lambda kv: -kv[1])
    for symbol, acc in ranked:
        lines.append(f"| {symbol} | {acc * 100:.1f}% |")
    lines.append("")

    lines.append("## Calibrated Thresholds\n")
    lines.append("| Output | Threshold |")
    lines.append("|--------|-----------|")
    for column, th in results["thresholds"].items():
        lines.append(f"| {column} | {th:.2f} |")
    lines.append("")

    md_path = out_dir / "analysis.md"
    with open(md_path, "w") as fp:
        fp.write("\n".join(lines))
    print(f"Results written to {json_path} and {md_path}", flush=True)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Multi-symbol GRU direction pipeline")
    parser.add_argument("--csv", type=str, default=None,
                        help="Path to Symbol,Date,Open,Close[,High,Low,Volume] CSV")
    parser.add_argument("--feature-set", choices=sorted(config.FEATURE_SETS),
                        default=config.DEFAULT_FEATURE_SET)
    parser.add_argument("--scaling", choices=config.SCALING_METHODS,
                        default=config.DEFAULT_SCALING)
    parser.add_argument("--sequence-length", type=int, default=config.SEQUENCE_LENGTH)
    parser.add_argument("--horizon", type=int, default=config.PREDICTION_HORIZON)
    parser.add_argument("--epochs", type=int, default=config.GRU_EPOCHS)
    parser.add_argument("--batch-size", type=int, default=config.GRU_BATCH_SIZE)
    parser.add_argument("--output", type=str, default=None,
                        help="Results directory (default: config.RESULTS_DIR)")
    parser.add_argument("--quiet", action="store_true", help="No per-epoch output")
    args = parser.parse_args(argv)

    results = run_pipeline(
        args.csv or str(config.DATA_CSV),
        feature_set=args.feature_set,
        scaling=args.scaling,
        sequence_length=args.sequence_length,
        horizon=args.horizon,
        epochs=args.epochs,
        batch_size=args.batch_size,
        verbose=not args.quiet,
    )
    _write_results(results, args.output or config.RESULTS_DIR)
    return results


if __name__ == "__main__":
    main()
