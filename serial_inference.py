#!/usr/bin/env python3
"""
Serial CNN Inference for 28x28 Digit Classification
===================================================
Baseline single-process forward pass used for performance comparison.

Architecture:
    Input (28x28x1) -> Conv2D(5x5, 32) -> ReLU -> AvgPool
    -> Conv2D(5x5, 64) -> ReLU -> AvgPool -> Flatten
    -> Dense(128) -> ReLU -> Dense(10) -> Argmax

Usage:
    python serial_inference.py --testdata data/test10.npz --model data/model.npz --batch-size 10
"""

import argparse
import os
import sys

from convnet.config import NetworkConfig, add_config_arguments
from convnet.data_loader import load_test_data, load_model, DEFAULT_BATCH_SIZE
from convnet.errors import InferenceError
from convnet.metrics import Timer, InferenceMetrics, compute_correctness
from convnet.network import CNN


def run_inference(model, X, y, verbose=True):
    """Time one forward pass over the batch and score it against the reference."""
    timer = Timer()
    with timer:
        predicted = model.forward(X)

    metrics = InferenceMetrics(
        batch_size=X.shape[0],
        elapsed_ms=timer.elapsed_ms,
        correctness=compute_correctness(predicted, y),
        label=model.config.label,
    )
    if verbose:
        print(metrics.report_line())
    return predicted, metrics


def build_parser(description):
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument('--testdata', type=str, required=True, help='Test data archive (.npz)')
    parser.add_argument('--model', type=str, required=True, help='Model weights archive (.npz)')
    parser.add_argument('--batch-size', type=int, default=DEFAULT_BATCH_SIZE,
                        help='Expected number of samples in the test data')
    parser.add_argument('--save-metrics', type=str, default=None,
                        help='Path to save metrics (.npz)')
    parser.add_argument('--verbose', action='store_true', help='Print per-stage shapes and timings')
    add_config_arguments(parser)
    return parser


def main():
    args = build_parser('Serial CNN Inference').parse_args()

    try:
        config = NetworkConfig.from_args(args)
        print("Loading test data and model...")
        X, y = load_test_data(args.testdata, args.batch_size, config)
        weights = load_model(args.model, config)
        print(f"Test set: {X.shape}")

        model = CNN(weights, config, verbose=args.verbose)
        _, metrics = run_inference(model, X, y)
    except (InferenceError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.save_metrics:
        directory = os.path.dirname(args.save_metrics)
        if directory:
            os.makedirs(directory, exist_ok=True)
        metrics.save(args.save_metrics)
        print(f"Metrics saved to {args.save_metrics}")


if __name__ == '__main__':
    main()
