#!/usr/bin/env python3
"""
Tests for Data Loading, Partitioning and Metrics
================================================
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

import tempfile

import numpy as np

from convnet.config import DEFAULT_CONFIG
from convnet.data_loader import (load_test_data, load_model, save_test_data, save_model,
                                 random_model, synthetic_batch, partition_data, one_hot_encode)
from convnet.errors import BatchSizeMismatch, ShapeMismatch
from convnet.metrics import InferenceMetrics, compute_correctness


def test_test_data_round_trip():
    print("Testing test data archive... ", end="")

    x, y = synthetic_batch(3, DEFAULT_CONFIG, seed=1)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, 'test3.npz')
        save_test_data(path, x, y)

        X_loaded, y_loaded = load_test_data(path, batch_size=3)
        assert X_loaded.shape == (3, 28, 28, 1) and X_loaded.dtype == np.float32
        assert np.array_equal(X_loaded, x)
        assert np.array_equal(y_loaded, y)

        X_any, _ = load_test_data(path)
        assert X_any.shape[0] == 3
    print("✓ PASSED")


def test_batch_size_mismatch():
    print("Testing BatchSizeMismatch... ", end="")

    x, y = synthetic_batch(3, DEFAULT_CONFIG)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, 'test3.npz')
        save_test_data(path, x, y)
        try:
            load_test_data(path, batch_size=10000)
        except BatchSizeMismatch:
            pass
        else:
            raise AssertionError("Expected BatchSizeMismatch")
    print("✓ PASSED")


def test_test_data_bad_shapes():
    print("Testing malformed test data... ", end="")

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, 'bad.npz')
        save_test_data(path, np.zeros((2, 32, 32, 1)), np.zeros((2, 10)))
        try:
            load_test_data(path)
        except ShapeMismatch:
            pass
        else:
            raise AssertionError("Expected ShapeMismatch for image size")

        save_test_data(path, np.zeros((2, 28, 28, 1)), np.zeros((3, 10)))
        try:
            load_test_data(path)
        except ShapeMismatch:
            pass
        else:
            raise AssertionError("Expected ShapeMismatch for label rows")
    print("✓ PASSED")


def test_model_round_trip():
    print("Testing model archive... ", end="")

    weights = random_model(DEFAULT_CONFIG, seed=3)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, 'model.npz')
        save_model(path, weights)
        loaded = load_model(path)

    for name, dims in DEFAULT_CONFIG.weight_dims.items():
        assert loaded[name].shape == dims
        assert np.array_equal(loaded[name], weights[name])
        assert not loaded[name].flags.writeable
    print("✓ PASSED")


def test_model_wrong_shape():
    print("Testing malformed model... ", end="")

    weights = random_model(DEFAULT_CONFIG)
    weights['fc1'] = np.zeros((512, 128), dtype=np.float32)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, 'model.npz')
        save_model(path, weights)
        try:
            load_model(path)
        except ShapeMismatch:
            pass
        else:
            raise AssertionError("Expected ShapeMismatch")
    print("✓ PASSED")


def test_partition_data():
    """Shards are contiguous, ordered, and cover the batch exactly once."""
    print("Testing partition_data... ", end="")

    X = np.arange(10)
    y = np.arange(10) * 10
    shards = [partition_data(X, y, rank, 3) for rank in range(3)]

    assert [len(s[0]) for s in shards] == [3, 3, 4]
    assert np.array_equal(np.concatenate([s[0] for s in shards]), X)
    assert np.array_equal(np.concatenate([s[1] for s in shards]), y)
    print("✓ PASSED")


def test_compute_correctness():
    print("Testing compute_correctness... ", end="")

    predicted = np.array([1, 2, 3, 4], dtype=np.int32)
    assert compute_correctness(predicted, np.array([1, 2, 0, 4])) == 0.75
    assert compute_correctness(predicted, one_hot_encode(np.array([1, 0, 0, 0]))) == 0.25
    print("✓ PASSED")


def test_compute_correctness_empty():
    """An empty batch scores 0.0 for label and one-hot references alike."""
    print("Testing compute_correctness on an empty batch... ", end="")

    predicted = np.empty(0, dtype=np.int32)
    assert compute_correctness(predicted, np.empty(0, dtype=np.int32)) == 0.0
    assert compute_correctness(predicted, np.empty((0, 10), dtype=np.float32)) == 0.0
    print("✓ PASSED")


def test_metrics_save_load():
    print("Testing InferenceMetrics... ", end="")

    metrics = InferenceMetrics(batch_size=10, elapsed_ms=12.5, correctness=0.9,
                               label='unroll-numba-t16', num_workers=4)
    assert metrics.report_line() == \
        "Done with 10 queries in elapsed = 12.5 milliseconds. Correctness: 0.9"
    assert np.isclose(metrics.throughput, 800.0)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, 'metrics.npz')
        metrics.save(path)
        loaded = InferenceMetrics.load(path)
    assert loaded.get_summary() == metrics.get_summary()
    print("✓ PASSED")


def run_all_tests():
    """Run all unit tests."""
    print("\n" + "="*60)
    print("RUNNING DATA LOADER TESTS")
    print("="*60 + "\n")

    tests = [
        test_test_data_round_trip,
        test_batch_size_mismatch,
        test_test_data_bad_shapes,
        test_model_round_trip,
        test_model_wrong_shape,
        test_partition_data,
        test_compute_correctness,
        test_compute_correctness_empty,
        test_metrics_save_load,
    ]

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            passed += 1
        except AssertionError as e:
            print(f"✗ FAILED: {e}")
            failed += 1
        except Exception as e:
            print(f"✗ ERROR: {e}")
            failed += 1

    print("\n" + "="*60)
    print(f"RESULTS: {passed} passed, {failed} failed")
    print("="*60)

    return failed == 0


if __name__ == '__main__':
    success = run_all_tests()
    sys.exit(0 if success else 1)
