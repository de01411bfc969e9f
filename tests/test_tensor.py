#!/usr/bin/env python3
"""
Unit Tests for Tensor Buffers and Configuration
===============================================
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from unittest import mock

import numpy as np

from convnet.config import NetworkConfig, DEFAULT_CONFIG
from convnet.errors import ShapeMismatch, OutOfMemory
from convnet.tensor import Tensor, shape_size, allocate_array


def test_row_major_offset():
    """Last index varies fastest."""
    print("Testing row-major offsets... ", end="")

    t = Tensor.zeros((2, 3, 4))

    assert t.offset(0, 0, 0) == 0
    assert t.offset(0, 0, 1) == 1
    assert t.offset(0, 1, 0) == 4
    assert t.offset(1, 2, 3) == ((1 * 3) + 2) * 4 + 3
    assert t.offset(1, 2, 3) == t.size - 1

    t[1, 2, 3] = 7.0
    assert t.array[1, 2, 3] == 7.0
    assert t.buffer[23] == 7.0
    print("✓ PASSED")


def test_offset_bounds_checked():
    print("Testing offset bounds checks... ", end="")

    t = Tensor.zeros((2, 3))
    for index in [(2, 0), (0, 3), (-1, 0), (0,), (0, 0, 0)]:
        try:
            t.offset(*index)
        except IndexError:
            continue
        raise AssertionError(f"Expected IndexError for {index}")
    print("✓ PASSED")


def test_buffer_length_invariant():
    """Buffer length must equal the product of extents."""
    print("Testing buffer length invariant... ", end="")

    assert shape_size((4, 24, 24, 32)) == 4 * 24 * 24 * 32
    try:
        Tensor(np.zeros(5, dtype=np.float32), (2, 3))
    except ShapeMismatch:
        pass
    else:
        raise AssertionError("Expected ShapeMismatch")

    try:
        Tensor.zeros((2, 0))
    except ShapeMismatch:
        pass
    else:
        raise AssertionError("Expected ShapeMismatch for empty extent")
    print("✓ PASSED")


def test_from_array_copies():
    print("Testing Tensor.from_array... ", end="")

    source = np.arange(24, dtype=np.float64).reshape(2, 3, 4)[:, ::-1, :]
    t = Tensor.from_array(source)

    assert t.shape == (2, 3, 4)
    assert t.buffer.dtype == np.float32
    assert np.array_equal(t.array, source)
    source[0, 0, 0] = -1
    assert t.array[0, 0, 0] != -1
    print("✓ PASSED")


def test_scoped_release():
    """Leaving the with block releases the buffer, also on error."""
    print("Testing scoped release... ", end="")

    with Tensor.zeros((3, 3)) as t:
        assert not t.released
    assert t.released

    try:
        with Tensor.zeros((3, 3)) as u:
            raise RuntimeError("stage failed")
    except RuntimeError:
        pass
    assert u.released

    try:
        t.array
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError on released tensor")
    print("✓ PASSED")


def test_reshaped_moves_ownership():
    print("Testing Tensor.reshaped... ", end="")

    t = Tensor.from_array(np.arange(24).reshape(2, 3, 4))
    flat = t.reshaped((2, 12))

    assert t.released
    assert flat.shape == (2, 12)
    assert np.array_equal(flat.array[1], np.arange(12, 24))

    try:
        flat.reshaped((5, 5))
    except ShapeMismatch:
        pass
    else:
        raise AssertionError("Expected ShapeMismatch")
    print("✓ PASSED")


def test_allocation_failure():
    """MemoryError during allocation surfaces as OutOfMemory."""
    print("Testing OutOfMemory... ", end="")

    with mock.patch('convnet.tensor.np.zeros', side_effect=MemoryError):
        try:
            Tensor.zeros((4, 4))
        except OutOfMemory:
            pass
        else:
            raise AssertionError("Expected OutOfMemory")
    print("✓ PASSED")


def test_allocate_array_failure():
    """Plain array allocations report OutOfMemory too."""
    print("Testing allocate_array OutOfMemory... ", end="")

    assert allocate_array(3, dtype=np.int32).dtype == np.int32
    assert not allocate_array((2, 2), fill=True).any()
    with mock.patch('convnet.tensor.np.empty', side_effect=MemoryError):
        try:
            allocate_array((4, 4))
        except OutOfMemory:
            pass
        else:
            raise AssertionError("Expected OutOfMemory")
    print("✓ PASSED")


def test_config_defaults_and_validation():
    print("Testing NetworkConfig... ", end="")

    assert DEFAULT_CONFIG.conv1_dims == (5, 5, 1, 32)
    assert DEFAULT_CONFIG.conv2_dims == (5, 5, 32, 64)
    assert DEFAULT_CONFIG.fc1_dims == (1024, 128)
    assert DEFAULT_CONFIG.fc2_dims == (128, 10)
    assert DEFAULT_CONFIG.pool_size == 2
    assert DEFAULT_CONFIG.input_dims == (28, 28, 1)

    for kwargs in [{'conv_algorithm': 'fft'}, {'matmul_backend': 'gpu'},
                   {'pool_remainder': 'round'}, {'tile_width': 0}, {'num_threads': 0}]:
        try:
            NetworkConfig(**kwargs)
        except ValueError:
            continue
        raise AssertionError(f"Expected ValueError for {kwargs}")

    try:
        DEFAULT_CONFIG.tile_width = 8
    except AttributeError:
        pass
    else:
        raise AssertionError("Configuration must be immutable")
    print("✓ PASSED")


def run_all_tests():
    """Run all unit tests."""
    print("\n" + "="*60)
    print("RUNNING TENSOR TESTS")
    print("="*60 + "\n")

    tests = [
        test_row_major_offset,
        test_offset_bounds_checked,
        test_buffer_length_invariant,
        test_from_array_copies,
        test_scoped_release,
        test_reshaped_moves_ownership,
        test_allocation_failure,
        test_allocate_array_failure,
        test_config_defaults_and_validation,
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
