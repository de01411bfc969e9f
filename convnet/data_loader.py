"""
Test Data and Model Loader
Reads the test batch and the four weight arrays from numpy ``.npz`` archives.

Test data archive:  x (N, 28, 28, 1), y (N, 10)
Model archive:      conv1 (5, 5, 1, 32), conv2 (5, 5, 32, 64),
                    fc1 (1024, 128), fc2 (128, 10)
"""

import os

import numpy as np

from .config import DEFAULT_CONFIG
from .errors import BatchSizeMismatch, ShapeMismatch
from .network import WEIGHT_NAMES, validate_weights

DEFAULT_BATCH_SIZE = 10000


def _open_archive(path):
    if not os.path.exists(path):
        raise FileNotFoundError(f"No such archive: {path}")
    return np.load(path)


def load_test_data(path, batch_size=None, config=DEFAULT_CONFIG):
    """
    Load the test images and reference labels.

    Returns:
        x: (N, 28, 28, 1) float32
        y: (N, 10) float32
    """
    with _open_archive(path) as archive:
        if 'x' not in archive or 'y' not in archive:
            raise ShapeMismatch(f"{path} must contain 'x' and 'y' arrays")
        x = np.ascontiguousarray(archive['x'], dtype=np.float32)
        y = np.ascontiguousarray(archive['y'], dtype=np.float32)

    if x.ndim == 3:
        x = x.reshape(x.shape + (1,))
    if x.ndim != 4 or tuple(x.shape[1:]) != config.input_dims:
        raise ShapeMismatch(f"Test images have shape {x.shape}, expected (N,) + {config.input_dims}")
    if y.shape != (x.shape[0], config.num_digits):
        raise ShapeMismatch(f"Reference labels have shape {y.shape}, "
                            f"expected ({x.shape[0]}, {config.num_digits})")
    if batch_size is not None and x.shape[0] != batch_size:
        raise BatchSizeMismatch(f"{path} holds {x.shape[0]} samples, expected batch size {batch_size}")
    return x, y


def load_model(path, config=DEFAULT_CONFIG):
    """Load the four weight arrays; read-only for the rest of the run."""
    with _open_archive(path) as archive:
        weights = {name: np.ascontiguousarray(archive[name], dtype=np.float32)
                   for name in WEIGHT_NAMES if name in archive}
    validate_weights(weights, config)
    for array in weights.values():
        array.setflags(write=False)
    return weights


def save_test_data(path, x, y):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    np.savez(path, x=np.asarray(x, dtype=np.float32), y=np.asarray(y, dtype=np.float32))


def save_model(path, weights):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    np.savez(path, **{name: np.asarray(weights[name], dtype=np.float32) for name in WEIGHT_NAMES})


def one_hot_encode(y, num_classes=10):
    """One-hot encode labels."""
    return np.eye(num_classes, dtype=np.float32)[y]


def random_model(config=DEFAULT_CONFIG, seed=42):
    """He-scaled random weights in the configured shapes."""
    rng = np.random.RandomState(seed)
    weights = {}
    for name, dims in config.weight_dims.items():
        fan_in = int(np.prod(dims[:-1]))
        scale = np.sqrt(2.0 / fan_in)
        weights[name] = (rng.randn(*dims) * scale).astype(np.float32)
    return weights


def synthetic_batch(batch_size, config=DEFAULT_CONFIG, seed=0):
    """Random images in [0, 1) with random one-hot reference labels."""
    rng = np.random.RandomState(seed)
    x = rng.rand(batch_size, *config.input_dims).astype(np.float32)
    y = one_hot_encode(rng.randint(0, config.num_digits, size=batch_size), config.num_digits)
    return x, y


def partition_data(X, y, rank, size):
    """Contiguous shard of the batch for one MPI process; the last rank takes the remainder."""
    n_samples = X.shape[0]
    samples_per_rank = n_samples // size

    start_idx = rank * samples_per_rank
    end_idx = n_samples if rank == size - 1 else start_idx + samples_per_rank

    return X[start_idx:end_idx], y[start_idx:end_idx]
