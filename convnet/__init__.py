"""Forward inference engine for a small fixed-topology convolutional network."""

from .errors import InferenceError, ShapeMismatch, BatchSizeMismatch, OutOfMemory
from .tensor import Tensor, shape_size
from .config import NetworkConfig, DEFAULT_CONFIG
from .layers import (Conv2D, AvgPool2D, Dense, Flatten, ReLU, Argmax,
                     conv_forward, average_pool, fully_forward, tiled_matmul, relu, argmax)
from .network import CNN, compute_shapes, forward, predict_shard, WEIGHT_NAMES
from .metrics import Timer, InferenceMetrics, compute_correctness
from .data_loader import load_test_data, load_model, partition_data
