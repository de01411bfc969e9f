"""
Forward Pipeline
================
Fixed network: conv1 -> relu -> pool1 -> conv2 -> relu -> pool2
-> flatten -> fc1 -> relu -> fc2 -> argmax.

All intermediate shapes are derived from the configuration before the
first buffer is allocated. Each intermediate tensor is released as soon
as the following stage has consumed it, including when a stage fails.
"""

from collections import OrderedDict

import numpy as np
from numba import set_num_threads

from .config import DEFAULT_CONFIG
from .errors import ShapeMismatch
from .layers import (Conv2D, AvgPool2D, Dense, Flatten, ReLU, Argmax,
                     conv_output_shape, pool_output_shape, dense_output_shape)
from .metrics import Timer
from .tensor import Tensor, allocate_array

WEIGHT_NAMES = ('conv1', 'conv2', 'fc1', 'fc2')


def compute_shapes(config=DEFAULT_CONFIG, batch_size=1):
    """
    Shape of every intermediate tensor for a batch of ``batch_size``.

    Returns an ordered mapping stage -> shape:
        conv1, pool1, conv2, pool2, flatten, fc1, fc2, argmax
    """
    if batch_size < 1:
        raise ShapeMismatch(f"Batch size must be positive, got {batch_size}")
    dims = config.weight_dims
    shapes = OrderedDict()
    x = (batch_size,) + config.input_dims

    shapes['conv1'] = conv_output_shape(x, dims['conv1'])
    shapes['pool1'] = pool_output_shape(shapes['conv1'], config.pool_size, config.pool_remainder)
    shapes['conv2'] = conv_output_shape(shapes['pool1'], dims['conv2'])
    shapes['pool2'] = pool_output_shape(shapes['conv2'], config.pool_size, config.pool_remainder)

    n, h, w, c = shapes['pool2']
    shapes['flatten'] = (n, h * w * c)
    shapes['fc1'] = dense_output_shape(shapes['flatten'], dims['fc1'])
    shapes['fc2'] = dense_output_shape(shapes['fc1'], dims['fc2'])
    shapes['argmax'] = (batch_size,)
    return shapes


def validate_weights(weights, config=DEFAULT_CONFIG):
    """Check that all four weight arrays are present with the configured shapes."""
    for name, expected in config.weight_dims.items():
        if name not in weights:
            raise ShapeMismatch(f"Missing weights '{name}'")
        actual = tuple(np.shape(weights[name]))
        if actual != expected:
            raise ShapeMismatch(f"Weights '{name}' have shape {actual}, expected {expected}")


class CNN:
    """Convolutional network for 28x28 digit classification (inference only)."""

    def __init__(self, weights, config=DEFAULT_CONFIG, verbose=False):
        validate_weights(weights, config)
        self.config = config
        self.verbose = verbose

        if config.num_threads:
            set_num_threads(config.num_threads)

        # Conv blocks, ReLU fused into the convolution
        self.conv1 = Conv2D(weights['conv1'], config, fuse_relu=True)
        self.pool1 = AvgPool2D(config.pool_size, config.pool_remainder)
        self.conv2 = Conv2D(weights['conv2'], config, fuse_relu=True)
        self.pool2 = AvgPool2D(config.pool_size, config.pool_remainder)

        self.flatten = Flatten()

        # Dense head, ReLU as a separate pass
        self.fc1 = Dense(weights['fc1'], fuse_relu=False)
        self.relu = ReLU()
        self.fc2 = Dense(weights['fc2'], fuse_relu=False)
        self.argmax = Argmax()

        self.stages = [
            ('conv1', self.conv1), ('pool1', self.pool1),
            ('conv2', self.conv2), ('pool2', self.pool2),
        ]

    def _check_input(self, X):
        expected = self.config.input_dims
        if X.ndim != 4 or tuple(X.shape[1:]) != expected:
            raise ShapeMismatch(f"Input must be (N, {expected[0]}, {expected[1]}, {expected[2]}), "
                                f"got {tuple(X.shape)}")

    def _run(self, name, layer, inp, out_shape):
        """Allocate the stage output, run the layer, free the output on failure."""
        timer = Timer()
        timer.start()
        out = Tensor.zeros(out_shape)
        try:
            layer.forward(inp, out)
        except BaseException:
            out.release()
            raise
        if self.verbose:
            print(f"  {name:<8} {str(inp.shape):<22} -> {str(out_shape):<22} "
                  f"{timer.stop() * 1000:.2f} ms")
        return out

    def forward_scores(self, X):
        """
        Run every stage up to fc2.

        X: (N, 28, 28, 1) array or Tensor
        Returns: (N, 10) score tensor owned by the caller
        """
        self._check_input(X)
        shapes = compute_shapes(self.config, X.shape[0])

        owned = not isinstance(X, Tensor)
        current = Tensor.from_array(X) if owned else X

        try:
            for name, layer in self.stages:
                produced = self._run(name, layer, current, shapes[name])
                if owned:
                    current.release()
                current, owned = produced, True

            current = self.flatten.forward(current)

            produced = self._run('fc1', self.fc1, current, shapes['fc1'])
            current.release()
            current = produced
            self.relu.forward(current)

            produced = self._run('fc2', self.fc2, current, shapes['fc2'])
            current.release()
            current = produced
        except BaseException:
            if owned:
                current.release()
            raise
        return current

    def forward(self, X):
        """
        X: (N, 28, 28, 1)
        Returns: (N,) int32 predicted labels
        """
        with self.forward_scores(X) as scores:
            return self.argmax.forward(scores)

    def __call__(self, X):
        return self.forward(X)


def forward(X, weights, config=DEFAULT_CONFIG):
    """Predicted labels for a batch, using freshly built layers."""
    return CNN(weights, config).forward(X)


def predict_shard(model, X):
    """Labels for one rank's shard; a rank with no samples contributes none."""
    if len(X) == 0:
        return allocate_array(0, dtype=np.int32)
    return model.forward(X)
