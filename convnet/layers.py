"""
CNN Layer Implementations (Forward Only)
Each layer writes into an output tensor allocated by the network and
delegates the loop work to the Numba kernels.
"""

import numpy as np

from . import kernels
from .config import DEFAULT_CONFIG
from .errors import ShapeMismatch
from .tensor import Tensor, allocate_array
from .workgroup import blocked_matmul_workgroups


def _as_float32(array):
    return np.ascontiguousarray(array, dtype=np.float32)


def conv_output_shape(input_shape, filter_shape):
    N, H, W, C = input_shape
    K_h, K_w, C_in, M = filter_shape
    if C != C_in:
        raise ShapeMismatch(
            f"Filter expects {C_in} input channels, input has {C}")
    H_out, W_out = H - K_h + 1, W - K_w + 1
    if H_out < 1 or W_out < 1:
        raise ShapeMismatch(
            f"Filter {K_h}x{K_w} does not fit input {H}x{W}")
    return (N, H_out, W_out, M)


def pool_output_shape(input_shape, pool_size, remainder='truncate'):
    N, H, W, C = input_shape
    if remainder == 'error' and (H % pool_size or W % pool_size):
        raise ShapeMismatch(
            f"Input {H}x{W} is not divisible by pool size {pool_size}")
    if remainder == 'pad':
        H_out = (H + pool_size - 1) // pool_size
        W_out = (W + pool_size - 1) // pool_size
    else:
        H_out, W_out = H // pool_size, W // pool_size
    if H_out < 1 or W_out < 1:
        raise ShapeMismatch(f"Input {H}x{W} is smaller than pool size {pool_size}")
    return (N, H_out, W_out, C)


def dense_output_shape(input_shape, weight_shape):
    rows, K = input_shape
    K_w, J = weight_shape
    if K != K_w:
        raise ShapeMismatch(f"Input has {K} features, weights expect {K_w}")
    return (rows, J)


class Conv2D:
    """
    Valid-mode 2D convolution, stride 1, no bias.

    Two realizations selected by ``config.conv_algorithm``:
        direct  - nested-loop accumulation (reference form)
        unroll  - per-sample unroll, blocked matrix multiply, reroll
    """

    def __init__(self, filters, config=DEFAULT_CONFIG, fuse_relu=True):
        self.W = _as_float32(filters)
        if self.W.ndim != 4:
            raise ShapeMismatch(f"Filter must be 4-D, got shape {self.W.shape}")
        self.config = config
        self.fuse_relu = fuse_relu
        self.filter_h, self.filter_w, self.in_channels, self.out_channels = self.W.shape

        # Unrolled once, shared by every sample
        self.W_unroll = kernels.unroll_filter(
            self.W, allocate_array((self.out_channels, self.in_channels * self.filter_h * self.filter_w)))

    def output_shape(self, input_shape):
        return conv_output_shape(input_shape, self.W.shape)

    def forward(self, X, out):
        """
        X: (N, H, W, C) tensor
        out: zeroed (N, H_out, W_out, M) tensor
        """
        if self.output_shape(X.shape) != out.shape:
            raise ShapeMismatch(f"Output tensor {out.shape} does not match convolution of {X.shape}")
        if self.config.conv_algorithm == 'direct':
            kernels.conv_forward_valid(X.array, self.W, out.array, self.fuse_relu)
        else:
            self._forward_unroll(X.array, out.array)
        return out

    def _matmul(self, X_unroll, Y_unroll):
        if self.config.matmul_backend == 'workgroup':
            blocked_matmul_workgroups(self.W_unroll, X_unroll, self.config.tile_width,
                                      relu=self.fuse_relu, out=Y_unroll)
        else:
            kernels.tiled_matmul(self.W_unroll, X_unroll, Y_unroll,
                                 self.config.tile_width, self.fuse_relu)

    def _forward_unroll(self, X, Y):
        _, H_out, W_out, _ = Y.shape
        H_unroll = H_out * W_out
        unroll_rows = self.in_channels * self.filter_h * self.filter_w

        with Tensor.empty((unroll_rows, H_unroll)) as X_unroll, \
                Tensor.empty((self.out_channels, H_unroll)) as Y_unroll:
            for n in range(X.shape[0]):
                kernels.unroll_input(X, n, self.filter_h, self.filter_w, X_unroll.array)
                self._matmul(X_unroll.array, Y_unroll.array)
                kernels.reroll_output(Y_unroll.array, n, Y)


class AvgPool2D:
    """Non-overlapping average pooling."""

    def __init__(self, pool_size=2, remainder='truncate'):
        self.pool_size = pool_size
        self.remainder = remainder

    def output_shape(self, input_shape):
        return pool_output_shape(input_shape, self.pool_size, self.remainder)

    def forward(self, X, out):
        """
        X: (N, H, W, C)
        out: zeroed (N, H_out, W_out, C)
        """
        if self.output_shape(X.shape) != out.shape:
            raise ShapeMismatch(f"Output tensor {out.shape} does not match pooling of {X.shape}")
        kernels.average_pool(X.array, self.pool_size, out.array)
        return out


class Dense:
    """Fully connected layer without bias."""

    def __init__(self, weights, fuse_relu=False):
        self.W = _as_float32(weights)
        if self.W.ndim != 2:
            raise ShapeMismatch(f"Dense weights must be 2-D, got shape {self.W.shape}")
        self.in_features, self.out_features = self.W.shape
        self.fuse_relu = fuse_relu

    def output_shape(self, input_shape):
        return dense_output_shape(input_shape, self.W.shape)

    def forward(self, X, out):
        """
        X: (rows, in_features)
        out: (rows, out_features)
        """
        if self.output_shape(X.shape) != out.shape:
            raise ShapeMismatch(f"Output tensor {out.shape} does not match {X.shape} x {self.W.shape}")
        kernels.fully_forward(X.array, self.W, out.array, self.fuse_relu)
        return out


class Flatten:
    """Reinterpret (N, H, W, C) as (N, H*W*C); takes ownership of the buffer."""

    def output_shape(self, input_shape):
        return (input_shape[0], int(np.prod(input_shape[1:])))

    def forward(self, X):
        return X.reshaped(self.output_shape(X.shape))


class ReLU:
    """In-place rectified linear unit."""

    def forward(self, X):
        kernels.relu_inplace(X.buffer)
        return X


class Argmax:
    """Per-row index of the largest score."""

    def forward(self, X):
        if X.ndim != 2:
            raise ShapeMismatch(f"Argmax expects a 2-D score matrix, got {X.shape}")
        labels = allocate_array(X.shape[0], dtype=np.int32)
        return kernels.argmax_rows(X.array, labels)


# =============================================================================
# Array-level helpers
# =============================================================================

def conv_forward(X, W, config=DEFAULT_CONFIG, relu=False):
    """Convolve an (N, H, W, C) array with a (K_h, K_w, C, M) filter array."""
    layer = Conv2D(W, config, fuse_relu=relu)
    with Tensor.from_array(X) as x, Tensor.zeros(layer.output_shape(x.shape)) as y:
        return layer.forward(x, y).numpy()


def average_pool(X, pool_size=2, remainder='truncate'):
    layer = AvgPool2D(pool_size, remainder)
    with Tensor.from_array(X) as x, Tensor.zeros(layer.output_shape(x.shape)) as y:
        return layer.forward(x, y).numpy()


def fully_forward(X, W, relu=False):
    layer = Dense(W, fuse_relu=relu)
    with Tensor.from_array(X) as x, Tensor.zeros(layer.output_shape(x.shape)) as y:
        return layer.forward(x, y).numpy()


def tiled_matmul(A, B, tile_width=16, relu=False, backend='numba'):
    """Blocked product of two 2-D arrays with the selected backend."""
    A = _as_float32(A)
    B = _as_float32(B)
    if A.ndim != 2 or B.ndim != 2 or A.shape[1] != B.shape[0]:
        raise ShapeMismatch(f"Cannot multiply {A.shape} by {B.shape}")
    if backend == 'workgroup':
        return blocked_matmul_workgroups(A, B, tile_width, relu=relu)
    out = allocate_array((A.shape[0], B.shape[1]))
    return kernels.tiled_matmul(A, B, out, tile_width, relu)


def relu(X):
    with Tensor.from_array(X) as x:
        return ReLU().forward(x).numpy()


def argmax(X):
    with Tensor.from_array(X) as x:
        return Argmax().forward(x)
