"""
Numba Compute Kernels
=====================
Loop-level kernels for the forward pass, compiled with Numba.
Parallel loops use ``prange`` over independent output slices
(batch samples, matrix rows, or output tiles).

All activation tensors use (N, H, W, C) layout and all filters use
(filter_h, filter_w, in_channels, out_channels) layout.
"""

import numpy as np
from numba import njit, prange


# =============================================================================
# Convolution (direct form)
# =============================================================================

@njit(parallel=True, cache=True)
def conv_forward_valid(X, W, Y, relu):
    """
    Valid-mode convolution, stride 1, accumulated into a zeroed Y.

    X: (N, H, W, C)
    W: (K_h, K_w, C, M)
    Y: (N, H - K_h + 1, W - K_w + 1, M), zero-initialized
    """
    N, H_out, W_out, M = Y.shape
    K_h, K_w, C, _ = W.shape

    for n in prange(N):
        for m in range(M):
            for w in range(W_out):
                for h in range(H_out):
                    for p in range(K_h):
                        for q in range(K_w):
                            for c in range(C):
                                Y[n, h, w, m] += X[n, h + p, w + q, c] * W[p, q, c, m]
                    if relu and Y[n, h, w, m] < 0:
                        Y[n, h, w, m] = 0.0
    return Y


# =============================================================================
# Unroll / reroll transforms
# =============================================================================

@njit(cache=True)
def unroll_input(X, n, K_h, K_w, X_unroll):
    """
    Rewrite the receptive fields of sample n as matrix columns.

    X_unroll: (C * K_h * K_w, H_out * W_out)
    row = c * K_h * K_w + p * K_w + q, column = h * W_out + w
    """
    C = X.shape[3]
    H_out = X.shape[1] - K_h + 1
    W_out = X.shape[2] - K_w + 1

    for c in range(C):
        for p in range(K_h):
            for q in range(K_w):
                row = c * K_h * K_w + p * K_w + q
                for h in range(H_out):
                    for w in range(W_out):
                        X_unroll[row, h * W_out + w] = X[n, h + p, w + q, c]
    return X_unroll


@njit(cache=True)
def unroll_filter(W, W_unroll):
    """
    W_unroll: (M, C * K_h * K_w) with W_unroll[m, c*K_h*K_w + p*K_w + q] = W[p, q, c, m]
    """
    K_h, K_w, C, M = W.shape
    for m in range(M):
        for c in range(C):
            for p in range(K_h):
                for q in range(K_w):
                    W_unroll[m, c * K_h * K_w + p * K_w + q] = W[p, q, c, m]
    return W_unroll


@njit(cache=True)
def reroll_output(Y_unroll, n, Y):
    """Y[n, h, w, m] = Y_unroll[m, h * W_out + w]"""
    _, H_out, W_out, M = Y.shape
    for m in range(M):
        for h in range(H_out):
            for w in range(W_out):
                Y[n, h, w, m] = Y_unroll[m, h * W_out + w]
    return Y


# =============================================================================
# Matrix multiplication
# =============================================================================

@njit(parallel=True, cache=True)
def tiled_matmul(A, B, C, tile_width, relu):
    """
    Blocked product C = A @ B over square tiles of width ``tile_width``.

    Each parallel iteration owns one output tile and walks the shared
    dimension in phases. A phase loads one tile of each operand into a
    private working set, then consumes it; the load loop finishes before
    the consume loop starts, and the consume loop finishes before the
    next phase overwrites the working set.

    Slots outside an operand's valid range are left unwritten, so the
    consume loop checks the contraction index before reading them.

    A: (rows, inner)
    B: (inner, cols)
    C: (rows, cols)
    """
    rows, inner = A.shape
    cols = B.shape[1]
    T = tile_width
    tile_rows = (rows + T - 1) // T
    tile_cols = (cols + T - 1) // T
    num_phases = (inner + T - 1) // T

    for tile in prange(tile_rows * tile_cols):
        row0 = (tile // tile_cols) * T
        col0 = (tile % tile_cols) * T

        tile_a = np.empty((T, T), dtype=np.float32)
        tile_b = np.empty((T, T), dtype=np.float32)
        acc = np.zeros((T, T), dtype=np.float32)

        for phase in range(num_phases):
            k0 = phase * T

            # load
            for ty in range(T):
                for tx in range(T):
                    if row0 + ty < rows and k0 + tx < inner:
                        tile_a[ty, tx] = A[row0 + ty, k0 + tx]
                    if k0 + ty < inner and col0 + tx < cols:
                        tile_b[ty, tx] = B[k0 + ty, col0 + tx]

            # consume
            for ty in range(T):
                if row0 + ty >= rows:
                    continue
                for tx in range(T):
                    if col0 + tx >= cols:
                        continue
                    for k in range(T):
                        if k0 + k < inner:
                            acc[ty, tx] += tile_a[ty, k] * tile_b[k, tx]

        for ty in range(T):
            for tx in range(T):
                if row0 + ty < rows and col0 + tx < cols:
                    value = acc[ty, tx]
                    if relu and value < 0:
                        value = 0.0
                    C[row0 + ty, col0 + tx] = value
    return C


@njit(parallel=True, cache=True)
def matmul_naive(A, B, C):
    """Triple-loop product, used as the reference for the tiled kernel."""
    rows, inner = A.shape
    cols = B.shape[1]
    for i in prange(rows):
        for j in range(cols):
            total = 0.0
            for k in range(inner):
                total += A[i, k] * B[k, j]
            C[i, j] = total
    return C


# =============================================================================
# Pooling, dense, activation, classification
# =============================================================================

@njit(parallel=True, cache=True)
def average_pool(X, pool_size, Y):
    """
    Non-overlapping average pooling, accumulated into a zeroed Y.

    Every contribution is divided by pool_size ** 2. Window elements that
    fall outside X (only possible when Y is sized for padded borders) are
    treated as zero.
    """
    N, H, W_in, _ = X.shape
    _, H_out, W_out, C = Y.shape
    area = pool_size * pool_size

    for n in prange(N):
        for m in range(C):
            for w in range(W_out):
                for h in range(H_out):
                    for p in range(pool_size):
                        for q in range(pool_size):
                            hh = pool_size * h + p
                            ww = pool_size * w + q
                            if hh < H and ww < W_in:
                                Y[n, h, w, m] += X[n, hh, ww, m] / area
    return Y


@njit(parallel=True, cache=True)
def fully_forward(X, W, Y, relu):
    """
    Y = X @ W without bias.

    X: (rows, K)
    W: (K, J)
    Y: (rows, J)
    """
    rows, K = X.shape
    J = W.shape[1]
    for i in prange(rows):
        for j in range(J):
            total = 0.0
            for k in range(K):
                total += X[i, k] * W[k, j]
            if relu and total < 0:
                total = 0.0
            Y[i, j] = total
    return Y


@njit(parallel=True, cache=True)
def relu_inplace(X):
    """Clamp a flat buffer to zero in place."""
    for i in prange(X.shape[0]):
        if X[i] < 0:
            X[i] = 0.0
    return X


@njit(cache=True)
def argmax_rows(X, Y):
    """Index of the largest score per row; the first maximum wins ties."""
    rows, cols = X.shape
    for i in range(rows):
        max_idx = 0
        max_val = X[i, 0]
        for j in range(1, cols):
            if X[i, j] > max_val:
                max_idx = j
                max_val = X[i, j]
        Y[i] = max_idx
    return Y
