"""
Work-Group Blocked Matrix Multiply
==================================
Thread-level rendition of the tiled product: every output tile is
computed by a group of ``tile_width`` cooperating workers, one per tile
row, sharing a tile-sized working set of each operand.

Per phase:
    1. each worker loads its row of both operand tiles
    2. barrier (loads visible to the whole group)
    3. each worker accumulates its row of the output tile
    4. barrier (working set free for the next phase)

Groups are independent and run concurrently with no ordering between them.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from .errors import ShapeMismatch
from .tensor import allocate_array


class TileGroup:
    """Cooperating workers that compute one output tile."""

    def __init__(self, a, b, c, row0, col0, tile_width, relu):
        self.a = a
        self.b = b
        self.c = c
        self.row0 = row0
        self.col0 = col0
        self.tile_width = tile_width
        self.relu = relu

        # Shared working set; never zero-filled between phases
        self.tile_a = allocate_array((tile_width, tile_width))
        self.tile_b = allocate_array((tile_width, tile_width))
        self.barrier = threading.Barrier(tile_width)
        self.errors = []

    def _worker(self, ty):
        rows, inner = self.a.shape
        cols = self.b.shape[1]
        T = self.tile_width
        row = self.row0 + ty

        try:
            acc = allocate_array(T, fill=True)
            for k0 in range(0, inner, T):
                for tx in range(T):
                    if row < rows and k0 + tx < inner:
                        self.tile_a[ty, tx] = self.a[row, k0 + tx]
                    if k0 + ty < inner and self.col0 + tx < cols:
                        self.tile_b[ty, tx] = self.b[k0 + ty, self.col0 + tx]
                self.barrier.wait()

                if row < rows:
                    for tx in range(T):
                        if self.col0 + tx >= cols:
                            continue
                        for k in range(T):
                            if k0 + k < inner:
                                acc[tx] += self.tile_a[ty, k] * self.tile_b[k, tx]
                self.barrier.wait()

            if row < rows:
                for tx in range(T):
                    col = self.col0 + tx
                    if col < cols:
                        value = acc[tx]
                        if self.relu and value < 0:
                            value = 0.0
                        self.c[row, col] = value
        except threading.BrokenBarrierError:
            # Cause is recorded by the worker that aborted; run() checks for it
            pass
        except Exception as exc:
            self.errors.append(exc)
            self.barrier.abort()

    def run(self):
        workers = [threading.Thread(target=self._worker, args=(ty,))
                   for ty in range(self.tile_width)]
        for t in workers:
            t.start()
        for t in workers:
            t.join()
        if self.errors:
            raise self.errors[0]
        if self.barrier.broken:
            raise threading.BrokenBarrierError(
                f"Work-group for tile ({self.row0}, {self.col0}) broke without a recorded error")


def blocked_matmul_workgroups(a, b, tile_width=16, relu=False, max_groups=4, out=None):
    """
    Compute ``a @ b`` with one barrier-synchronized work-group per tile.

    a: (rows, inner)
    b: (inner, cols)
    out: optional (rows, cols) float32 destination
    Returns: (rows, cols) float32
    """
    a = np.ascontiguousarray(a, dtype=np.float32)
    b = np.ascontiguousarray(b, dtype=np.float32)
    if a.ndim != 2 or b.ndim != 2 or a.shape[1] != b.shape[0]:
        raise ShapeMismatch(f"Cannot multiply {a.shape} by {b.shape}")
    if tile_width < 1:
        raise ValueError("tile_width must be positive")

    rows, cols = a.shape[0], b.shape[1]
    if out is None:
        out = allocate_array((rows, cols))
    elif out.shape != (rows, cols):
        raise ShapeMismatch(f"Output of shape {out.shape} cannot hold ({rows}, {cols})")

    groups = [TileGroup(a, b, out, row0, col0, tile_width, relu)
              for row0 in range(0, rows, tile_width)
              for col0 in range(0, cols, tile_width)]

    with ThreadPoolExecutor(max_workers=max(1, max_groups)) as pool:
        for future in [pool.submit(group.run) for group in groups]:
            future.result()
    return out
