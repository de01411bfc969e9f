"""
Tensor Buffer
Flat float32 buffer paired with an explicit row-major shape.
"""

import numpy as np

from .errors import ShapeMismatch, OutOfMemory


def shape_size(shape):
    """Number of elements described by a shape."""
    size = 1
    for extent in shape:
        size *= extent
    return size


def allocate_array(shape, dtype=np.float32, fill=False):
    """Plain numpy allocation; ``MemoryError`` is surfaced as ``OutOfMemory``."""
    try:
        if fill:
            return np.zeros(shape, dtype=dtype)
        return np.empty(shape, dtype=dtype)
    except MemoryError as exc:
        raise OutOfMemory(f"Unable to allocate array of shape {shape}") from exc


def _allocate(shape, fill):
    shape = tuple(int(e) for e in shape)
    if any(e <= 0 for e in shape):
        raise ShapeMismatch(f"Tensor extents must be positive, got {shape}")
    return allocate_array(shape_size(shape), fill=fill), shape


class Tensor:
    """
    Owned, contiguous float32 buffer plus shape.

    Elements are addressed with row-major offsets, last index fastest.
    A tensor is released exactly once, either explicitly or when the
    ``with`` block that acquired it exits.
    """

    def __init__(self, buffer, shape):
        shape = tuple(int(e) for e in shape)
        if buffer.ndim != 1 or buffer.size != shape_size(shape):
            raise ShapeMismatch(
                f"Buffer of {buffer.size} elements does not match shape {shape}")
        self._buffer = buffer
        self.shape = shape

    @classmethod
    def zeros(cls, shape):
        buffer, shape = _allocate(shape, fill=True)
        return cls(buffer, shape)

    @classmethod
    def empty(cls, shape):
        buffer, shape = _allocate(shape, fill=False)
        return cls(buffer, shape)

    @classmethod
    def from_array(cls, array):
        """Copy an array of any layout into a new float32 tensor."""
        array = np.asarray(array)
        tensor = cls.empty(array.shape)
        tensor.array[...] = array
        return tensor

    @property
    def released(self):
        return self._buffer is None

    @property
    def buffer(self):
        if self._buffer is None:
            raise ValueError("Tensor buffer has been released")
        return self._buffer

    @property
    def array(self):
        """Shaped view over the buffer."""
        return self.buffer.reshape(self.shape)

    @property
    def ndim(self):
        return len(self.shape)

    @property
    def size(self):
        return shape_size(self.shape)

    def offset(self, *index):
        """Row-major offset of ``index``, bounds-checked per dimension."""
        if len(index) != len(self.shape):
            raise IndexError(
                f"Expected {len(self.shape)} indices for shape {self.shape}, got {len(index)}")
        offset = 0
        for i, extent in zip(index, self.shape):
            if not 0 <= i < extent:
                raise IndexError(f"Index {index} out of range for shape {self.shape}")
            offset = offset * extent + i
        return offset

    def __getitem__(self, index):
        if not isinstance(index, tuple):
            index = (index,)
        return self.buffer[self.offset(*index)]

    def __setitem__(self, index, value):
        if not isinstance(index, tuple):
            index = (index,)
        self.buffer[self.offset(*index)] = value

    def reshaped(self, shape):
        """
        Move the buffer into a tensor of a different shape.

        The element count must be unchanged. This tensor is released;
        the returned tensor becomes the owner.
        """
        shape = tuple(int(e) for e in shape)
        if shape_size(shape) != self.size:
            raise ShapeMismatch(f"Cannot reshape {self.shape} into {shape}")
        moved = Tensor(self.buffer, shape)
        self._buffer = None
        return moved

    def numpy(self):
        """Independent copy of the contents as a shaped array."""
        return self.array.copy()

    def release(self):
        self._buffer = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.release()

    def __repr__(self):
        state = "released" if self.released else "live"
        return f"Tensor(shape={self.shape}, {state})"
