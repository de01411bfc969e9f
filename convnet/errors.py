"""
Inference Error Types
All errors abort the current forward pass; nothing is retried.
"""


class InferenceError(Exception):
    """Base class for errors raised by the inference engine."""


class ShapeMismatch(InferenceError):
    """Operand shapes disagree (channel count, inner dimension, batch size)."""


class BatchSizeMismatch(InferenceError):
    """Test data batch size differs from the configured batch size."""


class OutOfMemory(InferenceError):
    """A tensor buffer could not be allocated."""
